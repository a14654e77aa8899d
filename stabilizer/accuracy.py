"""Local estimate of floating-point error, in bits, for a :data:`MathExpr`.

Points are drawn uniformly over finite float64 bit patterns. At each point the
expression is evaluated twice: in double precision with NumPy, and with
``mpmath`` at a working precision wide enough to hold the exact sum of any two
doubles. The error at a point is ``log2(1 + ulps)`` between the double result
and the correctly rounded reference; the estimate is the mean over points where
both are finite and real. This mirrors how the solver scores expressions, so
its ``errin``/``errout`` claims can be audited without re-running it.
"""
from __future__ import annotations

import math
import operator
from dataclasses import dataclass
from typing import Any, Callable, Mapping

import mpmath
import numpy as np

from .expr import Const, MathExpr, Num, Op, Var, equivalent, free_variables
from .types import StabilizerResult

__all__ = ["ErrorComparison", "estimate_error_bits", "compare", "ulps_between"]

DEFAULT_SAMPLES = 256
REFERENCE_PRECISION = 2200  # bits

_SIGN_MASK = np.int64(0x7FFF_FFFF_FFFF_FFFF)


def _mp_cbrt(x: Any) -> Any:  # noqa: ANN401 – mpmath number
    return mpmath.sign(x) * mpmath.cbrt(abs(x))


_NUMPY_OPS: dict[str, Callable[..., Any]] = {
    "+": np.add,
    "-": np.subtract,
    "*": np.multiply,
    "/": np.divide,
    "**": np.power,
    "atan2": np.arctan2,
    "hypot": np.hypot,
    "neg": np.negative,
    "sqrt": np.sqrt,
    "cbrt": np.cbrt,
    "exp": np.exp,
    "expm1": np.expm1,
    "log": np.log,
    "log1p": np.log1p,
    "sin": np.sin,
    "cos": np.cos,
    "tan": np.tan,
    "asin": np.arcsin,
    "acos": np.arccos,
    "atan": np.arctan,
    "sinh": np.sinh,
    "cosh": np.cosh,
    "tanh": np.tanh,
    "asinh": np.arcsinh,
    "acosh": np.arccosh,
    "atanh": np.arctanh,
    "abs": np.abs,
}

_MPMATH_OPS: dict[str, Callable[..., Any]] = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
    "**": mpmath.power,
    "atan2": mpmath.atan2,
    "hypot": mpmath.hypot,
    "neg": operator.neg,
    "sqrt": mpmath.sqrt,
    "cbrt": _mp_cbrt,
    "exp": mpmath.exp,
    "expm1": mpmath.expm1,
    "log": mpmath.log,
    "log1p": mpmath.log1p,
    "sin": mpmath.sin,
    "cos": mpmath.cos,
    "tan": mpmath.tan,
    "asin": mpmath.asin,
    "acos": mpmath.acos,
    "atan": mpmath.atan,
    "sinh": mpmath.sinh,
    "cosh": mpmath.cosh,
    "tanh": mpmath.tanh,
    "asinh": mpmath.asinh,
    "acosh": mpmath.acosh,
    "atanh": mpmath.atanh,
    "abs": abs,
}


def _eval_double(expr: MathExpr, env: Mapping[str, np.ndarray]) -> np.ndarray:
    if isinstance(expr, Var):
        return env[expr.name]
    if isinstance(expr, Num):
        return np.float64(expr.value)
    if isinstance(expr, Const):
        return np.float64(math.pi if expr.name == "pi" else math.e)
    args = [_eval_double(a, env) for a in expr.args]
    return _NUMPY_OPS[expr.name](*args)


def _eval_exact(expr: MathExpr, env: Mapping[str, Any]) -> Any:  # noqa: ANN401 – mpmath number
    if isinstance(expr, Var):
        return env[expr.name]
    if isinstance(expr, Num):
        return mpmath.mpf(expr.value)
    if isinstance(expr, Const):
        return +mpmath.pi if expr.name == "pi" else +mpmath.e
    args = [_eval_exact(a, env) for a in expr.args]
    return _MPMATH_OPS[expr.name](*args)


def _ordinal(values: np.ndarray) -> np.ndarray:
    """Map float64 values to integers that are adjacent for adjacent floats."""
    bits = np.asarray(values, dtype=np.float64).view(np.int64)
    return np.where(bits < 0, -(bits & _SIGN_MASK), bits)


def ulps_between(a: np.ndarray | float, b: np.ndarray | float) -> np.ndarray:
    """Number of representable doubles between *a* and *b* (as float64)."""
    oa = _ordinal(np.atleast_1d(np.asarray(a, dtype=np.float64))).astype(np.float64)
    ob = _ordinal(np.atleast_1d(np.asarray(b, dtype=np.float64))).astype(np.float64)
    return np.abs(oa - ob)


def _sample_points(nvars: int, samples: int, seed: int) -> np.ndarray:
    rng = np.random.default_rng(seed)
    raw = rng.integers(0, np.iinfo(np.uint64).max, size=(samples, nvars), dtype=np.uint64, endpoint=True)
    points = raw.view(np.float64)
    finite = np.all(np.isfinite(points), axis=1)
    return points[finite]


def _reference(expr: MathExpr, names: list[str], point: np.ndarray) -> float | None:
    env = {name: mpmath.mpf(float(v)) for name, v in zip(names, point)}
    try:
        value = _eval_exact(expr, env)
    except (ZeroDivisionError, ValueError, OverflowError):
        return None
    if isinstance(value, mpmath.mpc):
        if value.imag != 0:
            return None
        value = value.real
    out = float(value)
    return out if math.isfinite(out) else None


def estimate_error_bits(
    expr: MathExpr,
    *,
    samples: int = DEFAULT_SAMPLES,
    seed: int = 0,
    precision: int = REFERENCE_PRECISION,
) -> float:
    """Mean bits of error of double-precision evaluation of *expr*.

    Returns NaN when no sampled point has a finite real result.
    """
    names = free_variables(expr)
    if names:
        points = _sample_points(len(names), samples, seed)
    else:
        points = np.zeros((1, 0), dtype=np.float64)

    with np.errstate(all="ignore"):
        env = {name: points[:, i] for i, name in enumerate(names)}
        approx = np.broadcast_to(_eval_double(expr, env), (points.shape[0],))

    errors: list[float] = []
    with mpmath.workprec(precision):
        for i, point in enumerate(points):
            if not np.isfinite(approx[i]):
                continue
            exact = _reference(expr, names, point)
            if exact is None:
                continue
            errors.append(float(np.log2(1.0 + ulps_between(approx[i], exact)[0])))
    if not errors:
        return math.nan
    return float(np.mean(errors))


@dataclass(frozen=True, slots=True)
class ErrorComparison:
    errin: float
    errout: float
    equivalent: bool


def compare(
    result: StabilizerResult[MathExpr],
    *,
    samples: int = DEFAULT_SAMPLES,
    seed: int = 0,
) -> ErrorComparison:
    """Locally re-score both sides of a stabilized result."""
    return ErrorComparison(
        errin=estimate_error_bits(result.cmdin, samples=samples, seed=seed),
        errout=estimate_error_bits(result.cmdout, samples=samples, seed=seed),
        equivalent=result.cmdin == result.cmdout or equivalent(result.cmdin, result.cmdout),
    )
