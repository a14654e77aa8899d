"""Canonical form translation between host trees and solver text.

The canonical form of an expression is its prefix rendering in the solver's
operator spelling with every variable replaced by a positional placeholder
(``v0``, ``v1``, ...) assigned in first-occurrence order. Two expressions with
the same shape produce byte-identical text, which is what makes the text usable
as a cache key:

>>> from stabilizer.expr import parse_infix
>>> text, varmap = to_canonical(parse_infix("sqrt(a + 1) - sqrt(a)"))
>>> text
'(- (sqrt (+ v0 1)) (sqrt v0))'
>>> dict(varmap)
{'v0': 'a'}
"""
from __future__ import annotations

import math
import re
from fractions import Fraction
from typing import Iterable, Iterator, Mapping, NamedTuple

from . import sexpr
from .expr import OPERATORS, Const, MathExpr, Num, Op, Var, format_number, free_variables
from .types import ParseError

__all__ = [
    "VarMap",
    "CanonicalForm",
    "PLACEHOLDER_PREFIX",
    "HOST_TO_SOLVER",
    "to_canonical",
    "from_canonical",
    "canonical_variables",
]

PLACEHOLDER_PREFIX = "v"
_PLACEHOLDER_RE = re.compile(rf"^{PLACEHOLDER_PREFIX}\d+$")
_NUMBER_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")
_RATIONAL_RE = re.compile(r"^[+-]?\d+/\d+$")

# Host operator names that the solver spells differently; the rest match.
HOST_TO_SOLVER: dict[str, str] = {"**": "pow", "neg": "-", "abs": "fabs"}
_CONST_TO_SOLVER: dict[str, str] = {"pi": "PI", "e": "E"}
_SOLVER_TO_CONST = {v: k for k, v in _CONST_TO_SOLVER.items()}

_SOLVER_TO_HOST: dict[str, str] = {
    HOST_TO_SOLVER.get(name, name): name for name in OPERATORS if name != "neg"
}
_SOLVER_TO_HOST["expt"] = "**"


class VarMap(Mapping[str, str]):
    """Ordered, invertible placeholder -> original variable name mapping."""

    __slots__ = ("_forward", "_inverse")

    def __init__(self, pairs: Iterable[tuple[str, str]] = ()) -> None:
        self._forward: dict[str, str] = {}
        self._inverse: dict[str, str] = {}
        for placeholder, name in pairs:
            if placeholder in self._forward or name in self._inverse:
                raise ValueError(f"duplicate mapping {placeholder!r} -> {name!r}")
            self._forward[placeholder] = name
            self._inverse[name] = placeholder

    @classmethod
    def from_names(cls, names: Iterable[str]) -> "VarMap":
        return cls((f"{PLACEHOLDER_PREFIX}{i}", name) for i, name in enumerate(names))

    def __getitem__(self, placeholder: str) -> str:
        return self._forward[placeholder]

    def __iter__(self) -> Iterator[str]:
        return iter(self._forward)

    def __len__(self) -> int:
        return len(self._forward)

    def __repr__(self) -> str:
        return f"VarMap({self._forward!r})"

    @property
    def placeholders(self) -> list[str]:
        return list(self._forward)

    def placeholder_for(self, name: str) -> str:
        return self._inverse[name]


class CanonicalForm(NamedTuple):
    text: str
    varmap: VarMap


# ---------------------------------------------------------------------------
# Host -> solver
# ---------------------------------------------------------------------------


def _to_sexpr(expr: MathExpr, varmap: VarMap) -> sexpr.SExpr:
    if isinstance(expr, Var):
        return varmap.placeholder_for(expr.name)
    if isinstance(expr, Num):
        return format_number(expr.value)
    if isinstance(expr, Const):
        return _CONST_TO_SOLVER[expr.name]
    head = HOST_TO_SOLVER.get(expr.name, expr.name)
    return (head, *(_to_sexpr(a, varmap) for a in expr.args))


def to_canonical(expr: MathExpr) -> CanonicalForm:
    """Return the canonical text of *expr* and the placeholder mapping used."""
    varmap = VarMap.from_names(free_variables(expr))
    return CanonicalForm(sexpr.dump(_to_sexpr(expr, varmap)), varmap)


# ---------------------------------------------------------------------------
# Solver -> host
# ---------------------------------------------------------------------------


def _atom_to_expr(token: str, varmap: Mapping[str, str]) -> MathExpr:
    if token in varmap:
        return Var(varmap[token])
    if token in _SOLVER_TO_CONST:
        return Const(_SOLVER_TO_CONST[token])
    if _NUMBER_RE.match(token):
        value: int | float = int(token) if re.match(r"^[+-]?\d+$", token) else float(token)
    elif _RATIONAL_RE.match(token):
        frac = Fraction(token)
        try:
            value = int(frac) if frac.denominator == 1 else float(frac)
        except OverflowError as exc:
            raise ParseError(f"bad literal {token!r}: {exc}") from exc
    else:
        raise ParseError(f"unrecognized token {token!r}")

    negative = value < 0 or (isinstance(value, float) and math.copysign(1.0, value) < 0)
    try:
        num = Num(-value if negative else value)
    except ValueError as exc:
        raise ParseError(f"bad literal {token!r}: {exc}") from exc
    # the solver writes -3 as a literal; the host tree spells it neg(3)
    return Op("neg", (num,)) if negative else num


def _list_to_expr(items: tuple[sexpr.SExpr, ...], varmap: Mapping[str, str]) -> MathExpr:
    if not items:
        raise ParseError("empty application '()'")
    head, rest = items[0], items[1:]
    if not isinstance(head, str):
        raise ParseError(f"operator position holds a list: {sexpr.dump(head)}")
    args = tuple(_sexpr_to_expr(a, varmap) for a in rest)

    if head == "-" and len(args) == 1:
        return Op("neg", args)
    if head == "sqr" and len(args) == 1:
        return Op("**", (args[0], Num(2)))
    if head == "cube" and len(args) == 1:
        return Op("**", (args[0], Num(3)))
    name = _SOLVER_TO_HOST.get(head)
    if name is None:
        raise ParseError(f"unrecognized operator {head!r}")
    try:
        return Op(name, args)
    except ValueError as exc:
        raise ParseError(str(exc)) from exc


def _sexpr_to_expr(datum: sexpr.SExpr, varmap: Mapping[str, str]) -> MathExpr:
    if isinstance(datum, str):
        return _atom_to_expr(datum, varmap)
    return _list_to_expr(datum, varmap)


def from_canonical(text: str, varmap: Mapping[str, str]) -> MathExpr:
    """Parse canonical (or solver-emitted) prefix text back into a host tree.

    Placeholders are replaced through *varmap* and solver spellings are mapped
    to host operators (``pow``/``expt`` -> ``**``, ``sqr x`` -> ``x ** 2``,
    ``fabs`` -> ``abs``, ``PI`` -> ``pi``, ``-3`` -> ``neg(3)``). Raises
    :class:`ParseError` on unbalanced parentheses, unknown tokens, wrong
    arity, or placeholders missing from *varmap*.
    """
    return _sexpr_to_expr(sexpr.read(text), varmap)


def canonical_variables(text: str) -> list[str]:
    """Placeholders appearing in canonical *text*, in first-occurrence order."""
    seen: dict[str, None] = {}

    def _visit(datum: sexpr.SExpr) -> None:
        if isinstance(datum, str):
            if _PLACEHOLDER_RE.match(datum):
                seen.setdefault(datum, None)
            return
        for item in datum:
            _visit(item)

    _visit(sexpr.read(text))
    return list(seen)

