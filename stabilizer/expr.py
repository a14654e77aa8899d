"""Host-side expression trees.

A :data:`MathExpr` is one of four immutable node types:

``Var``
    a free variable, e.g. ``Var("x")``
``Num``
    a non-negative int or float literal (``-3`` is ``neg`` applied to ``3``)
``Const``
    one of the named constants ``pi`` and ``e``
``Op``
    an operator from :data:`OPERATORS` applied to a tuple of sub‑trees

The operator set is closed and every operator has a fixed arity, so a tree
that constructs successfully can always be canonicalized. Besides the node
types this module renders trees as Python-style infix text, parses such text
back (used by the CLI), and converts trees to SymPy for symbolic checks.
"""
from __future__ import annotations

import ast
import math
from dataclasses import dataclass
from typing import Any, Iterator, Union

from .types import ParseError

__all__ = [
    "Var",
    "Num",
    "Const",
    "Op",
    "MathExpr",
    "OPERATORS",
    "CONSTANTS",
    "free_variables",
    "to_infix",
    "parse_infix",
    "to_sympy",
    "equivalent",
]

# name -> arity
OPERATORS: dict[str, int] = {
    "+": 2,
    "-": 2,
    "*": 2,
    "/": 2,
    "**": 2,
    "atan2": 2,
    "hypot": 2,
    "neg": 1,
    "sqrt": 1,
    "cbrt": 1,
    "exp": 1,
    "expm1": 1,
    "log": 1,
    "log1p": 1,
    "sin": 1,
    "cos": 1,
    "tan": 1,
    "asin": 1,
    "acos": 1,
    "atan": 1,
    "sinh": 1,
    "cosh": 1,
    "tanh": 1,
    "asinh": 1,
    "acosh": 1,
    "atanh": 1,
    "abs": 1,
}

CONSTANTS = ("pi", "e")

_INFIX = {"+": 1, "-": 1, "*": 2, "/": 2, "**": 4}
_NEG_PREC = 3
_ATOM_PREC = 5


@dataclass(frozen=True, slots=True)
class Var:
    name: str

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("variable name must be non-empty")


@dataclass(frozen=True, slots=True)
class Num:
    value: int | float

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, (int, float)):
            raise ValueError(f"numeric literal must be int or float, got {self.value!r}")
        if isinstance(self.value, float) and not math.isfinite(self.value):
            raise ValueError(f"numeric literal must be finite, got {self.value!r}")
        # negative values are spelled Op("neg", (Num(...),)), as parse_infix reads them
        if self.value < 0 or (isinstance(self.value, float) and math.copysign(1.0, self.value) < 0):
            raise ValueError(f"numeric literal must be non-negative, got {self.value!r}")


@dataclass(frozen=True, slots=True)
class Const:
    name: str

    def __post_init__(self) -> None:
        if self.name not in CONSTANTS:
            raise ValueError(f"unknown constant {self.name!r}")


@dataclass(frozen=True, slots=True)
class Op:
    name: str
    args: tuple["MathExpr", ...]

    def __post_init__(self) -> None:
        arity = OPERATORS.get(self.name)
        if arity is None:
            raise ValueError(f"unknown operator {self.name!r}")
        if len(self.args) != arity:
            raise ValueError(
                f"operator {self.name!r} takes {arity} argument(s), got {len(self.args)}"
            )

    @classmethod
    def of(cls, name: str, *args: "MathExpr") -> "Op":
        return cls(name, tuple(args))


MathExpr = Union[Var, Num, Const, Op]


def walk(expr: MathExpr) -> Iterator[MathExpr]:
    """Yield every node, parents before children, left to right."""
    yield expr
    if isinstance(expr, Op):
        for arg in expr.args:
            yield from walk(arg)


def free_variables(expr: MathExpr) -> list[str]:
    """Variable names in first-occurrence order."""
    seen: dict[str, None] = {}
    for node in walk(expr):
        if isinstance(node, Var):
            seen.setdefault(node.name, None)
    return list(seen)


# ---------------------------------------------------------------------------
# Infix rendering
# ---------------------------------------------------------------------------


def format_number(value: int | float) -> str:
    if isinstance(value, int):
        return str(value)
    return repr(float(value))


def _prec(expr: MathExpr) -> int:
    if isinstance(expr, Op):
        if expr.name in _INFIX:
            return _INFIX[expr.name]
        if expr.name == "neg":
            return _NEG_PREC
    return _ATOM_PREC


def _wrap(expr: MathExpr, parens: bool) -> str:
    text = to_infix(expr)
    return f"({text})" if parens else text


def to_infix(expr: MathExpr) -> str:
    """Render *expr* as Python-style infix text.

    Parentheses are kept wherever dropping them would change the tree that
    :func:`parse_infix` reads back.
    """
    if isinstance(expr, Var):
        return expr.name
    if isinstance(expr, Const):
        return expr.name
    if isinstance(expr, Num):
        return format_number(expr.value)
    if expr.name in _INFIX:
        p = _INFIX[expr.name]
        left, right = expr.args
        if expr.name == "**":
            return f"{_wrap(left, _prec(left) <= p)} ** {_wrap(right, _prec(right) < p)}"
        return f"{_wrap(left, _prec(left) < p)} {expr.name} {_wrap(right, _prec(right) <= p)}"
    if expr.name == "neg":
        (arg,) = expr.args
        return f"-{_wrap(arg, _prec(arg) < _NEG_PREC)}"
    return f"{expr.name}({', '.join(to_infix(a) for a in expr.args)})"


# ---------------------------------------------------------------------------
# Infix parsing
# ---------------------------------------------------------------------------

_BINOPS: dict[type, str] = {
    ast.Add: "+",
    ast.Sub: "-",
    ast.Mult: "*",
    ast.Div: "/",
    ast.Pow: "**",
}

_FUNC_ALIASES = {
    "ln": "log",
    "fabs": "abs",
    "arcsin": "asin",
    "arccos": "acos",
    "arctan": "atan",
    "arctan2": "atan2",
    "arcsinh": "asinh",
    "arccosh": "acosh",
    "arctanh": "atanh",
    "pow": "**",
}

_MODULE_PREFIXES = {"math", "np", "numpy"}


def _func_name(node: ast.expr) -> str:
    if isinstance(node, ast.Name):
        name = node.id
    elif (
        isinstance(node, ast.Attribute)
        and isinstance(node.value, ast.Name)
        and node.value.id in _MODULE_PREFIXES
    ):
        name = node.attr
    else:
        raise ParseError(f"unsupported call target: {ast.dump(node)}")
    name = _FUNC_ALIASES.get(name, name)
    # infix operators and unary minus have their own syntax; only ``pow`` maps onto one
    if name not in OPERATORS or name == "neg" or (name in _INFIX and name != "**"):
        raise ParseError(f"unsupported function {name!r}")
    return name


def _from_ast(node: ast.expr) -> MathExpr:
    if isinstance(node, ast.BinOp) and type(node.op) in _BINOPS:
        return Op(_BINOPS[type(node.op)], (_from_ast(node.left), _from_ast(node.right)))
    if isinstance(node, ast.UnaryOp):
        if isinstance(node.op, ast.USub):
            return Op("neg", (_from_ast(node.operand),))
        if isinstance(node.op, ast.UAdd):
            return _from_ast(node.operand)
    if isinstance(node, ast.Constant):
        if isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
            try:
                return Num(node.value)
            except ValueError as exc:
                raise ParseError(str(exc)) from exc
        raise ParseError(f"unsupported literal {node.value!r}")
    if isinstance(node, ast.Name):
        if node.id in CONSTANTS:
            return Const(node.id)
        return Var(node.id)
    if isinstance(node, ast.Attribute) and isinstance(node.value, ast.Name):
        if node.value.id in _MODULE_PREFIXES and node.attr in CONSTANTS:
            return Const(node.attr)
    if isinstance(node, ast.Call) and not node.keywords:
        name = _func_name(node.func)
        args = tuple(_from_ast(a) for a in node.args)
        try:
            return Op(name, args)
        except ValueError as exc:
            raise ParseError(str(exc)) from exc
    raise ParseError(f"unsupported syntax: {ast.dump(node)}")


def parse_infix(text: str) -> MathExpr:
    """Parse Python-style infix text such as ``sqrt(x + 1) - sqrt(x)``.

    ``^`` is accepted as a synonym for ``**``. Operand order is preserved, so
    the result canonicalizes exactly as the text reads.
    """
    source = text.strip().replace("^", "**")
    if not source:
        raise ParseError("empty expression")
    try:
        tree = ast.parse(source, mode="eval")
    except SyntaxError as exc:
        raise ParseError(f"could not parse {text!r}: {exc.msg}") from exc
    return _from_ast(tree.body)


# ---------------------------------------------------------------------------
# SymPy bridge
# ---------------------------------------------------------------------------


def to_sympy(expr: MathExpr) -> Any:  # noqa: ANN401 – sympy.Expr
    """Return the SymPy expression for *expr* (evaluated normally by SymPy)."""
    import sympy as sp

    if isinstance(expr, Var):
        return sp.Symbol(expr.name, real=True)
    if isinstance(expr, Num):
        if isinstance(expr.value, int):
            return sp.Integer(expr.value)
        return sp.Float(expr.value)
    if isinstance(expr, Const):
        return sp.pi if expr.name == "pi" else sp.E

    args = [to_sympy(a) for a in expr.args]
    name = expr.name
    if name == "+":
        return args[0] + args[1]
    if name == "-":
        return args[0] - args[1]
    if name == "*":
        return args[0] * args[1]
    if name == "/":
        return args[0] / args[1]
    if name == "**":
        return args[0] ** args[1]
    if name == "neg":
        return -args[0]
    if name == "cbrt":
        return sp.real_root(args[0], 3)
    if name == "expm1":
        return sp.exp(args[0]) - 1
    if name == "log1p":
        return sp.log(1 + args[0])
    if name == "hypot":
        return sp.sqrt(args[0] ** 2 + args[1] ** 2)
    if name == "abs":
        return sp.Abs(args[0])
    func = getattr(sp, name)
    return func(*args)


def equivalent(a: MathExpr, b: MathExpr) -> bool:
    """Best-effort symbolic check that *a* and *b* denote the same function.

    Returns False when SymPy cannot prove the difference is zero.
    """
    import sympy as sp

    try:
        diff = sp.simplify(to_sympy(a) - to_sympy(b))
    except Exception:  # SymPy raises a wide range of errors on odd input
        return False
    return bool(diff == 0)
