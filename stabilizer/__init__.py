"""Public package interface for the floating-point expression stabilizer.

Importing this package gives you the pipeline entry point and the record
types without having to know the internal module layout.

Typical usage
-------------
>>> from stabilizer import DbgInfo, Stabilizer, StabilizerConfig, parse_infix
>>> stab = Stabilizer.from_config(StabilizerConfig.from_env())
>>> res = stab.stabilize(parse_infix("sqrt(x + 1) - sqrt(x)"), DbgInfo(module_name="demo"))
"""
from importlib.metadata import version as _version

from .cache import MemoryResultStore, ResultStore, SQLiteResultStore
from .canonical import CanonicalForm, VarMap, from_canonical, to_canonical
from .config import StabilizerConfig
from .expr import Const, MathExpr, Num, Op, Var, parse_infix, to_infix
from .invoker import SolverInvoker
from .orchestrator import Stabilizer
from .types import DbgInfo, Failure, FailureKind, ParseError, StabilizerResult

__all__ = [
    "Stabilizer",
    "StabilizerConfig",
    "StabilizerResult",
    "DbgInfo",
    "Failure",
    "FailureKind",
    "ParseError",
    "MathExpr",
    "Var",
    "Num",
    "Const",
    "Op",
    "parse_infix",
    "to_infix",
    "CanonicalForm",
    "VarMap",
    "to_canonical",
    "from_canonical",
    "SolverInvoker",
    "ResultStore",
    "SQLiteResultStore",
    "MemoryResultStore",
    "__version__",
]

try:
    __version__ = _version("stabilizer")
except Exception:  # pragma: no cover – package not installed yet
    __version__ = "0.0.0"
