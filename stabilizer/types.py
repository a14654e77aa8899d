"""Immutable records shared by every stage of the stabilizer pipeline."""
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

__all__ = [
    "StabilizerResult",
    "DbgInfo",
    "FailureKind",
    "Failure",
    "ParseError",
]

T = TypeVar("T")


class ParseError(ValueError):
    """Raised when canonical text or solver output cannot be reconstructed."""


class FailureKind(Enum):
    PARSE = "parse"
    SOLVER_PROTOCOL = "solver-protocol"
    STORE_UNAVAILABLE = "store-unavailable"


@dataclass(frozen=True, slots=True)
class Failure:
    """A recovered failure, returned instead of raised at component seams."""

    kind: FailureKind
    message: str
    detail: str = ""

    def __str__(self) -> str:
        if self.detail:
            return f"{self.kind.value}: {self.message} ({self.detail})"
        return f"{self.kind.value}: {self.message}"


@dataclass(frozen=True, slots=True)
class StabilizerResult(Generic[T]):
    """Solver verdict for one expression.

    ``errin`` and ``errout`` are bits of accuracy lost before and after the
    rewrite. ``errout > errin`` can happen and ``NaN`` marks an unknown error.
    """

    cmdin: T
    cmdout: T
    errin: float
    errout: float

    @classmethod
    def fallback(cls, cmd: T) -> "StabilizerResult[T]":
        """No change, unknown error."""
        return cls(cmdin=cmd, cmdout=cmd, errin=math.nan, errout=math.nan)

    @property
    def is_fallback(self) -> bool:
        return math.isnan(self.errin) and math.isnan(self.errout)

    @property
    def has_unknown_error(self) -> bool:
        """True when either error field is NaN; such results are never cached."""
        return math.isnan(self.errin) or math.isnan(self.errout)

    @property
    def improved(self) -> bool:
        # NaN comparisons are False, so unknown errors never count as improved
        return self.errout < self.errin


@dataclass(frozen=True, slots=True)
class DbgInfo:
    """Where in the host program an expression came from."""

    comments: str = ""
    module_name: str = ""
    function_name: str = ""
    function_type: str = ""
