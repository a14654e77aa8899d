"""Canonicalize → cache lookup → solver on miss → record provenance → translate back."""
from __future__ import annotations

import logging
from typing import Sequence

from .cache import ResultStore, SQLiteResultStore
from .canonical import from_canonical, to_canonical
from .config import StabilizerConfig
from .expr import MathExpr
from .invoker import SolverInvoker
from .types import DbgInfo, ParseError, StabilizerResult

__all__ = ["Stabilizer"]


class Stabilizer:
    """Memoizing front end to the stability solver.

    Both collaborators are injected so tests can swap in a
    :class:`~stabilizer.cache.MemoryResultStore` or a stub invoker.
    """

    def __init__(
        self,
        store: ResultStore,
        invoker: SolverInvoker,
        *,
        verbose: bool = False,
    ) -> None:
        self.store = store
        self.invoker = invoker
        self.verbose = verbose
        self.logger = logging.getLogger(__name__)
        self.logger.setLevel(logging.INFO if verbose else logging.WARNING)

    @classmethod
    def from_config(cls, config: StabilizerConfig, *, verbose: bool = False) -> "Stabilizer":
        store = SQLiteResultStore(config.db_path, timeout=config.db_timeout)
        return cls(store, SolverInvoker.from_config(config), verbose=verbose)

    def stabilize_text(
        self,
        text: str,
        dbg_info: DbgInfo,
        variables: Sequence[str] | None = None,
    ) -> StabilizerResult[str]:
        """Return the verdict for canonical *text*, running the solver only on a miss.

        Provenance is recorded on every call, hit or miss.
        """
        result = self.store.lookup(text)
        if result is not None:
            self.logger.info("[stabilizer] cache hit: %s", text)
        else:
            self.logger.info("[stabilizer] cache miss, running solver: %s", text)
            result = self.invoker.invoke(text, variables)
            self.store.insert(result)
        self.store.record_debug_info(dbg_info, text)
        return result

    def stabilize(self, expr: MathExpr, dbg_info: DbgInfo) -> StabilizerResult[MathExpr]:
        """Return a numerically stabler equivalent of *expr*.

        Never raises. When the solver's answer cannot be translated back the
        expression is passed through unchanged with unknown (NaN) errors.
        """
        try:
            text, varmap = to_canonical(expr)
            res = self.stabilize_text(text, dbg_info, varmap.placeholders)
            cmdout = from_canonical(res.cmdout, varmap)
        except ParseError as exc:
            self.logger.warning("[stabilizer] could not translate solver output back: %s", exc)
            return StabilizerResult.fallback(expr)
        except Exception as exc:  # pragma: no cover - last line of defence for batch callers
            self.logger.warning("[stabilizer] unexpected failure, passing expression through: %s", exc)
            return StabilizerResult.fallback(expr)

        self.logger.info(
            "[stabilizer] %s -> %s (error %.3g -> %.3g bits)",
            text,
            res.cmdout,
            res.errin,
            res.errout,
        )
        return StabilizerResult(cmdin=expr, cmdout=cmdout, errin=res.errin, errout=res.errout)
