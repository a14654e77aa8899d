"""Durable memo of solver verdicts keyed by canonical text.

Two tables live in one SQLite file::

    StabilizerResults(id, cmdin UNIQUE, cmdout, errin, errout)
    DbgInfo(id, resid -> StabilizerResults.id, dbgComments, modName,
            functionName, functionType)

Every operation opens its own connection, creates the schema if needed and
closes the connection before returning. Store errors never reach the caller:
lookups report "not found" and writes become logged no-ops.
"""
from __future__ import annotations

import abc
import logging
import sqlite3
from contextlib import closing
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator

from .types import DbgInfo, Failure, FailureKind, StabilizerResult

__all__ = [
    "CacheStats",
    "ResultStore",
    "SQLiteResultStore",
    "MemoryResultStore",
    "SCHEMA",
]

logger = logging.getLogger(__name__)

SCHEMA = (
    "CREATE TABLE IF NOT EXISTS StabilizerResults "
    "( id INTEGER PRIMARY KEY"
    ", cmdin  TEXT UNIQUE NOT NULL"
    ", cmdout TEXT        NOT NULL"
    ", errin  DOUBLE      NOT NULL"
    ", errout DOUBLE      NOT NULL"
    ")",
    "CREATE INDEX IF NOT EXISTS StabilizerResultsIndex ON StabilizerResults(cmdin)",
    "CREATE TABLE IF NOT EXISTS DbgInfo "
    "( id INTEGER PRIMARY KEY"
    ", resid INTEGER NOT NULL"
    ", dbgComments TEXT"
    ", modName TEXT"
    ", functionName TEXT"
    ", functionType TEXT"
    ")",
)


@dataclass(frozen=True, slots=True)
class CacheStats:
    results: int
    debug_rows: int
    improved: int


class ResultStore(abc.ABC):
    """What the orchestrator needs from a cache."""

    @abc.abstractmethod
    def lookup(self, cmdin: str) -> StabilizerResult[str] | None:
        """Return the cached verdict for *cmdin*, or None."""

    @abc.abstractmethod
    def insert(self, result: StabilizerResult[str]) -> None:
        """Store *result*; an existing row for the same ``cmdin`` wins.

        Results with a NaN error field are skipped so a later run retries them.
        """

    @abc.abstractmethod
    def record_debug_info(self, dbg_info: DbgInfo, cmdin: str) -> None:
        """Append provenance for the row keyed by *cmdin* (best effort)."""

    @abc.abstractmethod
    def results(self) -> list[StabilizerResult[str]]:
        ...

    @abc.abstractmethod
    def debug_info(self, cmdin: str) -> list[DbgInfo]:
        ...

    def stats(self) -> CacheStats:
        rows = self.results()
        debug = sum(len(self.debug_info(r.cmdin)) for r in rows)
        return CacheStats(
            results=len(rows),
            debug_rows=debug,
            improved=sum(1 for r in rows if r.improved),
        )


# ---------------------------------------------------------------------------
# SQLite
# ---------------------------------------------------------------------------


class SQLiteResultStore(ResultStore):
    def __init__(self, path: str | Path, *, timeout: float = 30.0) -> None:
        self.path = Path(path)
        self.timeout = timeout
        self.logger = logger

    def _connect(self) -> sqlite3.Connection:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.path), timeout=self.timeout)
        try:
            with conn:
                for stmt in SCHEMA:
                    conn.execute(stmt)
        except sqlite3.Error:
            conn.close()
            raise
        return conn

    def _unavailable(self, op: str, exc: Exception) -> None:
        failure = Failure(FailureKind.STORE_UNAVAILABLE, f"{op} failed on {self.path}", str(exc))
        self.logger.warning("%s", failure)

    def _query(self, sql: str, params: tuple[Any, ...] = ()) -> Iterator[tuple[Any, ...]] | None:
        try:
            with closing(self._connect()) as conn:
                return iter(conn.execute(sql, params).fetchall())
        except (OSError, sqlite3.Error) as exc:
            self._unavailable("query", exc)
            return None

    def lookup(self, cmdin: str) -> StabilizerResult[str] | None:
        rows = self._query(
            "SELECT cmdin, cmdout, errin, errout FROM StabilizerResults WHERE cmdin = ?",
            (cmdin,),
        )
        if rows is None:
            return None
        row = next(rows, None)
        if row is None:
            return None
        return StabilizerResult(cmdin=row[0], cmdout=row[1], errin=row[2], errout=row[3])

    def insert(self, result: StabilizerResult[str]) -> None:
        if result.has_unknown_error:
            self.logger.debug("not caching result with unknown error for %s", result.cmdin)
            return
        try:
            with closing(self._connect()) as conn, conn:
                conn.execute(
                    "INSERT INTO StabilizerResults (cmdin, cmdout, errin, errout) VALUES (?, ?, ?, ?)",
                    (result.cmdin, result.cmdout, result.errin, result.errout),
                )
        except sqlite3.IntegrityError as exc:
            if "UNIQUE" in str(exc):
                self.logger.warning("result for %s already cached, keeping existing row", result.cmdin)
            else:
                self.logger.warning("result for %s rejected by the cache schema: %s", result.cmdin, exc)
        except (OSError, sqlite3.Error) as exc:
            self._unavailable("insert", exc)

    def record_debug_info(self, dbg_info: DbgInfo, cmdin: str) -> None:
        try:
            with closing(self._connect()) as conn, conn:
                row = conn.execute(
                    "SELECT id FROM StabilizerResults WHERE cmdin = ?", (cmdin,)
                ).fetchone()
                if row is None:
                    self.logger.warning("no cached result for %s; debug info not recorded", cmdin)
                    return
                conn.execute(
                    "INSERT INTO DbgInfo (resid, dbgComments, modName, functionName, functionType) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (
                        row[0],
                        dbg_info.comments,
                        dbg_info.module_name,
                        dbg_info.function_name,
                        dbg_info.function_type,
                    ),
                )
        except (OSError, sqlite3.Error) as exc:
            self._unavailable("record_debug_info", exc)

    def results(self) -> list[StabilizerResult[str]]:
        rows = self._query("SELECT cmdin, cmdout, errin, errout FROM StabilizerResults ORDER BY id")
        return [StabilizerResult(*row) for row in rows or ()]

    def debug_info(self, cmdin: str) -> list[DbgInfo]:
        rows = self._query(
            "SELECT d.dbgComments, d.modName, d.functionName, d.functionType "
            "FROM DbgInfo d JOIN StabilizerResults r ON d.resid = r.id "
            "WHERE r.cmdin = ? ORDER BY d.id",
            (cmdin,),
        )
        return [DbgInfo(*(value or "" for value in row)) for row in rows or ()]

    def stats(self) -> CacheStats:
        rows = self._query(
            "SELECT (SELECT COUNT(*) FROM StabilizerResults), "
            "(SELECT COUNT(*) FROM DbgInfo), "
            "(SELECT COUNT(*) FROM StabilizerResults WHERE errout < errin)"
        )
        row = next(rows, None) if rows is not None else None
        if row is None:
            return CacheStats(0, 0, 0)
        return CacheStats(results=row[0], debug_rows=row[1], improved=row[2])


# ---------------------------------------------------------------------------
# In-memory double
# ---------------------------------------------------------------------------


class MemoryResultStore(ResultStore):
    """Process-local store with the same semantics as the SQLite one."""

    def __init__(self) -> None:
        self._results: dict[str, StabilizerResult[str]] = {}
        self._debug: list[tuple[str, DbgInfo]] = []

    def lookup(self, cmdin: str) -> StabilizerResult[str] | None:
        return self._results.get(cmdin)

    def insert(self, result: StabilizerResult[str]) -> None:
        if result.has_unknown_error:
            logger.debug("not caching result with unknown error for %s", result.cmdin)
            return
        if result.cmdin in self._results:
            logger.warning("result for %s already cached, keeping existing row", result.cmdin)
            return
        self._results[result.cmdin] = result

    def record_debug_info(self, dbg_info: DbgInfo, cmdin: str) -> None:
        if cmdin not in self._results:
            logger.warning("no cached result for %s; debug info not recorded", cmdin)
            return
        self._debug.append((cmdin, dbg_info))

    def results(self) -> list[StabilizerResult[str]]:
        return list(self._results.values())

    def debug_info(self, cmdin: str) -> list[DbgInfo]:
        return [info for key, info in self._debug if key == cmdin]
