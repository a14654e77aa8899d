from __future__ import annotations

import logging
import math
import sqlite3
from pathlib import Path

import pytest

from stabilizer.cache import CacheStats, MemoryResultStore, SQLiteResultStore
from stabilizer.types import DbgInfo, StabilizerResult

TEXT = "(- (sqrt (+ v0 1)) (sqrt v0))"
RESULT = StabilizerResult(
    cmdin=TEXT,
    cmdout="(/ 1 (+ (sqrt (+ v0 1)) (sqrt v0)))",
    errin=5.3,
    errout=0.1,
)


@pytest.fixture(params=["sqlite", "memory"])
def store(request: pytest.FixtureRequest, tmp_path: Path):
    if request.param == "sqlite":
        return SQLiteResultStore(tmp_path / "cache" / "stabilizer.db")
    return MemoryResultStore()


def test_lookup_on_empty_store(store) -> None:
    assert store.lookup(TEXT) is None


def test_lookup_creates_missing_cache_directory(tmp_path: Path) -> None:
    db = tmp_path / "nested" / "dir" / "stabilizer.db"
    assert SQLiteResultStore(db).lookup(TEXT) is None
    assert db.exists()


def test_insert_then_lookup(store) -> None:
    store.insert(RESULT)
    assert store.lookup(TEXT) == RESULT


def test_insert_twice_keeps_one_row(store) -> None:
    store.insert(RESULT)
    store.insert(RESULT)
    assert store.results() == [RESULT]


def test_conflicting_insert_keeps_existing_row(store, caplog: pytest.LogCaptureFixture) -> None:
    store.insert(RESULT)
    other = StabilizerResult(cmdin=TEXT, cmdout="v0", errin=1.0, errout=9.0)
    with caplog.at_level(logging.WARNING, logger="stabilizer.cache"):
        store.insert(other)
    assert store.lookup(TEXT) == RESULT
    assert "already cached" in caplog.text


def test_fallback_results_are_not_cached(store) -> None:
    store.insert(StabilizerResult.fallback(TEXT))
    assert store.lookup(TEXT) is None
    assert store.results() == []


@pytest.mark.parametrize("errin, errout", [(3.0, math.nan), (math.nan, 0.5)])
def test_single_nan_error_is_not_cached(store, caplog: pytest.LogCaptureFixture, errin: float, errout: float) -> None:
    partial = StabilizerResult(cmdin="(+ v0 1)", cmdout="(+ 1 v0)", errin=errin, errout=errout)
    with caplog.at_level(logging.DEBUG, logger="stabilizer.cache"):
        store.insert(partial)
    assert store.lookup("(+ v0 1)") is None
    assert store.results() == []
    assert "already cached" not in caplog.text
    assert "unknown error" in caplog.text


def test_debug_info_accumulates_per_call(store) -> None:
    store.insert(RESULT)
    first = DbgInfo(comments="first", module_name="Physics", function_name="drag", function_type="Double -> Double")
    second = DbgInfo(module_name="Physics", function_name="lift")
    store.record_debug_info(first, TEXT)
    store.record_debug_info(second, TEXT)
    assert store.debug_info(TEXT) == [first, second]


def test_debug_info_without_result_is_skipped(store, caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="stabilizer.cache"):
        store.record_debug_info(DbgInfo(module_name="M"), TEXT)
    assert store.debug_info(TEXT) == []
    assert "debug info not recorded" in caplog.text


def test_stats_counts_rows(store) -> None:
    store.insert(RESULT)
    store.insert(StabilizerResult(cmdin="(+ v0 1)", cmdout="(+ v0 1)", errin=0.0, errout=0.0))
    store.record_debug_info(DbgInfo(), TEXT)
    assert store.stats() == CacheStats(results=2, debug_rows=1, improved=1)


def test_rows_persist_across_store_instances(tmp_path: Path) -> None:
    db = tmp_path / "stabilizer.db"
    SQLiteResultStore(db).insert(RESULT)
    SQLiteResultStore(db).record_debug_info(DbgInfo(function_name="f"), TEXT)

    reopened = SQLiteResultStore(db)
    assert reopened.lookup(TEXT) == RESULT
    assert [d.function_name for d in reopened.debug_info(TEXT)] == ["f"]


def test_schema_matches_documented_columns(tmp_path: Path) -> None:
    db = tmp_path / "stabilizer.db"
    SQLiteResultStore(db).lookup(TEXT)
    conn = sqlite3.connect(db)
    try:
        results_cols = [row[1] for row in conn.execute("PRAGMA table_info(StabilizerResults)")]
        dbg_cols = [row[1] for row in conn.execute("PRAGMA table_info(DbgInfo)")]
        indexes = [row[1] for row in conn.execute("PRAGMA index_list(StabilizerResults)")]
    finally:
        conn.close()
    assert results_cols == ["id", "cmdin", "cmdout", "errin", "errout"]
    assert dbg_cols == ["id", "resid", "dbgComments", "modName", "functionName", "functionType"]
    assert "StabilizerResultsIndex" in indexes


def test_unavailable_store_degrades_to_misses(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("occupied")
    store = SQLiteResultStore(blocker / "stabilizer.db")

    with caplog.at_level(logging.WARNING, logger="stabilizer.cache"):
        assert store.lookup(TEXT) is None
        store.insert(RESULT)
        store.record_debug_info(DbgInfo(), TEXT)
        assert store.results() == []
        assert store.stats() == CacheStats(0, 0, 0)
    assert "store-unavailable" in caplog.text


def test_schema_violation_is_not_reported_as_duplicate(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    store = SQLiteResultStore(tmp_path / "stabilizer.db")
    store.lookup(TEXT)
    conn = sqlite3.connect(store.path)
    try:
        with conn:
            conn.execute(
                "CREATE TRIGGER reject_all BEFORE INSERT ON StabilizerResults "
                "BEGIN SELECT RAISE(ABORT, 'insert refused'); END"
            )
    finally:
        conn.close()

    with caplog.at_level(logging.WARNING, logger="stabilizer.cache"):
        store.insert(RESULT)
    assert store.lookup(TEXT) is None
    assert "already cached" not in caplog.text
    assert "rejected by the cache schema" in caplog.text


def test_infinite_error_is_stored_as_is(tmp_path: Path) -> None:
    store = SQLiteResultStore(tmp_path / "stabilizer.db")
    partial = StabilizerResult(cmdin=TEXT, cmdout=TEXT, errin=2.0, errout=math.inf)
    store.insert(partial)
    assert store.lookup(TEXT) == partial
