"""Command‑line interface around :class:`stabilizer.orchestrator.Stabilizer`."""
from __future__ import annotations

import argparse
import json
import logging
import math
import sys
from typing import Any

from .accuracy import DEFAULT_SAMPLES, compare, estimate_error_bits
from .cache import SQLiteResultStore
from .canonical import to_canonical
from .config import StabilizerConfig
from .expr import MathExpr, parse_infix, to_infix
from .orchestrator import Stabilizer
from .types import DbgInfo, ParseError, StabilizerResult

__all__ = ["main"]


def _num(value: float) -> float | None:
    # JSON has no NaN
    return None if math.isnan(value) else value


def _result_json(res: StabilizerResult[Any], render: Any = str) -> dict[str, Any]:  # noqa: ANN401
    return {
        "cmdin": render(res.cmdin),
        "cmdout": render(res.cmdout),
        "errin": _num(res.errin),
        "errout": _num(res.errout),
    }


def _emit(obj: Any) -> None:  # noqa: ANN401 – any JSON value
    print(json.dumps(obj, ensure_ascii=False, separators=(",", ":")))


def _parse_expr(text: str) -> MathExpr:
    try:
        return parse_infix(text)
    except ParseError as exc:
        sys.exit(f"Error: {exc}")


def _parse_cli(argv: list[str] | None = None) -> argparse.Namespace:  # noqa: D401 – imperative mood
    parser = argparse.ArgumentParser(description="Rewrite floating-point expressions for accuracy")
    parser.add_argument("--cache-dir", help="Directory holding the result cache (default ~/.stabilizer)")
    parser.add_argument("--solver", help="Solver executable (default herbie-exec)")
    parser.add_argument("--timeout", type=float, help="Seconds before the solver is abandoned")
    parser.add_argument(
        "--log-level",
        choices=["WARNING", "INFO", "DEBUG"],
        default="WARNING",
        help="Logging level for stabilizer",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("stabilize", help="Stabilize an expression (uses and fills the cache)")
    p.add_argument("expr", help="Infix expression, e.g. 'sqrt(x + 1) - sqrt(x)'")
    p.add_argument("--module", default="", help="Module the expression came from")
    p.add_argument("--function", default="", help="Function the expression came from")
    p.add_argument("--type", dest="function_type", default="", help="Type of that function")
    p.add_argument("--comment", default="", help="Free-form provenance note")
    p.add_argument("--check", action="store_true", help="Re-score input and output locally")
    p.add_argument("--samples", type=int, default=DEFAULT_SAMPLES, help="Points for --check")

    p = sub.add_parser("canonical", help="Print the canonical form and variable map")
    p.add_argument("expr")

    p = sub.add_parser("lookup", help="Show the cached verdict without running the solver")
    p.add_argument("expr")

    p = sub.add_parser("history", help="List recorded call sites for an expression")
    p.add_argument("expr")

    sub.add_parser("stats", help="Summarize the cache")

    p = sub.add_parser("error", help="Estimate the error of an expression locally")
    p.add_argument("expr")
    p.add_argument("--samples", type=int, default=DEFAULT_SAMPLES)
    p.add_argument("--seed", type=int, default=0)
    return parser.parse_args(argv)


def _configure_logging(level_name: str) -> None:
    logging.basicConfig(level=logging.WARNING)
    level = getattr(logging, level_name)
    pkg_logger = logging.getLogger("stabilizer")
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(logging.BASIC_FORMAT))
    handler.setLevel(level)
    pkg_logger.addHandler(handler)
    pkg_logger.propagate = False
    pkg_logger.setLevel(level)


def main(argv: list[str] | None = None) -> int:  # noqa: D401 – imperative mood
    ns = _parse_cli(argv)
    _configure_logging(ns.log_level)

    try:
        config = StabilizerConfig.from_env().with_overrides(
            cache_dir=ns.cache_dir, solver_command=ns.solver, timeout=ns.timeout
        )
    except ValueError as exc:
        sys.exit(f"Error: {exc}")
    verbose = ns.log_level in {"INFO", "DEBUG"}

    if ns.command == "error":
        expr = _parse_expr(ns.expr)
        bits = estimate_error_bits(expr, samples=ns.samples, seed=ns.seed)
        _emit({"expr": to_infix(expr), "error_bits": _num(bits)})
        return 0

    if ns.command == "canonical":
        text, varmap = to_canonical(_parse_expr(ns.expr))
        _emit({"text": text, "varmap": dict(varmap)})
        return 0

    if ns.command == "stats":
        stats = SQLiteResultStore(config.db_path, timeout=config.db_timeout).stats()
        _emit({
            "db": str(config.db_path),
            "results": stats.results,
            "debug_rows": stats.debug_rows,
            "improved": stats.improved,
        })
        return 0

    if ns.command in {"lookup", "history"}:
        store = SQLiteResultStore(config.db_path, timeout=config.db_timeout)
        text, _ = to_canonical(_parse_expr(ns.expr))
        if ns.command == "history":
            _emit([
                {
                    "comments": d.comments,
                    "module": d.module_name,
                    "function": d.function_name,
                    "type": d.function_type,
                }
                for d in store.debug_info(text)
            ])
            return 0
        cached = store.lookup(text)
        if cached is None:
            print(f"not cached: {text}", file=sys.stderr)
            return 1
        _emit(_result_json(cached))
        return 0

    expr = _parse_expr(ns.expr)
    dbg = DbgInfo(
        comments=ns.comment,
        module_name=ns.module,
        function_name=ns.function,
        function_type=ns.function_type,
    )
    res = Stabilizer.from_config(config, verbose=verbose).stabilize(expr, dbg)
    out = _result_json(res, to_infix)
    if ns.check:
        cmp = compare(res, samples=ns.samples)
        out["check"] = {
            "errin": _num(cmp.errin),
            "errout": _num(cmp.errout),
            "equivalent": cmp.equivalent,
        }
    _emit(out)
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
