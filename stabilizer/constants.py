"""Package‑wide constants for the solver protocol and the on-disk cache."""

from pathlib import Path

SOLVER_COMMAND = "herbie-exec"

# Fixed seed so the solver's stochastic search is reproducible across runs.
SOLVER_SEED = "#(1461197085 2376054483 1553562171 1611329376 2497620867 2308122621)"

# Marker the solver echoes back in its test form.
REQUEST_NAME = "cmd"

DEFAULT_CACHE_DIR = Path.home() / ".stabilizer"
DB_FILENAME = "stabilizer.db"

ENV_CACHE_DIR = "STABILIZER_CACHE_DIR"
ENV_SOLVER = "STABILIZER_SOLVER"
ENV_TIMEOUT = "STABILIZER_TIMEOUT"

__all__ = [
    "SOLVER_COMMAND",
    "SOLVER_SEED",
    "REQUEST_NAME",
    "DEFAULT_CACHE_DIR",
    "DB_FILENAME",
    "ENV_CACHE_DIR",
    "ENV_SOLVER",
    "ENV_TIMEOUT",
]
