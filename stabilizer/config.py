from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping

from . import constants as C


@dataclass(frozen=True)
class StabilizerConfig:
    """Explicit settings for the cache location and the solver subprocess."""

    cache_dir: Path = field(default_factory=lambda: C.DEFAULT_CACHE_DIR)
    solver_command: str = C.SOLVER_COMMAND
    seed: str = C.SOLVER_SEED
    # seconds; None lets the solver run to completion
    timeout: float | None = None
    # seconds SQLite waits on a locked database file
    db_timeout: float = 30.0

    @property
    def db_path(self) -> Path:
        return Path(self.cache_dir) / C.DB_FILENAME

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "StabilizerConfig":
        env = os.environ if environ is None else environ
        cfg = cls()
        if env.get(C.ENV_CACHE_DIR):
            cfg = replace(cfg, cache_dir=Path(env[C.ENV_CACHE_DIR]).expanduser())
        if env.get(C.ENV_SOLVER):
            cfg = replace(cfg, solver_command=env[C.ENV_SOLVER])
        if env.get(C.ENV_TIMEOUT):
            try:
                cfg = replace(cfg, timeout=float(env[C.ENV_TIMEOUT]))
            except ValueError as exc:
                raise ValueError(
                    f"{C.ENV_TIMEOUT} must be a number of seconds, got {env[C.ENV_TIMEOUT]!r}"
                ) from exc
        return cfg

    def with_overrides(
        self,
        *,
        cache_dir: str | Path | None = None,
        solver_command: str | None = None,
        timeout: float | None = None,
    ) -> "StabilizerConfig":
        cfg = self
        if cache_dir is not None:
            cfg = replace(cfg, cache_dir=Path(cache_dir).expanduser())
        if solver_command is not None:
            cfg = replace(cfg, solver_command=solver_command)
        if timeout is not None:
            cfg = replace(cfg, timeout=timeout)
        return cfg


__all__ = ["StabilizerConfig"]
