"""Run the external stability solver and read its verdict.

The solver is fed a single ``herbie-test`` form on stdin and answers with at
least three lines::

    Input error: 5.3
    Output error: 0.1
    (lambda (v0) (/ 1 (+ (sqrt (+ v0 1)) (sqrt v0))))

The rewritten expression is the third parenthesized group of line three, in
order of opening parenthesis. Anything else is a protocol failure and turns
into a fallback result (no change, unknown error) instead of an exception.
"""
from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from . import constants as C
from . import sexpr
from .canonical import canonical_variables
from .config import StabilizerConfig
from .types import Failure, FailureKind, ParseError, StabilizerResult

__all__ = ["SolverReply", "SolverInvoker", "build_request", "parse_reply"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SolverReply:
    errin: float
    errout: float
    output: str


def build_request(canonical_text: str, variables: Sequence[str]) -> str:
    """Return the stdin line for *canonical_text* over *variables*."""
    return f'(herbie-test ({" ".join(variables)}) "{C.REQUEST_NAME}" {canonical_text})\n'


def _error_field(line: str, label: str) -> float | Failure:
    _, sep, value = line.partition(":")
    if not sep:
        return Failure(FailureKind.SOLVER_PROTOCOL, f"{label} line has no ':'", line)
    try:
        return float(value.strip())
    except ValueError:
        return Failure(FailureKind.SOLVER_PROTOCOL, f"{label} is not a number", line)


def parse_reply(stdout: str) -> SolverReply | Failure:
    """Parse solver stdout into a :class:`SolverReply` or a protocol failure."""
    lines = stdout.splitlines()
    if len(lines) < 3:
        return Failure(
            FailureKind.SOLVER_PROTOCOL,
            f"expected at least 3 lines of output, got {len(lines)}",
        )

    errin = _error_field(lines[0], "error before")
    if isinstance(errin, Failure):
        return errin
    errout = _error_field(lines[1], "error after")
    if isinstance(errout, Failure):
        return errout

    try:
        datum = sexpr.read(lines[2])
    except ParseError as exc:
        return Failure(FailureKind.SOLVER_PROTOCOL, "output line is not an s-expression", str(exc))
    groups = list(sexpr.lists_preorder(datum))
    if len(groups) < 3:
        return Failure(
            FailureKind.SOLVER_PROTOCOL,
            f"output line has {len(groups)} parenthesized group(s), expected 3",
            lines[2],
        )
    return SolverReply(errin=errin, errout=errout, output=sexpr.dump(groups[2]))


class SolverInvoker:
    """Subprocess wrapper around the stability solver.

    ``runner`` defaults to :func:`subprocess.run`; tests pass a stub with the
    same call signature.
    """

    def __init__(
        self,
        command: str = C.SOLVER_COMMAND,
        seed: str = C.SOLVER_SEED,
        timeout: float | None = None,
        *,
        runner: Callable[..., Any] | None = None,
    ) -> None:
        self.command = command
        self.seed = seed
        self.timeout = timeout
        self._runner = runner
        self.logger = logger

    @classmethod
    def from_config(cls, config: StabilizerConfig) -> "SolverInvoker":
        return cls(config.solver_command, config.seed, config.timeout)

    def argv(self) -> list[str]:
        return [self.command, "-r", self.seed]

    def _warn(self, failure: Failure, request: str, stdout: str = "", stderr: str = "") -> None:
        self.logger.warning("solver failed: %s", failure)
        self.logger.warning("solver stdin=%s", request.rstrip("\n"))
        if stdout:
            self.logger.warning("solver stdout=%s", stdout)
        if stderr:
            self.logger.warning("solver stderr=%s", stderr)

    def run(self, request: str) -> SolverReply | Failure:
        """Send *request* to the solver; every failure is logged and returned."""
        runner = self._runner or subprocess.run
        try:
            proc = runner(
                self.argv(),
                input=request,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            failure = Failure(FailureKind.SOLVER_PROTOCOL, f"timed out after {exc.timeout}s")
            self._warn(failure, request)
            return failure
        except (OSError, subprocess.SubprocessError, ValueError) as exc:
            failure = Failure(FailureKind.SOLVER_PROTOCOL, f"could not run {self.command!r}", str(exc))
            self._warn(failure, request)
            return failure

        stdout = proc.stdout or ""
        stderr = proc.stderr or ""
        if proc.returncode != 0:
            failure = Failure(FailureKind.SOLVER_PROTOCOL, f"exited with status {proc.returncode}")
            self._warn(failure, request, stdout, stderr)
            return failure

        reply = parse_reply(stdout)
        if isinstance(reply, Failure):
            self._warn(reply, request, stdout, stderr)
        return reply

    def invoke(
        self, canonical_text: str, variables: Sequence[str] | None = None
    ) -> StabilizerResult[str]:
        """Return the solver's verdict for *canonical_text*.

        *variables* should be the placeholder list of the :class:`VarMap`
        produced alongside the text; it is recovered from the text otherwise.
        Never raises: failures give ``StabilizerResult.fallback(canonical_text)``.
        """
        if variables is None:
            try:
                variables = canonical_variables(canonical_text)
            except ParseError as exc:
                self._warn(Failure(FailureKind.PARSE, "input is not canonical text", str(exc)), canonical_text)
                return StabilizerResult.fallback(canonical_text)

        request = build_request(canonical_text, variables)
        self.logger.debug("solver stdin=%s", request.rstrip("\n"))
        outcome = self.run(request)
        if isinstance(outcome, Failure):
            return StabilizerResult.fallback(canonical_text)
        return StabilizerResult(
            cmdin=canonical_text,
            cmdout=outcome.output,
            errin=outcome.errin,
            errout=outcome.errout,
        )
