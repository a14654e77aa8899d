from __future__ import annotations

import logging
import math
import subprocess
from types import SimpleNamespace
from typing import Any

import pytest

from stabilizer import constants as C
from stabilizer.invoker import SolverInvoker, SolverReply, build_request, parse_reply
from stabilizer.types import Failure, FailureKind

SCENARIO_IN = "(- (sqrt (+ v0 1)) (sqrt v0))"
SCENARIO_OUT = "(/ 1 (+ (sqrt (+ v0 1)) (sqrt v0)))"
SCENARIO_REPLY = (
    "Input error: 5.3\n"
    "Output error: 0.1\n"
    f"(dummy (cmd {SCENARIO_OUT}))\n"
)


def _runner(stdout: str, *, returncode: int = 0, stderr: str = "", calls: list | None = None) -> Any:
    def run(argv: list[str], **kwargs: Any) -> SimpleNamespace:
        if calls is not None:
            calls.append((argv, kwargs))
        return SimpleNamespace(returncode=returncode, stdout=stdout, stderr=stderr)

    return run


def _raising(exc: BaseException) -> Any:
    def run(argv: list[str], **kwargs: Any) -> SimpleNamespace:
        raise exc

    return run


def _assert_fallback(res: Any, text: str) -> None:
    assert res.cmdin == text
    assert res.cmdout == text
    assert math.isnan(res.errin) and math.isnan(res.errout)
    assert res.is_fallback


def test_build_request_format() -> None:
    assert build_request(SCENARIO_IN, ["v0"]) == f'(herbie-test (v0) "cmd" {SCENARIO_IN})\n'
    assert build_request("(+ 1 2)", []) == '(herbie-test () "cmd" (+ 1 2))\n'


def test_parse_reply_scenario() -> None:
    reply = parse_reply(SCENARIO_REPLY)
    assert reply == SolverReply(errin=5.3, errout=0.1, output=SCENARIO_OUT)


def test_parse_reply_lambda_form_and_regression() -> None:
    reply = parse_reply("Input error: 1.5\nOutput error: 2.25\n(lambda (v0 v1) (+ v1 v0))\nextra line\n")
    assert isinstance(reply, SolverReply)
    assert reply.output == "(+ v1 v0)"
    assert reply.errout > reply.errin


@pytest.mark.parametrize(
    "stdout",
    [
        "Input error: 5.3\nOutput error: 0.1\n",
        "",
        "Input error 5.3\nOutput error: 0.1\n(lambda (v0) (+ v0 1))",
        "Input error: five\nOutput error: 0.1\n(lambda (v0) (+ v0 1))",
        "Input error: 5.3\nOutput error: 0.1\n(lambda (v0) v0)",
        "Input error: 5.3\nOutput error: 0.1\n(lambda (v0) (+ v0 1)",
    ],
)
def test_parse_reply_protocol_failures(stdout: str) -> None:
    reply = parse_reply(stdout)
    assert isinstance(reply, Failure)
    assert reply.kind is FailureKind.SOLVER_PROTOCOL


def test_invoke_sends_request_with_fixed_seed() -> None:
    calls: list = []
    invoker = SolverInvoker(runner=_runner(SCENARIO_REPLY, calls=calls))
    res = invoker.invoke(SCENARIO_IN, ["v0"])

    assert res.cmdin == SCENARIO_IN
    assert res.cmdout == SCENARIO_OUT
    assert (res.errin, res.errout) == (5.3, 0.1)

    (argv, kwargs), = calls
    assert argv == [C.SOLVER_COMMAND, "-r", C.SOLVER_SEED]
    assert kwargs["input"] == f'(herbie-test (v0) "cmd" {SCENARIO_IN})\n'
    assert kwargs["text"] is True


def test_invoke_derives_variables_from_text() -> None:
    calls: list = []
    invoker = SolverInvoker(runner=_runner(SCENARIO_REPLY, calls=calls))
    invoker.invoke("(+ (* v0 v1) v0)")
    assert calls[0][1]["input"].startswith("(herbie-test (v0 v1) ")


def test_two_line_reply_falls_back_and_logs(caplog: pytest.LogCaptureFixture) -> None:
    invoker = SolverInvoker(runner=_runner("Input error: 5.3\nOutput error: 0.1\n", stderr="boom"))
    with caplog.at_level(logging.WARNING, logger="stabilizer.invoker"):
        res = invoker.invoke(SCENARIO_IN, ["v0"])
    _assert_fallback(res, SCENARIO_IN)
    messages = caplog.text
    assert "expected at least 3 lines" in messages
    assert "boom" in messages
    assert "herbie-test" in messages


def test_non_zero_exit_falls_back() -> None:
    invoker = SolverInvoker(runner=_runner(SCENARIO_REPLY, returncode=2))
    _assert_fallback(invoker.invoke(SCENARIO_IN, ["v0"]), SCENARIO_IN)


@pytest.mark.parametrize(
    "exc",
    [
        FileNotFoundError(2, "No such file or directory", "herbie-exec"),
        subprocess.TimeoutExpired(["herbie-exec"], 5),
        PermissionError("denied"),
    ],
)
def test_subprocess_errors_fall_back(exc: BaseException) -> None:
    invoker = SolverInvoker(runner=_raising(exc))
    _assert_fallback(invoker.invoke(SCENARIO_IN, ["v0"]), SCENARIO_IN)


def test_missing_solver_binary_falls_back() -> None:
    invoker = SolverInvoker(command="stabilizer-test-no-such-solver")
    _assert_fallback(invoker.invoke("(+ v0 1)"), "(+ v0 1)")


def test_non_canonical_input_falls_back() -> None:
    calls: list = []
    invoker = SolverInvoker(runner=_runner(SCENARIO_REPLY, calls=calls))
    _assert_fallback(invoker.invoke("(+ v0 1"), "(+ v0 1")
    assert calls == []


def test_from_config_uses_configured_command() -> None:
    from stabilizer.config import StabilizerConfig

    invoker = SolverInvoker.from_config(StabilizerConfig(solver_command="my-solver", timeout=3.0))
    assert invoker.argv()[0] == "my-solver"
    assert invoker.timeout == 3.0
