from __future__ import annotations

import os
import subprocess
import threading
import time
from pathlib import Path
from typing import Any

import pytest

from shode.execution import ExecutionContext, LocalProcessRunner
from shode.execution.context import DEADLINE_EXCEEDED


class FakePopen:
    calls: list[dict[str, Any]] = []

    def __init__(self, command: list[str], **kwargs: Any) -> None:
        self.calls.append({"command": command, **kwargs})
        self.returncode = 0

    def communicate(self, input: str | None = None, timeout: float | None = None) -> tuple[str, str]:
        return f"got:{input}", ""


def test_local_runner_passes_process_options(monkeypatch: Any) -> None:
    FakePopen.calls = []
    monkeypatch.setattr(subprocess, "Popen", FakePopen)

    runner = LocalProcessRunner()
    outcome = runner.run(
        ["cat"],
        cwd=Path("/tmp"),
        env={"LOCAL_EXEC_TEST": "1"},
        input_text="hello",
    )

    assert outcome.exit_code == 0
    assert outcome.stdout == "got:hello"
    assert outcome.duration_s >= 0
    assert not outcome.cancelled

    kwargs = FakePopen.calls[0]
    assert kwargs["command"] == ["cat"]
    assert kwargs["cwd"] == "/tmp"
    assert kwargs["env"] == {"LOCAL_EXEC_TEST": "1"}
    assert kwargs["stdin"] == subprocess.PIPE
    assert kwargs["stdout"] == subprocess.PIPE


def test_local_runner_defaults_stdin_to_devnull(monkeypatch: Any) -> None:
    FakePopen.calls = []
    monkeypatch.setattr(subprocess, "Popen", FakePopen)

    LocalProcessRunner().run(["true"])

    assert FakePopen.calls[0]["stdin"] == subprocess.DEVNULL


def test_local_runner_captures_real_output_and_exit_code() -> None:
    outcome = LocalProcessRunner().run(
        ["sh", "-c", "printf out; printf err >&2; exit 3"],
        env=dict(os.environ),
    )

    assert outcome.stdout == "out"
    assert outcome.stderr == "err"
    assert outcome.exit_code == 3


def test_local_runner_feeds_input_text() -> None:
    outcome = LocalProcessRunner().run(["cat"], input_text="a\nb\n")

    assert outcome.stdout == "a\nb\n"


def test_local_runner_writes_to_bound_file(tmp_path: Path) -> None:
    target = tmp_path / "out.txt"
    with target.open("w", encoding="utf-8") as handle:
        outcome = LocalProcessRunner().run(["echo", "to-file"], stdout=handle)

    assert outcome.stdout == ""
    assert target.read_text(encoding="utf-8") == "to-file\n"


def test_missing_binary_raises_os_error() -> None:
    with pytest.raises(OSError):
        LocalProcessRunner().run(["shode-definitely-missing-binary"])


def test_cancel_kills_running_process() -> None:
    context = ExecutionContext()
    timer = threading.Timer(0.1, context.cancel, kwargs={"reason": "stop"})
    timer.start()
    start = time.monotonic()

    outcome = LocalProcessRunner(poll_interval_s=0.01).run(["sleep", "10"], context=context)

    timer.cancel()
    assert outcome.cancelled
    assert outcome.cancel_reason == "stop"
    assert outcome.exit_code != 0
    assert time.monotonic() - start < 5


def test_deadline_kills_running_process() -> None:
    context = ExecutionContext(timeout_s=0.1)

    outcome = LocalProcessRunner(poll_interval_s=0.01).run(["sleep", "10"], context=context)

    assert outcome.cancelled
    assert outcome.cancel_reason == DEADLINE_EXCEEDED


def test_context_deadline_with_fake_clock() -> None:
    now = [100.0]
    context = ExecutionContext(timeout_s=5.0, clock=lambda: now[0])

    assert not context.cancelled
    assert context.remaining() == 5.0
    assert context.wait_timeout(0.5) == 0.5

    now[0] = 105.0
    assert context.cancelled
    assert context.reason == DEADLINE_EXCEEDED
    assert context.remaining() == 0.0
    assert ExecutionContext.background().remaining() is None
