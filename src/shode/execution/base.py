"""Process runner base types and interfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any

from shode.execution.context import ExecutionContext

# A stdio destination: an open file, a subprocess constant (PIPE, STDOUT,
# DEVNULL), or None for the runner's default.
StdioTarget = IO[Any] | int | None


@dataclass(frozen=True)
class ProcessOutcome:
    """Result of running an external process.

    Attributes:
        command: The argument vector executed.
        stdout: Captured standard output (empty when redirected).
        stderr: Captured standard error (empty when redirected).
        exit_code: Exit code returned by the process.
        duration_s: Duration of the execution in seconds.
        cancelled: Whether the process was killed because the context fired.
        cancel_reason: Why the context fired, when cancelled.
    """

    command: list[str]
    stdout: str
    stderr: str
    exit_code: int
    duration_s: float
    cancelled: bool = False
    cancel_reason: str = ""


class ProcessRunner(ABC):
    """Abstract base class for spawning external processes."""

    @abstractmethod
    def run(
        self,
        command: list[str],
        cwd: Path | None = None,
        env: dict[str, str] | None = None,
        *,
        input_text: str | None = None,
        stdin: StdioTarget = None,
        stdout: StdioTarget = None,
        stderr: StdioTarget = None,
        context: ExecutionContext | None = None,
    ) -> ProcessOutcome:
        """Run a command and capture its results.

        Args:
            command: The argument vector to execute.
            cwd: Working directory for the process.
            env: Complete environment block for the process.
            input_text: Text written to stdin when ``stdin`` is not bound.
            stdin: Explicit stdin binding.
            stdout: Explicit stdout binding; captured when None.
            stderr: Explicit stderr binding; captured when None.
            context: Cancellation context; the process is killed when it fires.

        Returns:
            ProcessOutcome with captured output and exit code.

        Raises:
            OSError: If the process cannot be started.
        """
