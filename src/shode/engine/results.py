"""Result types produced by the execution engine."""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum

from shode.engine.errors import EngineError
from shode.syntax.nodes import CommandNode


class ExecutionMode(Enum):
    """How a command is executed."""

    INTERPRETED = "interpreted"
    PROCESS = "process"
    # Reserved for cost-based routing; currently executes like PROCESS.
    HYBRID = "hybrid"


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a single command.

    Attributes:
        command: The command node that was executed.
        success: Whether the command succeeded.
        exit_code: Exit code (real process code, or 1 for in-band failures).
        output: Captured standard output.
        error_text: Captured standard error or failure description.
        duration_s: Wall-clock duration in seconds.
        mode: Execution mode used; None when rejected before mode selection.
        cached: Whether the result was replayed from the command cache.
    """

    command: CommandNode
    success: bool
    exit_code: int
    output: str = ""
    error_text: str = ""
    duration_s: float = 0.0
    mode: ExecutionMode | None = None
    cached: bool = False


@dataclass(frozen=True)
class PipelineResult:
    """Outcome of a pipeline; stage_results stops at the first failing stage."""

    success: bool
    exit_code: int
    output: str = ""
    error_text: str = ""
    stage_results: tuple[CommandResult, ...] = ()


@dataclass(frozen=True)
class ExecutionResult:
    """Aggregated outcome of executing a script.

    Attributes:
        success: Whether every executed node succeeded.
        exit_code: Exit code of the failing node, or 0.
        output: Observable output of executed nodes, in order.
        error_text: Error text of executed nodes, in order.
        duration_s: Wall-clock duration in seconds.
        command_results: Every command result, including nested ones, in order.
    """

    success: bool
    exit_code: int
    output: str = ""
    error_text: str = ""
    duration_s: float = 0.0
    command_results: tuple[CommandResult, ...] = field(default_factory=tuple)


def failed_result(command: CommandNode, error_text: str, mode: ExecutionMode | None = None) -> CommandResult:
    """Build an in-band failure with exit code 1."""

    return CommandResult(
        command=command,
        success=False,
        exit_code=1,
        error_text=error_text,
        mode=mode,
    )


class ResultAccumulator:
    """Collect command results and text, in execution order, into an ExecutionResult."""

    def __init__(self) -> None:
        self._start = time.monotonic()
        self._commands: list[CommandResult] = []
        self._output: list[str] = []
        self._errors: list[str] = []

    def add_command(self, result: CommandResult) -> None:
        self._commands.append(result)
        self._append_text(result.output, result.error_text)

    def add_pipeline(self, result: PipelineResult) -> None:
        self._commands.extend(result.stage_results)
        self._append_text(result.output, result.error_text)

    def add_execution(self, result: ExecutionResult) -> None:
        self._commands.extend(result.command_results)
        self._append_text(result.output, result.error_text)

    def build(self, success: bool = True, exit_code: int = 0) -> ExecutionResult:
        return ExecutionResult(
            success=success,
            exit_code=exit_code,
            output="".join(self._output),
            error_text="".join(self._errors),
            duration_s=time.monotonic() - self._start,
            command_results=tuple(self._commands),
        )

    @contextmanager
    def capture_partial(self) -> Iterator[None]:
        """Attach what has been accumulated so far to an escaping EngineError."""

        try:
            yield
        except EngineError as exc:
            if exc.partial_result is not None:
                self.add_execution(exc.partial_result)
            exc.partial_result = self.build(success=False, exit_code=1)
            raise

    def _append_text(self, output: str, error_text: str) -> None:
        if output:
            self._output.append(output)
        if error_text:
            self._errors.append(error_text)
