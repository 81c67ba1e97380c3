"""Local process runner implementation."""

from __future__ import annotations

import subprocess
import time
from pathlib import Path

from shode.execution.base import ProcessOutcome, ProcessRunner, StdioTarget
from shode.execution.context import ExecutionContext
from shode.util.logging import get_logger


class LocalProcessRunner(ProcessRunner):
    """Run commands on the local host with subprocess."""

    def __init__(self, poll_interval_s: float = 0.05) -> None:
        """Initialize the runner.

        Args:
            poll_interval_s: How often a running process re-checks its context.
        """

        self._poll_interval_s = poll_interval_s
        self._logger = get_logger(self.__class__.__name__)

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
        """Run a command locally and capture its output.

        Returns:
            ProcessOutcome with stdout, stderr, exit code, and duration.
        """

        if not command:
            raise ValueError("Command must contain at least one argument.")

        if stdin is None:
            stdin = subprocess.PIPE if input_text is not None else subprocess.DEVNULL
        else:
            input_text = None

        start = time.monotonic()
        self._logger.debug("Spawning process: %s", command)
        process = subprocess.Popen(
            command,
            cwd=str(cwd) if cwd is not None else None,
            env=env,
            stdin=stdin,
            stdout=subprocess.PIPE if stdout is None else stdout,
            stderr=subprocess.PIPE if stderr is None else stderr,
            text=True,
            encoding="utf-8",
            errors="replace",
        )

        cancelled = False
        pending_input = input_text
        while True:
            timeout = None if context is None else context.wait_timeout(self._poll_interval_s)
            try:
                out, err = process.communicate(input=pending_input, timeout=timeout)
                break
            except subprocess.TimeoutExpired:
                # communicate() keeps the unsent input across retries.
                pending_input = None
                if context is not None and context.cancelled:
                    self._logger.info("Killing process %s: %s", command, context.reason)
                    process.kill()
                    out, err = process.communicate()
                    cancelled = True
                    break
        duration = time.monotonic() - start

        return ProcessOutcome(
            command=list(command),
            stdout=out or "",
            stderr=err or "",
            exit_code=process.returncode,
            duration_s=duration,
            cancelled=cancelled,
            cancel_reason=context.reason if cancelled and context is not None else "",
        )
