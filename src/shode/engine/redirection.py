"""Bind a command's stdio to files according to its redirect operator."""

from __future__ import annotations

import subprocess
from collections.abc import Callable, Iterator
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any, Final

from shode.syntax.nodes import RedirectNode

SUPPORTED_OPERATORS: Final[frozenset[str]] = frozenset({">", ">>", "<", "2>&1", "&>"})


class RedirectionError(ValueError):
    """Raised for unsupported operators or files that cannot be opened."""


@dataclass(frozen=True)
class StdioBinding:
    """Open handles a command's stdio is bound to.

    Attributes:
        stdin: File to read standard input from, if redirected.
        stdout: File receiving standard output, if redirected.
        stderr: File receiving standard error, if redirected.
        merge_stderr: Whether stderr follows stdout's destination.
    """

    stdin: IO[Any] | None = None
    stdout: IO[Any] | None = None
    stderr: IO[Any] | None = None
    merge_stderr: bool = False

    def subprocess_kwargs(self) -> dict[str, Any]:
        """Return stdin/stdout/stderr keyword arguments for a process runner."""

        return {
            "stdin": self.stdin,
            "stdout": self.stdout,
            "stderr": subprocess.STDOUT if self.merge_stderr else self.stderr,
        }


class RedirectionManager:
    """Open redirect targets and route command output through them."""

    def __init__(self, resolve_path: Callable[[str], Path] | None = None) -> None:
        """Initialize the manager.

        Args:
            resolve_path: Maps a target file name to a path, typically against
                the environment's working directory. Defaults to ``Path``.
        """

        self._resolve_path = resolve_path or Path

    @contextmanager
    def bind(self, redirect: RedirectNode | None) -> Iterator[StdioBinding]:
        """Open the redirect's target for the duration of a with-block.

        Every handle opened here is closed when the block exits, however it
        exits.

        Raises:
            RedirectionError: If the operator is unsupported or the target
                cannot be opened. Raised before the block is entered.
        """

        with ExitStack() as stack:
            binding = StdioBinding() if redirect is None else self._open(redirect, stack)
            yield binding

    def deliver(self, binding: StdioBinding, stdout_text: str, stderr_text: str) -> tuple[str, str]:
        """Write in-process output through a binding.

        Returns:
            The (stdout, stderr) text that remains captured rather than
            written to a file.

        Raises:
            RedirectionError: If writing to a bound file fails.
        """

        try:
            return self._deliver(binding, stdout_text, stderr_text)
        except OSError as exc:
            raise RedirectionError(f"failed to write redirected output: {exc}") from exc

    def _deliver(self, binding: StdioBinding, stdout_text: str, stderr_text: str) -> tuple[str, str]:
        if binding.merge_stderr:
            combined = stdout_text + stderr_text
            if binding.stdout is not None:
                binding.stdout.write(combined)
                return "", ""
            return combined, ""
        if binding.stdout is not None:
            binding.stdout.write(stdout_text)
            stdout_text = ""
        if binding.stderr is not None:
            binding.stderr.write(stderr_text)
            stderr_text = ""
        return stdout_text, stderr_text

    def read_input(self, binding: StdioBinding) -> str | None:
        """Return the redirected stdin contents, if stdin is redirected."""

        if binding.stdin is None:
            return None
        try:
            return binding.stdin.read()
        except (OSError, UnicodeDecodeError) as exc:
            raise RedirectionError(f"failed to read redirected input: {exc}") from exc

    def _open(self, redirect: RedirectNode, stack: ExitStack) -> StdioBinding:
        op = redirect.op
        if op not in SUPPORTED_OPERATORS:
            raise RedirectionError(f"unsupported redirect operator: {op}")

        if op == "2>&1":
            return StdioBinding(merge_stderr=True)

        if not redirect.target_file:
            raise RedirectionError(f"redirect operator '{op}' requires a target file")

        if op == "<":
            return StdioBinding(stdin=self._open_file(redirect.target_file, "r", stack))
        if op == "&>":
            handle = self._open_file(redirect.target_file, "w", stack)
            return StdioBinding(stdout=handle, merge_stderr=True)

        if redirect.fd not in (0, 1, 2):
            raise RedirectionError(f"unsupported file descriptor for '{op}': {redirect.fd}")
        handle = self._open_file(redirect.target_file, "w" if op == ">" else "a", stack)
        if redirect.fd == 2:
            return StdioBinding(stderr=handle)
        return StdioBinding(stdout=handle)

    def _open_file(self, target: str, mode: str, stack: ExitStack) -> IO[Any]:
        path = self._resolve_path(target)
        try:
            handle = open(path, mode, encoding="utf-8")
        except OSError as exc:
            raise RedirectionError(f"failed to open file {target}: {exc}") from exc
        return stack.enter_context(handle)
