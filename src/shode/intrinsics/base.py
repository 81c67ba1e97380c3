"""Intrinsic abstractions for in-process built-in operations."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass


class IntrinsicError(RuntimeError):
    """Raised when an intrinsic fails; converted to a failed command result."""


@dataclass(frozen=True)
class IntrinsicOutput:
    """Text produced by an intrinsic call.

    Attributes:
        stdout: Text destined for standard output.
        stderr: Text destined for standard error.
    """

    stdout: str = ""
    stderr: str = ""


@dataclass(frozen=True)
class Intrinsic:
    """A named built-in operation.

    Attributes:
        name: Exact command name that selects the intrinsic.
        func: Callable receiving positional arguments and returning text.
        description: Human-readable description.
        stream: Stream the returned text is written to ("stdout" or "stderr").
        accepts_input: Whether piped stdin is passed as the first argument.
    """

    name: str
    func: Callable[[Sequence[str]], str]
    description: str = ""
    stream: str = "stdout"
    accepts_input: bool = False

    def invoke(self, args: Sequence[str], input_text: str | None = None) -> IntrinsicOutput:
        """Call the intrinsic.

        Args:
            args: Positional arguments from the command.
            input_text: Piped stdin, if any.

        Returns:
            IntrinsicOutput routed to the configured stream.

        Raises:
            IntrinsicError: If the intrinsic rejects its arguments or fails.
        """

        call_args = list(args)
        if input_text is not None and self.accepts_input:
            call_args.insert(0, input_text)
        text = self.func(call_args)
        if self.stream == "stderr":
            return IntrinsicOutput(stderr=text)
        return IntrinsicOutput(stdout=text)
