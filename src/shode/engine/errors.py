"""Fatal engine errors.

Ordinary command failures never raise; they are reported as failed
CommandResult values. The exceptions here abort the enclosing execution.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from shode.engine.results import ExecutionResult


class EngineError(RuntimeError):
    """Base class for fatal execution errors.

    Attributes:
        partial_result: Results accumulated by the outermost execute call
            before the error, when available.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.partial_result: ExecutionResult | None = None


class UnsupportedNodeError(EngineError):
    """Raised when a node kind has no execution handler."""


class UnsupportedConditionError(EngineError):
    """Raised when a condition node is not a command."""


class LoopLimitExceededError(EngineError):
    """Raised when a while loop reaches its iteration ceiling."""

    def __init__(self, max_iterations: int) -> None:
        super().__init__(f"while loop exceeded maximum iterations ({max_iterations})")
        self.max_iterations = max_iterations
