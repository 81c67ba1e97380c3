"""Security gate interface consulted before every command."""

from __future__ import annotations

from abc import ABC, abstractmethod

from shode.syntax.nodes import CommandNode


class SecurityViolation(RuntimeError):
    """Raised by a security gate to reject a command."""


class SecurityGate(ABC):
    """Policy that accepts or rejects a command before it runs."""

    @abstractmethod
    def check(self, command: CommandNode) -> None:
        """Validate a command.

        Args:
            command: Command about to be executed.

        Raises:
            SecurityViolation: If the command is not allowed.
        """


class AllowAllGate(SecurityGate):
    """Gate that accepts every command."""

    def check(self, command: CommandNode) -> None:
        return None
