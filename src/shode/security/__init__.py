"""Command security policies."""

from shode.security.base import AllowAllGate, SecurityGate, SecurityViolation
from shode.security.checker import SecurityChecker

__all__ = ["AllowAllGate", "SecurityChecker", "SecurityGate", "SecurityViolation"]
