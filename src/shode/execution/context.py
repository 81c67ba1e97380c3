"""Cancellation and deadline propagation for script execution."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

DEADLINE_EXCEEDED = "deadline exceeded"


class ExecutionContext:
    """Carries a cancellation signal and optional deadline into execution.

    A context is cancelled either explicitly via ``cancel()`` (from any
    thread) or implicitly once its deadline passes.
    """

    def __init__(
        self,
        timeout_s: float | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the context.

        Args:
            timeout_s: Optional number of seconds until the deadline.
            clock: Monotonic clock used for deadline checks.
        """

        self._clock = clock
        self._deadline = clock() + timeout_s if timeout_s is not None else None
        self._event = threading.Event()
        self._reason = ""

    @classmethod
    def background(cls) -> ExecutionContext:
        """Return a context that is never cancelled unless asked to be."""

        return cls()

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and self._clock() >= self._deadline:
            self.cancel(DEADLINE_EXCEEDED)
            return True
        return False

    @property
    def reason(self) -> str:
        return self._reason

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None when unbounded."""

        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())

    def wait_timeout(self, poll_interval_s: float) -> float:
        """Return how long a blocking wait may last before re-checking."""

        remaining = self.remaining()
        if remaining is None:
            return poll_interval_s
        return min(poll_interval_s, remaining)
