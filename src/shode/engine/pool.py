"""Bounded pool of external-process execution slots."""

from __future__ import annotations

import itertools
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from shode.execution.context import ExecutionContext
from shode.util.logging import get_logger


class PoolTimeoutError(RuntimeError):
    """Raised when no execution slot becomes available in time."""


class PoolClosedError(RuntimeError):
    """Raised when acquiring from a closed pool."""


class PoolCancelledError(RuntimeError):
    """Raised when the waiting caller's context fires before a slot frees up."""


@dataclass
class PoolSlot:
    """An execution slot keyed by command signature.

    Attributes:
        slot_id: Unique identifier of the slot within its pool.
        signature: Command signature the slot was created for.
        created_at: Clock value at creation.
        last_used: Clock value of the most recent release.
        in_use: Whether the slot is currently held.
        uses: Number of times the slot has been acquired.
    """

    slot_id: int
    signature: str
    created_at: float
    last_used: float
    in_use: bool = False
    uses: int = 0


@dataclass(frozen=True)
class PoolStats:
    """Counters describing pool behaviour."""

    live: int
    in_use: int
    idle: int
    created: int
    reused: int
    evicted: int


class ProcessPool:
    """Limit concurrently outstanding process executions.

    At most ``max_size`` slots are alive at once. Idle slots are reused for
    the same signature, recycled for other signatures when the pool is full,
    and torn down once idle longer than ``idle_timeout_s``. Eviction happens
    lazily on every acquire and on ``sweep()``, which an optional background
    reaper calls periodically.
    """

    def __init__(
        self,
        max_size: int = 10,
        idle_timeout_s: float = 30.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        poll_interval_s: float = 0.05,
    ) -> None:
        """Initialize the pool.

        Args:
            max_size: Maximum number of live slots.
            idle_timeout_s: Seconds an idle slot survives before eviction.
            clock: Monotonic clock used for idle tracking.
            poll_interval_s: How often a waiter with a context re-checks it.
        """

        if max_size < 1:
            raise ValueError("Pool size must be at least 1.")
        self._max_size = max_size
        self._idle_timeout_s = idle_timeout_s
        self._poll_interval_s = poll_interval_s
        self._clock = clock
        self._condition = threading.Condition(threading.Lock())
        self._slots: dict[int, PoolSlot] = {}
        self._ids = itertools.count(1)
        self._created = 0
        self._reused = 0
        self._evicted = 0
        self._closed = False
        self._reaper: threading.Thread | None = None
        self._reaper_stop = threading.Event()
        self._logger = get_logger(self.__class__.__name__)

    @property
    def max_size(self) -> int:
        return self._max_size

    def acquire(
        self,
        signature: str,
        timeout_s: float | None = None,
        context: ExecutionContext | None = None,
    ) -> PoolSlot:
        """Acquire a slot for a command signature, blocking while the pool is full.

        Args:
            signature: Signature of the command about to run.
            timeout_s: Maximum seconds to wait; None waits indefinitely.
            context: Cancellation context; a waiter gives up once it fires.

        Returns:
            The acquired slot; pass it to ``release`` when done.

        Raises:
            PoolTimeoutError: If no slot became available in time.
            PoolClosedError: If the pool has been closed.
            PoolCancelledError: If the context fired while waiting.
        """

        deadline = None if timeout_s is None else self._clock() + timeout_s
        with self._condition:
            while True:
                if self._closed:
                    raise PoolClosedError("process pool is closed")
                self._evict_idle_locked()
                slot = self._take_locked(signature)
                if slot is not None:
                    return slot
                if context is not None and context.cancelled:
                    raise PoolCancelledError(context.reason)
                wait_s: float | None = None
                if deadline is not None:
                    wait_s = deadline - self._clock()
                    if wait_s <= 0:
                        raise PoolTimeoutError(
                            f"no execution slot available within {timeout_s:.2f}s "
                            f"(max {self._max_size})"
                        )
                if context is not None:
                    # Cancellation does not notify the condition, so wait in slices.
                    wait_s = (
                        self._poll_interval_s
                        if wait_s is None
                        else min(wait_s, self._poll_interval_s)
                    )
                self._condition.wait(wait_s)

    def release(self, slot: PoolSlot) -> None:
        """Return a slot to the pool."""

        with self._condition:
            current = self._slots.get(slot.slot_id)
            if current is None or not current.in_use:
                return
            current.in_use = False
            current.last_used = self._clock()
            self._condition.notify_all()

    @contextmanager
    def slot(
        self,
        signature: str,
        timeout_s: float | None = None,
        context: ExecutionContext | None = None,
    ) -> Iterator[PoolSlot]:
        """Hold a slot for the duration of a with-block."""

        acquired = self.acquire(signature, timeout_s=timeout_s, context=context)
        try:
            yield acquired
        finally:
            self.release(acquired)

    def sweep(self) -> int:
        """Tear down idle slots past the idle timeout and return the count."""

        with self._condition:
            evicted = self._evict_idle_locked()
            if evicted:
                self._condition.notify_all()
            return evicted

    def stats(self) -> PoolStats:
        with self._condition:
            in_use = sum(1 for slot in self._slots.values() if slot.in_use)
            return PoolStats(
                live=len(self._slots),
                in_use=in_use,
                idle=len(self._slots) - in_use,
                created=self._created,
                reused=self._reused,
                evicted=self._evicted,
            )

    def start_reaper(self, interval_s: float) -> None:
        """Start a daemon thread that sweeps idle slots every ``interval_s``."""

        if interval_s <= 0 or self._reaper is not None:
            return
        self._reaper_stop.clear()
        self._reaper = threading.Thread(
            target=self._reap,
            args=(interval_s,),
            name="shode-pool-reaper",
            daemon=True,
        )
        self._reaper.start()

    def close(self) -> None:
        """Stop the reaper, drop idle slots, and refuse further acquisitions."""

        self._reaper_stop.set()
        if self._reaper is not None:
            self._reaper.join(timeout=1.0)
            self._reaper = None
        with self._condition:
            self._closed = True
            for slot_id in [key for key, slot in self._slots.items() if not slot.in_use]:
                del self._slots[slot_id]
            self._condition.notify_all()

    def _reap(self, interval_s: float) -> None:
        while not self._reaper_stop.wait(interval_s):
            evicted = self.sweep()
            if evicted:
                self._logger.debug("Reaper evicted %s idle slot(s)", evicted)

    def _take_locked(self, signature: str) -> PoolSlot | None:
        idle = [slot for slot in self._slots.values() if not slot.in_use]
        for slot in idle:
            if slot.signature == signature:
                self._reused += 1
                return self._mark_in_use(slot)

        if len(self._slots) >= self._max_size:
            if not idle:
                return None
            # Recycle the least recently used idle slot for the new signature.
            victim = min(idle, key=lambda slot: slot.last_used)
            del self._slots[victim.slot_id]
            self._evicted += 1

        now = self._clock()
        slot = PoolSlot(
            slot_id=next(self._ids),
            signature=signature,
            created_at=now,
            last_used=now,
        )
        self._slots[slot.slot_id] = slot
        self._created += 1
        return self._mark_in_use(slot)

    def _mark_in_use(self, slot: PoolSlot) -> PoolSlot:
        slot.in_use = True
        slot.uses += 1
        return slot

    def _evict_idle_locked(self) -> int:
        now = self._clock()
        expired = [
            slot_id
            for slot_id, slot in self._slots.items()
            if not slot.in_use and now - slot.last_used >= self._idle_timeout_s
        ]
        for slot_id in expired:
            del self._slots[slot_id]
        self._evicted += len(expired)
        return len(expired)
