"""TTL-bounded memo of successful, non-redirected command results."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from shode.engine.results import CommandResult
from shode.util.logging import get_logger

CacheKey = tuple[str, tuple[str, ...]]


@dataclass(frozen=True)
class CacheEntry:
    """A cached result, the time it was stored, and the environment it ran in."""

    result: CommandResult
    inserted_at: float
    fingerprint: int | None = None


@dataclass(frozen=True)
class CacheStats:
    """Counters describing cache behaviour."""

    size: int
    hits: int
    misses: int
    evictions: int
    expirations: int


class CommandCache:
    """Memoize command results keyed by the exact (name, args) pair.

    Entries older than ``ttl_s`` are treated as absent and dropped when read.
    When the cache is full the oldest entry is evicted. Only successful
    results of commands without a redirect are accepted. Each entry remembers
    the environment fingerprint it was stored under and only answers lookups
    made with the same fingerprint.
    """

    def __init__(
        self,
        capacity: int = 1000,
        ttl_s: float = 300.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache.

        Args:
            capacity: Maximum number of entries held at once.
            ttl_s: Seconds an entry remains valid after insertion.
            clock: Monotonic clock used for expiry.
        """

        if capacity < 1:
            raise ValueError("Cache capacity must be at least 1.")
        if ttl_s <= 0:
            raise ValueError("Cache TTL must be positive.")
        self._capacity = capacity
        self._ttl_s = ttl_s
        self._clock = clock
        self._entries: OrderedDict[CacheKey, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0
        self._logger = get_logger(self.__class__.__name__)

    @staticmethod
    def key(name: str, args: Sequence[str]) -> CacheKey:
        return (name, tuple(args))

    def get(
        self,
        name: str,
        args: Sequence[str],
        fingerprint: int | None = None,
    ) -> CommandResult | None:
        """Return the cached result for a command, or None on a miss.

        An entry stored under a different environment fingerprint is a miss.
        """

        key = self.key(name, args)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.fingerprint != fingerprint:
                self._misses += 1
                return None
            if self._clock() - entry.inserted_at >= self._ttl_s:
                del self._entries[key]
                self._expirations += 1
                self._misses += 1
                return None
            self._hits += 1
            return entry.result

    def put(
        self,
        name: str,
        args: Sequence[str],
        result: CommandResult,
        fingerprint: int | None = None,
    ) -> bool:
        """Store a result if it is eligible for caching.

        Returns:
            True if the result was stored.
        """

        if not is_cacheable(result):
            return False
        key = self.key(name, args)
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self._capacity:
                self._evict_locked()
            self._entries[key] = CacheEntry(
                result=result, inserted_at=self._clock(), fingerprint=fingerprint
            )
        return True

    def invalidate(self, name: str, args: Sequence[str]) -> None:
        with self._lock:
            self._entries.pop(self.key(name, args), None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def prune_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""

        now = self._clock()
        with self._lock:
            expired = [
                key
                for key, entry in self._entries.items()
                if now - entry.inserted_at >= self._ttl_s
            ]
            for key in expired:
                del self._entries[key]
            self._expirations += len(expired)
        return len(expired)

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                size=len(self._entries),
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                expirations=self._expirations,
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _evict_locked(self) -> None:
        # Expired entries go first; otherwise the oldest insertion.
        now = self._clock()
        for key, entry in self._entries.items():
            if now - entry.inserted_at >= self._ttl_s:
                del self._entries[key]
                self._expirations += 1
                return
        key, _ = self._entries.popitem(last=False)
        self._evictions += 1
        self._logger.debug("Evicted cache entry for %s", key[0])


def is_cacheable(result: CommandResult) -> bool:
    """Return whether a result may be stored in the cache."""

    return (
        result.success
        and result.exit_code == 0
        and result.command.redirect is None
        and not result.cached
    )
