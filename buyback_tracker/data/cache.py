"""In-process TTL cache with stale fallback and request coalescing."""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable


logger = logging.getLogger(__name__)


class CacheState(str, Enum):
    EMPTY = "empty"
    COMPUTING = "computing"
    FRESH = "fresh"
    STALE = "stale"


@dataclass(frozen=True)
class CacheEntry:
    """Snapshot of one cached key. Replaced as a whole, never mutated."""

    key: str
    value: Any
    computed_at: float
    ttl_seconds: float
    state: CacheState

    def age(self, now: float) -> float:
        return now - self.computed_at

    def is_fresh(self, now: float, ttl_seconds: float) -> bool:
        return self.state is CacheState.FRESH and self.age(now) < ttl_seconds


class MetricsCache:
    """
    Per-key cache for pipeline results.

    A fresh entry is returned as is. Otherwise the compute function runs once,
    shared by every concurrent caller for that key. When it fails, the previous
    value (if any) keeps being served and the entry is marked stale; with no
    previous value the error reaches the caller.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._inflight: dict[str, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def peek(self, key: str) -> CacheEntry | None:
        """Return the current entry for a key without computing anything."""
        return self._entries.get(key)

    def state(self, key: str) -> CacheState:
        """Current state of a key, with expiry applied."""
        if key in self._inflight:
            return CacheState.COMPUTING
        entry = self._entries.get(key)
        if entry is None:
            return CacheState.EMPTY
        if entry.is_fresh(self._clock(), entry.ttl_seconds):
            return CacheState.FRESH
        return CacheState.STALE

    def invalidate(self, key: str) -> None:
        """Mark a key stale so the next get recomputes it. The value stays as fallback."""
        entry = self._entries.get(key)
        if entry is not None:
            self._entries[key] = CacheEntry(
                key, entry.value, entry.computed_at, entry.ttl_seconds, CacheState.STALE
            )

    def clear(self) -> None:
        """Drop every entry. In-flight computations still finish and store their results."""
        self._entries.clear()

    async def get(
        self,
        key: str,
        ttl_seconds: float,
        compute_fn: Callable[[], Awaitable[Any]],
    ) -> Any:
        """
        Return the value for key, computing it when missing or expired.

        Args:
            key: Cache key, one per (entity, query kind)
            ttl_seconds: How long a successful result stays fresh
            compute_fn: Zero-argument coroutine factory producing the value

        Returns:
            Fresh value, newly computed value, or the previous value when the
            recomputation failed

        Raises:
            Exception: whatever compute_fn raised, when no previous value exists
        """
        entry = self._entries.get(key)
        if entry is not None and entry.is_fresh(self._clock(), ttl_seconds):
            return entry.value

        task = self._inflight.get(key)
        if task is None:
            logger.debug(f"Cache miss for {key}, computing")
            task = asyncio.ensure_future(self._refresh(key, ttl_seconds, compute_fn))
            self._inflight[key] = task
            task.add_done_callback(lambda _t, key=key: self._inflight.pop(key, None))
        else:
            logger.debug(f"Joining in-flight computation for {key}")

        # A cancelled caller must not cancel the computation other callers wait on
        return await asyncio.shield(task)

    async def _refresh(
        self,
        key: str,
        ttl_seconds: float,
        compute_fn: Callable[[], Awaitable[Any]],
    ) -> Any:
        previous = self._entries.get(key)
        try:
            value = await compute_fn()
        except Exception as e:
            if previous is None:
                raise
            logger.warning(
                f"Refresh of {key} failed ({e}); serving value from "
                f"{previous.age(self._clock()):.0f}s ago"
            )
            self._entries[key] = CacheEntry(
                key, previous.value, previous.computed_at, ttl_seconds, CacheState.STALE
            )
            return previous.value

        self._entries[key] = CacheEntry(
            key, value, self._clock(), ttl_seconds, CacheState.FRESH
        )
        return value
