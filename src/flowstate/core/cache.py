"""
Time-boxed memoization on top of snapshot storage.

Cache entries live in the snapshot's ``cache`` field, so storing and
invalidating go through the scheduler like any other mutation and reach
``Topic.CACHE`` subscribers.

An entry under ``key`` is valid while ``now - inserted_at < ttl``; stale
entries are ignored by lookups and overwritten by the next computation.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from flowstate.core.settings import get_logger
from flowstate.core.state.scheduler import MutationScheduler
from flowstate.core.state.snapshot import CacheEntry, Snapshot

logger = get_logger(__name__)

T = TypeVar("T")
Producer = Callable[[], Awaitable[T]]


class CacheLayer:
    """TTL cache whose storage is the current snapshot."""

    def __init__(
        self,
        scheduler: MutationScheduler,
        *,
        default_ttl: float = 30.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._scheduler = scheduler
        self._default_ttl = default_ttl
        self._clock = clock

    def peek(self, key: str, ttl: float | None = None) -> CacheEntry | None:
        """Return the entry under ``key`` if it is still fresh, else None."""
        entry = self._scheduler.current.cache.get(key)
        if entry is None:
            return None
        window = self._default_ttl if ttl is None else ttl
        return entry if entry.is_fresh(self._clock(), window) else None

    async def get_or_compute(
        self,
        key: str,
        ttl: float | None,
        producer: Producer[T],
    ) -> T:
        """
        Return fresh cached data for ``key`` or compute and store it.

        Parameters
        ----------
        key :
            Caller-chosen cache key.
        ttl :
            Validity window in seconds; ``None`` uses the default TTL.
        producer :
            Zero-argument coroutine function producing the data on a miss.
        """
        entry = self.peek(key, ttl)
        if entry is not None:
            return entry.data  # type: ignore[no-any-return]

        now = self._clock()
        data = await producer()
        stored = CacheEntry(data=data, inserted_at=now)

        def store(state: Snapshot) -> dict[str, Any]:
            return {"cache": {**state.cache, key: stored}}

        await self._scheduler.submit(store)
        logger.debug("Cached '%s'", key)
        return data

    async def invalidate(self, pattern: str) -> tuple[str, ...]:
        """Remove every key containing ``pattern`` in a single mutation.

        Returns the removed keys.
        """
        removed: list[str] = []

        def drop(state: Snapshot) -> dict[str, Any]:
            removed.clear()
            kept: dict[str, CacheEntry] = {}
            for cache_key, entry in state.cache.items():
                if pattern in cache_key:
                    removed.append(cache_key)
                else:
                    kept[cache_key] = entry
            return {"cache": kept}

        await self._scheduler.submit(drop)
        return tuple(removed)

    async def evict_expired(self, ttl: float | None = None) -> tuple[str, ...]:
        """Physically remove entries older than ``ttl`` (default TTL if None)."""
        window = self._default_ttl if ttl is None else ttl
        evicted: list[str] = []

        def sweep(state: Snapshot) -> dict[str, Any]:
            evicted.clear()
            now = self._clock()
            kept: dict[str, CacheEntry] = {}
            for cache_key, entry in state.cache.items():
                if entry.is_fresh(now, window):
                    kept[cache_key] = entry
                else:
                    evicted.append(cache_key)
            return {"cache": kept}

        await self._scheduler.submit(sweep)
        return tuple(evicted)


__all__ = ["CacheLayer", "Producer"]
