"""Tests for the snapshot-backed TTL cache."""

from __future__ import annotations

from typing import Any

import pytest

from flowstate.core.cache import CacheLayer
from flowstate.core.state.scheduler import MutationScheduler
from flowstate.core.state.subscriptions import Topic


class CountingProducer:
    def __init__(self, value: Any) -> None:
        self.value = value
        self.calls = 0

    async def __call__(self) -> Any:
        self.calls += 1
        return self.value


@pytest.mark.asyncio
async def test_producer_runs_once_within_ttl_and_again_after(clock: Any) -> None:
    """Within 1s the cached value is reused; after 1.1s it is recomputed."""
    cache = CacheLayer(MutationScheduler(), clock=clock)
    producer = CountingProducer(["a", "b"])

    assert await cache.get_or_compute("k", 1.0, producer) == ["a", "b"]
    clock.advance(0.5)
    assert await cache.get_or_compute("k", 1.0, producer) == ["a", "b"]
    assert producer.calls == 1

    clock.advance(0.6)  # 1.1s after insertion
    await cache.get_or_compute("k", 1.0, producer)
    assert producer.calls == 2


@pytest.mark.asyncio
async def test_entries_live_in_snapshot(clock: Any) -> None:
    scheduler = MutationScheduler()
    cache = CacheLayer(scheduler, default_ttl=5.0, clock=clock)

    await cache.get_or_compute("profile", None, CountingProducer({"id": 1}))

    entry = scheduler.current.cache["profile"]
    assert entry.data == {"id": 1}
    assert entry.inserted_at == clock.now
    assert cache.peek("profile") is entry
    clock.advance(5.0)
    assert cache.peek("profile") is None


@pytest.mark.asyncio
async def test_invalidate_removes_matching_keys_only(clock: Any) -> None:
    scheduler = MutationScheduler()
    cache = CacheLayer(scheduler, clock=clock)
    for key in ("videos", "videos_page_2", "user_videos", "profile"):
        await cache.get_or_compute(key, 60.0, CountingProducer(key))

    removed = await cache.invalidate("videos")

    assert sorted(removed) == ["user_videos", "videos", "videos_page_2"]
    assert set(scheduler.current.cache) == {"profile"}


@pytest.mark.asyncio
async def test_invalidate_is_a_single_observable_mutation(clock: Any) -> None:
    scheduler = MutationScheduler()
    cache = CacheLayer(scheduler, clock=clock)
    await cache.get_or_compute("video_1", 60.0, CountingProducer(1))
    await cache.get_or_compute("video_2", 60.0, CountingProducer(2))

    seen: list[int] = []
    scheduler.registry.subscribe(Topic.CACHE, lambda cur, prev, topic: seen.append(len(cur)))
    commits_before = scheduler.commits

    await cache.invalidate("video_")

    assert scheduler.commits == commits_before + 1
    assert seen == [0]


@pytest.mark.asyncio
async def test_evict_expired_drops_stale_entries(clock: Any) -> None:
    scheduler = MutationScheduler()
    cache = CacheLayer(scheduler, default_ttl=10.0, clock=clock)
    await cache.get_or_compute("old", None, CountingProducer("old"))
    clock.advance(8.0)
    await cache.get_or_compute("new", None, CountingProducer("new"))
    clock.advance(3.0)

    evicted = await cache.evict_expired()

    assert evicted == ("old",)
    assert set(scheduler.current.cache) == {"new"}
