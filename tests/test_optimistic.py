"""Tests for optimistic membership toggles with rollback."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from flowstate.core.engine import StateEngine
from flowstate.core.errors import RemoteCallError
from flowstate.core.state.subscriptions import Topic


@pytest.mark.asyncio
async def test_like_online_confirms_with_remote(engine: StateEngine, dispatcher: Any) -> None:
    assert await engine.toggle_like("X") is True

    assert engine.is_liked("X")
    assert dispatcher.calls == [("like", {"video_id": "X", "liked": True})]
    assert engine.current.pending_actions == ()


@pytest.mark.asyncio
async def test_like_is_visible_before_remote_resolves_and_rolls_back(
    engine: StateEngine, dispatcher: Any
) -> None:
    """Membership flips immediately; a failed confirmation restores it and re-raises."""
    dispatcher.gate = asyncio.Event()
    dispatcher.fail_when = lambda kind, payload: True
    assert not engine.is_liked("X")

    task = asyncio.create_task(engine.toggle_like("X"))
    while not dispatcher.calls:
        await asyncio.sleep(0)

    assert engine.is_liked("X")

    dispatcher.gate.set()
    with pytest.raises(RemoteCallError):
        await task

    assert not engine.is_liked("X")


@pytest.mark.asyncio
async def test_rollback_restores_prior_membership(engine: StateEngine, dispatcher: Any) -> None:
    await engine.toggle_save("X")
    assert engine.is_saved("X")

    dispatcher.fail_when = lambda kind, payload: kind == "save"
    with pytest.raises(RemoteCallError):
        await engine.toggle_save("X")

    assert engine.is_saved("X")


@pytest.mark.asyncio
async def test_offline_toggle_enqueues_instead_of_calling(
    engine: StateEngine, dispatcher: Any
) -> None:
    await engine.set_online(False)

    assert await engine.toggle_save("X") is True

    assert dispatcher.calls == []
    (action,) = engine.current.pending_actions
    assert action.type == "save"
    assert action.payload == {"video_id": "X", "saved": True}
    assert engine.is_saved("X")


@pytest.mark.asyncio
async def test_toggle_twice_returns_to_original(engine: StateEngine, dispatcher: Any) -> None:
    assert await engine.toggle_like("X") is True
    assert await engine.toggle_like("X") is False

    assert not engine.is_liked("X")
    assert [payload["liked"] for _, payload in dispatcher.calls] == [True, False]


@pytest.mark.asyncio
async def test_like_invalidates_video_cache(engine: StateEngine) -> None:
    async def produce() -> str:
        return "cached"

    await engine.get_or_compute("video_X_comments", 60.0, produce)
    await engine.get_or_compute("video_Y_comments", 60.0, produce)

    await engine.toggle_like("X")

    assert set(engine.current.cache) == {"video_Y_comments"}


@pytest.mark.asyncio
async def test_observers_see_flip_and_rollback(engine: StateEngine, dispatcher: Any) -> None:
    seen: list[bool] = []
    engine.subscribe(Topic.LIKED_VIDEOS, lambda cur, prev, topic: seen.append("X" in cur))
    dispatcher.fail_when = lambda kind, payload: True

    with pytest.raises(RemoteCallError):
        await engine.toggle_like("X")

    assert seen == [True, False]


@pytest.mark.asyncio
async def test_concurrent_toggles_alternate(engine: StateEngine, dispatcher: Any) -> None:
    first, second = await asyncio.gather(engine.toggle_like("X"), engine.toggle_like("X"))

    assert (first, second) == (True, False)
    assert not engine.is_liked("X")
    assert [payload["liked"] for _, payload in dispatcher.calls] == [True, False]


@pytest.mark.asyncio
async def test_failed_toggle_keeps_later_flip(engine: StateEngine, dispatcher: Any) -> None:
    """Rolling back the first of two concurrent toggles leaves the second one's result."""
    dispatcher.fail_when = lambda kind, payload: payload["liked"] is True

    first, second = await asyncio.gather(
        engine.toggle_like("X"), engine.toggle_like("X"), return_exceptions=True
    )

    assert isinstance(first, RemoteCallError)
    assert second is False
    assert not engine.is_liked("X")
