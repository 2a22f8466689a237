"""Unit tests for the topic-keyed subscription registry."""

from __future__ import annotations

from typing import Any

import pytest

from flowstate.core.errors import SubscriberError
from flowstate.core.state.snapshot import Snapshot
from flowstate.core.state.subscriptions import SubscriptionRegistry, Topic


def _commit() -> tuple[Snapshot, Snapshot]:
    before = Snapshot()
    return before, before.evolve({"videos": {"1": {"id": "1"}}, "online": False})


def test_field_subscriber_receives_new_and_old_value() -> None:
    registry = SubscriptionRegistry()
    seen: list[tuple[Any, Any, Topic]] = []
    registry.subscribe("online", lambda cur, prev, topic: seen.append((cur, prev, topic)))

    before, after = _commit()
    failures = registry.notify(before, after, ("videos", "online"))

    assert failures == []
    assert seen == [(False, True, Topic.ONLINE)]


def test_unsubscribe_drops_empty_topic() -> None:
    registry = SubscriptionRegistry()
    first = registry.subscribe(Topic.VIDEOS, lambda *_: None)
    second = registry.subscribe(Topic.VIDEOS, lambda *_: None)
    assert registry.count(Topic.VIDEOS) == 2

    first()
    assert registry.count(Topic.VIDEOS) == 1
    second()
    assert Topic.VIDEOS not in registry.topics()
    # Calling an unsubscribe twice is harmless.
    second()


def test_wildcard_receives_every_commit() -> None:
    """The wildcard fires even when no field changed."""
    registry = SubscriptionRegistry()
    seen: list[tuple[str, ...]] = []
    registry.subscribe(Topic.ALL, lambda cur, prev, changed: seen.append(changed))

    before, after = _commit()
    registry.notify(before, after, ("videos", "online"))
    registry.notify(after, after, ())

    assert seen == [("videos", "online"), ()]


def test_failing_subscriber_does_not_block_others() -> None:
    """A throwing 'videos' observer must not stop the wildcard observer."""
    registry = SubscriptionRegistry()
    wildcard_hits: list[Snapshot] = []

    def broken(*_: Any) -> None:
        raise RuntimeError("render failed")

    registry.subscribe("videos", broken)
    registry.subscribe("*", lambda cur, prev, changed: wildcard_hits.append(cur))

    before, after = _commit()
    failures = registry.notify(before, after, ("videos",))

    assert wildcard_hits == [after]
    assert len(failures) == 1
    assert isinstance(failures[0], SubscriberError)
    assert failures[0].topic == "videos"
    assert isinstance(failures[0].original, RuntimeError)


def test_unknown_topic_is_rejected() -> None:
    with pytest.raises(ValueError):
        SubscriptionRegistry().subscribe("not-a-field", lambda *_: None)
