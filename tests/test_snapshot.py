"""Unit tests for the immutable snapshot value and its schema check."""

from __future__ import annotations

import dataclasses
from types import MappingProxyType

import pytest

from flowstate.core.errors import StateValidationError
from flowstate.core.state.snapshot import (
    FIELD_NAMES,
    CacheEntry,
    PendingAction,
    Snapshot,
    UIPreferences,
    merge_fields,
)


def test_defaults_are_valid_and_frozen() -> None:
    """A default snapshot carries every field in read-only containers."""
    snap = Snapshot()
    assert set(snap.fields()) == set(FIELD_NAMES)
    assert snap.user is None
    assert snap.online is True
    assert snap.ui == UIPreferences()
    assert isinstance(snap.videos, MappingProxyType)
    assert isinstance(snap.liked_videos, frozenset)

    with pytest.raises(dataclasses.FrozenInstanceError):
        snap.online = False  # type: ignore[misc]
    with pytest.raises(TypeError):
        snap.videos["1"] = {}  # type: ignore[index]


def test_merge_builds_new_snapshot_without_touching_old() -> None:
    """Partial updates produce a successor; the predecessor is unchanged."""
    base = Snapshot()
    liked = {"a"}
    nxt = merge_fields(base, {"liked_videos": liked, "user": {"id": "u1"}})

    assert nxt is not base
    assert nxt.liked_videos == frozenset({"a"})
    assert base.liked_videos == frozenset()
    assert nxt.user is not None and nxt.user["id"] == "u1"

    # Later mutation of the caller's set does not leak into the snapshot.
    liked.add("b")
    assert nxt.liked_videos == frozenset({"a"})


def test_replacement_snapshot_is_taken_as_is() -> None:
    replacement = Snapshot(online=False)
    assert merge_fields(Snapshot(), replacement) is replacement


@pytest.mark.parametrize(
    ("updates", "field"),
    [
        ({"online": "yes"}, "online"),
        ({"user": ["not", "a", "mapping"]}, "user"),
        ({"videos": None}, "videos"),
        ({"liked_videos": "abc"}, "liked_videos"),
        ({"pending_actions": {"id": "x"}}, "pending_actions"),
        ({"ui": {"theme": "neon"}}, "ui"),
        ({"bogus": 1}, "bogus"),
    ],
)
def test_invalid_updates_are_rejected(updates: dict[str, object], field: str) -> None:
    """Coarse type violations and unknown fields raise StateValidationError."""
    with pytest.raises(StateValidationError) as info:
        merge_fields(Snapshot(), updates)
    assert info.value.field == field


def test_updater_must_produce_mapping() -> None:
    with pytest.raises(StateValidationError):
        merge_fields(Snapshot(), 42)  # type: ignore[arg-type]


def test_nested_records_are_coerced() -> None:
    """Mappings for ui, pending actions and cache entries become typed records."""
    snap = merge_fields(
        Snapshot(),
        {
            "ui": {"theme": "light"},
            "pending_actions": [
                {"id": "p1", "type": "like", "payload": {"video_id": "1"}, "enqueued_at": 5.0}
            ],
            "cache": {"videos": {"data": [1, 2], "inserted_at": 10}},
        },
    )
    assert snap.ui.theme == "light"
    assert snap.ui.language == "tr"
    assert snap.pending_actions == (
        PendingAction(id="p1", type="like", payload={"video_id": "1"}, enqueued_at=5.0),
    )
    assert snap.cache["videos"] == CacheEntry(data=[1, 2], inserted_at=10.0)


def test_cache_entry_freshness_window() -> None:
    entry = CacheEntry(data="x", inserted_at=100.0)
    assert entry.is_fresh(100.999, 1.0)
    assert not entry.is_fresh(101.0, 1.0)
