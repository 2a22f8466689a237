"""Unit tests for top-level change detection."""

from __future__ import annotations

from types import MappingProxyType

from flowstate.core.state.changes import changed_fields, values_equal
from flowstate.core.state.snapshot import Snapshot, UIPreferences


def test_structurally_equal_collections_are_unchanged() -> None:
    """Freshly built but identical collections do not count as changes."""
    video = {"id": "1"}
    assert values_equal({"1": video}, MappingProxyType({"1": video}))
    assert values_equal(frozenset({"a", "b"}), {"b", "a"})
    assert values_equal((1, 2, 3), [1, 2, 3])


def test_collection_differences_are_detected() -> None:
    assert not values_equal({"1": 1}, {"1": 2})
    assert not values_equal({"1": 1}, {"2": 1})
    assert not values_equal({"1": 1}, {"1": 1, "2": 2})
    assert not values_equal(frozenset({"a"}), frozenset({"b"}))
    assert not values_equal((1, 2), (2, 1))


def test_scalars_and_records_use_value_equality() -> None:
    assert values_equal(None, None)
    assert not values_equal(None, {})
    assert not values_equal(True, False)
    assert values_equal(UIPreferences(), UIPreferences())
    assert not values_equal(UIPreferences(), UIPreferences(theme="light"))
    assert not values_equal("ab", ["a", "b"])


def test_changed_fields_lists_only_differing_fields() -> None:
    before = Snapshot()
    after = before.evolve(
        {
            "liked_videos": {"1"},
            "videos": {},  # rebuilt but equal
            "online": False,
        }
    )
    assert changed_fields(before, after) == ("liked_videos", "online")
    assert changed_fields(after, after) == ()
