"""
Top-level change detection between two snapshots.

Only top-level fields are diffed. Collections are compared structurally over
a closed set of container kinds:

- mappings: same size and every key present with a matching value,
- sets: same size and every member present,
- sequences: same length and pairwise matching items,

where "matching" is identity or ``==``. Anything else falls back to ``==``.
A field replaced by a freshly built but structurally identical collection is
therefore reported as unchanged, and subscribers do not fire for it.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from collections.abc import Set as AbstractSet
from typing import Any

from .snapshot import FIELD_NAMES, Snapshot


def _same(a: Any, b: Any) -> bool:
    return a is b or a == b


def values_equal(a: Any, b: Any) -> bool:
    """Return True if two top-level field values are considered equal."""
    if a is b:
        return True
    if isinstance(a, Mapping) and isinstance(b, Mapping):
        if len(a) != len(b):
            return False
        return all(key in b and _same(value, b[key]) for key, value in a.items())
    if isinstance(a, AbstractSet) and isinstance(b, AbstractSet):
        return len(a) == len(b) and all(item in b for item in a)
    if (
        isinstance(a, Sequence)
        and isinstance(b, Sequence)
        and not isinstance(a, str | bytes)
        and not isinstance(b, str | bytes)
    ):
        return len(a) == len(b) and all(_same(x, y) for x, y in zip(a, b, strict=True))
    return bool(a == b)


def changed_fields(previous: Snapshot, current: Snapshot) -> tuple[str, ...]:
    """Return the field names whose values differ, in schema order."""
    if previous is current:
        return ()
    return tuple(
        name
        for name in FIELD_NAMES
        if not values_equal(getattr(previous, name), getattr(current, name))
    )


__all__ = ["changed_fields", "values_equal"]
