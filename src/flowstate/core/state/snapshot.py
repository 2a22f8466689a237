"""
Immutable state snapshot and the records it holds.

A :class:`Snapshot` is the single authoritative value of all application
state. It is never changed after construction: an "update" builds a new
snapshot from the old one (:func:`merge_fields`), and the scheduler publishes
it as current.

Construction is also validation. ``Snapshot.__post_init__`` checks each field
against a fixed coarse schema and freezes collections into read-only
containers (``frozenset``, ``MappingProxyType``, ``tuple``), so a snapshot
that exists is a snapshot that passed the check.

Field overview
--------------
user            profile mapping or None
videos          video id -> video record
liked_videos    set of liked video ids
saved_videos    set of saved video ids
media_indexes   video id -> selected media sub-index
online          connectivity flag
pending_actions ordered queue of :class:`PendingAction`
cache           cache key -> :class:`CacheEntry`
ui              :class:`UIPreferences`
"""

from __future__ import annotations

from collections.abc import Mapping
from collections.abc import Set as AbstractSet
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from flowstate.core.errors import StateValidationError

FIELD_NAMES: tuple[str, ...] = (
    "user",
    "videos",
    "liked_videos",
    "saved_videos",
    "media_indexes",
    "online",
    "pending_actions",
    "cache",
    "ui",
)

# Fields written to durable storage. `online` and `cache` are runtime-only;
# `videos` is refetched through the cache.
PERSISTED_FIELDS: tuple[str, ...] = (
    "user",
    "liked_videos",
    "saved_videos",
    "media_indexes",
    "ui",
    "pending_actions",
)


class UIPreferences(BaseModel):
    """Nested user-interface preference record."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    theme: Literal["dark", "light"] = "dark"
    language: str = Field(default="tr", min_length=2, max_length=8)
    video_quality: Literal["auto", "1080p", "720p", "480p", "360p"] = "auto"
    autoplay: bool = True
    notifications: bool = True


class PendingAction(BaseModel):
    """An action that still has to reach the remote service."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, description="Unique id, used to remove the action.")
    type: str = Field(min_length=1, description="Dispatcher tag, e.g. 'like'.")
    payload: dict[str, Any] = Field(default_factory=dict)
    enqueued_at: float = Field(description="Clock time (seconds) of enqueue.")


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """Memoized producer result with its insertion time (seconds)."""

    data: Any
    inserted_at: float

    def is_fresh(self, now: float, ttl: float) -> bool:
        """Return True while ``now - inserted_at < ttl``."""
        return now - self.inserted_at < ttl


def _empty_map() -> Mapping[str, Any]:
    return MappingProxyType({})


_SCHEMA: dict[str, tuple[type, ...]] = {
    "user": (Mapping, type(None)),
    "videos": (Mapping,),
    "liked_videos": (AbstractSet, list, tuple),
    "saved_videos": (AbstractSet, list, tuple),
    "media_indexes": (Mapping,),
    "online": (bool,),
    "pending_actions": (list, tuple),
    "cache": (Mapping,),
    "ui": (UIPreferences, Mapping),
}


def _freeze_mapping(value: Mapping[str, Any]) -> Mapping[str, Any]:
    if isinstance(value, MappingProxyType):
        return value
    return MappingProxyType(dict(value))


def _freeze_members(name: str, value: Any) -> frozenset[Any]:
    if isinstance(value, frozenset):
        return value
    try:
        return frozenset(value)
    except TypeError as exc:
        raise StateValidationError(name, f"members must be hashable ({exc})") from exc


def _freeze_actions(value: list[Any] | tuple[Any, ...]) -> tuple[PendingAction, ...]:
    try:
        return tuple(
            item if isinstance(item, PendingAction) else PendingAction.model_validate(item)
            for item in value
        )
    except ValidationError as exc:
        raise StateValidationError("pending_actions", str(exc)) from exc


def _freeze_cache(value: Mapping[str, Any]) -> Mapping[str, CacheEntry]:
    if isinstance(value, MappingProxyType):
        return value
    entries: dict[str, CacheEntry] = {}
    for key, entry in value.items():
        if isinstance(entry, CacheEntry):
            entries[key] = entry
        elif isinstance(entry, Mapping) and "data" in entry and "inserted_at" in entry:
            entries[key] = CacheEntry(data=entry["data"], inserted_at=float(entry["inserted_at"]))
        else:
            raise StateValidationError("cache", f"entry '{key}' is not a cache entry")
    return MappingProxyType(entries)


def _freeze_ui(value: UIPreferences | Mapping[str, Any]) -> UIPreferences:
    if isinstance(value, UIPreferences):
        return value
    try:
        return UIPreferences.model_validate(dict(value))
    except ValidationError as exc:
        raise StateValidationError("ui", str(exc)) from exc


@dataclass(frozen=True, slots=True)
class Snapshot:
    """
    Immutable record of every application-state field.

    Instances are validated and frozen on construction; build successors with
    :func:`merge_fields` (or :meth:`evolve`) rather than mutating.
    """

    user: Mapping[str, Any] | None = None
    videos: Mapping[str, Any] = field(default_factory=_empty_map)
    liked_videos: frozenset[str] = frozenset()
    saved_videos: frozenset[str] = frozenset()
    media_indexes: Mapping[str, int] = field(default_factory=_empty_map)
    online: bool = True
    pending_actions: tuple[PendingAction, ...] = ()
    cache: Mapping[str, CacheEntry] = field(default_factory=_empty_map)
    ui: UIPreferences = field(default_factory=UIPreferences)

    def __post_init__(self) -> None:
        validate_fields({name: getattr(self, name) for name in FIELD_NAMES})

        if self.user is not None:
            object.__setattr__(self, "user", _freeze_mapping(self.user))
        object.__setattr__(self, "videos", _freeze_mapping(self.videos))
        object.__setattr__(self, "liked_videos", _freeze_members("liked_videos", self.liked_videos))
        object.__setattr__(self, "saved_videos", _freeze_members("saved_videos", self.saved_videos))
        object.__setattr__(self, "media_indexes", _freeze_mapping(self.media_indexes))
        object.__setattr__(self, "pending_actions", _freeze_actions(self.pending_actions))
        object.__setattr__(self, "cache", _freeze_cache(self.cache))
        object.__setattr__(self, "ui", _freeze_ui(self.ui))

    def fields(self) -> dict[str, Any]:
        """Return a shallow name -> value dict of all fields."""
        return {name: getattr(self, name) for name in FIELD_NAMES}

    def evolve(self, updates: Mapping[str, Any]) -> Snapshot:
        """Return a new snapshot with ``updates`` merged over this one."""
        return merge_fields(self, updates)


def validate_fields(candidate: Mapping[str, Any]) -> None:
    """
    Check required presence and coarse type of every schema field.

    Raises
    ------
    StateValidationError
        On the first missing or mistyped field.
    """
    for name, kinds in _SCHEMA.items():
        if name not in candidate:
            raise StateValidationError(name, "required field is missing")
        value = candidate[name]
        if not isinstance(value, kinds):
            expected = " | ".join(k.__name__ for k in kinds)
            raise StateValidationError(name, f"expected {expected}, got {type(value).__name__}")


def merge_fields(current: Snapshot, updates: Snapshot | Mapping[str, Any]) -> Snapshot:
    """Build the successor of ``current`` with ``updates`` applied on top.

    ``updates`` is either a full replacement :class:`Snapshot` or a partial
    mapping of field names to new values. Unknown field names are rejected.
    """
    if isinstance(updates, Snapshot):
        return updates
    if not isinstance(updates, Mapping):
        raise StateValidationError(
            "*", f"updater must produce a mapping of fields, got {type(updates).__name__}"
        )
    unknown = sorted(set(updates) - set(FIELD_NAMES))
    if unknown:
        raise StateValidationError(str(unknown[0]), "unknown state field")
    return Snapshot(**{**current.fields(), **updates})


__all__ = [
    "FIELD_NAMES",
    "PERSISTED_FIELDS",
    "CacheEntry",
    "PendingAction",
    "Snapshot",
    "UIPreferences",
    "merge_fields",
    "validate_fields",
]
