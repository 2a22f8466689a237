"""Per-field JSON encoding of snapshot values for durable storage.

One durable record is kept per top-level field. Sets are stored as sorted
lists, mappings as plain objects, Pydantic records via ``model_dump``.
``decode_field`` is the inverse and returns values the :class:`Snapshot`
constructor accepts.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from .snapshot import FIELD_NAMES, CacheEntry, PendingAction, Snapshot, UIPreferences


def encode_field(name: str, value: Any) -> Any:
    """Return the JSON-safe representation of field ``name``."""
    if name not in FIELD_NAMES:
        raise KeyError(name)
    if name in ("liked_videos", "saved_videos"):
        return sorted(value, key=str)
    if name == "pending_actions":
        return [action.model_dump(mode="json") for action in value]
    if name == "ui":
        return value.model_dump(mode="json")
    if name == "cache":
        return {
            key: {"data": entry.data, "inserted_at": entry.inserted_at}
            for key, entry in value.items()
        }
    if name == "user":
        return None if value is None else dict(value)
    if isinstance(value, Mapping):
        return dict(value)
    return value


def decode_field(name: str, raw: Any) -> Any:
    """Turn a stored JSON value back into a field value.

    Raises
    ------
    ValueError
        If ``raw`` has the wrong JSON shape for the field.
    """
    if name in ("liked_videos", "saved_videos"):
        if not isinstance(raw, list):
            raise ValueError(f"{name}: expected a list, got {type(raw).__name__}")
        return frozenset(str(item) for item in raw)
    if name == "media_indexes":
        if not isinstance(raw, dict):
            raise ValueError(f"{name}: expected an object, got {type(raw).__name__}")
        return {str(key): int(index) for key, index in raw.items()}
    if name == "pending_actions":
        if not isinstance(raw, list):
            raise ValueError(f"{name}: expected a list, got {type(raw).__name__}")
        return tuple(PendingAction.model_validate(item) for item in raw)
    if name == "ui":
        if not isinstance(raw, dict):
            raise ValueError(f"{name}: expected an object, got {type(raw).__name__}")
        # Partial records are allowed; check the keys against the defaults.
        UIPreferences.model_validate({**UIPreferences().model_dump(), **raw})
        return raw
    if name == "cache":
        if not isinstance(raw, dict):
            raise ValueError(f"{name}: expected an object, got {type(raw).__name__}")
        return {
            key: CacheEntry(data=entry["data"], inserted_at=float(entry["inserted_at"]))
            for key, entry in raw.items()
        }
    if name in ("user", "videos"):
        if raw is not None and not isinstance(raw, dict):
            raise ValueError(f"{name}: expected an object, got {type(raw).__name__}")
        return raw
    if name == "online":
        return bool(raw)
    raise KeyError(name)


def encode_snapshot(snapshot: Snapshot) -> dict[str, Any]:
    """Encode every field of ``snapshot`` (used by inspection surfaces)."""
    return {name: encode_field(name, getattr(snapshot, name)) for name in FIELD_NAMES}


def merge_stored(current: Snapshot, stored: Mapping[str, Any]) -> dict[str, Any]:
    """
    Build the partial update that layers decoded stored fields over ``current``.

    - ``user`` keeps the current value when nothing usable was stored.
    - ``ui`` merges stored preference keys over the current preferences.
    - Every other field is replaced by its stored value.
    """
    updates: dict[str, Any] = {}
    for name, value in stored.items():
        if name == "user":
            updates[name] = value if value else current.user
        elif name == "ui":
            base = current.ui.model_dump()
            updates[name] = UIPreferences.model_validate({**base, **value})
        else:
            updates[name] = value
    return updates


__all__ = ["decode_field", "encode_field", "encode_snapshot", "merge_stored"]
