"""Snapshot storage, change detection, subscriptions and the mutation scheduler."""

from __future__ import annotations

from .changes import changed_fields, values_equal
from .scheduler import MutationScheduler, Updater
from .snapshot import (
    FIELD_NAMES,
    PERSISTED_FIELDS,
    CacheEntry,
    PendingAction,
    Snapshot,
    UIPreferences,
)
from .storage import DebouncedPersister, JsonFileStorage, MemoryStorage, PersistenceAdapter
from .subscriptions import SubscriptionRegistry, Topic
from .trace import HistoryEntry

__all__ = [
    "FIELD_NAMES",
    "PERSISTED_FIELDS",
    "CacheEntry",
    "DebouncedPersister",
    "HistoryEntry",
    "JsonFileStorage",
    "MemoryStorage",
    "MutationScheduler",
    "PendingAction",
    "PersistenceAdapter",
    "Snapshot",
    "SubscriptionRegistry",
    "Topic",
    "UIPreferences",
    "Updater",
    "changed_fields",
    "values_equal",
]
