"""
Subscription registry keyed by state topic.

Observers register under a :class:`Topic` (one per snapshot field) or under
the reserved :attr:`Topic.ALL` wildcard.

- Field observers are called as ``callback(current_value, previous_value, topic)``
  for every commit that changed their field.
- Wildcard observers are called as ``callback(current, previous, changed)``
  for every commit, whether or not anything changed.

A callback that raises is isolated: the failure is wrapped in a
:class:`SubscriberError`, logged, and notification continues.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from enum import StrEnum
from typing import Any

from flowstate.core.errors import SubscriberError
from flowstate.core.settings import get_logger

from .snapshot import Snapshot

logger = get_logger(__name__)


class Topic(StrEnum):
    """Notification topics: one per snapshot field plus the wildcard."""

    USER = "user"
    VIDEOS = "videos"
    LIKED_VIDEOS = "liked_videos"
    SAVED_VIDEOS = "saved_videos"
    MEDIA_INDEXES = "media_indexes"
    ONLINE = "online"
    PENDING_ACTIONS = "pending_actions"
    CACHE = "cache"
    UI = "ui"
    ALL = "*"


Callback = Callable[..., Any]
Unsubscribe = Callable[[], None]


class SubscriptionRegistry:
    """Map topics to observer callbacks and fan commits out to them."""

    __slots__ = ("_subscribers",)

    def __init__(self) -> None:
        self._subscribers: dict[Topic, dict[Callback, None]] = {}

    def subscribe(self, topic: Topic | str, callback: Callback) -> Unsubscribe:
        """
        Register ``callback`` under ``topic``.

        Returns
        -------
        Callable[[], None]
            Removes just this callback; the topic entry is dropped once empty.

        Raises
        ------
        ValueError
            If ``topic`` names no known field and is not the wildcard.
        """
        key = Topic(topic)
        self._subscribers.setdefault(key, {})[callback] = None

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(key)
            if callbacks is None:
                return
            callbacks.pop(callback, None)
            if not callbacks:
                del self._subscribers[key]

        return unsubscribe

    def count(self, topic: Topic | str) -> int:
        """Number of callbacks registered under ``topic``."""
        return len(self._subscribers.get(Topic(topic), {}))

    def topics(self) -> tuple[Topic, ...]:
        """Topics that currently have at least one callback."""
        return tuple(self._subscribers)

    def clear(self) -> None:
        self._subscribers.clear()

    def notify(
        self,
        previous: Snapshot,
        current: Snapshot,
        changed: Sequence[str],
    ) -> list[SubscriberError]:
        """
        Invoke field observers for each changed field, then wildcard observers.

        Returns
        -------
        list[SubscriberError]
            One entry per callback that raised (already logged).
        """
        failures: list[SubscriberError] = []

        for name in changed:
            topic = Topic(name)
            for callback in tuple(self._subscribers.get(topic, ())):
                try:
                    callback(getattr(current, name), getattr(previous, name), topic)
                except Exception as exc:
                    failures.append(self._report(topic, exc))

        changed_fields = tuple(changed)
        for callback in tuple(self._subscribers.get(Topic.ALL, ())):
            try:
                callback(current, previous, changed_fields)
            except Exception as exc:
                failures.append(self._report(Topic.ALL, exc))

        return failures

    @staticmethod
    def _report(topic: Topic, exc: Exception) -> SubscriberError:
        error = SubscriberError(topic.value, exc)
        logger.error("%s", error, exc_info=exc)
        return error


__all__ = ["Callback", "SubscriptionRegistry", "Topic", "Unsubscribe"]
