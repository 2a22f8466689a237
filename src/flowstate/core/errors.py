"""Error kinds raised or reported by the state engine.

Every failure path leaves the in-memory snapshot in its last committed state.
Only :class:`StateValidationError` and :class:`RemoteCallError` reach the
caller as exceptions; the other kinds are logged and returned as values by
the component that caught them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from flowstate.core.state.snapshot import PendingAction


class StateEngineError(Exception):
    """Base class for all engine errors."""


class StateValidationError(StateEngineError):
    """A candidate snapshot failed the schema check; the mutation was rejected."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"invalid state for '{field}': {message}")
        self.field = field
        self.message = message


class SubscriberError(StateEngineError):
    """An observer callback raised while being notified of a commit."""

    def __init__(self, topic: str, original: BaseException) -> None:
        super().__init__(f"subscriber for '{topic}' failed: {original!r}")
        self.topic = topic
        self.original = original


class PersistenceError(StateEngineError):
    """A durable write or read against the persistence adapter failed."""

    def __init__(self, key: str, original: BaseException) -> None:
        super().__init__(f"persistence failed for '{key}': {original!r}")
        self.key = key
        self.original = original


class RemoteCallError(StateEngineError):
    """The remote service rejected or could not receive an action."""

    def __init__(
        self,
        message: str,
        *,
        action_type: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.action_type = action_type
        self.status_code = status_code


class ReplayError(StateEngineError):
    """A queued action failed during replay; it stays queued for the next trigger."""

    def __init__(self, action: PendingAction, original: BaseException) -> None:
        super().__init__(f"replay of {action.type} ({action.id}) failed: {original}")
        self.action = action
        self.original = original

    @property
    def details(self) -> dict[str, Any]:
        return {"id": self.action.id, "type": self.action.type, "error": str(self.original)}


__all__ = [
    "StateEngineError",
    "StateValidationError",
    "SubscriberError",
    "PersistenceError",
    "RemoteCallError",
    "ReplayError",
]
