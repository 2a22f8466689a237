"""
Durable queue of actions waiting for connectivity.

Actions are stored in the snapshot's ``pending_actions`` field (so the UI can
observe them) and written to durable storage immediately after every change.

Replay rules
------------
- Actions are replayed strictly in enqueue order, one at a time.
- A successful action is removed (by id) through a mutation before the next
  one is attempted.
- The first failure halts the replay. The failed action and everything after
  it stay queued for the next trigger. Delivery is therefore at-least-once.
- Only one replay runs at a time; overlapping triggers wait their turn.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from flowstate.core.errors import ReplayError
from flowstate.core.remote import RemoteDispatcher
from flowstate.core.settings import get_logger
from flowstate.core.state.scheduler import MutationScheduler
from flowstate.core.state.snapshot import PendingAction, Snapshot
from flowstate.core.state.storage import DebouncedPersister

logger = get_logger(__name__)


def _new_action_id() -> str:
    return uuid.uuid4().hex


@dataclass(slots=True)
class ReplayReport:
    """Outcome of one :meth:`OfflineQueue.replay_all` run."""

    replayed: list[PendingAction] = field(default_factory=list)
    error: ReplayError | None = None
    remaining: tuple[PendingAction, ...] = ()

    @property
    def ok(self) -> bool:
        """True when the run finished without a failed action."""
        return self.error is None

    @property
    def halted_on(self) -> PendingAction | None:
        return self.error.action if self.error is not None else None


class OfflineQueue:
    """Record actions for later delivery and replay them in order."""

    def __init__(
        self,
        scheduler: MutationScheduler,
        persister: DebouncedPersister,
        dispatcher: RemoteDispatcher,
        *,
        clock: Callable[[], float] = time.time,
        id_factory: Callable[[], str] = _new_action_id,
    ) -> None:
        self._scheduler = scheduler
        self._persister = persister
        self._dispatcher = dispatcher
        self._clock = clock
        self._id_factory = id_factory
        self._replay_lock = asyncio.Lock()

    @property
    def pending(self) -> tuple[PendingAction, ...]:
        """Actions currently queued, oldest first."""
        return self._scheduler.current.pending_actions

    @property
    def replaying(self) -> bool:
        return self._replay_lock.locked()

    async def enqueue(self, action_type: str, payload: Mapping[str, Any]) -> PendingAction:
        """Append a new action to the queue and persist the queue."""
        action = PendingAction(
            id=self._id_factory(),
            type=action_type,
            payload=dict(payload),
            enqueued_at=self._clock(),
        )

        def append(state: Snapshot) -> dict[str, Any]:
            return {"pending_actions": (*state.pending_actions, action)}

        await self._scheduler.submit(append)
        await self._persister.write_field("pending_actions")
        logger.info("Queued %s action %s", action.type, action.id)
        return action

    async def remove(self, action_id: str) -> None:
        """Drop the action with ``action_id`` from the queue (if present)."""

        def drop(state: Snapshot) -> dict[str, Any]:
            return {
                "pending_actions": tuple(a for a in state.pending_actions if a.id != action_id)
            }

        await self._scheduler.submit(drop)

    async def replay_all(self) -> ReplayReport:
        """
        Replay the queued actions in order, stopping at the first failure.

        Returns
        -------
        ReplayReport
            Replayed actions, the :class:`ReplayError` that halted the run (if
            any) and the actions still queued afterwards.
        """
        async with self._replay_lock:
            report = ReplayReport()
            for action in self.pending:
                try:
                    await self._dispatcher.call(action.type, action.payload)
                except Exception as exc:
                    report.error = ReplayError(action, exc)
                    logger.warning("%s; halting replay", report.error)
                    break
                await self.remove(action.id)
                report.replayed.append(action)

            await self._persister.write_field("pending_actions")
            report.remaining = self.pending
            if report.replayed:
                logger.info(
                    "Replayed %d action(s), %d remaining",
                    len(report.replayed),
                    len(report.remaining),
                )
            return report


__all__ = ["OfflineQueue", "ReplayReport"]
