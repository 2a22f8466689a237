"""
Serialized mutation scheduler.

Every state transition goes through :meth:`MutationScheduler.submit`. A
submission is appended to an ``asyncio.Queue`` and a single worker task runs
the queued bodies one at a time, in submission order. The body therefore
never runs inside the caller's synchronous stack, and it never interleaves
with another body: commit K+1 always starts from commit K's snapshot.

One run of a submission:

1. compute candidate fields (call the updater, or take the replacement value),
2. build the next snapshot, which validates it (:class:`StateValidationError`
   rejects the submission and leaves state unchanged),
3. append a bounded :class:`HistoryEntry` and publish the snapshot,
4. detect changed fields and notify subscribers,
5. invoke commit hooks (e.g. schedule a debounced durable write).

Submissions cannot be revoked. If the awaiting caller is cancelled, the
mutation still runs; only the result is dropped.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from flowstate.core.settings import get_logger

from .changes import changed_fields
from .snapshot import Snapshot, merge_fields
from .subscriptions import SubscriptionRegistry
from .trace import HistoryEntry

logger = get_logger(__name__)

Fields = Mapping[str, Any]
Updater = Snapshot | Fields | Callable[[Snapshot], Snapshot | Fields]
CommitHook = Callable[[HistoryEntry], None]


@dataclass(slots=True)
class _Submission:
    updater: Updater
    future: asyncio.Future[Snapshot]


class MutationScheduler:
    """Own the current snapshot and apply submitted mutations one by one."""

    def __init__(
        self,
        initial: Snapshot | None = None,
        *,
        registry: SubscriptionRegistry | None = None,
        history_limit: int = 50,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._current: Snapshot = initial if initial is not None else Snapshot()
        self._registry = registry if registry is not None else SubscriptionRegistry()
        self._history: deque[HistoryEntry] = deque(maxlen=history_limit)
        self._clock = clock
        self._hooks: list[CommitHook] = []
        self._queue: asyncio.Queue[_Submission] | None = None
        self._worker: asyncio.Task[None] | None = None
        self._commits = 0

    # ------------------------------- Accessors -------------------------------

    @property
    def current(self) -> Snapshot:
        """The snapshot published by the latest commit."""
        return self._current

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    @property
    def commits(self) -> int:
        """Total number of commits since construction (not bounded)."""
        return self._commits

    def history(self) -> tuple[HistoryEntry, ...]:
        """Return the retained history, oldest first."""
        return tuple(self._history)

    def add_commit_hook(self, hook: CommitHook) -> None:
        """Call ``hook(entry)`` after every commit, once subscribers were notified."""
        self._hooks.append(hook)

    # ------------------------------- Submit API ------------------------------

    def submit(self, updater: Updater) -> asyncio.Future[Snapshot]:
        """
        Queue a mutation and return a future of the committed snapshot.

        Parameters
        ----------
        updater :
            A replacement :class:`Snapshot`, a partial mapping of fields, or a
            pure function ``Snapshot -> Snapshot | partial fields`` evaluated
            against the snapshot current at the time the mutation runs.

        Returns
        -------
        asyncio.Future[Snapshot]
            Resolves with the new snapshot, or rejects with the validation
            error (or whatever the updater raised).
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Snapshot] = loop.create_future()
        queue = self._ensure_worker()
        queue.put_nowait(_Submission(updater, future))
        return future

    async def join(self) -> None:
        """Wait until every submission queued so far has run."""
        if self._queue is not None:
            await self._queue.join()

    async def aclose(self) -> None:
        """Drain queued submissions, then stop the worker task."""
        await self.join()
        worker, self._worker = self._worker, None
        self._queue = None
        if worker is not None:
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass

    # ------------------------------- Internals -------------------------------

    def _ensure_worker(self) -> asyncio.Queue[_Submission]:
        if self._queue is None:
            self._queue = asyncio.Queue()
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(
                self._drain(self._queue), name="flowstate-mutations"
            )
        return self._queue

    async def _drain(self, queue: asyncio.Queue[_Submission]) -> None:
        while True:
            submission = await queue.get()
            try:
                self._run(submission)
            finally:
                queue.task_done()

    def _run(self, submission: _Submission) -> None:
        future = submission.future
        previous = self._current
        try:
            updater = submission.updater
            fields = updater(previous) if callable(updater) else updater
            nxt = merge_fields(previous, fields)
        except Exception as exc:
            logger.warning("Mutation rejected: %s", exc)
            if not future.done():
                future.set_exception(exc)
            return

        changed = changed_fields(previous, nxt)
        entry = HistoryEntry(
            timestamp=self._clock(), previous=previous, current=nxt, changed=changed
        )
        self._history.append(entry)
        self._current = nxt
        self._commits += 1

        self._registry.notify(previous, nxt, changed)
        for hook in self._hooks:
            try:
                hook(entry)
            except Exception:
                logger.exception("Commit hook %r failed", hook)

        if not future.done():
            future.set_result(nxt)


__all__ = ["CommitHook", "MutationScheduler", "Updater"]
