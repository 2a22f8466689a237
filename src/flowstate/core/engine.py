"""
State engine facade.

:class:`StateEngine` wires the building blocks together and exposes the
consumer-facing surface:

- ``current`` / ``submit`` / ``subscribe``: snapshot access and mutations,
- ``get_or_compute`` / ``invalidate``: TTL cache,
- ``enqueue`` / ``replay_all``: offline queue,
- ``toggle_like`` / ``toggle_save``: optimistic domain operations,
- ``set_online`` / ``watch_connectivity``: connectivity transitions.

Lifecycle
---------
>>> async with StateEngine(storage=MemoryStorage()) as engine:   # doctest: +SKIP
...     await engine.toggle_like("42")

``start()`` loads persisted fields in one mutation; ``aclose()`` drains the
mutation queue, cancels the debounce timer, flushes once more and closes an
owned HTTP client.

Optimistic toggle protocol
--------------------------
1. Commit the flipped membership immediately. The flip reads the snapshot it
   is applied to, so concurrent toggles alternate.
2. If online, call the remote service; if offline, enqueue a pending action.
3. If the remote call fails, commit a compensating mutation undoing this
   flip (unless a later mutation already changed it) and re-raise the error.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterable, Callable, Mapping
from types import TracebackType
from typing import Any, TypeVar

from flowstate.core.cache import CacheLayer, Producer
from flowstate.core.errors import StateValidationError
from flowstate.core.offline import OfflineQueue, ReplayReport
from flowstate.core.remote import HttpRemoteDispatcher, RemoteDispatcher, parse_video_feed
from flowstate.core.settings import Settings, get_logger, load_settings
from flowstate.core.state.codec import merge_stored
from flowstate.core.state.scheduler import MutationScheduler, Updater
from flowstate.core.state.snapshot import PendingAction, Snapshot, UIPreferences
from flowstate.core.state.storage import (
    DebouncedPersister,
    JsonFileStorage,
    PersistenceAdapter,
)
from flowstate.core.state.subscriptions import Callback, SubscriptionRegistry, Topic, Unsubscribe
from flowstate.core.state.trace import HistoryEntry

logger = get_logger(__name__)

T = TypeVar("T")

_MEMBERSHIP_ACTIONS: dict[str, tuple[str, str]] = {
    # field -> (action type, payload flag)
    "liked_videos": ("like", "liked"),
    "saved_videos": ("save", "saved"),
}


class StateEngine:
    """Single authoritative application state with cache and offline replay."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        storage: PersistenceAdapter | None = None,
        dispatcher: RemoteDispatcher | None = None,
        initial: Snapshot | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings if settings is not None else load_settings()
        self._clock = clock

        self._registry = SubscriptionRegistry()
        self._scheduler = MutationScheduler(
            initial,
            registry=self._registry,
            history_limit=self.settings.history_limit,
            clock=clock,
        )
        self._storage: PersistenceAdapter = (
            storage if storage is not None else JsonFileStorage(self.settings.state_dir)
        )
        self._persister = DebouncedPersister(
            self._storage,
            lambda: self._scheduler.current,
            prefix=self.settings.storage_prefix,
            delay=self.settings.persist_debounce,
        )
        self._scheduler.add_commit_hook(self._persister.schedule)

        self._owned_dispatcher: HttpRemoteDispatcher | None = None
        if dispatcher is None:
            self._owned_dispatcher = HttpRemoteDispatcher.from_settings(self.settings)
            dispatcher = self._owned_dispatcher
        self._dispatcher: RemoteDispatcher = dispatcher

        self._cache = CacheLayer(
            self._scheduler, default_ttl=self.settings.cache_ttl, clock=clock
        )
        self._queue = OfflineQueue(self._scheduler, self._persister, dispatcher, clock=clock)
        self._background: set[asyncio.Task[Any]] = set()
        self._started = False

    # ------------------------------- Lifecycle -------------------------------

    async def __aenter__(self) -> StateEngine:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def start(self) -> Snapshot:
        """Merge persisted fields over the defaults (one mutation)."""
        snapshot = await self.reload_from_storage()
        self._started = True
        return snapshot

    async def reload_from_storage(self) -> Snapshot:
        """Re-read durable storage and merge it into the current snapshot."""
        stored = await self._persister.load()
        try:
            return await self._scheduler.submit(lambda state: merge_stored(state, stored))
        except StateValidationError as exc:
            logger.error("Stored state rejected, keeping current snapshot: %s", exc)
            return self._scheduler.current

    async def aclose(self) -> None:
        """Drain work, flush storage and release owned resources."""
        if self._background:
            await asyncio.gather(*tuple(self._background), return_exceptions=True)
        await self._scheduler.aclose()
        await self._persister.aclose(flush=self._started)
        if self._owned_dispatcher is not None:
            await self._owned_dispatcher.aclose()
        self._registry.clear()

    # ------------------------------- Core surface ----------------------------

    @property
    def current(self) -> Snapshot:
        """Read-only view of the current snapshot."""
        return self._scheduler.current

    @property
    def scheduler(self) -> MutationScheduler:
        return self._scheduler

    @property
    def persister(self) -> DebouncedPersister:
        return self._persister

    @property
    def cache(self) -> CacheLayer:
        return self._cache

    @property
    def queue(self) -> OfflineQueue:
        return self._queue

    @property
    def dispatcher(self) -> RemoteDispatcher:
        return self._dispatcher

    def history(self) -> tuple[HistoryEntry, ...]:
        return self._scheduler.history()

    def submit(self, updater: Updater) -> asyncio.Future[Snapshot]:
        """Queue a mutation; see :meth:`MutationScheduler.submit`."""
        return self._scheduler.submit(updater)

    def subscribe(self, topic: Topic | str, callback: Callback) -> Unsubscribe:
        """Register an observer; see :meth:`SubscriptionRegistry.subscribe`."""
        return self._registry.subscribe(topic, callback)

    async def get_or_compute(self, key: str, ttl: float | None, producer: Producer[T]) -> T:
        return await self._cache.get_or_compute(key, ttl, producer)

    async def invalidate(self, pattern: str) -> tuple[str, ...]:
        return await self._cache.invalidate(pattern)

    async def enqueue(self, action_type: str, payload: Mapping[str, Any]) -> PendingAction:
        return await self._queue.enqueue(action_type, payload)

    async def replay_all(self) -> ReplayReport:
        return await self._queue.replay_all()

    # ------------------------------- Connectivity ----------------------------

    async def set_online(self, online: bool) -> ReplayReport | None:
        """
        Record a connectivity transition.

        Going online triggers a replay of the offline queue; the report is
        returned. Going offline returns None.
        """
        was_online = self.current.online
        await self._scheduler.submit({"online": bool(online)})
        if online != was_online:
            logger.info("Connectivity changed: %s", "online" if online else "offline")
        if not online:
            return None
        return await self._queue.replay_all()

    def on_connectivity_change(self, online: bool) -> asyncio.Task[ReplayReport | None]:
        """Handle a probe event without blocking the caller."""
        task = asyncio.get_running_loop().create_task(self.set_online(online))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def watch_connectivity(self, events: AsyncIterable[bool]) -> None:
        """Consume a stream of online/offline events until it ends."""
        async for online in events:
            await self.set_online(online)

    # ------------------------------- Domain operations -----------------------

    def get_video(self, video_id: str) -> Any | None:
        return self.current.videos.get(video_id)

    def is_liked(self, video_id: str) -> bool:
        return video_id in self.current.liked_videos

    def is_saved(self, video_id: str) -> bool:
        return video_id in self.current.saved_videos

    def media_index(self, video_id: str) -> int:
        """Selected media sub-index of a video (0 when never set)."""
        return int(self.current.media_indexes.get(video_id, 0))

    async def set_media_index(self, video_id: str, index: int) -> Snapshot:
        """Select a media sub-index and write the index map immediately."""
        snapshot = await self._scheduler.submit(
            lambda state: {"media_indexes": {**state.media_indexes, video_id: int(index)}}
        )
        await self._persister.write_field("media_indexes")
        return snapshot

    @property
    def ui(self) -> UIPreferences:
        return self.current.ui

    async def update_ui(self, **preferences: Any) -> UIPreferences:
        """Merge ``preferences`` into the UI record (validated)."""
        snapshot = await self._scheduler.submit(
            lambda state: {"ui": {**state.ui.model_dump(), **preferences}}
        )
        return snapshot.ui

    async def set_user(self, profile: Mapping[str, Any] | None) -> Snapshot:
        return await self._scheduler.submit({"user": profile})

    async def get_videos(self, force_refresh: bool = False) -> Mapping[str, Any]:
        """
        Return the video feed keyed by id, cached for ``settings.videos_ttl``.

        A fresh fetch is also committed into the snapshot's ``videos`` field.
        """
        if force_refresh:
            await self.invalidate("videos")

        async def fetch() -> dict[str, Any]:
            response = await self._dispatcher.call("list_videos", {})
            videos = parse_video_feed(response)
            await self._scheduler.submit({"videos": videos})
            return videos

        return await self._cache.get_or_compute("videos", self.settings.videos_ttl, fetch)

    async def toggle_like(self, video_id: str) -> bool:
        """Flip the like state of ``video_id`` optimistically; return the new state."""
        liked = await self._toggle_membership("liked_videos", video_id)
        await self.invalidate(f"video_{video_id}")
        return liked

    async def toggle_save(self, video_id: str) -> bool:
        """Flip the saved state of ``video_id`` optimistically; return the new state."""
        return await self._toggle_membership("saved_videos", video_id)

    async def _toggle_membership(self, field: str, item_id: str) -> bool:
        action_type, flag = _MEMBERSHIP_ACTIONS[field]
        observed: dict[str, bool] = {}

        def flip(state: Snapshot) -> dict[str, Any]:
            members: frozenset[str] = getattr(state, field)
            observed["member"] = member = item_id not in members
            return {field: members | {item_id} if member else members - {item_id}}

        await self._scheduler.submit(flip)
        desired = observed["member"]

        payload = {"video_id": item_id, flag: desired}
        try:
            if self.current.online:
                await self._dispatcher.call(action_type, payload)
            else:
                await self._queue.enqueue(action_type, payload)
        except Exception:
            logger.warning("%s of %s failed; rolling back", action_type, item_id)
            await self._scheduler.submit(_revert(field, item_id, desired))
            raise
        return desired


def _revert(field: str, item_id: str, applied: bool) -> Callable[[Snapshot], dict[str, Any]]:
    """
    Updater undoing a flip that set ``item_id`` membership to ``applied``.

    A no-op when a later mutation already changed that membership, so a
    failed toggle never overwrites another caller's flip.
    """

    def apply(state: Snapshot) -> dict[str, Any]:
        members: frozenset[str] = getattr(state, field)
        if (item_id in members) != applied:
            return {}
        return {field: members - {item_id} if applied else members | {item_id}}

    return apply


__all__ = ["StateEngine"]
