"""Durable key/value persistence for snapshot fields.

The engine only needs a small async get/set contract
(:class:`PersistenceAdapter`). Two adapters ship with the package:

- :class:`MemoryStorage`: JSON strings held in a dict (tests, ephemeral runs).
- :class:`JsonFileStorage`: one ``<key>.json`` file per key under a directory
  (default: ``FLOWSTATE_STATE_DIR`` or ``artifacts/state/``).

:class:`DebouncedPersister` sits between the scheduler and an adapter. Every
commit re-arms a single cancellable timer; when the timer finally fires, each
persisted field is written once under ``prefix + field_name``. Write failures
are logged as :class:`PersistenceError` and never reach mutation callers; the
in-memory state stays committed and the next successful write catches up.
"""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from flowstate.core.errors import PersistenceError
from flowstate.core.settings import get_logger, load_settings

from .codec import decode_field, encode_field
from .snapshot import PERSISTED_FIELDS, Snapshot

logger = get_logger(__name__)


@runtime_checkable
class PersistenceAdapter(Protocol):
    """Best-effort durable storage for JSON-serializable values."""

    async def read(self, key: str) -> Any | None: ...

    async def write(self, key: str, value: Any) -> None: ...


class MemoryStorage:
    """Volatile adapter that keeps JSON-encoded values in a dict."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._items: dict[str, str] = {}
        for key, value in (initial or {}).items():
            self._items[key] = json.dumps(value)

    async def read(self, key: str) -> Any | None:
        item = self._items.get(key)
        return json.loads(item) if item is not None else None

    async def write(self, key: str, value: Any) -> None:
        # Encoding here surfaces non-serializable values the same way a real backend would.
        self._items[key] = json.dumps(value)

    def keys(self) -> tuple[str, ...]:
        """Return the stored keys as a sorted tuple (stable for tests)."""
        return tuple(sorted(self._items))

    def raw(self, key: str) -> str | None:
        return self._items.get(key)


def _default_dir() -> Path:
    """Return the configured base directory for state files."""
    return load_settings().state_dir


class JsonFileStorage:
    """Persist each key as a pretty-printed JSON file."""

    def __init__(self, base_dir: Path | None = None) -> None:
        self.base_dir: Path = base_dir if base_dir is not None else _default_dir()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        """Return the file path backing ``key``."""
        safe_key = key.replace("/", "_").replace("\\", "_")
        return self.base_dir / f"{safe_key}.json"

    async def read(self, key: str) -> Any | None:
        return await asyncio.to_thread(self._read_sync, self.path_for(key))

    async def write(self, key: str, value: Any) -> None:
        await asyncio.to_thread(self._write_sync, self.path_for(key), value)

    @staticmethod
    def _read_sync(path: Path) -> Any | None:
        if not path.is_file():
            return None
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)

    @staticmethod
    def _write_sync(path: Path, value: Any) -> None:
        # Temp file in the same directory, then os.replace: readers see the old or new file.
        text = json.dumps(value, ensure_ascii=False, indent=2) + "\n"
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise


class DebouncedPersister:
    """Coalesce commits into one write per persisted field."""

    def __init__(
        self,
        adapter: PersistenceAdapter,
        source: Callable[[], Snapshot],
        *,
        prefix: str = "flowstate_",
        delay: float = 1.0,
        fields: Iterable[str] = PERSISTED_FIELDS,
    ) -> None:
        self._adapter = adapter
        self._source = source
        self._prefix = prefix
        self._delay = delay
        self._fields = tuple(fields)
        self._timer: asyncio.TimerHandle | None = None
        self._inflight: set[asyncio.Task[list[PersistenceError]]] = set()
        self.writes = 0

    @property
    def adapter(self) -> PersistenceAdapter:
        return self._adapter

    @property
    def armed(self) -> bool:
        """True while a debounced flush is waiting to fire."""
        return self._timer is not None

    def key(self, name: str) -> str:
        """Storage key of field ``name``."""
        return f"{self._prefix}{name}"

    # ------------------------------- Scheduling -------------------------------

    def schedule(self, *_: object) -> None:
        """(Re)arm the debounce timer; usable directly as a commit hook."""
        if self._timer is not None:
            self._timer.cancel()
        self._timer = asyncio.get_running_loop().call_later(self._delay, self._fire)

    def _fire(self) -> None:
        self._timer = None
        task = asyncio.get_running_loop().create_task(self.flush())
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def aclose(self, *, flush: bool = True) -> None:
        """Cancel the timer, wait for in-flight writes and optionally flush."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._inflight:
            await asyncio.gather(*tuple(self._inflight), return_exceptions=True)
        if flush:
            await self.flush()

    # ------------------------------- Read / write -----------------------------

    async def flush(self, fields: Iterable[str] | None = None) -> list[PersistenceError]:
        """Write ``fields`` (default: all persisted fields) from the current snapshot."""
        snapshot = self._source()
        failures: list[PersistenceError] = []
        for name in fields if fields is not None else self._fields:
            error = await self.write_field(name, snapshot)
            if error is not None:
                failures.append(error)
        return failures

    async def write_field(
        self, name: str, snapshot: Snapshot | None = None
    ) -> PersistenceError | None:
        """Write a single field immediately; return the logged error, if any."""
        snap = snapshot if snapshot is not None else self._source()
        key = self.key(name)
        try:
            await self._adapter.write(key, encode_field(name, getattr(snap, name)))
        except Exception as exc:
            error = PersistenceError(key, exc)
            logger.error("%s", error)
            return error
        self.writes += 1
        return None

    async def load(self) -> dict[str, Any]:
        """
        Read and decode every persisted field.

        Fields that are absent are omitted. Fields that cannot be read or
        decoded are logged and omitted, so one bad record never blocks startup.
        """
        stored: dict[str, Any] = {}
        for name in self._fields:
            key = self.key(name)
            try:
                raw = await self._adapter.read(key)
            except Exception as exc:
                logger.error("%s", PersistenceError(key, exc))
                continue
            if raw is None:
                continue
            try:
                stored[name] = decode_field(name, raw)
            except (ValueError, TypeError, KeyError) as exc:
                logger.warning("Ignoring stored value for '%s': %s", key, exc)
        return stored


__all__ = ["DebouncedPersister", "JsonFileStorage", "MemoryStorage", "PersistenceAdapter"]
