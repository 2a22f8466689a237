"""Shared fixtures: a controllable clock, a scripted remote dispatcher and engines."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator, Callable, Mapping
from typing import Any

import pytest
import pytest_asyncio

from flowstate.core.engine import StateEngine
from flowstate.core.errors import RemoteCallError
from flowstate.core.settings import Settings
from flowstate.core.state.storage import MemoryStorage


class FakeClock:
    """Manually advanced clock returning float seconds."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedDispatcher:
    """
    In-memory stand-in for the remote service.

    - Every call is recorded as ``(action_type, payload)``.
    - ``fail_when(action_type, payload)`` returning True makes the call raise.
    - ``gate`` (when set) blocks every call until the event is set.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.responses: dict[str, Any] = {}
        self.fail_when: Callable[[str, Mapping[str, Any]], bool] | None = None
        self.gate: asyncio.Event | None = None
        self.closed = False

    async def call(self, action_type: str, payload: Mapping[str, Any]) -> Any:
        self.calls.append((action_type, dict(payload)))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_when is not None and self.fail_when(action_type, payload):
            raise RemoteCallError("service unavailable", action_type=action_type, status_code=503)
        return self.responses.get(action_type)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def dispatcher() -> ScriptedDispatcher:
    return ScriptedDispatcher()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def test_settings() -> Settings:
    """Settings with a short debounce so durable writes happen quickly."""
    return Settings(FLOWSTATE_ENV="test", FLOWSTATE_PERSIST_DEBOUNCE=0.01)


@pytest_asyncio.fixture
async def engine(
    test_settings: Settings,
    storage: MemoryStorage,
    dispatcher: ScriptedDispatcher,
    clock: FakeClock,
) -> AsyncGenerator[StateEngine, None]:
    """A started engine over in-memory storage and the scripted dispatcher."""
    eng = StateEngine(test_settings, storage=storage, dispatcher=dispatcher, clock=clock)
    await eng.start()
    yield eng
    await eng.aclose()
