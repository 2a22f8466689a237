# scripts/smoke.py
"""
Smoke Test Script for the FlowState engine.

Runs an offline -> online scenario end to end: optimistic toggles while
offline, queued actions, replay on reconnect, and a cached feed fetch.

Usage
-----
1. In-process fake remote (no network):
    $ python scripts/smoke.py

2. Against a real service, persisting to a directory:
    $ python scripts/smoke.py --base-url http://localhost:8080 --state-dir artifacts/state
"""

import argparse
import asyncio
import logging
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from flowstate.core.engine import StateEngine
from flowstate.core.remote import HttpRemoteDispatcher, RemoteDispatcher
from flowstate.core.settings import load_settings
from flowstate.core.state.storage import JsonFileStorage, MemoryStorage, PersistenceAdapter
from flowstate.core.state.subscriptions import Topic

load_dotenv(Path(".env"))

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)


class EchoRemote:
    """In-process remote that accepts every action and serves a tiny feed."""

    async def call(self, action_type: str, payload: Mapping[str, Any]) -> Any:
        print(f"   -> remote {action_type} {dict(payload)}")
        if action_type == "list_videos":
            return {"data": {"videos": [{"id": "1", "caption": "Demo"}]}}
        return {"ok": True}


async def scenario(storage: PersistenceAdapter, dispatcher: RemoteDispatcher) -> None:
    settings = load_settings().model_copy(update={"persist_debounce": 0.1})
    async with StateEngine(settings, storage=storage, dispatcher=dispatcher) as engine:
        engine.subscribe(
            Topic.ALL, lambda cur, prev, changed: print(f"   commit: {', '.join(changed) or '-'}")
        )

        print("1. Going offline and liking two videos")
        await engine.set_online(False)
        await engine.toggle_like("1")
        await engine.toggle_save("2")
        print(f"   pending: {[a.type for a in engine.queue.pending]}")

        print("2. Reconnecting")
        report = await engine.set_online(True)
        if report is not None:
            print(f"   replayed={len(report.replayed)} remaining={len(report.remaining)}")

        print("3. Fetching the feed twice (second call is cached)")
        await engine.get_videos()
        videos = await engine.get_videos()
        print(f"   videos: {sorted(videos)}")


async def run(storage: PersistenceAdapter, dispatcher: RemoteDispatcher) -> None:
    """Run the scenario, then close a dispatcher the engine does not own."""
    try:
        await scenario(storage, dispatcher)
    finally:
        if isinstance(dispatcher, HttpRemoteDispatcher):
            await dispatcher.aclose()


def main() -> None:
    """Execute the smoke test workflow."""
    parser = argparse.ArgumentParser(description="Run FlowState Smoke Test")
    parser.add_argument("--base-url", "-u", type=str, help="Remote service URL")
    parser.add_argument("--state-dir", "-d", type=str, help="Persist state to this directory")
    args = parser.parse_args()

    storage: PersistenceAdapter = (
        JsonFileStorage(Path(args.state_dir)) if args.state_dir else MemoryStorage()
    )
    dispatcher: RemoteDispatcher = (
        HttpRemoteDispatcher(args.base_url) if args.base_url else EchoRemote()
    )

    try:
        asyncio.run(run(storage, dispatcher))
    except Exception as e:
        print(f"\n❌ Smoke test failed: {e}")
        sys.exit(1)
    print("\n✅ Smoke test complete")


if __name__ == "__main__":
    main()
