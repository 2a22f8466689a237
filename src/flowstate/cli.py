# src/flowstate/cli.py
"""
FlowState Command Line Interface (CLI).

Inspect and operate on the durable state written by a :class:`StateEngine`
using `typer` and `rich`.

Commands
--------
- **show**: Table of every persisted field in the state directory.
- **pending**: The offline action queue, oldest first.
- **replay**: Start an engine over the state directory, go online and replay
  the queue against the remote service. Exits with code 1 when replay halted.

Usage
-----
    $ flowstate show --state-dir artifacts/state
    $ flowstate replay --base-url https://api.example.com
"""

from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Annotated, Any

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from flowstate.core.engine import StateEngine
from flowstate.core.offline import ReplayReport
from flowstate.core.settings import Settings, load_settings
from flowstate.core.state.snapshot import PERSISTED_FIELDS, Snapshot
from flowstate.core.state.storage import DebouncedPersister, JsonFileStorage

load_dotenv()

app = typer.Typer(
    help="FlowState: inspect and replay client application state.",
    rich_markup_mode="markdown",
)
console = Console()

StateDirOption = Annotated[
    Path | None,
    typer.Option(
        "--state-dir",
        "-d",
        file_okay=False,
        help="Directory holding the persisted state (default: FLOWSTATE_STATE_DIR).",
    ),
]


# --------------------------------------------------------------------------- #
# Helpers
# --------------------------------------------------------------------------- #


def _settings_for(state_dir: Path | None, base_url: str | None = None) -> Settings:
    updates: dict[str, Any] = {}
    if state_dir is not None:
        updates["state_dir"] = state_dir
    if base_url is not None:
        updates["api_base_url"] = base_url
    return load_settings().model_copy(update=updates)


def _load_stored(settings: Settings) -> dict[str, Any]:
    persister = DebouncedPersister(
        JsonFileStorage(settings.state_dir),
        Snapshot,
        prefix=settings.storage_prefix,
    )
    return asyncio.run(persister.load())


def _summarize(name: str, value: Any) -> str:
    """Short human-readable rendering of a decoded field value."""
    if value is None:
        return "[dim]-[/dim]"
    if name in ("liked_videos", "saved_videos"):
        members = sorted(value)
        return f"{len(members)}: {', '.join(members)}" if members else "[dim]empty[/dim]"
    if name == "pending_actions":
        return f"{len(value)} queued"
    return json.dumps(value, ensure_ascii=False, default=str)


def _render_report(report: ReplayReport) -> None:
    for action in report.replayed:
        console.print(f" [green]✔[/green] {action.type} [dim]{action.id}[/dim]")
    if report.error is not None:
        console.print(f" [bold red]✘[/bold red] {report.error}")
    console.print(
        Panel(
            f"Replayed: {len(report.replayed)}   Remaining: {len(report.remaining)}",
            title="Replay",
            border_style="green" if report.ok else "red",
        )
    )


# --------------------------------------------------------------------------- #
# Commands
# --------------------------------------------------------------------------- #


@app.command()  # type: ignore[misc]
def show(state_dir: StateDirOption = None) -> None:
    """Print every persisted field found in the state directory."""
    settings = _settings_for(state_dir)
    stored = _load_stored(settings)

    table = Table(title=f"Persisted state in {settings.state_dir}")
    table.add_column("Field", style="cyan")
    table.add_column("Key", style="dim")
    table.add_column("Value")
    for name in PERSISTED_FIELDS:
        table.add_row(name, f"{settings.storage_prefix}{name}", _summarize(name, stored.get(name)))
    console.print(table)


@app.command()  # type: ignore[misc]
def pending(state_dir: StateDirOption = None) -> None:
    """List queued offline actions, oldest first."""
    settings = _settings_for(state_dir)
    actions = _load_stored(settings).get("pending_actions", ())

    if not actions:
        console.print("[green]No pending actions.[/green]")
        return

    table = Table(title="Pending actions")
    table.add_column("#", justify="right")
    table.add_column("Type", style="cyan")
    table.add_column("Id", style="dim")
    table.add_column("Payload")
    table.add_column("Queued at")
    for i, action in enumerate(actions, start=1):
        queued = datetime.fromtimestamp(action.enqueued_at, UTC).strftime("%Y-%m-%d %H:%M:%S")
        table.add_row(str(i), action.type, action.id, json.dumps(action.payload), queued)
    console.print(table)


@app.command()  # type: ignore[misc]
def replay(
    state_dir: StateDirOption = None,
    base_url: Annotated[
        str | None,
        typer.Option("--base-url", "-u", help="Remote service URL (default: FLOWSTATE_API_BASE_URL)."),
    ] = None,
) -> None:
    """Replay queued actions against the remote service."""
    settings = _settings_for(state_dir, base_url)
    console.print(
        Panel.fit(
            f"[bold cyan]FlowState Replay[/bold cyan]\nTarget: [u]{settings.api_base_url}[/u]",
            border_style="cyan",
        )
    )

    async def run() -> ReplayReport | None:
        async with StateEngine(settings, storage=JsonFileStorage(settings.state_dir)) as engine:
            return await engine.set_online(True)

    try:
        report = asyncio.run(run())
    except Exception as e:
        console.print(f"\n[bold red]❌ Replay Error:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    if report is None:  # pragma: no cover - set_online(True) always replays
        return
    _render_report(report)
    if not report.ok:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
