"""Typer command handlers."""

from __future__ import annotations

import json
from pathlib import Path

import typer

from core.logging_setup import configure_logging
from core.orchestrator import Orchestrator
from core.state_broadcaster import STATE_KEY
from messaging.models import CommandType, HumanInput
from messaging.sql_queue import SQLMessageQueue


def _orchestrator(root: Path | None = None) -> Orchestrator:
    return Orchestrator(root=root)


def _queue() -> SQLMessageQueue:
    return _orchestrator().build_queue()


def run() -> None:
    """Run the agent loop and consolidation worker until interrupted."""
    orchestrator = _orchestrator()
    config, _ = orchestrator.load_config()
    configure_logging(config.get("logging", {}).get("level", "INFO"))
    bundle = orchestrator.build()
    typer.echo("Agent running. Press Ctrl+C to stop.")
    bundle.host.run_forever()


def submit(kind: CommandType, content: str = "", user_id: str | None = None) -> str:
    """Publish one operator command to the durable queue."""
    command = HumanInput(type=kind, content=content, user_id=user_id)
    _queue().send(command.model_dump_json())
    typer.echo(f"Queued {kind.value} ({command.id})")
    return command.id


def state_show() -> None:
    """Show the last state snapshot the running agent mirrored."""
    short_term, _ = _orchestrator().build_memory()
    state = short_term.get(STATE_KEY)
    if state is None:
        typer.echo("No agent state published yet.")
        return
    typer.echo(json.dumps(_json_safe(state), indent=2))


def memory_search(query: str, limit: int) -> None:
    """Search long-term memory."""
    _, long_term = _orchestrator().build_memory()
    entries = long_term.search(query, max_results=limit)
    typer.echo(json.dumps([entry.model_dump(mode="json") for entry in entries], indent=2))


def memory_recent(limit: int) -> None:
    """Show the most recent long-term memories."""
    _, long_term = _orchestrator().build_memory()
    entries = long_term.recent(count=limit)
    typer.echo(json.dumps([entry.model_dump(mode="json") for entry in entries], indent=2))


def memory_count() -> None:
    """Count long-term memories in the search window."""
    _, long_term = _orchestrator().build_memory()
    typer.echo(str(long_term.count()))


def queue_count() -> None:
    """Approximate number of pending commands."""
    typer.echo(str(_queue().approximate_count()))


def queue_clear() -> None:
    """Drop every pending command."""
    removed = _queue().clear()
    typer.echo(f"Removed {removed} queued command(s)")


def config_show() -> None:
    """Show effective runtime config."""
    config, _ = _orchestrator().load_config()
    typer.echo(json.dumps(_json_safe(config), indent=2))


def _json_safe(payload: object) -> object:
    """Convert datetimes to strings for JSON output."""
    if isinstance(payload, dict):
        return {k: _json_safe(v) for k, v in payload.items()}
    if isinstance(payload, list):
        return [_json_safe(v) for v in payload]
    if hasattr(payload, "isoformat"):
        try:
            return payload.isoformat()
        except Exception:
            return str(payload)
    return payload
