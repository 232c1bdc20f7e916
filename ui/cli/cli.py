"""CLI entrypoint for autoloop."""

from __future__ import annotations

import typer

from messaging.models import CommandType
from ui.cli import commands

app = typer.Typer(help="Autonomous agent control loop")
state_app = typer.Typer(help="Agent state commands")
memory_app = typer.Typer(help="Memory commands")
queue_app = typer.Typer(help="Command queue commands")
config_app = typer.Typer(help="Configuration commands")


@app.command("run")
def run_cmd() -> None:
    """Run the agent until interrupted."""
    commands.run()


@app.command("submit")
def submit_cmd(
    kind: CommandType = typer.Argument(..., help="Command type, e.g. UpdatePrompt"),
    content: str = typer.Argument("", help="Command payload"),
    user_id: str = typer.Option(None, "--user", help="Submitting operator"),
) -> None:
    """Queue an arbitrary command."""
    commands.submit(kind, content=content, user_id=user_id)


@app.command("prompt")
def prompt_cmd(text: str = typer.Argument(..., help="New directive")) -> None:
    """Replace the agent's directive."""
    commands.submit(CommandType.UPDATE_PROMPT, content=text)


@app.command("pause")
def pause_cmd() -> None:
    """Pause the agent loop."""
    commands.submit(CommandType.PAUSE_AGENT)


@app.command("resume")
def resume_cmd() -> None:
    """Resume the agent loop."""
    commands.submit(CommandType.RESUME_AGENT)


@app.command("goal")
def goal_cmd(
    goal: str = typer.Argument("", help="Goal text"),
    clear: bool = typer.Option(False, "--clear", help="Clear the current goal"),
) -> None:
    """Set or clear the current goal."""
    if clear:
        commands.submit(CommandType.REMOVE_GOAL)
    else:
        commands.submit(CommandType.ADD_GOAL, content=goal)


@app.command("learn")
def learn_cmd() -> None:
    """Trigger a batch learning run."""
    commands.submit(CommandType.TRIGGER_BATCH_LEARNING)


@app.command("consolidate")
def consolidate_cmd() -> None:
    """Trigger short-term memory consolidation."""
    commands.submit(CommandType.TRIGGER_MEMORY_CONSOLIDATION)


@app.command("query")
def query_cmd() -> None:
    """Ask the running agent to report its state to the audit log."""
    commands.submit(CommandType.QUERY_STATE)


@state_app.command("show")
def state_show_cmd() -> None:
    """Show the last published state snapshot."""
    commands.state_show()


@memory_app.command("search")
def memory_search_cmd(
    query: str = typer.Argument(..., help="Text to look for"),
    limit: int = typer.Option(10, min=1, max=100),
) -> None:
    """Search long-term memory."""
    commands.memory_search(query=query, limit=limit)


@memory_app.command("recent")
def memory_recent_cmd(limit: int = typer.Option(10, min=1, max=100)) -> None:
    """Show recent long-term memories."""
    commands.memory_recent(limit=limit)


@memory_app.command("count")
def memory_count_cmd() -> None:
    """Count long-term memories."""
    commands.memory_count()


@queue_app.command("count")
def queue_count_cmd() -> None:
    """Show the approximate queue length."""
    commands.queue_count()


@queue_app.command("clear")
def queue_clear_cmd() -> None:
    """Remove all queued commands."""
    commands.queue_clear()


@config_app.command("show")
def config_show_cmd() -> None:
    """Show effective configuration."""
    commands.config_show()


app.add_typer(state_app, name="state")
app.add_typer(memory_app, name="memory")
app.add_typer(queue_app, name="queue")
app.add_typer(config_app, name="config")


def main() -> None:
    """Console script entrypoint."""
    app()


if __name__ == "__main__":
    main()
