"""Durable queue inspection and maintenance commands."""

from __future__ import annotations

import json
from typing import List, Optional

import typer
from rich.table import Table

from offline_api.cli.helpers import console, get_settings_or_exit, open_storage, parse_data_options
from offline_api.requests import CommandKind, make_command

app = typer.Typer(
    name="queue",
    help="Inspect and edit the durable write queue.",
    no_args_is_help=True,
)


@app.command("list")
def list_cmd(
    as_json: bool = typer.Option(False, "--json", help="Output entries as JSON"),
) -> None:
    """List pending writes in the order they will be sent."""
    settings = get_settings_or_exit()
    _, requests = open_storage(settings)
    entries = requests.read_all()

    if as_json:
        console.print_json(json.dumps([entry.to_record() for entry in entries]))
        return

    if not entries:
        console.print("[green]No pending writes[/green]")
        return

    table = Table(title="Pending Writes", show_header=True)
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Command", style="green")
    table.add_column("Data", overflow="fold")
    table.add_column("Queued At", style="dim")

    for entry in entries:
        table.add_row(
            str(entry.index),
            entry.command.name,
            json.dumps(dict(entry.command.data)),
            entry.created_at.strftime("%Y-%m-%d %H:%M:%S"),
        )

    console.print(table)


@app.command("add")
def add_cmd(
    command: str = typer.Argument(..., help="Backend command name"),
    data: Optional[List[str]] = typer.Option(None, "--data", "-d", help="Payload field as key=value (repeatable)"),
) -> None:
    """Persist a write; it is sent on the next flush."""
    settings = get_settings_or_exit()
    _, requests = open_storage(settings)

    try:
        write = make_command(command, CommandKind.WRITE, parse_data_options(data))
        index = requests.append(write)
    except ValueError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1)
    except OSError as exc:
        console.print(f"[red]Could not persist write:[/red] {exc}")
        raise typer.Exit(1)

    console.print(f"[green]✓[/green] Queued {command} at position {index}")


@app.command("clear")
def clear_cmd(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Drop every pending write without sending it."""
    settings = get_settings_or_exit()
    _, requests = open_storage(settings)
    count = len(requests)

    if count == 0:
        console.print("[green]No pending writes[/green]")
        return

    if not yes and not typer.confirm(f"Discard {count} pending write(s)?"):
        raise typer.Exit(1)

    requests.clear()
    console.print(f"[green]✓[/green] Discarded {count} pending write(s)")
