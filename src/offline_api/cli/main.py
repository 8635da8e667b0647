"""offline-api command line entry point."""

from __future__ import annotations

import asyncio

import typer
from rich.panel import Panel
from rich.table import Table

from offline_api import __version__
from offline_api.api import OfflineApiClient
from offline_api.cli.commands import queue
from offline_api.cli.helpers import configure_logging, console, get_settings_or_exit, open_storage
from offline_api.config import PipelineSettings
from offline_api.constants import CREDENTIALS_KEY, NETWORK_KEY, SESSION_KEY
from offline_api.network import Credentials, QueueState

app = typer.Typer(
    name="offline-api",
    help="Offline-tolerant request queue for a remote API.",
    no_args_is_help=True,
)
app.add_typer(queue.app, name="queue")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    configure_logging(verbose)


@app.command()
def version() -> None:
    """Print the package version."""
    console.print(__version__)


@app.command()
def status() -> None:
    """Show connectivity, session and queue state."""
    settings = get_settings_or_exit()
    storage, requests = open_storage(settings)

    network = storage.get(NETWORK_KEY) or {}
    session = storage.get(SESSION_KEY) or {}
    credentials = Credentials.from_dict(storage.get(CREDENTIALS_KEY))

    table = Table(show_header=False, box=None)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Backend", settings.base_url)
    table.add_row("Offline", "[red]yes[/red]" if network.get("isOffline") else "[green]no[/green]")
    table.add_row("Auth token", "[green]present[/green]" if session.get("authToken") else "[yellow]missing[/yellow]")
    table.add_row("Login", credentials.login if credentials else "[yellow]not set[/yellow]")
    table.add_row("Pending writes", str(len(requests)))

    console.print(Panel(table, title="offline-api status", border_style="cyan"))


@app.command()
def network(
    mode: str = typer.Argument(..., help="online or offline"),
) -> None:
    """Record whether the client should consider itself online."""
    if mode not in {"online", "offline"}:
        console.print(f"[red]Invalid mode:[/red] {mode}. Must be 'online' or 'offline'")
        raise typer.Exit(1)

    settings = get_settings_or_exit()
    storage, _ = open_storage(settings)
    is_offline = mode == "offline"
    storage.set(NETWORK_KEY, {"isOffline": is_offline, "isBackendReachable": not is_offline})
    console.print(f"[green]✓[/green] Network marked {mode}")


@app.command()
def login(
    user: str = typer.Argument(..., help="Login used to obtain auth tokens"),
    password: str = typer.Option(..., prompt=True, hide_input=True, help="Password for the login"),
) -> None:
    """Store credentials used for reauthentication."""
    settings = get_settings_or_exit()
    storage, _ = open_storage(settings)
    storage.set(CREDENTIALS_KEY, Credentials(login=user, password=password).to_dict())
    console.print(f"[green]✓[/green] Credentials stored for {user}")


@app.command()
def logout(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Forget credentials and session, and drop pending writes."""
    settings = get_settings_or_exit()
    storage, requests = open_storage(settings)
    pending = len(requests)

    if pending and not yes and not typer.confirm(f"Discard {pending} pending write(s) and log out?"):
        raise typer.Exit(1)

    storage.remove(CREDENTIALS_KEY)
    storage.remove(SESSION_KEY)
    requests.clear()
    console.print("[green]✓[/green] Logged out")


async def _run_flush(settings: PipelineSettings, timeout: float) -> OfflineApiClient:
    client = OfflineApiClient.from_settings(settings)
    async with client:
        try:
            await asyncio.wait_for(client.wait_until_idle(), timeout=timeout)
        except asyncio.TimeoutError:
            console.print(f"[yellow]Timed out after {timeout:.0f}s; remaining writes stay queued[/yellow]")
    return client


@app.command()
def flush(
    timeout: float = typer.Option(60.0, "--timeout", "-t", help="Seconds to wait for the queue to drain"),
) -> None:
    """Send pending writes to the backend in order."""
    settings = get_settings_or_exit()
    _, requests = open_storage(settings)
    before = len(requests)

    if before == 0:
        console.print("[green]Nothing to send[/green]")
        return

    client = asyncio.run(_run_flush(settings, timeout))
    remaining = len(requests)
    sent = before - remaining
    console.print(f"[cyan]Sent:[/cyan] {sent}  [cyan]Remaining:[/cyan] {remaining}")

    queue_state = client.sequential_queue.queue_state
    if queue_state is QueueState.STOPPED_OFFLINE:
        console.print("[yellow]Queue is offline; run 'offline-api network online' to resume[/yellow]")
    elif queue_state is QueueState.STOPPED_AUTH_FAILED:
        console.print(f"[red]Authentication failed:[/red] {client.sequential_queue.last_error}")
        console.print("[dim]Run 'offline-api login <user>' with valid credentials, then flush again.[/dim]")
        raise typer.Exit(1)

    if remaining:
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
