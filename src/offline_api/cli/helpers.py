"""Shared CLI helpers: console, logging setup, settings and option parsing."""

from __future__ import annotations

import json
import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from offline_api.config import PipelineSettings, load_settings
from offline_api.errors import ConfigError
from offline_api.requests import PersistedRequests
from offline_api.storage import KeyValueStore

console = Console()


def configure_logging(verbose: bool = False) -> None:
    """Route library logging through rich on the shared console."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=True)],
        force=True,
    )


def get_settings_or_exit() -> PipelineSettings:
    """Load settings, printing the error and exiting on failure."""
    try:
        return load_settings()
    except ConfigError as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        raise typer.Exit(1)


def open_storage(settings: PipelineSettings) -> tuple[KeyValueStore, PersistedRequests]:
    return KeyValueStore(settings.storage_dir), PersistedRequests(settings.queue_path)


def parse_data_options(values: list[str] | None) -> dict[str, object]:
    """
    Parse repeated key=value options into a payload.

    Values are decoded as JSON when possible (numbers, booleans, objects),
    otherwise kept as strings.

    Raises:
        typer.BadParameter: If an option has no '='
    """
    data: dict[str, object] = {}
    for item in values or []:
        key, sep, raw = item.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Expected key=value, got: {item}")
        try:
            data[key] = json.loads(raw)
        except json.JSONDecodeError:
            data[key] = raw
    return data
