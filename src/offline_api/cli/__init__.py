"""Command line interface for offline-api."""

from offline_api.cli.main import app

__all__ = ["app"]
