"""JSON-file key/value store with change subscriptions."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Callable

logger = logging.getLogger(__name__)

Subscriber = Callable[[Any], None]


def get_storage_dir() -> Path:
    """Get path to the default key/value storage directory."""
    return Path.home() / ".offline-api" / "storage"


class KeyValueStore:
    """
    Durable key/value records, one JSON document per key.

    Stored in: ~/.offline-api/storage/<key>.json
    File permissions: 0600 (owner read/write only)

    Subscribers registered with subscribe() are called synchronously after
    every write to their key with the new value (None when removed).
    """

    def __init__(self, directory: Path | None = None) -> None:
        self.directory = directory or get_storage_dir()
        self._subscribers: dict[str, list[Subscriber]] = {}

    def _path(self, key: str) -> Path:
        if not key or "/" in key or key.startswith("."):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Any:
        """
        Read a record.

        Returns:
            Stored value, or None if missing or corrupted (logs warning)
        """
        path = self._path(key)

        if not path.exists():
            return None

        try:
            with open(path, "r") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            logger.warning("Corrupted storage file %s: %s", path, e)
            return None
        except OSError as e:
            logger.warning("Failed to read storage file %s: %s", path, e)
            return None

    def set(self, key: str, value: Any) -> None:
        """Replace a record (atomic write) and notify subscribers."""
        self._write(key, value)
        self._notify(key, value)

    def merge(self, key: str, changes: dict[str, Any]) -> None:
        """Shallow-merge changes into a mapping record and notify subscribers."""
        current = self.get(key)
        merged = {**current, **changes} if isinstance(current, dict) else dict(changes)
        self.set(key, merged)

    def multi_set(self, values: dict[str, Any]) -> None:
        """Write several records, then notify subscribers in key order given."""
        for key, value in values.items():
            self._write(key, value)
        for key, value in values.items():
            self._notify(key, value)

    def remove(self, key: str) -> None:
        """Delete a record and notify subscribers with None."""
        path = self._path(key)
        if path.exists():
            path.unlink()
        self._notify(key, None)

    def clear(self) -> None:
        """Delete every record, notifying subscribers of each known key."""
        keys = set(self._subscribers)
        if self.directory.exists():
            for path in self.directory.glob("*.json"):
                keys.add(path.stem)
                path.unlink()
        for key in sorted(keys):
            self._notify(key, None)

    def subscribe(self, key: str, callback: Subscriber) -> Callable[[], None]:
        """
        Register a change callback for a key.

        Returns:
            Function that removes the subscription
        """
        self._path(key)
        self._subscribers.setdefault(key, []).append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(key, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def _write(self, key: str, value: Any) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)

        # Atomic write: Write to temp file, then rename
        temp_path = path.with_suffix(".tmp")
        with open(temp_path, "w") as f:
            json.dump(value, f, indent=2)
            f.flush()
            os.fsync(f.fileno())

        temp_path.replace(path)
        path.chmod(0o600)

    def _notify(self, key: str, value: Any) -> None:
        for callback in list(self._subscribers.get(key, [])):
            callback(value)
