"""Durable request store: ordered, persisted list of pending write commands."""

from __future__ import annotations

import json
import logging
import os
import sys
import time
from datetime import datetime
from pathlib import Path

# Cross-platform file locking
if sys.platform == "win32":
    import msvcrt
else:
    import fcntl

from offline_api.requests.models import Command, PersistedQueueEntry

logger = logging.getLogger(__name__)


def _lock_file(file_handle) -> None:
    """Acquire exclusive lock on file (cross-platform)."""
    if sys.platform == "win32":
        msvcrt.locking(file_handle.fileno(), msvcrt.LK_LOCK, 1)
    else:
        fcntl.flock(file_handle.fileno(), fcntl.LOCK_EX)


def _unlock_file(file_handle) -> None:
    """Release lock on file (cross-platform)."""
    if sys.platform == "win32":
        msvcrt.locking(file_handle.fileno(), msvcrt.LK_UNLCK, 1)
    else:
        fcntl.flock(file_handle.fileno(), fcntl.LOCK_UN)


def get_queue_path() -> Path:
    """Get path to the default durable queue file."""
    return Path.home() / ".offline-api" / "queue" / "requests.jsonl"


class PersistedRequests:
    """
    Append-only JSONL queue of write commands awaiting transmission.

    The file is the single source of truth for pending writes: every call
    re-reads it, so dispatchers never hold a private copy of pending work.
    A process restart that reloads the same file sees the same order.
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or get_queue_path()

    @property
    def meta_path(self) -> Path:
        """Sidecar file holding the next insertion index (survives clear())."""
        return self.path.with_suffix(".meta")

    def append(self, command: Command) -> int:
        """
        Append a write command (durable before return).

        Args:
            command: Write command to persist

        Returns:
            Insertion index of the new entry

        Raises:
            ValueError: If the command is not persistable
            IOError: If file write fails after retries
            PermissionError: If insufficient permissions to write queue file
        """
        if not command.persistable:
            raise ValueError(f"Only write commands can be persisted, got {command.kind.value}")

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except PermissionError as e:
            raise PermissionError(
                f"Cannot create queue directory {self.path.parent}. "
                f"Check permissions on the data directory. Error: {e}"
            ) from e

        index = self._reserve_index()
        entry = PersistedQueueEntry(index=index, command=command, created_at=datetime.now())
        line = json.dumps(entry.to_record(), separators=(",", ":")) + "\n"

        # Retry write on transient I/O failures
        max_retries = 2

        for attempt in range(max_retries):
            try:
                with open(self.path, "a") as f:
                    _lock_file(f)
                    try:
                        f.write(line)
                        f.flush()
                        os.fsync(f.fileno())
                    finally:
                        _unlock_file(f)
                break

            except PermissionError as e:
                # Not transient: fail immediately
                raise PermissionError(
                    f"Cannot write to queue file {self.path}. "
                    f"Check file permissions and ownership. Error: {e}"
                ) from e

            except OSError as e:
                if attempt < max_retries - 1:
                    time.sleep(0.1)
                else:
                    raise IOError(
                        f"Failed to persist request after {max_retries} attempts. "
                        f"Command: {command.name}. Last error: {e}"
                    ) from e

        try:
            self.path.chmod(0o600)
        except PermissionError:
            logger.warning("Could not set permissions on %s (continuing)", self.path)

        logger.debug("Persisted %s at index %d", command.name, index)
        return index

    def _reserve_index(self) -> int:
        """
        Take the next insertion index from the sidecar counter.

        The counter only moves forward, so an index is never handed out twice,
        even after clear(). A missing or unreadable counter is rebuilt from
        the queue file once.
        """
        with open(self.meta_path, "a+") as f:
            _lock_file(f)
            try:
                f.seek(0)
                raw = f.read().strip()
                next_index = None
                if raw:
                    try:
                        next_index = int(json.loads(raw)["next_index"])
                    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
                        logger.warning("Rebuilding corrupted queue counter %s: %s", self.meta_path, e)
                if next_index is None:
                    entries = self.read_all()
                    next_index = entries[-1].index + 1 if entries else 0

                f.seek(0)
                f.truncate()
                f.write(json.dumps({"next_index": next_index + 1}))
                f.flush()
                os.fsync(f.fileno())
            finally:
                _unlock_file(f)

        try:
            self.meta_path.chmod(0o600)
        except PermissionError:
            logger.warning("Could not set permissions on %s (continuing)", self.meta_path)
        return next_index

    def read_all(self) -> list[PersistedQueueEntry]:
        """
        Read all pending entries in insertion order.

        Corrupted lines are skipped with a warning.
        """
        if not self.path.exists():
            return []

        entries = []

        with open(self.path, "r") as f:
            for line_num, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue

                try:
                    entries.append(PersistedQueueEntry.from_record(json.loads(line)))
                except (json.JSONDecodeError, ValueError) as e:
                    logger.warning("Skipping corrupted line %d in %s: %s", line_num, self.path, e)

        return entries

    def remove(self, index: int, created_at: datetime | None = None) -> bool:
        """
        Remove exactly one entry by insertion index.

        Args:
            index: Insertion index of the entry
            created_at: When given, only remove the entry if it was created at
                this time (guards against removing a different entry)

        Returns:
            True if an entry was removed, False if no matching entry exists
        """
        entries = self.read_all()
        remaining = [
            entry
            for entry in entries
            if entry.index != index or (created_at is not None and entry.created_at != created_at)
        ]

        if len(remaining) == len(entries):
            return False

        self._rewrite(remaining)
        return True

    def clear(self) -> None:
        """Empty the store."""
        if self.path.exists():
            self._rewrite([])

    def __len__(self) -> int:
        return len(self.read_all())

    def _rewrite(self, entries: list[PersistedQueueEntry]) -> None:
        """Rewrite entire queue (atomic)."""
        temp_path = self.path.with_suffix(".tmp")
        with open(temp_path, "w") as f:
            _lock_file(f)
            try:
                for entry in entries:
                    f.write(json.dumps(entry.to_record(), separators=(",", ":")) + "\n")
                f.flush()
                os.fsync(f.fileno())
            finally:
                _unlock_file(f)

        temp_path.replace(self.path)
        self.path.chmod(0o600)
