"""Command model: classification, retry policy and persisted queue entries."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping


class CommandKind(str, Enum):
    """How a command travels through the pipeline."""

    WRITE = "write"
    READ = "read"
    SIDE_EFFECT = "side_effect"


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry metadata for side-effect commands.

    - should_retry: Replay the command after a successful reauthentication
    - force_network_request: Send right away, skipping the main queue tick
      and the deferral behind pending writes
    """

    should_retry: bool = False
    force_network_request: bool = False


@dataclass(frozen=True)
class Command:
    """
    Outbound operation.

    Immutable once enqueued. Only name and data are replayable; result
    handlers live with the caller and are never persisted.
    """

    name: str
    kind: CommandKind
    data: Mapping[str, Any] = field(default_factory=dict)
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)

    @property
    def persistable(self) -> bool:
        return self.kind is CommandKind.WRITE

    @property
    def should_retry(self) -> bool:
        """Whether transient failures are retried (writes only)."""
        return self.kind is CommandKind.WRITE

    @property
    def replay_after_reauthentication(self) -> bool:
        if self.kind is CommandKind.SIDE_EFFECT:
            return self.retry_policy.should_retry
        return True

    @property
    def force_network_request(self) -> bool:
        return self.kind is CommandKind.SIDE_EFFECT and self.retry_policy.force_network_request


def classify(command: Command) -> CommandKind:
    """Return the dispatch kind of a command (pure, no side effects)."""
    return command.kind


def make_command(
    name: str,
    kind: CommandKind,
    data: Mapping[str, Any] | None = None,
    retry_policy: RetryPolicy | None = None,
) -> Command:
    """Build a command, validating the name and copying the payload."""
    if not name or not name.strip():
        raise ValueError("Command name must not be empty")
    if retry_policy is not None and kind is not CommandKind.SIDE_EFFECT:
        raise ValueError("Only side-effect commands take an explicit retry policy")
    return Command(
        name=name,
        kind=kind,
        data=dict(data or {}),
        retry_policy=retry_policy or RetryPolicy(),
    )


@dataclass
class PersistedQueueEntry:
    """
    Durable queue record: a write command plus its insertion index.

    Uniqueness is by index, not by content; two identical writes are two entries.
    """

    index: int
    command: Command
    created_at: datetime

    def to_record(self) -> dict[str, object]:
        """Serialize to a queue record payload."""
        return {
            "index": self.index,
            "command": self.command.name,
            "data": dict(self.command.data),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_record(cls, data: dict[str, object]) -> "PersistedQueueEntry":
        """
        Deserialize from queue record payload.

        Raises:
            ValueError: If the record is malformed or missing required fields
        """
        try:
            index = int(data["index"])  # type: ignore[arg-type]
            name = str(data["command"])
        except (KeyError, TypeError) as e:
            raise ValueError(f"Missing queue record field: {e}") from e

        payload = data.get("data") or {}
        if not isinstance(payload, dict):
            raise ValueError(f"Queue record data must be an object, got {type(payload).__name__}")

        created_str = data.get("created_at")
        # Stable fallback keeps the entry removable by (index, created_at)
        created_at = datetime.fromisoformat(str(created_str)) if created_str else datetime.fromtimestamp(0)

        return cls(
            index=index,
            command=make_command(name, CommandKind.WRITE, payload),
            created_at=created_at,
        )
