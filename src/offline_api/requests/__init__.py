"""
Command model and durable request storage.

Storage Format:
- Queue: ~/.offline-api/queue/requests.jsonl (newline-delimited JSON)
"""

from .models import Command, CommandKind, PersistedQueueEntry, RetryPolicy, classify, make_command
from .store import PersistedRequests, get_queue_path

__all__ = [
    "Command",
    "CommandKind",
    "PersistedQueueEntry",
    "RetryPolicy",
    "classify",
    "make_command",
    "PersistedRequests",
    "get_queue_path",
]
