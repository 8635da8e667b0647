"""Persistent key/value records (network status, session, credentials)."""

from .keyvalue import KeyValueStore, get_storage_dir

__all__ = ["KeyValueStore", "get_storage_dir"]
