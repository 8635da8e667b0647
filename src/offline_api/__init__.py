"""
Offline-tolerant, order-preserving request pipeline for a remote API.

Writes are durably queued and replayed in creation order; reads and side
effects are sent once on a delayed main queue behind pending writes.
"""

from offline_api.api import OfflineApiClient, raise_for_outcome
from offline_api.config import PipelineSettings, load_settings
from offline_api.network import AuthExpired, Outcome, PermanentFailure, Success, TransientFailure
from offline_api.requests import CommandKind, RetryPolicy

__version__ = "0.4.0"

__all__ = [
    "OfflineApiClient",
    "raise_for_outcome",
    "PipelineSettings",
    "load_settings",
    "AuthExpired",
    "Outcome",
    "PermanentFailure",
    "Success",
    "TransientFailure",
    "CommandKind",
    "RetryPolicy",
    "__version__",
]
