"""
Network dispatch: connectivity state, backoff, transport and the two queues.

- main_queue: ephemeral reads and side effects, sent once on a fixed tick
- sequential_queue: durable writes, sent one at a time in insertion order
- reauthentication: shared single-flight token refresh
"""

from .state import Credentials, NetworkState, StateEvent, bind_to_storage
from .throttle import RequestThrottle, compute_wait
from .transport import (
    AuthExpired,
    HttpTransport,
    Outcome,
    PermanentFailure,
    Success,
    TransientFailure,
    Transport,
    classify_response,
)
from .reauthentication import Reauthenticator
from .sequential_queue import QueueState, SequentialQueue
from .main_queue import MainQueue

__all__ = [
    "Credentials",
    "NetworkState",
    "StateEvent",
    "bind_to_storage",
    "RequestThrottle",
    "compute_wait",
    "AuthExpired",
    "HttpTransport",
    "Outcome",
    "PermanentFailure",
    "Success",
    "TransientFailure",
    "Transport",
    "classify_response",
    "Reauthenticator",
    "QueueState",
    "SequentialQueue",
    "MainQueue",
]
