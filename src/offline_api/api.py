"""Caller-facing API: write, read and side-effect requests plus inspection."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping

from offline_api.config import PipelineSettings
from offline_api.constants import SESSION_KEY
from offline_api.errors import (
    PermanentCommandError,
    ReauthenticationDeferred,
    TransientNetworkError,
    TransientServerError,
)
from offline_api.network import (
    AuthExpired,
    HttpTransport,
    MainQueue,
    NetworkState,
    Outcome,
    PermanentFailure,
    Reauthenticator,
    RequestThrottle,
    SequentialQueue,
    StateEvent,
    Success,
    TransientFailure,
    Transport,
    bind_to_storage,
)
from offline_api.requests import (
    Command,
    CommandKind,
    PersistedQueueEntry,
    PersistedRequests,
    RetryPolicy,
    classify,
    make_command,
)
from offline_api.storage import KeyValueStore

logger = logging.getLogger(__name__)


def raise_for_outcome(command: str, outcome: Outcome) -> dict[str, Any]:
    """
    Convert a terminal outcome into a payload or an exception.

    Returns:
        Response payload on success

    Raises:
        TransientNetworkError / TransientServerError: Transient failure (ephemeral path)
        PermanentCommandError: Backend rejected the command
        ReauthenticationDeferred: Auth expired and could not be refreshed
    """
    if isinstance(outcome, Success):
        return outcome.payload
    if isinstance(outcome, PermanentFailure):
        raise PermanentCommandError(command, outcome.reason)
    if isinstance(outcome, TransientFailure):
        if outcome.kind == "network":
            raise TransientNetworkError(f"{command}: {outcome.detail or 'network unavailable'}")
        raise TransientServerError(f"{command}: {outcome.detail or outcome.kind}")
    if isinstance(outcome, AuthExpired):
        raise ReauthenticationDeferred(f"{command}: session expired")
    raise TypeError(f"Unknown outcome {outcome!r}")


class OfflineApiClient:
    """
    Offline-tolerant request pipeline for one backend.

    Writes are persisted and replayed in call order by the sequential queue;
    reads and side effects go through the main queue. Every request method
    returns a future resolving to the command's terminal Outcome. Futures
    are in-memory only: writes replayed after a restart have no handler.

    Must be used from a running event loop:

        async with OfflineApiClient.from_settings(settings) as client:
            await client.write("UpdateProfile", {"name": "Ada"})
    """

    def __init__(
        self,
        transport: Transport,
        storage: KeyValueStore | None = None,
        request_store: PersistedRequests | None = None,
        settings: PipelineSettings | None = None,
        state: NetworkState | None = None,
    ) -> None:
        self.settings = settings or PipelineSettings()
        self.transport = transport
        self.storage = storage or KeyValueStore(self.settings.storage_dir)
        self.request_store = request_store or PersistedRequests(self.settings.queue_path)
        self.state = state or NetworkState()
        self.reauthenticator = Reauthenticator(
            self.state,
            transport,
            command_name=self.settings.authenticate_command,
            on_token_refreshed=self._persist_token,
        )
        self.sequential_queue = SequentialQueue(
            self.request_store,
            self.state,
            transport,
            self.reauthenticator,
            throttle=RequestThrottle(
                min_wait_ms=self.settings.min_retry_wait_ms,
                max_random_wait_ms=self.settings.max_random_retry_wait_ms,
                max_wait_ms=self.settings.max_retry_wait_ms,
            ),
        )
        self.main_queue = MainQueue(
            self.state,
            transport,
            self.reauthenticator,
            self.sequential_queue,
            delay_ms=self.settings.process_request_delay_ms,
        )
        self._cleanups: list = []
        self._started = False

    @classmethod
    def from_settings(cls, settings: PipelineSettings) -> "OfflineApiClient":
        """Build a client talking HTTP to settings.base_url."""
        transport = HttpTransport(settings.base_url, timeout=settings.request_timeout_s)
        return cls(transport, settings=settings)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        flush = self.sequential_queue.flush
        self._cleanups = [
            self.state.add_listener(StateEvent.RECONNECTED, flush),
            self.state.add_listener(StateEvent.REQUIRED_DATA_READY, flush),
            self.state.add_listener(StateEvent.CREDENTIALS_CHANGED, flush),
            bind_to_storage(self.storage, self.state),
        ]
        self.main_queue.start()
        flush()
        logger.debug("Client started with %d pending writes", len(self.request_store))

    async def stop(self) -> None:
        for cleanup in self._cleanups:
            cleanup()
        self._cleanups = []
        await self.main_queue.stop()
        await self.sequential_queue.stop()
        close = getattr(self.transport, "aclose", None)
        if close is not None:
            await close()
        self._started = False

    async def __aenter__(self) -> "OfflineApiClient":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def write(self, command: str, data: Mapping[str, Any] | None = None) -> asyncio.Future[Outcome]:
        """Persist a write and hand it to the sequential queue."""
        return self._dispatch(make_command(command, CommandKind.WRITE, data))

    def read(self, command: str, data: Mapping[str, Any] | None = None) -> asyncio.Future[Outcome]:
        """Queue a read on the main queue (never persisted, never retried)."""
        return self._dispatch(make_command(command, CommandKind.READ, data))

    def make_request_with_side_effects(
        self,
        command: str,
        data: Mapping[str, Any] | None = None,
        policy: RetryPolicy | None = None,
    ) -> asyncio.Future[Outcome]:
        """Queue a fire-and-forget side effect on the main queue."""
        return self._dispatch(make_command(command, CommandKind.SIDE_EFFECT, data, policy or RetryPolicy()))

    def _dispatch(self, command: Command) -> asyncio.Future[Outcome]:
        future: asyncio.Future[Outcome] = asyncio.get_running_loop().create_future()

        if classify(command) is CommandKind.WRITE:
            index = self.request_store.append(command)
            self.sequential_queue.attach_handler(index, future)
            self.sequential_queue.flush()
        else:
            self.main_queue.push(command, future)

        return future

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def pending_writes(self) -> list[PersistedQueueEntry]:
        return self.request_store.read_all()

    def is_sequential_queue_running(self) -> bool:
        return self.sequential_queue.is_running()

    def is_offline(self) -> bool:
        return self.state.is_offline()

    def is_authenticating(self) -> bool:
        return self.state.is_authenticating()

    def clear_queues(self) -> None:
        """Drop every unsent ephemeral command and every pending write."""
        self.main_queue.clear()
        self.request_store.clear()
        self.sequential_queue.clear_handlers()

    async def wait_until_idle(self) -> None:
        """Wait until the sequential queue has stopped and drained requests finished."""
        await self.sequential_queue.wait_until_idle()
        await self.main_queue.wait_for_in_flight()

    def _persist_token(self, token: str) -> None:
        self.storage.merge(SESSION_KEY, {"authToken": token})
