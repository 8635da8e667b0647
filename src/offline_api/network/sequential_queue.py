"""Strictly serial dispatcher for the durable request store."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

from offline_api.errors import FatalAuthError, PermanentCommandError, ReauthenticationDeferred
from offline_api.network.reauthentication import Reauthenticator
from offline_api.network.state import Credentials, NetworkState, StateEvent
from offline_api.network.throttle import RequestThrottle
from offline_api.network.transport import (
    AuthExpired,
    Outcome,
    PermanentFailure,
    Success,
    TransientFailure,
    Transport,
)
from offline_api.requests.models import PersistedQueueEntry
from offline_api.requests.store import PersistedRequests

logger = logging.getLogger(__name__)


class QueueState(str, Enum):
    IDLE = "idle"
    WAITING_FOR_PREREQUISITES = "waiting_for_prerequisites"
    SENDING = "sending"
    WAITING_FOR_RETRY = "waiting_for_retry"
    AUTHENTICATING = "authenticating"
    STOPPED_OFFLINE = "stopped_offline"
    STOPPED_AUTH_FAILED = "stopped_auth_failed"


class SequentialQueue:
    """
    Send persisted writes one at a time, in insertion order.

    The head entry stays in the store until it reaches a terminal outcome
    (success or permanent rejection). Transient failures park the queue for
    a backoff wait; auth expiry detours through reauthentication and then
    re-sends the same head entry. At most one send is in flight.
    """

    def __init__(
        self,
        store: PersistedRequests,
        state: NetworkState,
        transport: Transport,
        reauthenticator: Reauthenticator,
        throttle: RequestThrottle | None = None,
    ) -> None:
        self._store = store
        self._state = state
        self._transport = transport
        self._reauthenticator = reauthenticator
        self.throttle = throttle or RequestThrottle()
        self.queue_state = QueueState.IDLE
        self.last_error: Exception | None = None
        self._failed_credentials: Credentials | None = None
        self._handlers: dict[int, asyncio.Future[Outcome]] = {}
        self._task: asyncio.Task[None] | None = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._wake = asyncio.Event()
        state.add_listener(StateEvent.WENT_OFFLINE, self._wake.set)

    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def attach_handler(self, index: int, future: asyncio.Future[Outcome]) -> None:
        """Attach an in-memory result handler to a persisted entry."""
        self._handlers[index] = future

    def clear_handlers(self) -> None:
        """Cancel the result handlers of every pending write (used when the store is cleared)."""
        for future in self._handlers.values():
            if not future.done():
                future.cancel()
        self._handlers.clear()

    def flush(self) -> None:
        """Start processing the store unless already running, empty, offline or auth-stopped."""
        if self.is_running():
            return
        if self.queue_state is QueueState.STOPPED_AUTH_FAILED:
            # Needs new credentials (or an explicit resume)
            if self._state.get_credentials() in (None, self._failed_credentials):
                return
        if not self._state.can_send():
            if self._store.read_all():
                self.queue_state = QueueState.STOPPED_OFFLINE
            return
        if not self._store.read_all():
            return

        self.last_error = None
        self._idle.clear()
        self._task = asyncio.get_running_loop().create_task(self._process())

    def resume(self) -> None:
        """Clear an auth-failure stop and flush again."""
        if self.queue_state is QueueState.STOPPED_AUTH_FAILED:
            self.queue_state = QueueState.IDLE
            self._failed_credentials = None
        self.flush()

    async def wait_until_idle(self) -> None:
        await self._idle.wait()

    async def stop(self) -> None:
        """Cancel processing (used on shutdown only)."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._idle.set()

    async def _process(self) -> None:
        try:
            while True:
                self.queue_state = QueueState.WAITING_FOR_PREREQUISITES
                if not self._state.has_read_required_data_from_storage():
                    logger.debug("Waiting for required data before processing queue")
                    await self._state.wait_for_required_data()

                if not self._state.can_send():
                    self.queue_state = QueueState.STOPPED_OFFLINE
                    logger.debug("Queue stopped: offline")
                    return

                entries = self._store.read_all()
                if not entries:
                    self.queue_state = QueueState.IDLE
                    return

                head = entries[0]
                try:
                    keep_going = await self._process_head(head)
                except Exception as e:
                    # Head stays queued; park it like a transient failure
                    logger.exception("Unexpected error while sending %s", head.command.name)
                    self.last_error = e
                    keep_going = await self._wait_for_retry(head, TransientFailure("unknown", str(e)))
                if not keep_going:
                    return
        finally:
            self._idle.set()

    async def _process_head(self, entry: PersistedQueueEntry) -> bool:
        """Send the head entry once; return False when the queue must stop."""
        command = entry.command
        self.queue_state = QueueState.SENDING
        logger.debug("Sending %s (index %d)", command.name, entry.index)
        outcome = await self._transport.send(command.name, command.data, self._state.get_auth_token())

        if isinstance(outcome, Success):
            self._store.remove(entry.index, entry.created_at)
            self.throttle.reset()
            self._resolve(entry.index, outcome)
            return True

        if isinstance(outcome, PermanentFailure):
            error = PermanentCommandError(command.name, outcome.reason)
            logger.warning("%s", error)
            self._store.remove(entry.index, entry.created_at)
            self.throttle.reset()
            self._resolve(entry.index, outcome)
            return True

        if isinstance(outcome, AuthExpired):
            return await self._reauthenticate(entry)

        if isinstance(outcome, TransientFailure):
            return await self._wait_for_retry(entry, outcome)

        raise TypeError(f"Unknown outcome {outcome!r}")

    async def _reauthenticate(self, entry: PersistedQueueEntry) -> bool:
        self.queue_state = QueueState.AUTHENTICATING
        try:
            await self._reauthenticator.reauthenticate(entry.command.name)
        except ReauthenticationDeferred as e:
            if not self._state.can_send():
                self.queue_state = QueueState.STOPPED_OFFLINE
                logger.debug("Reauthentication deferred while offline: %s", e)
                return False
            return await self._wait_for_retry(entry, TransientFailure("server", str(e)))
        except FatalAuthError as e:
            self.queue_state = QueueState.STOPPED_AUTH_FAILED
            self.last_error = e
            self._failed_credentials = self._state.get_credentials()
            logger.error("Stopping request queue: %s", e)
            return False

        # Same head entry is re-sent with the new token on the next loop
        return True

    async def _wait_for_retry(self, entry: PersistedQueueEntry, failure: TransientFailure) -> bool:
        wait_ms = self.throttle.next_wait()
        if not self._state.can_send():
            self.queue_state = QueueState.STOPPED_OFFLINE
            logger.debug("Offline after %s failed, stopping until reconnect", entry.command.name)
            return False

        self.queue_state = QueueState.WAITING_FOR_RETRY
        logger.warning(
            "%s failed (%s%s), retry %d in %.0fms",
            entry.command.name,
            failure.kind,
            f": {failure.detail}" if failure.detail else "",
            self.throttle.attempt,
            wait_ms,
        )

        self._wake.clear()
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=wait_ms / 1000)
        except asyncio.TimeoutError:
            pass

        if not self._state.can_send():
            self.queue_state = QueueState.STOPPED_OFFLINE
            logger.debug("Went offline while waiting to retry %s", entry.command.name)
            return False
        return True

    def _resolve(self, index: int, outcome: Outcome) -> None:
        future = self._handlers.pop(index, None)
        if future is not None and not future.done():
            future.set_result(outcome)
