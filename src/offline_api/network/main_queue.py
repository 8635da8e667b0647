"""Delayed, batched sender for non-durable (read and side-effect) commands."""

from __future__ import annotations

import asyncio
import logging

from offline_api import constants
from offline_api.errors import FatalAuthError, ReauthenticationDeferred
from offline_api.network.reauthentication import Reauthenticator
from offline_api.network.sequential_queue import SequentialQueue
from offline_api.network.state import NetworkState
from offline_api.network.transport import AuthExpired, Outcome, Transport
from offline_api.requests.models import Command

logger = logging.getLogger(__name__)


class MainQueue:
    """
    In-memory queue drained on a fixed-delay tick.

    Each command is sent once whatever the outcome: no retry, no persistence.
    A tick is skipped while the sequential queue is running so pending writes
    keep right of way, and while required data has not been read yet.
    Connectivity is not checked; an offline send simply fails.
    """

    def __init__(
        self,
        state: NetworkState,
        transport: Transport,
        reauthenticator: Reauthenticator,
        sequential_queue: SequentialQueue,
        delay_ms: int = constants.PROCESS_REQUEST_DELAY_MS,
    ) -> None:
        self._state = state
        self._transport = transport
        self._reauthenticator = reauthenticator
        self._sequential_queue = sequential_queue
        self.delay_ms = delay_ms
        self._queue: list[tuple[Command, asyncio.Future[Outcome] | None]] = []
        self._in_flight: set[asyncio.Task[None]] = set()
        self._ticker: asyncio.Task[None] | None = None

    def __len__(self) -> int:
        return len(self._queue)

    def get_all(self) -> list[Command]:
        return [command for command, _ in self._queue]

    def push(self, command: Command, future: asyncio.Future[Outcome] | None = None) -> None:
        if command.persistable:
            raise ValueError(f"{command.name} is a write; use the sequential queue")
        if command.force_network_request:
            self._spawn(self._send_when_ready(command, future))
            return
        self._queue.append((command, future))

    def clear(self) -> None:
        """Discard queued commands without sending them."""
        for _, future in self._queue:
            if future is not None and not future.done():
                future.cancel()
        self._queue.clear()

    def start(self) -> None:
        if self._ticker is None or self._ticker.done():
            self._ticker = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        tasks = [task for task in (self._ticker, *self._in_flight) if task is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._ticker = None
        self._in_flight.clear()

    async def wait_for_in_flight(self) -> None:
        """Wait for already drained commands to finish sending."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    def process(self) -> None:
        """Run one tick: drain and fire every queued command if allowed."""
        if not self._queue:
            return
        if not self._state.has_read_required_data_from_storage():
            return
        if self._sequential_queue.is_running():
            logger.debug("Deferring %d queued requests behind pending writes", len(self._queue))
            return

        batch, self._queue = self._queue, []
        for command, future in batch:
            self._spawn(self._send(command, future))

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.delay_ms / 1000)
            self.process()

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _send_when_ready(self, command: Command, future: asyncio.Future[Outcome] | None) -> None:
        await self._state.wait_for_required_data()
        await self._send(command, future)

    async def _send(self, command: Command, future: asyncio.Future[Outcome] | None) -> None:
        outcome = await self._transport.send(command.name, command.data, self._state.get_auth_token())

        if isinstance(outcome, AuthExpired):
            try:
                await self._reauthenticator.reauthenticate(command.name)
            except ReauthenticationDeferred as e:
                logger.warning("Dropping %s: %s", command.name, e)
            except FatalAuthError as e:
                logger.error("Dropping %s: %s", command.name, e)
            else:
                if command.replay_after_reauthentication:
                    outcome = await self._transport.send(
                        command.name, command.data, self._state.get_auth_token()
                    )

        if future is not None and not future.done():
            future.set_result(outcome)
