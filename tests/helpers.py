"""Test doubles and async helpers shared across the suite."""

from __future__ import annotations

import asyncio
from typing import Any, Mapping

from offline_api.network import Outcome, Success


class ScriptedTransport:
    """
    Fake transport recording every call.

    Outcomes queued with script() are returned in order, then `default`;
    a scripted exception instance is raised instead of returned.
    With hold=True each call parks on a future in `gates` until the test
    resolves it with release().
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any], str | None]] = []
        self.call_times: list[float] = []
        self.default: Outcome = Success({"jsonCode": 200, "authToken": "newToken"})
        self.hold = False
        self.gates: list[asyncio.Future[Outcome]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._script: list[Outcome | Exception] = []

    def script(self, *outcomes: Outcome | Exception) -> None:
        self._script.extend(outcomes)

    @property
    def names(self) -> list[str]:
        return [name for name, _, _ in self.calls]

    def release(self, index: int, outcome: Outcome) -> None:
        self.gates[index].set_result(outcome)

    async def send(self, command: str, data: Mapping[str, Any], auth_token: str | None) -> Outcome:
        loop = asyncio.get_running_loop()
        self.calls.append((command, dict(data), auth_token))
        self.call_times.append(loop.time())
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.hold:
                gate: asyncio.Future[Outcome] = loop.create_future()
                self.gates.append(gate)
                return await gate
            await asyncio.sleep(0)
            if self._script:
                outcome = self._script.pop(0)
                if isinstance(outcome, Exception):
                    raise outcome
                return outcome
            return self.default
        finally:
            self.in_flight -= 1


async def settle(rounds: int = 20) -> None:
    """Let pending callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


async def wait_for_calls(transport: ScriptedTransport, count: int, timeout: float = 2.0) -> None:
    """Wait until the transport has seen at least `count` calls."""
    async def _poll() -> None:
        while len(transport.calls) < count:
            await asyncio.sleep(0.001)

    await asyncio.wait_for(_poll(), timeout=timeout)
