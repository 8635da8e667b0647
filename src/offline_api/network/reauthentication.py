"""Single-flight exchange of stored credentials for a fresh auth token."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from offline_api import constants
from offline_api.errors import FatalAuthError, ReauthenticationDeferred
from offline_api.network.state import NetworkState
from offline_api.network.transport import AuthExpired, PermanentFailure, Success, TransientFailure, Transport

logger = logging.getLogger(__name__)

TokenListener = Callable[[str], None]


class Reauthenticator:
    """
    Shared reauthentication routine for both dispatchers.

    Concurrent triggers collapse into one attempt: while an attempt is
    pending, later callers await the same future instead of sending a second
    authenticate command. Only this class writes a refreshed token into
    NetworkState, and only after its own call completes.
    """

    def __init__(
        self,
        state: NetworkState,
        transport: Transport,
        command_name: str = constants.AUTHENTICATE_COMMAND,
        on_token_refreshed: TokenListener | None = None,
    ) -> None:
        self._state = state
        self._transport = transport
        self.command_name = command_name
        self._on_token_refreshed = on_token_refreshed
        self._lock = asyncio.Lock()
        self._pending: asyncio.Task[str] | None = None

    async def reauthenticate(self, triggered_by: str) -> str:
        """
        Obtain a new auth token (or join the attempt already in flight).

        Args:
            triggered_by: Name of the command that got the auth-expired response

        Returns:
            The refreshed auth token

        Raises:
            ReauthenticationDeferred: Offline, or the authenticate call failed transiently
            FatalAuthError: No credentials, or the backend rejected them
        """
        async with self._lock:
            if self._pending is None or self._pending.done():
                self._pending = asyncio.get_running_loop().create_task(self._authenticate(triggered_by))
            pending = self._pending

        return await asyncio.shield(pending)

    async def _authenticate(self, triggered_by: str) -> str:
        if not self._state.can_send():
            raise ReauthenticationDeferred(f"Offline, cannot reauthenticate for {triggered_by}")

        credentials = self._state.get_credentials()
        if credentials is None:
            raise FatalAuthError(f"No stored credentials to reauthenticate {triggered_by}")

        logger.info("Reauthenticating after %s returned auth expired", triggered_by)
        self._state.set_is_authenticating(True)
        try:
            outcome = await self._transport.send(
                self.command_name,
                {"partnerUserID": credentials.login, "partnerUserSecret": credentials.password},
                None,
            )

            if isinstance(outcome, Success):
                token = outcome.payload.get("authToken")
                if not token:
                    raise FatalAuthError(f"{self.command_name} succeeded without returning an authToken")
                self._state.set_auth_token(str(token))
                if self._on_token_refreshed is not None:
                    self._on_token_refreshed(str(token))
                logger.info("Reauthentication succeeded")
                return str(token)

            if isinstance(outcome, TransientFailure):
                raise ReauthenticationDeferred(
                    f"{self.command_name} failed transiently ({outcome.kind}): {outcome.detail}"
                )
            if isinstance(outcome, AuthExpired):
                raise FatalAuthError(f"{self.command_name} was refused: credentials are not valid")
            if isinstance(outcome, PermanentFailure):
                raise FatalAuthError(f"{self.command_name} was rejected: {outcome.reason}")

            raise FatalAuthError(f"Unexpected outcome from {self.command_name}: {outcome!r}")
        finally:
            self._state.set_is_authenticating(False)
