"""Transport contract, send outcomes and the httpx-backed adapter."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Literal, Mapping, Protocol, Union

import httpx

from offline_api import constants

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Success:
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AuthExpired:
    pass


@dataclass(frozen=True)
class TransientFailure:
    kind: Literal["network", "server", "unknown"]
    detail: str = ""


@dataclass(frozen=True)
class PermanentFailure:
    reason: str


Outcome = Union[Success, AuthExpired, TransientFailure, PermanentFailure]


class Transport(Protocol):
    """Performs one backend call; never raises for backend-level failures."""

    async def send(self, command: str, data: Mapping[str, Any], auth_token: str | None) -> Outcome:
        ...


RETRYABLE_HTTP_STATUSES = frozenset({
    constants.HTTP_STATUS_TOO_MANY_REQUESTS,
    constants.HTTP_STATUS_INTERNAL_SERVER_ERROR,
    constants.HTTP_STATUS_BAD_GATEWAY,
    constants.HTTP_STATUS_GATEWAY_TIMEOUT,
    constants.HTTP_STATUS_UNKNOWN_ERROR,
})


def classify_response(response: httpx.Response) -> Outcome:
    """Map an HTTP response to a send outcome."""
    status = response.status_code

    if status in RETRYABLE_HTTP_STATUSES or status >= 500:
        return TransientFailure("server", f"HTTP {status}")
    if not response.is_success:
        return PermanentFailure(f"HTTP {status}")

    try:
        body = response.json()
    except ValueError as e:
        return TransientFailure("unknown", f"Undecodable response body: {e}")

    if not isinstance(body, dict):
        return TransientFailure("unknown", "Response body is not an object")

    json_code = body.get("jsonCode")

    if json_code == constants.JSON_CODE_SUCCESS:
        return Success(body)
    if json_code == constants.JSON_CODE_NOT_AUTHENTICATED:
        return AuthExpired()
    if json_code == constants.JSON_CODE_EXP_ERROR and (
        body.get("type") == constants.ERROR_TYPE_SOCKET
        or body.get("title") == constants.ERROR_TITLE_SOCKET
    ):
        # Auth service is down; the command itself is fine
        return TransientFailure("server", str(body.get("title", "auth unavailable")))

    message = body.get("message") or body.get("title") or f"jsonCode {json_code}"
    return PermanentFailure(str(message))


class HttpTransport:
    """
    Send commands as JSON POSTs to {base_url}/api/{command}.

    The auth token travels in the body as "authToken", next to the command data.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = constants.DEFAULT_REQUEST_TIMEOUT_S,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def send(self, command: str, data: Mapping[str, Any], auth_token: str | None) -> Outcome:
        endpoint = f"{self.base_url}/api/{command}"
        payload = dict(data)
        if auth_token:
            payload["authToken"] = auth_token

        client = await self._get_client()
        try:
            response = await client.post(endpoint, json=payload)
        except httpx.TransportError as e:
            logger.debug("Network error sending %s: %s", command, e)
            return TransientFailure("network", str(e) or type(e).__name__)

        return classify_response(response)

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
