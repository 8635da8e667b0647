"""Process-wide connectivity and credential state shared by both dispatchers."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from offline_api.constants import CREDENTIALS_KEY, NETWORK_KEY, SESSION_KEY
from offline_api.storage import KeyValueStore

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class StateEvent(str, Enum):
    """Edge-triggered notifications emitted by NetworkState setters."""

    RECONNECTED = "reconnected"
    WENT_OFFLINE = "went_offline"
    REQUIRED_DATA_READY = "required_data_ready"
    CREDENTIALS_CHANGED = "credentials_changed"


@dataclass(frozen=True)
class Credentials:
    """Stored login used to obtain a fresh auth token."""

    login: str
    password: str

    def to_dict(self) -> dict[str, object]:
        return {"login": self.login, "password": self.password}

    @classmethod
    def from_dict(cls, data: dict[str, object] | None) -> "Credentials | None":
        """Deserialize; returns None when login or password is missing."""
        if not data:
            return None
        login = data.get("login")
        password = data.get("password")
        if not login or not password:
            return None
        return cls(login=str(login), password=str(password))


class NetworkState:
    """
    Connectivity and credential record consulted before every send.

    Mutated only through the explicit setters below. Transitions that matter
    to the dispatchers (back online, gone offline, required data hydrated,
    new credentials) are delivered to listeners registered with add_listener().
    """

    def __init__(self) -> None:
        self._is_offline = False
        self._is_backend_reachable = True
        self._credentials: Credentials | None = None
        self._auth_token: str | None = None
        self._is_authenticating = False
        self._session_loaded = False
        self._credentials_loaded = False
        self._required_data = asyncio.Event()
        self._listeners: dict[StateEvent, list[Listener]] = {event: [] for event in StateEvent}

    # ------------------------------------------------------------------
    # Getters
    # ------------------------------------------------------------------

    def is_offline(self) -> bool:
        return self._is_offline

    def is_backend_reachable(self) -> bool:
        return self._is_backend_reachable

    def can_send(self) -> bool:
        """True when online and the backend is reachable."""
        return not self._is_offline and self._is_backend_reachable

    def get_credentials(self) -> Credentials | None:
        return self._credentials

    def get_auth_token(self) -> str | None:
        return self._auth_token

    def is_authenticating(self) -> bool:
        return self._is_authenticating

    def has_read_required_data_from_storage(self) -> bool:
        return self._required_data.is_set()

    async def wait_for_required_data(self) -> None:
        """Suspend until session and credentials have been hydrated."""
        await self._required_data.wait()

    # ------------------------------------------------------------------
    # Setters
    # ------------------------------------------------------------------

    def set_network_status(self, is_offline: bool, is_backend_reachable: bool | None = None) -> None:
        could_send = self.can_send()
        was_offline = self._is_offline

        self._is_offline = is_offline
        if is_backend_reachable is not None:
            self._is_backend_reachable = is_backend_reachable

        if not was_offline and is_offline:
            logger.debug("Network went offline")
            self._emit(StateEvent.WENT_OFFLINE)
        if not could_send and self.can_send():
            logger.debug("Network is back online")
            self._emit(StateEvent.RECONNECTED)

    def set_is_offline(self, is_offline: bool) -> None:
        self.set_network_status(is_offline, is_backend_reachable=not is_offline)

    def set_session(self, session: dict[str, Any] | None) -> None:
        """Apply the persisted session record (hydration counts even when empty)."""
        token = (session or {}).get("authToken")
        self._auth_token = str(token) if token else None
        self._session_loaded = True
        self.check_required_data()

    def set_auth_token(self, token: str | None) -> None:
        self._auth_token = token

    def set_credentials(self, credentials: Credentials | None) -> None:
        changed = credentials is not None and credentials != self._credentials
        self._credentials = credentials
        self._credentials_loaded = True
        if changed:
            self._emit(StateEvent.CREDENTIALS_CHANGED)
        self.check_required_data()

    def set_is_authenticating(self, is_authenticating: bool) -> None:
        self._is_authenticating = is_authenticating

    def check_required_data(self) -> None:
        """Mark required data as read once both session and credentials are hydrated."""
        if self._required_data.is_set():
            return
        if self._session_loaded and self._credentials_loaded:
            self._required_data.set()
            logger.debug("Required data read from storage")
            self._emit(StateEvent.REQUIRED_DATA_READY)

    def reset_has_read_required_data_from_storage(self) -> None:
        """Forget hydration (cold-start simulation); dispatchers block until re-read."""
        self._session_loaded = False
        self._credentials_loaded = False
        self._required_data.clear()

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, event: StateEvent, listener: Listener) -> Callable[[], None]:
        """
        Register a callback for a state transition.

        Returns:
            Function that removes the listener
        """
        self._listeners[event].append(listener)

        def remove() -> None:
            if listener in self._listeners[event]:
                self._listeners[event].remove(listener)

        return remove

    def _emit(self, event: StateEvent) -> None:
        for listener in list(self._listeners[event]):
            listener()


def _apply_network(state: NetworkState, value: dict[str, Any] | None) -> None:
    record = value or {}
    is_offline = bool(record.get("isOffline", False))
    reachable = record.get("isBackendReachable")
    state.set_network_status(is_offline, bool(reachable) if reachable is not None else not is_offline)


def bind_to_storage(store: KeyValueStore, state: NetworkState) -> Callable[[], None]:
    """
    Keep NetworkState in sync with the persisted network/session/credentials records.

    Hydrates immediately from current values, then follows every change.

    Returns:
        Function that removes all subscriptions
    """
    unsubscribers = [
        store.subscribe(NETWORK_KEY, lambda value: _apply_network(state, value)),
        store.subscribe(CREDENTIALS_KEY, lambda value: state.set_credentials(Credentials.from_dict(value))),
        store.subscribe(SESSION_KEY, lambda value: state.set_session(value)),
    ]

    _apply_network(state, store.get(NETWORK_KEY))
    state.set_credentials(Credentials.from_dict(store.get(CREDENTIALS_KEY)))
    state.set_session(store.get(SESSION_KEY))

    def unbind() -> None:
        for unsubscribe in unsubscribers:
            unsubscribe()

    return unbind
