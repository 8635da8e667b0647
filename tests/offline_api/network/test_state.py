"""Tests for NetworkState transitions and storage binding."""

import asyncio

import pytest

from offline_api.constants import CREDENTIALS_KEY, NETWORK_KEY, SESSION_KEY
from offline_api.network.state import Credentials, NetworkState, StateEvent, bind_to_storage


def _record(state: NetworkState) -> dict[StateEvent, int]:
    counts = {event: 0 for event in StateEvent}
    for event in StateEvent:
        state.add_listener(event, lambda event=event: counts.__setitem__(event, counts[event] + 1))
    return counts


def test_defaults_online_and_unhydrated():
    state = NetworkState()

    assert state.can_send()
    assert state.get_auth_token() is None
    assert not state.has_read_required_data_from_storage()


def test_offline_edges_fire_once():
    state = NetworkState()
    counts = _record(state)

    state.set_is_offline(True)
    state.set_is_offline(True)
    state.set_is_offline(False)
    state.set_is_offline(False)

    assert counts[StateEvent.WENT_OFFLINE] == 1
    assert counts[StateEvent.RECONNECTED] == 1


def test_reachability_alone_controls_can_send():
    state = NetworkState()
    counts = _record(state)

    state.set_network_status(False, is_backend_reachable=False)
    assert not state.can_send()
    assert not state.is_offline()

    state.set_network_status(False, is_backend_reachable=True)
    assert state.can_send()
    assert counts[StateEvent.RECONNECTED] == 1
    assert counts[StateEvent.WENT_OFFLINE] == 0


def test_required_data_needs_session_and_credentials():
    state = NetworkState()
    counts = _record(state)

    state.set_session({"authToken": "abc"})
    assert not state.has_read_required_data_from_storage()

    state.set_credentials(None)
    assert state.has_read_required_data_from_storage()
    assert state.get_auth_token() == "abc"
    assert counts[StateEvent.REQUIRED_DATA_READY] == 1


def test_reset_required_data_blocks_until_rehydrated():
    state = NetworkState()
    state.set_session(None)
    state.set_credentials(None)

    state.reset_has_read_required_data_from_storage()
    assert not state.has_read_required_data_from_storage()

    state.set_credentials(None)
    state.set_session(None)
    assert state.has_read_required_data_from_storage()


def test_credentials_changed_only_for_new_values():
    state = NetworkState()
    counts = _record(state)
    creds = Credentials(login="user", password="pw")

    state.set_credentials(creds)
    state.set_credentials(Credentials(login="user", password="pw"))
    state.set_credentials(None)

    assert counts[StateEvent.CREDENTIALS_CHANGED] == 1


def test_removed_listener_is_not_called():
    state = NetworkState()
    calls = []
    remove = state.add_listener(StateEvent.WENT_OFFLINE, lambda: calls.append(1))
    remove()

    state.set_is_offline(True)

    assert calls == []


def test_credentials_from_dict_requires_both_fields():
    assert Credentials.from_dict({"login": "user"}) is None
    assert Credentials.from_dict(None) is None
    assert Credentials.from_dict({"login": "user", "password": "pw"}) == Credentials("user", "pw")


@pytest.mark.asyncio
async def test_wait_for_required_data_resumes_on_hydration():
    state = NetworkState()
    state.set_session(None)

    waiter = asyncio.create_task(state.wait_for_required_data())
    await asyncio.sleep(0)
    assert not waiter.done()

    state.set_credentials(None)
    await asyncio.wait_for(waiter, timeout=1)


# ============================================================================
# Storage binding
# ============================================================================


def test_bind_hydrates_from_existing_records(storage):
    storage.set(NETWORK_KEY, {"isOffline": True})
    storage.set(SESSION_KEY, {"authToken": "stored"})
    storage.set(CREDENTIALS_KEY, {"login": "user", "password": "pw"})
    state = NetworkState()

    bind_to_storage(storage, state)

    assert state.is_offline()
    assert state.get_auth_token() == "stored"
    assert state.get_credentials() == Credentials("user", "pw")
    assert state.has_read_required_data_from_storage()


def test_bind_follows_later_writes(storage):
    state = NetworkState()
    unbind = bind_to_storage(storage, state)
    counts = _record(state)

    storage.set(NETWORK_KEY, {"isOffline": True})
    storage.set(NETWORK_KEY, {"isOffline": False})
    storage.merge(SESSION_KEY, {"authToken": "fresh"})

    assert counts[StateEvent.WENT_OFFLINE] == 1
    assert counts[StateEvent.RECONNECTED] == 1
    assert state.get_auth_token() == "fresh"

    unbind()
    storage.set(NETWORK_KEY, {"isOffline": True})
    assert not state.is_offline()


def test_network_record_without_reachability_means_reachable(storage):
    state = NetworkState()
    bind_to_storage(storage, state)
    state.set_network_status(False, is_backend_reachable=False)

    storage.set(NETWORK_KEY, {"isOffline": False})

    assert state.can_send()
