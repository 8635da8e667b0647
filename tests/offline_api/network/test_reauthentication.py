"""Tests for single-flight reauthentication."""

import asyncio

import pytest

from offline_api.errors import FatalAuthError, ReauthenticationDeferred
from offline_api.network import (
    AuthExpired,
    Credentials,
    NetworkState,
    PermanentFailure,
    Reauthenticator,
    Success,
    TransientFailure,
)
from tests.helpers import ScriptedTransport, wait_for_calls


@pytest.fixture
def state():
    state = NetworkState()
    state.set_session({"authToken": "stale"})
    state.set_credentials(Credentials(login="user", password="pw"))
    return state


@pytest.mark.asyncio
async def test_success_updates_token_and_notifies(state):
    transport = ScriptedTransport()
    refreshed = []
    reauth = Reauthenticator(state, transport, on_token_refreshed=refreshed.append)

    token = await reauth.reauthenticate("GetReport")

    assert token == "newToken"
    assert state.get_auth_token() == "newToken"
    assert refreshed == ["newToken"]
    assert transport.calls == [
        ("Authenticate", {"partnerUserID": "user", "partnerUserSecret": "pw"}, None)
    ]


@pytest.mark.asyncio
async def test_concurrent_triggers_share_one_call(state):
    """Two dispatchers hitting auth expiry at once produce one authenticate call."""
    transport = ScriptedTransport()
    transport.hold = True
    reauth = Reauthenticator(state, transport)

    first = asyncio.create_task(reauth.reauthenticate("SetName"))
    second = asyncio.create_task(reauth.reauthenticate("GetReport"))
    await wait_for_calls(transport, 1)
    await asyncio.sleep(0.01)

    assert len(transport.calls) == 1
    assert state.is_authenticating()

    transport.release(0, Success({"jsonCode": 200, "authToken": "shared"}))

    assert await first == "shared"
    assert await second == "shared"
    assert not state.is_authenticating()


@pytest.mark.asyncio
async def test_new_attempt_after_previous_completed(state):
    transport = ScriptedTransport()
    reauth = Reauthenticator(state, transport)

    await reauth.reauthenticate("SetName")
    await reauth.reauthenticate("SetName")

    assert transport.names == ["Authenticate", "Authenticate"]


@pytest.mark.asyncio
async def test_offline_defers_without_calling(state):
    state.set_is_offline(True)
    transport = ScriptedTransport()
    reauth = Reauthenticator(state, transport)

    with pytest.raises(ReauthenticationDeferred):
        await reauth.reauthenticate("SetName")

    assert transport.calls == []


@pytest.mark.asyncio
async def test_missing_credentials_is_fatal(state):
    state.set_credentials(None)
    reauth = Reauthenticator(state, ScriptedTransport())

    with pytest.raises(FatalAuthError, match="No stored credentials"):
        await reauth.reauthenticate("SetName")


@pytest.mark.asyncio
@pytest.mark.parametrize("outcome", [AuthExpired(), PermanentFailure("Invalid password")])
async def test_rejected_credentials_are_fatal(state, outcome):
    transport = ScriptedTransport()
    transport.script(outcome)
    reauth = Reauthenticator(state, transport)

    with pytest.raises(FatalAuthError):
        await reauth.reauthenticate("SetName")

    assert state.get_auth_token() == "stale"
    assert not state.is_authenticating()


@pytest.mark.asyncio
async def test_success_without_token_is_fatal(state):
    transport = ScriptedTransport()
    transport.script(Success({"jsonCode": 200}))
    reauth = Reauthenticator(state, transport)

    with pytest.raises(FatalAuthError, match="without returning an authToken"):
        await reauth.reauthenticate("SetName")


@pytest.mark.asyncio
async def test_transient_failure_defers(state):
    transport = ScriptedTransport()
    transport.script(TransientFailure("server", "Issue connecting to database"))
    reauth = Reauthenticator(state, transport)

    with pytest.raises(ReauthenticationDeferred):
        await reauth.reauthenticate("SetName")

    assert state.get_auth_token() == "stale"
