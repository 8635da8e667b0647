"""CLI tests using typer's CliRunner (HOME is redirected to tmp_path)."""

import json

import httpx
import pytest
import respx
from typer.testing import CliRunner

from offline_api import __version__
from offline_api.cli.main import app
from offline_api.config import load_settings
from offline_api.constants import CREDENTIALS_KEY, NETWORK_KEY
from offline_api.requests import PersistedRequests
from offline_api.storage import KeyValueStore

runner = CliRunner()


def _requests() -> PersistedRequests:
    return PersistedRequests(load_settings().queue_path)


def _storage() -> KeyValueStore:
    return KeyValueStore(load_settings().storage_dir)


def test_version():
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_queue_add_and_list():
    result = runner.invoke(app, ["queue", "add", "SetName", "-d", "name=Ada", "-d", "age=36"])
    assert result.exit_code == 0, result.stdout
    assert "Queued SetName at position 0" in result.stdout

    entries = _requests().read_all()
    assert entries[0].command.data == {"name": "Ada", "age": 36}

    result = runner.invoke(app, ["queue", "list"])
    assert result.exit_code == 0
    assert "SetName" in result.stdout


def test_queue_list_json():
    runner.invoke(app, ["queue", "add", "SetName", "-d", "name=Ada"])

    result = runner.invoke(app, ["queue", "list", "--json"])

    assert result.exit_code == 0
    records = json.loads(result.stdout)
    assert [record["command"] for record in records] == ["SetName"]


def test_queue_list_empty():
    result = runner.invoke(app, ["queue", "list"])
    assert result.exit_code == 0
    assert "No pending writes" in result.stdout


def test_queue_add_rejects_malformed_data():
    result = runner.invoke(app, ["queue", "add", "SetName", "-d", "no-equals-sign"])
    assert result.exit_code != 0
    assert len(_requests()) == 0


def test_queue_clear_requires_confirmation():
    runner.invoke(app, ["queue", "add", "SetName"])

    result = runner.invoke(app, ["queue", "clear"], input="n\n")
    assert result.exit_code == 1
    assert len(_requests()) == 1

    result = runner.invoke(app, ["queue", "clear", "--yes"])
    assert result.exit_code == 0
    assert "Discarded 1 pending write(s)" in result.stdout
    assert len(_requests()) == 0


def test_network_mode_is_stored():
    result = runner.invoke(app, ["network", "offline"])
    assert result.exit_code == 0
    assert _storage().get(NETWORK_KEY) == {"isOffline": True, "isBackendReachable": False}


def test_network_rejects_unknown_mode():
    result = runner.invoke(app, ["network", "sideways"])
    assert result.exit_code == 1
    assert "Invalid mode" in result.stdout


def test_login_stores_credentials():
    result = runner.invoke(app, ["login", "user@example.com"], input="secret\nsecret\n")

    assert result.exit_code == 0, result.stdout
    assert _storage().get(CREDENTIALS_KEY) == {"login": "user@example.com", "password": "secret"}


def test_logout_drops_credentials_and_writes():
    runner.invoke(app, ["login", "user@example.com", "--password", "secret"])
    runner.invoke(app, ["queue", "add", "SetName"])

    result = runner.invoke(app, ["logout", "--yes"])

    assert result.exit_code == 0
    assert _storage().get(CREDENTIALS_KEY) is None
    assert len(_requests()) == 0


def test_status_shows_pending_count():
    runner.invoke(app, ["queue", "add", "SetName"])
    runner.invoke(app, ["network", "offline"])

    result = runner.invoke(app, ["status"])

    assert result.exit_code == 0
    assert "Pending writes" in result.stdout
    assert "yes" in result.stdout


def test_invalid_config_exits(tmp_path):
    config = tmp_path / ".offline-api" / "config.yaml"
    config.parent.mkdir(parents=True)
    config.write_text("- not a mapping\n")

    result = runner.invoke(app, ["status"])

    assert result.exit_code == 1
    assert "Configuration error" in result.stdout


# ============================================================================
# flush
# ============================================================================


def test_flush_with_empty_queue():
    result = runner.invoke(app, ["flush"])
    assert result.exit_code == 0
    assert "Nothing to send" in result.stdout


@pytest.mark.respx(base_url="https://api.example.com")
def test_flush_sends_writes_in_order(respx_mock: respx.MockRouter):
    route = respx_mock.post("/api/SetName").mock(return_value=httpx.Response(200, json={"jsonCode": 200}))
    runner.invoke(app, ["queue", "add", "SetName", "-d", "name=first"])
    runner.invoke(app, ["queue", "add", "SetName", "-d", "name=second"])

    result = runner.invoke(app, ["flush", "--timeout", "5"])

    assert result.exit_code == 0, result.stdout
    assert "Remaining: 0" in result.stdout
    sent = [json.loads(call.request.content)["name"] for call in route.calls]
    assert sent == ["first", "second"]


@pytest.mark.respx(base_url="https://api.example.com")
def test_flush_stops_on_failed_authentication(respx_mock: respx.MockRouter):
    respx_mock.post("/api/SetName").mock(return_value=httpx.Response(200, json={"jsonCode": 407}))
    runner.invoke(app, ["queue", "add", "SetName"])

    result = runner.invoke(app, ["flush", "--timeout", "5"])

    assert result.exit_code == 1
    assert "Authentication failed" in result.stdout
    assert len(_requests()) == 1


def test_flush_while_offline_keeps_writes():
    runner.invoke(app, ["queue", "add", "SetName"])
    runner.invoke(app, ["network", "offline"])

    result = runner.invoke(app, ["flush", "--timeout", "1"])

    assert result.exit_code == 1
    assert "Queue is offline" in result.stdout
    assert len(_requests()) == 1
