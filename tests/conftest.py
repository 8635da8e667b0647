"""Shared fixtures: hermetic HOME, scripted transport and a wired client."""

from __future__ import annotations

import pytest
import pytest_asyncio

from offline_api.api import OfflineApiClient
from offline_api.config import PipelineSettings
from offline_api.requests import PersistedRequests
from offline_api.storage import KeyValueStore
from tests.helpers import ScriptedTransport


@pytest.fixture(autouse=True)
def patch_home(tmp_path, monkeypatch):
    """Keep every test away from the real ~/.offline-api."""
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("OFFLINE_API_BASE_URL", raising=False)
    monkeypatch.delenv("OFFLINE_API_DATA_DIR", raising=False)


@pytest.fixture
def settings(tmp_path) -> PipelineSettings:
    """Fast timings so tick and retry waits stay in the millisecond range."""
    return PipelineSettings(
        data_dir=tmp_path / "data",
        process_request_delay_ms=30,
        min_retry_wait_ms=5,
        max_random_retry_wait_ms=10,
        max_retry_wait_ms=200,
    )


@pytest.fixture
def transport() -> ScriptedTransport:
    return ScriptedTransport()


@pytest.fixture
def storage(settings) -> KeyValueStore:
    return KeyValueStore(settings.storage_dir)


@pytest.fixture
def request_store(settings) -> PersistedRequests:
    return PersistedRequests(settings.queue_path)


@pytest_asyncio.fixture
async def client(transport, storage, request_store, settings):
    """Started client with empty storage (online, required data read)."""
    api = OfflineApiClient(transport, storage=storage, request_store=request_store, settings=settings)
    await api.start()
    yield api
    await api.stop()
