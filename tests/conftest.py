"""Shared test fixtures for the Confluency client core test suite."""

import os
from unittest.mock import AsyncMock

import pytest

# Set testing environment before settings are read
os.environ["TESTING"] = "1"
os.environ["ENVIRONMENT"] = "testing"
os.environ["STORAGE_BACKEND"] = "memory"

from confluency.core.config import get_settings  # noqa: E402
from confluency.models.diagnostics import DeviceSnapshot  # noqa: E402
from confluency.ports.data_ports import UserDataInitializer, UserDataVerifier  # noqa: E402
from confluency.services.connectivity import ManualConnectivityMonitor  # noqa: E402
from confluency.services.diagnostics import DiagnosticsSink  # noqa: E402
from confluency.services.status_store import PersistentStatusStore  # noqa: E402
from confluency.storage.memory_store import InMemoryKeyValueStore  # noqa: E402
from tests.fakes import (  # noqa: E402
    FakeIdentityProvider,
    FakeNavigationRuntime,
    RecordingSleep,
)


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are cached per process; isolate tests that change env."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def kv_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def status_store(kv_store: InMemoryKeyValueStore) -> PersistentStatusStore:
    return PersistentStatusStore(kv_store)


@pytest.fixture
def connectivity() -> ManualConnectivityMonitor:
    return ManualConnectivityMonitor()


@pytest.fixture
def diagnostics(connectivity: ManualConnectivityMonitor) -> DiagnosticsSink:
    return DiagnosticsSink(
        connectivity=connectivity,
        device_info=DeviceSnapshot(platform="test", app_version="1.0.0"),
    )


@pytest.fixture
def verifier() -> AsyncMock:
    mock = AsyncMock(spec=UserDataVerifier)
    mock.user_data_exists.return_value = True
    return mock


@pytest.fixture
def initializer() -> AsyncMock:
    mock = AsyncMock(spec=UserDataInitializer)
    mock.initialize_user_data.return_value = True
    return mock


@pytest.fixture
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def navigation_runtime() -> FakeNavigationRuntime:
    return FakeNavigationRuntime()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
