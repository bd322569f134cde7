"""Tests for the user data initialization state machine.

Tests cover:
- Verify, initialize and persist flow
- Verification failures never re-initialize
- Offline handling and interrupted attempts
- Superseded attempts and reset
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from confluency.models.diagnostics import DiagnosticType
from confluency.models.initialization import InitializationAttemptRecord, InitializationStatus
from confluency.observability.metrics import get_metric_value
from confluency.ports.storage import KeyValueStore
from confluency.services.diagnostics import DiagnosticsSink
from confluency.services.status_store import PersistentStatusStore
from confluency.services.user_initialization import (
    INIT_FAILED_MESSAGE,
    INTERRUPTED_MESSAGE,
    OFFLINE_MESSAGE,
    UserInitializationStateMachine,
)


@pytest.fixture
def machine(verifier, initializer, status_store, diagnostics, connectivity):
    return UserInitializationStateMachine(
        verifier,
        initializer,
        status_store,
        diagnostics,
        connectivity,
        clock=lambda: 1_700_000_000_000,
    )


@pytest.fixture
def transitions(machine):
    seen: list[tuple[InitializationStatus, str | None]] = []
    machine.add_listener(lambda status, error: seen.append((status, error)))
    return seen


def _types(diagnostics):
    return [event.type for event in diagnostics.recent_events]


class TestVerifyAndInitialize:
    """Happy and failure paths of a single attempt."""

    @pytest.mark.asyncio
    async def test_existing_data_succeeds_without_initializing(
        self, machine, transitions, verifier, initializer
    ):
        assert await machine.verify_and_initialize("u-1")

        verifier.user_data_exists.assert_awaited_once_with("u-1")
        initializer.initialize_user_data.assert_not_awaited()
        assert transitions == [(InitializationStatus.SUCCESS, None)]
        assert machine.is_initialized
        assert machine.last_attempt_at == 1_700_000_000_000

    @pytest.mark.asyncio
    async def test_missing_data_is_initialized_and_persisted(
        self, machine, transitions, verifier, initializer, kv_store
    ):
        verifier.user_data_exists.return_value = False
        assert machine.status == InitializationStatus.UNKNOWN

        assert await machine.verify_and_initialize("u-1")

        initializer.initialize_user_data.assert_awaited_once_with("u-1")
        assert [status for status, _ in transitions] == [
            InitializationStatus.IN_PROGRESS,
            InitializationStatus.SUCCESS,
        ]
        persisted = await PersistentStatusStore(kv_store).load()
        assert persisted.status == InitializationStatus.SUCCESS
        assert persisted.error is None
        assert len(kv_store.snapshot()) == 1

    @pytest.mark.asyncio
    async def test_verification_error_fails_without_initializing(
        self, machine, verifier, initializer, diagnostics
    ):
        verifier.user_data_exists.side_effect = ConnectionError("backend unreachable")

        assert not await machine.verify_and_initialize("u-1")

        initializer.initialize_user_data.assert_not_awaited()
        assert machine.has_init_failed
        assert machine.error == "backend unreachable"
        event = diagnostics.recent_events[-1]
        assert event.type == DiagnosticType.VERIFY_FAILURE
        assert event.user_id == "u-1"
        assert event.details["error_type"] == "ConnectionError"

    @pytest.mark.asyncio
    async def test_initializer_reporting_failure(self, machine, verifier, initializer, diagnostics):
        verifier.user_data_exists.return_value = False
        initializer.initialize_user_data.return_value = False

        assert not await machine.verify_and_initialize("u-1")

        assert machine.status == InitializationStatus.FAILED
        assert machine.error == INIT_FAILED_MESSAGE
        assert _types(diagnostics) == [DiagnosticType.INIT_FAILURE]

    @pytest.mark.asyncio
    async def test_initializer_raising(self, machine, verifier, initializer):
        verifier.user_data_exists.return_value = False
        initializer.initialize_user_data.side_effect = RuntimeError("insert rejected")

        assert not await machine.verify_and_initialize("u-1")

        assert machine.error == "insert rejected"

    @pytest.mark.asyncio
    async def test_offline_requires_retry(
        self, machine, verifier, initializer, connectivity, diagnostics
    ):
        verifier.user_data_exists.return_value = False
        connectivity.set_online(False)

        assert not await machine.verify_and_initialize("u-1")

        initializer.initialize_user_data.assert_not_awaited()
        assert machine.requires_retry
        assert machine.is_offline
        assert machine.error == OFFLINE_MESSAGE
        event = diagnostics.recent_events[-1]
        assert event.type == DiagnosticType.NETWORK_ISSUE
        assert event.details["severity"] == "low"

    @pytest.mark.asyncio
    async def test_missing_user_id(self, machine, verifier, diagnostics):
        assert not await machine.verify_and_initialize(None)
        assert not await machine.initialize("")

        verifier.user_data_exists.assert_not_awaited()
        assert machine.status == InitializationStatus.UNKNOWN
        assert [e.details["reason"] for e in diagnostics.recent_events] == [
            "missing_user_id",
            "missing_user_id",
        ]

    @pytest.mark.asyncio
    async def test_verification_timeout_fails(
        self, verifier, initializer, status_store, diagnostics, connectivity
    ):
        async def hang(user_id):
            await asyncio.sleep(10)

        verifier.user_data_exists.side_effect = hang
        machine = UserInitializationStateMachine(
            verifier, initializer, status_store, diagnostics, connectivity, call_timeout=0.01
        )

        assert not await machine.verify_and_initialize("u-1")

        assert machine.has_init_failed
        assert "timed out" in machine.error
        initializer.initialize_user_data.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_hung_diagnostics_transport_does_not_block(
        self, verifier, initializer, status_store, connectivity
    ):
        async def hang(event):
            await asyncio.sleep(3600)

        verifier.user_data_exists.side_effect = RuntimeError("db down")
        sink = DiagnosticsSink(connectivity=connectivity, transport=hang, transport_timeout=0.01)
        machine = UserInitializationStateMachine(
            verifier, initializer, status_store, sink, connectivity
        )

        assert not await asyncio.wait_for(machine.verify_and_initialize("u-1"), timeout=1)

        assert machine.has_init_failed
        assert sink.recent_events[-1].type == DiagnosticType.VERIFY_FAILURE

    @pytest.mark.asyncio
    async def test_store_failure_does_not_escape(
        self, verifier, initializer, diagnostics, connectivity
    ):
        failing = AsyncMock(spec=KeyValueStore)
        failing.get.side_effect = ConnectionError("disk gone")
        failing.set.side_effect = ConnectionError("disk gone")
        machine = UserInitializationStateMachine(
            verifier, initializer, PersistentStatusStore(failing), diagnostics, connectivity
        )

        await machine.start()
        assert await machine.verify_and_initialize("u-1")

        assert machine.is_initialized
        failing.set.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_initialize_skips_verification(self, machine, verifier, initializer):
        assert await machine.initialize("u-1")

        verifier.user_data_exists.assert_not_awaited()
        initializer.initialize_user_data.assert_awaited_once_with("u-1")

    @pytest.mark.asyncio
    async def test_transitions_are_counted(self, machine):
        before = get_metric_value(
            "confluency_init_transitions_total", {"status": "success"}
        )

        await machine.verify_and_initialize("u-1")

        after = get_metric_value("confluency_init_transitions_total", {"status": "success"})
        assert after == before + 1

    @pytest.mark.asyncio
    async def test_listener_failure_does_not_break_transition(self, machine):
        def broken(status, error):
            raise RuntimeError("listener bug")

        machine.add_listener(broken)

        assert await machine.verify_and_initialize("u-1")
        assert machine.is_initialized

    @pytest.mark.asyncio
    async def test_unsubscribed_listener_is_not_called(self, machine):
        seen = []
        unsubscribe = machine.add_listener(lambda status, error: seen.append(status))
        unsubscribe()

        await machine.verify_and_initialize("u-1")

        assert seen == []


class TestSupersededAttempts:
    """Late results from older attempts never win."""

    @pytest.mark.asyncio
    async def test_slow_failure_cannot_overwrite_newer_success(
        self, machine, verifier, kv_store
    ):
        gate = asyncio.Event()
        calls = 0

        async def verify(user_id):
            nonlocal calls
            calls += 1
            if calls == 1:
                await gate.wait()
                raise ConnectionError("late failure")
            return True

        verifier.user_data_exists.side_effect = verify

        slow = asyncio.create_task(machine.verify_and_initialize("u-1"))
        await asyncio.sleep(0)
        assert await machine.verify_and_initialize("u-1")

        gate.set()
        assert not await slow

        assert machine.status == InitializationStatus.SUCCESS
        persisted = await PersistentStatusStore(kv_store).load()
        assert persisted.status == InitializationStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_reset_discards_in_flight_result(self, machine, verifier, initializer, kv_store):
        verifier.user_data_exists.return_value = False
        gate = asyncio.Event()

        async def initialize(user_id):
            await gate.wait()
            return True

        initializer.initialize_user_data.side_effect = initialize

        in_flight = asyncio.create_task(machine.verify_and_initialize("u-1"))
        await asyncio.sleep(0.01)
        assert machine.is_initializing

        await machine.reset_init_status()
        gate.set()

        assert not await in_flight
        assert machine.status == InitializationStatus.UNKNOWN
        assert machine.error is None
        assert kv_store.snapshot() == {}


class TestStart:
    """Seeding from the persisted record."""

    @pytest.mark.asyncio
    async def test_restores_persisted_status(self, machine, status_store):
        await status_store.save(
            InitializationAttemptRecord(
                status=InitializationStatus.FAILED, error="earlier", timestamp=42
            )
        )

        await machine.start()

        assert machine.status == InitializationStatus.FAILED
        assert machine.error == "earlier"
        assert machine.last_attempt_at == 42

    @pytest.mark.asyncio
    async def test_interrupted_attempt_requires_retry(self, machine, status_store, kv_store):
        await status_store.save(
            InitializationAttemptRecord(status=InitializationStatus.IN_PROGRESS, timestamp=42)
        )

        await machine.start()

        assert machine.requires_retry
        assert machine.error == INTERRUPTED_MESSAGE
        persisted = await PersistentStatusStore(kv_store).load()
        assert persisted.status == InitializationStatus.REQUIRES_RETRY
        assert persisted.error == INTERRUPTED_MESSAGE

    @pytest.mark.asyncio
    async def test_nothing_persisted_stays_unknown(self, machine):
        await machine.start()
        assert machine.status == InitializationStatus.UNKNOWN

    @pytest.mark.asyncio
    async def test_start_runs_once(self, machine, status_store):
        await machine.start()
        await status_store.save(
            InitializationAttemptRecord(status=InitializationStatus.SUCCESS)
        )

        await machine.start()

        assert machine.status == InitializationStatus.UNKNOWN

    @pytest.mark.asyncio
    async def test_transition_after_start_outranks_loaded_record(
        self, machine, status_store, kv_store
    ):
        await status_store.save(
            InitializationAttemptRecord(status=InitializationStatus.FAILED, sequence=9)
        )
        await machine.start()

        await machine.verify_and_initialize("u-1")

        persisted = await PersistentStatusStore(kv_store).load()
        assert persisted.status == InitializationStatus.SUCCESS
        assert persisted.sequence > 9
