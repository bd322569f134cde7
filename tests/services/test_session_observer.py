"""Tests for the auth session observer."""

import asyncio
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from confluency.core.exceptions import SessionMissingError
from confluency.models.auth import AuthChangeEvent, SessionLookupStatus
from confluency.models.diagnostics import DiagnosticType
from confluency.services.session_observer import AuthSessionObserver
from tests.fakes import make_identity, make_session


@pytest_asyncio.fixture
async def observer(identity_provider, diagnostics):
    observer = AuthSessionObserver(identity_provider, diagnostics)
    yield observer
    await observer.close()


def _deliver(provider, event, session):
    """Invoke provider callbacks without changing what get_session returns."""
    for listener in list(provider.listeners):
        listener(event, session)


class TestInitialize:
    """One-shot startup lookup."""

    @pytest.mark.asyncio
    async def test_no_session(self, observer):
        lookup = await observer.initialize()

        assert lookup.status == SessionLookupStatus.NO_SESSION
        assert observer.current_user is None
        assert not observer.is_authenticated

    @pytest.mark.asyncio
    async def test_restores_session_without_calling_listener(self, observer, identity_provider):
        identity_provider.session = make_session("u-1")
        seen = []
        observer.subscribe(seen.append)

        lookup = await observer.initialize()

        assert lookup.status == SessionLookupStatus.ACTIVE
        assert lookup.user.user_id == "u-1"
        assert observer.current_user.user_id == "u-1"
        assert seen == []

    @pytest.mark.asyncio
    async def test_session_without_user_falls_back_to_get_user(self, observer, identity_provider):
        session = make_session("u-1").model_copy(update={"user": None})
        identity_provider.session = session
        identity_provider.get_user = AsyncMock(return_value=make_identity("u-9"))

        lookup = await observer.initialize()

        assert lookup.user.user_id == "u-9"

    @pytest.mark.asyncio
    async def test_session_missing_error_is_not_an_error(self, observer, identity_provider, diagnostics):
        identity_provider.session_error = SessionMissingError()

        lookup = await observer.initialize()

        assert lookup.status == SessionLookupStatus.NO_SESSION
        assert lookup.error is None
        assert diagnostics.recent_events == []

    @pytest.mark.asyncio
    async def test_lookup_failure_is_reported(self, observer, identity_provider, diagnostics):
        identity_provider.session_error = ConnectionError("network down")

        lookup = await observer.initialize()

        assert lookup.status == SessionLookupStatus.ERROR
        assert isinstance(lookup.error, ConnectionError)
        assert observer.current_user is None
        event = diagnostics.recent_events[-1]
        assert event.type == DiagnosticType.AUTH_FAILURE
        assert event.details["stage"] == "initialization"

    @pytest.mark.asyncio
    async def test_event_during_lookup_wins(self, observer, identity_provider):
        identity_provider.session = make_session("u-1")
        identity_provider.session_gate = asyncio.Event()
        seen = []
        observer.subscribe(seen.append)

        lookup_task = asyncio.create_task(observer.initialize())
        await asyncio.sleep(0)
        _deliver(identity_provider, AuthChangeEvent.SIGNED_IN, make_session("u-2"))
        identity_provider.session_gate.set()
        lookup = await lookup_task
        await observer.wait_idle()

        assert lookup.user.user_id == "u-1"
        assert observer.current_user.user_id == "u-2"
        assert [identity.user_id for identity in seen] == ["u-2"]


class TestSubscribe:
    """Ordered change delivery."""

    @pytest.mark.asyncio
    async def test_events_are_applied_in_order(self, observer, identity_provider):
        seen = []

        async def slow_listener(identity):
            # The first change takes longest; later ones must still follow it
            if not seen:
                await asyncio.sleep(0.02)
            seen.append(identity.user_id if identity else None)

        observer.subscribe(slow_listener)
        identity_provider.emit(AuthChangeEvent.SIGNED_IN, make_session("u-1"))
        identity_provider.emit(AuthChangeEvent.SIGNED_OUT, None)
        identity_provider.emit(AuthChangeEvent.SIGNED_IN, make_session("u-2"))
        await observer.wait_idle()

        assert seen == ["u-1", None, "u-2"]
        assert observer.current_user.user_id == "u-2"

    @pytest.mark.asyncio
    async def test_same_identity_is_not_redelivered(self, observer, identity_provider):
        seen = []
        observer.subscribe(seen.append)

        identity_provider.emit(AuthChangeEvent.SIGNED_IN, make_session("u-1"))
        identity_provider.emit(AuthChangeEvent.TOKEN_REFRESHED, make_session("u-1"))
        await observer.wait_idle()

        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_second_subscription_is_rejected(self, observer):
        observer.subscribe(lambda identity: None)

        with pytest.raises(RuntimeError):
            observer.subscribe(lambda identity: None)

    @pytest.mark.asyncio
    async def test_listener_failure_does_not_stop_dispatch(self, observer, identity_provider):
        seen = []

        def listener(identity):
            seen.append(identity)
            if len(seen) == 1:
                raise RuntimeError("listener bug")

        observer.subscribe(listener)
        identity_provider.emit(AuthChangeEvent.SIGNED_IN, make_session("u-1"))
        identity_provider.emit(AuthChangeEvent.SIGNED_OUT, None)
        await observer.wait_idle()

        assert len(seen) == 2
        assert observer.current_user is None

    @pytest.mark.asyncio
    async def test_unsubscribe_is_idempotent(self, observer, identity_provider):
        seen = []
        unsubscribe = observer.subscribe(seen.append)

        unsubscribe()
        unsubscribe()
        identity_provider.emit(AuthChangeEvent.SIGNED_IN, make_session("u-1"))
        await asyncio.sleep(0)

        assert identity_provider.unsubscribed == 1
        assert identity_provider.listeners == []
        assert seen == []

    @pytest.mark.asyncio
    async def test_close_without_subscription(self, identity_provider):
        observer = AuthSessionObserver(identity_provider)
        await observer.close()
        await observer.wait_idle()
