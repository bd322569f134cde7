"""Auth session observer.

Holds the current identity and turns the identity provider's change stream
into an ordered sequence of identity updates. Provider callbacks only enqueue;
a single dispatcher task applies events one at a time so a slow async
listener can never see them out of order.
"""

import asyncio
from collections.abc import Awaitable, Callable
import inspect
import logging

from confluency.core.exceptions import SessionMissingError
from confluency.models.auth import (
    AuthChangeEvent,
    AuthSession,
    Identity,
    SessionLookup,
    SessionLookupStatus,
)
from confluency.models.diagnostics import DiagnosticType
from confluency.ports.auth_ports import IdentityProvider, Unsubscribe
from confluency.services.diagnostics import DiagnosticsSink

logger = logging.getLogger(__name__)

IdentityListener = Callable[[Identity | None], Awaitable[None] | None]


class AuthSessionObserver:
    """Single writer of the current user.

    Args:
        identity_provider: Source of the session and change events
        diagnostics: Optional sink for startup lookup failures
    """

    def __init__(
        self,
        identity_provider: IdentityProvider,
        diagnostics: DiagnosticsSink | None = None,
    ) -> None:
        self._provider = identity_provider
        self._diagnostics = diagnostics
        self._current_user: Identity | None = None
        self._events_received = 0
        self._subscribed = False
        self._listener: IdentityListener | None = None
        self._provider_unsubscribe: Unsubscribe | None = None
        self._queue: asyncio.Queue[Identity | None] = asyncio.Queue()
        self._dispatcher: asyncio.Task[None] | None = None

    @property
    def current_user(self) -> Identity | None:
        return self._current_user

    @property
    def is_authenticated(self) -> bool:
        return self._current_user is not None

    async def initialize(self) -> SessionLookup:
        """Query the provider once for the session present at startup.

        A change event that arrives while the query is in flight wins: the
        query result is returned but not applied.
        """
        received_before = self._events_received
        try:
            session = await self._provider.get_session()
            user = session.user if session is not None else None
            if session is not None and user is None:
                user = await self._provider.get_user()
        except SessionMissingError:
            logger.info("No auth session at startup")
            lookup = SessionLookup(status=SessionLookupStatus.NO_SESSION)
        except Exception as e:
            logger.error("Failed to read auth session at startup: %s", e)
            if self._diagnostics is not None:
                await self._diagnostics.capture(
                    DiagnosticType.AUTH_FAILURE,
                    None,
                    {"stage": "initialization", "error": str(e), "error_type": type(e).__name__},
                )
            return SessionLookup(status=SessionLookupStatus.ERROR, error=e)
        else:
            if user is None:
                logger.info("No auth session at startup")
                lookup = SessionLookup(status=SessionLookupStatus.NO_SESSION)
            else:
                logger.info("Restored auth session for %s", user.user_id)
                lookup = SessionLookup(status=SessionLookupStatus.ACTIVE, user=user)

        if self._events_received != received_before:
            logger.debug("Auth change arrived during startup lookup; keeping event state")
            return lookup

        self._current_user = lookup.user
        return lookup

    def subscribe(self, on_change: IdentityListener) -> Callable[[], None]:
        """Attach the single listener and start dispatching change events.

        Must be called from a running event loop.

        Raises:
            RuntimeError: When called more than once
        """
        if self._subscribed:
            msg = "AuthSessionObserver supports a single subscription"
            raise RuntimeError(msg)
        self._subscribed = True
        self._listener = on_change
        self._dispatcher = asyncio.get_running_loop().create_task(
            self._dispatch(), name="auth-session-dispatcher"
        )
        self._provider_unsubscribe = self._provider.on_auth_state_change(
            self._on_provider_event
        )
        return self.unsubscribe

    def unsubscribe(self) -> None:
        """Detach from the provider and stop dispatching. Idempotent."""
        if self._provider_unsubscribe is not None:
            self._provider_unsubscribe()
            self._provider_unsubscribe = None
        if self._dispatcher is not None and not self._dispatcher.done():
            self._dispatcher.cancel()
        self._listener = None

    async def close(self) -> None:
        """Unsubscribe and wait for the dispatcher to finish."""
        self.unsubscribe()
        if self._dispatcher is not None:
            try:
                await self._dispatcher
            except asyncio.CancelledError:
                pass
            self._dispatcher = None

    async def wait_idle(self) -> None:
        """Wait until every received event has been applied."""
        if self._dispatcher is None or self._dispatcher.done():
            return
        await self._queue.join()

    def _on_provider_event(self, event: AuthChangeEvent, session: AuthSession | None) -> None:
        if self._listener is None:
            return
        identity = session.user if session is not None else None
        self._events_received += 1
        logger.debug(
            "Auth change %s (user=%s)", event, identity.user_id if identity else None
        )
        self._queue.put_nowait(identity)

    async def _dispatch(self) -> None:
        while True:
            identity = await self._queue.get()
            try:
                await self._apply(identity)
            finally:
                self._queue.task_done()

    async def _apply(self, identity: Identity | None) -> None:
        if identity == self._current_user:
            return
        previous = self._current_user
        self._current_user = identity
        if identity is None:
            logger.info("User signed out (was %s)", previous.user_id if previous else None)
        else:
            logger.info("Current user is now %s", identity.user_id)

        listener = self._listener
        if listener is None:
            return
        try:
            result = listener(identity)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Auth change listener failed")
