"""Auth coordinator.

The context object the UI talks to. It wires the session observer, the
initialization state machine and the navigation reconciler together and
exposes their state. Built once at app start by ``core.container`` and passed
to whoever needs it.
"""

import asyncio
import logging

from confluency.core.resilience import call_with_timeout
from confluency.models.auth import Identity, SessionLookupStatus
from confluency.models.diagnostics import DiagnosticType
from confluency.models.initialization import InitializationStatus
from confluency.services.auth_errors import standardize_auth_error
from confluency.services.diagnostics import DiagnosticsSink
from confluency.services.navigation_reconciler import AuthNavigationReconciler
from confluency.services.session_observer import AuthSessionObserver
from confluency.services.subscription_service import SubscriptionService
from confluency.services.user_initialization import UserInitializationStateMachine

logger = logging.getLogger(__name__)

VERIFICATION_FAILED_MESSAGE = (
    "User data initialization failed. The app will attempt to retry automatically."
)
ENTITLEMENT_SYNC_TIMEOUT_SECONDS = 5.0


class AuthCoordinator:
    """Startup pipeline and auth-change handling.

    Verification failures keep the user signed in: ``auth_error`` is set and
    the user can retry. Overlapping verifications for the same user share a
    single in-flight task.
    """

    def __init__(
        self,
        observer: AuthSessionObserver,
        state_machine: UserInitializationStateMachine,
        reconciler: AuthNavigationReconciler,
        diagnostics: DiagnosticsSink,
        subscriptions: SubscriptionService | None = None,
        entitlement_timeout: float | None = ENTITLEMENT_SYNC_TIMEOUT_SECONDS,
    ) -> None:
        self.observer = observer
        self.state_machine = state_machine
        self.reconciler = reconciler
        self.diagnostics = diagnostics
        self.subscriptions = subscriptions
        self._entitlement_timeout = entitlement_timeout

        self._auth_error: str | None = None
        self._loading = True
        self._started = False
        self._known_user_id: str | None = None
        self._verifications: dict[str, asyncio.Task[bool]] = {}
        self._background: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def current_user(self) -> Identity | None:
        return self.observer.current_user

    @property
    def is_authenticated(self) -> bool:
        return self.observer.is_authenticated

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def auth_error(self) -> str | None:
        return self._auth_error

    @property
    def is_verifying_user(self) -> bool:
        return any(not task.done() for task in self._verifications.values())

    @property
    def init_status(self) -> InitializationStatus:
        return self.state_machine.status

    @property
    def init_error(self) -> str | None:
        return self.state_machine.error

    @property
    def is_initialized(self) -> bool:
        return self.state_machine.is_initialized

    @property
    def is_initializing(self) -> bool:
        return self.state_machine.is_initializing

    @property
    def has_init_failed(self) -> bool:
        return self.state_machine.has_init_failed

    @property
    def requires_retry(self) -> bool:
        return self.state_machine.requires_retry

    @property
    def is_offline(self) -> bool:
        return self.state_machine.is_offline

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Run the startup pipeline.

        Restores the persisted status, subscribes to auth changes, polls the
        session once and, for a signed-in user, syncs entitlements and
        verifies backing data before requesting navigation.
        """
        if self._started:
            return
        self._started = True

        await self.state_machine.start()
        self.observer.subscribe(self._on_identity_change)

        lookup = await self.observer.initialize()
        if lookup.status == SessionLookupStatus.ERROR:
            self._auth_error = standardize_auth_error(lookup.error).message

        user = self.observer.current_user
        if user is not None and user.user_id != self._known_user_id:
            self._known_user_id = user.user_id
            await self._sync_entitlements(user.user_id)
            await self._verify_user(user.user_id)

        self._loading = False
        self.reconciler.navigate_by_auth_state(self.is_authenticated)
        logger.info("Auth coordinator started (authenticated=%s)", self.is_authenticated)

    async def stop(self) -> None:
        """Detach from the provider and cancel outstanding work."""
        await self.observer.close()
        pending = [t for t in (*self._background, *self._verifications.values()) if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._background.clear()
        self._verifications.clear()
        await self.reconciler.close()

    async def wait_idle(self) -> None:
        """Wait until queued auth changes, verifications and navigation settle."""
        await self.observer.wait_idle()
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
        await self.reconciler.wait_idle()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def verify_and_initialize(self) -> bool:
        """Verify (and if needed create) the current user's backing data."""
        user = self.observer.current_user
        if user is None:
            logger.info("No signed-in user to verify")
            return False
        return await self._verify_user(user.user_id)

    async def reset_init_status(self) -> None:
        await self.state_machine.reset_init_status()

    async def retry_initialization(self) -> bool:
        """Start over for the current user after a failure."""
        await self.state_machine.reset_init_status()
        return await self.verify_and_initialize()

    def navigate_by_auth_state(self, is_authenticated: bool) -> None:
        self.reconciler.navigate_by_auth_state(is_authenticated)

    def begin_password_reset_flow(self) -> None:
        self.reconciler.set_reset_password_flow_active(True)

    def end_password_reset_flow(self) -> None:
        self.reconciler.set_reset_password_flow_active(False)

    async def handle_app_resume(self) -> None:
        """Foreground hook: sync purchases, retry an offline initialization."""
        if self.subscriptions is not None:
            try:
                await call_with_timeout(
                    self.subscriptions.sync_on_resume(),
                    self._entitlement_timeout,
                    "Purchase sync",
                )
            except Exception as e:
                logger.warning("Purchase sync on resume failed: %s", e)

        user = self.observer.current_user
        if user is not None and self.state_machine.requires_retry and not self.is_offline:
            logger.info("Retrying initialization for %s after resume", user.user_id)
            await self._verify_user(user.user_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _on_identity_change(self, identity: Identity | None) -> None:
        if identity is None:
            self._known_user_id = None
            self._auth_error = None
            self.reconciler.navigate_by_auth_state(False)
            return

        if identity.user_id == self._known_user_id:
            self.reconciler.navigate_by_auth_state(True)
            return

        logger.info("New user %s authenticated; verifying user data", identity.user_id)
        self._known_user_id = identity.user_id
        task = asyncio.get_running_loop().create_task(
            self._verify_then_navigate(identity.user_id)
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _verify_then_navigate(self, user_id: str) -> None:
        await self._sync_entitlements(user_id)
        await self._verify_user(user_id)
        self.reconciler.navigate_by_auth_state(self.is_authenticated)

    async def _verify_user(self, user_id: str) -> bool:
        task = self._verifications.get(user_id)
        if task is None or task.done():
            task = asyncio.get_running_loop().create_task(self._run_verification(user_id))
            self._verifications[user_id] = task

            def _forget(done: asyncio.Task[bool]) -> None:
                if self._verifications.get(user_id) is done:
                    del self._verifications[user_id]

            task.add_done_callback(_forget)
        else:
            logger.debug("Joining in-flight verification for %s", user_id)
        return await asyncio.shield(task)

    async def _run_verification(self, user_id: str) -> bool:
        ok = await self.state_machine.verify_and_initialize(user_id)
        if ok:
            self._auth_error = None
            return True

        logger.error("User data verification failed for %s; keeping user authenticated", user_id)
        await self.diagnostics.capture(
            DiagnosticType.AUTH_FAILURE,
            user_id,
            {
                "reason": "data_verification_failed",
                "action": "keep_authenticated_allow_retry",
                "init_status": self.state_machine.status.value,
            },
        )
        self._auth_error = VERIFICATION_FAILED_MESSAGE
        return False

    async def _sync_entitlements(self, user_id: str) -> None:
        if self.subscriptions is None:
            return
        try:
            snapshot = await call_with_timeout(
                self.subscriptions.get_snapshot(user_id),
                self._entitlement_timeout,
                "Entitlement sync",
            )
        except Exception as e:
            logger.error("Entitlement sync failed for %s: %s", user_id, e)
            return
        logger.info("Subscription tier for %s: %s", user_id, snapshot.tier)
