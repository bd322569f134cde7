"""Auth-to-navigation reconciler.

Keeps the root navigation stack in line with the authentication state.
Requests are debounced (trailing edge), reconciliations never overlap, and
when the navigation runtime is not ready the whole reconciliation is retried
with a bounded linear backoff, re-reading the latest inputs each time.
"""

import asyncio
from collections import deque
import logging

from confluency.core.exceptions import NavigationNotReadyError, RetryExhaustedError
from confluency.core.resilience import RetryPolicy, SleepFn, retry_async
from confluency.models.diagnostics import DiagnosticType
from confluency.models.navigation import (
    NavigationCommand,
    NavigationIntent,
    RouteState,
    compute_navigation_intent,
)
from confluency.observability.metrics import NAVIGATION_COMMANDS, NAVIGATION_RETRIES
from confluency.ports.network_ports import NavigationRuntime
from confluency.services.diagnostics import DiagnosticsSink

logger = logging.getLogger(__name__)

DEFAULT_NAVIGATION_RETRY_POLICY = RetryPolicy(max_attempts=5, base_delay=0.3)
_COMMAND_HISTORY_LIMIT = 20


class AuthNavigationReconciler:
    """Drives the navigation runtime from auth state.

    Args:
        diagnostics: Receives a ``navigation_failure`` event when the
            runtime never becomes ready within the retry bound
        runtime: Navigation runtime, may be attached later
        debounce_seconds: Quiet period collapsing bursts of requests
        retry_policy: Readiness retry bound and backoff
        main_route: Landing route for authenticated users
        auth_route: Landing route for everyone else
        sleep: Awaitable sleep used between readiness retries
    """

    def __init__(
        self,
        diagnostics: DiagnosticsSink,
        *,
        runtime: NavigationRuntime | None = None,
        debounce_seconds: float = 0.1,
        retry_policy: RetryPolicy = DEFAULT_NAVIGATION_RETRY_POLICY,
        main_route: str = "Main",
        auth_route: str = "Auth",
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._diagnostics = diagnostics
        self._runtime = runtime
        self._debounce_seconds = debounce_seconds
        self._retry_policy = retry_policy
        self._routes = {NavigationIntent.MAIN: main_route, NavigationIntent.AUTH: auth_route}
        self._sleep = sleep

        self._is_authenticated = False
        self._reset_password_flow_active = False

        self._timer: asyncio.TimerHandle | None = None
        self._run_task: asyncio.Task[None] | None = None
        self._rerun_requested = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._closed = False

        self.commands_issued = 0
        self.last_attempt_count = 0
        self.issued_commands: deque[NavigationCommand] = deque(maxlen=_COMMAND_HISTORY_LIMIT)

    @property
    def reset_password_flow_active(self) -> bool:
        return self._reset_password_flow_active

    @property
    def target_intent(self) -> NavigationIntent:
        return compute_navigation_intent(
            self._is_authenticated, self._reset_password_flow_active
        )

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def navigate_by_auth_state(self, is_authenticated: bool) -> None:
        """Request a reconciliation for the given auth state."""
        self._is_authenticated = is_authenticated
        self._schedule()

    def set_reset_password_flow_active(self, active: bool) -> None:
        """Mark a password-reset flow as running; it pins the auth stack."""
        if active == self._reset_password_flow_active:
            return
        logger.info("Password reset flow %s", "started" if active else "ended")
        self._reset_password_flow_active = active
        self._schedule()

    def attach(self, runtime: NavigationRuntime) -> None:
        self._runtime = runtime

    def detach(self) -> None:
        self._runtime = None

    async def wait_idle(self) -> None:
        """Wait until no reconciliation is pending or running."""
        await self._idle.wait()

    async def close(self) -> None:
        """Cancel pending and running reconciliations."""
        self._closed = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        task = self._run_task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._run_task = None
        self._idle.set()

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _schedule(self) -> None:
        if self._closed:
            logger.debug("Reconciler closed; ignoring navigation request")
            return
        loop = asyncio.get_running_loop()
        self._idle.clear()
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(self._debounce_seconds, self._on_debounce_elapsed)

    def _on_debounce_elapsed(self) -> None:
        self._timer = None
        if self._run_task is not None and not self._run_task.done():
            self._rerun_requested = True
            return
        self._run_task = asyncio.get_running_loop().create_task(
            self._run(), name="auth-navigation-reconcile"
        )

    async def _run(self) -> None:
        try:
            while True:
                self._rerun_requested = False
                await self._reconcile()
                if not self._rerun_requested:
                    break
        finally:
            self._run_task = None
            if self._timer is None:
                self._idle.set()

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    async def _reconcile(self) -> None:
        self.last_attempt_count = 0

        def on_retry(attempt: int, error: BaseException, delay: float) -> None:
            NAVIGATION_RETRIES.inc()
            logger.info("Navigation not ready (%s); retry %d in %.2fs", error, attempt + 1, delay)

        try:
            await retry_async(
                self._attempt_navigation,
                self._retry_policy,
                retry_on=(NavigationNotReadyError,),
                sleep=self._sleep,
                on_retry=on_retry,
                operation_name="Navigation reconciliation",
            )
        except RetryExhaustedError as e:
            intent = self.target_intent
            logger.error(
                "Navigation to %s abandoned after %d attempts", intent, e.attempts
            )
            await self._diagnostics.capture(
                DiagnosticType.NAVIGATION_FAILURE,
                None,
                {
                    "intent": intent.value,
                    "route": self._routes[intent],
                    "attempts": e.attempts,
                    "error": str(e.last_error),
                },
            )

    async def _attempt_navigation(self) -> None:
        self.last_attempt_count += 1
        intent = self.target_intent
        route = self._routes[intent]

        runtime, state = self._ready_runtime()
        if state.current_route == route:
            logger.debug("Already on %s; nothing to do", route)
            return

        try:
            runtime.reset([route])
        except Exception as e:
            raise NavigationNotReadyError(f"reset failed: {e}") from e

        command = NavigationCommand(intent=intent, route=route)
        self.issued_commands.append(command)
        self.commands_issued += 1
        NAVIGATION_COMMANDS.labels(intent=intent.value).inc()
        logger.info("Navigated to %s (%s)", route, intent)

    def _ready_runtime(self) -> tuple[NavigationRuntime, RouteState]:
        runtime = self._runtime
        if runtime is None:
            raise NavigationNotReadyError("no runtime attached")
        if not runtime.is_ready():
            raise NavigationNotReadyError("runtime not mounted")
        try:
            state = runtime.get_root_state()
        except Exception as e:
            raise NavigationNotReadyError(f"root state unavailable: {e}") from e
        if state is None or not state.routes:
            raise NavigationNotReadyError("root state has no routes")
        return runtime, state
