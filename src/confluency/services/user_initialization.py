"""User data initialization state machine.

Decides, after sign-in or cold start, whether the signed-in user has backing
data, creates it when it is missing and persists the outcome. Verification
failures never trigger a blind re-initialization: a user whose data could not
be checked ends in ``failed`` and must retry explicitly.
"""

from collections.abc import Callable
import logging

from confluency.core.decorators import measure_execution_time
from confluency.core.resilience import call_with_timeout
from confluency.models.diagnostics import DiagnosticType
from confluency.models.initialization import (
    InitializationAttemptRecord,
    InitializationStatus,
    now_millis,
)
from confluency.observability.metrics import INIT_TRANSITIONS
from confluency.ports.data_ports import UserDataInitializer, UserDataVerifier
from confluency.ports.network_ports import ConnectivityMonitor
from confluency.services.diagnostics import DiagnosticsSink
from confluency.services.status_store import PersistentStatusStore

logger = logging.getLogger(__name__)

StatusListener = Callable[[InitializationStatus, str | None], None]

OFFLINE_MESSAGE = "Cannot initialize user data while offline"
INIT_FAILED_MESSAGE = "User data initialization failed"
INTERRUPTED_MESSAGE = "interrupted"


def _describe(error: BaseException) -> str:
    return str(error) or type(error).__name__


class UserInitializationStateMachine:
    """Owns the initialization status of the signed-in user.

    Every call to ``verify_and_initialize`` or ``initialize`` starts a new
    numbered attempt. Transitions from an attempt that has been superseded by
    a newer one (or by ``reset_init_status``) are discarded, so a slow failing
    attempt can never overwrite the outcome of a newer one.

    Args:
        verifier: Checks whether backing data exists
        initializer: Creates backing data
        status_store: Persistence for the latest attempt record
        diagnostics: Failure sink
        connectivity: Offline detection; None means always online
        call_timeout: Client-side time box for collaborator calls, seconds
        clock: Epoch-millis clock, injectable for tests
    """

    def __init__(
        self,
        verifier: UserDataVerifier,
        initializer: UserDataInitializer,
        status_store: PersistentStatusStore,
        diagnostics: DiagnosticsSink,
        connectivity: ConnectivityMonitor | None,
        *,
        call_timeout: float | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._verifier = verifier
        self._initializer = initializer
        self._store = status_store
        self._diagnostics = diagnostics
        self._connectivity = connectivity
        self._call_timeout = call_timeout
        self._clock = clock or now_millis

        self._status = InitializationStatus.UNKNOWN
        self._error: str | None = None
        self._last_attempt_at: int | None = None
        self._attempt = 0
        self._started = False
        self._listeners: list[StatusListener] = []

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def status(self) -> InitializationStatus:
        return self._status

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def last_attempt_at(self) -> int | None:
        return self._last_attempt_at

    @property
    def is_initialized(self) -> bool:
        return self._status == InitializationStatus.SUCCESS

    @property
    def is_initializing(self) -> bool:
        return self._status == InitializationStatus.IN_PROGRESS

    @property
    def has_init_failed(self) -> bool:
        return self._status == InitializationStatus.FAILED

    @property
    def requires_retry(self) -> bool:
        return self._status == InitializationStatus.REQUIRES_RETRY

    @property
    def is_offline(self) -> bool:
        return self._connectivity is not None and self._connectivity.is_offline

    def add_listener(self, listener: StatusListener) -> Callable[[], None]:
        """Observe status changes; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Seed state from the persisted record. Runs once."""
        if self._started:
            return
        self._started = True

        record = await self._store.load()
        if record is None:
            return

        if record.status == InitializationStatus.IN_PROGRESS:
            logger.warning("Previous initialization attempt was interrupted")
            self._set_state(
                InitializationStatus.REQUIRES_RETRY, INTERRUPTED_MESSAGE, record.timestamp
            )
            await self._store.save(
                InitializationAttemptRecord(
                    status=InitializationStatus.REQUIRES_RETRY,
                    error=INTERRUPTED_MESSAGE,
                    timestamp=record.timestamp,
                    sequence=self._store.next_sequence(),
                )
            )
            return

        logger.info("Restored initialization status: %s", record.status)
        self._set_state(record.status, record.error, record.timestamp)

    async def verify_and_initialize(self, user_id: str | None) -> bool:
        """Verify backing data and create it when missing.

        Returns:
            True when the user's data is known to exist afterwards
        """
        if not user_id:
            await self._report_missing_user_id("verify_and_initialize")
            return False

        attempt = self._begin_attempt()
        logger.info("Verifying user data for %s (attempt %d)", user_id, attempt)

        try:
            exists = await self._verify(user_id)
        except Exception as e:
            message = _describe(e)
            logger.error("User data verification failed for %s: %s", user_id, message)
            await self._transition(attempt, InitializationStatus.FAILED, message)
            await self._diagnostics.capture(
                DiagnosticType.VERIFY_FAILURE,
                user_id,
                {"error": message, "error_type": type(e).__name__},
            )
            return False

        if not self._is_current(attempt):
            logger.debug("Verification attempt %d superseded", attempt)
            return False

        if exists:
            logger.info("User data verified for %s", user_id)
            return await self._transition(attempt, InitializationStatus.SUCCESS)

        logger.info("User data missing for %s; initializing", user_id)
        return await self._run_initialization(user_id, attempt)

    async def initialize(self, user_id: str | None) -> bool:
        """Create backing data for ``user_id`` without verifying first.

        Returns:
            True on success
        """
        if not user_id:
            await self._report_missing_user_id("initialize")
            return False
        return await self._run_initialization(user_id, self._begin_attempt())

    async def reset_init_status(self) -> None:
        """Forget the current status and invalidate in-flight attempts."""
        self._attempt += 1
        self._set_state(InitializationStatus.UNKNOWN, None, None)
        INIT_TRANSITIONS.labels(status=InitializationStatus.UNKNOWN.value).inc()
        await self._store.clear()
        logger.info("Initialization status reset")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run_initialization(self, user_id: str, attempt: int) -> bool:
        if self.is_offline:
            logger.warning("Cannot initialize user data for %s while offline", user_id)
            await self._transition(attempt, InitializationStatus.REQUIRES_RETRY, OFFLINE_MESSAGE)
            await self._diagnostics.capture(
                DiagnosticType.NETWORK_ISSUE,
                user_id,
                {"reason": "offline", "operation": "initialize_user_data", "severity": "low"},
            )
            return False

        if not await self._transition(attempt, InitializationStatus.IN_PROGRESS):
            return False

        try:
            succeeded = await self._initialize(user_id)
        except Exception as e:
            succeeded = False
            message = _describe(e)
            logger.error("User data initialization raised for %s: %s", user_id, message)
        else:
            message = INIT_FAILED_MESSAGE

        if succeeded:
            logger.info("User data initialized for %s", user_id)
            return await self._transition(attempt, InitializationStatus.SUCCESS)

        await self._transition(attempt, InitializationStatus.FAILED, message)
        await self._diagnostics.capture(
            DiagnosticType.INIT_FAILURE,
            user_id,
            {"error": message, "stage": "initialize_user_data"},
        )
        return False

    @measure_execution_time(log_level=logging.DEBUG)
    async def _verify(self, user_id: str) -> bool:
        return await call_with_timeout(
            self._verifier.user_data_exists(user_id),
            self._call_timeout,
            "user data verification",
        )

    @measure_execution_time(log_level=logging.DEBUG)
    async def _initialize(self, user_id: str) -> bool:
        return await call_with_timeout(
            self._initializer.initialize_user_data(user_id),
            self._call_timeout,
            "user data initialization",
        )

    async def _report_missing_user_id(self, operation: str) -> None:
        logger.error("Cannot %s: no user id provided", operation)
        await self._diagnostics.capture(
            DiagnosticType.INIT_FAILURE,
            None,
            {"reason": "missing_user_id", "operation": operation},
        )

    def _begin_attempt(self) -> int:
        self._attempt += 1
        return self._attempt

    def _is_current(self, attempt: int) -> bool:
        return attempt == self._attempt

    async def _transition(
        self, attempt: int, status: InitializationStatus, error: str | None = None
    ) -> bool:
        """Apply and persist a transition of ``attempt``.

        Returns:
            False when the attempt was superseded and the transition dropped
        """
        if not self._is_current(attempt):
            logger.debug(
                "Dropping %s from superseded attempt %d (current %d)",
                status,
                attempt,
                self._attempt,
            )
            return False

        timestamp = self._clock()
        self._set_state(status, error, timestamp)
        INIT_TRANSITIONS.labels(status=status.value).inc()
        await self._store.save(
            InitializationAttemptRecord(
                status=status,
                error=error,
                timestamp=timestamp,
                sequence=self._store.next_sequence(),
            )
        )
        return True

    def _set_state(
        self, status: InitializationStatus, error: str | None, timestamp: int | None
    ) -> None:
        self._status = status
        self._error = error
        self._last_attempt_at = timestamp
        for listener in list(self._listeners):
            try:
                listener(status, error)
            except Exception:
                logger.exception("Initialization status listener failed")
