"""Custom exception hierarchy for the Confluency client core.

Errors raised by collaborators are translated into this hierarchy at the
adapter boundary so that services can catch them at the appropriate level.
Services that own user-visible state (initialization, navigation) never let
these propagate to the UI; they translate them into status values instead.
"""

from typing import Any


class ConfluencyBaseError(Exception):
    """Base exception for all Confluency specific errors."""

    def __init__(
        self,
        message: str,
        *,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def __str__(self) -> str:
        if self.error_code:
            return f"[{self.error_code}] {super().__str__()}"
        return super().__str__()


# ==============================================================================
# Authentication Exceptions
# ==============================================================================


class AuthenticationError(ConfluencyBaseError):
    """Base class for authentication errors."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("error_code", "AUTHENTICATION_ERROR")
        super().__init__(message, **kwargs)


class SessionMissingError(AuthenticationError):
    """Raised when no session exists. Expected for signed-out users."""

    def __init__(self, message: str = "Auth session missing") -> None:
        super().__init__(message, error_code="SESSION_MISSING")


class EmailNotVerifiedError(AuthenticationError):
    """Raised when a sign-in is refused because the email is not confirmed."""

    def __init__(self, email: str | None = None) -> None:
        message = "Email address has not been verified"
        if email:
            message += f": {email}"
        super().__init__(message, error_code="EMAIL_NOT_VERIFIED")
        self.email = email


class InvalidCredentialsError(AuthenticationError):
    """Raised when credentials are rejected."""

    def __init__(self, message: str = "Invalid login credentials") -> None:
        super().__init__(message, error_code="INVALID_CREDENTIALS")


class ProviderError(ConfluencyBaseError):
    """Raised when the identity provider or backend returns an error.

    ``code`` carries the provider's machine readable error code when one is
    available; ``status`` the HTTP status of the failed call.
    """

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status: int | None = None,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("error_code", "PROVIDER_ERROR")
        super().__init__(message, **kwargs)
        self.code = code
        self.status = status


# ==============================================================================
# Service and Infrastructure Exceptions
# ==============================================================================


class ServiceError(ConfluencyBaseError):
    """Base class for service-level errors."""


class ServiceUnavailableError(ServiceError):
    """Raised when a required service is unavailable."""

    def __init__(self, service_name: str, reason: str | None = None) -> None:
        message = f"{service_name} service is unavailable"
        if reason:
            message += f": {reason}"
        super().__init__(message, error_code="SERVICE_UNAVAILABLE")
        self.service_name = service_name
        self.reason = reason


class CollaboratorTimeoutError(ServiceError):
    """Raised when a collaborator call exceeds its client-side time box."""

    def __init__(self, operation: str, timeout_seconds: float) -> None:
        message = f"{operation} timed out after {timeout_seconds}s"
        super().__init__(message, error_code="COLLABORATOR_TIMEOUT")
        self.operation = operation
        self.timeout_seconds = timeout_seconds


class OfflineError(ServiceError):
    """Raised when an operation needs connectivity and the device is offline."""

    def __init__(self, operation: str) -> None:
        super().__init__(
            f"Cannot {operation} while offline", error_code="OFFLINE"
        )
        self.operation = operation


class StorageError(ConfluencyBaseError):
    """Raised when the key-value persistence layer fails."""

    def __init__(self, message: str, *, key: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, error_code="STORAGE_ERROR", **kwargs)
        self.key = key


class TutorAPIError(ServiceError):
    """Raised when the tutoring HTTP API returns an error."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message, error_code="TUTOR_API_ERROR")
        self.status_code = status_code


# ==============================================================================
# Navigation and Retry Exceptions
# ==============================================================================


class NavigationError(ConfluencyBaseError):
    """Base class for navigation errors."""


class NavigationNotReadyError(NavigationError):
    """Raised when the navigation runtime cannot accept commands yet."""

    def __init__(self, reason: str) -> None:
        super().__init__(
            f"Navigation runtime not ready: {reason}",
            error_code="NAVIGATION_NOT_READY",
        )
        self.reason = reason


class RetryExhaustedError(ConfluencyBaseError):
    """Raised when a bounded retry gives up."""

    def __init__(self, attempts: int, last_error: BaseException | None) -> None:
        message = f"Gave up after {attempts} attempts"
        if last_error is not None:
            message += f": {last_error}"
        super().__init__(message, error_code="RETRY_EXHAUSTED")
        self.attempts = attempts
        self.last_error = last_error


# ==============================================================================
# Configuration Exceptions
# ==============================================================================


class ConfigurationError(ConfluencyBaseError):
    """Raised when configuration is invalid or missing."""

    def __init__(
        self, message: str, *, config_key: str | None = None, **kwargs: Any
    ) -> None:
        super().__init__(message, error_code="CONFIGURATION_ERROR", **kwargs)
        self.config_key = config_key


class MissingConfigurationError(ConfigurationError):
    """Raised when required configuration is missing."""

    def __init__(self, config_key: str) -> None:
        message = f"Missing required configuration: {config_key}"
        super().__init__(message, config_key=config_key)
