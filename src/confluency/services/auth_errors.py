"""Standardization of authentication errors for display.

Errors are classified into ``AuthErrorKind`` from structured information
first (exception type, provider error code, HTTP status). Matching on the
error message is a fallback kept in one place, ``_classify_by_message``,
because provider message wording is not a stable contract.
"""

from dataclasses import dataclass
import logging
import re

import httpx

from confluency.core.exceptions import (
    CollaboratorTimeoutError,
    EmailNotVerifiedError,
    InvalidCredentialsError,
    OfflineError,
    ProviderError,
    SessionMissingError,
)
from confluency.models.auth import AuthErrorKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StandardAuthError:
    """A classified auth error with user-facing text."""

    kind: AuthErrorKind
    message: str
    action: str | None = None
    code: str | None = None


_MESSAGES: dict[AuthErrorKind, tuple[str, str | None]] = {
    AuthErrorKind.SESSION_MISSING: ("Please sign in to continue.", "Sign in"),
    AuthErrorKind.EMAIL_NOT_VERIFIED: (
        "Please verify your email address before signing in.",
        "Check your inbox for the verification link",
    ),
    AuthErrorKind.INVALID_CREDENTIALS: (
        "Invalid email or password",
        "Check your email and password",
    ),
    AuthErrorKind.NETWORK: (
        "Network error. Please check your internet connection and try again.",
        "Check your internet connection",
    ),
    AuthErrorKind.RATE_LIMITED: (
        "Too many attempts. Please try again later.",
        "Wait a moment before trying again",
    ),
    AuthErrorKind.ALREADY_REGISTERED: (
        "This email is already registered",
        "Use a different email or try to sign in",
    ),
    AuthErrorKind.WEAK_PASSWORD: (
        "Password is too weak. Use at least 8 characters with a mix of "
        "letters, numbers, and symbols.",
        "Choose a stronger password",
    ),
    AuthErrorKind.SERVER: ("Server error. Please try again later.", "Try again later"),
}

# Identity provider error codes
_CODE_TABLE: dict[str, AuthErrorKind] = {
    "session_not_found": AuthErrorKind.SESSION_MISSING,
    "session_expired": AuthErrorKind.SESSION_MISSING,
    "refresh_token_not_found": AuthErrorKind.SESSION_MISSING,
    "email_not_confirmed": AuthErrorKind.EMAIL_NOT_VERIFIED,
    "invalid_credentials": AuthErrorKind.INVALID_CREDENTIALS,
    "invalid_grant": AuthErrorKind.INVALID_CREDENTIALS,
    "user_not_found": AuthErrorKind.INVALID_CREDENTIALS,
    "user_already_exists": AuthErrorKind.ALREADY_REGISTERED,
    "email_exists": AuthErrorKind.ALREADY_REGISTERED,
    "weak_password": AuthErrorKind.WEAK_PASSWORD,
    "over_request_rate_limit": AuthErrorKind.RATE_LIMITED,
    "over_email_send_rate_limit": AuthErrorKind.RATE_LIMITED,
    "over_sms_send_rate_limit": AuthErrorKind.RATE_LIMITED,
    "unexpected_failure": AuthErrorKind.SERVER,
    "network_error": AuthErrorKind.NETWORK,
}

# Ordered: the first matching group wins
_MESSAGE_PATTERNS: list[tuple[AuthErrorKind, tuple[str, ...]]] = [
    (AuthErrorKind.SESSION_MISSING, ("auth session missing",)),
    (AuthErrorKind.EMAIL_NOT_VERIFIED, ("email not confirmed",)),
    (AuthErrorKind.NETWORK, ("network", "connect", "timeout", "timed out", "offline")),
    (
        AuthErrorKind.INVALID_CREDENTIALS,
        ("invalid login", "invalid credentials", "incorrect", "password is wrong"),
    ),
    (AuthErrorKind.RATE_LIMITED, ("rate limit", "too many")),
    (AuthErrorKind.ALREADY_REGISTERED, ("email already in use", "already registered")),
    (AuthErrorKind.WEAK_PASSWORD, ("weak password", "password should be")),
    (AuthErrorKind.SERVER, ("server", "internal", "database error")),
]


def classify_auth_error(error: BaseException | str | None) -> AuthErrorKind:
    """Map an error to its ``AuthErrorKind``."""
    if error is None:
        return AuthErrorKind.UNKNOWN
    if isinstance(error, str):
        return _classify_by_message(error)

    if isinstance(error, SessionMissingError):
        return AuthErrorKind.SESSION_MISSING
    if isinstance(error, EmailNotVerifiedError):
        return AuthErrorKind.EMAIL_NOT_VERIFIED
    if isinstance(error, InvalidCredentialsError):
        return AuthErrorKind.INVALID_CREDENTIALS
    if isinstance(error, CollaboratorTimeoutError | OfflineError | httpx.TransportError):
        return AuthErrorKind.NETWORK

    if isinstance(error, ProviderError):
        if error.code and error.code in _CODE_TABLE:
            return _CODE_TABLE[error.code]
        if error.status == 429:
            return AuthErrorKind.RATE_LIMITED
        if error.status is not None and error.status >= 500:
            return AuthErrorKind.SERVER

    return _classify_by_message(getattr(error, "message", None) or str(error))


def _classify_by_message(message: str) -> AuthErrorKind:
    """Fallback classification on message substrings."""
    lowered = message.lower()
    for kind, needles in _MESSAGE_PATTERNS:
        if any(needle in lowered for needle in needles):
            return kind
    return AuthErrorKind.UNKNOWN


def _clean_message(message: str) -> str:
    cleaned = re.sub(r"^auth/", "", message).replace("-", " ").strip()
    if not cleaned:
        return "An unknown error occurred"
    return cleaned[0].upper() + cleaned[1:]


def standardize_auth_error(error: BaseException | str | None) -> StandardAuthError:
    """Classify ``error`` and attach a user-facing message and action."""
    kind = classify_auth_error(error)
    code = getattr(error, "code", None) if isinstance(error, ProviderError) else None

    if kind in _MESSAGES:
        message, action = _MESSAGES[kind]
        return StandardAuthError(kind=kind, message=message, action=action, code=code)

    if error is None:
        return StandardAuthError(kind=kind, message="An unknown error occurred")

    raw = error if isinstance(error, str) else getattr(error, "message", None) or str(error)
    logger.debug("Unclassified auth error: %s", raw)
    return StandardAuthError(kind=kind, message=_clean_message(raw), code=code)
