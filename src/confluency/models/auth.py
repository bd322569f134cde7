"""Confluency client core - Authentication Models.

Identity, session and auth-result types shared by the session observer,
the authentication service and the identity provider adapters.
"""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Identity(BaseModel):
    """The authenticated user as reported by the identity provider.

    Replaced wholesale on every change; never mutated in place.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., min_length=1, description="Opaque provider user ID")
    email: str | None = Field(None, description="User email address")
    email_verified: bool = Field(False, description="Email verification status")
    display_name: str | None = Field(None, description="Display name")

    @classmethod
    def from_provider_payload(cls, payload: dict[str, Any]) -> "Identity":
        """Build an identity from an identity provider user object."""
        metadata = payload.get("user_metadata") or {}
        return cls(
            user_id=str(payload["id"]),
            email=payload.get("email"),
            email_verified=bool(
                payload.get("email_confirmed_at") or payload.get("confirmed_at")
            ),
            display_name=metadata.get("full_name") or metadata.get("name"),
        )


class AuthSession(BaseModel):
    """An authenticated session."""

    access_token: str
    refresh_token: str | None = None
    expires_at: int | None = Field(None, description="Expiry, epoch seconds")
    user: Identity | None = None

    @classmethod
    def from_provider_payload(cls, payload: dict[str, Any]) -> "AuthSession":
        user_payload = payload.get("user")
        return cls(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            expires_at=payload.get("expires_at"),
            user=Identity.from_provider_payload(user_payload) if user_payload else None,
        )


class AuthChangeEvent(StrEnum):
    """Events emitted by the identity provider's change stream."""

    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"


class SessionLookupStatus(StrEnum):
    """Outcome of the one-shot startup session query."""

    ACTIVE = "active"
    NO_SESSION = "no_session"
    ERROR = "error"


class SessionLookup(BaseModel):
    """Result of ``AuthSessionObserver.initialize``.

    ``NO_SESSION`` is the steady state for signed-out users and is not an
    error; ``ERROR`` carries the network or server failure.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    status: SessionLookupStatus
    user: Identity | None = None
    error: Exception | None = None

    @property
    def has_user(self) -> bool:
        return self.status == SessionLookupStatus.ACTIVE and self.user is not None


class AuthErrorKind(StrEnum):
    """Closed set of auth failure kinds."""

    SESSION_MISSING = "session_missing"
    EMAIL_NOT_VERIFIED = "email_not_verified"
    INVALID_CREDENTIALS = "invalid_credentials"
    NETWORK = "network"
    RATE_LIMITED = "rate_limited"
    ALREADY_REGISTERED = "already_registered"
    WEAK_PASSWORD = "weak_password"
    SERVER = "server"
    UNKNOWN = "unknown"


class AuthResult(BaseModel):
    """Outcome of an authentication operation, safe to hand to the UI."""

    success: bool
    user: Identity | None = None
    error_kind: AuthErrorKind | None = None
    message: str | None = None
    action: str | None = Field(None, description="Suggested action to resolve the error")
    email_confirmation_required: bool = False
