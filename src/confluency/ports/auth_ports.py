"""Identity provider port.

The contract the core consumes from the authentication backend. Adapters
raise ``ProviderError`` (carrying the provider's error code when available)
or ``SessionMissingError``; they never return error values.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from confluency.models.auth import AuthChangeEvent, AuthSession, Identity

AuthStateCallback = Callable[[AuthChangeEvent, AuthSession | None], None]
Unsubscribe = Callable[[], None]


class IdentityProvider(ABC):
    """Authentication backend: sign-up, sign-in, session and change stream."""

    @abstractmethod
    async def sign_up(
        self, email: str, password: str, profile: dict[str, Any] | None = None
    ) -> Identity | None:
        """Register a new account.

        Args:
            email: Account email
            password: Account password
            profile: Extra user metadata (e.g. ``full_name``)

        Returns:
            The created identity, or None when the provider withholds it
            until the email is confirmed
        """

    @abstractmethod
    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        """Sign in with email and password.

        Raises:
            EmailNotVerifiedError: The account exists but is not confirmed
            ProviderError: Any other provider failure
        """

    @abstractmethod
    async def sign_out(self) -> None:
        """End the current session."""

    @abstractmethod
    async def get_session(self) -> AuthSession | None:
        """Return the current session, or None when signed out."""

    @abstractmethod
    async def get_user(self) -> Identity | None:
        """Return the current user as the provider sees it.

        Raises:
            SessionMissingError: No session is active
        """

    @abstractmethod
    def on_auth_state_change(self, callback: AuthStateCallback) -> Unsubscribe:
        """Register for auth change events.

        Args:
            callback: Invoked with the event and the new session (None on
                sign-out), in the order the provider observes them

        Returns:
            A function that detaches the callback
        """

    @abstractmethod
    async def resend_verification_email(self, email: str) -> None:
        """Send the sign-up confirmation email again."""

    @abstractmethod
    async def update_user(self, fields: dict[str, Any]) -> Identity:
        """Update the current user (password, email or metadata)."""

    @abstractmethod
    async def reset_password_for_email(self, email: str) -> None:
        """Send a password-reset email."""
