"""Confluency client core - Authentication Service.

Account operations on top of the identity provider. Every operation returns
an ``AuthResult`` with a standardized message instead of raising, so the
caller can show the outcome directly.
"""

import logging

from confluency.core.exceptions import (
    EmailNotVerifiedError,
    InvalidCredentialsError,
    SessionMissingError,
    StorageError,
)
from confluency.models.auth import AuthErrorKind, AuthResult, Identity
from confluency.ports.auth_ports import IdentityProvider
from confluency.ports.storage import KeyValueStore
from confluency.services.auth_errors import standardize_auth_error

logger = logging.getLogger(__name__)

EMAIL_NOT_VERIFIED_MESSAGE = (
    "Your email address has not been verified. "
    "Please check your inbox and verify your email."
)


def _failure(error: BaseException) -> AuthResult:
    standard = standardize_auth_error(error)
    return AuthResult(
        success=False,
        error_kind=standard.kind,
        message=standard.message,
        action=standard.action,
    )


class AuthenticationService:
    """Account management for the client.

    Args:
        identity_provider: Authentication backend
        kv_store: Local persistence, wiped on sign-out
    """

    def __init__(self, identity_provider: IdentityProvider, kv_store: KeyValueStore) -> None:
        self.identity_provider = identity_provider
        self.kv_store = kv_store

    async def register_user(self, email: str, password: str, display_name: str) -> AuthResult:
        """Create an account. The email must be confirmed before sign-in."""
        logger.info("Registering new user: %s", email)
        try:
            user = await self.identity_provider.sign_up(
                email, password, {"full_name": display_name}
            )
        except Exception as e:
            logger.warning("Registration failed for %s: %s", email, e)
            return _failure(e)

        if user is None:
            logger.info("Registration accepted for %s; user withheld until confirmation", email)
        return AuthResult(success=True, user=user, email_confirmation_required=True)

    async def sign_in(self, email: str, password: str) -> AuthResult:
        """Sign in with email and password.

        An unconfirmed email is reported as ``email_not_verified`` whether the
        provider refuses the sign-in or lets it through with an unverified user.
        """
        try:
            session = await self.identity_provider.sign_in_with_password(email, password)
        except EmailNotVerifiedError:
            logger.info("Sign-in refused for %s: email not verified", email)
            return AuthResult(
                success=False,
                error_kind=AuthErrorKind.EMAIL_NOT_VERIFIED,
                message=EMAIL_NOT_VERIFIED_MESSAGE,
                action="Check your inbox for the verification link",
                email_confirmation_required=True,
            )
        except Exception as e:
            logger.warning("Sign-in failed for %s: %s", email, e)
            return _failure(e)

        user = session.user
        if user is not None and not user.email_verified:
            logger.info("Signed in %s with an unverified email", user.user_id)
            return AuthResult(
                success=False,
                user=user,
                error_kind=AuthErrorKind.EMAIL_NOT_VERIFIED,
                message=EMAIL_NOT_VERIFIED_MESSAGE,
                action="Check your inbox for the verification link",
                email_confirmation_required=True,
            )

        logger.info("Signed in %s", user.user_id if user else email)
        return AuthResult(success=True, user=user)

    async def sign_out(self) -> AuthResult:
        """End the session and wipe local persistence."""
        try:
            await self.identity_provider.sign_out()
        except Exception as e:
            logger.warning("Sign-out failed: %s", e)
            return _failure(e)

        try:
            await self.kv_store.clear()
        except StorageError as e:
            logger.warning("Failed to clear local storage on sign-out: %s", e)

        logger.info("Signed out")
        return AuthResult(success=True)

    async def resend_verification_email(self, email: str) -> AuthResult:
        try:
            await self.identity_provider.resend_verification_email(email)
        except Exception as e:
            logger.warning("Resending verification email failed for %s: %s", email, e)
            return _failure(e)
        return AuthResult(success=True)

    async def reset_password(self, email: str) -> AuthResult:
        try:
            await self.identity_provider.reset_password_for_email(email)
        except Exception as e:
            logger.warning("Password reset email failed for %s: %s", email, e)
            return _failure(e)
        return AuthResult(success=True)

    async def update_profile(self, display_name: str, avatar_url: str | None = None) -> AuthResult:
        """Update the display name (and optionally the avatar) of the current user."""
        metadata: dict[str, str] = {"full_name": display_name}
        if avatar_url:
            metadata["avatar_url"] = avatar_url
        try:
            user = await self.identity_provider.update_user({"data": metadata})
        except Exception as e:
            logger.warning("Profile update failed: %s", e)
            return _failure(e)
        return AuthResult(success=True, user=user)

    async def change_password(self, current_password: str, new_password: str) -> AuthResult:
        """Change the password after re-authenticating with the current one."""
        try:
            user = await self.identity_provider.get_user()
        except Exception as e:
            return _failure(e)
        if user is None or not user.email:
            return _failure(SessionMissingError("No user is currently signed in"))

        try:
            await self.identity_provider.sign_in_with_password(user.email, current_password)
        except Exception as e:
            logger.info("Current password check failed for %s: %s", user.user_id, e)
            return _failure(InvalidCredentialsError("Current password is incorrect"))

        try:
            updated = await self.identity_provider.update_user({"password": new_password})
        except Exception as e:
            logger.warning("Password change failed for %s: %s", user.user_id, e)
            return _failure(e)
        return AuthResult(success=True, user=updated)

    async def check_email_verification(self) -> bool:
        """Whether the current user's email is confirmed. False when unknown."""
        try:
            user: Identity | None = await self.identity_provider.get_user()
        except Exception as e:
            logger.warning("Email verification check failed: %s", e)
            return False
        return bool(user and user.email_verified)
