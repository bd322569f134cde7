"""In-process collaborators for development and ``SKIP_EXTERNAL_SERVICES`` runs.

They behave like the real backends closely enough to drive the whole
coordination core without a network.
"""

import logging
from typing import Any
import uuid

from confluency.core.exceptions import (
    EmailNotVerifiedError,
    InvalidCredentialsError,
    ProviderError,
    SessionMissingError,
)
from confluency.models.auth import AuthChangeEvent, AuthSession, Identity
from confluency.models.subscription import Entitlement
from confluency.ports.auth_ports import AuthStateCallback, IdentityProvider, Unsubscribe
from confluency.ports.billing_ports import EntitlementProvider
from confluency.ports.data_ports import UserDataInitializer, UserDataVerifier

logger = logging.getLogger(__name__)


class MockIdentityProvider(IdentityProvider):
    """Identity provider holding accounts in memory.

    New accounts start unverified unless ``auto_confirm`` is set;
    ``confirm_email`` simulates the user clicking the verification link.
    """

    def __init__(self, auto_confirm: bool = False) -> None:
        self.auto_confirm = auto_confirm
        self._accounts: dict[str, dict[str, Any]] = {}
        self._session: AuthSession | None = None
        self._listeners: list[AuthStateCallback] = []
        self.sent_emails: list[tuple[str, str]] = []

    def _identity(self, account: dict[str, Any]) -> Identity:
        return Identity(
            user_id=account["id"],
            email=account["email"],
            email_verified=account["verified"],
            display_name=account["metadata"].get("full_name"),
        )

    def _emit(self, event: AuthChangeEvent, session: AuthSession | None) -> None:
        for listener in list(self._listeners):
            listener(event, session)

    def confirm_email(self, email: str) -> None:
        self._accounts[email]["verified"] = True

    async def sign_up(
        self, email: str, password: str, profile: dict[str, Any] | None = None
    ) -> Identity | None:
        if email in self._accounts:
            msg = "User already registered"
            raise ProviderError(msg, code="user_already_exists", status=422)
        if len(password) < 6:
            msg = "Password should be at least 6 characters"
            raise ProviderError(msg, code="weak_password", status=422)
        account = {
            "id": str(uuid.uuid4()),
            "email": email,
            "password": password,
            "verified": self.auto_confirm,
            "metadata": dict(profile or {}),
        }
        self._accounts[email] = account
        self.sent_emails.append(("signup", email))
        logger.debug("Mock account created for %s", email)
        return self._identity(account)

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        account = self._accounts.get(email)
        if account is None or account["password"] != password:
            raise InvalidCredentialsError()
        if not account["verified"]:
            raise EmailNotVerifiedError(email)
        self._session = AuthSession(
            access_token=f"mock-token-{uuid.uuid4().hex}",
            refresh_token=f"mock-refresh-{uuid.uuid4().hex}",
            user=self._identity(account),
        )
        self._emit(AuthChangeEvent.SIGNED_IN, self._session)
        return self._session

    async def sign_out(self) -> None:
        self._session = None
        self._emit(AuthChangeEvent.SIGNED_OUT, None)

    async def get_session(self) -> AuthSession | None:
        return self._session

    async def get_user(self) -> Identity | None:
        if self._session is None:
            raise SessionMissingError("Auth session missing!")
        return self._session.user

    def on_auth_state_change(self, callback: AuthStateCallback) -> Unsubscribe:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    async def resend_verification_email(self, email: str) -> None:
        self.sent_emails.append(("signup", email))

    async def update_user(self, fields: dict[str, Any]) -> Identity:
        if self._session is None or self._session.user is None:
            raise SessionMissingError("Auth session missing!")
        account = self._accounts[self._session.user.email or ""]
        if "password" in fields:
            account["password"] = fields["password"]
        account["metadata"].update(fields.get("data") or {})
        user = self._identity(account)
        self._session = self._session.model_copy(update={"user": user})
        self._emit(AuthChangeEvent.USER_UPDATED, self._session)
        return user

    async def reset_password_for_email(self, email: str) -> None:
        self.sent_emails.append(("recovery", email))


class MockUserDataBackend(UserDataVerifier, UserDataInitializer):
    """Backing data kept as a set of initialized user ids."""

    def __init__(self, existing: set[str] | None = None) -> None:
        self.initialized: set[str] = set(existing or ())

    async def user_data_exists(self, user_id: str) -> bool:
        return user_id in self.initialized

    async def initialize_user_data(self, user_id: str) -> bool:
        self.initialized.add(user_id)
        return True


class MockEntitlementProvider(EntitlementProvider):
    """Every user is on the free tier unless given entitlements."""

    def __init__(self, entitlements: dict[str, list[Entitlement]] | None = None) -> None:
        self.entitlements = entitlements or {}

    async def get_entitlements(self, user_id: str) -> list[Entitlement]:
        return list(self.entitlements.get(user_id, []))

    async def sync_on_resume(self) -> bool:
        return False
