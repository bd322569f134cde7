"""Tests for the authentication service.

Tests cover:
- Registration with email confirmation
- Sign-in including unverified email handling
- Sign-out wiping local storage
- Profile, password and verification helpers
"""

from unittest.mock import AsyncMock

import pytest

from confluency.core.exceptions import (
    EmailNotVerifiedError,
    InvalidCredentialsError,
    ProviderError,
    SessionMissingError,
    StorageError,
)
from confluency.models.auth import AuthErrorKind
from confluency.ports.auth_ports import IdentityProvider
from confluency.ports.storage import KeyValueStore
from confluency.services.auth_service import AuthenticationService
from tests.fakes import make_identity, make_session


@pytest.fixture
def provider() -> AsyncMock:
    return AsyncMock(spec=IdentityProvider)


@pytest.fixture
def service(provider, kv_store) -> AuthenticationService:
    return AuthenticationService(provider, kv_store)


class TestRegisterUser:
    """Account creation."""

    @pytest.mark.asyncio
    async def test_registration_requires_confirmation(self, service, provider):
        provider.sign_up.return_value = make_identity("u-1", email_verified=False)

        result = await service.register_user("ana@example.com", "s3cret-pass", "Ana")

        assert result.success
        assert result.email_confirmation_required
        provider.sign_up.assert_awaited_once_with(
            "ana@example.com", "s3cret-pass", {"full_name": "Ana"}
        )

    @pytest.mark.asyncio
    async def test_registration_without_user(self, service, provider):
        provider.sign_up.return_value = None

        result = await service.register_user("ana@example.com", "s3cret-pass", "Ana")

        assert result.success
        assert result.user is None

    @pytest.mark.asyncio
    async def test_existing_email(self, service, provider):
        provider.sign_up.side_effect = ProviderError(
            "User already registered", code="user_already_exists", status=422
        )

        result = await service.register_user("ana@example.com", "s3cret-pass", "Ana")

        assert not result.success
        assert result.error_kind == AuthErrorKind.ALREADY_REGISTERED
        assert result.message == "This email is already registered"


class TestSignIn:
    """Password sign-in."""

    @pytest.mark.asyncio
    async def test_verified_user(self, service, provider):
        provider.sign_in_with_password.return_value = make_session("u-1")

        result = await service.sign_in("u-1@example.com", "pw")

        assert result.success
        assert result.user.user_id == "u-1"

    @pytest.mark.asyncio
    async def test_provider_refuses_unverified_email(self, service, provider):
        provider.sign_in_with_password.side_effect = EmailNotVerifiedError("a@b.c")

        result = await service.sign_in("a@b.c", "pw")

        assert not result.success
        assert result.error_kind == AuthErrorKind.EMAIL_NOT_VERIFIED
        assert result.email_confirmation_required

    @pytest.mark.asyncio
    async def test_session_with_unverified_user(self, service, provider):
        provider.sign_in_with_password.return_value = make_session("u-1", email_verified=False)

        result = await service.sign_in("u-1@example.com", "pw")

        assert not result.success
        assert result.user.user_id == "u-1"
        assert result.error_kind == AuthErrorKind.EMAIL_NOT_VERIFIED

    @pytest.mark.asyncio
    async def test_wrong_password(self, service, provider):
        provider.sign_in_with_password.side_effect = InvalidCredentialsError()

        result = await service.sign_in("a@b.c", "wrong")

        assert result.error_kind == AuthErrorKind.INVALID_CREDENTIALS
        assert result.action == "Check your email and password"

    @pytest.mark.asyncio
    async def test_network_failure(self, service, provider):
        provider.sign_in_with_password.side_effect = ProviderError(
            "connection refused", code="network_error"
        )

        result = await service.sign_in("a@b.c", "pw")

        assert result.error_kind == AuthErrorKind.NETWORK


class TestSignOut:
    """Sign-out clears local state."""

    @pytest.mark.asyncio
    async def test_clears_storage(self, service, provider, kv_store):
        await kv_store.set("cached_subscription:u-1", "{}")

        result = await service.sign_out()

        assert result.success
        provider.sign_out.assert_awaited_once()
        assert kv_store.snapshot() == {}

    @pytest.mark.asyncio
    async def test_provider_failure_keeps_storage(self, service, provider, kv_store):
        await kv_store.set("k", "v")
        provider.sign_out.side_effect = ProviderError("oops", status=500)

        result = await service.sign_out()

        assert not result.success
        assert result.error_kind == AuthErrorKind.SERVER
        assert kv_store.snapshot() == {"k": "v"}

    @pytest.mark.asyncio
    async def test_storage_failure_is_not_fatal(self, provider):
        failing = AsyncMock(spec=KeyValueStore)
        failing.clear.side_effect = StorageError("locked")

        result = await AuthenticationService(provider, failing).sign_out()

        assert result.success


class TestAccountHelpers:
    """Verification emails, profile and password updates."""

    @pytest.mark.asyncio
    async def test_resend_verification_email(self, service, provider):
        assert (await service.resend_verification_email("a@b.c")).success
        provider.resend_verification_email.assert_awaited_once_with("a@b.c")

    @pytest.mark.asyncio
    async def test_resend_rate_limited(self, service, provider):
        provider.resend_verification_email.side_effect = ProviderError(
            "slow down", code="over_email_send_rate_limit", status=429
        )

        result = await service.resend_verification_email("a@b.c")

        assert result.error_kind == AuthErrorKind.RATE_LIMITED

    @pytest.mark.asyncio
    async def test_reset_password(self, service, provider):
        assert (await service.reset_password("a@b.c")).success
        provider.reset_password_for_email.assert_awaited_once_with("a@b.c")

    @pytest.mark.asyncio
    async def test_update_profile(self, service, provider):
        provider.update_user.return_value = make_identity("u-1", display_name="Bea")

        result = await service.update_profile("Bea", avatar_url="https://img/1.png")

        assert result.user.display_name == "Bea"
        provider.update_user.assert_awaited_once_with(
            {"data": {"full_name": "Bea", "avatar_url": "https://img/1.png"}}
        )

    @pytest.mark.asyncio
    async def test_change_password(self, service, provider):
        provider.get_user.return_value = make_identity("u-1")
        provider.update_user.return_value = make_identity("u-1")

        result = await service.change_password("old-pw", "new-pw")

        assert result.success
        provider.sign_in_with_password.assert_awaited_once_with("u-1@example.com", "old-pw")
        provider.update_user.assert_awaited_once_with({"password": "new-pw"})

    @pytest.mark.asyncio
    async def test_change_password_with_wrong_current(self, service, provider):
        provider.get_user.return_value = make_identity("u-1")
        provider.sign_in_with_password.side_effect = ProviderError("bad", code="invalid_grant")

        result = await service.change_password("wrong", "new-pw")

        assert result.error_kind == AuthErrorKind.INVALID_CREDENTIALS
        provider.update_user.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_change_password_signed_out(self, service, provider):
        provider.get_user.side_effect = SessionMissingError()

        result = await service.change_password("old", "new")

        assert result.error_kind == AuthErrorKind.SESSION_MISSING

    @pytest.mark.asyncio
    async def test_check_email_verification(self, service, provider):
        provider.get_user.return_value = make_identity("u-1", email_verified=True)
        assert await service.check_email_verification()

        provider.get_user.side_effect = ProviderError("down", code="network_error")
        assert not await service.check_email_verification()
