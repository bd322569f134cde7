"""Tests for the auth, initialization, navigation and subscription models."""

from datetime import UTC, datetime, timedelta

from pydantic import ValidationError
import pytest

from confluency.models.auth import (
    AuthSession,
    Identity,
    SessionLookup,
    SessionLookupStatus,
)
from confluency.models.diagnostics import NetworkSnapshot
from confluency.models.initialization import InitializationAttemptRecord, InitializationStatus
from confluency.models.navigation import (
    NavigationIntent,
    RouteState,
    compute_navigation_intent,
)
from confluency.models.subscription import (
    Entitlement,
    EntitlementSnapshot,
    SubscriptionTier,
)


class TestIdentity:
    """Identity parsing and immutability."""

    def test_from_provider_payload(self):
        identity = Identity.from_provider_payload(
            {
                "id": "abc",
                "email": "ana@example.com",
                "email_confirmed_at": "2024-01-01T00:00:00Z",
                "user_metadata": {"full_name": "Ana"},
            }
        )

        assert identity.user_id == "abc"
        assert identity.email_verified is True
        assert identity.display_name == "Ana"

    def test_unconfirmed_email(self):
        identity = Identity.from_provider_payload({"id": "abc", "email": "a@b.c"})
        assert identity.email_verified is False

    def test_identity_is_frozen(self):
        identity = Identity(user_id="abc")
        with pytest.raises(ValidationError):
            identity.user_id = "other"  # type: ignore[misc]

    def test_empty_user_id_rejected(self):
        with pytest.raises(ValidationError):
            Identity(user_id="")

    def test_session_payload_without_user(self):
        session = AuthSession.from_provider_payload({"access_token": "t"})
        assert session.user is None

    def test_lookup_has_user_only_when_active(self):
        user = Identity(user_id="abc")
        assert SessionLookup(status=SessionLookupStatus.ACTIVE, user=user).has_user
        assert not SessionLookup(status=SessionLookupStatus.NO_SESSION).has_user


class TestInitializationRecord:
    """Persisted initialization record."""

    def test_json_round_trip_preserves_fields(self):
        record = InitializationAttemptRecord(
            status=InitializationStatus.FAILED, error="boom", timestamp=1_700_000_000_000, sequence=4
        )

        restored = InitializationAttemptRecord.model_validate_json(record.model_dump_json())

        assert restored == record

    def test_timestamp_defaults_to_now(self):
        before = int(datetime.now(UTC).timestamp() * 1000)
        record = InitializationAttemptRecord(status=InitializationStatus.SUCCESS)
        assert record.timestamp >= before
        assert record.sequence == 0

    def test_unknown_status_rejected(self):
        with pytest.raises(ValidationError):
            InitializationAttemptRecord.model_validate_json('{"status": "exploded"}')


class TestNavigationIntent:
    """Target stack computation."""

    @pytest.mark.parametrize(
        ("authenticated", "reset_flow", "expected"),
        [
            (True, False, NavigationIntent.MAIN),
            (True, True, NavigationIntent.AUTH),
            (False, False, NavigationIntent.AUTH),
            (False, True, NavigationIntent.AUTH),
        ],
    )
    def test_compute_intent(self, authenticated, reset_flow, expected):
        assert compute_navigation_intent(authenticated, reset_flow) == expected

    def test_current_route(self):
        assert RouteState(routes=["Auth", "Main"], index=1).current_route == "Main"
        assert RouteState(routes=["Auth"], index=5).current_route == "Auth"
        assert RouteState().current_route is None


class TestNetworkSnapshot:
    def test_offline_when_disconnected(self):
        assert NetworkSnapshot(is_connected=False).is_offline

    def test_offline_when_internet_unreachable(self):
        assert NetworkSnapshot(is_connected=True, is_internet_reachable=False).is_offline

    def test_unknown_reachability_is_online(self):
        assert not NetworkSnapshot(is_connected=True, is_internet_reachable=None).is_offline


class TestEntitlementSnapshot:
    """Tier and status derivation."""

    def test_highest_active_tier_wins(self):
        snapshot = EntitlementSnapshot(
            user_id="u",
            entitlements=[
                Entitlement(identifier="basic", is_active=True),
                Entitlement(identifier="Premium", is_active=True),
                Entitlement(identifier="gold", is_active=False),
            ],
        )

        assert snapshot.tier == SubscriptionTier.PREMIUM
        assert snapshot.is_active

    def test_no_active_entitlements_is_free(self):
        snapshot = EntitlementSnapshot(user_id="u")
        assert snapshot.tier == SubscriptionTier.FREE
        assert not snapshot.is_active
        assert snapshot.expiration_date is None

    def test_unknown_identifier_maps_to_free(self):
        assert Entitlement(identifier="lifetime").tier == SubscriptionTier.FREE

    def test_cancelled_and_expiration(self):
        later = datetime.now(UTC) + timedelta(days=10)
        sooner = datetime.now(UTC) + timedelta(days=2)
        snapshot = EntitlementSnapshot(
            user_id="u",
            entitlements=[
                Entitlement(identifier="basic", is_active=True, expires_at=sooner),
                Entitlement(
                    identifier="premium", is_active=True, expires_at=later, will_renew=False
                ),
            ],
        )

        assert snapshot.is_cancelled
        assert snapshot.expiration_date == later
