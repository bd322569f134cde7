"""Subscription entitlement models."""

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class SubscriptionTier(StrEnum):
    FREE = "free"
    BASIC = "basic"
    PREMIUM = "premium"
    GOLD = "gold"


# Highest tier wins when several entitlements are active.
TIER_RANK: dict[SubscriptionTier, int] = {
    SubscriptionTier.FREE: 0,
    SubscriptionTier.BASIC: 1,
    SubscriptionTier.PREMIUM: 2,
    SubscriptionTier.GOLD: 3,
}


class Entitlement(BaseModel):
    """A single billing entitlement."""

    identifier: str
    is_active: bool = False
    expires_at: datetime | None = None
    product_id: str | None = None
    will_renew: bool = True

    @property
    def tier(self) -> SubscriptionTier:
        try:
            return SubscriptionTier(self.identifier.lower())
        except ValueError:
            return SubscriptionTier.FREE


class EntitlementSnapshot(BaseModel):
    """Entitlements for one user at a point in time."""

    user_id: str
    entitlements: list[Entitlement] = Field(default_factory=list)
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def active_entitlements(self) -> list[Entitlement]:
        return [e for e in self.entitlements if e.is_active]

    @property
    def is_active(self) -> bool:
        return bool(self.active_entitlements)

    @property
    def tier(self) -> SubscriptionTier:
        tiers = [e.tier for e in self.active_entitlements]
        if not tiers:
            return SubscriptionTier.FREE
        return max(tiers, key=TIER_RANK.__getitem__)

    @property
    def expiration_date(self) -> datetime | None:
        dates = [e.expires_at for e in self.active_entitlements if e.expires_at]
        return max(dates) if dates else None

    @property
    def is_cancelled(self) -> bool:
        """Active, but at least one active entitlement will not renew."""
        return self.is_active and any(not e.will_renew for e in self.active_entitlements)
