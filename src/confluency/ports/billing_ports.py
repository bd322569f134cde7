"""Subscription and billing port."""

from abc import ABC, abstractmethod

from confluency.models.subscription import Entitlement


class EntitlementProvider(ABC):
    """Billing SDK surface used by the client."""

    @abstractmethod
    async def get_entitlements(self, user_id: str) -> list[Entitlement]:
        """Return the user's entitlements, active and expired."""

    @abstractmethod
    async def sync_on_resume(self) -> bool:
        """Reconcile purchases after the app returns to the foreground.

        Returns:
            True when the sync applied updates
        """
