"""Adapters - concrete collaborators behind the ports."""

from confluency.adapters.mock import (
    MockEntitlementProvider,
    MockIdentityProvider,
    MockUserDataBackend,
)
from confluency.adapters.supabase import SupabaseIdentityProvider, SupabaseUserDataGateway

__all__ = [
    "MockEntitlementProvider",
    "MockIdentityProvider",
    "MockUserDataBackend",
    "SupabaseIdentityProvider",
    "SupabaseUserDataGateway",
]
