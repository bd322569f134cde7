"""Ports layer - collaborator interfaces.

The services depend on these abstractions; adapters in
``confluency.adapters`` and ``confluency.storage`` implement them.
"""

from .auth_ports import AuthStateCallback, IdentityProvider, Unsubscribe
from .billing_ports import EntitlementProvider
from .data_ports import UserDataInitializer, UserDataVerifier
from .network_ports import ConnectivityMonitor, NavigationRuntime
from .storage import KeyValueStore

__all__ = [
    "AuthStateCallback",
    "ConnectivityMonitor",
    "EntitlementProvider",
    "IdentityProvider",
    "KeyValueStore",
    "NavigationRuntime",
    "Unsubscribe",
    "UserDataInitializer",
    "UserDataVerifier",
]
