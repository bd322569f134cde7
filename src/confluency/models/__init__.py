"""Confluency client core - Data Models."""

from confluency.models.auth import (
    AuthChangeEvent,
    AuthErrorKind,
    AuthResult,
    AuthSession,
    Identity,
    SessionLookup,
    SessionLookupStatus,
)
from confluency.models.diagnostics import (
    DeviceSnapshot,
    DiagnosticEvent,
    DiagnosticType,
    NetworkSnapshot,
)
from confluency.models.initialization import (
    InitializationAttemptRecord,
    InitializationStatus,
)
from confluency.models.navigation import (
    NavigationCommand,
    NavigationIntent,
    RouteState,
    compute_navigation_intent,
)

__all__ = [
    "AuthChangeEvent",
    "AuthErrorKind",
    "AuthResult",
    "AuthSession",
    "DeviceSnapshot",
    "DiagnosticEvent",
    "DiagnosticType",
    "Identity",
    "InitializationAttemptRecord",
    "InitializationStatus",
    "NavigationCommand",
    "NavigationIntent",
    "NetworkSnapshot",
    "RouteState",
    "SessionLookup",
    "SessionLookupStatus",
    "compute_navigation_intent",
]
