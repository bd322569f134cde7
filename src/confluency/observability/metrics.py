"""Prometheus counters for initialization, navigation and diagnostics.

The counters live on a dedicated registry so embedding applications can
expose them alongside their own metrics without name clashes.
"""

import logging

from prometheus_client import CollectorRegistry, Counter

logger = logging.getLogger(__name__)

REGISTRY = CollectorRegistry()

INIT_TRANSITIONS = Counter(
    "confluency_init_transitions_total",
    "User data initialization status transitions",
    ["status"],
    registry=REGISTRY,
)
NAVIGATION_COMMANDS = Counter(
    "confluency_navigation_commands_total",
    "Navigation reset commands issued to the runtime",
    ["intent"],
    registry=REGISTRY,
)
NAVIGATION_RETRIES = Counter(
    "confluency_navigation_retries_total",
    "Reconciliation retries while the navigation runtime was not ready",
    registry=REGISTRY,
)
DIAGNOSTIC_EVENTS = Counter(
    "confluency_diagnostic_events_total",
    "Diagnostic events captured",
    ["type"],
    registry=REGISTRY,
)


def get_metric_value(name: str, labels: dict[str, str] | None = None) -> float:
    """Current value of a sample, 0.0 when it has never been incremented."""
    value = REGISTRY.get_sample_value(name, labels or {})
    return value if value is not None else 0.0
