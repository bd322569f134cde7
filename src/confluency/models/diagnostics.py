"""Diagnostic event models."""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class DiagnosticType(StrEnum):
    INIT_FAILURE = "init_failure"
    VERIFY_FAILURE = "verify_failure"
    AUTH_FAILURE = "auth_failure"
    NETWORK_ISSUE = "network_issue"
    API_ERROR = "api_error"
    NAVIGATION_FAILURE = "navigation_failure"


class DeviceSnapshot(BaseModel):
    """Host device information attached to diagnostics."""

    platform: str = "unknown"
    os_version: str = "unknown"
    machine: str = "unknown"
    python_version: str = "unknown"
    app_version: str = "unknown"


class NetworkSnapshot(BaseModel):
    """Connectivity state at a point in time."""

    is_connected: bool = True
    is_internet_reachable: bool | None = None
    connection_type: str = "unknown"
    checked_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_offline(self) -> bool:
        return not self.is_connected or self.is_internet_reachable is False


class DiagnosticEvent(BaseModel):
    """A failure event captured for later inspection."""

    type: DiagnosticType
    user_id: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    details: dict[str, Any] = Field(default_factory=dict)
    device: DeviceSnapshot | None = None
    network: NetworkSnapshot | None = None
