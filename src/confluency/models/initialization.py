"""User data initialization status models."""

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class InitializationStatus(StrEnum):
    """Lifecycle of the backing-data check for the signed-in user."""

    UNKNOWN = "unknown"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILED = "failed"
    REQUIRES_RETRY = "requires_retry"


def now_millis() -> int:
    """Current wall clock time in epoch milliseconds."""
    return int(datetime.now(UTC).timestamp() * 1000)


class InitializationAttemptRecord(BaseModel):
    """Latest initialization outcome. Overwritten, never appended."""

    status: InitializationStatus
    error: str | None = None
    timestamp: int = Field(default_factory=now_millis, description="Epoch millis")
    sequence: int = Field(0, ge=0, description="Monotonic write stamp")
