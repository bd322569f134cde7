"""Confluency client core - Configuration Management.

Environment-based configuration using Pydantic settings so the same core can
run against mock collaborators in development and tests and against the real
backend in production.
"""

from functools import lru_cache
import logging
from typing import Literal, Self

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

from confluency.core.resilience import RetryPolicy

# Configure logger
logger = logging.getLogger(__name__)

StorageBackend = Literal["memory", "file", "redis"]


class Settings(BaseSettings):
    """Application settings with secure defaults and validation."""

    # Environment settings
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    testing: bool = Field(default=False, alias="TESTING")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # External service flags
    skip_external_services: bool = Field(default=False, alias="SKIP_EXTERNAL_SERVICES")

    # Application settings
    app_name: str = "Confluency"
    app_version: str = "1.0.0"

    # Local persistence
    storage_backend: StorageBackend = Field(default="file", alias="STORAGE_BACKEND")
    storage_path: str = Field(default=".confluency/storage.json", alias="STORAGE_PATH")
    redis_url: str = Field(default="", alias="REDIS_URL")
    redis_key_prefix: str = Field(default="confluency:kv:", alias="REDIS_KEY_PREFIX")
    init_status_key: str = Field(
        default="@confluency:user_initialization_status", alias="INIT_STATUS_KEY"
    )

    # Navigation reconciliation
    navigation_debounce_ms: int = Field(default=100, alias="NAVIGATION_DEBOUNCE_MS")
    navigation_retry_base_delay_ms: int = Field(
        default=300, alias="NAVIGATION_RETRY_BASE_DELAY_MS"
    )
    navigation_max_attempts: int = Field(default=5, alias="NAVIGATION_MAX_ATTEMPTS")
    main_route: str = Field(default="Main", alias="MAIN_ROUTE")
    auth_route: str = Field(default="Auth", alias="AUTH_ROUTE")

    # Collaborator time boxes
    collaborator_timeout_seconds: float = Field(
        default=15.0, alias="COLLABORATOR_TIMEOUT_SECONDS"
    )
    diagnostics_fetch_timeout_seconds: float = Field(
        default=2.0, alias="DIAGNOSTICS_FETCH_TIMEOUT_SECONDS"
    )

    # Supabase settings
    supabase_url: str = Field(default="", alias="SUPABASE_URL")
    supabase_anon_key: str = Field(default="", alias="SUPABASE_ANON_KEY")
    email_redirect_url: str = Field(
        default="confluency://auth/callback", alias="EMAIL_REDIRECT_URL"
    )

    # Tutoring API settings
    tutor_api_url: str = Field(
        default="https://language-tutor-984417336702.asia-east1.run.app",
        alias="TUTOR_API_URL",
    )
    tutor_request_timeout_seconds: float = Field(
        default=30.0, alias="TUTOR_REQUEST_TIMEOUT_SECONDS"
    )

    # Connectivity probe
    connectivity_probe_url: str = Field(default="", alias="CONNECTIVITY_PROBE_URL")
    connectivity_probe_timeout_seconds: float = Field(
        default=3.0, alias="CONNECTIVITY_PROBE_TIMEOUT_SECONDS"
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "populate_by_name": True,
        "extra": "allow",
    }

    @model_validator(mode="after")
    def validate_environment_requirements(self) -> Self:
        """Validate environment-specific requirements."""
        if self.is_testing():
            return self

        missing: list[str] = []
        if not self.supabase_url:
            missing.append("SUPABASE_URL")
        if not self.supabase_anon_key:
            missing.append("SUPABASE_ANON_KEY")
        if self.storage_backend == "redis" and not self.redis_url:
            missing.append("REDIS_URL (storage backend is redis)")

        if not missing:
            return self

        if self.is_production() and not self.skip_external_services:
            msg = (
                f"Production environment requires: {', '.join(missing)}. "
                f"Set SKIP_EXTERNAL_SERVICES=true to use mock services."
            )
            raise ValueError(msg)

        logger.warning(
            "Missing configuration %s; using mock services (skip_external_services=%s)",
            missing,
            self.skip_external_services,
        )
        return self

    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() == "development"

    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment.lower() == "production"

    def is_testing(self) -> bool:
        """Check if running in testing mode."""
        return self.environment.lower() == "testing" or (
            self.testing and self.environment.lower() != "production"
        )

    def should_use_mock_services(self) -> bool:
        """Check if mock collaborators should replace the real backend."""
        return (
            self.skip_external_services
            or not self.supabase_url
            or not self.supabase_anon_key
        )

    def get_navigation_retry_policy(self) -> RetryPolicy:
        """Retry policy used by the navigation reconciler."""
        return RetryPolicy(
            max_attempts=self.navigation_max_attempts,
            base_delay=self.navigation_retry_base_delay_ms / 1000,
        )

    @property
    def navigation_debounce_seconds(self) -> float:
        return self.navigation_debounce_ms / 1000

    def log_configuration_summary(self) -> None:
        """Log configuration summary for debugging."""
        logger.info("Confluency configuration summary:")
        logger.info("   Environment: %s", self.environment)
        logger.info("   Debug mode: %s", self.debug)
        logger.info("   Storage backend: %s", self.storage_backend)
        logger.info("   Supabase URL: %s", self.supabase_url or "Not set")
        logger.info("   Tutor API: %s", self.tutor_api_url)
        logger.info(
            "   Navigation debounce: %sms, retries: %s x %sms",
            self.navigation_debounce_ms,
            self.navigation_max_attempts,
            self.navigation_retry_base_delay_ms,
        )
        logger.info(
            "   Collaborator timeout: %ss", self.collaborator_timeout_seconds
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    settings = Settings()

    if settings.debug or settings.log_level.upper() == "DEBUG":
        settings.log_configuration_summary()

    return settings
