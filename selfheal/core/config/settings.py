"""Application settings with Pydantic validation."""

from typing import Any, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from selfheal.constants import (
    CaptureDefaults,
    FailureStoreConfig,
    HealthThresholds,
    RecoveryConfig,
    RemediationConfig,
)


class MonitoringSettings(BaseSettings):
    """Monitoring settings with validation and environment variable support."""

    # Environment
    env: str = Field(
        default="production", description="Environment (production, development, testing)"
    )

    @model_validator(mode="before")
    @classmethod
    def default_env_for_pytest(cls, data: Any) -> Any:
        """Auto-detect testing environment when running under pytest."""
        import sys

        if not isinstance(data, dict):
            return data

        if ("env" not in data or not data.get("env")) and "pytest" in sys.modules:
            data["env"] = "testing"

        return data

    # Logging
    log_level: str = Field(
        default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_json: bool = Field(default=True, description="Write the log file as JSON lines")
    logs_dir: str = Field(default="logs", description="Directory for log files")

    # Failure store
    max_stored_errors: int = Field(
        default=FailureStoreConfig.MAX_STORED_ERRORS,
        ge=1,
        description="Maximum number of failure events kept in memory",
    )
    snapshot_size: int = Field(
        default=FailureStoreConfig.SNAPSHOT_SIZE,
        ge=1,
        description="Number of most recent events written to the persisted snapshot",
    )
    snapshot_max_age_hours: int = Field(
        default=FailureStoreConfig.SNAPSHOT_MAX_AGE_HOURS,
        ge=1,
        description="Persisted events older than this are discarded on load",
    )

    # Persistence
    storage_backend: str = Field(
        default="file", description="Snapshot storage backend (memory, file, redis)"
    )
    storage_dir: str = Field(default="data/monitoring", description="Directory for file storage")
    storage_key: str = Field(
        default=FailureStoreConfig.STORAGE_KEY, description="Key of the persisted snapshot"
    )
    redis_url: Optional[str] = Field(
        default=None, description="Redis URL for the redis storage backend"
    )

    # Capture layer
    capture_max_messages: int = Field(
        default=CaptureDefaults.MAX_CAPTURED_MESSAGES,
        ge=1,
        description="Capacity of the captured diagnostic message buffer",
    )
    capture_channel: str = Field(
        default="",
        description="Name of the stdlib logger to intercept (empty string = root logger)",
    )
    install_runtime_hooks: bool = Field(
        default=True,
        description="Chain sys/threading/asyncio failure hooks into the failure store",
    )

    # Recovery
    recovery_max_attempts: int = Field(
        default=RecoveryConfig.MAX_ATTEMPTS, ge=1, description="Recovery attempts per boundary"
    )
    recovery_base_delay_seconds: float = Field(
        default=RecoveryConfig.BASE_DELAY_SECONDS,
        ge=0,
        description="Delay before the first scheduled reset",
    )
    recovery_backoff_step_seconds: float = Field(
        default=RecoveryConfig.BACKOFF_STEP_SECONDS,
        gt=0,
        description="Added to the reset delay for every previous attempt",
    )

    # Remediation
    install_command: str = Field(
        default=RemediationConfig.DEFAULT_INSTALL_COMMAND,
        description="Command suggested for missing dependencies",
    )

    # Health
    health_window_seconds: int = Field(
        default=HealthThresholds.WINDOW_SECONDS,
        ge=1,
        description="Window used to count recent failures for health status",
    )

    model_config = SettingsConfigDict(
        env_prefix="SELFHEAL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value."""
        allowed = ["production", "development", "testing", "staging"]
        if v.lower() not in allowed:
            raise ValueError(f'ENV must be one of: {", ".join(allowed)}')
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f'LOG_LEVEL must be one of: {", ".join(allowed)}')
        return v_upper

    @field_validator("storage_backend")
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        """Validate storage backend."""
        allowed = ["memory", "file", "redis"]
        if v.lower() not in allowed:
            raise ValueError(f'STORAGE_BACKEND must be one of: {", ".join(allowed)}')
        return v.lower()

    @model_validator(mode="after")
    def validate_snapshot_fits_store(self) -> "MonitoringSettings":
        """The persisted snapshot cannot hold more than the live store."""
        if self.snapshot_size > self.max_stored_errors:
            raise ValueError(
                f"SNAPSHOT_SIZE ({self.snapshot_size}) cannot exceed "
                f"MAX_STORED_ERRORS ({self.max_stored_errors})"
            )
        return self

    def is_development(self) -> bool:
        """
        Check if running in development mode.

        Returns:
            True if development environment
        """
        return self.env == "development"


# Singleton instance
_settings: Optional[MonitoringSettings] = None


def get_settings() -> MonitoringSettings:
    """
    Get application settings singleton.

    Returns:
        MonitoringSettings instance

    Raises:
        ValidationError: If settings are invalid
    """
    global _settings
    if _settings is None:
        _settings = MonitoringSettings()
    return _settings


def reset_settings() -> None:
    """Reset settings singleton (useful for testing)."""
    global _settings
    _settings = None
