"""Failure store, capture layer and health constants."""

from typing import Final, Tuple


class FailureStoreConfig:
    """Failure store configuration."""

    MAX_STORED_ERRORS: Final[int] = 100
    SNAPSHOT_SIZE: Final[int] = 20
    SNAPSHOT_MAX_AGE_HOURS: Final[int] = 24
    STORAGE_KEY: Final[str] = "error-monitor-data"
    TOP_ERRORS_LIMIT: Final[int] = 10
    RECENT_ERRORS_LIMIT: Final[int] = 10


class CaptureDefaults:
    """Diagnostic-output capture defaults."""

    MAX_CAPTURED_MESSAGES: Final[int] = 200
    RECENT_MESSAGES_LIMIT: Final[int] = 5
    # Host/framework chatter that has nothing to do with the application
    NOISE_PATTERNS: Final[Tuple[str, ...]] = (
        r"Using selector: \w+Selector",
        r"Task was destroyed but it is pending",
        r"Executing <Task .* took [\d.]+ seconds",
        r"Connection pool is full, discarding connection",
    )


class HealthThresholds:
    """Health classification thresholds."""

    WINDOW_SECONDS: Final[int] = 300
    WARNING_ERRORS: Final[int] = 5
    CRITICAL_ERRORS: Final[int] = 10
