"""Recovery and remediation constants."""

from typing import Final


class RecoveryConfig:
    """Recovery orchestrator configuration."""

    MAX_ATTEMPTS: Final[int] = 3
    BASE_DELAY_SECONDS: Final[float] = 2.0
    BACKOFF_STEP_SECONDS: Final[float] = 1.0
    PHASE_HISTORY_LIMIT: Final[int] = 50


class RemediationConfig:
    """Remediation registry configuration."""

    HISTORY_LIMIT: Final[int] = 100
    HISTORY_TRIM_TO: Final[int] = 50
    NETWORK_RETRY_ATTEMPTS: Final[int] = 3
    NETWORK_BACKOFF_MIN_SECONDS: Final[float] = 0.5
    NETWORK_BACKOFF_MAX_SECONDS: Final[float] = 8.0
    DEFAULT_INSTALL_COMMAND: Final[str] = "pip install"
