"""Unified constants and configuration values for selfheal.

All classes can be imported directly from this package:
    from selfheal.constants import FailureStoreConfig, RecoveryConfig, LogEmoji
"""

# Logging
from .logging import LogEmoji

# Failure store, capture and health
from .monitoring import (
    CaptureDefaults,
    FailureStoreConfig,
    HealthThresholds,
)

# Recovery and remediation
from .recovery import (
    RecoveryConfig,
    RemediationConfig,
)

__all__ = [
    # Logging
    "LogEmoji",
    # Monitoring
    "FailureStoreConfig",
    "CaptureDefaults",
    "HealthThresholds",
    # Recovery
    "RecoveryConfig",
    "RemediationConfig",
]
