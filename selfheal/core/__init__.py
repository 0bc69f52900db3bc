"""Core infrastructure module."""

from .enums import (
    CaptureLevel,
    FailureCategory,
    HealthStatus,
    MetricsStatus,
    RecoveryPhase,
    RuleCategory,
)
from .exceptions import (
    # Base exception
    SelfHealError,
    # Pipeline-internal
    CaptureError,
    PersistenceError,
    RemediationFailure,
    ReportingError,
    # Rule registration
    DuplicateRuleError,
    InvalidRuleError,
    RegistryFormatError,
    RuleRegistrationError,
    # Configuration
    ConfigurationError,
)

__all__ = [
    # Enums
    "CaptureLevel",
    "FailureCategory",
    "HealthStatus",
    "MetricsStatus",
    "RecoveryPhase",
    "RuleCategory",
    # Exceptions
    "SelfHealError",
    "CaptureError",
    "PersistenceError",
    "RemediationFailure",
    "ReportingError",
    "DuplicateRuleError",
    "InvalidRuleError",
    "RegistryFormatError",
    "RuleRegistrationError",
    "ConfigurationError",
]
