"""selfheal - Self-healing runtime failure monitoring and recovery."""

__version__ = "1.0.0"
__license__ = "MIT"

from .monitoring import (
    FailureEvent,
    FailureStore,
    MonitoringContext,
    OutputInterceptor,
    RecoveryOrchestrator,
    RemediationRegistry,
    RemediationRule,
)

__all__ = [
    "FailureEvent",
    "FailureStore",
    "MonitoringContext",
    "OutputInterceptor",
    "RecoveryOrchestrator",
    "RemediationRegistry",
    "RemediationRule",
]
