"""Centralized enum definitions for selfheal."""

from enum import Enum


class FailureCategory(str, Enum):
    """Source a failure event was captured from."""
    RENDER_BOUNDARY = "render_boundary"
    DIAGNOSTIC_OUTPUT = "diagnostic_output"
    REJECTED_OPERATION = "rejected_operation"
    RUNTIME_ERROR = "runtime_error"

    @classmethod
    def values(cls) -> list:
        """Return list of all enum values."""
        return [e.value for e in cls]


class RuleCategory(str, Enum):
    """Reporting category of a remediation rule."""
    DEPENDENCY = "dependency"
    CONFIGURATION = "configuration"
    RUNTIME = "runtime"
    UI = "ui"
    BUILD = "build"

    @classmethod
    def values(cls) -> list:
        """Return list of all enum values."""
        return [e.value for e in cls]


class CaptureLevel(str, Enum):
    """Diagnostic-output levels the capture layer can intercept."""
    ERROR = "error"
    WARN = "warn"
    INFO = "info"
    DEBUG = "debug"

    @classmethod
    def values(cls) -> list:
        """Return list of all enum values."""
        return [e.value for e in cls]


class RecoveryPhase(str, Enum):
    """Phases of a recovery boundary."""
    STABLE = "stable"
    FAILED = "failed"
    RECOVERING = "recovering"
    RECOVERED = "recovered"
    EXHAUSTED = "exhausted"

    @classmethod
    def values(cls) -> list:
        """Return list of all enum values."""
        return [e.value for e in cls]


class HealthStatus(str, Enum):
    """Overall monitoring health."""
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"

    @classmethod
    def values(cls) -> list:
        """Return list of all enum values."""
        return [e.value for e in cls]


class MetricsStatus(str, Enum):
    """Outcome labels for Prometheus metrics."""
    SUCCESS = "success"
    FAILED = "failed"

    @classmethod
    def values(cls) -> list:
        """Return list of all enum values."""
        return [e.value for e in cls]
