"""Prometheus metrics integration for selfheal."""

from loguru import logger
from prometheus_client import REGISTRY, Counter, Gauge, generate_latest

from selfheal.core.enums import MetricsStatus, RecoveryPhase

# Failure store metrics
FAILURES_REPORTED_TOTAL = Counter(
    "selfheal_failures_reported_total",
    "Total number of failure events reported to the failure store",
    ["category"],
    registry=REGISTRY,
)

STORED_FAILURES = Gauge(
    "selfheal_stored_failures", "Failure events currently held in the store", registry=REGISTRY
)

# Capture layer metrics
CAPTURED_MESSAGES_TOTAL = Counter(
    "selfheal_captured_messages_total",
    "Total number of diagnostic messages captured",
    ["level"],
    registry=REGISTRY,
)

# Remediation metrics
REMEDIATION_ATTEMPTS_TOTAL = Counter(
    "selfheal_remediation_attempts_total",
    "Total number of remediation rule applications",
    ["rule_id", "status"],
    registry=REGISTRY,
)

# Recovery metrics
RECOVERY_TRANSITIONS_TOTAL = Counter(
    "selfheal_recovery_transitions_total",
    "Total number of recovery phase transitions",
    ["phase"],
    registry=REGISTRY,
)

MONITORING_ACTIVE = Gauge(
    "selfheal_monitoring_active",
    "Whether the monitoring context is initialized (1=active)",
    registry=REGISTRY,
)


class MetricsHelper:
    """Helper class for common metrics operations."""

    @staticmethod
    def record_failure(category: str, stored: int) -> None:
        """
        Record a reported failure.

        Args:
            category: Failure category value
            stored: Store size after the report
        """
        FAILURES_REPORTED_TOTAL.labels(category=category).inc()
        STORED_FAILURES.set(stored)

    @staticmethod
    def record_capture(level: str) -> None:
        """
        Record a captured diagnostic message.

        Args:
            level: Capture level value
        """
        CAPTURED_MESSAGES_TOTAL.labels(level=level).inc()

    @staticmethod
    def record_remediation(rule_id: str, success: bool) -> None:
        """
        Record a remediation attempt.

        Args:
            rule_id: Applied rule id
            success: Whether the action reported success
        """
        status = MetricsStatus.SUCCESS if success else MetricsStatus.FAILED
        REMEDIATION_ATTEMPTS_TOTAL.labels(rule_id=rule_id, status=status.value).inc()

    @staticmethod
    def record_transition(phase: RecoveryPhase) -> None:
        """
        Record a recovery phase transition.

        Args:
            phase: Phase that was entered
        """
        RECOVERY_TRANSITIONS_TOTAL.labels(phase=phase.value).inc()

    @staticmethod
    def set_monitoring_active(is_active: bool) -> None:
        """
        Set monitoring lifecycle state.

        Args:
            is_active: Whether monitoring is initialized
        """
        MONITORING_ACTIVE.set(1 if is_active else 0)

    @staticmethod
    def set_stored_failures(count: int) -> None:
        """Set the failure store size."""
        STORED_FAILURES.set(count)


def get_metrics() -> bytes:
    """
    Get Prometheus metrics in text format.

    Returns:
        Metrics in Prometheus exposition format
    """
    result: bytes = generate_latest(REGISTRY)
    return result


logger.debug("Prometheus metrics initialized")
