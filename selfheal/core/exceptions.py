"""Custom exception classes for selfheal."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class SelfHealError(Exception):
    """Base exception for selfheal."""

    def __init__(
        self, message: str, recoverable: bool = True, details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize selfheal error.

        Args:
            message: Error message
            recoverable: Whether the pipeline keeps running after this error
            details: Additional error details
        """
        self.message = message
        self.recoverable = recoverable
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "recoverable": self.recoverable,
            "details": self.details,
            "timestamp": self.timestamp,
        }


# Pipeline-internal errors. These are logged, never raised to the host.
class CaptureError(SelfHealError):
    """Processing an intercepted diagnostic call failed."""

    def __init__(self, message: str = "Diagnostic capture failed", level: Optional[str] = None):
        super().__init__(message, recoverable=True, details={"level": level} if level else {})


class ReportingError(SelfHealError):
    """A failure-store listener raised while a report was being delivered."""

    def __init__(self, message: str = "Failure listener raised", listener: Optional[str] = None):
        details = {"listener": listener} if listener else {}
        super().__init__(message, recoverable=True, details=details)


class PersistenceError(SelfHealError):
    """Reading or writing the persisted snapshot failed."""

    def __init__(self, message: str = "Snapshot persistence failed", key: Optional[str] = None):
        super().__init__(message, recoverable=True, details={"key": key} if key else {})


class RemediationFailure(SelfHealError):
    """A remediation action raised or reported failure."""

    def __init__(self, rule_id: str, reason: str = "action failed"):
        self.rule_id = rule_id
        super().__init__(
            f"Remediation '{rule_id}' failed: {reason}",
            recoverable=True,
            details={"rule_id": rule_id, "reason": reason},
        )


# Rule registration errors. Raised synchronously to the caller.
class RuleRegistrationError(SelfHealError):
    """Base class for rejected rule registrations."""

    def __init__(
        self,
        message: str = "Rule registration rejected",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, recoverable=False, details=details)


class InvalidRuleError(RuleRegistrationError):
    """Rule is missing one or more required fields."""

    def __init__(self, missing_fields: list, rule_id: Optional[str] = None):
        self.missing_fields = list(missing_fields)
        label = f"'{rule_id}'" if rule_id else "(no id)"
        super().__init__(
            f"Invalid rule {label}: missing required fields: {', '.join(self.missing_fields)}",
            details={"rule_id": rule_id, "missing_fields": self.missing_fields},
        )


class DuplicateRuleError(RuleRegistrationError):
    """A rule with the same id is already registered."""

    def __init__(self, rule_id: str):
        self.rule_id = rule_id
        super().__init__(
            f"Rule with id '{rule_id}' already exists", details={"rule_id": rule_id}
        )


class RegistryFormatError(SelfHealError):
    """Imported registry data does not have the expected shape."""

    def __init__(self, message: str = "Invalid registry data format"):
        super().__init__(message, recoverable=False)


# Configuration Errors
class ConfigurationError(SelfHealError):
    """Configuration error occurred."""

    def __init__(
        self,
        message: str = "Configuration error",
        recoverable: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, recoverable, details)
