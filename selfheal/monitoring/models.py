"""Failure and capture records shared across the monitoring pipeline."""

import json
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from selfheal.core.enums import CaptureLevel, FailureCategory


def utc_now() -> datetime:
    """Current timezone-aware UTC time."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """
    Parse an ISO-8601 timestamp (or pass a datetime through) as aware UTC.

    Raises:
        ValueError: If the value cannot be parsed
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise ValueError(f"Unsupported timestamp: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def json_safe(value: Any) -> Any:
    """Round-trip a value through JSON, stringifying anything unknown."""
    return json.loads(json.dumps(value, default=str))


@dataclass(frozen=True)
class FailureEvent:
    """One observed failure. Immutable once created."""

    category: FailureCategory
    message: str
    stack_trace: Optional[str] = None
    occurred_at: datetime = field(default_factory=utc_now)
    context: Dict[str, Any] = field(default_factory=dict)
    session_id: Optional[str] = None
    origin: Optional[str] = None

    @classmethod
    def from_exception(
        cls,
        error: BaseException,
        category: FailureCategory,
        context: Optional[Dict[str, Any]] = None,
        occurred_at: Optional[datetime] = None,
    ) -> "FailureEvent":
        """
        Build an event from an exception.

        Args:
            error: Exception that occurred
            category: Where the failure was observed
            context: Additional context (boundary, origin line, ...)
            occurred_at: Override for the event timestamp

        Returns:
            FailureEvent with message and formatted traceback
        """
        stack: Optional[str] = None
        if error.__traceback__ is not None:
            stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        return cls(
            category=category,
            message=str(error) or type(error).__name__,
            stack_trace=stack,
            occurred_at=occurred_at or utc_now(),
            context=dict(context or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to a JSON-serializable dictionary."""
        return {
            "category": self.category.value,
            "message": self.message,
            "stack_trace": self.stack_trace,
            "occurred_at": self.occurred_at.isoformat(),
            "context": json_safe(self.context),
            "session_id": self.session_id,
            "origin": self.origin,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FailureEvent":
        """
        Create an event from its dictionary form.

        Raises:
            ValueError: If category or timestamp is invalid
            KeyError: If a required key is missing
        """
        return cls(
            category=FailureCategory(data["category"]),
            message=str(data["message"]),
            stack_trace=data.get("stack_trace"),
            occurred_at=parse_timestamp(data["occurred_at"]),
            context=dict(data.get("context") or {}),
            session_id=data.get("session_id"),
            origin=data.get("origin"),
        )


@dataclass
class CaptureRecord:
    """A diagnostic-output call that passed the filters."""

    level: CaptureLevel
    message: str
    raw_args: List[Any]
    timestamp: datetime = field(default_factory=utc_now)
    stack_trace: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert record to a JSON-serializable dictionary."""
        return {
            "level": self.level.value,
            "message": self.message,
            "raw_args": [repr(arg) for arg in self.raw_args],
            "timestamp": self.timestamp.isoformat(),
            "stack_trace": self.stack_trace,
        }
