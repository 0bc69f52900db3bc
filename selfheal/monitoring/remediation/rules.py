"""Remediation rule model."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, FrozenSet, List, Optional, Union

from loguru import logger

from selfheal.constants import LogEmoji
from selfheal.core.enums import FailureCategory, RuleCategory
from selfheal.monitoring.models import FailureEvent
from selfheal.monitoring.remediation.matchers import Matcher, to_matcher

RemediationAction = Callable[
    [FailureEvent, Optional[Dict[str, Any]]], Union[Awaitable[bool], bool]
]
Condition = Callable[[], bool]


@dataclass
class RemediationRule:
    """
    One fix strategy.

    ``matcher`` accepts anything ``to_matcher`` understands (plain strings are
    literal substrings, compiled regexes are patterns). ``action`` may be a
    coroutine function or a plain function returning a bool.
    """

    id: str
    name: str
    matcher: Optional[Matcher]
    action: Optional[RemediationAction]
    description: str = ""
    applicable_categories: FrozenSet[FailureCategory] = frozenset()
    priority: int = 0
    category: RuleCategory = RuleCategory.RUNTIME
    conditions: List[Condition] = field(default_factory=list)
    action_ref: Optional[str] = None
    times_applied: int = 0
    success_rate: float = 0.0
    last_applied_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.matcher is not None:
            self.matcher = to_matcher(self.matcher)
        self.applicable_categories = frozenset(
            FailureCategory(c) for c in self.applicable_categories
        )
        self.category = RuleCategory(self.category)

    def missing_fields(self) -> List[str]:
        """Names of required fields that are empty."""
        required = {
            "id": self.id,
            "name": self.name,
            "matcher": self.matcher,
            "action": self.action,
        }
        return [name for name, value in required.items() if not value]

    def conditions_hold(self) -> bool:
        """True when every condition returns true; a raising condition counts as false."""
        for condition in self.conditions:
            try:
                if not condition():
                    return False
            except Exception as e:
                logger.debug(f"Condition of rule '{self.id}' raised: {e}")
                return False
        return True

    def record_outcome(self, success: bool, when: datetime) -> None:
        """Fold one application into the running statistics."""
        self.times_applied += 1
        self.last_applied_at = when
        self.success_rate = (
            (self.success_rate * (self.times_applied - 1)) + (1 if success else 0)
        ) / self.times_applied

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category.value,
            "priority": self.priority,
        }

    def to_dict(self) -> Dict[str, Any]:
        """JSON form used by registry export. Actions are exported by name only."""
        return {
            **self.summary(),
            "description": self.description,
            "matcher": self.matcher.to_dict() if self.matcher is not None else None,
            "applicable_categories": sorted(c.value for c in self.applicable_categories),
            "action": self.action_ref,
            "times_applied": self.times_applied,
            "success_rate": self.success_rate,
            "last_applied_at": self.last_applied_at.isoformat() if self.last_applied_at else None,
        }


def advisory_action(*suggestions: str) -> RemediationAction:
    """
    Build an action that only logs guidance and reports failure.

    Args:
        suggestions: Lines logged as auto-fix suggestions

    Returns:
        Coroutine function returning False
    """

    async def advise(event: FailureEvent, context: Optional[Dict[str, Any]] = None) -> bool:
        for line in suggestions:
            logger.warning(f"{LogEmoji.FIX} Auto-fix suggestion: {line}")
        return False

    return advise


def categories(*values: Union[str, FailureCategory]) -> FrozenSet[FailureCategory]:
    return frozenset(FailureCategory(v) for v in values)
