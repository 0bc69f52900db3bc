"""Priority-ordered registry of remediation rules with application statistics."""

import inspect
import json
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from selfheal.constants import LogEmoji, RemediationConfig
from selfheal.core.enums import RuleCategory
from selfheal.core.exceptions import (
    DuplicateRuleError,
    InvalidRuleError,
    RegistryFormatError,
    RemediationFailure,
    RuleRegistrationError,
)
from selfheal.monitoring.models import FailureEvent, utc_now
from selfheal.monitoring.remediation.builtin import builtin_rules
from selfheal.monitoring.remediation.rules import (
    RemediationAction,
    RemediationRule,
    advisory_action,
)
from selfheal.utils.prometheus_metrics import MetricsHelper


class RemediationRegistry:
    """
    Ordered catalog of remediation rules.

    Rules are kept sorted by descending priority; ties keep registration order.
    Matching and applying are separate calls.
    """

    def __init__(
        self,
        include_builtins: bool = True,
        install_command: str = RemediationConfig.DEFAULT_INSTALL_COMMAND,
        reclaim: Optional[Callable[[], Any]] = None,
        clock: Callable[[], datetime] = utc_now,
        history_limit: int = RemediationConfig.HISTORY_LIMIT,
        history_trim_to: int = RemediationConfig.HISTORY_TRIM_TO,
    ):
        """
        Initialize remediation registry.

        Args:
            include_builtins: Register the built-in rule set
            install_command: Command suggested by the missing-dependency rule
            reclaim: Memory reclaim capability (``gc.collect`` when omitted)
            clock: Source of the current time
            history_limit: History length that triggers a trim
            history_trim_to: Number of most recent entries kept after a trim
        """
        self._rules: List[RemediationRule] = []
        self._actions: Dict[str, RemediationAction] = {}
        self._history: List[Dict[str, Any]] = []
        self._clock = clock
        self.history_limit = history_limit
        self.history_trim_to = history_trim_to

        if include_builtins:
            kwargs: Dict[str, Any] = {"install_command": install_command}
            if reclaim is not None:
                kwargs["reclaim"] = reclaim
            for rule in builtin_rules(**kwargs):
                self.register(rule)
                if rule.action_ref and rule.action is not None:
                    self._actions[rule.action_ref] = rule.action
            logger.debug(f"Registered {len(self._rules)} built-in remediation rules")

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, rule_id: object) -> bool:
        return any(rule.id == rule_id for rule in self._rules)

    def register(self, rule: RemediationRule) -> None:
        """
        Add a rule and restore priority order.

        Args:
            rule: Rule to register

        Raises:
            InvalidRuleError: If id, name, matcher or action is missing
            DuplicateRuleError: If a rule with the same id exists
        """
        missing = rule.missing_fields()
        if missing:
            raise InvalidRuleError(missing, rule_id=rule.id or None)
        if rule.id in self:
            raise DuplicateRuleError(rule.id)

        self._rules.append(rule)
        # sorted() is stable, equal priorities keep registration order
        self._rules = sorted(self._rules, key=lambda r: -r.priority)
        logger.debug(f"Registered remediation rule: {rule.name} ({rule.id})")

    def register_action(self, name: str, action: RemediationAction) -> None:
        """Make an action available to imported rules under ``name``."""
        self._actions[name] = action

    def remove(self, rule_id: str) -> bool:
        """
        Remove a rule.

        Returns:
            True if the rule existed
        """
        for index, rule in enumerate(self._rules):
            if rule.id == rule_id:
                del self._rules[index]
                logger.debug(f"Removed remediation rule: {rule_id}")
                return True
        return False

    def get(self, rule_id: str) -> Optional[RemediationRule]:
        return next((rule for rule in self._rules if rule.id == rule_id), None)

    def get_all(self) -> List[RemediationRule]:
        """Rules in priority order."""
        return list(self._rules)

    def get_by_category(self, category: RuleCategory) -> List[RemediationRule]:
        category = RuleCategory(category)
        return [rule for rule in self._rules if rule.category == category]

    def search(self, query: str) -> List[RemediationRule]:
        """Case-insensitive search over name, description and category."""
        needle = query.lower()
        return [
            rule
            for rule in self._rules
            if needle in rule.name.lower()
            or needle in rule.description.lower()
            or needle in rule.category.value
        ]

    def find_match(self, event: FailureEvent) -> Optional[RemediationRule]:
        """
        Find the highest-priority rule for a failure.

        Args:
            event: Failure to match against message and stack trace

        Returns:
            First rule whose matcher and conditions succeed, or None
        """
        for rule in self._rules:
            if rule.matcher is not None and rule.matcher.matches(event) and rule.conditions_hold():
                return rule
        return None

    async def apply(
        self,
        rule: RemediationRule,
        event: FailureEvent,
        context: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Run a rule's action and record the outcome.

        Exceptions raised by the action are logged and count as failure.

        Args:
            rule: Rule to apply
            event: Failure being remediated
            context: Extra data for the action (e.g. a ``retry`` callable)

        Returns:
            True if the action reported success
        """
        logger.info(f"{LogEmoji.FIX} Applying remediation: {rule.name}")
        success = False
        error: Optional[str] = None

        try:
            if rule.action is None:
                raise RemediationFailure(rule.id, "rule has no action")
            result = rule.action(event, context)
            if inspect.isawaitable(result):
                result = await result
            success = bool(result)
        except Exception as e:
            failure = (
                e if isinstance(e, RemediationFailure) else RemediationFailure(rule.id, str(e))
            )
            error = failure.message
            logger.opt(exception=e).error(f"{LogEmoji.ERROR} {failure.message}")

        now = self._clock()
        rule.record_outcome(success, now)
        self._record_history(rule, event, success, now, error)
        MetricsHelper.record_remediation(rule.id, success)

        if success:
            logger.info(f"{LogEmoji.SUCCESS} Remediation succeeded: {rule.name}")
        else:
            logger.warning(f"{LogEmoji.WARNING} Remediation did not succeed: {rule.name}")
        return success

    def _record_history(
        self,
        rule: RemediationRule,
        event: FailureEvent,
        success: bool,
        when: datetime,
        error: Optional[str],
    ) -> None:
        self._history.append(
            {
                "rule_id": rule.id,
                "rule_name": rule.name,
                "success": success,
                "timestamp": when.isoformat(),
                "event": event.to_dict(),
                "error": error,
            }
        )
        if len(self._history) > self.history_limit:
            self._history = self._history[-self.history_trim_to:]

    def get_history(self) -> List[Dict[str, Any]]:
        """Application history, most recent first."""
        return list(reversed(self._history))

    def get_stats(self) -> Dict[str, Dict[str, Any]]:
        """Per-rule application statistics keyed by rule id."""
        return {
            rule.id: {
                "success_rate": rule.success_rate,
                "times_applied": rule.times_applied,
                "last_applied_at": (
                    rule.last_applied_at.isoformat() if rule.last_applied_at else None
                ),
            }
            for rule in self._rules
        }

    def export(self) -> str:
        """Serialize rules and history as JSON."""
        return json.dumps(
            {
                "rules": [rule.to_dict() for rule in self._rules],
                "history": self._history,
                "exported_at": self._clock().isoformat(),
            },
            indent=2,
        )

    def import_rules(self, data: Any) -> int:
        """
        Register rules from an exported payload.

        Args:
            data: JSON string or parsed object with a ``rules`` list

        Returns:
            Number of rules imported

        Raises:
            RegistryFormatError: If the payload has the wrong shape
        """
        if isinstance(data, (str, bytes)):
            try:
                data = json.loads(data)
            except ValueError as e:
                raise RegistryFormatError(f"Invalid registry data format: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("rules"), list):
            raise RegistryFormatError("Invalid registry data format: expected a 'rules' list")

        imported = 0
        for entry in data["rules"]:
            try:
                rule = self._rule_from_dict(entry)
                self.register(rule)
            except (RuleRegistrationError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping imported rule: {e}")
                continue
            imported += 1

        logger.info(f"Imported {imported} remediation rules")
        return imported

    def _rule_from_dict(self, entry: Any) -> RemediationRule:
        if not isinstance(entry, dict):
            raise TypeError(f"Rule entry must be an object, got {type(entry).__name__}")

        action_ref = entry.get("action")
        action = self._actions.get(action_ref) if action_ref else None
        if action is None:
            action = advisory_action(entry.get("description") or f"Review rule '{entry.get('id')}'")

        matcher = entry.get("matcher")
        return RemediationRule(
            id=entry.get("id") or "",
            name=entry.get("name") or "",
            matcher=matcher if matcher else None,
            action=action,
            description=entry.get("description", ""),
            applicable_categories=frozenset(entry.get("applicable_categories") or ()),
            priority=int(entry.get("priority", 0)),
            category=entry.get("category", RuleCategory.RUNTIME.value),
            action_ref=action_ref,
        )
