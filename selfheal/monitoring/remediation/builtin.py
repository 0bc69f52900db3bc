"""Built-in remediation rules registered with every registry."""

import gc
import inspect
import re
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from selfheal.constants import LogEmoji, RemediationConfig
from selfheal.core.enums import FailureCategory, RuleCategory
from selfheal.core.infra.retry import get_network_retry
from selfheal.monitoring.models import FailureEvent
from selfheal.monitoring.remediation.matchers import PatternMatcher
from selfheal.monitoring.remediation.rules import (
    RemediationAction,
    RemediationRule,
    advisory_action,
    categories,
)

_MODULE_NAME = re.compile(
    r"(?P<kind>Cannot (?:find|resolve) module|No module named) ['\"](?P<name>[^'\"]+)['\"]"
)


def missing_module_name(message: str) -> Optional[str]:
    """
    Extract the unresolvable module from a failure message.

    Python-style messages name a dotted module; the installable package is its
    top-level segment.
    """
    match = _MODULE_NAME.search(message)
    if not match:
        return None
    name = match.group("name")
    if match.group("kind") == "No module named":
        name = name.split(".")[0]
    return name


def _suggest_install(install_command: str) -> RemediationAction:
    async def suggest_install(
        event: FailureEvent, context: Optional[Dict[str, Any]] = None
    ) -> bool:
        module_name = missing_module_name(event.message)
        if module_name:
            logger.warning(
                f"{LogEmoji.FIX} Auto-fix suggestion: Install missing module \"{module_name}\""
            )
            logger.warning(f"Run: {install_command} {module_name}")
        return False

    return suggest_install


async def _retry_network(event: FailureEvent, context: Optional[Dict[str, Any]] = None) -> bool:
    retry_call = (context or {}).get("retry")
    if retry_call is None:
        logger.warning(
            f"{LogEmoji.FIX} Auto-fix: network failure looks transient, letting the boundary retry"
        )
        return True

    logger.warning(f"{LogEmoji.RETRY} Auto-fix: retrying failed network operation")
    try:
        async for attempt in get_network_retry():
            with attempt:
                result = retry_call()
                if inspect.isawaitable(result):
                    await result
    except Exception as e:
        logger.warning(f"Network retry gave up: {e}")
        return False
    return True


def _reclaim_memory(reclaim: Optional[Callable[[], Any]]) -> RemediationAction:
    async def reclaim_memory(
        event: FailureEvent, context: Optional[Dict[str, Any]] = None
    ) -> bool:
        logger.warning(f"{LogEmoji.FIX} Auto-fix: running cleanup to relieve memory pressure")
        if reclaim is None:
            return False
        try:
            freed = reclaim()
        except Exception as e:
            logger.debug(f"Reclaim action unavailable: {e}")
            return False
        if isinstance(freed, int):
            logger.info(f"Reclaim collected {freed} unreachable objects")
        return True

    return reclaim_memory


def builtin_rules(
    install_command: str = RemediationConfig.DEFAULT_INSTALL_COMMAND,
    reclaim: Optional[Callable[[], Any]] = gc.collect,
) -> List[RemediationRule]:
    """
    Build the default rule set.

    Args:
        install_command: Command suggested for missing dependencies
        reclaim: Best-effort memory reclaim capability of the host (None if absent)

    Returns:
        Fresh rule instances (statistics are per registry)
    """
    return [
        RemediationRule(
            id="react-key-warning",
            name="List Key Warning Fix",
            description="Suggests unique key props for rendered list items",
            matcher=PatternMatcher.compile(
                r"Warning: Each child in a list should have a unique \"key\" prop"
            ),
            applicable_categories=categories(
                FailureCategory.RENDER_BOUNDARY, FailureCategory.DIAGNOSTIC_OUTPUT
            ),
            action=advisory_action('Add unique "key" props to list items'),
            priority=3,
            category=RuleCategory.UI,
            action_ref="react-key-warning",
        ),
        RemediationRule(
            id="missing-dependency",
            name="Missing Dependency Fix",
            description="Suggests installing missing dependencies",
            matcher=PatternMatcher.compile(
                r"Module not found|Cannot resolve module|Cannot find module"
                r"|No module named|ModuleNotFoundError"
            ),
            applicable_categories=categories(
                FailureCategory.RUNTIME_ERROR, FailureCategory.DIAGNOSTIC_OUTPUT
            ),
            action=_suggest_install(install_command),
            priority=5,
            category=RuleCategory.DEPENDENCY,
            action_ref="missing-dependency",
        ),
        RemediationRule(
            id="cors-error",
            name="CORS Error Fix",
            description="Suggests CORS configuration fixes",
            matcher=PatternMatcher.compile(
                r"CORS|Cross-Origin Request Blocked|blocked by CORS policy"
            ),
            applicable_categories=categories(
                FailureCategory.RUNTIME_ERROR, FailureCategory.DIAGNOSTIC_OUTPUT
            ),
            action=advisory_action(
                "Configure CORS headers or route the request through a proxy",
                "Check the allowed origins of the upstream service",
            ),
            priority=4,
            category=RuleCategory.CONFIGURATION,
            action_ref="cors-error",
        ),
        RemediationRule(
            id="undefined-variable",
            name="Undefined Variable Recovery",
            description="Suggests guards for undefined or null references",
            matcher=PatternMatcher.compile(
                r"is not defined|Cannot read prop.*of undefined|Cannot read prop.*of null"
                r"|'NoneType' object has no attribute"
            ),
            applicable_categories=categories(
                FailureCategory.RUNTIME_ERROR, FailureCategory.RENDER_BOUNDARY
            ),
            action=advisory_action("Add null/undefined checks before dereferencing values"),
            priority=3,
            category=RuleCategory.RUNTIME,
            action_ref="undefined-variable",
        ),
        RemediationRule(
            id="network-error",
            name="Network Error Recovery",
            description="Retries operations that failed on transient network errors",
            matcher=PatternMatcher.compile(
                r"Network Error|fetch.*failed|NetworkError|ERR_NETWORK"
                r"|Connection refused|Connection reset|ConnectionError"
            ),
            applicable_categories=categories(
                FailureCategory.RUNTIME_ERROR, FailureCategory.REJECTED_OPERATION
            ),
            action=_retry_network,
            priority=4,
            category=RuleCategory.RUNTIME,
            action_ref="network-error",
        ),
        RemediationRule(
            id="memory-leak",
            name="Memory Pressure Relief",
            description="Runs a best-effort reclaim on runaway updates or memory pressure",
            matcher=PatternMatcher.compile(
                r"Maximum update depth exceeded|Memory leak|MemoryError"
                r"|maximum recursion depth exceeded",
                re.IGNORECASE,
            ),
            applicable_categories=categories(
                FailureCategory.RENDER_BOUNDARY, FailureCategory.RUNTIME_ERROR
            ),
            action=_reclaim_memory(reclaim),
            priority=5,
            category=RuleCategory.RUNTIME,
            action_ref="memory-leak",
        ),
        RemediationRule(
            id="state-update-unmounted",
            name="State Update on Unmounted Component",
            description="Suggests mount checks before updating torn-down components",
            matcher=PatternMatcher.compile(
                r"Warning.*setState.*unmounted component"
                r"|Cannot read prop.*setState.*of undefined"
            ),
            applicable_categories=categories(
                FailureCategory.RENDER_BOUNDARY, FailureCategory.DIAGNOSTIC_OUTPUT
            ),
            action=advisory_action(
                "Add component mount checks before state updates",
                "Cancel pending work in teardown hooks",
            ),
            priority=3,
            category=RuleCategory.UI,
            action_ref="state-update-unmounted",
        ),
    ]
