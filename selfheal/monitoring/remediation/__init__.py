"""Remediation rules, matchers and registry."""

from .builtin import builtin_rules
from .matchers import Matcher, PatternMatcher, SubstringMatcher, to_matcher
from .registry import RemediationRegistry
from .rules import RemediationAction, RemediationRule, advisory_action, categories

__all__ = [
    "Matcher",
    "PatternMatcher",
    "SubstringMatcher",
    "to_matcher",
    "RemediationAction",
    "RemediationRule",
    "RemediationRegistry",
    "advisory_action",
    "builtin_rules",
    "categories",
]
