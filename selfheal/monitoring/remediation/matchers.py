"""Literal-substring and regular-expression matchers over failure text."""

import re
from dataclasses import dataclass
from typing import Any, Dict, Pattern, Union

from selfheal.monitoring.models import FailureEvent

_FLAG_NAMES = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}


@dataclass(frozen=True)
class SubstringMatcher:
    """Case-sensitive literal substring."""

    text: str

    def matches_text(self, value: str) -> bool:
        return self.text in value

    def matches(self, event: FailureEvent) -> bool:
        """True if the text occurs in the message or the stack trace."""
        return self.matches_text(event.message) or self.matches_text(event.stack_trace or "")

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "substring", "text": self.text}


@dataclass(frozen=True)
class PatternMatcher:
    """Compiled regular expression, searched anywhere in the text."""

    pattern: Pattern[str]

    @classmethod
    def compile(cls, expression: str, flags: Union[int, str] = 0) -> "PatternMatcher":
        if isinstance(flags, str):
            flags = _flags_from_string(flags)
        return cls(re.compile(expression, flags))

    def matches_text(self, value: str) -> bool:
        return self.pattern.search(value) is not None

    def matches(self, event: FailureEvent) -> bool:
        """True if the pattern is found in the message or the stack trace."""
        return self.matches_text(event.message) or self.matches_text(event.stack_trace or "")

    def to_dict(self) -> Dict[str, Any]:
        flags = "".join(
            name for name, flag in _FLAG_NAMES.items() if self.pattern.flags & flag
        )
        return {"type": "pattern", "pattern": self.pattern.pattern, "flags": flags}


Matcher = Union[SubstringMatcher, PatternMatcher]


def _flags_from_string(flags: str) -> int:
    value = 0
    for name in flags:
        if name not in _FLAG_NAMES:
            raise ValueError(f"Unknown pattern flag: {name!r}")
        value |= _FLAG_NAMES[name]
    return value


def to_matcher(value: Any) -> Matcher:
    """
    Coerce a value into a matcher.

    Accepts a matcher, a plain string (literal substring), a compiled regex, or
    the dictionary produced by ``to_dict()``.

    Raises:
        ValueError: If the value cannot be interpreted
    """
    if isinstance(value, (SubstringMatcher, PatternMatcher)):
        return value
    if isinstance(value, str):
        return SubstringMatcher(value)
    if isinstance(value, re.Pattern):
        return PatternMatcher(value)
    if isinstance(value, dict):
        kind = value.get("type")
        try:
            if kind == "substring":
                return SubstringMatcher(str(value["text"]))
            if kind == "pattern":
                return PatternMatcher.compile(str(value["pattern"]), value.get("flags", ""))
        except (KeyError, re.error) as e:
            raise ValueError(f"Invalid {kind} matcher: {e}") from e
    raise ValueError(f"Unsupported matcher value: {value!r}")
