"""Logging-related constants."""

from typing import Final


class LogEmoji:
    """Emoji constants for consistent logging."""

    SUCCESS: Final[str] = "✅"
    ERROR: Final[str] = "❌"
    WARNING: Final[str] = "⚠️"
    DEBUG: Final[str] = "🔍"
    START: Final[str] = "🚀"
    STOP: Final[str] = "🛑"
    RETRY: Final[str] = "🔄"
    FIX: Final[str] = "🔧"
    REPORT: Final[str] = "📊"
    ALERT: Final[str] = "🚨"
    SHIELD: Final[str] = "🛡️"
