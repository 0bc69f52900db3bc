"""Configuration management module."""

from .settings import MonitoringSettings, get_settings, reset_settings

__all__ = [
    "MonitoringSettings",
    "get_settings",
    "reset_settings",
]
