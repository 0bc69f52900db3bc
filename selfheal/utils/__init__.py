"""Utility functions module."""

from .prometheus_metrics import MetricsHelper, get_metrics

__all__ = [
    "MetricsHelper",
    "get_metrics",
]
