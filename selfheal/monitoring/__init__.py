"""Failure capture, storage, remediation and recovery."""

from .capture import CaptureConfig, OutputInterceptor
from .failure_store import FailureStore
from .hooks import RuntimeHooks
from .models import CaptureRecord, FailureEvent
from .persistence import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStore,
    RedisKeyValueStore,
    create_store,
)
from .recovery import CancellableTimer, RecoveryOrchestrator, RecoveryState
from .remediation import RemediationRegistry, RemediationRule
from .subscriptions import Subscription, SubscriptionRegistry
from .system import MonitoringContext

__all__ = [
    "CaptureConfig",
    "CaptureRecord",
    "CancellableTimer",
    "FailureEvent",
    "FailureStore",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "MonitoringContext",
    "OutputInterceptor",
    "RecoveryOrchestrator",
    "RecoveryState",
    "RedisKeyValueStore",
    "RemediationRegistry",
    "RemediationRule",
    "RuntimeHooks",
    "Subscription",
    "SubscriptionRegistry",
    "create_store",
]
