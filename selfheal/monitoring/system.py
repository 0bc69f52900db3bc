"""Monitoring context: wires capture, store, registry and boundaries together."""

import asyncio
import json
import logging
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from selfheal.constants import HealthThresholds, LogEmoji
from selfheal.core.config import MonitoringSettings, get_settings
from selfheal.core.enums import HealthStatus
from selfheal.core.logger import session_id_ctx
from selfheal.monitoring.capture import OutputInterceptor
from selfheal.monitoring.failure_store import FailureListener, FailureStore
from selfheal.monitoring.hooks import RuntimeHooks
from selfheal.monitoring.models import CaptureRecord, FailureEvent, utc_now
from selfheal.monitoring.persistence import KeyValueStore, create_store
from selfheal.monitoring.recovery import RecoveryOrchestrator, RecoveryState
from selfheal.monitoring.remediation import RemediationRegistry, RemediationRule
from selfheal.monitoring.subscriptions import Subscription
from selfheal.utils.prometheus_metrics import MetricsHelper


def classify_health(recent_failures: int) -> HealthStatus:
    """Map the number of recent failures to a health status."""
    if recent_failures > HealthThresholds.CRITICAL_ERRORS:
        return HealthStatus.CRITICAL
    if recent_failures > HealthThresholds.WARNING_ERRORS:
        return HealthStatus.WARNING
    return HealthStatus.HEALTHY


class MonitoringContext:
    """
    Explicit owner of the monitoring pipeline.

    Create one per process (or per test) and pass it to whatever needs it.
    ``initialize()`` is guarded against double initialization.
    """

    def __init__(
        self,
        settings: Optional[MonitoringSettings] = None,
        kv_store: Optional[KeyValueStore] = None,
        channel: Optional[logging.Logger] = None,
        hooks: Optional[RuntimeHooks] = None,
        registry: Optional[RemediationRegistry] = None,
    ):
        """
        Initialize monitoring context.

        Args:
            settings: Monitoring settings (global settings when omitted)
            kv_store: Snapshot store (built from settings when omitted)
            channel: Logger intercepted by the capture layer
            hooks: Runtime hooks adapter (created when enabled in settings)
            registry: Remediation registry (built-in rules when omitted)
        """
        self.settings = settings or get_settings()

        if kv_store is None:
            kv_store = create_store(
                self.settings.storage_backend,
                storage_dir=self.settings.storage_dir,
                redis_url=self.settings.redis_url,
            )
        self.store = FailureStore(
            kv_store,
            max_stored_errors=self.settings.max_stored_errors,
            snapshot_size=self.settings.snapshot_size,
            snapshot_max_age=timedelta(hours=self.settings.snapshot_max_age_hours),
            storage_key=self.settings.storage_key,
        )
        self.registry = registry or RemediationRegistry(
            install_command=self.settings.install_command
        )
        if channel is None:
            channel = logging.getLogger(self.settings.capture_channel or None)
        self.capture = OutputInterceptor(self.store, channel)
        if hooks is None and self.settings.install_runtime_hooks:
            hooks = RuntimeHooks()
        self.hooks = hooks

        self._boundaries: Dict[str, RecoveryOrchestrator] = {}
        self._subscriptions: List[Subscription] = []
        self._initialized = False
        self._started_at = utc_now()

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """Load persisted failures and start capture and runtime hooks."""
        if self._initialized:
            logger.warning("Monitoring context is already initialized")
            return

        logger.info(f"{LogEmoji.START} Initializing monitoring (session {self.store.session_id})")
        session_id_ctx.set(self.store.session_id)

        self.store.load_persisted()
        self.capture.start(
            {
                "capture_errors": True,
                "capture_warnings": True,
                "capture_info": False,
                "capture_debug": False,
                "max_captured_messages": self.settings.capture_max_messages,
            }
        )

        if self.hooks is not None:
            self.hooks.install(self.store.report)
            logger.info(f"{LogEmoji.SHIELD} Runtime failure hooks installed")
            try:
                self.hooks.attach_loop(asyncio.get_running_loop())
            except RuntimeError:
                logger.debug("No running event loop, asyncio failures are not hooked yet")

        self._subscriptions.append(self.store.subscribe(self._log_failure_stats))
        self._subscriptions.append(self.capture.subscribe(self._log_capture))

        self._started_at = utc_now()
        self._initialized = True
        MetricsHelper.set_monitoring_active(True)
        logger.info(f"{LogEmoji.SUCCESS} Monitoring initialized")

    def attach_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Hook an event loop that was started after ``initialize()``."""
        if self.hooks is not None and self.hooks.installed:
            self.hooks.attach_loop(loop)

    def shutdown(self) -> None:
        """Stop capture, remove hooks, close boundaries and drop listeners."""
        if not self._initialized:
            return

        self.capture.stop()
        if self.hooks is not None:
            self.hooks.uninstall()
        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions = []
        for boundary in self._boundaries.values():
            boundary.close()
        self._boundaries = {}

        self._initialized = False
        MetricsHelper.set_monitoring_active(False)
        logger.info(f"{LogEmoji.STOP} Monitoring shut down")

    def restart(self) -> None:
        self.shutdown()
        self.initialize()

    def _log_failure_stats(self, event: FailureEvent) -> None:
        stats = self.store.get_stats()
        logger.debug(
            f"{LogEmoji.REPORT} Failure stats: total={stats['total_errors']} "
            f"by_category={stats['errors_by_category']}"
        )

    def _log_capture(self, record: CaptureRecord) -> None:
        logger.debug(f"Captured {record.level.value} output: {record.message[:200]}")

    def create_boundary(
        self,
        name: str,
        on_recovered: Optional[Callable[[RecoveryState], Any]] = None,
        fix_context: Optional[Dict[str, Any]] = None,
    ) -> RecoveryOrchestrator:
        """
        Create (or return the open) recovery boundary with this name.

        Args:
            name: Boundary identifier
            on_recovered: Called after each reset
            fix_context: Passed to remediation actions

        Returns:
            RecoveryOrchestrator owned by this context
        """
        existing = self._boundaries.get(name)
        if existing is not None and not existing.closed:
            return existing

        boundary = RecoveryOrchestrator(
            name,
            self.store,
            self.registry,
            max_attempts=self.settings.recovery_max_attempts,
            base_delay=self.settings.recovery_base_delay_seconds,
            backoff_step=self.settings.recovery_backoff_step_seconds,
            on_recovered=on_recovered,
            fix_context=fix_context,
        )
        self._boundaries[name] = boundary
        return boundary

    def get_boundary(self, name: str) -> Optional[RecoveryOrchestrator]:
        return self._boundaries.get(name)

    # Pass-throughs used by host code

    def report_failure(self, event: FailureEvent) -> FailureEvent:
        return self.store.report(event)

    def subscribe(self, listener: FailureListener) -> Subscription:
        return self.store.subscribe(listener)

    def get_stats(self) -> Dict[str, Any]:
        return self.store.get_stats()

    def register_rule(self, rule: RemediationRule) -> None:
        self.registry.register(rule)

    def find_match(self, event: FailureEvent) -> Optional[RemediationRule]:
        return self.registry.find_match(event)

    async def apply_fix(
        self,
        rule: RemediationRule,
        event: FailureEvent,
        context: Optional[Dict[str, Any]] = None,
    ) -> bool:
        return await self.registry.apply(rule, event, context)

    def get_health(self) -> Dict[str, Any]:
        """
        Classify health from failures in the recent window.

        Returns:
            Dictionary with status, recent failure count, component flags and uptime
        """
        now = utc_now()
        window = timedelta(seconds=self.settings.health_window_seconds)
        recent = self.store.count_since(now - window)
        return {
            "status": classify_health(recent).value,
            "recent_errors": recent,
            "total_errors": len(self.store),
            "window_seconds": self.settings.health_window_seconds,
            "components": {
                "failure_store": self._initialized,
                "capture": self.capture.is_running,
                "runtime_hooks": bool(self.hooks is not None and self.hooks.installed),
                "remediation_registry": len(self.registry) > 0,
            },
            "boundaries": {
                name: boundary.phase.value for name, boundary in self._boundaries.items()
            },
            "uptime_seconds": (now - self._started_at).total_seconds(),
            "timestamp": now.isoformat(),
        }

    def generate_report(self) -> Dict[str, Any]:
        """Full JSON-serializable snapshot of the pipeline."""
        return {
            "generated_at": utc_now().isoformat(),
            "session_id": self.store.session_id,
            "health": self.get_health(),
            "failures": self.store.get_stats(),
            "remediation": self.registry.get_stats(),
            "capture": self.capture.get_stats(),
            "rules": [rule.summary() for rule in self.registry.get_all()],
            "boundaries": {
                name: boundary.snapshot() for name, boundary in self._boundaries.items()
            },
        }

    def generate_report_json(self) -> str:
        return json.dumps(self.generate_report(), indent=2)
