"""Tests for the monitoring context."""

import json
import logging
import uuid
from datetime import timedelta

import pytest

from selfheal.core.config import MonitoringSettings
from selfheal.core.enums import FailureCategory, RecoveryPhase
from selfheal.monitoring.models import FailureEvent, utc_now
from selfheal.monitoring.persistence import InMemoryKeyValueStore
from selfheal.monitoring.remediation import RemediationRule, advisory_action
from selfheal.monitoring.system import MonitoringContext, classify_health


@pytest.fixture
def settings():
    return MonitoringSettings(
        storage_backend="memory",
        install_runtime_hooks=False,
        recovery_base_delay_seconds=0.02,
        recovery_backoff_step_seconds=0.01,
    )


@pytest.fixture
def context(settings, channel):
    """Monitoring context over an isolated logger and in-memory store."""
    monitoring = MonitoringContext(
        settings=settings, kv_store=InMemoryKeyValueStore(), channel=channel
    )
    yield monitoring
    monitoring.shutdown()


def _event(message, minutes_ago=0):
    return FailureEvent(
        category=FailureCategory.RUNTIME_ERROR,
        message=message,
        occurred_at=utc_now() - timedelta(minutes=minutes_ago),
    )


class TestLifecycle:
    """Tests for initialize/shutdown/restart."""

    def test_initialize_starts_capture(self, context, channel):
        """Test that initialize starts capture for errors and warnings only."""
        context.initialize()

        assert context.is_initialized
        assert context.capture.is_running
        config = context.capture.get_config()
        assert config.capture_errors and config.capture_warnings
        assert not config.capture_info and not config.capture_debug

        channel.error("captured failure")
        assert context.store.events[0].message == "captured failure"

    def test_double_initialize_is_noop(self, context):
        """Test that a second initialize warns and changes nothing."""
        context.initialize()
        subscriptions = list(context._subscriptions)

        context.initialize()

        assert context._subscriptions == subscriptions

    def test_initialize_loads_persisted(self, settings, channel):
        """Test that persisted failures from a previous run are restored."""
        kv = InMemoryKeyValueStore()
        first = MonitoringContext(settings=settings, kv_store=kv, channel=channel)
        first.report_failure(_event("from last run"))

        second = MonitoringContext(settings=settings, kv_store=kv, channel=channel)
        second.initialize()
        try:
            assert [e.message for e in second.store.events] == ["from last run"]
        finally:
            second.shutdown()

    def test_shutdown_and_restart(self, context, channel):
        """Test that shutdown stops capture and restart resumes it."""
        context.initialize()
        context.shutdown()

        assert not context.is_initialized
        assert not context.capture.is_running
        channel.error("not captured")
        assert len(context.store) == 0

        context.restart()
        assert context.capture.is_running

    def test_runtime_hooks_installed(self, channel):
        """Test that runtime hooks follow the settings flag."""
        settings = MonitoringSettings(storage_backend="memory", install_runtime_hooks=True)
        monitoring = MonitoringContext(
            settings=settings, kv_store=InMemoryKeyValueStore(), channel=channel
        )
        monitoring.initialize()
        try:
            assert monitoring.hooks.installed
            assert monitoring.get_health()["components"]["runtime_hooks"] is True
        finally:
            monitoring.shutdown()
        assert not monitoring.hooks.installed


class TestHealth:
    """Tests for health classification."""

    @pytest.mark.parametrize(
        "count,status",
        [(0, "healthy"), (5, "healthy"), (6, "warning"), (10, "warning"), (11, "critical")],
    )
    def test_thresholds(self, count, status):
        assert classify_health(count).value == status

    def test_counts_only_recent_window(self, context):
        """Test that only failures from the last five minutes count."""
        for i in range(8):
            context.report_failure(_event(f"old {i}", minutes_ago=10))
        for i in range(6):
            context.report_failure(_event(f"recent {i}"))

        health = context.get_health()

        assert health["recent_errors"] == 6
        assert health["status"] == "warning"
        assert health["total_errors"] == 14

    def test_component_flags(self, context):
        context.initialize()
        components = context.get_health()["components"]

        assert components["failure_store"] is True
        assert components["capture"] is True
        assert components["remediation_registry"] is True


class TestBoundariesAndReport:
    """Tests for boundary creation and reporting."""

    @pytest.mark.asyncio
    async def test_boundary_uses_settings(self, context):
        """Test that boundaries use the configured delays."""
        boundary = context.create_boundary("checkout")
        assert context.create_boundary("checkout") is boundary

        await boundary.on_failure(RuntimeError("Cannot find module 'lodash'"))

        assert boundary.state.scheduled_delay == pytest.approx(0.02)
        assert context.get_health()["boundaries"] == {"checkout": RecoveryPhase.RECOVERED.value}
        boundary.close()

    @pytest.mark.asyncio
    async def test_apply_fix_passthrough(self, context):
        event = _event("Cannot find module 'lodash'")
        rule = context.find_match(event)

        assert rule.id == "missing-dependency"
        assert await context.apply_fix(rule, event) is False

    def test_generate_report(self, context, channel):
        """Test the full report is JSON-serializable and complete."""
        context.initialize()
        channel.warning("slow")
        context.report_failure(_event("boom"))

        report = json.loads(context.generate_report_json())

        assert set(report) >= {"health", "failures", "remediation", "capture", "rules"}
        assert report["failures"]["total_errors"] == 1
        assert report["capture"]["total_messages"] == 1
        assert {"id", "name", "category", "priority"} <= set(report["rules"][0])

    def test_get_boundary(self, context):
        assert context.get_boundary("checkout") is None

        boundary = context.create_boundary("checkout")
        assert context.get_boundary("checkout") is boundary

        boundary.close()
        assert context.create_boundary("checkout") is not boundary

    def test_register_rule_takes_priority(self, context):
        """Test that a registered high-priority rule wins over built-ins."""
        context.register_rule(
            RemediationRule(
                id="custom-module",
                name="Custom",
                matcher="Cannot find module",
                action=advisory_action("Vendor the module"),
                priority=9,
            )
        )

        assert context.find_match(_event("Cannot find module 'x'")).id == "custom-module"

    def test_subscribe_passthrough(self, context):
        received = []
        subscription = context.subscribe(received.append)

        context.report_failure(_event("x"))
        subscription.cancel()
        context.report_failure(_event("y"))

        assert [e.message for e in received] == ["x"]
        assert context.get_stats()["total_errors"] == 2


def test_default_channel_is_root_logger(settings):
    """Test that the root logger is intercepted when no channel is given."""
    monitoring = MonitoringContext(settings=settings, kv_store=InMemoryKeyValueStore())
    assert monitoring.capture.channel is logging.getLogger()


def test_named_channel_from_settings():
    name = f"selfheal.app.{uuid.uuid4().hex}"
    settings = MonitoringSettings(storage_backend="memory", capture_channel=name)
    monitoring = MonitoringContext(settings=settings, kv_store=InMemoryKeyValueStore())
    assert monitoring.capture.channel.name == name
