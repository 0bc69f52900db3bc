"""Tests for the diagnostic-output capture layer."""

import json
import logging
import re
import uuid
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from selfheal.core.enums import CaptureLevel, FailureCategory
from selfheal.monitoring.capture import CaptureConfig, OutputInterceptor, render_message


@pytest.fixture
def interceptor(store, channel):
    """Interceptor over an isolated logger, stopped after the test."""
    capture = OutputInterceptor(store, channel)
    yield capture
    capture.stop()


class TestRenderMessage:
    """Tests for message rendering."""

    def test_percent_format(self):
        assert render_message("module %s missing", ("lodash",)) == "module lodash missing"

    def test_mapping_argument(self):
        assert render_message("%(name)s failed", ({"name": "job"},)) == "job failed"

    def test_fallback_joins_arguments(self):
        """Test that arguments are stringified and joined when formatting fails."""
        rendered = render_message("payload", ({"a": 1}, ValueError("bad"), 3))
        assert rendered == 'payload {\n  "a": 1\n} bad 3'

    def test_exception_only(self):
        assert render_message(KeyError("k"), ()) == "'k'"


class TestCaptureConfig:
    """Tests for capture configuration."""

    def test_defaults(self):
        config = CaptureConfig()

        assert config.enabled_levels() == [CaptureLevel.ERROR, CaptureLevel.WARN]
        assert config.max_captured_messages == 200
        assert config.preserve_original is True
        assert config.filter_patterns

    def test_filter_patterns_coerced(self):
        config = CaptureConfig(filter_patterns=["literal", re.compile(r"\d+ ms")])

        assert config.filter_patterns[0].matches_text("a literal b")
        assert config.filter_patterns[1].matches_text("took 15 ms")

    def test_invalid_config(self):
        with pytest.raises(ValidationError):
            CaptureConfig(max_captured_messages=0)


class TestInterception:
    """Tests for intercepting logger calls."""

    def test_preserves_original_output(self, interceptor, channel):
        """Test that the original handler still receives the message."""
        interceptor.start()
        channel.warning("disk at %d%%", 91)

        assert channel.handler.messages == ["disk at 91%"]
        assert interceptor.get_captured_messages()[0].message == "disk at 91%"

    def test_error_forwarded_to_store(self, interceptor, channel, store):
        """Test that error-level output becomes a diagnostic_output failure."""
        interceptor.start()
        channel.error("Cannot find module %s", "'lodash'")

        event = store.events[0]
        assert event.category == FailureCategory.DIAGNOSTIC_OUTPUT
        assert event.message == "Cannot find module 'lodash'"
        assert event.stack_trace
        assert event.context["logger"] == channel.name

    def test_warning_not_forwarded(self, interceptor, channel, store):
        """Test that warnings are captured but not reported as failures."""
        interceptor.start()
        channel.warning("slow query")

        assert len(interceptor.get_captured_messages()) == 1
        assert len(store) == 0

    def test_exception_argument_used(self, interceptor, channel, store):
        """Test that logged exceptions keep their own message and traceback."""
        interceptor.start()
        try:
            raise ValueError("bad input")
        except ValueError:
            channel.exception("request failed")

        event = store.events[0]
        assert event.message == "bad input"
        assert "ValueError" in event.stack_trace
        assert event.context["log_message"] == "request failed"
        assert len(store) == 1

    def test_filtered_message_not_captured_or_forwarded(self, interceptor, channel, store):
        """Test that messages matching a filter are dropped."""
        interceptor.start({"filter_patterns": ["noisy-warning"]})
        channel.error("this is a noisy-warning from a library")

        assert interceptor.get_captured_messages() == []
        assert len(store) == 0
        assert channel.handler.messages == ["this is a noisy-warning from a library"]

    def test_disabled_levels_untouched(self, interceptor, channel):
        """Test that info and debug are not intercepted by default."""
        interceptor.start()
        channel.info("hello")

        assert "info" not in vars(channel)
        assert interceptor.get_captured_messages() == []

    def test_preserve_original_false(self, interceptor, channel):
        """Test that original output can be suppressed."""
        interceptor.start({"preserve_original": False})
        channel.warning("quiet")

        assert channel.handler.messages == []
        assert interceptor.get_captured_messages()[0].message == "quiet"

    def test_buffer_is_capped_newest_first(self, interceptor, channel):
        """Test the capture buffer capacity."""
        interceptor.start({"max_captured_messages": 2})
        for i in range(3):
            channel.warning(f"w{i}")

        assert [m.message for m in interceptor.get_captured_messages()] == ["w2", "w1"]


class TestChildLoggers:
    """Tests for records propagated from descendant loggers."""

    def test_child_error_forwarded(self, interceptor, channel, store):
        """Test that errors logged on a child logger are captured and reported."""
        interceptor.start()
        child = logging.getLogger(f"{channel.name}.db")

        child.error("connection pool %s", "exhausted")

        assert channel.handler.messages == ["connection pool exhausted"]
        assert interceptor.get_captured_messages()[0].message == "connection pool exhausted"
        event = store.events[0]
        assert event.message == "connection pool exhausted"
        assert event.context["logger"] == child.name
        assert "test_child_error_forwarded" in event.stack_trace
        assert len(store) == 1

    def test_child_exception_keeps_traceback(self, interceptor, channel, store):
        interceptor.start()
        child = logging.getLogger(f"{channel.name}.http")
        try:
            raise ConnectionError("refused")
        except ConnectionError:
            child.exception("upstream call failed")

        event = store.events[0]
        assert event.message == "refused"
        assert "ConnectionError" in event.stack_trace
        assert event.context["log_message"] == "upstream call failed"

    def test_child_levels_follow_config(self, interceptor, channel, store):
        """Test that child warnings are captured but not reported, and info is ignored."""
        interceptor.start()
        child = logging.getLogger(f"{channel.name}.cache")

        child.warning("cache miss")
        child.info("cache warm")

        assert [m.message for m in interceptor.get_captured_messages()] == ["cache miss"]
        assert len(store) == 0

    def test_child_loggers_can_be_excluded(self, interceptor, channel, store):
        interceptor.start({"include_child_loggers": False})

        logging.getLogger(f"{channel.name}.db").error("not captured")

        assert interceptor.get_captured_messages() == []
        assert len(store) == 0
        assert channel.handler.messages == ["not captured"]

    def test_root_channel_sees_named_loggers(self, store):
        """Test that the default root channel captures application loggers."""
        interceptor = OutputInterceptor(store)
        interceptor.start({"filter_patterns": []})
        try:
            logging.getLogger(f"myapp.{uuid.uuid4().hex}").error("connection pool exhausted")
        finally:
            interceptor.stop()

        assert len(store) == 1
        assert store.events[0].message == "connection pool exhausted"

    def test_last_resort_output_kept(self, store, capsys):
        """Test that a channel without handlers still prints through logging's fallback."""
        bare = logging.getLogger(f"selfheal.bare.{uuid.uuid4().hex}")
        bare.propagate = False
        interceptor = OutputInterceptor(store, bare)
        interceptor.start()
        try:
            logging.getLogger(f"{bare.name}.child").error("printed anyway")
        finally:
            interceptor.stop()

        assert "printed anyway" in capsys.readouterr().err
        assert len(store) == 1


class TestLifecycle:
    """Tests for start/stop behavior."""

    def test_start_is_idempotent(self, interceptor, channel):
        """Test that a second start does not double-wrap."""
        interceptor.start()
        wrapped = channel.error
        interceptor.start()

        assert channel.error is wrapped
        channel.warning("once")
        assert len(interceptor.get_captured_messages()) == 1

    def test_stop_restores_methods(self, interceptor, channel):
        """Test that stop removes the interceptors."""
        interceptor.start()
        interceptor.stop()

        assert "error" not in vars(channel)
        assert "warning" not in vars(channel)
        assert channel.handlers == [channel.handler]
        assert not interceptor.is_running
        channel.warning("after stop")
        assert interceptor.get_captured_messages() == []

    def test_stop_when_not_running(self, interceptor):
        interceptor.stop()
        assert not interceptor.is_running

    def test_update_config_restarts(self, interceptor, channel):
        """Test that configuration changes take effect while running."""
        interceptor.start()
        interceptor.update_config(capture_info=True)

        channel.info("now visible")

        assert interceptor.is_running
        assert interceptor.get_config().capture_info is True
        assert interceptor.get_captured_messages()[0].level == CaptureLevel.INFO


class TestContainment:
    """Tests that capture problems never re-enter the pipeline."""

    def test_processing_error_reported_via_original(self, channel):
        """Test that a failing store is reported through the untouched error method."""
        store = MagicMock()
        store.report.side_effect = RuntimeError("store down")
        interceptor = OutputInterceptor(store, channel)
        interceptor.start()
        try:
            channel.error("first failure")
        finally:
            interceptor.stop()

        store.report.assert_called_once()
        assert channel.handler.messages == [
            "first failure",
            "Error in output interceptor: store down",
        ]

    def test_reentrant_logging_not_captured(self, interceptor, channel, store):
        """Test that logging from a listener does not loop back into capture."""
        interceptor.start()
        store.subscribe(lambda event: channel.error("listener saw %s", event.message))

        channel.error("outer")

        assert [e.message for e in store.events] == ["outer"]
        assert channel.handler.messages == ["outer", "listener saw outer"]

    def test_raising_capture_listener(self, interceptor, channel, store):
        """Test that a failing capture listener is contained."""
        interceptor.start()

        def broken(record):
            raise RuntimeError("listener bug")

        interceptor.subscribe(broken)
        channel.error("still reported")

        assert len(store) == 1
        assert "Error in capture listener: listener bug" in channel.handler.messages


class TestQueries:
    """Tests for capture statistics and export."""

    def test_stats_search_and_export(self, interceptor, channel):
        interceptor.start({"capture_debug": True})
        channel.warning("cache miss")
        channel.debug("cache warmup")
        channel.error("cache exploded")

        stats = interceptor.get_stats()
        assert stats["total_messages"] == 3
        assert stats["messages_by_level"] == {"error": 1, "warn": 1, "info": 0, "debug": 1}
        assert stats["is_running"] is True
        assert len(interceptor.search_messages("CACHE")) == 3
        assert len(interceptor.get_messages_by_level(CaptureLevel.WARN)) == 1

        data = json.loads(interceptor.export_messages())
        assert len(data["messages"]) == 3
        assert data["config"]["capture_debug"] is True

        interceptor.clear_captured_messages()
        assert interceptor.get_captured_messages() == []
