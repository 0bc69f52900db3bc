"""Diagnostic-output capture layer over a stdlib logger."""

import json
import logging
import re
import sys
import threading
import traceback
from collections import Counter
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator

from selfheal.constants import CaptureDefaults
from selfheal.core.enums import CaptureLevel, FailureCategory
from selfheal.core.exceptions import CaptureError
from selfheal.monitoring.failure_store import FailureStore
from selfheal.monitoring.models import CaptureRecord, FailureEvent, utc_now
from selfheal.monitoring.remediation.matchers import to_matcher
from selfheal.monitoring.subscriptions import Subscription, SubscriptionRegistry
from selfheal.utils.prometheus_metrics import MetricsHelper

CaptureListener = Callable[[CaptureRecord], None]

# Logger method shadowed for each capture level
_LEVEL_METHODS: Dict[CaptureLevel, str] = {
    CaptureLevel.ERROR: "error",
    CaptureLevel.WARN: "warning",
    CaptureLevel.INFO: "info",
    CaptureLevel.DEBUG: "debug",
}


def _default_filters() -> List[Any]:
    return [re.compile(p) for p in CaptureDefaults.NOISE_PATTERNS]


class CaptureConfig(BaseModel):
    """Capture layer configuration."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    capture_errors: bool = True
    capture_warnings: bool = True
    capture_info: bool = False
    capture_debug: bool = False
    filter_patterns: List[Any] = Field(
        default_factory=_default_filters,
        description="Literal strings or compiled regexes; matching messages are dropped",
    )
    max_captured_messages: int = Field(default=CaptureDefaults.MAX_CAPTURED_MESSAGES, ge=1)
    preserve_original: bool = True
    include_child_loggers: bool = Field(
        default=True,
        description="Also capture records propagated to the channel from descendant loggers",
    )

    @field_validator("filter_patterns", mode="before")
    @classmethod
    def coerce_filters(cls, v: Any) -> List[Any]:
        """Turn strings and regexes into matchers."""
        if v is None:
            return []
        return [to_matcher(p) for p in v]

    def enabled_levels(self) -> List[CaptureLevel]:
        flags = {
            CaptureLevel.ERROR: self.capture_errors,
            CaptureLevel.WARN: self.capture_warnings,
            CaptureLevel.INFO: self.capture_info,
            CaptureLevel.DEBUG: self.capture_debug,
        }
        return [level for level, enabled in flags.items() if enabled]


def _stringify(value: Any) -> str:
    if isinstance(value, (dict, list)):
        try:
            return json.dumps(value, indent=2, default=str)
        except (TypeError, ValueError):
            return str(value)
    if isinstance(value, BaseException):
        return str(value) or type(value).__name__
    return str(value)


def render_message(msg: Any, args: Tuple[Any, ...]) -> str:
    """
    Render a logging call the way the logger would, or fall back to joining.

    Args:
        msg: First positional argument of the logging call
        args: Remaining positional arguments

    Returns:
        Rendered message text
    """
    if not args:
        return _stringify(msg)
    if isinstance(msg, str):
        # logging treats a single non-empty mapping as named format arguments
        fmt_args: Any = args
        if len(args) == 1 and isinstance(args[0], Mapping) and args[0]:
            fmt_args = args[0]
        try:
            return msg % fmt_args
        except (TypeError, ValueError, KeyError):
            pass
    return " ".join(_stringify(part) for part in (msg, *args))


def _find_exception(
    msg: Any, args: Tuple[Any, ...], kwargs: Dict[str, Any]
) -> Optional[BaseException]:
    exc_info = kwargs.get("exc_info")
    if isinstance(exc_info, BaseException):
        return exc_info
    if isinstance(exc_info, tuple) and len(exc_info) == 3 and exc_info[1] is not None:
        return exc_info[1]
    if exc_info:
        current = sys.exc_info()[1]
        if current is not None:
            return current
    for value in (msg, *args):
        if isinstance(value, BaseException):
            return value
    return None


def _level_for(levelno: int) -> CaptureLevel:
    if levelno >= logging.ERROR:
        return CaptureLevel.ERROR
    if levelno >= logging.WARNING:
        return CaptureLevel.WARN
    if levelno >= logging.INFO:
        return CaptureLevel.INFO
    return CaptureLevel.DEBUG


def _record_args(record: logging.LogRecord) -> Tuple[Any, ...]:
    if record.args is None:
        return ()
    if isinstance(record.args, tuple):
        return record.args
    return (record.args,)


def _has_other_handlers(record: logging.LogRecord, own: logging.Handler) -> bool:
    """Whether a handler other than ``own`` would emit the record."""
    current: Optional[logging.Logger] = logging.getLogger(record.name)
    while current is not None:
        for handler in current.handlers:
            if handler is not own and record.levelno >= handler.level:
                return True
        if not current.propagate:
            break
        current = current.parent
    return False


class _ChannelHandler(logging.Handler):
    """Feeds records propagated to the channel into the interceptor."""

    def __init__(self, interceptor: "OutputInterceptor"):
        super().__init__(level=logging.NOTSET)
        self._interceptor = interceptor

    def emit(self, record: logging.LogRecord) -> None:
        # Installing a handler disables logging's last-resort output; keep it
        last_resort = logging.lastResort
        if (
            last_resort is not None
            and record.levelno >= last_resort.level
            and not _has_other_handlers(record, self)
        ):
            last_resort.handle(record)
        self._interceptor._handle_record(record)


class OutputInterceptor:
    """
    Intercepts a logger's leveled methods and forwards errors to the failure store.

    Calls on the channel itself are intercepted by shadowing its methods;
    records propagated from descendant loggers are picked up by a handler on
    the channel. Original output is preserved unless configured otherwise
    (propagated records are always emitted). Processing problems are written
    through the untouched ``error`` method and never re-enter the pipeline.
    """

    def __init__(self, store: FailureStore, channel: Optional[logging.Logger] = None):
        """
        Initialize output interceptor.

        Args:
            store: Failure store receiving error-level events
            channel: Logger to intercept (root logger when omitted)
        """
        self.store = store
        self.channel = channel if channel is not None else logging.getLogger()
        self._config = CaptureConfig()
        self._running = False
        # Per-thread flags: inside an original call, inside processing
        self._local = threading.local()
        self._handler: Optional[_ChannelHandler] = None
        self._messages: List[CaptureRecord] = []
        self._listeners: SubscriptionRegistry[CaptureRecord] = SubscriptionRegistry()
        # method name -> (original bound method, whether the channel owned an attribute)
        self._originals: Dict[str, Tuple[Callable[..., None], bool]] = {}

    @property
    def is_running(self) -> bool:
        return self._running

    def _flag(self, name: str) -> bool:
        return getattr(self._local, name, False)

    def _original_error(self, message: str) -> None:
        original = self._originals.get("error")
        if original is not None:
            original[0](message)
        else:
            self.channel.error(message)

    def start(self, config: Optional[Union[CaptureConfig, Dict[str, Any]]] = None) -> None:
        """
        Begin intercepting enabled levels.

        Args:
            config: Partial configuration merged onto the current one

        Raises:
            pydantic.ValidationError: If the merged configuration is invalid
        """
        if self._running:
            logger.warning("Output interceptor is already running")
            return

        if config is not None:
            self._config = self._merge(config)

        for level in self._config.enabled_levels():
            name = _LEVEL_METHODS[level]
            owned = name in vars(self.channel)
            original = getattr(self.channel, name)
            self._originals[name] = (original, owned)
            setattr(self.channel, name, self._make_interceptor(level, original))

        if self._config.include_child_loggers:
            self._handler = _ChannelHandler(self)
            self.channel.addHandler(self._handler)

        self._running = True
        levels = ", ".join(level.value for level in self._config.enabled_levels())
        logger.info(f"Output interceptor started on '{self.channel.name}' ({levels})")

    def stop(self) -> None:
        """Restore the original logger methods and remove the channel handler."""
        if not self._running:
            return

        for name, (original, owned) in self._originals.items():
            if owned:
                setattr(self.channel, name, original)
            else:
                try:
                    delattr(self.channel, name)
                except AttributeError:
                    pass
        self._originals = {}
        if self._handler is not None:
            self.channel.removeHandler(self._handler)
            self._handler = None
        self._running = False
        logger.info("Output interceptor stopped")

    def _merge(self, config: Union[CaptureConfig, Dict[str, Any]]) -> CaptureConfig:
        if isinstance(config, CaptureConfig):
            changes = {name: getattr(config, name) for name in config.model_fields_set}
        else:
            changes = dict(config)
        return CaptureConfig.model_validate({**dict(self._config), **changes})

    def _make_interceptor(
        self, level: CaptureLevel, original: Callable[..., None]
    ) -> Callable[..., None]:
        def intercept(msg: Any, *args: Any, **kwargs: Any) -> None:
            if self._config.preserve_original:
                call_kwargs = dict(kwargs)
                # Attribute the record to the real caller, not this wrapper
                call_kwargs["stacklevel"] = call_kwargs.get("stacklevel", 1) + 1
                was_inside = self._flag("in_original")
                self._local.in_original = True
                try:
                    original(msg, *args, **call_kwargs)
                finally:
                    self._local.in_original = was_inside

            if self._flag("processing"):
                return

            self._local.processing = True
            try:
                self._process(level, msg, args, kwargs)
            except Exception as e:
                error = CaptureError(f"Error in output interceptor: {e}", level=level.value)
                self._original_error(error.message)
            finally:
                self._local.processing = False

        return intercept

    def _process(
        self, level: CaptureLevel, msg: Any, args: Tuple[Any, ...], kwargs: Dict[str, Any]
    ) -> None:
        message = render_message(msg, args)
        if any(matcher.matches_text(message) for matcher in self._config.filter_patterns):
            return

        exception = _find_exception(msg, args, kwargs) if level == CaptureLevel.ERROR else None
        stack: Optional[str] = None
        if level == CaptureLevel.ERROR:
            if exception is not None and exception.__traceback__ is not None:
                stack = "".join(
                    traceback.format_exception(type(exception), exception, exception.__traceback__)
                )
            else:
                # Drop the intercept and _process frames
                stack = "".join(traceback.format_stack()[:-2])

        self._record(level, message, [msg, *args], exception, stack, self.channel.name)

    def _handle_record(self, record: logging.LogRecord) -> None:
        """Capture a record that reached the channel without passing a shadowed method."""
        if self._flag("in_original") or self._flag("processing"):
            return
        level = _level_for(record.levelno)
        if level not in self._config.enabled_levels():
            return

        self._local.processing = True
        try:
            self._process_record(level, record)
        except Exception as e:
            error = CaptureError(f"Error in output interceptor: {e}", level=level.value)
            self._original_error(error.message)
        finally:
            self._local.processing = False

    def _process_record(self, level: CaptureLevel, record: logging.LogRecord) -> None:
        args = _record_args(record)
        try:
            message = record.getMessage()
        except (TypeError, ValueError, KeyError):
            message = render_message(record.msg, args)
        if any(matcher.matches_text(message) for matcher in self._config.filter_patterns):
            return

        exception: Optional[BaseException] = None
        stack: Optional[str] = None
        if level == CaptureLevel.ERROR:
            if record.exc_info and record.exc_info[1] is not None:
                exception = record.exc_info[1]
                stack = "".join(traceback.format_exception(*record.exc_info))
            elif record.stack_info:
                stack = record.stack_info
            else:
                stack = f'  File "{record.pathname}", line {record.lineno}, in {record.funcName}\n'

        self._record(level, message, [record.msg, *args], exception, stack, record.name)

    def _record(
        self,
        level: CaptureLevel,
        message: str,
        raw_args: List[Any],
        exception: Optional[BaseException],
        stack: Optional[str],
        logger_name: str,
    ) -> None:
        record = CaptureRecord(
            level=level,
            message=message,
            raw_args=raw_args,
            timestamp=utc_now(),
            stack_trace=stack,
        )
        self._messages.insert(0, record)
        del self._messages[self._config.max_captured_messages:]
        MetricsHelper.record_capture(level.value)

        for listener in self._listeners.snapshot():
            try:
                listener(record)
            except Exception as e:
                self._original_error(f"Error in capture listener: {e}")

        if level == CaptureLevel.ERROR:
            context = {"logger": logger_name, "log_message": message}
            if exception is not None:
                event = FailureEvent.from_exception(
                    exception, FailureCategory.DIAGNOSTIC_OUTPUT, context=context
                )
            else:
                event = FailureEvent(
                    category=FailureCategory.DIAGNOSTIC_OUTPUT,
                    message=message,
                    stack_trace=stack,
                    context=context,
                )
            self.store.report(event)

    def subscribe(self, listener: CaptureListener) -> Subscription:
        """
        Register a listener called for every captured record.

        Returns:
            Subscription handle; calling it unsubscribes
        """
        return self._listeners.subscribe(listener)

    def get_captured_messages(self, limit: Optional[int] = None) -> List[CaptureRecord]:
        """Captured records, newest first."""
        return self._messages[:limit] if limit is not None else list(self._messages)

    def get_messages_by_level(
        self, level: CaptureLevel, limit: Optional[int] = None
    ) -> List[CaptureRecord]:
        level = CaptureLevel(level)
        matching = [m for m in self._messages if m.level == level]
        return matching[:limit] if limit is not None else matching

    def clear_captured_messages(self) -> None:
        self._messages = []

    def update_config(self, **changes: Any) -> None:
        """Merge configuration changes, re-intercepting if running."""
        was_running = self._running
        if was_running:
            self.stop()
        self._config = self._merge(changes)
        if was_running:
            self.start()

    def get_config(self) -> CaptureConfig:
        return self._config.model_copy()

    def get_stats(self) -> Dict[str, Any]:
        """Capture totals, per-level counts and the most recent records."""
        by_level = Counter(m.level.value for m in self._messages)
        return {
            "total_messages": len(self._messages),
            "messages_by_level": {level: by_level.get(level, 0) for level in CaptureLevel.values()},
            "recent_messages": [
                m.to_dict() for m in self._messages[: CaptureDefaults.RECENT_MESSAGES_LIMIT]
            ],
            "is_running": self._running,
        }

    def search_messages(self, query: str) -> List[CaptureRecord]:
        """Case-insensitive substring search over message and stack."""
        needle = query.lower()
        return [
            m
            for m in self._messages
            if needle in m.message.lower() or (m.stack_trace and needle in m.stack_trace.lower())
        ]

    def export_messages(self) -> str:
        """Serialize captured records and statistics as JSON."""
        return json.dumps(
            {
                "exported_at": utc_now().isoformat(),
                "config": {
                    "capture_errors": self._config.capture_errors,
                    "capture_warnings": self._config.capture_warnings,
                    "capture_info": self._config.capture_info,
                    "capture_debug": self._config.capture_debug,
                    "filter_patterns": [m.to_dict() for m in self._config.filter_patterns],
                    "max_captured_messages": self._config.max_captured_messages,
                    "preserve_original": self._config.preserve_original,
                    "include_child_loggers": self._config.include_child_loggers,
                },
                "messages": [m.to_dict() for m in self._messages],
                "stats": self.get_stats(),
            },
            indent=2,
        )
