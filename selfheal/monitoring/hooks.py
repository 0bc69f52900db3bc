"""Chains host runtime failure hooks into the failure store."""

import asyncio
import sys
import threading
from typing import Any, Callable, Dict, Optional

from loguru import logger

from selfheal.core.enums import FailureCategory
from selfheal.monitoring.models import FailureEvent

ReportCallback = Callable[[FailureEvent], Any]
LoopExceptionHandler = Callable[[asyncio.AbstractEventLoop, Dict[str, Any]], Any]


class RuntimeHooks:
    """
    Subscribes to uncaught exceptions and unobserved asyncio failures.

    Hooks are chained: the previously installed hook still runs after the
    failure is reported, so host behavior is unchanged.
    """

    def __init__(self) -> None:
        self._report: Optional[ReportCallback] = None
        self._prev_excepthook: Optional[Callable[..., Any]] = None
        self._prev_threading_hook: Optional[Callable[..., Any]] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._prev_loop_handler: Optional[LoopExceptionHandler] = None
        self._installed = False

    @property
    def installed(self) -> bool:
        return self._installed

    def install(self, report: ReportCallback) -> None:
        """
        Chain ``sys.excepthook`` and ``threading.excepthook``.

        Args:
            report: Called with a runtime_error FailureEvent for each uncaught exception
        """
        if self._installed:
            logger.warning("Runtime hooks are already installed")
            return

        self._report = report
        self._prev_excepthook = sys.excepthook
        self._prev_threading_hook = threading.excepthook
        sys.excepthook = self._excepthook
        threading.excepthook = self._threading_excepthook
        self._installed = True
        logger.debug("Runtime failure hooks installed")

    def attach_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """
        Install an exception handler on an event loop.

        Unretrieved task exceptions and other loop-level failures are reported
        as rejected_operation events.
        """
        if self._report is None:
            raise RuntimeError("install() must be called before attach_loop()")
        if self._loop is loop:
            return
        if self._loop is not None:
            self._detach_loop()

        self._loop = loop
        self._prev_loop_handler = loop.get_exception_handler()
        loop.set_exception_handler(self._loop_exception_handler)

    def uninstall(self) -> None:
        """Restore every hook that was replaced."""
        if not self._installed:
            return

        if sys.excepthook == self._excepthook and self._prev_excepthook is not None:
            sys.excepthook = self._prev_excepthook
        if threading.excepthook == self._threading_excepthook and self._prev_threading_hook:
            threading.excepthook = self._prev_threading_hook
        self._detach_loop()

        self._report = None
        self._prev_excepthook = None
        self._prev_threading_hook = None
        self._installed = False
        logger.debug("Runtime failure hooks removed")

    def _detach_loop(self) -> None:
        if self._loop is None:
            return
        if not self._loop.is_closed():
            self._loop.set_exception_handler(self._prev_loop_handler)
        self._loop = None
        self._prev_loop_handler = None

    def _emit(self, event: FailureEvent) -> None:
        if self._report is None:
            return
        try:
            self._report(event)
        except Exception as e:
            logger.opt(exception=e).warning("Failed to report runtime failure")

    def _excepthook(self, exc_type, exc_value, exc_traceback) -> None:
        if exc_value is not None and not issubclass(exc_type, KeyboardInterrupt):
            self._emit(
                FailureEvent.from_exception(
                    exc_value.with_traceback(exc_traceback),
                    FailureCategory.RUNTIME_ERROR,
                    context=self._location_context(exc_type, exc_traceback),
                )
            )
        if self._prev_excepthook is not None:
            self._prev_excepthook(exc_type, exc_value, exc_traceback)

    def _threading_excepthook(self, args: Any) -> None:
        if args.exc_value is not None and not issubclass(args.exc_type, SystemExit):
            context = self._location_context(args.exc_type, args.exc_traceback)
            context["thread"] = args.thread.name if args.thread is not None else None
            self._emit(
                FailureEvent.from_exception(
                    args.exc_value.with_traceback(args.exc_traceback),
                    FailureCategory.RUNTIME_ERROR,
                    context=context,
                )
            )
        if self._prev_threading_hook is not None:
            self._prev_threading_hook(args)

    def _loop_exception_handler(
        self, loop: asyncio.AbstractEventLoop, context: Dict[str, Any]
    ) -> None:
        exception = context.get("exception")
        message = context.get("message") or "Unhandled asyncio failure"
        event_context: Dict[str, Any] = {"asyncio_message": message}
        for key in ("task", "future", "handle"):
            if key in context:
                event_context[key] = repr(context[key])

        if isinstance(exception, BaseException):
            event = FailureEvent.from_exception(
                exception, FailureCategory.REJECTED_OPERATION, context=event_context
            )
        else:
            event = FailureEvent(
                category=FailureCategory.REJECTED_OPERATION,
                message=str(message),
                context=event_context,
            )
        self._emit(event)

        if self._prev_loop_handler is not None:
            self._prev_loop_handler(loop, context)
        else:
            loop.default_exception_handler(context)

    @staticmethod
    def _location_context(exc_type, exc_traceback) -> Dict[str, Any]:
        context: Dict[str, Any] = {"exception_type": getattr(exc_type, "__name__", str(exc_type))}
        tb = exc_traceback
        while tb is not None and tb.tb_next is not None:
            tb = tb.tb_next
        if tb is not None:
            context["filename"] = tb.tb_frame.f_code.co_filename
            context["lineno"] = tb.tb_lineno
        return context
