"""Per-boundary recovery state machine with bounded, backed-off retries."""

import asyncio
from collections import deque
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Deque, Dict, List, Optional

from loguru import logger

from selfheal.constants import LogEmoji, RecoveryConfig
from selfheal.core.enums import FailureCategory, RecoveryPhase
from selfheal.monitoring.failure_store import FailureStore
from selfheal.monitoring.models import FailureEvent, utc_now
from selfheal.monitoring.remediation.registry import RemediationRegistry
from selfheal.utils.prometheus_metrics import MetricsHelper

BOUNDARY_KEY = "boundary_id"


class CancellableTimer:
    """One-shot callback on the event loop that can be cancelled."""

    def __init__(self, loop: asyncio.AbstractEventLoop, delay: float, callback: Callable[[], None]):
        self.delay = delay
        self._callback = callback
        self._fired = False
        self._handle: Optional[asyncio.TimerHandle] = loop.call_later(delay, self._fire)

    def _fire(self) -> None:
        self._handle = None
        self._fired = True
        self._callback()

    @property
    def active(self) -> bool:
        """True while the callback is still pending."""
        return self._handle is not None

    @property
    def fired(self) -> bool:
        return self._fired

    def cancel(self) -> None:
        """Cancel the pending callback. Safe to call repeatedly."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


@dataclass
class RecoveryState:
    """Recovery bookkeeping of one boundary."""

    boundary_id: str
    max_attempts: int = RecoveryConfig.MAX_ATTEMPTS
    attempt_count: int = 0
    phase: RecoveryPhase = RecoveryPhase.STABLE
    last_failure: Optional[FailureEvent] = None
    applied_fix_id: Optional[str] = None
    scheduled_delay: Optional[float] = None
    # Most recent phases entered
    history: Deque[RecoveryPhase] = field(
        default_factory=lambda: deque(maxlen=RecoveryConfig.PHASE_HISTORY_LIMIT)
    )

    @property
    def exhausted(self) -> bool:
        return self.phase == RecoveryPhase.EXHAUSTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "boundary_id": self.boundary_id,
            "phase": self.phase.value,
            "attempt_count": self.attempt_count,
            "max_attempts": self.max_attempts,
            "last_failure": self.last_failure.to_dict() if self.last_failure else None,
            "applied_fix_id": self.applied_fix_id,
            "scheduled_delay": self.scheduled_delay,
        }


TransitionListener = Callable[[RecoveryState, Optional[str]], None]


class RecoveryOrchestrator:
    """
    Drives one failure boundary through Stable, Failed, Recovering and Recovered.

    Failures are reported to the store with the boundary id in their context;
    the orchestrator's store listener reacts to those events, asks the
    registry for a fix and schedules a reset after
    ``base_delay + attempt_count * backoff_step`` seconds. Once
    ``attempt_count`` has reached ``max_attempts`` a new failure moves the
    boundary to Exhausted until ``manual_reset()``.
    """

    def __init__(
        self,
        boundary_id: str,
        store: FailureStore,
        registry: RemediationRegistry,
        max_attempts: int = RecoveryConfig.MAX_ATTEMPTS,
        base_delay: float = RecoveryConfig.BASE_DELAY_SECONDS,
        backoff_step: float = RecoveryConfig.BACKOFF_STEP_SECONDS,
        on_recovered: Optional[Callable[[RecoveryState], Any]] = None,
        fix_context: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize recovery orchestrator.

        Args:
            boundary_id: Identifier stamped on every failure of this boundary
            store: Shared failure store
            registry: Remediation registry queried on each failure
            max_attempts: Recovery cycles allowed before exhaustion
            base_delay: Seconds before the first reset
            backoff_step: Seconds added per previous attempt
            on_recovered: Called after each reset (re-run the guarded work here)
            fix_context: Passed to remediation actions (e.g. a ``retry`` callable)
        """
        self.boundary_id = boundary_id
        self.store = store
        self.registry = registry
        self.base_delay = base_delay
        self.backoff_step = backoff_step
        self.on_recovered = on_recovered
        self.fix_context = fix_context
        self.state = RecoveryState(boundary_id=boundary_id, max_attempts=max_attempts)

        self._timer: Optional[CancellableTimer] = None
        self._last_task: Optional["asyncio.Task[None]"] = None
        self._transition_listeners: List[TransitionListener] = []
        self._closed = False
        self._subscription = store.subscribe(self._on_store_event)

    @property
    def phase(self) -> RecoveryPhase:
        return self.state.phase

    @property
    def attempt_count(self) -> int:
        return self.state.attempt_count

    @property
    def phase_history(self) -> List[RecoveryPhase]:
        """Most recent phases entered, oldest first."""
        return list(self.state.history)

    @property
    def reset_pending(self) -> bool:
        return self._timer is not None and self._timer.active

    @property
    def closed(self) -> bool:
        return self._closed

    def add_transition_listener(self, listener: TransitionListener) -> None:
        """Register a callback receiving the state and candidate rule id on every transition."""
        self._transition_listeners.append(listener)

    def _transition(self, phase: RecoveryPhase, rule_id: Optional[str] = None) -> None:
        self.state.phase = phase
        self.state.history.append(phase)
        MetricsHelper.record_transition(phase)
        logger.debug(f"Boundary '{self.boundary_id}' -> {phase.value}")
        for listener in list(self._transition_listeners):
            try:
                listener(self.state, rule_id)
            except Exception as e:
                logger.warning(f"Transition listener of '{self.boundary_id}' raised: {e}")

    def on_failure(
        self, error: BaseException, info: Optional[Dict[str, Any]] = None
    ) -> Optional["asyncio.Task[None]"]:
        """
        Boundary hook for a failure of the guarded work.

        Args:
            error: Exception raised by the guarded work
            info: Extra context (e.g. component stack)

        Returns:
            Recovery task, or None when nothing was scheduled
        """
        event = FailureEvent.from_exception(
            error, FailureCategory.RENDER_BOUNDARY, context=dict(info or {})
        )
        return self.track(event)

    def track(self, event: FailureEvent) -> Optional["asyncio.Task[None]"]:
        """
        Report a failure of this boundary and start recovery.

        Returns:
            Recovery task, or None when exhausted, closed or no loop is running
        """
        if self._closed:
            logger.warning(f"Boundary '{self.boundary_id}' is closed, failure not tracked")
            return None

        self._last_task = None
        event = replace(event, context={**event.context, BOUNDARY_KEY: self.boundary_id})
        self.store.report(event)
        task, self._last_task = self._last_task, None
        return task

    def _on_store_event(self, event: FailureEvent) -> None:
        if self._closed or event.context.get(BOUNDARY_KEY) != self.boundary_id:
            return

        self.state.last_failure = event
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        if self.state.exhausted:
            logger.debug(f"Boundary '{self.boundary_id}' already exhausted, ignoring failure")
            return

        if self.state.attempt_count >= self.state.max_attempts:
            self.state.scheduled_delay = None
            self._transition(RecoveryPhase.EXHAUSTED)
            logger.error(
                f"{LogEmoji.ALERT} Boundary '{self.boundary_id}' exhausted after "
                f"{self.state.attempt_count} recovery attempts"
            )
            return

        self._transition(RecoveryPhase.FAILED)

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(
                f"No running event loop, recovery of '{self.boundary_id}' not scheduled"
            )
            return
        self._last_task = loop.create_task(self._recover(event))

    async def _recover(self, event: FailureEvent) -> None:
        rule = self.registry.find_match(event)
        self.state.applied_fix_id = rule.id if rule else None
        self._transition(RecoveryPhase.RECOVERING, rule.id if rule else None)

        if rule is not None:
            logger.info(f"{LogEmoji.FIX} Boundary '{self.boundary_id}' trying rule: {rule.name}")
            await self.registry.apply(rule, event, self.fix_context)
        else:
            logger.info(f"No remediation rule for '{event.message}', retrying boundary")

        # Torn down or superseded while the action ran
        if self._closed or self.state.phase != RecoveryPhase.RECOVERING:
            return

        delay = self.base_delay + self.state.attempt_count * self.backoff_step
        self.state.scheduled_delay = delay
        if self._timer is not None:
            self._timer.cancel()
        self._timer = CancellableTimer(asyncio.get_running_loop(), delay, self._reset)
        self._transition(RecoveryPhase.RECOVERED, self.state.applied_fix_id)
        logger.info(
            f"{LogEmoji.RETRY} Boundary '{self.boundary_id}' resets in {delay:.1f}s "
            f"(attempt {self.state.attempt_count + 1}/{self.state.max_attempts})"
        )

    def _reset(self) -> None:
        self._timer = None
        self.state.attempt_count += 1
        self.state.scheduled_delay = None
        self._transition(RecoveryPhase.STABLE)
        if self.on_recovered is not None:
            try:
                self.on_recovered(self.state)
            except Exception as e:
                logger.warning(f"Recovery callback of '{self.boundary_id}' raised: {e}")

    def manual_reset(self) -> None:
        """Zero the attempt count and return to Stable."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.state.attempt_count = 0
        self.state.scheduled_delay = None
        self.state.applied_fix_id = None
        self._transition(RecoveryPhase.STABLE)
        logger.info(f"{LogEmoji.SUCCESS} Boundary '{self.boundary_id}' manually reset")

    def close(self) -> None:
        """Cancel any pending reset and stop listening. In-flight fixes still complete."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._subscription.cancel()
        self._closed = True

    def snapshot(self) -> Dict[str, Any]:
        """Diagnostic view of the boundary."""
        return {
            **self.state.to_dict(),
            "reset_pending": self.reset_pending,
            "closed": self._closed,
            "phase_history": [phase.value for phase in self.state.history],
            "captured_at": utc_now().isoformat(),
        }
