"""Central ledger of failure events with statistics and persistence."""

import json
import os
import platform
import socket
import uuid
from collections import Counter
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from selfheal.constants import FailureStoreConfig, LogEmoji
from selfheal.core.exceptions import ReportingError
from selfheal.monitoring.models import FailureEvent, utc_now
from selfheal.monitoring.persistence import InMemoryKeyValueStore, KeyValueStore
from selfheal.monitoring.subscriptions import Subscription, SubscriptionRegistry
from selfheal.utils.prometheus_metrics import MetricsHelper

FailureListener = Callable[[FailureEvent], None]


def generate_session_id() -> str:
    """Identifier of the running process instance."""
    return f"session_{int(utc_now().timestamp() * 1000)}_{uuid.uuid4().hex[:9]}"


def default_origin() -> str:
    """Interpreter and host description stamped on reported events."""
    return (
        f"{platform.python_implementation()}/{platform.python_version()} "
        f"{socket.gethostname()} pid={os.getpid()}"
    )


class FailureStore:
    """
    Append-only-with-cap ledger of failure events.

    Events are kept newest-first. Every report persists a bounded snapshot
    and is then published to subscribers in subscription order.
    """

    def __init__(
        self,
        kv_store: Optional[KeyValueStore] = None,
        max_stored_errors: int = FailureStoreConfig.MAX_STORED_ERRORS,
        snapshot_size: int = FailureStoreConfig.SNAPSHOT_SIZE,
        snapshot_max_age: timedelta = timedelta(hours=FailureStoreConfig.SNAPSHOT_MAX_AGE_HOURS),
        storage_key: str = FailureStoreConfig.STORAGE_KEY,
        session_id: Optional[str] = None,
        origin: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize failure store.

        Args:
            kv_store: Snapshot storage (in-memory when omitted)
            max_stored_errors: Ledger capacity
            snapshot_size: Number of recent events written to the snapshot
            snapshot_max_age: Persisted events older than this are dropped on load
            storage_key: Key of the snapshot in the store
            session_id: Session identifier (generated when omitted)
            origin: Origin string stamped on events (host description when omitted)
            clock: Source of the current time
        """
        self.kv_store: KeyValueStore = kv_store if kv_store is not None else InMemoryKeyValueStore()
        self.max_stored_errors = max_stored_errors
        self.snapshot_size = snapshot_size
        self.snapshot_max_age = snapshot_max_age
        self.storage_key = storage_key
        self.session_id = session_id or generate_session_id()
        self.origin = origin or default_origin()
        self._clock = clock
        self._events: List[FailureEvent] = []
        self._listeners: SubscriptionRegistry[FailureEvent] = SubscriptionRegistry()

    def __len__(self) -> int:
        return len(self._events)

    @property
    def events(self) -> List[FailureEvent]:
        """Copy of the ledger, newest first."""
        return list(self._events)

    def report(self, event: FailureEvent) -> FailureEvent:
        """
        Record a failure and notify subscribers.

        Args:
            event: Failure event; ``session_id``/``origin`` are stamped if absent

        Returns:
            The stored (stamped) event
        """
        stamped = replace(
            event,
            session_id=event.session_id or self.session_id,
            origin=event.origin or self.origin,
            context=dict(event.context),
        )

        self._events.insert(0, stamped)
        if len(self._events) > self.max_stored_errors:
            del self._events[self.max_stored_errors:]

        self._persist()

        logger.error(
            f"{LogEmoji.REPORT} Failure reported [{stamped.category.value}]: {stamped.message}"
        )
        MetricsHelper.record_failure(stamped.category.value, len(self._events))

        for listener in self._listeners.snapshot():
            try:
                listener(stamped)
            except Exception as e:
                name = getattr(listener, "__qualname__", repr(listener))
                error = ReportingError(f"Failure listener {name} raised: {e}", listener=name)
                logger.opt(exception=e).warning(error.message)

        return stamped

    def _persist(self) -> None:
        """Write the bounded snapshot. Failures are logged, never raised."""
        snapshot = {
            "errors": [e.to_dict() for e in self._events[: self.snapshot_size]],
            "timestamp": self._clock().isoformat(),
            "session_id": self.session_id,
        }
        try:
            self.kv_store.set(self.storage_key, json.dumps(snapshot))
        except Exception as e:
            logger.warning(f"Failed to persist failure snapshot: {e}")

    def load_persisted(self) -> int:
        """
        Merge events from the persisted snapshot.

        Only events younger than ``snapshot_max_age`` are kept; they rank as
        older than anything already recorded in this process.

        Returns:
            Number of events merged
        """
        try:
            raw = self.kv_store.get(self.storage_key)
        except Exception as e:
            logger.warning(f"Failed to load persisted failures: {e}")
            return 0
        if not raw:
            return 0

        try:
            data = json.loads(raw)
            entries = data.get("errors") if isinstance(data, dict) else None
            if not isinstance(entries, list):
                logger.warning("Persisted failure snapshot has no error list, ignoring")
                return 0
        except ValueError as e:
            logger.warning(f"Failed to parse persisted failures: {e}")
            return 0

        cutoff = self._clock() - self.snapshot_max_age
        restored: List[FailureEvent] = []
        for entry in entries:
            try:
                event = FailureEvent.from_dict(entry)
            except (KeyError, TypeError, ValueError) as e:
                logger.debug(f"Skipping malformed persisted failure: {e}")
                continue
            if event.occurred_at > cutoff:
                restored.append(event)

        self._events = (self._events + restored)[: self.max_stored_errors]
        MetricsHelper.set_stored_failures(len(self._events))
        logger.info(
            f"Loaded {len(restored)} persisted failures "
            f"(discarded {len(entries) - len(restored)})"
        )
        return len(restored)

    def get_recent(self, limit: int = FailureStoreConfig.RECENT_ERRORS_LIMIT) -> List[FailureEvent]:
        return self._events[:limit]

    def count_since(self, cutoff: datetime) -> int:
        """Number of events that occurred after ``cutoff``."""
        return sum(1 for e in self._events if e.occurred_at > cutoff)

    def get_stats(self) -> Dict[str, Any]:
        """
        Compute ledger statistics.

        Returns:
            Dictionary with total, per-category and per-message counts, the
            most frequent messages and the most recent events
        """
        by_category = Counter(e.category.value for e in self._events)
        by_message = Counter(e.message or "Unknown error" for e in self._events)

        last_seen: Dict[str, str] = {}
        for e in self._events:
            last_seen.setdefault(e.message or "Unknown error", e.occurred_at.isoformat())

        top_errors = [
            {"message": message, "count": count, "last_occurred": last_seen.get(message, "")}
            for message, count in sorted(by_message.items(), key=lambda item: item[1], reverse=True)
        ][: FailureStoreConfig.TOP_ERRORS_LIMIT]

        return {
            "total_errors": len(self._events),
            "errors_by_category": dict(by_category),
            "errors_by_message": dict(by_message),
            "top_errors": top_errors,
            "recent_errors": [e.to_dict() for e in self.get_recent()],
        }

    def get_trends(self) -> List[Dict[str, Any]]:
        """Event counts per UTC calendar day, oldest day first."""
        per_day = Counter(e.occurred_at.date().isoformat() for e in self._events)
        return [{"date": day, "count": per_day[day]} for day in sorted(per_day)]

    def search(self, query: str) -> List[FailureEvent]:
        """Case-insensitive substring search over message, stack and category."""
        needle = query.lower()
        return [
            e
            for e in self._events
            if needle in e.message.lower()
            or (e.stack_trace and needle in e.stack_trace.lower())
            or needle in e.category.value.lower()
        ]

    def subscribe(self, listener: FailureListener) -> Subscription:
        """
        Register a listener called after every report.

        Returns:
            Subscription handle; calling it unsubscribes
        """
        return self._listeners.subscribe(listener)

    def clear(self) -> None:
        """Empty the ledger and the persisted snapshot."""
        self._events = []
        MetricsHelper.set_stored_failures(0)
        try:
            self.kv_store.delete(self.storage_key)
        except Exception as e:
            logger.warning(f"Failed to clear persisted failures: {e}")

    def export(self) -> str:
        """Serialize the ledger and its statistics as JSON."""
        return json.dumps(
            {
                "session_id": self.session_id,
                "exported_at": self._clock().isoformat(),
                "events": [e.to_dict() for e in self._events],
                "stats": self.get_stats(),
            },
            indent=2,
        )
