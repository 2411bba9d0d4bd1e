"""
Event channel for matching decisions, alerts and availability changes.

Handlers registered with `subscribe` run inline on publish; a failing handler
is logged and never affects the publisher. Queue subscriptions are bounded:
when a consumer falls behind, the oldest pending event is dropped.
"""

import asyncio
import logging
import threading
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional
from uuid import uuid4

from crisis_match.models.events import (
    EventCategory,
    EventSeverity,
    MatchingEvent,
    MatchingEventType,
)

logger = logging.getLogger(__name__)

EventHandler = Callable[[MatchingEvent], None]


def make_event(
    event_type: MatchingEventType,
    category: EventCategory,
    severity: EventSeverity = EventSeverity.INFO,
    outcome: str = "",
    session_id: Optional[str] = None,
    responder_id: Optional[str] = None,
    data: Optional[dict] = None,
    timestamp: Optional[datetime] = None,
) -> MatchingEvent:
    return MatchingEvent(
        id=f"evt_{uuid4().hex[:12]}",
        type=event_type,
        category=category,
        severity=severity,
        outcome=outcome,
        session_id=session_id,
        responder_id=responder_id,
        data=data or {},
        timestamp=timestamp or datetime.utcnow(),
    )


class _QueueSubscription:
    def __init__(self, queue: asyncio.Queue, event_types: Optional[frozenset]):
        self.queue = queue
        self.event_types = event_types


class EventBus:
    """In-process publish/subscribe channel."""

    def __init__(self, history_size: int = 500):
        self._handlers: Dict[str, tuple] = {}
        self._queues: List[_QueueSubscription] = []
        self._history: List[MatchingEvent] = []
        self._history_size = history_size
        self._lock = threading.Lock()
        self.dropped_events = 0

    def subscribe(
        self,
        handler: EventHandler,
        event_types: Optional[Iterable[MatchingEventType]] = None,
    ) -> str:
        """Register an inline handler. Returns a subscription id."""
        subscription_id = f"sub_{uuid4().hex[:12]}"
        types = frozenset(event_types) if event_types else None
        with self._lock:
            self._handlers[subscription_id] = (handler, types)
        return subscription_id

    def unsubscribe(self, subscription_id: str) -> bool:
        with self._lock:
            return self._handlers.pop(subscription_id, None) is not None

    def subscribe_queue(
        self,
        maxsize: int = 1000,
        event_types: Optional[Iterable[MatchingEventType]] = None,
    ) -> asyncio.Queue:
        """Create a bounded queue that receives matching events."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        types = frozenset(event_types) if event_types else None
        with self._lock:
            self._queues.append(_QueueSubscription(queue, types))
        return queue

    def publish(self, event: MatchingEvent) -> None:
        with self._lock:
            self._history.append(event)
            if len(self._history) > self._history_size:
                del self._history[: len(self._history) - self._history_size]
            handlers = list(self._handlers.values())
            queues = list(self._queues)

        for handler, types in handlers:
            if types is not None and event.type not in types:
                continue
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler failed for %s", event.type.value)

        for sub in queues:
            if sub.event_types is not None and event.type not in sub.event_types:
                continue
            self._offer(sub.queue, event)

    def _offer(self, queue: asyncio.Queue, event: MatchingEvent) -> None:
        if queue.full():
            try:
                queue.get_nowait()
            except asyncio.QueueEmpty:
                pass
            self.dropped_events += 1
            logger.warning("Event queue full; dropped oldest event")
        queue.put_nowait(event)

    def recent(
        self,
        limit: int = 50,
        event_type: Optional[MatchingEventType] = None,
    ) -> List[MatchingEvent]:
        with self._lock:
            events = list(self._history)
        if event_type is not None:
            events = [e for e in events if e.type == event_type]
        return events[-limit:]
