"""
Availability Registry — the single owner of live responder status.

All mutation (status updates, heartbeats, reservations, releases) goes
through one mutex, so `reserve` is an atomic check-and-increment and
concurrent match requests can never push a responder past capacity.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set

from crisis_match.errors import CapacityExceeded, UnknownResponder
from crisis_match.events.bus import EventBus, make_event
from crisis_match.models.config import RegistryConfig
from crisis_match.models.events import EventCategory, MatchingEventType
from crisis_match.models.responder import (
    ACCEPTING_STATUSES,
    AvailabilityFilter,
    GeographicLocation,
    ResponderOnlineStatus,
    ResponderStatus,
)

logger = logging.getLogger(__name__)


class AvailabilityRegistry:
    """In-memory registry of responder availability."""

    def __init__(
        self,
        config: Optional[RegistryConfig] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.config = config or RegistryConfig()
        self.event_bus = event_bus
        self._statuses: Dict[str, ResponderStatus] = {}
        self._sessions: Dict[str, Set[str]] = {}
        # Requested concurrency limits waiting for the active load to drain
        self._pending_max: Dict[str, int] = {}
        self._lock = threading.RLock()

    def register(self, status: ResponderStatus) -> ResponderStatus:
        """Insert or replace a responder's status."""
        with self._lock:
            previous = self._statuses.get(status.responder_id)
            self._statuses[status.responder_id] = status.model_copy(deep=True)
            self._sessions.setdefault(status.responder_id, set())
            self._pending_max.pop(status.responder_id, None)
        self._emit(previous, status, "registered")
        return status.model_copy(deep=True)

    def deregister(self, responder_id: str) -> bool:
        with self._lock:
            removed = self._statuses.pop(responder_id, None)
            self._sessions.pop(responder_id, None)
            self._pending_max.pop(responder_id, None)
        return removed is not None

    def get_status(self, responder_id: str) -> Optional[ResponderStatus]:
        with self._lock:
            status = self._statuses.get(responder_id)
            return status.model_copy(deep=True) if status else None

    def all_statuses(self) -> List[ResponderStatus]:
        with self._lock:
            return [s.model_copy(deep=True) for s in self._statuses.values()]

    def update_status(
        self,
        responder_id: str,
        status: ResponderOnlineStatus,
        metadata: Optional[dict] = None,
        current_time: Optional[datetime] = None,
        touch_heartbeat: bool = True,
    ) -> ResponderStatus:
        """
        Apply a status transition. Unknown responders are registered on their
        first update. Going OFFLINE always clears emergency availability.

        Updates sent by the responder count as a heartbeat. System-initiated
        transitions pass touch_heartbeat=False so staleness is preserved.
        """
        if current_time is None:
            current_time = datetime.utcnow()
        metadata = dict(metadata or {})
        status = ResponderOnlineStatus(status)

        with self._lock:
            previous = self._statuses.get(responder_id)
            if previous is None:
                current = ResponderStatus(
                    responder_id=responder_id,
                    last_heartbeat=current_time,
                    max_concurrent_sessions=self.config.default_max_concurrent_sessions,
                )
                self._sessions[responder_id] = set()
            else:
                current = previous.model_copy(deep=True)

            updates = {"status": status}
            if touch_heartbeat:
                updates["last_heartbeat"] = current_time

            if "emergency_available" in metadata:
                updates["emergency_available"] = bool(metadata.pop("emergency_available"))
            if "max_concurrent_sessions" in metadata:
                max_sessions = int(metadata.pop("max_concurrent_sessions"))
                if max_sessions < 1:
                    raise ValueError("max_concurrent_sessions must be at least 1")
                updates["max_concurrent_sessions"] = max_sessions
            if "location" in metadata:
                location = metadata.pop("location")
                updates["location"] = (
                    location if isinstance(location, GeographicLocation)
                    else GeographicLocation.model_validate(location)
                )
            if status == ResponderOnlineStatus.BREAK:
                updates["break_start"] = current_time
            elif current.status == ResponderOnlineStatus.BREAK:
                updates["break_start"] = None
            if status == ResponderOnlineStatus.OFFLINE:
                updates["emergency_available"] = False
            if metadata:
                updates["metadata"] = {**current.metadata, **metadata}

            updated = current.model_copy(update=updates)
            if "max_concurrent_sessions" in updates:
                self._pending_max.pop(responder_id, None)
                if updated.current_sessions > updated.max_concurrent_sessions:
                    # Active sessions are kept; the lower limit takes effect
                    # as they are released.
                    self._pending_max[responder_id] = updated.max_concurrent_sessions
                    updated = updated.model_copy(
                        update={"max_concurrent_sessions": updated.current_sessions}
                    )
            self._statuses[responder_id] = updated

        self._emit(previous, updated, "status_update")
        return updated.model_copy(deep=True)

    def heartbeat(
        self, responder_id: str, current_time: Optional[datetime] = None
    ) -> ResponderStatus:
        if current_time is None:
            current_time = datetime.utcnow()
        with self._lock:
            status = self._statuses.get(responder_id)
            if status is None:
                raise UnknownResponder(responder_id)
            status.last_heartbeat = current_time
            return status.model_copy(deep=True)

    def is_fresh(
        self, status: ResponderStatus, current_time: Optional[datetime] = None
    ) -> bool:
        if current_time is None:
            current_time = datetime.utcnow()
        age = (current_time - status.last_heartbeat).total_seconds()
        return age <= self.config.heartbeat_staleness_seconds

    def get_available(
        self,
        availability_filter: Optional[AvailabilityFilter] = None,
        current_time: Optional[datetime] = None,
    ) -> List[ResponderStatus]:
        """
        Responders able to take a session now: ONLINE (and EMERGENCY_ONLY when
        the filter asks for it), heartbeat fresh, and below max concurrency.
        """
        f = availability_filter or AvailabilityFilter()
        if current_time is None:
            current_time = datetime.utcnow()

        allowed = {ResponderOnlineStatus.ONLINE}
        if f.include_emergency_only:
            allowed.add(ResponderOnlineStatus.EMERGENCY_ONLY)
        wanted = set(f.responder_ids) if f.responder_ids is not None else None
        excluded = set(f.exclude_responder_ids)

        available = []
        with self._lock:
            for status in self._statuses.values():
                if status.status not in allowed:
                    continue
                if wanted is not None and status.responder_id not in wanted:
                    continue
                if status.responder_id in excluded:
                    continue
                if status.current_sessions >= status.max_concurrent_sessions:
                    continue
                if f.require_emergency_available and not status.emergency_available:
                    continue
                if f.country_code and (
                    status.location is None
                    or (status.location.country_code or "").upper() != f.country_code.upper()
                ):
                    continue
                if not self.is_fresh(status, current_time):
                    continue
                available.append(status.model_copy(deep=True))
        return available

    def stale_responders(self, current_time: Optional[datetime] = None) -> List[str]:
        """Responders that claim to be reachable but stopped sending heartbeats."""
        if current_time is None:
            current_time = datetime.utcnow()
        with self._lock:
            return [
                s.responder_id
                for s in self._statuses.values()
                if s.status != ResponderOnlineStatus.OFFLINE
                and not self.is_fresh(s, current_time)
            ]

    def reserve(self, responder_id: str, session_id: Optional[str] = None) -> ResponderStatus:
        """Take one unit of capacity, or raise CapacityExceeded."""
        with self._lock:
            status = self._statuses.get(responder_id)
            if status is None:
                raise UnknownResponder(responder_id)
            if status.status not in ACCEPTING_STATUSES:
                raise CapacityExceeded(
                    responder_id,
                    f"Responder {responder_id} is {status.status.value} and not accepting sessions",
                )
            if status.current_sessions >= status.max_concurrent_sessions:
                raise CapacityExceeded(responder_id)
            previous = status.model_copy(deep=True)
            status.current_sessions += 1
            if session_id:
                self._sessions.setdefault(responder_id, set()).add(session_id)
            updated = status.model_copy(deep=True)

        self._emit(previous, updated, "reserved", session_id=session_id)
        return updated

    def release(self, responder_id: str, session_id: Optional[str] = None) -> ResponderStatus:
        """Return one unit of capacity; never drops below zero."""
        with self._lock:
            status = self._statuses.get(responder_id)
            if status is None:
                raise UnknownResponder(responder_id)
            sessions = self._sessions.setdefault(responder_id, set())
            if session_id:
                if session_id not in sessions:
                    logger.debug("Releasing untracked session %s for %s", session_id, responder_id)
                sessions.discard(session_id)
            previous = status.model_copy(deep=True)
            status.current_sessions = max(0, status.current_sessions - 1)
            pending = self._pending_max.get(responder_id)
            if pending is not None:
                status.max_concurrent_sessions = max(status.current_sessions, pending)
                if status.max_concurrent_sessions == pending:
                    del self._pending_max[responder_id]
            updated = status.model_copy(deep=True)

        self._emit(previous, updated, "released", session_id=session_id)
        return updated

    def active_sessions(self, responder_id: str) -> List[str]:
        with self._lock:
            return sorted(self._sessions.get(responder_id, set()))

    def _emit(
        self,
        previous: Optional[ResponderStatus],
        current: ResponderStatus,
        reason: str,
        session_id: Optional[str] = None,
    ) -> None:
        if self.event_bus is None:
            return
        self.event_bus.publish(make_event(
            MatchingEventType.AVAILABILITY_CHANGED,
            EventCategory.AVAILABILITY,
            outcome=reason,
            session_id=session_id,
            responder_id=current.responder_id,
            data={
                "previous_status": previous.status.value if previous else None,
                "status": current.status.value,
                "current_sessions": current.current_sessions,
                "max_concurrent_sessions": current.max_concurrent_sessions,
                "emergency_available": current.emergency_available,
            },
        ))
