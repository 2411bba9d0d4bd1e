"""Tests for the Availability Registry."""

import threading
from datetime import datetime, timedelta

import pytest

from crisis_match.availability.registry import AvailabilityRegistry
from crisis_match.errors import CapacityExceeded, UnknownResponder
from crisis_match.events.bus import EventBus
from crisis_match.models.config import RegistryConfig
from crisis_match.models.events import MatchingEventType
from crisis_match.models.responder import (
    AvailabilityFilter,
    GeographicLocation,
    ResponderOnlineStatus,
    ResponderStatus,
)


def _make_status(
    responder_id: str,
    status: ResponderOnlineStatus = ResponderOnlineStatus.ONLINE,
    current_sessions: int = 0,
    max_sessions: int = 3,
    heartbeat_age_seconds: float = 0,
    **fields,
) -> ResponderStatus:
    return ResponderStatus(
        responder_id=responder_id,
        status=status,
        last_heartbeat=datetime.utcnow() - timedelta(seconds=heartbeat_age_seconds),
        current_sessions=current_sessions,
        max_concurrent_sessions=max_sessions,
        **fields,
    )


class TestStatusUpdates:
    def setup_method(self):
        self.bus = EventBus()
        self.registry = AvailabilityRegistry(event_bus=self.bus)

    def test_first_update_registers_responder(self):
        status = self.registry.update_status("r1", ResponderOnlineStatus.ONLINE)
        assert status.status == ResponderOnlineStatus.ONLINE
        assert status.max_concurrent_sessions == 3
        assert self.registry.get_status("r1") is not None

    def test_update_refreshes_heartbeat(self):
        self.registry.register(_make_status("r1", heartbeat_age_seconds=600))
        before = datetime.utcnow()
        status = self.registry.update_status("r1", ResponderOnlineStatus.ONLINE)
        assert status.last_heartbeat >= before

    def test_offline_clears_emergency_availability(self):
        self.registry.register(_make_status("r1", emergency_available=True))
        status = self.registry.update_status("r1", ResponderOnlineStatus.OFFLINE)
        assert status.emergency_available is False

    def test_break_records_break_start(self):
        self.registry.register(_make_status("r1"))
        status = self.registry.update_status("r1", ResponderOnlineStatus.BREAK)
        assert status.break_start is not None
        status = self.registry.update_status("r1", ResponderOnlineStatus.ONLINE)
        assert status.break_start is None

    def test_metadata_fields_are_applied(self):
        status = self.registry.update_status(
            "r1",
            ResponderOnlineStatus.ONLINE,
            metadata={
                "emergency_available": True,
                "max_concurrent_sessions": 5,
                "location": {"country_code": "US", "utc_offset": -5},
                "device": "web",
            },
        )
        assert status.emergency_available is True
        assert status.max_concurrent_sessions == 5
        assert status.location.country_code == "US"
        assert status.metadata == {"device": "web"}

    def test_invalid_concurrency_rejected(self):
        with pytest.raises(ValueError):
            self.registry.update_status(
                "r1", ResponderOnlineStatus.ONLINE, metadata={"max_concurrent_sessions": 0}
            )

    def test_lowering_concurrency_keeps_active_sessions(self):
        self.registry.register(_make_status("r1", current_sessions=3, max_sessions=3))
        status = self.registry.update_status(
            "r1", ResponderOnlineStatus.ONLINE, metadata={"max_concurrent_sessions": 1}
        )
        assert status.current_sessions == 3
        with pytest.raises(CapacityExceeded):
            self.registry.reserve("r1")

        status = self.registry.release("r1")
        assert status.max_concurrent_sessions == 2
        with pytest.raises(CapacityExceeded):
            self.registry.reserve("r1")

    def test_lowered_concurrency_applies_once_drained(self):
        self.registry.register(_make_status("r1", current_sessions=3, max_sessions=3))
        self.registry.update_status(
            "r1", ResponderOnlineStatus.ONLINE, metadata={"max_concurrent_sessions": 1}
        )
        for _ in range(3):
            self.registry.release("r1")

        status = self.registry.get_status("r1")
        assert status.current_sessions == 0
        assert status.max_concurrent_sessions == 1

        self.registry.reserve("r1")
        with pytest.raises(CapacityExceeded):
            self.registry.reserve("r1")
        assert self.registry.get_available() == []

    def test_raising_concurrency_cancels_pending_limit(self):
        self.registry.register(_make_status("r1", current_sessions=3, max_sessions=3))
        self.registry.update_status(
            "r1", ResponderOnlineStatus.ONLINE, metadata={"max_concurrent_sessions": 1}
        )
        self.registry.update_status(
            "r1", ResponderOnlineStatus.ONLINE, metadata={"max_concurrent_sessions": 4}
        )
        for _ in range(3):
            self.registry.release("r1")
        assert self.registry.get_status("r1").max_concurrent_sessions == 4

    def test_system_update_keeps_heartbeat(self):
        registered = self.registry.register(_make_status("r1", heartbeat_age_seconds=600))
        status = self.registry.update_status(
            "r1", ResponderOnlineStatus.BREAK, touch_heartbeat=False
        )
        assert status.last_heartbeat == registered.last_heartbeat
        assert self.registry.stale_responders() == ["r1"]

    def test_status_changes_are_published(self):
        self.registry.update_status("r1", ResponderOnlineStatus.ONLINE)
        self.registry.update_status("r1", ResponderOnlineStatus.BUSY)
        events = self.bus.recent(event_type=MatchingEventType.AVAILABILITY_CHANGED)
        assert [e.data["status"] for e in events] == ["ONLINE", "BUSY"]
        assert events[-1].data["previous_status"] == "ONLINE"

    def test_heartbeat_unknown_responder(self):
        with pytest.raises(UnknownResponder):
            self.registry.heartbeat("ghost")
        with pytest.raises(KeyError):
            self.registry.heartbeat("ghost")


class TestAvailabilityQuery:
    def setup_method(self):
        self.registry = AvailabilityRegistry(RegistryConfig(heartbeat_staleness_seconds=120))

    def test_only_online_fresh_and_under_capacity(self):
        self.registry.register(_make_status("online"))
        self.registry.register(_make_status("busy", status=ResponderOnlineStatus.BUSY))
        self.registry.register(_make_status("stale", heartbeat_age_seconds=300))
        self.registry.register(_make_status("full", current_sessions=3))
        self.registry.register(_make_status("em", status=ResponderOnlineStatus.EMERGENCY_ONLY))

        ids = {s.responder_id for s in self.registry.get_available()}
        assert ids == {"online"}

    def test_emergency_only_included_on_request(self):
        self.registry.register(_make_status("online"))
        self.registry.register(_make_status("em", status=ResponderOnlineStatus.EMERGENCY_ONLY))
        ids = {
            s.responder_id
            for s in self.registry.get_available(AvailabilityFilter(include_emergency_only=True))
        }
        assert ids == {"online", "em"}

    def test_filters(self):
        self.registry.register(_make_status(
            "us", emergency_available=True, location=GeographicLocation(country_code="US"),
        ))
        self.registry.register(_make_status("ca", location=GeographicLocation(country_code="CA")))
        self.registry.register(_make_status("none"))

        assert [s.responder_id for s in self.registry.get_available(
            AvailabilityFilter(country_code="us")
        )] == ["us"]
        assert [s.responder_id for s in self.registry.get_available(
            AvailabilityFilter(require_emergency_available=True)
        )] == ["us"]
        ids = {s.responder_id for s in self.registry.get_available(
            AvailabilityFilter(exclude_responder_ids=["us"])
        )}
        assert ids == {"ca", "none"}

    def test_stale_responders(self):
        self.registry.register(_make_status("fresh"))
        self.registry.register(_make_status("stale", heartbeat_age_seconds=600))
        self.registry.register(_make_status(
            "gone", status=ResponderOnlineStatus.OFFLINE, heartbeat_age_seconds=600,
        ))
        assert self.registry.stale_responders() == ["stale"]

    def test_returned_statuses_are_copies(self):
        self.registry.register(_make_status("r1"))
        copy = self.registry.get_status("r1")
        copy.current_sessions = 2
        assert self.registry.get_status("r1").current_sessions == 0


class TestReservations:
    def setup_method(self):
        self.registry = AvailabilityRegistry()

    def test_reserve_then_release_restores_sessions(self):
        self.registry.register(_make_status("r1", current_sessions=1))
        self.registry.reserve("r1", session_id="s1")
        assert self.registry.get_status("r1").current_sessions == 2
        assert self.registry.active_sessions("r1") == ["s1"]

        self.registry.release("r1", session_id="s1")
        assert self.registry.get_status("r1").current_sessions == 1
        assert self.registry.active_sessions("r1") == []

    def test_reserve_full_responder(self):
        self.registry.register(_make_status("r1", current_sessions=3))
        with pytest.raises(CapacityExceeded) as exc_info:
            self.registry.reserve("r1")
        assert exc_info.value.responder_id == "r1"

    def test_reserve_non_accepting_status(self):
        self.registry.register(_make_status("r1", status=ResponderOnlineStatus.BREAK))
        with pytest.raises(CapacityExceeded):
            self.registry.reserve("r1")

    def test_reserve_unknown(self):
        with pytest.raises(UnknownResponder):
            self.registry.reserve("ghost")

    def test_release_never_goes_negative(self):
        self.registry.register(_make_status("r1"))
        status = self.registry.release("r1", session_id="never-reserved")
        assert status.current_sessions == 0

    def test_concurrent_reservations_never_overbook(self):
        self.registry.register(_make_status("r1", current_sessions=2, max_sessions=3))
        successes = []
        failures = []
        barrier = threading.Barrier(50)

        def attempt(n: int) -> None:
            barrier.wait()
            try:
                self.registry.reserve("r1", session_id=f"s{n}")
                successes.append(n)
            except CapacityExceeded:
                failures.append(n)

        threads = [threading.Thread(target=attempt, args=(n,)) for n in range(50)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(successes) == 1
        assert len(failures) == 49
        assert self.registry.get_status("r1").current_sessions == 3

    def test_reservation_events_carry_session(self):
        bus = EventBus()
        registry = AvailabilityRegistry(event_bus=bus)
        registry.register(_make_status("r1"))
        registry.reserve("r1", session_id="s1")
        registry.release("r1", session_id="s1")
        events = bus.recent(event_type=MatchingEventType.AVAILABILITY_CHANGED)
        assert [(e.outcome, e.session_id) for e in events[-2:]] == [
            ("reserved", "s1"),
            ("released", "s1"),
        ]
