"""Tests for the event channel and the TTL cache."""

import asyncio

import pytest

from crisis_match.cache.ttl import TTLCache
from crisis_match.events.bus import EventBus, make_event
from crisis_match.models.events import EventCategory, MatchingEventType


def _make_event(event_type=MatchingEventType.RESPONDER_MATCHED, **fields):
    return make_event(event_type, EventCategory.MATCH, **fields)


class TestEventBus:
    def setup_method(self):
        self.bus = EventBus(history_size=5)

    def test_handlers_filter_by_type(self):
        matched, everything = [], []
        self.bus.subscribe(matched.append, [MatchingEventType.RESPONDER_MATCHED])
        self.bus.subscribe(everything.append)

        self.bus.publish(_make_event())
        self.bus.publish(_make_event(MatchingEventType.FALLBACK_APPLIED))

        assert len(matched) == 1
        assert len(everything) == 2

    def test_failing_handler_does_not_break_publish(self):
        received = []

        def broken(event):
            raise RuntimeError("subscriber down")

        self.bus.subscribe(broken)
        self.bus.subscribe(received.append)
        self.bus.publish(_make_event())
        assert len(received) == 1

    def test_unsubscribe(self):
        received = []
        sub_id = self.bus.subscribe(received.append)
        assert self.bus.unsubscribe(sub_id) is True
        self.bus.publish(_make_event())
        assert received == []
        assert self.bus.unsubscribe(sub_id) is False

    def test_history_is_bounded(self):
        for n in range(8):
            self.bus.publish(_make_event(session_id=f"s{n}"))
        recent = self.bus.recent(limit=10)
        assert [e.session_id for e in recent] == ["s3", "s4", "s5", "s6", "s7"]

    @pytest.mark.asyncio
    async def test_queue_drops_oldest_when_full(self):
        queue = self.bus.subscribe_queue(maxsize=2)
        for n in range(3):
            self.bus.publish(_make_event(session_id=f"s{n}"))

        assert self.bus.dropped_events == 1
        first = await asyncio.wait_for(queue.get(), timeout=1)
        second = await asyncio.wait_for(queue.get(), timeout=1)
        assert [first.session_id, second.session_id] == ["s1", "s2"]


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestTTLCache:
    def setup_method(self):
        self.clock = FakeClock()
        self.cache = TTLCache(ttl_seconds=10, max_entries=2, clock=self.clock)

    def test_entries_expire(self):
        self.cache.set("a", 1)
        assert self.cache.get("a") == 1
        self.clock.now = 10
        assert self.cache.get("a") is None

    def test_invalidate(self):
        self.cache.set("a", 1)
        self.cache.invalidate("a")
        assert self.cache.get("a") is None

    def test_evicts_entry_closest_to_expiry(self):
        self.cache.set("a", 1)
        self.clock.now = 1
        self.cache.set("b", 2)
        self.cache.set("c", 3)
        assert self.cache.get("a") is None
        assert self.cache.get("b") == 2
        assert len(self.cache) == 2

    def test_purge_expired(self):
        self.cache.set("a", 1)
        self.clock.now = 5
        self.cache.set("b", 2)
        self.clock.now = 11
        assert self.cache.purge_expired() == 1
        assert self.cache.get("b") == 2
