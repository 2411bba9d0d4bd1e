"""Tests for the Decision Ledger."""

import json
from datetime import datetime, timedelta

from crisis_match.audit.ledger import DecisionLedger
from crisis_match.events.bus import EventBus, make_event
from crisis_match.models.events import EventCategory, EventSeverity, MatchingEventType


def _matched(session_id: str = "s1", responder_id: str = "r1", timestamp=None):
    return make_event(
        MatchingEventType.RESPONDER_MATCHED,
        EventCategory.MATCH,
        outcome="matched",
        session_id=session_id,
        responder_id=responder_id,
        data={"match_score": 0.82},
        timestamp=timestamp,
    )


def _alert(responder_id: str = "r1", timestamp=None):
    return make_event(
        MatchingEventType.BURNOUT_DETECTED,
        EventCategory.ALERT,
        severity=EventSeverity.CRITICAL,
        responder_id=responder_id,
        timestamp=timestamp,
    )


class TestDecisionLedger:
    def setup_method(self):
        self.ledger = DecisionLedger(db_path=":memory:")

    def teardown_method(self):
        self.ledger.close()

    def test_record_and_retrieve(self):
        record = self.ledger.record_event(_matched())

        assert record.signature != ""
        assert record.prior_record_hash is None  # First record

        retrieved = self.ledger.get_by_id(record.id)
        assert retrieved is not None
        assert retrieved.event_type == MatchingEventType.RESPONDER_MATCHED
        assert retrieved.payload == {"match_score": 0.82}

    def test_records_are_chained(self):
        first = self.ledger.record_event(_matched("s1"))
        second = self.ledger.record_event(_matched("s2"))

        assert second.prior_record_hash == first.signature
        assert self.ledger.count() == 2
        assert self.ledger.verify_chain_integrity() is True

    def test_tampering_is_detected(self):
        record = self.ledger.record_event(_matched())
        self.ledger.record_event(_matched("s2"))

        tampered = record.model_dump(mode="json")
        tampered["responder_id"] = "someone_else"
        self.ledger._conn.execute(
            "UPDATE decisions SET record_json = ? WHERE id = ?",
            (json.dumps(tampered), record.id),
        )
        self.ledger._conn.commit()

        assert self.ledger.verify_chain_integrity() is False

    def test_queries(self):
        earlier = datetime.utcnow() - timedelta(hours=2)
        self.ledger.record_event(_alert("r1", timestamp=earlier))
        self.ledger.record_event(_matched("s1", "r1"))
        self.ledger.record_event(_matched("s2", "r2"))
        self.ledger.record_event(_alert("r2"))

        assert [r.session_id for r in self.ledger.query_by_session("s2")] == ["s2"]
        assert len(self.ledger.query_by_responder("r1")) == 2
        assert len(self.ledger.query_by_category(EventCategory.ALERT)) == 2
        recent_alerts = self.ledger.query_by_category(
            EventCategory.ALERT, since=datetime.utcnow() - timedelta(hours=1)
        )
        assert [r.responder_id for r in recent_alerts] == ["r2"]

        recent = self.ledger.query_recent(limit=2)
        assert [r.event_type for r in recent] == [
            MatchingEventType.RESPONDER_MATCHED,
            MatchingEventType.BURNOUT_DETECTED,
        ]
        assert recent[0].session_id == "s2"

    def test_attach_records_decisions_only(self):
        bus = EventBus()
        self.ledger.attach(bus)

        bus.publish(make_event(
            MatchingEventType.AVAILABILITY_CHANGED, EventCategory.AVAILABILITY, responder_id="r1",
        ))
        bus.publish(_matched())

        records = self.ledger.query_recent()
        assert [r.event_type for r in records] == [MatchingEventType.RESPONDER_MATCHED]

    def test_file_backed_ledger_survives_reopen(self, tmp_path):
        path = str(tmp_path / "decisions.db")
        ledger = DecisionLedger(db_path=path)
        ledger.record_event(_matched())
        ledger.close()

        reopened = DecisionLedger(db_path=path)
        try:
            assert reopened.count() == 1
            assert reopened.verify_chain_integrity() is True
        finally:
            reopened.close()
