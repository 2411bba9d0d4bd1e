"""
Decision Ledger — append-only, hash-chained record of matching decisions.

Subscribes to the event channel and persists matches, fallbacks, alerts and
interventions. Availability churn is not recorded.

Behavioral Contract:
- Append-only. No record is ever modified or deleted.
- Each record is hashed and chained to the previous record (tamper-evident).
- Queryable by session, responder, category and recency.
"""

import hashlib
import json
import logging
import sqlite3
import threading
from datetime import datetime
from typing import Iterable, List, Optional
from uuid import uuid4

from crisis_match.events.bus import EventBus
from crisis_match.models.audit import DecisionRecord
from crisis_match.models.events import EventCategory, MatchingEvent, MatchingEventType

logger = logging.getLogger(__name__)

RECORDED_EVENT_TYPES = [t for t in MatchingEventType if t != MatchingEventType.AVAILABILITY_CHANGED]


def _sign(record: DecisionRecord) -> str:
    record_dict = record.model_dump(mode="json")
    # Zero out signature before hashing (it's what we're computing)
    record_dict["signature"] = ""
    record_bytes = json.dumps(record_dict, sort_keys=True, default=str).encode()
    return hashlib.sha256(record_bytes).hexdigest()


class DecisionLedger:
    """
    Append-only decision ledger.
    SQLite-backed; pass a file path for durability, ":memory:" for tests.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._init_schema()

    def _init_schema(self) -> None:
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS decisions (
                id TEXT PRIMARY KEY,
                event_id TEXT NOT NULL,
                event_type TEXT NOT NULL,
                category TEXT NOT NULL,
                severity TEXT NOT NULL,
                outcome TEXT,
                session_id TEXT,
                responder_id TEXT,
                signature TEXT NOT NULL,
                prior_record_hash TEXT,
                record_json TEXT NOT NULL,
                recorded_at TEXT NOT NULL
            )
        """)
        self._conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_decisions_session ON decisions(session_id)"
        )
        self._conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_decisions_responder ON decisions(responder_id)"
        )
        self._conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_decisions_category ON decisions(category)"
        )
        self._conn.commit()

    def attach(
        self,
        event_bus: EventBus,
        event_types: Optional[Iterable[MatchingEventType]] = None,
    ) -> str:
        """Record every matching decision published on the bus."""
        return event_bus.subscribe(self.record_event, event_types or RECORDED_EVENT_TYPES)

    def record_event(self, event: MatchingEvent) -> DecisionRecord:
        return self.append(DecisionRecord(
            id=f"rec_{uuid4().hex[:12]}",
            event_id=event.id,
            event_type=event.type,
            category=event.category,
            severity=event.severity,
            outcome=event.outcome,
            session_id=event.session_id,
            responder_id=event.responder_id,
            payload=event.data,
            recorded_at=event.timestamp,
        ))

    def append(self, record: DecisionRecord) -> DecisionRecord:
        """Chain the record to its predecessor, sign it and persist it."""
        with self._lock:
            record.prior_record_hash = self._get_latest_hash()
            record.signature = _sign(record)
            full_json = json.dumps(record.model_dump(mode="json"), default=str)

            self._conn.execute(
                """
                INSERT INTO decisions (
                    id, event_id, event_type, category, severity, outcome,
                    session_id, responder_id, signature, prior_record_hash,
                    record_json, recorded_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    record.event_id,
                    record.event_type.value,
                    record.category.value,
                    record.severity.value,
                    record.outcome,
                    record.session_id,
                    record.responder_id,
                    record.signature,
                    record.prior_record_hash,
                    full_json,
                    record.recorded_at.isoformat(),
                ),
            )
            self._conn.commit()
        return record

    def _get_latest_hash(self) -> Optional[str]:
        row = self._conn.execute(
            "SELECT signature FROM decisions ORDER BY rowid DESC LIMIT 1"
        ).fetchone()
        return row["signature"] if row else None

    def _select(self, where: str = "", params: tuple = (), order: str = "ORDER BY rowid") -> List[DecisionRecord]:
        with self._lock:
            rows = self._conn.execute(
                f"SELECT record_json FROM decisions {where} {order}", params
            ).fetchall()
        return [DecisionRecord.model_validate_json(r["record_json"]) for r in rows]

    def get_by_id(self, record_id: str) -> Optional[DecisionRecord]:
        records = self._select("WHERE id = ?", (record_id,))
        return records[0] if records else None

    def query_by_session(self, session_id: str) -> List[DecisionRecord]:
        return self._select("WHERE session_id = ?", (session_id,))

    def query_by_responder(self, responder_id: str) -> List[DecisionRecord]:
        return self._select("WHERE responder_id = ?", (responder_id,))

    def query_by_category(
        self, category: EventCategory, since: Optional[datetime] = None
    ) -> List[DecisionRecord]:
        if since:
            return self._select(
                "WHERE category = ? AND recorded_at >= ?", (category.value, since.isoformat())
            )
        return self._select("WHERE category = ?", (category.value,))

    def query_recent(self, limit: int = 50) -> List[DecisionRecord]:
        records = self._select(order="ORDER BY rowid DESC LIMIT ?", params=(limit,))
        return list(reversed(records))

    def verify_chain_integrity(self) -> bool:
        """Verify no records have been tampered with."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT record_json, signature FROM decisions ORDER BY rowid"
            ).fetchall()

        previous_signature = None
        for row in rows:
            record = DecisionRecord.model_validate_json(row["record_json"])
            if record.signature != row["signature"] or _sign(record) != record.signature:
                logger.error("Ledger record %s failed signature check", record.id)
                return False
            if record.prior_record_hash != previous_signature:
                logger.error("Ledger chain broken at record %s", record.id)
                return False
            previous_signature = record.signature
        return True

    def count(self) -> int:
        with self._lock:
            row = self._conn.execute("SELECT COUNT(*) as cnt FROM decisions").fetchone()
        return row["cnt"]

    def close(self) -> None:
        self._conn.close()
