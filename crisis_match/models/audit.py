"""Decision ledger records."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from crisis_match.models.events import EventCategory, EventSeverity, MatchingEventType


class DecisionRecord(BaseModel):
    """One tamper-evident ledger entry, derived from a matching event."""

    id: str
    event_id: str
    event_type: MatchingEventType
    category: EventCategory
    severity: EventSeverity
    outcome: str = ""
    session_id: Optional[str] = None
    responder_id: Optional[str] = None
    payload: dict = {}
    recorded_at: datetime
    signature: str = ""
    prior_record_hash: Optional[str] = None
