"""Events published on the matching event channel."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class MatchingEventType(str, Enum):
    AVAILABILITY_CHANGED = "AVAILABILITY_CHANGED"
    RESPONDER_MATCHED = "RESPONDER_MATCHED"
    FALLBACK_APPLIED = "FALLBACK_APPLIED"
    MATCH_TIMEOUT = "MATCH_TIMEOUT"
    EMERGENCY_ESCALATION = "EMERGENCY_ESCALATION"
    LOAD_BALANCING_APPLIED = "LOAD_BALANCING_APPLIED"
    BURNOUT_DETECTED = "BURNOUT_DETECTED"
    WORKLOAD_VIOLATION = "WORKLOAD_VIOLATION"
    COVERAGE_GAP = "COVERAGE_GAP"
    INTERVENTION_TRIGGERED = "INTERVENTION_TRIGGERED"
    POOL_ROTATED = "POOL_ROTATED"


class EventSeverity(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class EventCategory(str, Enum):
    AVAILABILITY = "AVAILABILITY"
    MATCH = "MATCH"
    FALLBACK = "FALLBACK"
    WORKLOAD = "WORKLOAD"
    ALERT = "ALERT"
    INTERVENTION = "INTERVENTION"
    POOL = "POOL"


class MatchingEvent(BaseModel):
    id: str
    type: MatchingEventType
    severity: EventSeverity = EventSeverity.INFO
    category: EventCategory
    outcome: str = ""
    session_id: Optional[str] = None
    responder_id: Optional[str] = None
    data: dict = {}
    timestamp: datetime
