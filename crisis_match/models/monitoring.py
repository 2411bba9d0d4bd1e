"""Workload monitor interventions and dampening state."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from crisis_match.models.workload import BurnoutRiskLevel


class InterventionType(str, Enum):
    FORCED_BREAK = "FORCED_BREAK"
    SUPERVISOR_REVIEW = "SUPERVISOR_REVIEW"


class Intervention(BaseModel):
    id: str
    responder_id: str
    type: InterventionType
    burnout_level: Optional[BurnoutRiskLevel] = None
    burnout_score: Optional[float] = None
    description: str
    status_changed: bool = False
    created_at: datetime


class InterventionDampening(BaseModel):
    """Prevents repeated interventions on the same responder."""

    responder_id: str
    last_intervention_at: datetime
    cooldown_until: Optional[datetime] = None
