"""Emergency pool rosters."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel


class RosterTier(str, Enum):
    CRITICAL_RESPONSE = "CRITICAL_RESPONSE"
    SPECIALIST_BACKUP = "SPECIALIST_BACKUP"
    ON_CALL_SUPERVISOR = "ON_CALL_SUPERVISOR"
    HANDOFF = "HANDOFF"                     # previous roster during the overlap window


class EmergencyPool(BaseModel):
    """Disjoint rosters of emergency-available responders."""

    pool_id: str
    critical_response: List[str] = []
    specialist_backup: List[str] = []
    on_call_supervisors: List[str] = []
    handoff: List[str] = []
    overlap_until: Optional[datetime] = None
    last_updated: datetime
    next_rotation: datetime

    def members(self) -> List[str]:
        return self.critical_response + self.specialist_backup + self.on_call_supervisors

    def tier_of(self, responder_id: str) -> Optional[RosterTier]:
        if responder_id in self.critical_response:
            return RosterTier.CRITICAL_RESPONSE
        if responder_id in self.specialist_backup:
            return RosterTier.SPECIALIST_BACKUP
        if responder_id in self.on_call_supervisors:
            return RosterTier.ON_CALL_SUPERVISOR
        if responder_id in self.handoff:
            return RosterTier.HANDOFF
        return None


class EmergencyAssignment(BaseModel):
    responder_id: str
    tier: RosterTier
    pool_id: str
