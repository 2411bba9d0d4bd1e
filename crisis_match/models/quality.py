"""Session outcomes and derived quality scores."""

from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field


class QualityTrend(str, Enum):
    IMPROVING = "IMPROVING"
    STABLE = "STABLE"
    DECLINING = "DECLINING"
    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"


class SessionOutcome(BaseModel):
    """Reported by the session layer once a session closes."""

    responder_id: str
    session_id: str
    completed_at: datetime
    resolved: bool = True
    escalated: bool = False
    abandoned: bool = False                 # responder dropped or never joined
    satisfaction: Optional[float] = Field(ge=1, le=5, default=None)
    response_time_seconds: Optional[float] = Field(ge=0, default=None)
    duration_minutes: Optional[float] = Field(ge=0, default=None)
    follow_up_completed: Optional[bool] = None


class QualityScore(BaseModel):
    responder_id: str
    overall: float = Field(ge=0, le=1)
    components: Dict[str, float] = {}
    trends: Dict[str, QualityTrend] = {}
    sample_size: int = 0
    confidence: float = Field(ge=0, le=1, default=0.0)
    below_floor: bool = False
    from_prior: bool = False
    computed_at: datetime

    @property
    def rating(self) -> float:
        """The overall score on the 1-10 rating scale."""
        return max(1.0, self.overall * 10.0)
