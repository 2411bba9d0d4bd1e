"""Match outcomes: reserved matches and fallback decisions."""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from crisis_match.models.request import FallbackStrategy


class MatchConfidence(str, Enum):
    EXCELLENT = "EXCELLENT"     # >= 0.9
    HIGH = "HIGH"               # >= 0.8
    GOOD = "GOOD"               # >= 0.7
    FAIR = "FAIR"               # >= 0.6
    POOR = "POOR"               # >= 0.4
    CRITICAL = "CRITICAL"       # < 0.4


def confidence_for_score(score: float) -> MatchConfidence:
    """Deterministic mapping from match score to confidence tier."""
    if score >= 0.9:
        return MatchConfidence.EXCELLENT
    if score >= 0.8:
        return MatchConfidence.HIGH
    if score >= 0.7:
        return MatchConfidence.GOOD
    if score >= 0.6:
        return MatchConfidence.FAIR
    if score >= 0.4:
        return MatchConfidence.POOR
    return MatchConfidence.CRITICAL


class AdjustmentType(str, Enum):
    BONUS = "BONUS"
    PENALTY = "PENALTY"


class ScoreAdjustment(BaseModel):
    type: AdjustmentType
    reason: str
    value: float                    # signed contribution to the overall score
    category: str


class ScoreBreakdown(BaseModel):
    overall: float = Field(ge=0, le=1)
    base_score: float = 0.0         # weighted sum before adjustments
    components: Dict[str, float] = {}
    weights: Dict[str, float] = {}
    adjustments: List[ScoreAdjustment] = []
    degraded_components: List[str] = []


class AlternativeMatch(BaseModel):
    responder_id: str
    match_score: float = Field(ge=0, le=1)

    @computed_field
    @property
    def confidence(self) -> MatchConfidence:
        return confidence_for_score(self.match_score)


class MatchResult(BaseModel):
    """A reserved assignment. Frozen once built; only alternatives may grow."""

    model_config = ConfigDict(frozen=True)

    match_id: str
    session_id: str
    responder_id: str
    match_score: float = Field(ge=0, le=1)
    score_breakdown: ScoreBreakdown
    response_time_ms: float = Field(ge=0)
    matched_at: datetime
    via_emergency_pool: bool = False
    fallback_used: bool = False
    alternatives: List[AlternativeMatch] = []

    @computed_field
    @property
    def confidence(self) -> MatchConfidence:
        return confidence_for_score(self.match_score)

    def add_alternative(self, alternative: AlternativeMatch) -> None:
        self.alternatives.append(alternative)


class FallbackAction(str, Enum):
    ACCEPTED_BEST_AVAILABLE = "ACCEPTED_BEST_AVAILABLE"
    ESCALATED_TO_EMERGENCY = "ESCALATED_TO_EMERGENCY"
    TRANSFERRED_TO_PARTNER = "TRANSFERRED_TO_PARTNER"
    AUTOMATED_RESOURCES = "AUTOMATED_RESOURCES"
    QUEUED_FOR_RETRY = "QUEUED_FOR_RETRY"


class FallbackReason(str, Enum):
    NO_AVAILABLE_RESPONDERS = "NO_AVAILABLE_RESPONDERS"
    BELOW_THRESHOLD = "BELOW_THRESHOLD"
    MATCH_TIMEOUT = "MATCH_TIMEOUT"
    CAPACITY_EXHAUSTED = "CAPACITY_EXHAUSTED"
    DEPENDENCY_UNAVAILABLE = "DEPENDENCY_UNAVAILABLE"


class FallbackDecision(BaseModel):
    """What happened to a request that did not get a regular match."""

    decision_id: str
    session_id: str
    strategy: FallbackStrategy
    action: FallbackAction
    reason: FallbackReason
    detail: str = ""
    partner: Optional[str] = None
    resources: List[str] = []
    retry_after_seconds: Optional[float] = None
    best_candidate_score: Optional[float] = None
    response_time_ms: float = 0.0
    decided_at: datetime


class MatchingMetrics(BaseModel):
    total_requests: int = 0
    successful_matches: int = 0
    emergency_matches: int = 0
    fallbacks: int = 0
    timeouts: int = 0
    invalid_requests: int = 0
    reservation_conflicts: int = 0
    average_match_time_ms: float = 0.0
