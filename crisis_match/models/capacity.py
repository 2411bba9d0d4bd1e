"""Capacity planning output."""

from datetime import datetime
from enum import Enum
from typing import Dict, List

from pydantic import BaseModel, Field

from crisis_match.models.workload import BurnoutRiskLevel


class PlanGranularity(str, Enum):
    HOUR = "HOUR"
    DAY = "DAY"
    WEEK = "WEEK"


class GapSeverity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class CapacityRecommendationType(str, Enum):
    RECRUITMENT = "RECRUITMENT"
    TRAINING = "TRAINING"
    SCHEDULING = "SCHEDULING"
    WORKLOAD_ADJUSTMENT = "WORKLOAD_ADJUSTMENT"
    PROCESS_IMPROVEMENT = "PROCESS_IMPROVEMENT"


class DemandRecord(BaseModel):
    """One historical request, kept for forecasting."""

    requested_at: datetime
    urgency: str
    specialties: List[str] = []
    languages: List[str] = []


class DemandForecast(BaseModel):
    time_slot: datetime
    duration_minutes: int
    expected_sessions: float
    urgency_distribution: Dict[str, float] = {}
    specialty_demand: Dict[str, float] = {}
    language_demand: Dict[str, float] = {}
    confidence: float = Field(ge=0, le=1)


class ResponderCapacity(BaseModel):
    responder_id: str
    available_hours: float
    session_capacity: float
    projected_utilization: float
    burnout_risk: BurnoutRiskLevel
    constraints: List[str] = []
    flexibility_score: float = Field(ge=0, le=1, default=0.5)


class CapacityGap(BaseModel):
    time_slot: datetime
    duration_minutes: int
    expected_sessions: float
    session_capacity: float
    shortfall_responders: int
    severity: GapSeverity
    affected_specialties: List[str] = []
    affected_languages: List[str] = []
    mitigation: List[str] = []


class CapacityRecommendation(BaseModel):
    type: CapacityRecommendationType
    priority: str
    description: str
    feasibility: float = Field(ge=0, le=1)


class CapacityRiskAssessment(BaseModel):
    overall_risk: GapSeverity
    probability_of_shortfall: float = Field(ge=0, le=1)
    expected_shortfall_hours: float
    high_burnout_share: float = Field(ge=0, le=1)
    risk_factors: List[str] = []


class ContingencyPlan(BaseModel):
    trigger: str
    actions: List[str]


class CapacityPlan(BaseModel):
    plan_id: str
    period_start: datetime
    period_end: datetime
    granularity: PlanGranularity
    demand_forecast: List[DemandForecast] = []
    responder_capacity: List[ResponderCapacity] = []
    capacity_gaps: List[CapacityGap] = []
    recommendations: List[CapacityRecommendation] = []
    risk_assessment: CapacityRiskAssessment
    contingency_plans: List[ContingencyPlan] = []
    confidence: float = Field(ge=0, le=1)
    generated_at: datetime
