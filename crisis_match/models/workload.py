"""Workload, burnout and shift-validation models."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class BurnoutRiskLevel(str, Enum):
    LOW = "LOW"             # < 0.3
    MEDIUM = "MEDIUM"       # < 0.6
    HIGH = "HIGH"           # < 0.8
    CRITICAL = "CRITICAL"


class ViolationType(str, Enum):
    DAILY_HOURS_EXCEEDED = "DAILY_HOURS_EXCEEDED"
    WEEKLY_HOURS_EXCEEDED = "WEEKLY_HOURS_EXCEEDED"
    CONSECUTIVE_SESSIONS_EXCEEDED = "CONSECUTIVE_SESSIONS_EXCEEDED"
    CONCURRENT_SESSIONS_EXCEEDED = "CONCURRENT_SESSIONS_EXCEEDED"
    MANDATORY_BREAK_OVERDUE = "MANDATORY_BREAK_OVERDUE"
    BURNOUT_THRESHOLD_EXCEEDED = "BURNOUT_THRESHOLD_EXCEEDED"
    INSUFFICIENT_REST = "INSUFFICIENT_REST"
    PERFORMANCE_DECLINE = "PERFORMANCE_DECLINE"


class ViolationSeverity(str, Enum):
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class RecommendationType(str, Enum):
    CONTINUE = "CONTINUE"
    TAKE_BREAK = "TAKE_BREAK"
    REDUCE_LOAD = "REDUCE_LOAD"
    END_SHIFT = "END_SHIFT"
    SEEK_SUPPORT = "SEEK_SUPPORT"


class UtilizationTrend(str, Enum):
    INCREASING = "INCREASING"
    STABLE = "STABLE"
    DECREASING = "DECREASING"


class BurnoutFactor(BaseModel):
    factor: str
    impact: float                   # contribution to the burnout score
    value: float
    description: str


class BurnoutRisk(BaseModel):
    level: BurnoutRiskLevel
    score: float = Field(ge=0, le=1)
    factors: List[BurnoutFactor] = []
    recommendations: List[str] = []


class CurrentWorkload(BaseModel):
    active_sessions: int = 0
    hours_today: float = 0.0
    hours_this_week: float = 0.0
    consecutive_sessions: int = 0
    minutes_since_break: float = 0.0
    sessions_today: int = 0


class WorkloadCapacity(BaseModel):
    max_concurrent_sessions: int
    max_daily_hours: float
    max_weekly_hours: float
    max_consecutive_sessions: int
    mandatory_break_after_minutes: float


class WorkloadUtilization(BaseModel):
    current: float = 0.0            # active sessions / max concurrent
    daily: float = 0.0
    weekly: float = 0.0
    trend: UtilizationTrend = UtilizationTrend.STABLE


class WorkloadRecommendation(BaseModel):
    type: RecommendationType
    priority: str                   # "LOW" | "MEDIUM" | "HIGH" | "URGENT"
    description: str
    action_items: List[str] = []


class WorkloadViolation(BaseModel):
    id: str
    type: ViolationType
    severity: ViolationSeverity
    description: str
    value: float
    threshold: float
    detected_at: datetime


class WorkloadAssessment(BaseModel):
    responder_id: str
    current: CurrentWorkload
    capacity: WorkloadCapacity
    utilization: WorkloadUtilization
    burnout_risk: BurnoutRisk
    recommendations: List[WorkloadRecommendation] = []
    violations: List[WorkloadViolation] = []
    assessed_at: datetime


class ProposedShift(BaseModel):
    shift_id: str = ""
    start_time: datetime
    end_time: datetime
    role: str = "responder"
    estimated_load: float = Field(ge=0, le=1, default=0.7)
    emergency_available: bool = False

    @property
    def duration_hours(self) -> float:
        return max(0.0, (self.end_time - self.start_time).total_seconds() / 3600.0)


class ShiftValidation(BaseModel):
    responder_id: str
    is_valid: bool
    violations: List[WorkloadViolation] = []
    recommendations: List[str] = []
    adjustments: Optional[ProposedShift] = None
