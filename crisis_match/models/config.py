"""Tunables for every matching component."""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class WorkloadConfig(BaseModel):
    """Responder protection limits."""

    max_daily_hours: float = 8
    max_weekly_hours: float = 40
    max_monthly_hours: float = 160
    max_consecutive_sessions: int = 6
    max_concurrent_sessions: int = 3
    minimum_break_minutes: float = 15
    mandatory_break_after_minutes: float = 180
    minimum_rest_between_shifts_hours: float = 12
    minimum_performance_rating: float = 7       # 1-10 scale
    high_stress_level: float = 7                # 1-10 scale
    burnout_recovery_hours: float = 24
    cache_ttl_seconds: float = 60
    # Capacity planning
    average_session_minutes: float = 45
    baseline_sessions_per_hour: float = 2.0
    forecast_lookback_weeks: int = 4


class QualityConfig(BaseModel):
    window_size: int = 100
    window_days: int = 90
    minimum_quality: float = 0.5
    default_score: float = 0.7
    min_samples_for_trend: int = 6
    full_confidence_samples: int = 20
    cache_ttl_seconds: float = 300
    # Response-time benchmarks in seconds
    response_time_excellent: float = 30
    response_time_good: float = 60
    response_time_acceptable: float = 120
    component_weights: Dict[str, float] = {
        "resolution": 0.30,
        "satisfaction": 0.25,
        "response_time": 0.20,
        "reliability": 0.25,
    }


class CulturalConfig(BaseModel):
    default_language: str = "en"
    neutral_cultural_score: float = 0.75
    language_weight: float = 0.6
    certification_bonus: float = 0.05
    max_certification_bonus: float = 0.15
    special_needs_importance: float = 1.5


class ComponentBudgets(BaseModel):
    """Per-call time budgets, in seconds."""

    workload: float = 2.0
    shift_validation: float = 1.0
    capacity_plan: float = 5.0
    quality: float = 3.0
    language: float = 2.0
    culture: float = 3.0
    comprehensive: float = 5.0
    emergency_pool: float = 30.0
    profile_lookup: float = 2.0


# Weight tables per urgency tier; each sums to 1.0.
DEFAULT_TIER_WEIGHTS: Dict[str, Dict[str, float]] = {
    "LOW": {
        "specialty": 0.25, "language": 0.15, "experience": 0.10,
        "availability": 0.05, "performance": 0.15, "geographic": 0.07,
        "cultural": 0.10, "workload": 0.08, "reliability": 0.05,
    },
    "NORMAL": {
        "specialty": 0.25, "language": 0.15, "experience": 0.10,
        "availability": 0.12, "performance": 0.12, "geographic": 0.05,
        "cultural": 0.08, "workload": 0.08, "reliability": 0.05,
    },
    "HIGH": {
        "specialty": 0.25, "language": 0.15, "experience": 0.12,
        "availability": 0.18, "performance": 0.10, "geographic": 0.03,
        "cultural": 0.05, "workload": 0.07, "reliability": 0.05,
    },
    "CRITICAL": {
        "specialty": 0.20, "language": 0.12, "experience": 0.15,
        "availability": 0.20, "performance": 0.08, "geographic": 0.02,
        "cultural": 0.03, "workload": 0.05, "reliability": 0.05,
        "emergency": 0.10,
    },
    "EMERGENCY": {
        "specialty": 0.12, "language": 0.10, "experience": 0.10,
        "availability": 0.30, "performance": 0.05, "geographic": 0.02,
        "cultural": 0.01, "workload": 0.05, "reliability": 0.10,
        "emergency": 0.15,
    },
}

DEFAULT_TIER_BUDGETS: Dict[str, float] = {
    "LOW": 10.0,
    "NORMAL": 10.0,
    "HIGH": 5.0,
    "CRITICAL": 5.0,
    "EMERGENCY": 30.0,
}


class MatchingConfig(BaseModel):
    """Configuration for the match engine."""

    viability_threshold: float = Field(ge=0, le=1, default=0.4)
    good_match_threshold: float = Field(ge=0, le=1, default=0.7)
    max_reservation_attempts: int = Field(ge=1, default=3)
    max_alternatives: int = 3
    wait_poll_interval_seconds: float = 0.5
    tier_budgets: Dict[str, float] = dict(DEFAULT_TIER_BUDGETS)
    tier_weights: Dict[str, Dict[str, float]] = {
        tier: dict(weights) for tier, weights in DEFAULT_TIER_WEIGHTS.items()
    }
    budgets: ComponentBudgets = ComponentBudgets()
    # Load balancing
    burnout_penalty_factor: float = 0.2
    utilization_penalty_start: float = 0.8
    utilization_penalty_max: float = 0.1
    # Adjustments
    preferred_specialty_bonus: float = 0.03
    preferred_language_bonus: float = 0.02
    preferred_responder_bonus: float = 0.05
    quality_floor_penalty: float = 0.1
    severity_experience_penalty: float = 0.1
    degraded_workload_penalty: float = 0.05
    recent_activity_seconds: float = 300
    profile_cache_ttl_seconds: float = 600
    partner_organizations: List[str] = ["988 Suicide & Crisis Lifeline"]
    automated_resources: List[str] = [
        "Crisis Text Line: text HOME to 741741",
        "988 Suicide & Crisis Lifeline: call or text 988",
        "Self-guided grounding exercises",
    ]
    queue_retry_seconds: float = 30.0
    escalation_timeout_seconds: float = 5.0


class EmergencyPoolConfig(BaseModel):
    rotation_interval_hours: float = 8
    rotation_schedule: Optional[str] = None     # cron expression, overrides the interval
    overlap_minutes: float = 30
    critical_pool_size: int = 5
    specialist_pool_size: int = 5
    supervisor_pool_size: int = 2
    minimum_critical: int = 2
    minimum_specialist: int = 1
    minimum_supervisor: int = 1
    assessment_timeout_seconds: float = 2.0


class MonitorConfig(BaseModel):
    """Configuration for the workload monitoring loop."""

    interval_seconds: float = 30
    intervention_cooldown_seconds: float = 900
    force_break_on_critical: bool = True
    intervention_history_size: int = 1000


class RegistryConfig(BaseModel):
    heartbeat_staleness_seconds: float = 120
    default_max_concurrent_sessions: int = 3
