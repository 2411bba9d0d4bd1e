from crisis_match.models.audit import DecisionRecord
from crisis_match.models.capacity import (
    CapacityGap,
    CapacityPlan,
    CapacityRecommendation,
    CapacityRecommendationType,
    CapacityRiskAssessment,
    ContingencyPlan,
    DemandForecast,
    DemandRecord,
    GapSeverity,
    PlanGranularity,
    ResponderCapacity,
)
from crisis_match.models.config import (
    ComponentBudgets,
    CulturalConfig,
    EmergencyPoolConfig,
    MatchingConfig,
    MonitorConfig,
    QualityConfig,
    RegistryConfig,
    WorkloadConfig,
)
from crisis_match.models.cultural import (
    ComprehensiveCulturalMatch,
    CulturalConsideration,
    CulturalMatch,
    LanguageMatch,
)
from crisis_match.models.emergency import EmergencyAssignment, EmergencyPool, RosterTier
from crisis_match.models.events import (
    EventCategory,
    EventSeverity,
    MatchingEvent,
    MatchingEventType,
)
from crisis_match.models.monitoring import Intervention, InterventionDampening, InterventionType
from crisis_match.models.profile import (
    CulturalCertification,
    CulturalCompetency,
    LanguageSkill,
    ResponderProfile,
    SpecialtyInfo,
    WellnessSnapshot,
)
from crisis_match.models.quality import QualityScore, QualityTrend, SessionOutcome
from crisis_match.models.request import (
    CrisisUrgency,
    FallbackStrategy,
    LanguageRequirement,
    MatchRequest,
    SessionType,
)
from crisis_match.models.responder import (
    AvailabilityFilter,
    GeographicLocation,
    ResponderOnlineStatus,
    ResponderStatus,
)
from crisis_match.models.result import (
    AdjustmentType,
    AlternativeMatch,
    FallbackAction,
    FallbackDecision,
    FallbackReason,
    MatchConfidence,
    MatchingMetrics,
    MatchResult,
    ScoreAdjustment,
    ScoreBreakdown,
    confidence_for_score,
)
from crisis_match.models.skills import (
    CrisisSpecialty,
    ExperienceLevel,
    LanguageProficiency,
    SpecialtyLevel,
)
from crisis_match.models.workload import (
    BurnoutFactor,
    BurnoutRisk,
    BurnoutRiskLevel,
    CurrentWorkload,
    ProposedShift,
    RecommendationType,
    ShiftValidation,
    UtilizationTrend,
    ViolationSeverity,
    ViolationType,
    WorkloadAssessment,
    WorkloadCapacity,
    WorkloadRecommendation,
    WorkloadUtilization,
    WorkloadViolation,
)

__all__ = [
    "AdjustmentType",
    "AlternativeMatch",
    "AvailabilityFilter",
    "BurnoutFactor",
    "BurnoutRisk",
    "BurnoutRiskLevel",
    "CapacityGap",
    "CapacityPlan",
    "CapacityRecommendation",
    "CapacityRecommendationType",
    "CapacityRiskAssessment",
    "ComponentBudgets",
    "ComprehensiveCulturalMatch",
    "ContingencyPlan",
    "CrisisSpecialty",
    "CrisisUrgency",
    "CulturalCertification",
    "CulturalCompetency",
    "CulturalConfig",
    "CulturalConsideration",
    "CulturalMatch",
    "CurrentWorkload",
    "DecisionRecord",
    "DemandForecast",
    "DemandRecord",
    "EmergencyAssignment",
    "EmergencyPool",
    "EmergencyPoolConfig",
    "EventCategory",
    "EventSeverity",
    "ExperienceLevel",
    "FallbackAction",
    "FallbackDecision",
    "FallbackReason",
    "FallbackStrategy",
    "GapSeverity",
    "GeographicLocation",
    "Intervention",
    "InterventionDampening",
    "InterventionType",
    "LanguageMatch",
    "LanguageProficiency",
    "LanguageRequirement",
    "LanguageSkill",
    "MatchConfidence",
    "MatchingConfig",
    "MatchingEvent",
    "MatchingEventType",
    "MatchingMetrics",
    "MatchRequest",
    "MatchResult",
    "MonitorConfig",
    "PlanGranularity",
    "ProposedShift",
    "QualityConfig",
    "QualityScore",
    "QualityTrend",
    "RecommendationType",
    "RegistryConfig",
    "ResponderCapacity",
    "ResponderOnlineStatus",
    "ResponderProfile",
    "ResponderStatus",
    "RosterTier",
    "ScoreAdjustment",
    "ScoreBreakdown",
    "SessionOutcome",
    "SessionType",
    "ShiftValidation",
    "SpecialtyInfo",
    "SpecialtyLevel",
    "UtilizationTrend",
    "ViolationSeverity",
    "ViolationType",
    "WellnessSnapshot",
    "WorkloadAssessment",
    "WorkloadCapacity",
    "WorkloadConfig",
    "WorkloadRecommendation",
    "WorkloadUtilization",
    "WorkloadViolation",
    "confidence_for_score",
]
