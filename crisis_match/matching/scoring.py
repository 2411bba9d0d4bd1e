"""
Composite match scoring.

Each candidate gets component scores in [0, 1]; the weighted sum under the
request's urgency tier is the base score, then recorded bonuses and
penalties are applied and the result is clamped to [0, 1].
"""

from datetime import datetime
from typing import Dict, List, Optional

from crisis_match.models.config import MatchingConfig
from crisis_match.models.cultural import ComprehensiveCulturalMatch
from crisis_match.models.profile import ResponderProfile
from crisis_match.models.quality import QualityScore
from crisis_match.models.request import CrisisUrgency, MatchRequest
from crisis_match.models.responder import ResponderStatus
from crisis_match.models.result import AdjustmentType, ScoreAdjustment, ScoreBreakdown
from crisis_match.models.skills import (
    ExperienceLevel,
    experience_rank,
    specialty_level_rank,
)
from crisis_match.models.workload import BurnoutRiskLevel, WorkloadAssessment

_SPECIALTY_LEVEL_SCORES = [0.6, 0.7, 0.8, 0.9, 1.0]   # BASIC .. SPECIALIST

EMERGENCY_TIERS = (CrisisUrgency.CRITICAL, CrisisUrgency.EMERGENCY)


class CandidateEvaluation:
    """Everything gathered about one candidate for one request."""

    def __init__(
        self,
        status: ResponderStatus,
        profile: ResponderProfile,
        workload: Optional[WorkloadAssessment] = None,
        quality: Optional[QualityScore] = None,
        cultural: Optional[ComprehensiveCulturalMatch] = None,
        degraded: Optional[List[str]] = None,
    ):
        self.status = status
        self.profile = profile
        self.workload = workload
        self.quality = quality
        self.cultural = cultural
        self.degraded = degraded or []
        self.breakdown: Optional[ScoreBreakdown] = None

    @property
    def responder_id(self) -> str:
        return self.status.responder_id

    @property
    def score(self) -> float:
        return self.breakdown.overall if self.breakdown else 0.0

    @property
    def burnout_level(self) -> Optional[BurnoutRiskLevel]:
        return self.workload.burnout_risk.level if self.workload else None


class CompositeScorer:
    def __init__(self, config: Optional[MatchingConfig] = None):
        self.config = config or MatchingConfig()

    def weights_for(self, urgency: CrisisUrgency) -> Dict[str, float]:
        weights = self.config.tier_weights.get(urgency.value)
        if weights is None:
            weights = self.config.tier_weights[CrisisUrgency.NORMAL.value]
        return weights

    def score(
        self,
        evaluation: CandidateEvaluation,
        request: MatchRequest,
        current_time: Optional[datetime] = None,
    ) -> ScoreBreakdown:
        now = current_time or datetime.utcnow()
        components = {
            "specialty": self.specialty_score(evaluation.profile, request),
            "language": (
                evaluation.cultural.language_match.language_score
                if evaluation.cultural else 0.5
            ),
            "experience": self.experience_score(evaluation.profile, request),
            "availability": self.availability_score(evaluation.status, now),
            "performance": evaluation.quality.overall if evaluation.quality else 0.5,
            "geographic": self.geographic_score(evaluation.status, evaluation.profile, request),
            "cultural": (
                evaluation.cultural.cultural_match.overall_score
                if evaluation.cultural else 0.5
            ),
            "workload": self.workload_score(evaluation.workload),
            "reliability": self.reliability_score(evaluation.profile, evaluation.quality),
        }
        if request.urgency in EMERGENCY_TIERS:
            components["emergency"] = self.emergency_score(evaluation.status, evaluation.profile)

        weights = self.weights_for(request.urgency)
        total_weight = sum(weights.get(name, 0.0) for name in components) or 1.0
        base = sum(components[name] * weights.get(name, 0.0) for name in components) / total_weight

        adjustments = self.adjustments(evaluation, request)
        overall = base + sum(a.value for a in adjustments)

        breakdown = ScoreBreakdown(
            overall=round(min(1.0, max(0.0, overall)), 4),
            base_score=round(base, 4),
            components={k: round(v, 4) for k, v in components.items()},
            weights={k: weights.get(k, 0.0) for k in components},
            adjustments=adjustments,
            degraded_components=list(evaluation.degraded),
        )
        evaluation.breakdown = breakdown
        return breakdown

    # --- Components ---

    def specialty_score(self, profile: ResponderProfile, request: MatchRequest) -> float:
        if not request.required_specialties:
            return 0.5 if not profile.specialties else 0.7
        scores = []
        for specialty in request.required_specialties:
            info = profile.specialty(specialty)
            if info is None:
                scores.append(0.0)
                continue
            level_score = _SPECIALTY_LEVEL_SCORES[specialty_level_rank(info.level)]
            if info.sessions_handled >= 10:
                level_score = min(1.0, level_score + 0.05 * info.success_rate)
            scores.append(level_score)
        return sum(scores) / len(scores)

    def experience_score(self, profile: ResponderProfile, request: MatchRequest) -> float:
        hours_score = min(1.0, profile.total_hours / 500.0)
        level_score = experience_rank(profile.experience_level) / (len(ExperienceLevel) - 1)
        return 0.5 * hours_score + 0.5 * level_score

    def availability_score(self, status: ResponderStatus, now: datetime) -> float:
        score = 1.0 - status.load_ratio
        age = (now - status.last_heartbeat).total_seconds()
        if age <= self.config.recent_activity_seconds:
            score += 0.1
        return min(1.0, max(0.0, score))

    def geographic_score(
        self,
        status: ResponderStatus,
        profile: ResponderProfile,
        request: MatchRequest,
    ) -> float:
        user = request.user_location
        responder = status.location or profile.location
        if user is None or responder is None:
            return 0.5

        score = 0.0
        if user.country_code and responder.country_code:
            if user.country_code.upper() == responder.country_code.upper():
                score += 0.5
        else:
            score += 0.25
        score += 0.5 * timezone_compatibility(user.utc_offset, responder.utc_offset)
        return min(1.0, score)

    def workload_score(self, workload: Optional[WorkloadAssessment]) -> float:
        if workload is None:
            return 0.5
        burnout = workload.burnout_risk.score
        utilization = min(1.0, workload.utilization.current)
        return max(0.0, 1.0 - (0.6 * burnout + 0.4 * utilization))

    def reliability_score(
        self, profile: ResponderProfile, quality: Optional[QualityScore]
    ) -> float:
        if quality is not None and not quality.from_prior and "reliability" in quality.components:
            return 0.5 * quality.components["reliability"] + 0.5 * profile.response_rate
        return profile.response_rate

    def emergency_score(self, status: ResponderStatus, profile: ResponderProfile) -> float:
        readiness = 0.6 if status.emergency_available else 0.2
        return min(1.0, readiness + 0.4 * profile.emergency_rating / 10.0)

    # --- Adjustments ---

    def adjustments(
        self, evaluation: CandidateEvaluation, request: MatchRequest
    ) -> List[ScoreAdjustment]:
        c = self.config
        profile = evaluation.profile
        adjustments: List[ScoreAdjustment] = []

        for specialty in request.preferred_specialties:
            if profile.specialty(specialty) is not None:
                adjustments.append(ScoreAdjustment(
                    type=AdjustmentType.BONUS, value=c.preferred_specialty_bonus,
                    reason=f"Has preferred specialty {specialty.value}", category="specialty",
                ))
        for code in request.preferred_languages:
            if profile.language(code) is not None:
                adjustments.append(ScoreAdjustment(
                    type=AdjustmentType.BONUS, value=c.preferred_language_bonus,
                    reason=f"Speaks preferred language {code}", category="language",
                ))
        if evaluation.responder_id in request.prefer_responders:
            adjustments.append(ScoreAdjustment(
                type=AdjustmentType.BONUS, value=c.preferred_responder_bonus,
                reason="Previously worked with this user", category="continuity",
            ))
        if (
            request.urgency in EMERGENCY_TIERS
            and evaluation.status.emergency_available
        ):
            adjustments.append(ScoreAdjustment(
                type=AdjustmentType.BONUS, value=0.05,
                reason="Emergency-ready responder for urgent request", category="emergency",
            ))

        if evaluation.quality is not None and evaluation.quality.below_floor:
            adjustments.append(ScoreAdjustment(
                type=AdjustmentType.PENALTY, value=-c.quality_floor_penalty,
                reason="Quality below minimum floor", category="performance",
            ))
        if request.severity >= 8 and experience_rank(profile.experience_level) < experience_rank(
            ExperienceLevel.ADVANCED
        ):
            adjustments.append(ScoreAdjustment(
                type=AdjustmentType.PENALTY, value=-c.severity_experience_penalty,
                reason="High-severity crisis with limited experience", category="experience",
            ))
        if "workload" in evaluation.degraded:
            adjustments.append(ScoreAdjustment(
                type=AdjustmentType.PENALTY, value=-c.degraded_workload_penalty,
                reason="Workload assessment unavailable", category="workload",
            ))
        return adjustments

    def load_balancing_adjustments(self, evaluation: CandidateEvaluation) -> List[ScoreAdjustment]:
        """Penalties that steer sessions away from strained responders."""
        c = self.config
        adjustments = []
        workload = evaluation.workload
        if workload is None:
            return adjustments
        risk = workload.burnout_risk
        if risk.level in (BurnoutRiskLevel.HIGH, BurnoutRiskLevel.CRITICAL):
            adjustments.append(ScoreAdjustment(
                type=AdjustmentType.PENALTY,
                value=-round(c.burnout_penalty_factor * risk.score, 4),
                reason=f"{risk.level.value} burnout risk ({risk.score:.2f})",
                category="load_balancing",
            ))
        utilization = workload.utilization.current
        if utilization > c.utilization_penalty_start:
            span = 1.0 - c.utilization_penalty_start
            excess = min(1.0, (utilization - c.utilization_penalty_start) / span) if span else 1.0
            adjustments.append(ScoreAdjustment(
                type=AdjustmentType.PENALTY,
                value=-round(c.utilization_penalty_max * excess, 4),
                reason=f"Utilization at {utilization:.0%}",
                category="load_balancing",
            ))
        return adjustments

    def apply(self, evaluation: CandidateEvaluation, extra: List[ScoreAdjustment]) -> ScoreBreakdown:
        """Fold additional adjustments into an existing breakdown."""
        breakdown = evaluation.breakdown
        if breakdown is None or not extra:
            return breakdown
        adjustments = breakdown.adjustments + extra
        overall = breakdown.base_score + sum(a.value for a in adjustments)
        updated = breakdown.model_copy(update={
            "adjustments": adjustments,
            "overall": round(min(1.0, max(0.0, overall)), 4),
        })
        evaluation.breakdown = updated
        return updated


def timezone_compatibility(user_offset: Optional[float], responder_offset: Optional[float]) -> float:
    """1.0 for the same offset, falling linearly to 0.1 at twelve hours apart."""
    if user_offset is None or responder_offset is None:
        return 0.5
    difference = abs(user_offset - responder_offset)
    difference = min(difference, 24 - difference)
    return max(0.1, 1.0 - 0.9 * difference / 12.0)
