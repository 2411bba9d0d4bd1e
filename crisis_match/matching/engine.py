"""
Match Engine — turns a match request into a reserved responder or an
explicit fallback decision.

  validate → (EMERGENCY: emergency pool) → candidates → hard filters
  → concurrent workload / quality / cultural evaluation → burnout gate
  → composite score → load balancing → reserve (retry on conflict)
  → fallback strategy when nothing viable is reserved in time

Every path ends in a MatchResult or a FallbackDecision; only
InvalidCriteria reaches the caller.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Awaitable, Dict, List, Optional, TypeVar, Union
from uuid import uuid4

from pydantic import ValidationError

from crisis_match.availability.registry import AvailabilityRegistry
from crisis_match.cache.ttl import TTLCache
from crisis_match.cultural.engine import CulturalCompatibilityEngine
from crisis_match.emergency.pool import EmergencyPoolManager
from crisis_match.errors import (
    CapacityExceeded,
    DependencyUnavailable,
    InvalidCriteria,
    MatchTimeout,
    NoAvailableResponders,
    UnknownResponder,
)
from crisis_match.events.bus import EventBus, make_event
from crisis_match.matching.scoring import (
    EMERGENCY_TIERS,
    CandidateEvaluation,
    CompositeScorer,
)
from crisis_match.models.config import MatchingConfig
from crisis_match.models.emergency import EmergencyAssignment, RosterTier
from crisis_match.models.events import EventCategory, EventSeverity, MatchingEventType
from crisis_match.models.profile import ResponderProfile
from crisis_match.models.request import CrisisUrgency, FallbackStrategy, MatchRequest
from crisis_match.models.responder import AvailabilityFilter, ResponderStatus
from crisis_match.models.result import (
    AlternativeMatch,
    FallbackAction,
    FallbackDecision,
    FallbackReason,
    MatchingMetrics,
    MatchResult,
    ScoreBreakdown,
)
from crisis_match.models.skills import ExperienceLevel, experience_rank, proficiency_rank
from crisis_match.models.workload import BurnoutRiskLevel
from crisis_match.profiles.store import ResponderProfileStore
from crisis_match.quality.tracker import QualityTracker
from crisis_match.workload.assessor import WorkloadAssessor

logger = logging.getLogger(__name__)

T = TypeVar("T")
MatchOutcome = Union[MatchResult, FallbackDecision]

_TIER_READINESS: Dict[RosterTier, float] = {
    RosterTier.CRITICAL_RESPONSE: 1.0,
    RosterTier.SPECIALIST_BACKUP: 0.9,
    RosterTier.ON_CALL_SUPERVISOR: 0.8,
    RosterTier.HANDOFF: 0.7,
}

_EMERGENCY_WEIGHTS = {"emergency": 0.5, "availability": 0.3, "specialty": 0.2}


class _MatchContext:
    """Per-request state that survives a deadline cancellation."""

    def __init__(self, request: MatchRequest, started: float):
        self.request = request
        self.started = started
        self.ranked: List[CandidateEvaluation] = []
        self.attempted: set = set()

    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.started) * 1000.0


class MatchEngine:
    def __init__(
        self,
        registry: AvailabilityRegistry,
        profile_store: ResponderProfileStore,
        workload: WorkloadAssessor,
        quality: QualityTracker,
        cultural: CulturalCompatibilityEngine,
        emergency_pool: Optional[EmergencyPoolManager] = None,
        config: Optional[MatchingConfig] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.registry = registry
        self.profile_store = profile_store
        self.workload = workload
        self.quality = quality
        self.cultural = cultural
        self.emergency_pool = emergency_pool
        self.config = config or MatchingConfig()
        self.event_bus = event_bus
        self.scorer = CompositeScorer(self.config)
        self.metrics = MatchingMetrics()
        self._profile_cache: TTLCache[ResponderProfile] = TTLCache(
            self.config.profile_cache_ttl_seconds
        )
        self._completed = 0

    # --- Public API ---

    async def find_match(self, session_id: str, criteria) -> Optional[MatchResult]:
        """The reserved match, or None when the request was resolved by fallback."""
        outcome = await self.match(session_id, criteria)
        return outcome if isinstance(outcome, MatchResult) else None

    async def match(self, session_id: str, criteria) -> MatchOutcome:
        started = time.monotonic()
        self.metrics.total_requests += 1
        try:
            request = self.validate_criteria(session_id, criteria)
        except InvalidCriteria:
            self.metrics.invalid_requests += 1
            raise

        self.workload.record_demand(request)
        ctx = _MatchContext(request, started)
        budget = self.budget_for(request)

        try:
            outcome = await asyncio.wait_for(self._run(ctx), timeout=budget)
        except asyncio.TimeoutError:
            error = MatchTimeout(
                f"Session {request.session_id} exceeded its {budget:.1f}s matching budget"
            )
            logger.warning("%s", error)
            self.metrics.timeouts += 1
            self._publish(
                MatchingEventType.MATCH_TIMEOUT, EventCategory.ALERT,
                severity=EventSeverity.WARNING, outcome="timeout",
                session_id=request.session_id,
                data={"budget_seconds": budget, "urgency": request.urgency.value},
            )
            outcome = await self._fallback(ctx, FallbackReason.MATCH_TIMEOUT, detail=str(error))

        self._record_metrics(outcome, ctx)
        return outcome

    def release(self, responder_id: str, session_id: Optional[str] = None) -> ResponderStatus:
        return self.registry.release(responder_id, session_id=session_id)

    def validate_criteria(self, session_id: str, criteria) -> MatchRequest:
        if not session_id:
            raise InvalidCriteria("session_id is required")
        if isinstance(criteria, MatchRequest):
            data = criteria.model_dump(warnings=False)
        elif isinstance(criteria, dict):
            data = dict(criteria)
        else:
            raise InvalidCriteria(
                f"Match criteria must be a MatchRequest or mapping, got {type(criteria).__name__}"
            )
        data["session_id"] = session_id
        if not data.get("requested_at"):
            data["requested_at"] = datetime.utcnow()
        try:
            return MatchRequest.model_validate(data)
        except ValidationError as exc:
            raise InvalidCriteria(
                f"Invalid match criteria: {exc.error_count()} error(s)",
                errors=exc.errors(include_url=False, include_context=False),
            ) from exc

    def budget_for(self, request: MatchRequest) -> float:
        budget = self.config.tier_budgets.get(
            request.urgency.value, self.config.tier_budgets[CrisisUrgency.NORMAL.value]
        )
        if request.max_wait_time is not None:
            budget = min(budget, request.max_wait_time)
        return budget

    # --- Matching pipeline ---

    async def _run(self, ctx: _MatchContext) -> MatchOutcome:
        request = ctx.request

        if request.urgency == CrisisUrgency.EMERGENCY:
            result = await self._match_from_pool(ctx)
            if result is not None:
                return result
            logger.warning(
                "Emergency pool had no responder for %s; falling back to full matching",
                request.session_id,
            )

        threshold = (
            self.config.good_match_threshold
            if request.fallback_strategy == FallbackStrategy.ACCEPT_GOOD_MATCH
            else self.config.viability_threshold
        )

        while True:
            try:
                ctx.ranked = await self._rank_candidates(request)
                reason = None
            except NoAvailableResponders as exc:
                logger.info("No candidates for %s: %s", request.session_id, exc)
                ctx.ranked = []
                reason = FallbackReason.NO_AVAILABLE_RESPONDERS
            except DependencyUnavailable as exc:
                logger.error("Matching degraded for %s: %s", request.session_id, exc)
                ctx.ranked = []
                reason = FallbackReason.DEPENDENCY_UNAVAILABLE

            if reason is None:
                viable = [e for e in ctx.ranked if e.score >= threshold]
                if viable:
                    result = self._reserve_best(ctx, viable)
                    if result is not None:
                        return result
                    reason = FallbackReason.CAPACITY_EXHAUSTED
                else:
                    reason = FallbackReason.BELOW_THRESHOLD

            if request.fallback_strategy != FallbackStrategy.WAIT_FOR_OPTIMAL:
                return await self._fallback(ctx, reason)
            # Keep polling; the request deadline ends the wait.
            await asyncio.sleep(self.config.wait_poll_interval_seconds)

    async def _rank_candidates(self, request: MatchRequest) -> List[CandidateEvaluation]:
        country = None
        if request.requires_same_country and request.user_location is not None:
            country = request.user_location.country_code
        availability_filter = AvailabilityFilter(
            include_emergency_only=request.urgency in EMERGENCY_TIERS,
            exclude_responder_ids=request.avoid_responders,
            country_code=country,
        )
        try:
            statuses = self.registry.get_available(availability_filter)
        except Exception as exc:
            raise DependencyUnavailable("availability registry", str(exc)) from exc
        if not statuses:
            raise NoAvailableResponders("no responders are available")

        profiles = await self._load_profiles([s.responder_id for s in statuses])
        candidates = [
            (status, profiles[status.responder_id])
            for status in statuses
            if status.responder_id in profiles
            and self.passes_hard_filters(profiles[status.responder_id], request)
        ]
        if not candidates:
            raise NoAvailableResponders(
                f"{len(statuses)} available responder(s), none meet the hard requirements"
            )

        evaluations = await asyncio.gather(
            *(self._evaluate(status, profile, request) for status, profile in candidates)
        )

        ranked: List[CandidateEvaluation] = []
        balanced = []
        for evaluation in evaluations:
            if evaluation.burnout_level == BurnoutRiskLevel.CRITICAL:
                logger.info(
                    "Excluding %s from %s: critical burnout risk",
                    evaluation.responder_id, request.session_id,
                )
                continue
            if (
                request.urgency == CrisisUrgency.LOW
                and evaluation.quality is not None
                and evaluation.quality.below_floor
            ):
                continue
            self.scorer.score(evaluation, request)
            extra = self.scorer.load_balancing_adjustments(evaluation)
            if extra:
                self.scorer.apply(evaluation, extra)
                balanced.append(evaluation.responder_id)
            ranked.append(evaluation)

        if balanced:
            self._publish(
                MatchingEventType.LOAD_BALANCING_APPLIED, EventCategory.MATCH,
                outcome="penalized", session_id=request.session_id,
                data={"responders": balanced},
            )
        if not ranked:
            raise NoAvailableResponders("every candidate was excluded by workload or quality gates")

        # Without any workload assessment the burnout gate cannot run, so
        # outside emergencies such candidates rank behind every assessed one.
        unassessed_last = request.urgency != CrisisUrgency.EMERGENCY
        ranked.sort(key=lambda e: (
            unassessed_last and e.workload is None,
            -e.score,
            e.status.load_ratio,
            e.responder_id,
        ))
        return ranked

    def passes_hard_filters(self, profile: ResponderProfile, request: MatchRequest) -> bool:
        for specialty in request.required_specialties:
            if profile.specialty(specialty) is None:
                return False
        for requirement in request.required_languages:
            skill = profile.language(requirement.code)
            if skill is None:
                return False
            if proficiency_rank(skill.proficiency) < proficiency_rank(requirement.min_proficiency):
                return False
        if request.minimum_experience_level is not None and experience_rank(
            profile.experience_level
        ) < experience_rank(request.minimum_experience_level):
            return False
        if not request.allow_trainees and profile.experience_level == ExperienceLevel.TRAINEE:
            return False
        return True

    async def _evaluate(
        self,
        status: ResponderStatus,
        profile: ResponderProfile,
        request: MatchRequest,
    ) -> CandidateEvaluation:
        budgets = self.config.budgets
        rid = status.responder_id
        workload, quality, cultural = await asyncio.gather(
            self._bounded("workload", self.workload.assess(rid), budgets.workload, rid),
            self._bounded("quality", self.quality.score(rid), budgets.quality, rid),
            self._bounded(
                "cultural",
                self.cultural.comprehensive_match(rid, request, profile=profile),
                budgets.comprehensive,
                rid,
            ),
        )
        degraded = []
        if workload is None:
            degraded.append("workload")
            workload = self.workload.last_known(rid)
        if quality is None:
            degraded.append("quality")
        if cultural is None:
            degraded.append("cultural")
        return CandidateEvaluation(
            status=status,
            profile=profile,
            workload=workload,
            quality=quality,
            cultural=cultural,
            degraded=degraded,
        )

    async def _bounded(
        self, component: str, call: Awaitable[T], timeout: float, responder_id: str
    ) -> Optional[T]:
        """Run a component call within its budget; None means degraded."""
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "%s evaluation for %s exceeded %.1fs budget", component, responder_id, timeout
            )
        except Exception:
            logger.warning(
                "%s evaluation failed for %s", component, responder_id, exc_info=True
            )
        return None

    async def _load_profiles(self, responder_ids: List[str]) -> Dict[str, ResponderProfile]:
        try:
            profiles = await asyncio.wait_for(
                self.profile_store.get_many(responder_ids),
                timeout=self.config.budgets.profile_lookup,
            )
        except Exception as exc:
            cached = {}
            for rid in responder_ids:
                profile = self._profile_cache.get(rid)
                if profile is not None:
                    cached[rid] = profile
            if not cached:
                raise DependencyUnavailable("profile store", f"profile store failed: {exc!r}") from exc
            logger.error(
                "Profile store failed (%r); matching on %d cached profile(s)", exc, len(cached)
            )
            return cached

        for rid, profile in profiles.items():
            self._profile_cache.set(rid, profile)
        return profiles

    def _reserve_best(
        self,
        ctx: _MatchContext,
        candidates: List[CandidateEvaluation],
        fallback_used: bool = False,
    ) -> Optional[MatchResult]:
        """Reserve the best candidate, moving down the list on capacity races."""
        attempts = 0
        for evaluation in candidates:
            if attempts >= self.config.max_reservation_attempts:
                break
            attempts += 1
            try:
                self.registry.reserve(evaluation.responder_id, session_id=ctx.request.session_id)
            except (CapacityExceeded, UnknownResponder) as exc:
                self.metrics.reservation_conflicts += 1
                logger.info("Reservation for %s failed: %s", ctx.request.session_id, exc)
                ctx.attempted.add(evaluation.responder_id)
                continue
            alternatives = [e for e in ctx.ranked if e is not evaluation]
            return self._build_result(
                ctx,
                evaluation.responder_id,
                evaluation.score,
                evaluation.breakdown,
                fallback_used=fallback_used,
                alternatives=alternatives,
            )
        return None

    async def _match_from_pool(
        self, ctx: _MatchContext, fallback_used: bool = False, timeout: Optional[float] = None
    ) -> Optional[MatchResult]:
        if self.emergency_pool is None:
            return None
        request = ctx.request
        excluded = set(request.avoid_responders) | ctx.attempted
        timeout = timeout or self.config.budgets.emergency_pool

        for _ in range(self.config.max_reservation_attempts):
            try:
                assignment = await asyncio.wait_for(
                    self.emergency_pool.get_emergency_responder(request, exclude=excluded),
                    timeout=timeout,
                )
            except asyncio.TimeoutError:
                logger.warning("Emergency pool lookup for %s timed out", request.session_id)
                return None
            except Exception:
                logger.exception("Emergency pool lookup failed for %s", request.session_id)
                return None
            if assignment is None:
                return None
            excluded.add(assignment.responder_id)

            status = self.registry.get_status(assignment.responder_id)
            profile = self._profile_cache.get(assignment.responder_id)
            if profile is None:
                try:
                    profile = await self.profile_store.get(assignment.responder_id)
                except Exception:
                    logger.warning("Profile lookup failed for %s", assignment.responder_id)
            if status is None:
                continue

            try:
                self.registry.reserve(assignment.responder_id, session_id=request.session_id)
            except (CapacityExceeded, UnknownResponder) as exc:
                self.metrics.reservation_conflicts += 1
                logger.info("Emergency reservation failed: %s", exc)
                continue

            breakdown = self._emergency_breakdown(assignment, status, profile, request)
            self._publish(
                MatchingEventType.EMERGENCY_ESCALATION, EventCategory.MATCH,
                severity=EventSeverity.WARNING, outcome="pool_assignment",
                session_id=request.session_id, responder_id=assignment.responder_id,
                data={"tier": assignment.tier.value, "pool_id": assignment.pool_id},
            )
            return self._build_result(
                ctx,
                assignment.responder_id,
                breakdown.overall,
                breakdown,
                via_emergency_pool=True,
                fallback_used=fallback_used,
            )
        return None

    def _emergency_breakdown(
        self,
        assignment: EmergencyAssignment,
        status: ResponderStatus,
        profile: Optional[ResponderProfile],
        request: MatchRequest,
    ) -> ScoreBreakdown:
        components = {
            "emergency": _TIER_READINESS[assignment.tier],
            "availability": 1.0 - status.load_ratio,
            "specialty": self.scorer.specialty_score(profile, request) if profile else 0.5,
        }
        overall = sum(components[k] * w for k, w in _EMERGENCY_WEIGHTS.items())
        return ScoreBreakdown(
            overall=round(min(1.0, max(0.0, overall)), 4),
            base_score=round(overall, 4),
            components={k: round(v, 4) for k, v in components.items()},
            weights=dict(_EMERGENCY_WEIGHTS),
        )

    # --- Fallback ---

    async def _fallback(
        self, ctx: _MatchContext, reason: FallbackReason, detail: str = ""
    ) -> MatchOutcome:
        request = ctx.request
        strategy = request.fallback_strategy
        logger.warning(
            "Applying %s fallback for %s (%s)", strategy.value, request.session_id, reason.value
        )

        if strategy in (FallbackStrategy.ACCEPT_ANY_MATCH, FallbackStrategy.ACCEPT_GOOD_MATCH):
            if strategy == FallbackStrategy.ACCEPT_ANY_MATCH:
                pool = ctx.ranked
            else:
                pool = [e for e in ctx.ranked if e.score >= self.config.viability_threshold]
            pool = [e for e in pool if e.responder_id not in ctx.attempted]
            result = self._reserve_best(ctx, pool, fallback_used=True)
            if result is not None:
                self._publish_fallback(ctx, FallbackAction.ACCEPTED_BEST_AVAILABLE, reason, result.responder_id)
                return result

        if strategy in (
            FallbackStrategy.ACCEPT_ANY_MATCH,
            FallbackStrategy.ACCEPT_GOOD_MATCH,
            FallbackStrategy.ESCALATE_TO_EMERGENCY,
        ):
            result = await self._match_from_pool(
                ctx, fallback_used=True, timeout=self.config.escalation_timeout_seconds
            )
            if result is not None:
                self._publish_fallback(ctx, FallbackAction.ESCALATED_TO_EMERGENCY, reason, result.responder_id)
                return result
            decision = self._decision(
                ctx, FallbackAction.ESCALATED_TO_EMERGENCY, reason,
                detail=detail or "Emergency pool exhausted; automated resources offered",
                resources=list(self.config.automated_resources),
            )
        elif strategy == FallbackStrategy.TRANSFER_TO_PARTNER:
            partner = self.config.partner_organizations[0] if self.config.partner_organizations else None
            if partner is None:
                decision = self._decision(
                    ctx, FallbackAction.AUTOMATED_RESOURCES, reason,
                    detail="No partner organization configured",
                    resources=list(self.config.automated_resources),
                )
            else:
                decision = self._decision(
                    ctx, FallbackAction.TRANSFERRED_TO_PARTNER, reason, detail=detail, partner=partner,
                )
        elif strategy == FallbackStrategy.AUTO_RESOURCES_ONLY:
            decision = self._decision(
                ctx, FallbackAction.AUTOMATED_RESOURCES, reason, detail=detail,
                resources=list(self.config.automated_resources),
            )
        else:
            decision = self._decision(
                ctx, FallbackAction.QUEUED_FOR_RETRY, reason, detail=detail,
                retry_after_seconds=self.config.queue_retry_seconds,
            )

        self._publish_fallback(ctx, decision.action, reason)
        return decision

    def _decision(
        self,
        ctx: _MatchContext,
        action: FallbackAction,
        reason: FallbackReason,
        **fields,
    ) -> FallbackDecision:
        return FallbackDecision(
            decision_id=f"fb_{uuid4().hex[:12]}",
            session_id=ctx.request.session_id,
            strategy=ctx.request.fallback_strategy,
            action=action,
            reason=reason,
            best_candidate_score=max((e.score for e in ctx.ranked), default=None),
            response_time_ms=round(ctx.elapsed_ms(), 2),
            decided_at=datetime.utcnow(),
            **fields,
        )

    # --- Results, events, metrics ---

    def _build_result(
        self,
        ctx: _MatchContext,
        responder_id: str,
        score: float,
        breakdown: ScoreBreakdown,
        via_emergency_pool: bool = False,
        fallback_used: bool = False,
        alternatives: Optional[List[CandidateEvaluation]] = None,
    ) -> MatchResult:
        result = MatchResult(
            match_id=f"match_{uuid4().hex[:12]}",
            session_id=ctx.request.session_id,
            responder_id=responder_id,
            match_score=score,
            score_breakdown=breakdown,
            response_time_ms=round(ctx.elapsed_ms(), 2),
            matched_at=datetime.utcnow(),
            via_emergency_pool=via_emergency_pool,
            fallback_used=fallback_used,
        )
        for alternative in (alternatives or [])[: self.config.max_alternatives]:
            result.add_alternative(AlternativeMatch(
                responder_id=alternative.responder_id, match_score=alternative.score,
            ))
        self._publish(
            MatchingEventType.RESPONDER_MATCHED, EventCategory.MATCH,
            outcome="matched", session_id=result.session_id, responder_id=responder_id,
            data={
                "match_id": result.match_id,
                "match_score": result.match_score,
                "confidence": result.confidence.value,
                "urgency": ctx.request.urgency.value,
                "via_emergency_pool": via_emergency_pool,
                "fallback_used": fallback_used,
                "response_time_ms": result.response_time_ms,
            },
        )
        return result

    def _publish_fallback(
        self,
        ctx: _MatchContext,
        action: FallbackAction,
        reason: FallbackReason,
        responder_id: Optional[str] = None,
    ) -> None:
        severity = (
            EventSeverity.CRITICAL
            if ctx.request.urgency in EMERGENCY_TIERS and responder_id is None
            else EventSeverity.WARNING
        )
        self._publish(
            MatchingEventType.FALLBACK_APPLIED, EventCategory.FALLBACK,
            severity=severity, outcome=action.value,
            session_id=ctx.request.session_id, responder_id=responder_id,
            data={
                "strategy": ctx.request.fallback_strategy.value,
                "reason": reason.value,
                "urgency": ctx.request.urgency.value,
            },
        )

    def _publish(self, event_type: MatchingEventType, category: EventCategory, **fields) -> None:
        if self.event_bus is not None:
            self.event_bus.publish(make_event(event_type, category, **fields))

    def _record_metrics(self, outcome: MatchOutcome, ctx: _MatchContext) -> None:
        if isinstance(outcome, MatchResult):
            self.metrics.successful_matches += 1
            if outcome.via_emergency_pool:
                self.metrics.emergency_matches += 1
            if outcome.fallback_used:
                self.metrics.fallbacks += 1
        else:
            self.metrics.fallbacks += 1
        self._completed += 1
        elapsed = ctx.elapsed_ms()
        self.metrics.average_match_time_ms = round(
            self.metrics.average_match_time_ms
            + (elapsed - self.metrics.average_match_time_ms) / self._completed,
            2,
        )
