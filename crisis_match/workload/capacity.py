"""
Capacity planning.

Demand is forecast per slot with a seasonal-naive model: the same slot in
each of the previous weeks, weighted towards recent weeks (4:3:2:1 for a
four-week lookback). With no covering history the forecast falls back to a
baseline hourly rate at low confidence.

Supply is the scheduled shift time of each responder converted to session
capacity (sessions per hour x concurrency), discounted by burnout risk.
"""

import logging
import math
from bisect import bisect_left
from collections import Counter
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Dict, List, Optional, Set
from uuid import uuid4

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
from crisis_match.models.config import WorkloadConfig
from crisis_match.models.profile import ResponderProfile
from crisis_match.models.request import MatchRequest
from crisis_match.models.workload import BurnoutRiskLevel

if TYPE_CHECKING:
    from crisis_match.workload.assessor import WorkloadAssessor

logger = logging.getLogger(__name__)

SLOT_MINUTES: Dict[PlanGranularity, int] = {
    PlanGranularity.HOUR: 60,
    PlanGranularity.DAY: 24 * 60,
    PlanGranularity.WEEK: 7 * 24 * 60,
}

MAX_SLOTS = 24 * 62

# Share of a responder's nominal capacity still usable at each risk level.
AVAILABILITY_FACTOR: Dict[BurnoutRiskLevel, float] = {
    BurnoutRiskLevel.LOW: 1.0,
    BurnoutRiskLevel.MEDIUM: 0.85,
    BurnoutRiskLevel.HIGH: 0.6,
    BurnoutRiskLevel.CRITICAL: 0.0,
}

_SEVERITY_ORDER = list(GapSeverity)


def _overlap_hours(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> float:
    lo, hi = max(a_start, b_start), min(a_end, b_end)
    return max(0.0, (hi - lo).total_seconds() / 3600.0)


def _week_starts(start: datetime, end: datetime) -> List[datetime]:
    """Monday midnights of every ISO week touching [start, end)."""
    week = datetime(start.year, start.month, start.day) - timedelta(days=start.weekday())
    weeks = []
    while week < end:
        weeks.append(week)
        week += timedelta(days=7)
    return weeks


def _next_month(month: datetime) -> datetime:
    return datetime(month.year + month.month // 12, month.month % 12 + 1, 1)


def _month_starts(start: datetime, end: datetime) -> List[datetime]:
    month = datetime(start.year, start.month, 1)
    months = []
    while month < end:
        months.append(month)
        month = _next_month(month)
    return months


def _peak_hours(shifts, windows: List[datetime], span) -> float:
    """Largest scheduled load in any single window; span maps a window start to its end."""
    return max(
        (
            sum(_overlap_hours(s.start_time, s.end_time, w, span(w)) for s in shifts)
            for w in windows
        ),
        default=0.0,
    )


def gap_severity(shortfall_ratio: float) -> GapSeverity:
    if shortfall_ratio > 0.5:
        return GapSeverity.CRITICAL
    if shortfall_ratio > 0.3:
        return GapSeverity.HIGH
    if shortfall_ratio > 0.1:
        return GapSeverity.MEDIUM
    return GapSeverity.LOW


class CapacityPlanner:
    def __init__(self, assessor: "WorkloadAssessor", config: Optional[WorkloadConfig] = None):
        self.assessor = assessor
        self.config = config or WorkloadConfig()
        self._history: List[DemandRecord] = []
        self._history_times: List[datetime] = []

    def record_request(self, request: MatchRequest, requested_at: Optional[datetime] = None) -> None:
        at = requested_at or request.requested_at or datetime.utcnow()
        record = DemandRecord(
            requested_at=at,
            urgency=request.urgency.value,
            specialties=[s.value for s in request.required_specialties],
            languages=[lang.code.lower() for lang in request.required_languages],
        )
        index = bisect_left(self._history_times, at)
        self._history.insert(index, record)
        self._history_times.insert(index, at)

        horizon = self._history_times[-1] - timedelta(weeks=self.config.forecast_lookback_weeks + 1)
        cut = bisect_left(self._history_times, horizon)
        if cut:
            del self._history[:cut]
            del self._history_times[:cut]

    def records_between(self, start: datetime, end: datetime) -> List[DemandRecord]:
        lo = bisect_left(self._history_times, start)
        hi = bisect_left(self._history_times, end)
        return self._history[lo:hi]

    def forecast(self, slot_start: datetime, minutes: int) -> DemandForecast:
        weeks = self.config.forecast_lookback_weeks
        earliest = self._history_times[0] if self._history_times else None
        samples = []
        matched: List[DemandRecord] = []
        for k in range(1, weeks + 1):
            window_start = slot_start - timedelta(weeks=k)
            if earliest is None or earliest > window_start:
                continue
            records = self.records_between(window_start, window_start + timedelta(minutes=minutes))
            samples.append((len(records), weeks + 1 - k))
            matched.extend(records)

        if samples:
            expected = sum(n * w for n, w in samples) / sum(w for _, w in samples)
            confidence = 0.3 + 0.7 * len(samples) / weeks
        else:
            expected = self.config.baseline_sessions_per_hour * minutes / 60.0
            confidence = 0.2

        urgency = Counter(r.urgency for r in matched)
        specialties = Counter(s for r in matched for s in r.specialties)
        languages = Counter(lang for r in matched for lang in r.languages)
        total = len(matched)

        def scaled(counter: Counter) -> Dict[str, float]:
            return {k: round(expected * v / total, 3) for k, v in counter.items()} if total else {}

        return DemandForecast(
            time_slot=slot_start,
            duration_minutes=minutes,
            expected_sessions=round(expected, 3),
            urgency_distribution=(
                {k: round(v / total, 3) for k, v in urgency.items()} if total else {}
            ),
            specialty_demand=scaled(specialties),
            language_demand=scaled(languages),
            confidence=round(min(1.0, confidence), 3),
        )

    async def generate(
        self,
        start: datetime,
        end: datetime,
        granularity: PlanGranularity = PlanGranularity.HOUR,
        current_time: Optional[datetime] = None,
    ) -> CapacityPlan:
        if end <= start:
            raise ValueError("Planning period end must be after its start")
        minutes = SLOT_MINUTES[PlanGranularity(granularity)]
        slot_count = math.ceil((end - start).total_seconds() / 60.0 / minutes)
        if slot_count > MAX_SLOTS:
            raise ValueError(f"Planning period spans {slot_count} slots; limit is {MAX_SLOTS}")

        now = current_time or datetime.utcnow()
        slots = [start + timedelta(minutes=minutes * i) for i in range(slot_count)]
        forecasts = [self.forecast(slot, minutes) for slot in slots]

        responder_ids = self.assessor.scheduled_responders()
        profiles: Dict[str, ResponderProfile] = {}
        if self.assessor.profile_store is not None and responder_ids:
            profiles = await self.assessor.profile_store.get_many(responder_ids)
        levels: Dict[str, BurnoutRiskLevel] = {}
        for rid in responder_ids:
            assessment = await self.assessor.assess(rid, current_time=now)
            levels[rid] = assessment.burnout_risk.level

        sessions_per_hour = 60.0 / self.config.average_session_minutes
        concurrency = self.config.max_concurrent_sessions
        per_hour = sessions_per_hour * concurrency

        weeks = _week_starts(start, end)
        months = _month_starts(start, end)
        responder_capacity: List[ResponderCapacity] = []
        for rid in responder_ids:
            shifts = self.assessor.shifts_for(rid)
            hours = sum(_overlap_hours(s.start_time, s.end_time, start, end) for s in shifts)
            level = levels[rid]
            constraints = []
            if level == BurnoutRiskLevel.CRITICAL:
                constraints.append("Critical burnout risk: excluded from capacity")
            elif level == BurnoutRiskLevel.HIGH:
                constraints.append("High burnout risk: reduced load")
            weekly_hours = _peak_hours(shifts, weeks, lambda w: w + timedelta(days=7))
            if weekly_hours > self.config.max_weekly_hours:
                constraints.append("Scheduled hours exceed the weekly limit")
            if _peak_hours(shifts, months, _next_month) > self.config.max_monthly_hours:
                constraints.append("Scheduled hours exceed the monthly limit")
            responder_capacity.append(ResponderCapacity(
                responder_id=rid,
                available_hours=round(hours, 3),
                session_capacity=round(hours * per_hour * AVAILABILITY_FACTOR[level], 3),
                projected_utilization=0.0,
                burnout_risk=level,
                constraints=constraints,
                flexibility_score=round(
                    max(0.0, min(1.0, 1 - weekly_hours / self.config.max_weekly_hours)), 3
                ),
            ))

        total_expected = sum(f.expected_sessions for f in forecasts)
        total_capacity = sum(r.session_capacity for r in responder_capacity)
        utilization = total_expected / total_capacity if total_capacity else 0.0
        for rc in responder_capacity:
            rc.projected_utilization = round(min(1.0, utilization), 3) if rc.session_capacity else 0.0

        gaps = [
            gap for gap in (
                self._slot_gap(f, minutes, responder_ids, profiles, levels, per_hour)
                for f in forecasts
            )
            if gap is not None
        ]

        high_burnout = sum(
            1 for lvl in levels.values()
            if lvl in (BurnoutRiskLevel.HIGH, BurnoutRiskLevel.CRITICAL)
        )
        high_burnout_share = high_burnout / len(levels) if levels else 0.0
        risk = self._risk(gaps, len(slots), high_burnout_share, responder_ids)
        forecast_confidence = (
            sum(f.confidence for f in forecasts) / len(forecasts) if forecasts else 0.0
        )
        supply_confidence = 1.0 if responder_ids else 0.5

        return CapacityPlan(
            plan_id=f"plan_{uuid4().hex[:12]}",
            period_start=start,
            period_end=end,
            granularity=granularity,
            demand_forecast=forecasts,
            responder_capacity=responder_capacity,
            capacity_gaps=gaps,
            recommendations=self._recommendations(gaps, high_burnout_share, responder_ids),
            risk_assessment=risk,
            contingency_plans=self._contingencies(risk),
            confidence=round(forecast_confidence * supply_confidence, 3),
            generated_at=now,
        )

    def _slot_gap(
        self,
        forecast: DemandForecast,
        minutes: int,
        responder_ids: List[str],
        profiles: Dict[str, ResponderProfile],
        levels: Dict[str, BurnoutRiskLevel],
        per_hour: float,
    ) -> Optional[CapacityGap]:
        slot_start = forecast.time_slot
        slot_end = slot_start + timedelta(minutes=minutes)

        capacity = 0.0
        on_shift: List[str] = []
        for rid in responder_ids:
            hours = sum(
                _overlap_hours(s.start_time, s.end_time, slot_start, slot_end)
                for s in self.assessor.shifts_for(rid)
            )
            if hours > 0:
                capacity += hours * per_hour * AVAILABILITY_FACTOR[levels[rid]]
                if levels[rid] != BurnoutRiskLevel.CRITICAL:
                    on_shift.append(rid)

        covered_specialties: Set[str] = set()
        covered_languages: Set[str] = set()
        for rid in on_shift:
            profile = profiles.get(rid)
            if profile is None:
                continue
            covered_specialties.update(s.type.value for s in profile.specialties if s.is_active)
            covered_languages.update(lang.code.lower() for lang in profile.languages)
        missing_specialties = sorted(
            s for s, n in forecast.specialty_demand.items() if n > 0 and s not in covered_specialties
        )
        missing_languages = sorted(
            lang for lang, n in forecast.language_demand.items()
            if n > 0 and lang not in covered_languages
        )

        expected = forecast.expected_sessions
        if expected <= capacity + 1e-9 and not missing_specialties and not missing_languages:
            return None

        deficit = max(0.0, expected - capacity)
        per_responder = per_hour * minutes / 60.0
        shortfall = math.ceil(deficit / per_responder) if deficit > 0 else 0
        ratio = deficit / expected if expected else 0.0
        severity = gap_severity(ratio)
        if (missing_specialties or missing_languages) and severity == GapSeverity.LOW:
            severity = GapSeverity.MEDIUM

        mitigation = []
        if shortfall:
            mitigation.append(f"Schedule {shortfall} additional responder(s)")
        if missing_specialties:
            mitigation.append("Cover specialties: " + ", ".join(missing_specialties))
        if missing_languages:
            mitigation.append("Cover languages: " + ", ".join(missing_languages))
        if severity in (GapSeverity.HIGH, GapSeverity.CRITICAL):
            mitigation.append("Pre-arrange partner overflow for this slot")

        return CapacityGap(
            time_slot=slot_start,
            duration_minutes=minutes,
            expected_sessions=expected,
            session_capacity=round(capacity, 3),
            shortfall_responders=shortfall,
            severity=severity,
            affected_specialties=missing_specialties,
            affected_languages=missing_languages,
            mitigation=mitigation,
        )

    def _risk(
        self,
        gaps: List[CapacityGap],
        slot_count: int,
        high_burnout_share: float,
        responder_ids: List[str],
    ) -> CapacityRiskAssessment:
        overall = GapSeverity.LOW
        for gap in gaps:
            if _SEVERITY_ORDER.index(gap.severity) > _SEVERITY_ORDER.index(overall):
                overall = gap.severity
        factors = []
        if gaps:
            factors.append(f"{len(gaps)} of {slot_count} slots under-covered")
        if high_burnout_share > 0.25:
            factors.append(f"{high_burnout_share:.0%} of scheduled responders at high burnout risk")
        if not responder_ids:
            factors.append("No shifts scheduled in the period")
        return CapacityRiskAssessment(
            overall_risk=overall,
            probability_of_shortfall=round(len(gaps) / slot_count, 3) if slot_count else 0.0,
            expected_shortfall_hours=round(sum(g.duration_minutes for g in gaps) / 60.0, 2),
            high_burnout_share=round(high_burnout_share, 3),
            risk_factors=factors,
        )

    def _recommendations(
        self,
        gaps: List[CapacityGap],
        high_burnout_share: float,
        responder_ids: List[str],
    ) -> List[CapacityRecommendation]:
        recs = []
        severe = [g for g in gaps if g.severity in (GapSeverity.HIGH, GapSeverity.CRITICAL)]
        if gaps:
            recs.append(CapacityRecommendation(
                type=CapacityRecommendationType.SCHEDULING,
                priority="HIGH" if severe else "MEDIUM",
                description=f"Add shifts covering {len(gaps)} under-staffed slot(s)",
                feasibility=0.8,
            ))
        if any(g.shortfall_responders > 2 for g in gaps) or any(
            g.severity == GapSeverity.CRITICAL for g in gaps
        ):
            recs.append(CapacityRecommendation(
                type=CapacityRecommendationType.RECRUITMENT,
                priority="HIGH",
                description="Recruit additional responders for recurring shortfalls",
                feasibility=0.5,
            ))
        specialties = sorted({s for g in gaps for s in g.affected_specialties})
        languages = sorted({lang for g in gaps for lang in g.affected_languages})
        if specialties or languages:
            recs.append(CapacityRecommendation(
                type=CapacityRecommendationType.TRAINING,
                priority="MEDIUM",
                description="Train or schedule coverage for: " + ", ".join(specialties + languages),
                feasibility=0.6,
            ))
        if high_burnout_share > 0.25:
            recs.append(CapacityRecommendation(
                type=CapacityRecommendationType.WORKLOAD_ADJUSTMENT,
                priority="HIGH",
                description="Rebalance load away from high-risk responders",
                feasibility=0.7,
            ))
        if not responder_ids:
            recs.append(CapacityRecommendation(
                type=CapacityRecommendationType.PROCESS_IMPROVEMENT,
                priority="HIGH",
                description="Publish responder shift schedules ahead of the period",
                feasibility=0.9,
            ))
        return recs

    def _contingencies(self, risk: CapacityRiskAssessment) -> List[ContingencyPlan]:
        plans = []
        if risk.probability_of_shortfall > 0:
            plans.append(ContingencyPlan(
                trigger="Slot starts under-staffed",
                actions=["Activate the emergency pool", "Page on-call supervisors"],
            ))
        if risk.overall_risk in (GapSeverity.HIGH, GapSeverity.CRITICAL):
            plans.append(ContingencyPlan(
                trigger="Queue wait exceeds the response budget",
                actions=["Transfer overflow to partner lines", "Offer automated resources"],
            ))
        return plans
