"""
Workload Assessor — burnout risk, workload limits and shift validation.

Hours worked are derived from session intervals (overlapping sessions are
merged, so three concurrent chats for an hour count as one hour). A break is
either an explicitly recorded break or any idle gap at least as long as the
minimum break duration.

Assessments are cached per responder and invalidated whenever the registry
reports a change for that responder.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from crisis_match.availability.registry import AvailabilityRegistry
from crisis_match.cache.ttl import TTLCache
from crisis_match.events.bus import EventBus, make_event
from crisis_match.models.capacity import CapacityPlan, PlanGranularity
from crisis_match.errors import MatchTimeout
from crisis_match.models.config import ComponentBudgets, WorkloadConfig
from crisis_match.models.events import (
    EventCategory,
    EventSeverity,
    MatchingEvent,
    MatchingEventType,
)
from crisis_match.models.profile import ResponderProfile
from crisis_match.models.quality import QualityScore
from crisis_match.models.request import MatchRequest
from crisis_match.models.responder import ResponderOnlineStatus
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
from crisis_match.profiles.store import ResponderProfileStore
from crisis_match.quality.tracker import QualityTracker
from crisis_match.workload.capacity import CapacityPlanner

logger = logging.getLogger(__name__)

Interval = Tuple[datetime, datetime]

_LEVEL_ORDER = list(BurnoutRiskLevel)


def burnout_level(score: float) -> BurnoutRiskLevel:
    if score < 0.3:
        return BurnoutRiskLevel.LOW
    if score < 0.6:
        return BurnoutRiskLevel.MEDIUM
    if score < 0.8:
        return BurnoutRiskLevel.HIGH
    return BurnoutRiskLevel.CRITICAL


def merge_intervals(intervals: List[Interval]) -> List[Interval]:
    merged: List[Interval] = []
    for start, end in sorted(intervals):
        if merged and start <= merged[-1][1]:
            if end > merged[-1][1]:
                merged[-1] = (merged[-1][0], end)
        else:
            merged.append((start, end))
    return merged


def hours_within(intervals: List[Interval], window_start: datetime, window_end: datetime) -> float:
    total = 0.0
    for start, end in intervals:
        lo, hi = max(start, window_start), min(end, window_end)
        if hi > lo:
            total += (hi - lo).total_seconds()
    return total / 3600.0


class ResponderActivity:
    """Session, break and shift history for one responder."""

    def __init__(self):
        self.sessions: Dict[str, List[Optional[datetime]]] = {}   # id -> [start, end]
        self.breaks: List[List[Optional[datetime]]] = []
        self.shifts: Dict[str, ProposedShift] = {}

    def session_intervals(self, until: datetime) -> List[Interval]:
        return [
            (start, end or until)
            for start, end in self.sessions.values()
            if start is not None and start <= until
        ]

    def prune(self, before: datetime) -> None:
        self.sessions = {
            sid: span for sid, span in self.sessions.items()
            if span[1] is None or span[1] >= before
        }
        self.breaks = [b for b in self.breaks if b[1] is None or b[1] >= before]


class WorkloadAssessor:
    """Assesses responder workload and guards against burnout."""

    def __init__(
        self,
        registry: AvailabilityRegistry,
        profile_store: Optional[ResponderProfileStore] = None,
        quality_tracker: Optional[QualityTracker] = None,
        config: Optional[WorkloadConfig] = None,
        event_bus: Optional[EventBus] = None,
        budgets: Optional[ComponentBudgets] = None,
    ):
        self.registry = registry
        self.profile_store = profile_store
        self.quality = quality_tracker
        self.config = config or WorkloadConfig()
        self.event_bus = event_bus
        self.budgets = budgets or ComponentBudgets()
        self.planner = CapacityPlanner(self, self.config)
        self._activity: Dict[str, ResponderActivity] = {}
        self._cache: TTLCache[WorkloadAssessment] = TTLCache(self.config.cache_ttl_seconds)
        self._last_known: Dict[str, WorkloadAssessment] = {}
        if event_bus is not None:
            self.attach(event_bus)

    # --- Activity tracking ---

    def attach(self, event_bus: EventBus) -> None:
        """Follow registry events so sessions and breaks are tracked automatically."""
        self.event_bus = event_bus
        event_bus.subscribe(
            self._on_availability_changed,
            event_types=[MatchingEventType.AVAILABILITY_CHANGED],
        )

    def _on_availability_changed(self, event: MatchingEvent) -> None:
        responder_id = event.responder_id
        if not responder_id:
            return
        if event.outcome == "reserved" and event.session_id:
            self.record_session_start(responder_id, event.session_id, event.timestamp)
        elif event.outcome == "released" and event.session_id:
            self.record_session_end(responder_id, event.session_id, event.timestamp)
        elif event.outcome == "status_update":
            previous = event.data.get("previous_status")
            status = event.data.get("status")
            if status == ResponderOnlineStatus.BREAK.value and previous != status:
                self.record_break_start(responder_id, event.timestamp)
            elif previous == ResponderOnlineStatus.BREAK.value and status != previous:
                self.record_break_end(responder_id, event.timestamp)
        self.invalidate(responder_id)

    def _activity_for(self, responder_id: str) -> ResponderActivity:
        activity = self._activity.get(responder_id)
        if activity is None:
            activity = ResponderActivity()
            self._activity[responder_id] = activity
        return activity

    def record_session_start(
        self, responder_id: str, session_id: str, started_at: Optional[datetime] = None
    ) -> None:
        activity = self._activity_for(responder_id)
        activity.sessions[session_id] = [started_at or datetime.utcnow(), None]
        activity.prune(datetime.utcnow() - timedelta(days=35))
        self.invalidate(responder_id)

    def record_session_end(
        self, responder_id: str, session_id: str, ended_at: Optional[datetime] = None
    ) -> None:
        activity = self._activity_for(responder_id)
        span = activity.sessions.get(session_id)
        if span is None:
            logger.debug("Session %s ended without a recorded start", session_id)
            return
        span[1] = ended_at or datetime.utcnow()
        self.invalidate(responder_id)

    def record_break_start(self, responder_id: str, started_at: Optional[datetime] = None) -> None:
        self._activity_for(responder_id).breaks.append([started_at or datetime.utcnow(), None])
        self.invalidate(responder_id)

    def record_break_end(self, responder_id: str, ended_at: Optional[datetime] = None) -> None:
        activity = self._activity_for(responder_id)
        for span in reversed(activity.breaks):
            if span[1] is None:
                span[1] = ended_at or datetime.utcnow()
                break
        self.invalidate(responder_id)

    def record_break(self, responder_id: str, start: datetime, end: datetime) -> None:
        self._activity_for(responder_id).breaks.append([start, end])
        self.invalidate(responder_id)

    def schedule_shift(self, responder_id: str, shift: ProposedShift) -> ProposedShift:
        if not shift.shift_id:
            shift = shift.model_copy(update={"shift_id": f"shift_{uuid4().hex[:12]}"})
        self._activity_for(responder_id).shifts[shift.shift_id] = shift
        return shift

    def cancel_shift(self, responder_id: str, shift_id: str) -> bool:
        activity = self._activity.get(responder_id)
        return bool(activity and activity.shifts.pop(shift_id, None))

    def shifts_for(self, responder_id: str) -> List[ProposedShift]:
        activity = self._activity.get(responder_id)
        if activity is None:
            return []
        return sorted(activity.shifts.values(), key=lambda s: s.start_time)

    def scheduled_responders(self) -> List[str]:
        return [rid for rid, activity in self._activity.items() if activity.shifts]

    def record_demand(self, request: MatchRequest, requested_at: Optional[datetime] = None) -> None:
        self.planner.record_request(request, requested_at)

    def invalidate(self, responder_id: str) -> None:
        self._cache.invalidate(responder_id)

    def last_known(self, responder_id: str) -> Optional[WorkloadAssessment]:
        """Most recent assessment regardless of cache expiry."""
        return self._last_known.get(responder_id)

    # --- Assessment ---

    async def assess(
        self,
        responder_id: str,
        current_time: Optional[datetime] = None,
        use_cache: bool = True,
    ) -> WorkloadAssessment:
        if use_cache and current_time is None:
            cached = self._cache.get(responder_id)
            if cached is not None:
                return cached

        now = current_time or datetime.utcnow()
        status = self.registry.get_status(responder_id)
        profile = await self.profile_store.get(responder_id) if self.profile_store else None
        quality = await self.quality.score(responder_id) if self.quality else None

        current = self._current_workload(responder_id, now)
        if status is not None:
            current.active_sessions = status.current_sessions
            if status.status == ResponderOnlineStatus.BREAK:
                current.minutes_since_break = 0.0

        max_concurrent = (
            status.max_concurrent_sessions if status else self.config.max_concurrent_sessions
        )
        capacity = WorkloadCapacity(
            max_concurrent_sessions=max_concurrent,
            max_daily_hours=self.config.max_daily_hours,
            max_weekly_hours=self.config.max_weekly_hours,
            max_consecutive_sessions=self.config.max_consecutive_sessions,
            mandatory_break_after_minutes=self.config.mandatory_break_after_minutes,
        )
        utilization = WorkloadUtilization(
            current=round(current.active_sessions / max_concurrent, 4),
            daily=round(current.hours_today / self.config.max_daily_hours, 4),
            weekly=round(current.hours_this_week / self.config.max_weekly_hours, 4),
            trend=self._trend(responder_id, now),
        )
        burnout = self.calculate_burnout_risk(current, profile, quality)

        assessment = WorkloadAssessment(
            responder_id=responder_id,
            current=current,
            capacity=capacity,
            utilization=utilization,
            burnout_risk=burnout,
            recommendations=self._recommendations(burnout, utilization, profile),
            violations=self._violations(current, burnout, quality, now),
            assessed_at=now,
        )

        previous = self._last_known.get(responder_id)
        self._last_known[responder_id] = assessment
        self._cache.set(responder_id, assessment)
        self._publish_changes(previous, assessment)
        return assessment

    def _current_workload(self, responder_id: str, now: datetime) -> CurrentWorkload:
        activity = self._activity.get(responder_id)
        if activity is None:
            return CurrentWorkload()

        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        week_start = day_start - timedelta(days=day_start.weekday())
        merged = merge_intervals(activity.session_intervals(now))

        hours_today = hours_within(merged, day_start, now)
        hours_week = hours_within(merged, week_start, now)

        today = [
            (max(s, day_start), e) for s, e in merged if e > day_start
        ]
        sessions_today = sum(
            1 for start, _ in activity.sessions.values()
            if start is not None and day_start <= start <= now
        )
        if not today:
            return CurrentWorkload(
                hours_today=round(hours_today, 4),
                hours_this_week=round(hours_week, 4),
                sessions_today=sessions_today,
            )

        min_break = timedelta(minutes=self.config.minimum_break_minutes)
        break_ends: List[datetime] = []
        resting = False
        for start, end in activity.breaks:
            if start > now:
                continue
            if end is None:
                resting = True
            elif end >= day_start:
                break_ends.append(end)
        for (_, prev_end), (next_start, _) in zip(today, today[1:]):
            if next_start - prev_end >= min_break:
                break_ends.append(next_start)
        if now - today[-1][1] >= min_break:
            resting = True

        last_break_end = max(break_ends) if break_ends else None
        consecutive = sum(
            1 for start, _ in activity.sessions.values()
            if start is not None
            and start >= (last_break_end or day_start)
            and start <= now
        )

        if resting:
            minutes_since_break = 0.0
        else:
            work_start = next(
                (s for s, _ in today if last_break_end is None or s >= last_break_end),
                today[0][0],
            )
            if last_break_end is not None:
                work_start = max(work_start, last_break_end)
            minutes_since_break = max(0.0, (now - work_start).total_seconds() / 60.0)

        return CurrentWorkload(
            hours_today=round(hours_today, 4),
            hours_this_week=round(hours_week, 4),
            consecutive_sessions=consecutive,
            minutes_since_break=round(minutes_since_break, 2),
            sessions_today=sessions_today,
        )

    def calculate_burnout_risk(
        self,
        current: CurrentWorkload,
        profile: Optional[ResponderProfile] = None,
        quality: Optional[QualityScore] = None,
    ) -> BurnoutRisk:
        c = self.config
        factors: List[BurnoutFactor] = []

        def add(name: str, impact: float, value: float, description: str) -> None:
            if impact > 0:
                factors.append(BurnoutFactor(
                    factor=name, impact=round(impact, 4), value=round(value, 4),
                    description=description,
                ))

        if profile is not None:
            baseline = profile.wellness.burnout_score
            add("baseline_wellness", baseline * 0.4, baseline,
                "Self-reported burnout baseline")

        daily_ratio = current.hours_today / c.max_daily_hours
        if daily_ratio > 0.8:
            add("daily_hours", min((daily_ratio - 0.8) * 2, 0.3), current.hours_today,
                f"{current.hours_today:.1f}h worked today of {c.max_daily_hours:g}h")

        weekly_ratio = current.hours_this_week / c.max_weekly_hours
        if weekly_ratio > 0.8:
            add("weekly_hours", min((weekly_ratio - 0.8) * 2, 0.2), current.hours_this_week,
                f"{current.hours_this_week:.1f}h worked this week of {c.max_weekly_hours:g}h")

        consecutive_limit = c.max_consecutive_sessions * 0.8
        if current.consecutive_sessions > consecutive_limit:
            add("consecutive_sessions",
                min((current.consecutive_sessions - consecutive_limit) * 0.05, 0.2),
                current.consecutive_sessions,
                f"{current.consecutive_sessions} sessions without a break")

        if current.minutes_since_break > c.mandatory_break_after_minutes:
            overdue = current.minutes_since_break - c.mandatory_break_after_minutes
            add("break_overdue", min(overdue / 180, 0.2), current.minutes_since_break,
                f"Break overdue by {overdue:.0f} minutes")

        if quality is not None and quality.rating < c.minimum_performance_rating:
            add("performance", (c.minimum_performance_rating - quality.rating) / 10 * 0.15,
                quality.rating, f"Performance rating {quality.rating:.1f} below target")

        if profile is not None and profile.wellness.stress_level > c.high_stress_level:
            stress = profile.wellness.stress_level
            add("stress", (stress - c.high_stress_level) / 3 * 0.1, stress,
                f"Stress level {stress:g}/10")

        score = min(1.0, max(0.0, sum(f.impact for f in factors)))
        level = burnout_level(score)
        return BurnoutRisk(
            level=level,
            score=round(score, 4),
            factors=factors,
            recommendations=_BURNOUT_GUIDANCE[level],
        )

    def _trend(self, responder_id: str, now: datetime) -> UtilizationTrend:
        activity = self._activity.get(responder_id)
        if activity is None:
            return UtilizationTrend.STABLE
        day = timedelta(days=1)
        recent = previous = 0
        for start, _ in activity.sessions.values():
            if start is None:
                continue
            if now - day <= start <= now:
                recent += 1
            elif now - 2 * day <= start < now - day:
                previous += 1
        if previous == 0:
            return UtilizationTrend.INCREASING if recent > 0 else UtilizationTrend.STABLE
        if recent > previous * 1.1:
            return UtilizationTrend.INCREASING
        if recent < previous * 0.9:
            return UtilizationTrend.DECREASING
        return UtilizationTrend.STABLE

    def _recommendations(
        self,
        burnout: BurnoutRisk,
        utilization: WorkloadUtilization,
        profile: Optional[ResponderProfile],
    ) -> List[WorkloadRecommendation]:
        level = burnout.level
        if level == BurnoutRiskLevel.CRITICAL:
            recs = [WorkloadRecommendation(
                type=RecommendationType.END_SHIFT, priority="URGENT",
                description="Critical burnout risk: stop taking sessions",
                action_items=_BURNOUT_GUIDANCE[level],
            )]
        elif level == BurnoutRiskLevel.HIGH:
            recs = [WorkloadRecommendation(
                type=RecommendationType.TAKE_BREAK, priority="HIGH",
                description="High burnout risk: break and lighter load required",
                action_items=_BURNOUT_GUIDANCE[level],
            )]
        elif level == BurnoutRiskLevel.MEDIUM:
            recs = [WorkloadRecommendation(
                type=RecommendationType.TAKE_BREAK, priority="MEDIUM",
                description="Moderate burnout risk: plan a break",
                action_items=_BURNOUT_GUIDANCE[level],
            )]
        else:
            recs = [WorkloadRecommendation(
                type=RecommendationType.CONTINUE, priority="LOW",
                description="Workload within healthy limits",
                action_items=_BURNOUT_GUIDANCE[level],
            )]

        if utilization.current >= 1.0 and level != BurnoutRiskLevel.CRITICAL:
            recs.append(WorkloadRecommendation(
                type=RecommendationType.REDUCE_LOAD, priority="MEDIUM",
                description="At maximum concurrent sessions",
                action_items=["Route new sessions to other responders"],
            ))
        if profile is not None and profile.wellness.support_needed:
            recs.append(WorkloadRecommendation(
                type=RecommendationType.SEEK_SUPPORT, priority="HIGH",
                description="Responder has asked for support",
                action_items=["Schedule a supervisor check-in"],
            ))
        return recs

    def _violations(
        self,
        current: CurrentWorkload,
        burnout: BurnoutRisk,
        quality: Optional[QualityScore],
        now: datetime,
    ) -> List[WorkloadViolation]:
        c = self.config
        checks = [
            (current.hours_today > c.max_daily_hours, ViolationType.DAILY_HOURS_EXCEEDED,
             ViolationSeverity.ERROR, current.hours_today, c.max_daily_hours,
             "Daily hour limit exceeded"),
            (current.hours_this_week > c.max_weekly_hours, ViolationType.WEEKLY_HOURS_EXCEEDED,
             ViolationSeverity.ERROR, current.hours_this_week, c.max_weekly_hours,
             "Weekly hour limit exceeded"),
            (current.consecutive_sessions > c.max_consecutive_sessions,
             ViolationType.CONSECUTIVE_SESSIONS_EXCEEDED, ViolationSeverity.WARNING,
             current.consecutive_sessions, c.max_consecutive_sessions,
             "Too many consecutive sessions without a break"),
            (current.active_sessions > c.max_concurrent_sessions,
             ViolationType.CONCURRENT_SESSIONS_EXCEEDED, ViolationSeverity.ERROR,
             current.active_sessions, c.max_concurrent_sessions,
             "Concurrent sessions above the protection limit"),
            (current.minutes_since_break > c.mandatory_break_after_minutes,
             ViolationType.MANDATORY_BREAK_OVERDUE, ViolationSeverity.WARNING,
             current.minutes_since_break, c.mandatory_break_after_minutes,
             "Mandatory break overdue"),
            (burnout.level == BurnoutRiskLevel.CRITICAL,
             ViolationType.BURNOUT_THRESHOLD_EXCEEDED, ViolationSeverity.CRITICAL,
             burnout.score, 0.8, "Burnout risk is critical"),
            (quality is not None and quality.sample_size > 0
             and quality.rating < c.minimum_performance_rating,
             ViolationType.PERFORMANCE_DECLINE, ViolationSeverity.WARNING,
             quality.rating if quality else 0.0, c.minimum_performance_rating,
             "Performance rating below minimum"),
        ]
        return [
            WorkloadViolation(
                id=f"viol_{uuid4().hex[:12]}",
                type=vtype,
                severity=severity,
                description=description,
                value=round(float(value), 4),
                threshold=float(threshold),
                detected_at=now,
            )
            for triggered, vtype, severity, value, threshold, description in checks
            if triggered
        ]

    def _publish_changes(
        self, previous: Optional[WorkloadAssessment], assessment: WorkloadAssessment
    ) -> None:
        """Publish burnout escalations and newly appearing violations only."""
        if self.event_bus is None:
            return

        level = assessment.burnout_risk.level
        previous_level = previous.burnout_risk.level if previous else BurnoutRiskLevel.LOW
        if (
            level in (BurnoutRiskLevel.HIGH, BurnoutRiskLevel.CRITICAL)
            and _LEVEL_ORDER.index(level) > _LEVEL_ORDER.index(previous_level)
        ):
            logger.warning(
                "Burnout risk for %s rose to %s (score %.2f)",
                assessment.responder_id, level.value, assessment.burnout_risk.score,
            )
            self.event_bus.publish(make_event(
                MatchingEventType.BURNOUT_DETECTED,
                EventCategory.ALERT,
                severity=(
                    EventSeverity.CRITICAL if level == BurnoutRiskLevel.CRITICAL
                    else EventSeverity.WARNING
                ),
                outcome=level.value,
                responder_id=assessment.responder_id,
                data={"score": assessment.burnout_risk.score},
            ))

        seen = {v.type for v in previous.violations} if previous else set()
        for violation in assessment.violations:
            if violation.type in seen:
                continue
            self.event_bus.publish(make_event(
                MatchingEventType.WORKLOAD_VIOLATION,
                EventCategory.WORKLOAD,
                severity=EventSeverity(violation.severity.value),
                outcome=violation.type.value,
                responder_id=assessment.responder_id,
                data=violation.model_dump(mode="json"),
            ))

    # --- Shift validation ---

    async def validate_shift_assignment(
        self,
        responder_id: str,
        proposed_shift: ProposedShift,
        current_time: Optional[datetime] = None,
    ) -> ShiftValidation:
        return await self._within_budget(
            "Shift validation",
            self._validate_shift(responder_id, proposed_shift, current_time),
            self.budgets.shift_validation,
        )

    async def _validate_shift(
        self,
        responder_id: str,
        proposed_shift: ProposedShift,
        current_time: Optional[datetime],
    ) -> ShiftValidation:
        now = current_time or datetime.utcnow()
        c = self.config
        shift = proposed_shift
        if shift.end_time <= shift.start_time:
            raise ValueError("Shift end_time must be after start_time")

        activity = self._activity.get(responder_id) or ResponderActivity()
        others = [
            s for s in activity.shifts.values()
            if not shift.shift_id or s.shift_id != shift.shift_id
        ]
        violations: List[WorkloadViolation] = []
        recommendations: List[str] = []

        def violation(vtype, severity, value, threshold, description) -> None:
            violations.append(WorkloadViolation(
                id=f"viol_{uuid4().hex[:12]}", type=vtype, severity=severity,
                description=description, value=round(value, 4), threshold=threshold,
                detected_at=now,
            ))

        adjusted = shift.model_copy()

        # Rest before the shift
        worked = merge_intervals(activity.session_intervals(now))
        previous_ends = [s.end_time for s in others if s.end_time <= shift.start_time]
        previous_ends += [end for _, end in worked if end <= shift.start_time]
        min_rest = timedelta(hours=c.minimum_rest_between_shifts_hours)
        if previous_ends:
            last_end = max(previous_ends)
            rest = shift.start_time - last_end
            if rest < min_rest:
                rest_hours = rest.total_seconds() / 3600.0
                violation(ViolationType.INSUFFICIENT_REST, ViolationSeverity.ERROR,
                          rest_hours, c.minimum_rest_between_shifts_hours,
                          f"Only {rest_hours:.1f}h rest before this shift")
                recommendations.append(
                    f"Start no earlier than {(last_end + min_rest).isoformat()}"
                )
                delta = (last_end + min_rest) - adjusted.start_time
                adjusted = adjusted.model_copy(update={
                    "start_time": adjusted.start_time + delta,
                    "end_time": adjusted.end_time + delta,
                })

        # Rest before the next scheduled shift
        next_starts = [s.start_time for s in others if s.start_time >= shift.end_time]
        if next_starts:
            next_start = min(next_starts)
            rest = next_start - shift.end_time
            if rest < min_rest:
                rest_hours = rest.total_seconds() / 3600.0
                violation(ViolationType.INSUFFICIENT_REST, ViolationSeverity.ERROR,
                          rest_hours, c.minimum_rest_between_shifts_hours,
                          f"Only {rest_hours:.1f}h rest before the next shift")
                recommendations.append(
                    f"End no later than {(next_start - min_rest).isoformat()}"
                )
                latest_end = next_start - min_rest
                if adjusted.end_time > latest_end:
                    adjusted = adjusted.model_copy(update={"end_time": latest_end})

        # Daily hours on the shift's day
        day_start = shift.start_time.replace(hour=0, minute=0, second=0, microsecond=0)
        day_end = day_start + timedelta(days=1)
        worked_that_day = hours_within(worked, day_start, min(day_end, now))
        scheduled_that_day = hours_within(
            [(s.start_time, s.end_time) for s in others], day_start, day_end
        )
        resulting = worked_that_day + scheduled_that_day + shift.duration_hours
        if resulting > c.max_daily_hours:
            excess = resulting - c.max_daily_hours
            violation(ViolationType.DAILY_HOURS_EXCEEDED, ViolationSeverity.ERROR,
                      resulting, c.max_daily_hours,
                      f"Shift would bring the day to {resulting:.1f}h")
            recommendations.append(f"Reduce shift by {excess:.1f} hours")
            allowed = max(0.0, adjusted.duration_hours - excess)
            adjusted = adjusted.model_copy(
                update={"end_time": adjusted.start_time + timedelta(hours=allowed)}
            )

        # Weekly hours on the shift's week
        week_start = day_start - timedelta(days=day_start.weekday())
        week_end = week_start + timedelta(days=7)
        weekly = (
            hours_within(worked, week_start, min(week_end, now))
            + hours_within([(s.start_time, s.end_time) for s in others], week_start, week_end)
            + shift.duration_hours
        )
        if weekly > c.max_weekly_hours:
            violation(ViolationType.WEEKLY_HOURS_EXCEEDED, ViolationSeverity.WARNING,
                      weekly, c.max_weekly_hours,
                      f"Shift would bring the week to {weekly:.1f}h")
            recommendations.append("Rebalance this week's schedule")

        # Burnout gate
        assessment = await self.assess(responder_id, current_time=current_time)
        if assessment.burnout_risk.level == BurnoutRiskLevel.CRITICAL:
            violation(ViolationType.BURNOUT_THRESHOLD_EXCEEDED, ViolationSeverity.CRITICAL,
                      assessment.burnout_risk.score, 0.8,
                      "Responder is at critical burnout risk")
            recommendations.append("Assign a different responder; schedule a wellness check")
            recovery = timedelta(hours=c.burnout_recovery_hours)
            adjusted = adjusted.model_copy(update={
                "start_time": adjusted.start_time + recovery,
                "end_time": adjusted.end_time + recovery,
                "estimated_load": round(adjusted.estimated_load / 2, 4),
            })

        blocking = [
            v for v in violations
            if v.severity in (ViolationSeverity.ERROR, ViolationSeverity.CRITICAL)
        ]
        adjustments = None
        if blocking:
            if adjusted.end_time > adjusted.start_time:
                adjustments = adjusted
            else:
                recommendations.append("No safe adjustment exists; reassign the shift")

        return ShiftValidation(
            responder_id=responder_id,
            is_valid=not blocking,
            violations=violations,
            recommendations=recommendations,
            adjustments=adjustments,
        )

    # --- Capacity planning ---

    async def generate_capacity_plan(
        self,
        start: datetime,
        end: datetime,
        granularity: PlanGranularity = PlanGranularity.HOUR,
        current_time: Optional[datetime] = None,
    ) -> CapacityPlan:
        return await self._within_budget(
            "Capacity planning",
            self.planner.generate(start, end, granularity, current_time),
            self.budgets.capacity_plan,
        )

    async def _within_budget(self, operation: str, call, timeout: float):
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("%s exceeded its %.1fs budget", operation, timeout)
            raise MatchTimeout(f"{operation} exceeded its {timeout:g}s budget") from None


_BURNOUT_GUIDANCE: Dict[BurnoutRiskLevel, List[str]] = {
    BurnoutRiskLevel.CRITICAL: [
        "Take a mandatory break immediately",
        "End shift early",
        "Supervisor wellness check required",
        "Reduce maximum concurrent sessions",
    ],
    BurnoutRiskLevel.HIGH: [
        "Take a break within 30 minutes",
        "Reduce session load",
        "Wellness check within 24 hours",
    ],
    BurnoutRiskLevel.MEDIUM: [
        "Consider taking a break soon",
        "Monitor stress levels",
        "Use stress management techniques",
    ],
    BurnoutRiskLevel.LOW: [
        "Continue current workload",
        "Keep taking regular breaks",
    ],
}
