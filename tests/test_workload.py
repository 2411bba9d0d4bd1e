"""Tests for the Workload Assessor: burnout risk, limits and shift validation."""

import asyncio
from datetime import datetime, timedelta

import pytest

from crisis_match.availability.registry import AvailabilityRegistry
from crisis_match.errors import MatchTimeout
from crisis_match.events.bus import EventBus
from crisis_match.models.config import ComponentBudgets
from crisis_match.models.events import MatchingEventType
from crisis_match.models.profile import ResponderProfile, WellnessSnapshot
from crisis_match.models.responder import ResponderOnlineStatus, ResponderStatus
from crisis_match.models.workload import (
    BurnoutRiskLevel,
    CurrentWorkload,
    ProposedShift,
    RecommendationType,
    ViolationSeverity,
    ViolationType,
)
from crisis_match.profiles.store import InMemoryProfileStore
from crisis_match.quality.tracker import QualityTracker
from crisis_match.workload.assessor import (
    WorkloadAssessor,
    burnout_level,
    hours_within,
    merge_intervals,
)


def _overloaded(responder_id: str, now: datetime) -> CurrentWorkload:
    return CurrentWorkload(
        hours_today=10, hours_this_week=45, consecutive_sessions=10, minutes_since_break=300,
    )


def _day(offset_days: int) -> datetime:
    """Midnight, offset_days from today."""
    today = datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
    return today + timedelta(days=offset_days)


class TestIntervals:
    def test_merge_overlapping(self):
        t = datetime(2026, 3, 2, 9, 0)
        merged = merge_intervals([
            (t, t + timedelta(hours=1)),
            (t + timedelta(minutes=30), t + timedelta(hours=2)),
            (t + timedelta(hours=3), t + timedelta(hours=4)),
        ])
        assert merged == [
            (t, t + timedelta(hours=2)),
            (t + timedelta(hours=3), t + timedelta(hours=4)),
        ]

    def test_hours_within_window(self):
        t = datetime(2026, 3, 2, 22, 0)
        hours = hours_within([(t, t + timedelta(hours=4))], t, datetime(2026, 3, 3, 0, 0))
        assert hours == pytest.approx(2.0)

    @pytest.mark.parametrize("score,level", [
        (0.0, BurnoutRiskLevel.LOW),
        (0.3, BurnoutRiskLevel.MEDIUM),
        (0.6, BurnoutRiskLevel.HIGH),
        (0.8, BurnoutRiskLevel.CRITICAL),
    ])
    def test_burnout_levels(self, score, level):
        assert burnout_level(score) == level


class TestBurnoutRisk:
    def setup_method(self):
        self.assessor = WorkloadAssessor(AvailabilityRegistry())

    def test_fresh_responder_is_low_risk(self):
        risk = self.assessor.calculate_burnout_risk(CurrentWorkload())
        assert risk.level == BurnoutRiskLevel.LOW
        assert risk.score == 0.0
        assert risk.factors == []

    def test_factor_formula(self):
        profile = ResponderProfile(
            responder_id="r1",
            wellness=WellnessSnapshot(burnout_score=0.5, stress_level=8.5),
        )
        current = CurrentWorkload(hours_today=7.2, hours_this_week=20)
        risk = self.assessor.calculate_burnout_risk(current, profile)

        impacts = {f.factor: f.impact for f in risk.factors}
        assert impacts["baseline_wellness"] == pytest.approx(0.2)
        assert impacts["daily_hours"] == pytest.approx(0.2)
        assert impacts["stress"] == pytest.approx(0.05)
        assert "weekly_hours" not in impacts
        assert risk.score == pytest.approx(0.45)
        assert risk.level == BurnoutRiskLevel.MEDIUM

    def test_factors_are_capped(self):
        risk = self.assessor.calculate_burnout_risk(_overloaded("r1", datetime.utcnow()))
        impacts = {f.factor: f.impact for f in risk.factors}
        assert impacts["daily_hours"] == pytest.approx(0.3)
        assert impacts["weekly_hours"] == pytest.approx(0.2)
        assert impacts["consecutive_sessions"] == pytest.approx(0.2)
        assert impacts["break_overdue"] == pytest.approx(0.2)
        assert risk.level == BurnoutRiskLevel.CRITICAL

    def test_score_is_clamped(self):
        profile = ResponderProfile(
            responder_id="r1",
            wellness=WellnessSnapshot(burnout_score=1.0, stress_level=10),
        )
        risk = self.assessor.calculate_burnout_risk(_overloaded("r1", datetime.utcnow()), profile)
        assert risk.score == 1.0
        assert "Take a mandatory break immediately" in risk.recommendations


class TestAssessment:
    def setup_method(self):
        self.bus = EventBus()
        self.registry = AvailabilityRegistry(event_bus=self.bus)
        self.store = InMemoryProfileStore([ResponderProfile(responder_id="r1")])
        self.assessor = WorkloadAssessor(
            self.registry,
            profile_store=self.store,
            quality_tracker=QualityTracker(self.store),
            event_bus=self.bus,
        )
        self.day = _day(-1)

    @pytest.mark.asyncio
    async def test_no_activity(self):
        assessment = await self.assessor.assess("r1", current_time=self.day + timedelta(hours=12))
        assert assessment.current.hours_today == 0
        assert assessment.burnout_risk.level == BurnoutRiskLevel.LOW
        assert assessment.recommendations[0].type == RecommendationType.CONTINUE
        assert assessment.violations == []

    @pytest.mark.asyncio
    async def test_overlapping_sessions_count_once(self):
        d = self.day
        self.assessor.record_session_start("r1", "s1", d + timedelta(hours=9))
        self.assessor.record_session_start("r1", "s2", d + timedelta(hours=9, minutes=30))
        self.assessor.record_session_end("r1", "s1", d + timedelta(hours=10))
        self.assessor.record_session_end("r1", "s2", d + timedelta(hours=10))

        assessment = await self.assessor.assess("r1", current_time=d + timedelta(hours=12))
        assert assessment.current.hours_today == pytest.approx(1.0)
        assert assessment.current.sessions_today == 2

    @pytest.mark.asyncio
    async def test_idle_gap_counts_as_break(self):
        d = self.day
        self.assessor.record_session_start("r1", "s1", d + timedelta(hours=10))
        self.assessor.record_session_end("r1", "s1", d + timedelta(hours=11))
        self.assessor.record_session_start("r1", "s2", d + timedelta(hours=11, minutes=30))

        assessment = await self.assessor.assess("r1", current_time=d + timedelta(hours=12))
        current = assessment.current
        assert current.hours_today == pytest.approx(1.5)
        assert current.consecutive_sessions == 1
        assert current.minutes_since_break == pytest.approx(30)

    @pytest.mark.asyncio
    async def test_long_day_is_a_violation(self):
        d = self.day
        self.assessor.record_session_start("r1", "s1", d + timedelta(hours=8))
        self.assessor.record_session_end("r1", "s1", d + timedelta(hours=19))

        assessment = await self.assessor.assess("r1", current_time=d + timedelta(hours=20))
        types = {v.type: v.severity for v in assessment.violations}
        assert types[ViolationType.DAILY_HOURS_EXCEEDED] == ViolationSeverity.ERROR
        assert assessment.utilization.daily == pytest.approx(11 / 8, abs=1e-3)

    @pytest.mark.asyncio
    async def test_consecutive_sessions_warning(self, monkeypatch):
        monkeypatch.setattr(
            self.assessor, "_current_workload",
            lambda rid, now: CurrentWorkload(consecutive_sessions=8),
        )
        assessment = await self.assessor.assess("r1", use_cache=False)
        types = {v.type: v.severity for v in assessment.violations}
        assert types == {ViolationType.CONSECUTIVE_SESSIONS_EXCEEDED: ViolationSeverity.WARNING}

    @pytest.mark.asyncio
    async def test_registry_reservations_are_tracked(self):
        self.registry.register(ResponderStatus(
            responder_id="r1",
            status=ResponderOnlineStatus.ONLINE,
            last_heartbeat=datetime.utcnow(),
        ))
        self.registry.reserve("r1", session_id="s1")
        assessment = await self.assessor.assess("r1")
        assert assessment.current.active_sessions == 1
        assert assessment.current.sessions_today == 1
        assert assessment.utilization.current == pytest.approx(1 / 3, abs=1e-3)

    @pytest.mark.asyncio
    async def test_cache_invalidated_by_status_change(self):
        self.registry.update_status("r1", ResponderOnlineStatus.ONLINE)
        first = await self.assessor.assess("r1")
        assert await self.assessor.assess("r1") is first

        self.registry.update_status("r1", ResponderOnlineStatus.BREAK)
        second = await self.assessor.assess("r1")
        assert second is not first
        assert second.current.minutes_since_break == 0

    @pytest.mark.asyncio
    async def test_burnout_escalation_published_once(self, monkeypatch):
        monkeypatch.setattr(self.assessor, "_current_workload", _overloaded)
        await self.assessor.assess("r1", use_cache=False)
        await self.assessor.assess("r1", use_cache=False)

        burnout = self.bus.recent(event_type=MatchingEventType.BURNOUT_DETECTED)
        assert len(burnout) == 1
        assert burnout[0].outcome == "CRITICAL"
        violations = self.bus.recent(event_type=MatchingEventType.WORKLOAD_VIOLATION)
        assert len(violations) == len({e.outcome for e in violations})
        assert self.assessor.last_known("r1").burnout_risk.level == BurnoutRiskLevel.CRITICAL


class TestShiftValidation:
    def setup_method(self):
        self.assessor = WorkloadAssessor(AvailabilityRegistry())
        self.day = _day(3)

    def _shift(self, start_hour: float, end_hour: float, day: datetime = None, **fields) -> ProposedShift:
        day = day or self.day
        return ProposedShift(
            start_time=day + timedelta(hours=start_hour),
            end_time=day + timedelta(hours=end_hour),
            **fields,
        )

    @pytest.mark.asyncio
    async def test_valid_shift(self):
        result = await self.assessor.validate_shift_assignment("r1", self._shift(9, 17))
        assert result.is_valid is True
        assert result.violations == []
        assert result.adjustments is None

    @pytest.mark.asyncio
    async def test_overlong_shift_is_truncated(self):
        shift = self._shift(6, 18)
        result = await self.assessor.validate_shift_assignment("r1", shift)
        assert result.is_valid is False
        assert [v.type for v in result.violations] == [ViolationType.DAILY_HOURS_EXCEEDED]
        assert result.adjustments.start_time == shift.start_time
        assert result.adjustments.end_time == shift.start_time + timedelta(hours=8)

    @pytest.mark.asyncio
    async def test_insufficient_rest_moves_start(self):
        previous_day = self.day - timedelta(days=1)
        self.assessor.schedule_shift("r1", self._shift(14, 22, day=previous_day))

        result = await self.assessor.validate_shift_assignment("r1", self._shift(6, 14))
        assert result.is_valid is False
        rest = [v for v in result.violations if v.type == ViolationType.INSUFFICIENT_REST]
        assert rest[0].severity == ViolationSeverity.ERROR
        assert rest[0].value == pytest.approx(8.0)
        assert result.adjustments.start_time == self.day + timedelta(hours=10)
        assert result.adjustments.end_time == self.day + timedelta(hours=18)

    @pytest.mark.asyncio
    async def test_weekly_overrun_is_a_warning(self):
        monday = self.day - timedelta(days=self.day.weekday()) + timedelta(days=7)
        for n in range(5):
            self.assessor.schedule_shift("r1", self._shift(9, 17, day=monday + timedelta(days=n)))

        saturday = self._shift(9, 17, day=monday + timedelta(days=5))
        result = await self.assessor.validate_shift_assignment("r1", saturday)
        assert result.is_valid is True
        assert [(v.type, v.severity) for v in result.violations] == [
            (ViolationType.WEEKLY_HOURS_EXCEEDED, ViolationSeverity.WARNING),
        ]

    @pytest.mark.asyncio
    async def test_critical_burnout_postpones_shift(self, monkeypatch):
        monkeypatch.setattr(self.assessor, "_current_workload", _overloaded)
        shift = self._shift(9, 17, estimated_load=0.7)
        result = await self.assessor.validate_shift_assignment("r1", shift)
        assert result.is_valid is False
        assert any(v.severity == ViolationSeverity.CRITICAL for v in result.violations)
        assert result.adjustments.start_time == shift.start_time + timedelta(hours=24)
        assert result.adjustments.estimated_load == pytest.approx(0.35)

    @pytest.mark.asyncio
    async def test_end_before_start_rejected(self):
        with pytest.raises(ValueError):
            await self.assessor.validate_shift_assignment("r1", self._shift(17, 9))

    def test_schedule_and_cancel(self):
        shift = self.assessor.schedule_shift("r1", self._shift(9, 17))
        assert shift.shift_id.startswith("shift_")
        assert self.assessor.scheduled_responders() == ["r1"]
        assert self.assessor.cancel_shift("r1", shift.shift_id) is True
        assert self.assessor.shifts_for("r1") == []


class SlowProfileStore(InMemoryProfileStore):
    def __init__(self, profiles=None, delay: float = 0.5):
        super().__init__(profiles)
        self.delay = delay

    async def get(self, responder_id):
        await asyncio.sleep(self.delay)
        return await super().get(responder_id)

    async def get_many(self, responder_ids):
        await asyncio.sleep(self.delay)
        return await super().get_many(responder_ids)


class TestTimeBudgets:
    def setup_method(self):
        self.assessor = WorkloadAssessor(
            AvailabilityRegistry(),
            profile_store=SlowProfileStore([ResponderProfile(responder_id="r1")]),
            budgets=ComponentBudgets(shift_validation=0.05, capacity_plan=0.05),
        )
        self.day = _day(3)

    @pytest.mark.asyncio
    async def test_slow_shift_validation_times_out(self):
        shift = ProposedShift(
            start_time=self.day + timedelta(hours=9), end_time=self.day + timedelta(hours=17),
        )
        with pytest.raises(MatchTimeout):
            await self.assessor.validate_shift_assignment("r1", shift)

    @pytest.mark.asyncio
    async def test_slow_capacity_plan_times_out(self):
        self.assessor.schedule_shift("r1", ProposedShift(
            start_time=self.day + timedelta(hours=9), end_time=self.day + timedelta(hours=17),
        ))
        with pytest.raises(MatchTimeout):
            await self.assessor.generate_capacity_plan(
                self.day + timedelta(hours=9), self.day + timedelta(hours=12),
            )

    @pytest.mark.asyncio
    async def test_fast_calls_fit_the_budget(self):
        self.assessor.profile_store.delay = 0
        shift = ProposedShift(
            start_time=self.day + timedelta(hours=9), end_time=self.day + timedelta(hours=17),
        )
        result = await self.assessor.validate_shift_assignment("r1", shift)
        assert result.is_valid is True
