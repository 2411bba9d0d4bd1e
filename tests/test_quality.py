"""Tests for the Quality Tracker."""

from datetime import datetime, timedelta

import pytest

from crisis_match.models.config import QualityConfig
from crisis_match.models.profile import ResponderProfile
from crisis_match.models.quality import QualityTrend, SessionOutcome
from crisis_match.profiles.store import InMemoryProfileStore
from crisis_match.quality.tracker import QualityTracker


def _make_outcome(
    n: int,
    completed_at: datetime,
    responder_id: str = "r1",
    **fields,
) -> SessionOutcome:
    return SessionOutcome(
        responder_id=responder_id,
        session_id=f"s{n}",
        completed_at=completed_at,
        **fields,
    )


class TestQualityScore:
    def setup_method(self):
        self.store = InMemoryProfileStore([
            ResponderProfile(responder_id="r1", average_rating=6.0),
        ])
        self.tracker = QualityTracker(self.store)
        self.now = datetime.utcnow()

    @pytest.mark.asyncio
    async def test_prior_from_profile_rating(self):
        score = await self.tracker.score("r1")
        assert score.from_prior is True
        assert score.overall == pytest.approx(0.6)
        assert score.sample_size == 0
        assert score.confidence == 0.0

    @pytest.mark.asyncio
    async def test_default_prior_without_profile(self):
        score = await self.tracker.score("unknown")
        assert score.overall == pytest.approx(0.7)

    @pytest.mark.asyncio
    async def test_perfect_window(self):
        for n in range(4):
            self.tracker.record_outcome(_make_outcome(
                n, self.now - timedelta(hours=n),
                satisfaction=5, response_time_seconds=20, follow_up_completed=True,
            ))
        score = await self.tracker.score("r1")
        assert score.from_prior is False
        assert score.overall == pytest.approx(1.0)
        assert set(score.components) == {"resolution", "satisfaction", "response_time", "reliability"}
        assert score.confidence == pytest.approx(4 / 20)
        assert score.trends["satisfaction"] == QualityTrend.INSUFFICIENT_DATA

    @pytest.mark.asyncio
    async def test_mixed_window(self):
        self.tracker.record_outcome(_make_outcome(
            1, self.now, satisfaction=5, response_time_seconds=20,
        ))
        self.tracker.record_outcome(_make_outcome(
            2, self.now, resolved=False, abandoned=True, satisfaction=1, response_time_seconds=100,
        ))
        score = await self.tracker.score("r1")
        assert score.components["resolution"] == pytest.approx(0.5)
        assert score.components["satisfaction"] == pytest.approx(0.5)
        assert score.components["response_time"] == pytest.approx(0.85)
        assert score.components["reliability"] == pytest.approx(0.5)
        assert score.overall == pytest.approx(0.57)
        assert score.below_floor is False

    @pytest.mark.asyncio
    async def test_poor_performance_is_below_floor(self):
        for n in range(3):
            self.tracker.record_outcome(_make_outcome(
                n, self.now, resolved=False, abandoned=True,
                satisfaction=1, response_time_seconds=400,
            ))
        score = await self.tracker.score("r1")
        assert score.below_floor is True
        assert score.rating == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_old_outcomes_leave_the_window(self):
        self.tracker.record_outcome(_make_outcome(
            1, self.now - timedelta(days=120), resolved=False, satisfaction=1,
        ))
        score = await self.tracker.score("r1")
        assert score.from_prior is True

    @pytest.mark.asyncio
    async def test_recording_invalidates_cache(self):
        first = await self.tracker.score("r1")
        assert first.from_prior is True
        self.tracker.record_outcome(_make_outcome(1, self.now, satisfaction=5))
        second = await self.tracker.score("r1")
        assert second.from_prior is False
        assert second.sample_size == 1

    def test_window_is_bounded(self):
        tracker = QualityTracker(config=QualityConfig(window_size=3))
        for n in range(5):
            tracker.record_outcome(_make_outcome(n, self.now))
        assert [o.session_id for o in tracker.outcomes("r1")] == ["s2", "s3", "s4"]


class TestQualityTrends:
    @pytest.mark.asyncio
    async def test_trends_compare_halves(self):
        tracker = QualityTracker()
        start = datetime.utcnow() - timedelta(days=6)
        for n in range(3):
            tracker.record_outcome(_make_outcome(
                n, start + timedelta(days=n), satisfaction=2, response_time_seconds=100,
            ))
        for n in range(3, 6):
            tracker.record_outcome(_make_outcome(
                n, start + timedelta(days=n), satisfaction=4, response_time_seconds=30,
                escalated=True,
            ))
        score = await tracker.score("r1")
        assert score.trends["response_time"] == QualityTrend.IMPROVING
        assert score.trends["satisfaction"] == QualityTrend.IMPROVING
        assert score.trends["escalation"] == QualityTrend.DECLINING

    @pytest.mark.asyncio
    async def test_stable_trends(self):
        tracker = QualityTracker()
        start = datetime.utcnow() - timedelta(days=6)
        for n in range(6):
            tracker.record_outcome(_make_outcome(
                n, start + timedelta(days=n), satisfaction=4, response_time_seconds=45,
            ))
        score = await tracker.score("r1")
        assert score.trends == {
            "response_time": QualityTrend.STABLE,
            "escalation": QualityTrend.STABLE,
            "satisfaction": QualityTrend.STABLE,
        }
