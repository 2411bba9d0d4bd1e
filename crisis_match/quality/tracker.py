"""
Quality Tracker — rolling performance scores from session outcomes.

Components (each 0..1):
  resolution     share of sessions resolved without abandonment
  satisfaction   mean user rating on the 1-5 scale
  response_time  benchmarked against excellent/good/acceptable thresholds
  reliability    1 - abandonment rate, blended with follow-up completion

Responders without history get a prior from their profile rating.
"""

import logging
from collections import deque
from datetime import datetime, timedelta
from statistics import mean
from typing import Deque, Dict, List, Optional

from crisis_match.cache.ttl import TTLCache
from crisis_match.models.config import QualityConfig
from crisis_match.models.quality import QualityScore, QualityTrend, SessionOutcome
from crisis_match.profiles.store import ResponderProfileStore

logger = logging.getLogger(__name__)


class QualityTracker:
    def __init__(
        self,
        profile_store: Optional[ResponderProfileStore] = None,
        config: Optional[QualityConfig] = None,
    ):
        self.profile_store = profile_store
        self.config = config or QualityConfig()
        self._outcomes: Dict[str, Deque[SessionOutcome]] = {}
        self._cache: TTLCache[QualityScore] = TTLCache(self.config.cache_ttl_seconds)

    def record_outcome(self, outcome: SessionOutcome) -> None:
        history = self._outcomes.setdefault(
            outcome.responder_id, deque(maxlen=self.config.window_size)
        )
        history.append(outcome)
        self._cache.invalidate(outcome.responder_id)

    def outcomes(self, responder_id: str) -> List[SessionOutcome]:
        return list(self._outcomes.get(responder_id, ()))

    async def score(
        self, responder_id: str, current_time: Optional[datetime] = None
    ) -> QualityScore:
        cached = self._cache.get(responder_id)
        if cached is not None and current_time is None:
            return cached

        if current_time is None:
            current_time = datetime.utcnow()
        cutoff = current_time - timedelta(days=self.config.window_days)
        window = [
            o for o in self._outcomes.get(responder_id, ())
            if o.completed_at >= cutoff
        ]

        if window:
            result = self._score_window(responder_id, window, current_time)
        else:
            result = await self._prior_score(responder_id, current_time)

        self._cache.set(responder_id, result)
        return result

    def _score_window(
        self,
        responder_id: str,
        window: List[SessionOutcome],
        current_time: datetime,
    ) -> QualityScore:
        components = {
            "resolution": self._resolution(window),
            "satisfaction": self._satisfaction(window),
            "response_time": self._response_time(window),
            "reliability": self._reliability(window),
        }
        weights = self.config.component_weights
        total_weight = sum(weights.get(name, 0.0) for name in components)
        overall = sum(
            components[name] * weights.get(name, 0.0) for name in components
        ) / (total_weight or 1.0)
        overall = min(1.0, max(0.0, overall))

        return QualityScore(
            responder_id=responder_id,
            overall=round(overall, 4),
            components={k: round(v, 4) for k, v in components.items()},
            trends=self._trends(window),
            sample_size=len(window),
            confidence=min(1.0, len(window) / self.config.full_confidence_samples),
            below_floor=overall < self.config.minimum_quality,
            computed_at=current_time,
        )

    async def _prior_score(self, responder_id: str, current_time: datetime) -> QualityScore:
        overall = self.config.default_score
        if self.profile_store is not None:
            profile = await self.profile_store.get(responder_id)
            if profile is not None:
                overall = profile.average_rating / 10.0
        return QualityScore(
            responder_id=responder_id,
            overall=overall,
            components={
                "resolution": overall,
                "satisfaction": overall,
                "response_time": overall,
                "reliability": overall,
            },
            trends={},
            sample_size=0,
            confidence=0.0,
            below_floor=overall < self.config.minimum_quality,
            from_prior=True,
            computed_at=current_time,
        )

    def _resolution(self, window: List[SessionOutcome]) -> float:
        resolved = sum(1 for o in window if o.resolved and not o.abandoned)
        return resolved / len(window)

    def _satisfaction(self, window: List[SessionOutcome]) -> float:
        ratings = [o.satisfaction for o in window if o.satisfaction is not None]
        if not ratings:
            return self.config.default_score
        return (mean(ratings) - 1) / 4

    def _response_time(self, window: List[SessionOutcome]) -> float:
        times = [o.response_time_seconds for o in window if o.response_time_seconds is not None]
        if not times:
            return self.config.default_score
        avg = mean(times)
        c = self.config
        if avg <= c.response_time_excellent:
            return 1.0
        if avg <= c.response_time_good:
            return 0.85
        if avg <= c.response_time_acceptable:
            return 0.65
        overrun = (avg - c.response_time_acceptable) / c.response_time_acceptable
        return max(0.0, 0.65 * (1 - overrun))

    def _reliability(self, window: List[SessionOutcome]) -> float:
        abandonment = sum(1 for o in window if o.abandoned) / len(window)
        follow_ups = [o.follow_up_completed for o in window if o.follow_up_completed is not None]
        if not follow_ups:
            return 1.0 - abandonment
        follow_up_rate = sum(1 for f in follow_ups if f) / len(follow_ups)
        return 0.7 * (1.0 - abandonment) + 0.3 * follow_up_rate

    def _trends(self, window: List[SessionOutcome]) -> Dict[str, QualityTrend]:
        """Compare the older half of the window with the newer half."""
        if len(window) < self.config.min_samples_for_trend:
            return {
                "response_time": QualityTrend.INSUFFICIENT_DATA,
                "escalation": QualityTrend.INSUFFICIENT_DATA,
                "satisfaction": QualityTrend.INSUFFICIENT_DATA,
            }

        ordered = sorted(window, key=lambda o: o.completed_at)
        half = len(ordered) // 2
        older, newer = ordered[:half], ordered[half:]

        trends = {}

        old_rt = [o.response_time_seconds for o in older if o.response_time_seconds is not None]
        new_rt = [o.response_time_seconds for o in newer if o.response_time_seconds is not None]
        if old_rt and new_rt:
            change = (mean(new_rt) - mean(old_rt)) / (mean(old_rt) or 1.0)
            # Faster responses are an improvement
            trends["response_time"] = _trend(-change, 0.10)
        else:
            trends["response_time"] = QualityTrend.INSUFFICIENT_DATA

        old_esc = sum(1 for o in older if o.escalated) / len(older)
        new_esc = sum(1 for o in newer if o.escalated) / len(newer)
        if old_esc == 0:
            trends["escalation"] = (
                QualityTrend.DECLINING if new_esc > 0 else QualityTrend.STABLE
            )
        else:
            trends["escalation"] = _trend(-(new_esc - old_esc) / old_esc, 0.20)

        old_sat = [o.satisfaction for o in older if o.satisfaction is not None]
        new_sat = [o.satisfaction for o in newer if o.satisfaction is not None]
        if old_sat and new_sat:
            trends["satisfaction"] = _trend(mean(new_sat) - mean(old_sat), 0.2)
        else:
            trends["satisfaction"] = QualityTrend.INSUFFICIENT_DATA

        return trends


def _trend(delta: float, threshold: float) -> QualityTrend:
    if delta > threshold:
        return QualityTrend.IMPROVING
    if delta < -threshold:
        return QualityTrend.DECLINING
    return QualityTrend.STABLE
