"""
Emergency Pool Manager — standing rosters for emergency requests.

Three disjoint rosters (critical response, specialist backup, on-call
supervisors) are rebuilt on every rotation. Rotation happens on a fixed
interval or on a cron schedule; members of the previous roster stay
reachable as handoff backup until the overlap window closes.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from croniter import croniter

from crisis_match.availability.registry import AvailabilityRegistry
from crisis_match.events.bus import EventBus, make_event
from crisis_match.models.config import EmergencyPoolConfig
from crisis_match.models.emergency import EmergencyAssignment, EmergencyPool, RosterTier
from crisis_match.models.events import EventCategory, EventSeverity, MatchingEventType
from crisis_match.models.profile import ResponderProfile
from crisis_match.models.request import MatchRequest
from crisis_match.models.responder import AvailabilityFilter, ResponderStatus
from crisis_match.models.skills import SpecialtyLevel, specialty_level_rank
from crisis_match.models.workload import BurnoutRiskLevel
from crisis_match.profiles.store import ResponderProfileStore
from crisis_match.workload.assessor import WorkloadAssessor

logger = logging.getLogger(__name__)

_ADVANCED = specialty_level_rank(SpecialtyLevel.ADVANCED)
_EMERGENCY_FILTER = AvailabilityFilter(
    include_emergency_only=True,
    require_emergency_available=True,
)


def _is_specialist(profile: ResponderProfile) -> bool:
    return any(
        s.is_active and specialty_level_rank(s.level) >= _ADVANCED
        for s in profile.specialties
    )


class EmergencyPoolManager:
    def __init__(
        self,
        registry: AvailabilityRegistry,
        profile_store: ResponderProfileStore,
        workload: Optional[WorkloadAssessor] = None,
        config: Optional[EmergencyPoolConfig] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.registry = registry
        self.profile_store = profile_store
        self.workload = workload
        self.config = config or EmergencyPoolConfig()
        self.event_bus = event_bus
        if self.config.rotation_schedule and not croniter.is_valid(self.config.rotation_schedule):
            raise ValueError(f"Invalid rotation schedule: {self.config.rotation_schedule!r}")
        self._pool: Optional[EmergencyPool] = None
        self._last_served: Dict[str, datetime] = {}
        self._rotation_lock = asyncio.Lock()

    @property
    def pool(self) -> Optional[EmergencyPool]:
        return self._pool

    def next_rotation_after(self, moment: datetime) -> datetime:
        if self.config.rotation_schedule:
            return croniter(self.config.rotation_schedule, moment).get_next(datetime)
        return moment + timedelta(hours=self.config.rotation_interval_hours)

    def rotation_due(self, current_time: Optional[datetime] = None) -> bool:
        if self._pool is None:
            return True
        return (current_time or datetime.utcnow()) >= self._pool.next_rotation

    async def maybe_rotate(self, current_time: Optional[datetime] = None) -> bool:
        """Rotate if the schedule says so. Returns True when a rotation ran."""
        if not self.rotation_due(current_time):
            return False
        await self.rotate(current_time)
        return True

    async def rotate(self, current_time: Optional[datetime] = None) -> EmergencyPool:
        now = current_time or datetime.utcnow()
        async with self._rotation_lock:
            statuses = self.registry.get_available(_EMERGENCY_FILTER, current_time=now)
            profiles = await self.profile_store.get_many([s.responder_id for s in statuses])

            eligible: List[ResponderProfile] = []
            for status in statuses:
                profile = profiles.get(status.responder_id)
                if profile is None:
                    continue
                if await self._is_critical(status.responder_id):
                    logger.info("Skipping %s for emergency pool: critical burnout", status.responder_id)
                    continue
                eligible.append(profile)

            # Least recently rostered first, then strongest emergency record.
            eligible.sort(key=lambda p: (
                self._last_served.get(p.responder_id, datetime.min),
                -p.emergency_rating,
                -p.total_hours,
            ))

            supervisors = [p for p in eligible if p.is_supervisor][: self.config.supervisor_pool_size]
            taken = {p.responder_id for p in supervisors}
            critical = [p for p in eligible if p.responder_id not in taken][: self.config.critical_pool_size]
            taken.update(p.responder_id for p in critical)
            specialists = [
                p for p in eligible
                if p.responder_id not in taken and _is_specialist(p)
            ][: self.config.specialist_pool_size]

            previous = self._pool
            pool = EmergencyPool(
                pool_id=previous.pool_id if previous else f"pool_{now.strftime('%Y%m%d%H%M%S')}",
                critical_response=[p.responder_id for p in critical],
                specialist_backup=[p.responder_id for p in specialists],
                on_call_supervisors=[p.responder_id for p in supervisors],
                last_updated=now,
                next_rotation=self.next_rotation_after(now),
            )
            if previous is not None and self.config.overlap_minutes > 0:
                current = set(pool.members())
                pool.handoff = [m for m in previous.members() if m not in current]
                pool.overlap_until = now + timedelta(minutes=self.config.overlap_minutes)

            for member in pool.members():
                self._last_served[member] = now
            self._pool = pool

        logger.info(
            "Emergency pool rotated: %d critical, %d specialist, %d supervisors",
            len(pool.critical_response), len(pool.specialist_backup),
            len(pool.on_call_supervisors),
        )
        self._publish_rotation(pool)
        return pool

    def coverage_gaps(self, pool: Optional[EmergencyPool] = None) -> Dict[str, int]:
        """Missing members per roster, relative to the configured minimums."""
        pool = pool or self._pool
        if pool is None:
            return {
                RosterTier.CRITICAL_RESPONSE.value: self.config.minimum_critical,
                RosterTier.SPECIALIST_BACKUP.value: self.config.minimum_specialist,
                RosterTier.ON_CALL_SUPERVISOR.value: self.config.minimum_supervisor,
            }
        gaps = {
            RosterTier.CRITICAL_RESPONSE.value:
                self.config.minimum_critical - len(pool.critical_response),
            RosterTier.SPECIALIST_BACKUP.value:
                self.config.minimum_specialist - len(pool.specialist_backup),
            RosterTier.ON_CALL_SUPERVISOR.value:
                self.config.minimum_supervisor - len(pool.on_call_supervisors),
        }
        return {tier: missing for tier, missing in gaps.items() if missing > 0}

    async def get_emergency_responder(
        self,
        criteria: Optional[MatchRequest] = None,
        exclude: Iterable[str] = (),
        current_time: Optional[datetime] = None,
    ) -> Optional[EmergencyAssignment]:
        """
        Best currently available pool member, preferring critical response,
        then specialist backup, then supervisors, then handoff members.
        """
        now = current_time or datetime.utcnow()
        if self._pool is None or not self._pool.members() or self.rotation_due(now):
            await self.rotate(now)
        pool = self._pool

        available: Dict[str, ResponderStatus] = {
            s.responder_id: s
            for s in self.registry.get_available(_EMERGENCY_FILTER, current_time=now)
        }
        excluded = set(exclude)
        if criteria is not None:
            excluded.update(criteria.avoid_responders)

        tiers = [
            (RosterTier.CRITICAL_RESPONSE, pool.critical_response),
            (RosterTier.SPECIALIST_BACKUP, pool.specialist_backup),
            (RosterTier.ON_CALL_SUPERVISOR, pool.on_call_supervisors),
        ]
        if pool.handoff and pool.overlap_until and now < pool.overlap_until:
            tiers.append((RosterTier.HANDOFF, pool.handoff))

        required = set(criteria.required_specialties) if criteria else set()
        for tier, members in tiers:
            candidates = [m for m in members if m in available and m not in excluded]
            if not candidates:
                continue
            profiles = await self.profile_store.get_many(candidates) if required else {}

            def rank(responder_id: str):
                profile = profiles.get(responder_id)
                coverage = 0
                if profile is not None:
                    coverage = sum(1 for s in required if profile.specialty(s) is not None)
                return (-coverage, available[responder_id].load_ratio)

            for responder_id in sorted(candidates, key=rank):
                if await self._is_critical(responder_id):
                    continue
                return EmergencyAssignment(responder_id=responder_id, tier=tier, pool_id=pool.pool_id)

        logger.warning("Emergency pool has no available responder")
        return None

    async def _is_critical(self, responder_id: str) -> bool:
        if self.workload is None:
            return False
        try:
            assessment = await asyncio.wait_for(
                self.workload.assess(responder_id),
                timeout=self.config.assessment_timeout_seconds,
            )
        except asyncio.TimeoutError:
            assessment = self.workload.last_known(responder_id)
            if assessment is None:
                return False
        return assessment.burnout_risk.level == BurnoutRiskLevel.CRITICAL

    def _publish_rotation(self, pool: EmergencyPool) -> None:
        gaps = self.coverage_gaps(pool)
        if gaps:
            logger.warning("Emergency pool coverage gap: %s", gaps)
        if self.event_bus is None:
            return
        self.event_bus.publish(make_event(
            MatchingEventType.POOL_ROTATED,
            EventCategory.POOL,
            outcome="rotated",
            data=pool.model_dump(mode="json"),
        ))
        if gaps:
            severity = (
                EventSeverity.CRITICAL
                if RosterTier.CRITICAL_RESPONSE.value in gaps and not pool.critical_response
                else EventSeverity.WARNING
            )
            self.event_bus.publish(make_event(
                MatchingEventType.COVERAGE_GAP,
                EventCategory.ALERT,
                severity=severity,
                outcome="emergency_pool_under_minimum",
                data={"missing": gaps, "pool_id": pool.pool_id},
            ))
