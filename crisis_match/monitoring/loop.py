"""
Workload Monitor — periodic burnout sweep, independent of matching.

Every cycle re-assesses each responder who is not offline:
  CRITICAL burnout → forced break (status BREAK) + critical alert
  HIGH burnout     → supervisor review alert
Interventions on the same responder are dampened by a cooldown. Each cycle
also rotates the emergency pool when its schedule is due.
"""

import asyncio
import logging
from collections import deque
from datetime import datetime, timedelta
from typing import Deque, Dict, List, Optional
from uuid import uuid4

from crisis_match.availability.registry import AvailabilityRegistry
from crisis_match.emergency.pool import EmergencyPoolManager
from crisis_match.events.bus import EventBus, make_event
from crisis_match.models.config import MonitorConfig
from crisis_match.models.events import EventCategory, EventSeverity, MatchingEventType
from crisis_match.models.monitoring import (
    Intervention,
    InterventionDampening,
    InterventionType,
)
from crisis_match.models.responder import ResponderOnlineStatus
from crisis_match.models.workload import BurnoutRiskLevel
from crisis_match.workload.assessor import WorkloadAssessor

logger = logging.getLogger(__name__)


class WorkloadMonitor:
    def __init__(
        self,
        registry: AvailabilityRegistry,
        workload: WorkloadAssessor,
        emergency_pool: Optional[EmergencyPoolManager] = None,
        config: Optional[MonitorConfig] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.registry = registry
        self.workload = workload
        self.emergency_pool = emergency_pool
        self.config = config or MonitorConfig()
        self.event_bus = event_bus
        self._dampening: Dict[str, InterventionDampening] = {}
        self._interventions: Deque[Intervention] = deque(
            maxlen=self.config.intervention_history_size
        )
        self._running = False
        self.cycles = 0

    @property
    def status(self) -> str:
        return "running" if self._running else "stopped"

    @property
    def interventions(self) -> List[Intervention]:
        return list(self._interventions)

    async def monitor_once(self, current_time: Optional[datetime] = None) -> List[Intervention]:
        """Run a single monitoring cycle. Returns the interventions it triggered."""
        now = current_time or datetime.utcnow()
        triggered: List[Intervention] = []

        for status in self.registry.all_statuses():
            if status.status == ResponderOnlineStatus.OFFLINE:
                continue
            if self._is_dampened(status.responder_id, now):
                continue
            try:
                assessment = await self.workload.assess(
                    status.responder_id, current_time=current_time, use_cache=False
                )
            except Exception:
                logger.exception("Workload assessment failed for %s", status.responder_id)
                continue

            risk = assessment.burnout_risk
            intervention = None
            if risk.level == BurnoutRiskLevel.CRITICAL:
                intervention = self._force_break(status.responder_id, status.status, risk.score, now)
            elif risk.level == BurnoutRiskLevel.HIGH:
                intervention = Intervention(
                    id=f"int_{uuid4().hex[:12]}",
                    responder_id=status.responder_id,
                    type=InterventionType.SUPERVISOR_REVIEW,
                    burnout_level=risk.level,
                    burnout_score=risk.score,
                    description="High burnout risk: supervisor review requested",
                    created_at=now,
                )
            if intervention is None:
                continue

            self._update_dampening(status.responder_id, now)
            self._interventions.append(intervention)
            triggered.append(intervention)
            self._publish(intervention)

        for responder_id in self.registry.stale_responders(now):
            logger.info("Responder %s has a stale heartbeat", responder_id)

        if self.emergency_pool is not None:
            try:
                await self.emergency_pool.maybe_rotate(now)
            except Exception:
                logger.exception("Emergency pool rotation failed")

        self.cycles += 1
        return triggered

    def _force_break(
        self,
        responder_id: str,
        current_status: ResponderOnlineStatus,
        score: float,
        now: datetime,
    ) -> Intervention:
        changed = False
        if self.config.force_break_on_critical and current_status != ResponderOnlineStatus.BREAK:
            # Active sessions continue; BREAK only stops new assignments.
            self.registry.update_status(
                responder_id,
                ResponderOnlineStatus.BREAK,
                metadata={"break_reason": "critical_burnout"},
                current_time=now,
                touch_heartbeat=False,
            )
            changed = True
        logger.warning("Forced break for %s (burnout %.2f)", responder_id, score)
        return Intervention(
            id=f"int_{uuid4().hex[:12]}",
            responder_id=responder_id,
            type=InterventionType.FORCED_BREAK,
            burnout_level=BurnoutRiskLevel.CRITICAL,
            burnout_score=score,
            description="Critical burnout risk: mandatory break enforced",
            status_changed=changed,
            created_at=now,
        )

    def _is_dampened(self, responder_id: str, now: datetime) -> bool:
        state = self._dampening.get(responder_id)
        if not state:
            return False
        return bool(state.cooldown_until and now < state.cooldown_until)

    def _update_dampening(self, responder_id: str, now: datetime) -> None:
        state = self._dampening.get(responder_id)
        if not state:
            state = InterventionDampening(responder_id=responder_id, last_intervention_at=now)
            self._dampening[responder_id] = state
        state.last_intervention_at = now
        state.cooldown_until = now + timedelta(seconds=self.config.intervention_cooldown_seconds)

    def _publish(self, intervention: Intervention) -> None:
        if self.event_bus is None:
            return
        critical = intervention.type == InterventionType.FORCED_BREAK
        self.event_bus.publish(make_event(
            MatchingEventType.INTERVENTION_TRIGGERED,
            EventCategory.INTERVENTION,
            severity=EventSeverity.CRITICAL if critical else EventSeverity.WARNING,
            outcome=intervention.type.value,
            responder_id=intervention.responder_id,
            data=intervention.model_dump(mode="json"),
        ))

    async def run_async(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Run the monitor until the stop event is set."""
        self._running = True
        if stop_event is None:
            stop_event = asyncio.Event()

        try:
            while not stop_event.is_set():
                await self.monitor_once()
                try:
                    await asyncio.wait_for(
                        stop_event.wait(),
                        timeout=self.config.interval_seconds,
                    )
                except asyncio.TimeoutError:
                    continue
        finally:
            self._running = False
