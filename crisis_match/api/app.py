"""
Crisis Match API — FastAPI endpoints.

Exposes the matching kernel via a REST API for:
- Matching and session release
- Responder availability and heartbeats
- Workload assessment, shift validation and capacity planning
- Session outcomes and quality scores
- Emergency pool inspection and rotation
- Monitor control, audit queries and metrics
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from crisis_match.errors import CapacityExceeded, InvalidCriteria, MatchTimeout, UnknownResponder
from crisis_match.models.capacity import PlanGranularity
from crisis_match.models.events import EventCategory
from crisis_match.models.profile import ResponderProfile
from crisis_match.models.quality import SessionOutcome
from crisis_match.models.request import MatchRequest
from crisis_match.models.responder import (
    AvailabilityFilter,
    GeographicLocation,
    ResponderOnlineStatus,
    ResponderStatus,
)
from crisis_match.models.result import MatchResult
from crisis_match.models.workload import ProposedShift
from crisis_match.profiles.store import InMemoryProfileStore
from crisis_match.runtime import MatchingRuntime
from crisis_match.settings import Settings, get_settings

logger = logging.getLogger(__name__)


# --- Request/Response Models ---

class MatchCreateRequest(MatchRequest):
    session_id: str


class StatusUpdateRequest(BaseModel):
    status: ResponderOnlineStatus
    emergency_available: Optional[bool] = None
    max_concurrent_sessions: Optional[int] = None
    location: Optional[GeographicLocation] = None


class ReleaseRequest(BaseModel):
    session_id: Optional[str] = None


class CapacityPlanRequest(BaseModel):
    start: datetime
    end: datetime
    granularity: PlanGranularity = PlanGranularity.HOUR


# --- Application Factory ---

def create_app(
    runtime: Optional[MatchingRuntime] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    rt = runtime or MatchingRuntime.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        stop_event = asyncio.Event()
        task = None
        if settings.monitor_enabled:
            task = asyncio.create_task(rt.monitor.run_async(stop_event))
            logger.info("Workload monitor started (every %.0fs)", rt.monitor.config.interval_seconds)
        try:
            yield
        finally:
            stop_event.set()
            if task is not None:
                await task

    app = FastAPI(
        title=settings.app_name,
        description="Crisis responder matching kernel",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Store components on app state for access in endpoints
    app.state.runtime = rt
    app.state.settings = settings

    # === MATCHING ===

    @app.post("/matches")
    async def create_match(req: MatchCreateRequest):
        """Find and reserve a responder, or return the fallback decision."""
        try:
            outcome = await rt.engine.match(req.session_id, req.model_dump())
        except InvalidCriteria as exc:
            raise HTTPException(422, str(exc))
        kind = "match" if isinstance(outcome, MatchResult) else "fallback"
        return {"type": kind, kind: outcome.model_dump(mode="json")}

    @app.get("/matches/metrics")
    def match_metrics():
        return rt.engine.metrics.model_dump()

    # === RESPONDERS ===

    @app.post("/responders")
    def register_responder(status: ResponderStatus):
        return rt.registry.register(status).model_dump(mode="json")

    @app.get("/responders/available")
    def list_available(include_emergency_only: bool = False, emergency_available: bool = False):
        statuses = rt.registry.get_available(AvailabilityFilter(
            include_emergency_only=include_emergency_only,
            require_emergency_available=emergency_available,
        ))
        return [s.model_dump(mode="json") for s in statuses]

    @app.get("/responders/{responder_id}")
    def get_responder(responder_id: str):
        status = rt.registry.get_status(responder_id)
        if status is None:
            raise HTTPException(404, "Responder not found")
        return status.model_dump(mode="json")

    @app.put("/responders/{responder_id}/status")
    def update_status(responder_id: str, req: StatusUpdateRequest):
        metadata = req.model_dump(exclude={"status"}, exclude_none=True)
        try:
            status = rt.registry.update_status(responder_id, req.status, metadata)
        except ValueError as exc:
            raise HTTPException(422, str(exc))
        return status.model_dump(mode="json")

    @app.post("/responders/{responder_id}/heartbeat")
    def heartbeat(responder_id: str):
        try:
            return rt.registry.heartbeat(responder_id).model_dump(mode="json")
        except UnknownResponder:
            raise HTTPException(404, "Responder not found")

    @app.post("/responders/{responder_id}/reserve")
    def reserve(responder_id: str, req: ReleaseRequest):
        try:
            return rt.registry.reserve(responder_id, session_id=req.session_id).model_dump(mode="json")
        except UnknownResponder:
            raise HTTPException(404, "Responder not found")
        except CapacityExceeded as exc:
            raise HTTPException(409, str(exc))

    @app.post("/responders/{responder_id}/release")
    def release(responder_id: str, req: ReleaseRequest):
        try:
            return rt.engine.release(responder_id, session_id=req.session_id).model_dump(mode="json")
        except UnknownResponder:
            raise HTTPException(404, "Responder not found")

    @app.put("/profiles/{responder_id}")
    def upsert_profile(responder_id: str, profile: ResponderProfile):
        if profile.responder_id != responder_id:
            raise HTTPException(422, "responder_id does not match the path")
        if not isinstance(rt.profile_store, InMemoryProfileStore):
            raise HTTPException(405, "Profile store is read-only")
        rt.profile_store.upsert(profile)
        return profile.model_dump(mode="json")

    # === WORKLOAD ===

    @app.get("/responders/{responder_id}/workload")
    async def get_workload(responder_id: str):
        assessment = await rt.workload.assess(responder_id)
        return assessment.model_dump(mode="json")

    @app.post("/responders/{responder_id}/shifts/validate")
    async def validate_shift(responder_id: str, shift: ProposedShift):
        try:
            result = await rt.workload.validate_shift_assignment(responder_id, shift)
        except MatchTimeout as exc:
            raise HTTPException(504, str(exc))
        except ValueError as exc:
            raise HTTPException(422, str(exc))
        return result.model_dump(mode="json")

    @app.post("/responders/{responder_id}/shifts")
    async def schedule_shift(responder_id: str, shift: ProposedShift):
        try:
            validation = await rt.workload.validate_shift_assignment(responder_id, shift)
        except MatchTimeout as exc:
            raise HTTPException(504, str(exc))
        except ValueError as exc:
            raise HTTPException(422, str(exc))
        if not validation.is_valid:
            raise HTTPException(409, {
                "message": "Shift violates workload limits",
                "validation": validation.model_dump(mode="json"),
            })
        return rt.workload.schedule_shift(responder_id, shift).model_dump(mode="json")

    @app.post("/capacity/plan")
    async def capacity_plan(req: CapacityPlanRequest):
        try:
            plan = await rt.workload.generate_capacity_plan(req.start, req.end, req.granularity)
        except MatchTimeout as exc:
            raise HTTPException(504, str(exc))
        except ValueError as exc:
            raise HTTPException(422, str(exc))
        return plan.model_dump(mode="json")

    # === QUALITY ===

    @app.post("/sessions/outcomes")
    def record_outcome(outcome: SessionOutcome):
        rt.quality.record_outcome(outcome)
        return {"status": "recorded", "responder_id": outcome.responder_id}

    @app.get("/responders/{responder_id}/quality")
    async def get_quality(responder_id: str):
        score = await rt.quality.score(responder_id)
        return score.model_dump(mode="json")

    # === EMERGENCY POOL ===

    @app.get("/emergency/pool")
    def get_pool():
        pool = rt.emergency_pool.pool
        if pool is None:
            raise HTTPException(404, "Emergency pool has not been built yet")
        return {
            "pool": pool.model_dump(mode="json"),
            "coverage_gaps": rt.emergency_pool.coverage_gaps(),
        }

    @app.post("/emergency/pool/rotate")
    async def rotate_pool():
        pool = await rt.emergency_pool.rotate()
        return {
            "pool": pool.model_dump(mode="json"),
            "coverage_gaps": rt.emergency_pool.coverage_gaps(pool),
        }

    # === MONITOR ===

    @app.get("/monitor/status")
    def monitor_status():
        return {
            "status": rt.monitor.status,
            "cycles": rt.monitor.cycles,
            "interventions": len(rt.monitor.interventions),
            "config": rt.monitor.config.model_dump(),
        }

    @app.post("/monitor/trigger")
    async def trigger_monitor():
        interventions = await rt.monitor.monitor_once()
        return {"interventions": [i.model_dump(mode="json") for i in interventions]}

    # === AUDIT ===

    @app.get("/audit")
    def get_audit(limit: int = 50):
        return [r.model_dump(mode="json") for r in rt.ledger.query_recent(limit)]

    @app.get("/audit/verify")
    def verify_audit():
        return {
            "chain_valid": rt.ledger.verify_chain_integrity(),
            "record_count": rt.ledger.count(),
        }

    @app.get("/audit/sessions/{session_id}")
    def get_audit_for_session(session_id: str):
        return [r.model_dump(mode="json") for r in rt.ledger.query_by_session(session_id)]

    @app.get("/audit/alerts")
    def get_alerts():
        return [r.model_dump(mode="json") for r in rt.ledger.query_by_category(EventCategory.ALERT)]

    return app
