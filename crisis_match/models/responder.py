"""Live responder availability state owned by the availability registry."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


class ResponderOnlineStatus(str, Enum):
    ONLINE = "ONLINE"
    OFFLINE = "OFFLINE"
    BUSY = "BUSY"
    BREAK = "BREAK"
    EMERGENCY_ONLY = "EMERGENCY_ONLY"
    TRAINING = "TRAINING"
    MEETING = "MEETING"
    TECHNICAL_ISSUE = "TECHNICAL_ISSUE"


# Statuses under which a responder may take on another session.
ACCEPTING_STATUSES = (
    ResponderOnlineStatus.ONLINE,
    ResponderOnlineStatus.EMERGENCY_ONLY,
    ResponderOnlineStatus.BUSY,
)


class GeographicLocation(BaseModel):
    country: Optional[str] = None
    country_code: Optional[str] = None     # ISO 3166-1 alpha-2
    region: Optional[str] = None
    timezone: Optional[str] = None         # IANA name, informational
    utc_offset: Optional[float] = None     # hours east of UTC


class ResponderStatus(BaseModel):
    """Current availability of a single responder."""

    responder_id: str
    status: ResponderOnlineStatus = ResponderOnlineStatus.OFFLINE
    last_heartbeat: datetime
    current_sessions: int = Field(ge=0, default=0)
    max_concurrent_sessions: int = Field(ge=1, default=3)
    emergency_available: bool = False
    location: Optional[GeographicLocation] = None
    shift_start: Optional[datetime] = None
    shift_end: Optional[datetime] = None
    break_start: Optional[datetime] = None
    metadata: dict = {}

    @model_validator(mode="after")
    def _check_capacity(self) -> "ResponderStatus":
        if self.current_sessions > self.max_concurrent_sessions:
            raise ValueError(
                f"current_sessions ({self.current_sessions}) exceeds "
                f"max_concurrent_sessions ({self.max_concurrent_sessions})"
            )
        return self

    @property
    def remaining_capacity(self) -> int:
        return self.max_concurrent_sessions - self.current_sessions

    @property
    def load_ratio(self) -> float:
        return self.current_sessions / self.max_concurrent_sessions


class AvailabilityFilter(BaseModel):
    """Narrowing options for an availability query."""

    include_emergency_only: bool = False    # also return EMERGENCY_ONLY responders
    require_emergency_available: bool = False
    responder_ids: Optional[List[str]] = None
    exclude_responder_ids: List[str] = []
    country_code: Optional[str] = None
