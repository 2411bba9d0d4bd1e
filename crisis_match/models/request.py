"""Inbound match requests."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from crisis_match.models.responder import GeographicLocation
from crisis_match.models.skills import (
    CrisisSpecialty,
    ExperienceLevel,
    LanguageProficiency,
)


class CrisisUrgency(str, Enum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"
    EMERGENCY = "EMERGENCY"


class SessionType(str, Enum):
    TEXT_CHAT = "TEXT_CHAT"
    VOICE_CALL = "VOICE_CALL"
    VIDEO_CALL = "VIDEO_CALL"
    CRISIS_HOTLINE = "CRISIS_HOTLINE"
    FOLLOW_UP = "FOLLOW_UP"
    GROUP_SUPPORT = "GROUP_SUPPORT"
    FAMILY_SUPPORT = "FAMILY_SUPPORT"
    PEER_SUPPORT = "PEER_SUPPORT"


class FallbackStrategy(str, Enum):
    WAIT_FOR_OPTIMAL = "WAIT_FOR_OPTIMAL"           # keep polling until the deadline
    ACCEPT_GOOD_MATCH = "ACCEPT_GOOD_MATCH"         # primary threshold 0.7
    ACCEPT_ANY_MATCH = "ACCEPT_ANY_MATCH"           # best available regardless of score
    ESCALATE_TO_EMERGENCY = "ESCALATE_TO_EMERGENCY"
    TRANSFER_TO_PARTNER = "TRANSFER_TO_PARTNER"
    AUTO_RESOURCES_ONLY = "AUTO_RESOURCES_ONLY"


class LanguageRequirement(BaseModel):
    code: str
    min_proficiency: LanguageProficiency = LanguageProficiency.CONVERSATIONAL
    dialect_preference: Optional[str] = None


class MatchRequest(BaseModel):
    """Criteria for finding a responder for one session."""

    session_id: str = ""
    urgency: CrisisUrgency
    severity: int = Field(ge=1, le=10)
    session_type: SessionType = SessionType.TEXT_CHAT
    required_specialties: List[CrisisSpecialty] = []
    required_languages: List[LanguageRequirement] = []
    preferred_specialties: List[CrisisSpecialty] = []
    preferred_languages: List[str] = []
    minimum_experience_level: Optional[ExperienceLevel] = None
    allow_trainees: bool = True
    cultural_considerations: List[str] = []
    user_location: Optional[GeographicLocation] = None
    requires_same_country: bool = False
    immediate_response: bool = False
    max_wait_time: Optional[float] = Field(gt=0, default=None)     # seconds
    fallback_strategy: FallbackStrategy = FallbackStrategy.ACCEPT_ANY_MATCH
    avoid_responders: List[str] = []
    prefer_responders: List[str] = []
    requested_at: Optional[datetime] = None
