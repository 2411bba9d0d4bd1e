"""Responder profile records consumed from the profile store."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from crisis_match.models.responder import GeographicLocation
from crisis_match.models.skills import (
    CrisisSpecialty,
    ExperienceLevel,
    LanguageProficiency,
    SpecialtyLevel,
)


class SpecialtyInfo(BaseModel):
    type: CrisisSpecialty
    level: SpecialtyLevel = SpecialtyLevel.BASIC
    hours_experience: float = Field(ge=0, default=0.0)
    sessions_handled: int = Field(ge=0, default=0)
    success_rate: float = Field(ge=0, le=1, default=0.0)
    is_active: bool = True


class LanguageSkill(BaseModel):
    code: str                               # ISO 639-1
    proficiency: LanguageProficiency
    dialect: Optional[str] = None
    is_native: bool = False
    is_sign_language: bool = False


class CulturalCertification(BaseModel):
    name: str
    cultural_group: Optional[str] = None
    expires_at: Optional[datetime] = None


class CulturalCompetency(BaseModel):
    cultural_groups: List[str] = []
    religious_competency: List[str] = []
    ethnic_competency: List[str] = []
    lgbtq_competent: bool = False
    veteran_experience: bool = False
    disability_awareness: bool = False
    trauma_informed: bool = False
    certifications: List[CulturalCertification] = []


class WellnessSnapshot(BaseModel):
    """Self-reported and supervisor-assessed wellness baseline."""

    burnout_score: float = Field(ge=0, le=1, default=0.0)
    stress_level: float = Field(ge=1, le=10, default=3.0)
    job_satisfaction: float = Field(ge=1, le=10, default=7.0)
    support_needed: bool = False
    last_check_in: Optional[datetime] = None


class ResponderProfile(BaseModel):
    """Everything the matcher needs to know about a responder beyond live status."""

    responder_id: str
    display_name: str = ""
    specialties: List[SpecialtyInfo] = []
    languages: List[LanguageSkill] = []
    experience_level: ExperienceLevel = ExperienceLevel.TRAINEE
    total_hours: float = Field(ge=0, default=0.0)
    total_sessions: int = Field(ge=0, default=0)
    cultural_competency: CulturalCompetency = CulturalCompetency()
    location: Optional[GeographicLocation] = None
    average_rating: float = Field(ge=1, le=10, default=8.0)
    response_rate: float = Field(ge=0, le=1, default=0.9)
    emergency_rating: float = Field(ge=0, le=10, default=5.0)
    is_supervisor: bool = False
    wellness: WellnessSnapshot = WellnessSnapshot()

    def specialty(self, specialty: CrisisSpecialty) -> Optional[SpecialtyInfo]:
        """Return the active specialty entry, if the responder has one."""
        for info in self.specialties:
            if info.type == specialty and info.is_active:
                return info
        return None

    def language(self, code: str) -> Optional[LanguageSkill]:
        code = code.lower()
        for skill in self.languages:
            if skill.code.lower() == code:
                return skill
        return None
