"""Skill taxonomies shared by profiles, requests and scoring."""

from enum import Enum


class CrisisSpecialty(str, Enum):
    SUICIDE_PREVENTION = "SUICIDE_PREVENTION"
    DOMESTIC_VIOLENCE = "DOMESTIC_VIOLENCE"
    SUBSTANCE_ABUSE = "SUBSTANCE_ABUSE"
    TEEN_CRISIS = "TEEN_CRISIS"
    CHILD_ABUSE = "CHILD_ABUSE"
    ELDER_ABUSE = "ELDER_ABUSE"
    LGBTQ_SUPPORT = "LGBTQ_SUPPORT"
    VETERAN_SUPPORT = "VETERAN_SUPPORT"
    EATING_DISORDERS = "EATING_DISORDERS"
    GRIEF_COUNSELING = "GRIEF_COUNSELING"
    ANXIETY_PANIC = "ANXIETY_PANIC"
    DEPRESSION = "DEPRESSION"
    SELF_HARM = "SELF_HARM"
    TRAUMA_PTSD = "TRAUMA_PTSD"
    ADDICTION_RECOVERY = "ADDICTION_RECOVERY"
    RELATIONSHIP_CRISIS = "RELATIONSHIP_CRISIS"
    FINANCIAL_CRISIS = "FINANCIAL_CRISIS"
    WORKPLACE_STRESS = "WORKPLACE_STRESS"
    ACADEMIC_STRESS = "ACADEMIC_STRESS"
    MEDICAL_CRISIS = "MEDICAL_CRISIS"
    DISABILITY_SUPPORT = "DISABILITY_SUPPORT"
    REFUGEE_SUPPORT = "REFUGEE_SUPPORT"
    DISASTER_RESPONSE = "DISASTER_RESPONSE"
    CULTURAL_CRISIS = "CULTURAL_CRISIS"
    SPIRITUAL_CRISIS = "SPIRITUAL_CRISIS"


class SpecialtyLevel(str, Enum):
    """Depth of training in a single specialty."""
    BASIC = "BASIC"
    INTERMEDIATE = "INTERMEDIATE"
    ADVANCED = "ADVANCED"
    EXPERT = "EXPERT"
    SPECIALIST = "SPECIALIST"


class LanguageProficiency(str, Enum):
    """Ordered BASIC < CONVERSATIONAL < FLUENT < NATIVE < PROFESSIONAL."""
    BASIC = "BASIC"
    CONVERSATIONAL = "CONVERSATIONAL"
    FLUENT = "FLUENT"
    NATIVE = "NATIVE"
    PROFESSIONAL = "PROFESSIONAL"


class ExperienceLevel(str, Enum):
    TRAINEE = "TRAINEE"             # < 10 hours
    NOVICE = "NOVICE"               # 10-50 hours
    INTERMEDIATE = "INTERMEDIATE"   # 50-200 hours
    ADVANCED = "ADVANCED"           # 200-500 hours
    EXPERT = "EXPERT"               # 500+ hours
    SPECIALIST = "SPECIALIST"       # certified specialist


_SPECIALTY_LEVEL_ORDER = list(SpecialtyLevel)
_PROFICIENCY_ORDER = list(LanguageProficiency)
_EXPERIENCE_ORDER = list(ExperienceLevel)


def specialty_level_rank(level: SpecialtyLevel) -> int:
    return _SPECIALTY_LEVEL_ORDER.index(SpecialtyLevel(level))


def proficiency_rank(proficiency: LanguageProficiency) -> int:
    return _PROFICIENCY_ORDER.index(LanguageProficiency(proficiency))


def experience_rank(level: ExperienceLevel) -> int:
    return _EXPERIENCE_ORDER.index(ExperienceLevel(level))


def experience_level_for_hours(hours: float) -> ExperienceLevel:
    """Derive the experience band from total support hours."""
    if hours < 10:
        return ExperienceLevel.TRAINEE
    if hours < 50:
        return ExperienceLevel.NOVICE
    if hours < 200:
        return ExperienceLevel.INTERMEDIATE
    if hours < 500:
        return ExperienceLevel.ADVANCED
    return ExperienceLevel.EXPERT
