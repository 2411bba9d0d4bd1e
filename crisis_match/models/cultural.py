"""Language and cultural compatibility results."""

from typing import List

from pydantic import BaseModel, Field


class LanguageMatch(BaseModel):
    responder_id: str
    primary_language_match: bool
    proficiency_match: bool                 # every requirement satisfied
    language_score: float = Field(ge=0, le=1)
    matched_languages: List[str] = []
    missing_languages: List[str] = []


class CulturalConsideration(BaseModel):
    consideration: str
    addressed: bool
    importance: float


class CulturalMatch(BaseModel):
    responder_id: str
    overall_score: float = Field(ge=0, le=1)
    background_similarity: float = Field(ge=0, le=1)
    special_needs_score: float = Field(ge=0, le=1)
    considerations: List[CulturalConsideration] = []


class ComprehensiveCulturalMatch(BaseModel):
    responder_id: str
    match_score: float = Field(ge=0, le=1)
    confidence: float = Field(ge=0, le=1)
    language_match: LanguageMatch
    cultural_match: CulturalMatch
