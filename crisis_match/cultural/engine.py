"""Cultural Compatibility Engine — language and cultural fit scoring."""

import asyncio
import logging
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple

from crisis_match.errors import MatchTimeout, UnknownResponder
from crisis_match.models.config import ComponentBudgets, CulturalConfig
from crisis_match.models.cultural import (
    ComprehensiveCulturalMatch,
    CulturalConsideration,
    CulturalMatch,
    LanguageMatch,
)
from crisis_match.models.profile import ResponderProfile
from crisis_match.models.request import LanguageRequirement, MatchRequest
from crisis_match.models.skills import proficiency_rank
from crisis_match.profiles.store import ResponderProfileStore

logger = logging.getLogger(__name__)

# Considerations that map onto a special-needs competency flag.
SPECIAL_NEEDS: Dict[str, str] = {
    "lgbtq": "lgbtq_competent",
    "lgbtq+": "lgbtq_competent",
    "lgbt": "lgbtq_competent",
    "veteran": "veteran_experience",
    "military": "veteran_experience",
    "disability": "disability_awareness",
    "accessibility": "disability_awareness",
    "trauma": "trauma_informed",
    "trauma_informed": "trauma_informed",
}

_MAX_PROFICIENCY_RANK = 4


def _normalize(value: str) -> str:
    return value.strip().lower().replace("-", "_").replace(" ", "_")


class CulturalCompatibilityEngine:
    def __init__(
        self,
        profile_store: ResponderProfileStore,
        config: Optional[CulturalConfig] = None,
        budgets: Optional[ComponentBudgets] = None,
    ):
        self.profile_store = profile_store
        self.config = config or CulturalConfig()
        self.budgets = budgets or ComponentBudgets()

    async def _profile(self, responder_id: str, timeout: float) -> ResponderProfile:
        try:
            profile = await asyncio.wait_for(self.profile_store.get(responder_id), timeout=timeout)
        except asyncio.TimeoutError:
            raise MatchTimeout(
                f"Profile lookup for {responder_id} exceeded its {timeout:g}s budget"
            ) from None
        if profile is None:
            raise UnknownResponder(responder_id)
        return profile

    async def match_language(
        self,
        responder_id: str,
        requirements: List[LanguageRequirement],
        profile: Optional[ResponderProfile] = None,
    ) -> LanguageMatch:
        profile = profile or await self._profile(responder_id, self.budgets.language)
        return self.score_languages(profile, requirements)

    def score_languages(
        self, profile: ResponderProfile, requirements: List[LanguageRequirement]
    ) -> LanguageMatch:
        if not requirements:
            # Without a stated preference the service language is assumed.
            speaks_default = profile.language(self.config.default_language) is not None
            return LanguageMatch(
                responder_id=profile.responder_id,
                primary_language_match=speaks_default,
                proficiency_match=True,
                language_score=1.0 if speaks_default else 0.5,
                matched_languages=[self.config.default_language] if speaks_default else [],
            )

        scores: List[Tuple[float, float]] = []
        matched, missing = [], []
        for index, req in enumerate(requirements):
            weight = 2.0 if index == 0 else 1.0
            skill = profile.language(req.code)
            if skill is None:
                missing.append(req.code)
                scores.append((0.0, weight))
                continue

            have = proficiency_rank(skill.proficiency)
            need = proficiency_rank(req.min_proficiency)
            if have >= need:
                matched.append(req.code)
                headroom = _MAX_PROFICIENCY_RANK - need
                excess = (have - need) / headroom if headroom else 1.0
                score = 0.7 + 0.3 * excess
                if req.dialect_preference and skill.dialect:
                    if _normalize(req.dialect_preference) == _normalize(skill.dialect):
                        score = min(1.0, score + 0.05)
            else:
                missing.append(req.code)
                score = 0.3 * (have + 1) / (need + 1)
            scores.append((score, weight))

        total_weight = sum(w for _, w in scores)
        language_score = sum(s * w for s, w in scores) / total_weight

        return LanguageMatch(
            responder_id=profile.responder_id,
            primary_language_match=requirements[0].code in matched,
            proficiency_match=not missing,
            language_score=round(min(1.0, language_score), 4),
            matched_languages=matched,
            missing_languages=missing,
        )

    async def match_culture(
        self,
        responder_id: str,
        considerations: List[str],
        profile: Optional[ResponderProfile] = None,
        current_time: Optional[datetime] = None,
    ) -> CulturalMatch:
        profile = profile or await self._profile(responder_id, self.budgets.culture)
        return self.score_culture(profile, considerations, current_time)

    def score_culture(
        self,
        profile: ResponderProfile,
        considerations: List[str],
        current_time: Optional[datetime] = None,
    ) -> CulturalMatch:
        """
        Weighted share of addressed considerations blended with background
        similarity; special-needs considerations weigh more.
        """
        if current_time is None:
            current_time = datetime.utcnow()
        competency = profile.cultural_competency
        background: Set[str] = {
            _normalize(g)
            for g in (
                competency.cultural_groups
                + competency.religious_competency
                + competency.ethnic_competency
            )
        }

        if not considerations:
            return CulturalMatch(
                responder_id=profile.responder_id,
                overall_score=self.config.neutral_cultural_score,
                background_similarity=self.config.neutral_cultural_score,
                special_needs_score=self.config.neutral_cultural_score,
            )

        evaluated: List[CulturalConsideration] = []
        special_total, special_met = 0, 0
        background_total, background_met = 0, 0
        for raw in considerations:
            key = _normalize(raw)
            flag = SPECIAL_NEEDS.get(key)
            if flag is not None:
                addressed = bool(getattr(competency, flag))
                importance = self.config.special_needs_importance
                special_total += 1
                special_met += int(addressed)
            else:
                addressed = key in background or any(
                    key in g or g in key for g in background
                )
                importance = 1.0
                background_total += 1
                background_met += int(addressed)
            evaluated.append(CulturalConsideration(
                consideration=raw, addressed=addressed, importance=importance,
            ))

        total_importance = sum(c.importance for c in evaluated)
        addressed_ratio = sum(c.importance for c in evaluated if c.addressed) / total_importance
        background_similarity = (
            background_met / background_total if background_total
            else self.config.neutral_cultural_score
        )
        special_needs_score = (
            special_met / special_total if special_total
            else self.config.neutral_cultural_score
        )

        active_certs = [
            c for c in competency.certifications
            if c.expires_at is None or c.expires_at > current_time
        ]
        bonus = min(
            self.config.max_certification_bonus,
            self.config.certification_bonus * len(active_certs),
        )

        overall = 0.7 * addressed_ratio + 0.3 * background_similarity + bonus
        return CulturalMatch(
            responder_id=profile.responder_id,
            overall_score=round(min(1.0, overall), 4),
            background_similarity=round(background_similarity, 4),
            special_needs_score=round(special_needs_score, 4),
            considerations=evaluated,
        )

    async def comprehensive_match(
        self,
        responder_id: str,
        request: MatchRequest,
        profile: Optional[ResponderProfile] = None,
    ) -> ComprehensiveCulturalMatch:
        profile = profile or await self._profile(responder_id, self.budgets.comprehensive)
        language, culture = await asyncio.gather(
            self.match_language(responder_id, request.required_languages, profile=profile),
            self.match_culture(responder_id, request.cultural_considerations, profile=profile),
        )

        weight = self.config.language_weight
        match_score = weight * language.language_score + (1 - weight) * culture.overall_score

        # Confidence reflects how much of the profile we actually had to go on.
        evidence = 0.4
        if profile.languages:
            evidence += 0.3
        competency = profile.cultural_competency
        if (
            competency.cultural_groups
            or competency.religious_competency
            or competency.ethnic_competency
            or competency.certifications
        ):
            evidence += 0.3

        return ComprehensiveCulturalMatch(
            responder_id=responder_id,
            match_score=round(min(1.0, match_score), 4),
            confidence=round(min(1.0, evidence), 4),
            language_match=language,
            cultural_match=culture,
        )
