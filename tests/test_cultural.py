"""Tests for the Cultural Compatibility Engine."""

import asyncio
from datetime import datetime, timedelta

import pytest

from crisis_match.cultural.engine import CulturalCompatibilityEngine
from crisis_match.errors import MatchTimeout, UnknownResponder
from crisis_match.models.config import ComponentBudgets
from crisis_match.models.profile import (
    CulturalCertification,
    CulturalCompetency,
    LanguageSkill,
    ResponderProfile,
)
from crisis_match.models.request import CrisisUrgency, LanguageRequirement, MatchRequest
from crisis_match.models.skills import LanguageProficiency
from crisis_match.profiles.store import InMemoryProfileStore


def _make_profile(responder_id: str = "r1", languages=None, **competency) -> ResponderProfile:
    return ResponderProfile(
        responder_id=responder_id,
        languages=languages or [],
        cultural_competency=CulturalCompetency(**competency),
    )


def _lang(code: str, proficiency: LanguageProficiency, dialect=None) -> LanguageSkill:
    return LanguageSkill(code=code, proficiency=proficiency, dialect=dialect)


class TestLanguageScoring:
    def setup_method(self):
        self.engine = CulturalCompatibilityEngine(InMemoryProfileStore())

    def test_no_requirements_assumes_default_language(self):
        english = _make_profile(languages=[_lang("en", LanguageProficiency.NATIVE)])
        other = _make_profile(languages=[_lang("es", LanguageProficiency.NATIVE)])
        assert self.engine.score_languages(english, []).language_score == 1.0
        assert self.engine.score_languages(other, []).language_score == 0.5

    @pytest.mark.parametrize("have,expected", [
        (LanguageProficiency.FLUENT, 0.7),
        (LanguageProficiency.NATIVE, 0.85),
        (LanguageProficiency.PROFESSIONAL, 1.0),
    ])
    def test_satisfied_requirement_rewards_headroom(self, have, expected):
        profile = _make_profile(languages=[_lang("en", have)])
        match = self.engine.score_languages(
            profile, [LanguageRequirement(code="en", min_proficiency=LanguageProficiency.FLUENT)]
        )
        assert match.language_score == pytest.approx(expected)
        assert match.primary_language_match is True
        assert match.proficiency_match is True

    def test_insufficient_proficiency_scores_low(self):
        profile = _make_profile(languages=[_lang("en", LanguageProficiency.BASIC)])
        match = self.engine.score_languages(
            profile, [LanguageRequirement(code="en", min_proficiency=LanguageProficiency.FLUENT)]
        )
        assert match.language_score == pytest.approx(0.1)
        assert match.missing_languages == ["en"]
        assert match.proficiency_match is False

    def test_primary_language_weighs_double(self):
        profile = _make_profile(languages=[_lang("es", LanguageProficiency.FLUENT)])
        match = self.engine.score_languages(profile, [
            LanguageRequirement(code="es"),
            LanguageRequirement(code="fr"),
        ])
        assert match.language_score == pytest.approx((2 * 0.8 + 0.0) / 3, abs=1e-4)
        assert match.primary_language_match is True
        assert match.matched_languages == ["es"]
        assert match.missing_languages == ["fr"]

    def test_dialect_bonus(self):
        profile = _make_profile(languages=[_lang("es", LanguageProficiency.FLUENT, dialect="Mexican")])
        plain = self.engine.score_languages(profile, [
            LanguageRequirement(code="es", min_proficiency=LanguageProficiency.FLUENT),
        ])
        preferred = self.engine.score_languages(profile, [
            LanguageRequirement(
                code="es", min_proficiency=LanguageProficiency.FLUENT, dialect_preference="mexican",
            ),
        ])
        assert preferred.language_score == pytest.approx(plain.language_score + 0.05)


class TestCultureScoring:
    def setup_method(self):
        self.engine = CulturalCompatibilityEngine(InMemoryProfileStore())

    def test_no_considerations_is_neutral(self):
        match = self.engine.score_culture(_make_profile(), [])
        assert match.overall_score == 0.75

    def test_special_needs_addressed(self):
        profile = _make_profile(lgbtq_competent=True)
        match = self.engine.score_culture(profile, ["LGBTQ"])
        assert match.special_needs_score == 1.0
        assert match.overall_score == pytest.approx(0.7 + 0.3 * 0.75)
        assert match.considerations[0].importance == 1.5

    def test_special_needs_not_addressed(self):
        match = self.engine.score_culture(_make_profile(), ["veteran"])
        assert match.overall_score == pytest.approx(0.3 * 0.75)

    def test_background_similarity(self):
        profile = _make_profile(cultural_groups=["Hispanic"], religious_competency=["Catholic"])
        match = self.engine.score_culture(profile, ["hispanic", "catholic"])
        assert match.background_similarity == 1.0
        assert match.overall_score == pytest.approx(1.0)

    def test_certification_bonus_ignores_expired(self):
        now = datetime.utcnow()
        profile = _make_profile(
            trauma_informed=True,
            certifications=[
                CulturalCertification(name="Trauma-informed care"),
                CulturalCertification(name="Old", expires_at=now - timedelta(days=1)),
            ],
        )
        match = self.engine.score_culture(profile, ["trauma"], current_time=now)
        assert match.overall_score == pytest.approx(0.7 + 0.3 * 0.75 + 0.05)


class TestComprehensiveMatch:
    @pytest.mark.asyncio
    async def test_combines_language_and_culture(self):
        profile = _make_profile(
            languages=[_lang("es", LanguageProficiency.NATIVE)],
            cultural_groups=["latino"],
        )
        engine = CulturalCompatibilityEngine(InMemoryProfileStore([profile]))
        request = MatchRequest(
            urgency=CrisisUrgency.NORMAL,
            severity=4,
            required_languages=[LanguageRequirement(code="es")],
            cultural_considerations=["latino"],
        )
        match = await engine.comprehensive_match("r1", request)
        language = match.language_match.language_score
        culture = match.cultural_match.overall_score
        assert match.match_score == pytest.approx(0.6 * language + 0.4 * culture, abs=1e-4)
        assert match.confidence == 1.0

    @pytest.mark.asyncio
    async def test_sparse_profile_lowers_confidence(self):
        engine = CulturalCompatibilityEngine(InMemoryProfileStore([_make_profile()]))
        match = await engine.comprehensive_match(
            "r1", MatchRequest(urgency=CrisisUrgency.NORMAL, severity=3)
        )
        assert match.confidence == pytest.approx(0.4)

    @pytest.mark.asyncio
    async def test_unknown_responder(self):
        engine = CulturalCompatibilityEngine(InMemoryProfileStore())
        with pytest.raises(UnknownResponder):
            await engine.comprehensive_match(
                "ghost", MatchRequest(urgency=CrisisUrgency.NORMAL, severity=3)
            )

    @pytest.mark.asyncio
    async def test_slow_profile_lookup_exceeds_budget(self):
        class SlowStore(InMemoryProfileStore):
            async def get(self, responder_id):
                await asyncio.sleep(0.5)
                return await super().get(responder_id)

        engine = CulturalCompatibilityEngine(
            SlowStore([_make_profile()]),
            budgets=ComponentBudgets(language=0.05, culture=0.05),
        )
        with pytest.raises(MatchTimeout):
            await engine.match_language("r1", [LanguageRequirement(code="en")])
        with pytest.raises(MatchTimeout):
            await engine.match_culture("r1", ["veteran"])
