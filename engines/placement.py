"""Placement exam scoring.

Turns graded exam responses into an entry tier, a confidence estimate and a
skill breakdown. Correctness values come from an external grading step (which
may itself ask a language model to score free-text answers); this module only
aggregates them.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from cefr_levels import CEFR_LEVELS, CefrLevel, CefrLevelRegistry, SkillCategory, UnknownLevelError
from engines.curriculum import DEFAULT_ENTRY_POINT, CurriculumLookup
from engines.validation import InvalidResponseError, ValidationError, validate_fraction

_LOGGER = logging.getLogger(__name__)

DEFAULT_MASTERY_CUTOFF = 0.7
DEFAULT_SUMMARY_SIZE = 2
# Responses on a tier needed for ~63% of the volume factor.
CONFIDENCE_VOLUME_SCALE = 4.0

SKILL_RECOMMENDATIONS: Mapping[SkillCategory, str] = {
    SkillCategory.GRAMMAR: "Focus on grammar fundamentals and verb conjugations",
    SkillCategory.VOCABULARY: "Build core vocabulary through daily practice",
    SkillCategory.READING: "Practice reading comprehension with graded texts",
    SkillCategory.LISTENING: "Listen to short graded audio and shadow the speakers",
    SkillCategory.SPEAKING: "Schedule regular speaking practice with feedback",
}


@dataclass(frozen=True)
class ScoredResponse:
    """One graded exam response."""

    tier: CefrLevel
    skill: SkillCategory
    correctness: float
    weight: float = 1.0
    question_id: Optional[str] = None

    @classmethod
    def create(
        cls,
        tier: CefrLevel | str,
        skill: SkillCategory | str,
        correctness: float,
        weight: float = 1.0,
        question_id: Optional[str] = None,
    ) -> "ScoredResponse":
        """Build a validated response from loosely typed values."""
        try:
            level = CefrLevel.coerce(tier)
            category = SkillCategory.coerce(skill)
        except UnknownLevelError as exc:
            raise InvalidResponseError(str(exc)) from exc
        response = cls(level, category, correctness, weight, question_id)
        _validate_response(response)
        return response


@dataclass(frozen=True)
class PlacementScores:
    """Scoring outcome without any curriculum lookup."""

    per_tier_scores: Dict[CefrLevel, float]
    per_skill_scores: Dict[SkillCategory, float]
    recommended_tier: CefrLevel
    confidence_score: float
    within_tier_position: float
    responses_considered: int
    strengths: List[SkillCategory] = field(default_factory=list)
    weaknesses: List[SkillCategory] = field(default_factory=list)


@dataclass(frozen=True)
class PlacementResult:
    """Immutable record produced once per placement attempt."""

    per_tier_scores: Dict[CefrLevel, float]
    per_skill_scores: Dict[SkillCategory, float]
    recommended_tier: CefrLevel
    recommended_unit: int
    recommended_lesson: int
    confidence_score: float
    strengths: List[SkillCategory]
    weaknesses: List[SkillCategory]
    within_tier_position: float = 0.0
    responses_considered: int = 0
    recommendations: List[str] = field(default_factory=list)
    estimated_study_time: str = ""


def _validate_response(response: ScoredResponse) -> None:
    if not isinstance(response.tier, CefrLevel):
        raise InvalidResponseError(f"Unknown tier on response: {response.tier!r}")
    if not isinstance(response.skill, SkillCategory):
        raise InvalidResponseError(f"Unknown skill on response: {response.skill!r}")
    try:
        validate_fraction("correctness", response.correctness)
    except ValidationError as exc:
        raise InvalidResponseError(str(exc)) from exc
    try:
        weight = float(response.weight)
    except (TypeError, ValueError) as exc:
        raise InvalidResponseError("weight must be numeric") from exc
    if not math.isfinite(weight) or weight <= 0.0:
        raise InvalidResponseError(f"weight must be a positive finite number, got {response.weight}")


def _weighted_average(pairs: Sequence[Tuple[float, float]]) -> float:
    weight_sum = sum(weight for _, weight in pairs)
    if weight_sum <= 0:
        return 0.0
    return sum(value * weight for value, weight in pairs) / weight_sum


class PlacementScorer:
    """Score placement exams with monotonic tier gating.

    Parameters
    ----------
    mastery_cutoff:
        Minimum per-tier score (inclusive) for a tier to count as mastered.
    summary_size:
        Number of skills reported as strengths and as weaknesses.
    curriculum:
        Optional lookup that maps the recommended tier and the score within
        it to a starting unit/lesson. Without one the learner starts at
        unit 1, lesson 1.
    registry:
        Tier metadata used for the study-time estimate.
    """

    def __init__(
        self,
        mastery_cutoff: float = DEFAULT_MASTERY_CUTOFF,
        summary_size: int = DEFAULT_SUMMARY_SIZE,
        curriculum: Optional[CurriculumLookup] = None,
        registry: Optional[CefrLevelRegistry] = None,
    ) -> None:
        cutoff = validate_fraction("mastery_cutoff", mastery_cutoff)
        if not 0.0 < cutoff < 1.0:
            raise ValueError("mastery_cutoff must be strictly between 0 and 1")
        if summary_size < 0:
            raise ValueError("summary_size cannot be negative")
        self.mastery_cutoff = cutoff
        self.summary_size = int(summary_size)
        self.curriculum = curriculum
        self.registry = registry or CEFR_LEVELS

    # ----- public API --------------------------------------------------
    def score(self, responses: Iterable[ScoredResponse]) -> PlacementResult:
        """Score a submitted exam and pick the curriculum entry point."""

        scores = self.score_breakdown(responses)
        if self.curriculum is not None and scores.responses_considered:
            unit, lesson = self.curriculum.starting_point(
                scores.recommended_tier, scores.within_tier_position
            )
        else:
            unit, lesson = DEFAULT_ENTRY_POINT

        recommendations = [SKILL_RECOMMENDATIONS[skill] for skill in scores.weaknesses]
        result = PlacementResult(
            per_tier_scores=scores.per_tier_scores,
            per_skill_scores=scores.per_skill_scores,
            recommended_tier=scores.recommended_tier,
            recommended_unit=unit,
            recommended_lesson=lesson,
            confidence_score=scores.confidence_score,
            strengths=scores.strengths,
            weaknesses=scores.weaknesses,
            within_tier_position=scores.within_tier_position,
            responses_considered=scores.responses_considered,
            recommendations=recommendations,
            estimated_study_time=self.registry.study_time(scores.recommended_tier),
        )
        _LOGGER.debug(
            "Placement %s unit=%s lesson=%s confidence=%.2f from %d responses",
            result.recommended_tier.value,
            unit,
            lesson,
            result.confidence_score,
            result.responses_considered,
        )
        return result

    def score_breakdown(self, responses: Iterable[ScoredResponse]) -> PlacementScores:
        """Compute tier/skill scores, gating and confidence only."""

        items = list(responses)
        for response in items:
            _validate_response(response)

        if not items:
            return PlacementScores(
                per_tier_scores={},
                per_skill_scores={},
                recommended_tier=CefrLevel.lowest(),
                confidence_score=0.0,
                within_tier_position=0.0,
                responses_considered=0,
            )

        by_tier: Dict[CefrLevel, List[Tuple[float, float]]] = defaultdict(list)
        by_skill: Dict[SkillCategory, List[Tuple[float, float]]] = defaultdict(list)
        for response in items:
            pair = (float(response.correctness), float(response.weight))
            by_tier[response.tier].append(pair)
            by_skill[response.skill].append(pair)

        per_tier = {
            level: _weighted_average(by_tier[level]) for level in CefrLevel if level in by_tier
        }
        per_skill = {
            skill: _weighted_average(by_skill[skill]) for skill in SkillCategory if skill in by_skill
        }

        recommended, mastered = self._gate(per_tier)
        tier_score = per_tier.get(recommended, 0.0)
        tier_count = len(by_tier.get(recommended, ()))
        confidence = self.confidence(tier_score, tier_count)
        position = self._within_tier_position(tier_score) if mastered else 0.0
        strengths, weaknesses = self._rank_skills(per_skill)

        return PlacementScores(
            per_tier_scores=per_tier,
            per_skill_scores=per_skill,
            recommended_tier=recommended,
            confidence_score=confidence,
            within_tier_position=position,
            responses_considered=len(items),
            strengths=strengths,
            weaknesses=weaknesses,
        )

    def confidence(self, tier_score: float, response_count: int) -> float:
        """Confidence (0-100) from the margin over the cutoff and the response volume.

        Non-decreasing in both ``tier_score`` and ``response_count``.
        """
        if response_count <= 0:
            return 0.0
        cutoff = self.mastery_cutoff
        margin = tier_score - cutoff
        if margin >= 0:
            margin_factor = 0.5 + 0.5 * margin / (1.0 - cutoff)
        else:
            margin_factor = 0.5 + 0.5 * margin / cutoff
        margin_factor = max(0.0, min(1.0, margin_factor))
        volume_factor = 1.0 - math.exp(-response_count / CONFIDENCE_VOLUME_SCALE)
        return round(100.0 * margin_factor * volume_factor, 2)

    # ----- helpers -----------------------------------------------------
    def _gate(self, per_tier: Mapping[CefrLevel, float]) -> Tuple[CefrLevel, bool]:
        """Return the highest tier reached without gaps, and whether it was mastered."""
        recommended = CefrLevel.lowest()
        mastered = False
        for level in CefrLevel:
            score = per_tier.get(level)
            if score is None or score < self.mastery_cutoff:
                break
            recommended = level
            mastered = True
        return recommended, mastered

    def _within_tier_position(self, tier_score: float) -> float:
        span = 1.0 - self.mastery_cutoff
        return max(0.0, min(1.0, (tier_score - self.mastery_cutoff) / span))

    def _rank_skills(
        self, per_skill: Mapping[SkillCategory, float]
    ) -> Tuple[List[SkillCategory], List[SkillCategory]]:
        """Top-N strengths and bottom-N weaknesses, never overlapping.

        With fewer than ``2 * N`` ranked skills the lower half (rounded up)
        goes to the weaknesses, so the weakest skill is always reported.
        """
        if self.summary_size == 0 or not per_skill:
            return [], []
        weak_count = min(self.summary_size, (len(per_skill) + 1) // 2)
        strong_count = min(self.summary_size, len(per_skill) - weak_count)
        ascending = sorted(per_skill, key=lambda skill: (per_skill[skill], skill.order))
        weaknesses = ascending[:weak_count]
        descending = sorted(per_skill, key=lambda skill: (-per_skill[skill], skill.order))
        strengths = [skill for skill in descending if skill not in weaknesses][:strong_count]
        return strengths, weaknesses


def score(responses: Iterable[ScoredResponse]) -> PlacementResult:
    """Score ``responses`` with the default scorer settings."""
    return PlacementScorer().score(responses)
