import math

import pytest

from cefr_levels import CefrLevel, SkillCategory
from engines.placement import (
    SKILL_RECOMMENDATIONS,
    PlacementScorer,
    ScoredResponse,
    score,
)
from engines.validation import InvalidResponseError


def r(tier, skill, correctness, weight=1.0):
    return ScoredResponse.create(tier, skill, correctness, weight)


def test_empty_exam_yields_default_placement():
    result = score([])
    assert result.recommended_tier is CefrLevel.A1
    assert result.confidence_score == 0
    assert (result.recommended_unit, result.recommended_lesson) == (1, 1)
    assert result.per_tier_scores == {}
    assert result.strengths == [] and result.weaknesses == []
    assert result.responses_considered == 0
    assert result.estimated_study_time == "2-3 months"


def test_recommends_highest_tier_mastered_without_gaps():
    responses = [
        r("A1", "grammar", 1.0),
        r("A1", "vocabulary", 1.0),
        r("A1", "reading", 1.0),
        r("A2", "grammar", 1.0),
        r("A2", "vocabulary", 1.0),
        r("A2", "reading", 1.0),
        r("A2", "listening", 0.0),
        r("B1", "grammar", 0.0),
        r("B1", "vocabulary", 0.0),
        r("B1", "reading", 1.0),
    ]
    result = score(responses)
    assert result.recommended_tier is CefrLevel.A2
    assert result.per_tier_scores[CefrLevel.A2] == pytest.approx(0.75)
    assert result.per_tier_scores[CefrLevel.B1] == pytest.approx(1 / 3)
    assert 0 < result.confidence_score < 100


def test_gating_stops_at_first_failed_tier():
    responses = [
        r("A1", "grammar", 0.9),
        r("A2", "grammar", 0.4),
        r("B1", "grammar", 1.0),
        r("B2", "grammar", 1.0),
    ]
    result = score(responses)
    assert result.recommended_tier is CefrLevel.A1


def test_untested_tier_blocks_higher_tiers():
    responses = [r("A1", "grammar", 1.0), r("B1", "grammar", 1.0)]
    result = score(responses)
    assert result.recommended_tier is CefrLevel.A1
    assert CefrLevel.A2 not in result.per_tier_scores


def test_learner_failing_every_tier_starts_at_the_lowest():
    scorer = PlacementScorer()
    scores = scorer.score_breakdown([r("A1", "grammar", 0.2), r("A1", "vocabulary", 0.4)])
    assert scores.recommended_tier is CefrLevel.A1
    assert scores.within_tier_position == 0.0
    assert 0 < scores.confidence_score < 50


def test_cutoff_is_inclusive():
    scorer = PlacementScorer(mastery_cutoff=0.5)
    scores = scorer.score_breakdown(
        [r("A1", "grammar", 1.0), r("A1", "grammar", 0.0), r("A2", "grammar", 0.0)]
    )
    assert scores.recommended_tier is CefrLevel.A1
    assert scores.within_tier_position == 0.0
    assert scores.confidence_score > 0


def test_tier_score_is_weighted_by_difficulty():
    scores = PlacementScorer().score_breakdown(
        [r("A1", "grammar", 1.0, weight=3.0), r("A1", "grammar", 0.0, weight=1.0)]
    )
    assert scores.per_tier_scores[CefrLevel.A1] == pytest.approx(0.75)
    assert scores.per_skill_scores[SkillCategory.GRAMMAR] == pytest.approx(0.75)


@pytest.mark.parametrize(
    "base",
    [
        [],
        [0.0],
        [0.2, 0.9],
        [1.0, 1.0],
        [0.5, 0.25, 0.75, 0.1],
    ],
)
def test_adding_a_perfect_response_never_lowers_tier_score(base):
    scorer = PlacementScorer()
    responses = [r("B1", "reading", value, weight=1.0 + idx) for idx, value in enumerate(base)]
    before = scorer.score_breakdown(responses).per_tier_scores.get(CefrLevel.B1, 0.0)
    for weight in (0.5, 1.0, 4.0):
        after = scorer.score_breakdown(
            responses + [r("B1", "reading", 1.0, weight=weight)]
        ).per_tier_scores[CefrLevel.B1]
        assert after >= before


def test_confidence_is_monotonic_in_margin_and_volume():
    scorer = PlacementScorer(mastery_cutoff=0.7)
    tier_scores = [i / 20 for i in range(21)]
    counts = range(0, 30)

    for count in counts:
        values = [scorer.confidence(s, count) for s in tier_scores]
        assert values == sorted(values)
    for s in tier_scores:
        values = [scorer.confidence(s, count) for count in counts]
        assert values == sorted(values)

    assert scorer.confidence(1.0, 0) == 0.0
    assert scorer.confidence(1.0, 4) == pytest.approx(100 * (1 - math.exp(-1)), abs=0.01)
    assert all(0 <= scorer.confidence(s, 1000) <= 100 for s in tier_scores)


def test_strengths_and_weaknesses_break_ties_by_category_order():
    responses = [
        r("A1", "speaking", 0.5),
        r("A1", "listening", 0.2),
        r("A1", "reading", 0.5),
        r("A1", "vocabulary", 0.9),
        r("A1", "grammar", 0.9),
    ]
    result = score(responses)
    assert result.strengths == [SkillCategory.GRAMMAR, SkillCategory.VOCABULARY]
    assert result.weaknesses == [SkillCategory.LISTENING, SkillCategory.READING]
    assert result.recommendations == [
        SKILL_RECOMMENDATIONS[SkillCategory.LISTENING],
        SKILL_RECOMMENDATIONS[SkillCategory.READING],
    ]


def test_weakest_skill_is_reported_with_few_skills():
    result = score([r("A1", "grammar", 0.9), r("A1", "speaking", 0.1)])
    assert result.strengths == [SkillCategory.GRAMMAR]
    assert result.weaknesses == [SkillCategory.SPEAKING]
    assert result.recommendations == [SKILL_RECOMMENDATIONS[SkillCategory.SPEAKING]]

    single = PlacementScorer(summary_size=1).score([r("A1", "grammar", 0.9), r("A1", "speaking", 0.1)])
    assert single.strengths == [SkillCategory.GRAMMAR]
    assert single.weaknesses == [SkillCategory.SPEAKING]


def test_odd_skill_count_gives_lower_half_to_weaknesses():
    result = score([r("A1", "grammar", 0.9), r("A1", "reading", 0.6), r("A1", "speaking", 0.1)])
    assert result.strengths == [SkillCategory.GRAMMAR]
    assert result.weaknesses == [SkillCategory.SPEAKING, SkillCategory.READING]

    lone = score([r("A1", "listening", 0.3)])
    assert lone.strengths == []
    assert lone.weaknesses == [SkillCategory.LISTENING]


@pytest.mark.parametrize("count", range(1, 6))
def test_strengths_and_weaknesses_never_overlap(count):
    skills = list(SkillCategory)[:count]
    responses = [r("A1", skill.value, (idx + 1) / 10) for idx, skill in enumerate(skills)]
    result = score(responses)
    assert not set(result.strengths) & set(result.weaknesses)
    assert min(skills, key=lambda skill: result.per_skill_scores[skill]) in result.weaknesses


def test_entry_point_follows_score_within_tier(sample_curriculum):
    scorer = PlacementScorer(mastery_cutoff=0.5, curriculum=sample_curriculum)

    top = scorer.score([r("A1", "grammar", 1.0), r("A1", "vocabulary", 1.0)])
    assert top.within_tier_position == 1.0
    assert (top.recommended_unit, top.recommended_lesson) == (2, 5)

    middle = scorer.score(
        [r("A1", "grammar", 1.0), r("A1", "grammar", 1.0), r("A1", "grammar", 1.0), r("A1", "grammar", 0.0)]
    )
    assert middle.within_tier_position == pytest.approx(0.5)
    assert (middle.recommended_unit, middle.recommended_lesson) == (2, 1)

    low = scorer.score([r("A1", "grammar", 0.5)])
    assert (low.recommended_unit, low.recommended_lesson) == (1, 1)


def test_tier_without_curriculum_starts_at_first_lesson(sample_curriculum):
    scorer = PlacementScorer(curriculum=sample_curriculum)
    responses = [r(level, "grammar", 1.0) for level in ("A1", "A2", "B1", "B2")]
    result = scorer.score(responses)
    assert result.recommended_tier is CefrLevel.B2
    assert (result.recommended_unit, result.recommended_lesson) == (1, 1)
    assert result.estimated_study_time == "6-8 months"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"tier": "Z9", "skill": "grammar", "correctness": 0.5},
        {"tier": "A1", "skill": "culture", "correctness": 0.5},
        {"tier": "A1", "skill": "grammar", "correctness": 1.5},
        {"tier": "A1", "skill": "grammar", "correctness": -0.1},
        {"tier": "A1", "skill": "grammar", "correctness": 0.5, "weight": 0},
        {"tier": "A1", "skill": "grammar", "correctness": float("nan")},
    ],
)
def test_malformed_responses_are_rejected(kwargs):
    with pytest.raises(InvalidResponseError):
        ScoredResponse.create(**kwargs)


def test_scorer_rejects_unvalidated_bad_response():
    bad = ScoredResponse(CefrLevel.A1, SkillCategory.GRAMMAR, correctness=2.0)
    with pytest.raises(InvalidResponseError):
        score([bad])


def test_scorer_settings_are_validated():
    with pytest.raises(ValueError):
        PlacementScorer(mastery_cutoff=1.0)
    with pytest.raises(ValueError):
        PlacementScorer(summary_size=-1)
