"""Pydantic records for the persistence boundary."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List

from pydantic import BaseModel, Field, field_validator

from cefr_levels import CefrLevel, SkillCategory
from engines.placement import PlacementResult, ScoredResponse
from engines.progression import ProgressionDecision, ProgressionSnapshot
from engines.spaced_repetition import DEFAULT_EASINESS, MIN_EASINESS, ReviewState

__all__ = [
    "ReviewStateRecord",
    "ProgressionSnapshotRecord",
    "ProgressionDecisionRecord",
    "ScoredResponseRecord",
    "PlacementSubmission",
    "PlacementResultRecord",
]


def _coerce_level(value: Any) -> Any:
    return CefrLevel.coerce(value) if isinstance(value, str) else value


def _coerce_skill(value: Any) -> Any:
    return SkillCategory.coerce(value) if isinstance(value, str) else value


class ReviewStateRecord(BaseModel):
    """Stored scheduling state for a (learner, item) pair."""

    easiness: float = Field(default=DEFAULT_EASINESS, ge=MIN_EASINESS)
    interval_days: int = Field(default=0, ge=0)
    repetitions: int = Field(default=0, ge=0)
    last_reviewed_at: datetime | None = None
    next_due_at: datetime | None = Field(
        default=None,
        description="Derived from last_reviewed_at and interval_days; ignored on input.",
    )
    successes: int = Field(default=0, ge=0)
    failures: int = Field(default=0, ge=0)

    @classmethod
    def from_domain(cls, state: ReviewState) -> "ReviewStateRecord":
        return cls(
            easiness=state.easiness,
            interval_days=state.interval_days,
            repetitions=state.repetitions,
            last_reviewed_at=state.last_reviewed_at,
            next_due_at=state.next_due_at,
            successes=state.successes,
            failures=state.failures,
        )

    def to_domain(self) -> ReviewState:
        return ReviewState(
            easiness=self.easiness,
            interval_days=self.interval_days,
            repetitions=self.repetitions,
            last_reviewed_at=self.last_reviewed_at,
            successes=self.successes,
            failures=self.failures,
        )


class ProgressionSnapshotRecord(BaseModel):
    tier: CefrLevel
    lessons_completed: int = Field(ge=0)
    total_lessons_in_tier: int = Field(ge=0)
    completion_percentage: float | None = Field(
        default=None,
        description="Derived completion ratio in [0, 1]; ignored on input.",
    )

    @field_validator("tier", mode="before")
    @classmethod
    def normalize_tier(cls, value: Any) -> Any:
        return _coerce_level(value)

    @classmethod
    def from_domain(cls, snapshot: ProgressionSnapshot) -> "ProgressionSnapshotRecord":
        return cls(
            tier=snapshot.tier,
            lessons_completed=snapshot.lessons_completed,
            total_lessons_in_tier=snapshot.total_lessons_in_tier,
            completion_percentage=snapshot.completion_percentage,
        )

    def to_domain(self) -> ProgressionSnapshot:
        return ProgressionSnapshot(
            tier=self.tier,
            lessons_completed=self.lessons_completed,
            total_lessons_in_tier=self.total_lessons_in_tier,
        )


class ProgressionDecisionRecord(BaseModel):
    should_advance: bool
    next_tier: CefrLevel | None = None
    completion_percentage: float = Field(ge=0.0, le=1.0)
    reason: str

    @classmethod
    def from_domain(cls, decision: ProgressionDecision) -> "ProgressionDecisionRecord":
        return cls(
            should_advance=decision.should_advance,
            next_tier=decision.next_tier,
            completion_percentage=decision.completion_percentage,
            reason=decision.reason,
        )


class ScoredResponseRecord(BaseModel):
    tier: CefrLevel
    skill: SkillCategory
    correctness: float = Field(ge=0.0, le=1.0)
    weight: float = Field(
        default=1.0,
        gt=0.0,
        description="Item difficulty weight assigned by the exam author.",
    )
    question_id: str | None = None

    @field_validator("tier", mode="before")
    @classmethod
    def normalize_tier(cls, value: Any) -> Any:
        return _coerce_level(value)

    @field_validator("skill", mode="before")
    @classmethod
    def normalize_skill(cls, value: Any) -> Any:
        return _coerce_skill(value)

    @classmethod
    def from_domain(cls, response: ScoredResponse) -> "ScoredResponseRecord":
        return cls(
            tier=response.tier,
            skill=response.skill,
            correctness=response.correctness,
            weight=response.weight,
            question_id=response.question_id,
        )

    def to_domain(self) -> ScoredResponse:
        return ScoredResponse(
            tier=self.tier,
            skill=self.skill,
            correctness=self.correctness,
            weight=self.weight,
            question_id=self.question_id,
        )


class PlacementSubmission(BaseModel):
    """Graded placement exam as delivered by the exam-grading step."""

    responses: List[ScoredResponseRecord] = Field(default_factory=list)

    def to_domain(self) -> List[ScoredResponse]:
        return [record.to_domain() for record in self.responses]


class PlacementResultRecord(BaseModel):
    per_tier_scores: Dict[CefrLevel, float] = Field(default_factory=dict)
    per_skill_scores: Dict[SkillCategory, float] = Field(default_factory=dict)
    recommended_tier: CefrLevel
    recommended_unit: int = Field(ge=1)
    recommended_lesson: int = Field(ge=1)
    confidence_score: float = Field(ge=0.0, le=100.0)
    strengths: List[SkillCategory] = Field(default_factory=list)
    weaknesses: List[SkillCategory] = Field(default_factory=list)
    within_tier_position: float = Field(default=0.0, ge=0.0, le=1.0)
    responses_considered: int = Field(default=0, ge=0)
    recommendations: List[str] = Field(default_factory=list)
    estimated_study_time: str = ""

    @classmethod
    def from_domain(cls, result: PlacementResult) -> "PlacementResultRecord":
        return cls(
            per_tier_scores=dict(result.per_tier_scores),
            per_skill_scores=dict(result.per_skill_scores),
            recommended_tier=result.recommended_tier,
            recommended_unit=result.recommended_unit,
            recommended_lesson=result.recommended_lesson,
            confidence_score=result.confidence_score,
            strengths=list(result.strengths),
            weaknesses=list(result.weaknesses),
            within_tier_position=result.within_tier_position,
            responses_considered=result.responses_considered,
            recommendations=list(result.recommendations),
            estimated_study_time=result.estimated_study_time,
        )

    def to_domain(self) -> PlacementResult:
        return PlacementResult(
            per_tier_scores=dict(self.per_tier_scores),
            per_skill_scores=dict(self.per_skill_scores),
            recommended_tier=self.recommended_tier,
            recommended_unit=self.recommended_unit,
            recommended_lesson=self.recommended_lesson,
            confidence_score=self.confidence_score,
            strengths=list(self.strengths),
            weaknesses=list(self.weaknesses),
            within_tier_position=self.within_tier_position,
            responses_considered=self.responses_considered,
            recommendations=list(self.recommendations),
            estimated_study_time=self.estimated_study_time,
        )
