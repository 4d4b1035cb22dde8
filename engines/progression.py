"""CEFR tier progression engine.

Decides, after every lesson completion, whether a learner has covered enough
of the current tier's curriculum to unlock the next tier. The engine is
deterministic and stateless: it receives a snapshot of the learner's
progress in one tier and returns a decision; persisting the snapshot and
acting on the decision (unlocking content, assigning work) happens outside.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Iterable, Optional

from cefr_levels import CefrLevel
from engines.curriculum import CurriculumLookup
from engines.validation import (
    InvalidProgressionInputError,
    ValidationError,
    validate_count,
    validate_fraction,
)

_LOGGER = logging.getLogger(__name__)

DEFAULT_ADVANCEMENT_THRESHOLD = 0.8
# Inclusive comparison tolerance, so that e.g. 7/10 meets a 0.7 threshold.
COMPLETION_EPSILON = 1e-9


@dataclass(frozen=True)
class ProgressionSnapshot:
    """A learner's lesson completion within a single tier."""

    tier: CefrLevel
    lessons_completed: int
    total_lessons_in_tier: int

    @property
    def completion_percentage(self) -> float:
        if self.total_lessons_in_tier <= 0:
            return 0.0
        ratio = self.lessons_completed / self.total_lessons_in_tier
        return max(0.0, min(1.0, ratio))


@dataclass(frozen=True)
class ProgressionDecision:
    """Outcome of a progression evaluation."""

    should_advance: bool
    next_tier: Optional[CefrLevel]
    completion_percentage: float
    reason: str


class ProgressionEvaluator:
    """Rule-based tier progression.

    Parameters
    ----------
    advancement_threshold:
        Fraction of the tier's lessons (0-1 range, upper bound inclusive)
        that must be completed before the next tier unlocks.
    catalog:
        Optional curriculum lookup used by :meth:`snapshot_for` to count the
        lessons belonging to a tier.
    """

    def __init__(
        self,
        advancement_threshold: float = DEFAULT_ADVANCEMENT_THRESHOLD,
        catalog: Optional[CurriculumLookup] = None,
    ) -> None:
        self.advancement_threshold = self._check_threshold(advancement_threshold)
        self.catalog = catalog

    # ----- public API --------------------------------------------------
    def evaluate(
        self,
        snapshot: ProgressionSnapshot,
        advancement_threshold: Optional[float] = None,
    ) -> ProgressionDecision:
        """Decide whether ``snapshot`` qualifies for the next tier."""

        threshold = (
            self._check_threshold(advancement_threshold)
            if advancement_threshold is not None
            else self.advancement_threshold
        )
        tier = CefrLevel.coerce(snapshot.tier)
        completed = validate_count("lessons_completed", snapshot.lessons_completed)
        total = validate_count("total_lessons_in_tier", snapshot.total_lessons_in_tier)

        if total == 0:
            _LOGGER.warning(
                "No curriculum loaded for tier %s; advancement blocked (%d lessons recorded)",
                tier.value,
                completed,
            )
            return ProgressionDecision(
                should_advance=False,
                next_tier=None,
                completion_percentage=0.0,
                reason=f"No lessons are available for {tier.value}; progression is blocked.",
            )

        if completed > total:
            raise InvalidProgressionInputError(
                f"lessons_completed ({completed}) exceeds total_lessons_in_tier ({total})"
            )

        completion = snapshot.completion_percentage
        next_tier = tier.next_level()
        threshold_met = completion + COMPLETION_EPSILON >= threshold

        if next_tier is None:
            reason = f"{tier.value} is the highest tier; there is nothing to unlock."
            should_advance = False
        elif threshold_met:
            reason = (
                f"Completed {completed}/{total} lessons ({completion:.0%}) in {tier.value}, "
                f"meeting the {threshold:.0%} threshold; {next_tier.value} unlocked."
            )
            should_advance = True
        else:
            reason = (
                f"Completed {completed}/{total} lessons ({completion:.0%}) in {tier.value}; "
                f"{threshold:.0%} required to unlock {next_tier.value}."
            )
            should_advance = False

        if should_advance:
            _LOGGER.info("Tier advancement %s -> %s at %.2f completion", tier.value, next_tier.value, completion)
        else:
            _LOGGER.debug("No advancement for %s at %.2f completion", tier.value, completion)

        return ProgressionDecision(
            should_advance=should_advance,
            next_tier=next_tier,
            completion_percentage=completion,
            reason=reason,
        )

    def snapshot_for(
        self,
        tier: CefrLevel | str,
        completed_lesson_ids: Iterable[str],
    ) -> ProgressionSnapshot:
        """Build a snapshot counting only completed lessons that belong to ``tier``."""

        if self.catalog is None:
            raise ValidationError("snapshot_for requires a curriculum catalog")
        level = CefrLevel.coerce(tier)
        tier_lessons = {lesson.lesson_id for lesson in self.catalog.lessons_for_tier(level)}
        completed = len(tier_lessons.intersection(completed_lesson_ids))
        return ProgressionSnapshot(
            tier=level,
            lessons_completed=completed,
            total_lessons_in_tier=len(tier_lessons),
        )

    def record_completion(self, snapshot: ProgressionSnapshot) -> ProgressionSnapshot:
        """Return ``snapshot`` with one more lesson completed (capped at the tier size)."""

        completed = validate_count("lessons_completed", snapshot.lessons_completed)
        total = validate_count("total_lessons_in_tier", snapshot.total_lessons_in_tier)
        return replace(snapshot, lessons_completed=min(total, completed + 1))

    def advance(
        self,
        snapshot: ProgressionSnapshot,
        decision: ProgressionDecision,
        total_lessons_in_next_tier: Optional[int] = None,
    ) -> ProgressionSnapshot:
        """Return the fresh snapshot for the next tier when ``decision`` advances.

        Completions reset to zero in the new tier. When the new tier's size is
        not given it is read from the catalog (0 without one).
        """

        if not decision.should_advance or decision.next_tier is None:
            return snapshot
        if total_lessons_in_next_tier is None:
            total_lessons_in_next_tier = (
                self.catalog.total_lessons(decision.next_tier) if self.catalog is not None else 0
            )
        total = validate_count("total_lessons_in_next_tier", total_lessons_in_next_tier)
        return ProgressionSnapshot(
            tier=decision.next_tier,
            lessons_completed=0,
            total_lessons_in_tier=total,
        )

    # ----- helpers -----------------------------------------------------
    @staticmethod
    def _check_threshold(value: float) -> float:
        try:
            return validate_fraction("advancement_threshold", value, allow_zero=False)
        except ValidationError as exc:
            raise InvalidProgressionInputError(str(exc)) from exc


def evaluate(
    snapshot: ProgressionSnapshot,
    advancement_threshold: float = DEFAULT_ADVANCEMENT_THRESHOLD,
) -> ProgressionDecision:
    """Evaluate ``snapshot`` with a throwaway evaluator."""
    return ProgressionEvaluator(advancement_threshold).evaluate(snapshot)


def calculate_streak_days(
    session_dates: Iterable[datetime | date],
    today: date,
) -> int:
    """Count consecutive study days ending today or yesterday."""

    days = sorted(
        {value.date() if isinstance(value, datetime) else value for value in session_dates},
        reverse=True,
    )
    streak = 0
    cursor = today
    for day in days:
        gap = (cursor - day).days
        if gap < 0:
            continue
        if gap > 1:
            break
        streak += 1
        cursor = day
    return streak
