"""SM-2 style review scheduling for vocabulary and skill items."""

from __future__ import annotations

import logging
import math
from collections import OrderedDict
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional

from engines.validation import InvalidGradeError, validate_grade

_LOGGER = logging.getLogger(__name__)

DEFAULT_EASINESS = 2.5
MIN_EASINESS = 1.3
PASSING_GRADE = 3
FIRST_INTERVAL_DAYS = 1
SECOND_INTERVAL_DAYS = 6
DEFAULT_DUE_LIMIT = 20


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up."""
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class ReviewState:
    """Scheduling state of one reviewable item for one learner."""

    easiness: float = DEFAULT_EASINESS
    interval_days: int = 0
    repetitions: int = 0
    last_reviewed_at: Optional[datetime] = None
    successes: int = 0
    failures: int = 0

    @property
    def next_due_at(self) -> Optional[datetime]:
        if self.last_reviewed_at is None:
            return None
        return self.last_reviewed_at + timedelta(days=self.interval_days)


@dataclass(frozen=True)
class ScheduledItem:
    """A learner's review state for a concrete item, as read from storage."""

    learner_id: str
    item_id: str
    state: ReviewState


def is_success(grade: int) -> bool:
    return validate_grade(grade) >= PASSING_GRADE


def grade_from_performance(performance: float, scale: float = 10.0) -> int:
    """Map an external assessment score in ``[0, scale]`` onto a 0-5 review grade.

    The tutoring step scores skills on a 0-10 scale. Scores round half up,
    so 5/10 and 6/10 both map to grade 3, the lowest passing grade.
    """
    if scale <= 0:
        raise ValueError("scale must be positive")
    try:
        value = float(performance)
    except (TypeError, ValueError) as exc:
        raise InvalidGradeError("performance must be numeric") from exc
    if not math.isfinite(value) or not 0.0 <= value <= scale:
        raise InvalidGradeError(
            f"performance must be within [0, {scale:g}], got {performance}"
        )
    return round_half_up(value * 5.0 / scale)


class ReviewScheduler:
    """Compute the next review state from the previous one and a grade.

    The scheduler is stateless: every call receives a snapshot and returns a
    new one. Persisting the result is the caller's job.
    """

    def __init__(self, min_easiness: float = MIN_EASINESS) -> None:
        if min_easiness < MIN_EASINESS:
            raise ValueError(f"min_easiness must be at least {MIN_EASINESS}")
        self.min_easiness = float(min_easiness)

    def schedule(
        self,
        state: ReviewState,
        grade: int,
        *,
        reviewed_at: Optional[datetime] = None,
    ) -> ReviewState:
        """Apply one graded review to ``state``."""

        grade = validate_grade(grade)
        easiness = self._next_easiness(state.easiness, grade)

        if grade < PASSING_GRADE:
            repetitions = 0
            interval_days = FIRST_INTERVAL_DAYS
        else:
            repetitions = state.repetitions + 1
            if repetitions == 1:
                interval_days = FIRST_INTERVAL_DAYS
            elif repetitions == 2:
                interval_days = SECOND_INTERVAL_DAYS
            else:
                interval_days = round_half_up(state.interval_days * easiness)

        passed = grade >= PASSING_GRADE
        new_state = replace(
            state,
            easiness=easiness,
            interval_days=interval_days,
            repetitions=repetitions,
            last_reviewed_at=reviewed_at,
            successes=state.successes + (1 if passed else 0),
            failures=state.failures + (0 if passed else 1),
        )
        _LOGGER.debug(
            "Scheduled review grade=%s easiness %.3f->%.3f interval %s->%s reps %s->%s",
            grade,
            state.easiness,
            easiness,
            state.interval_days,
            interval_days,
            state.repetitions,
            repetitions,
        )
        return new_state

    def _next_easiness(self, easiness: float, grade: int) -> float:
        miss = 5 - grade
        return max(self.min_easiness, easiness + (0.1 - miss * (0.08 + miss * 0.02)))


_DEFAULT_SCHEDULER = ReviewScheduler()


def schedule(state: ReviewState, grade: int, *, reviewed_at: Optional[datetime] = None) -> ReviewState:
    """Module-level shortcut using the default scheduler."""
    return _DEFAULT_SCHEDULER.schedule(state, grade, reviewed_at=reviewed_at)


def get_due_reviews(
    items: Iterable[ScheduledItem],
    now: datetime,
    limit: int = DEFAULT_DUE_LIMIT,
) -> List[ScheduledItem]:
    """Return items due at ``now``, oldest due date first.

    Items that have never been reviewed are always due and come first.
    """
    if limit <= 0:
        return []

    due = []
    for item in items:
        next_due = item.state.next_due_at
        if next_due is None or next_due <= now:
            due.append(item)

    due.sort(key=lambda it: (it.state.next_due_at is not None, it.state.next_due_at or now))
    return due[:limit]


def review_forecast(
    items: Iterable[ScheduledItem],
    now: datetime,
    days: int = 7,
) -> Dict[str, int]:
    """Count reviews falling due on each of the next ``days`` calendar days.

    Overdue and never-reviewed items count towards today.
    """
    today: date = now.date()
    forecast: "OrderedDict[str, int]" = OrderedDict(
        ((today + timedelta(days=offset)).isoformat(), 0) for offset in range(days)
    )
    for item in items:
        next_due = item.state.next_due_at
        due_day = today if next_due is None or next_due.date() < today else next_due.date()
        key = due_day.isoformat()
        if key in forecast:
            forecast[key] += 1
    return dict(forecast)
