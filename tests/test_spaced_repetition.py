import random
from datetime import datetime, timedelta

import pytest

from engines.spaced_repetition import (
    MIN_EASINESS,
    ReviewScheduler,
    ReviewState,
    ScheduledItem,
    get_due_reviews,
    grade_from_performance,
    is_success,
    review_forecast,
    round_half_up,
    schedule,
)
from engines.validation import InvalidGradeError
from schemas import ReviewStateRecord


CONSISTENT_STATES = [
    ReviewState(),
    ReviewState(easiness=1.3, interval_days=1, repetitions=1),
    ReviewState(easiness=1.5, interval_days=6, repetitions=2),
    ReviewState(easiness=2.5, interval_days=15, repetitions=3),
    ReviewState(easiness=3.1, interval_days=120, repetitions=9),
]


@pytest.mark.parametrize("grade", range(6))
@pytest.mark.parametrize("state", CONSISTENT_STATES)
def test_easiness_never_drops_below_floor(state, grade):
    assert schedule(state, grade).easiness >= MIN_EASINESS


@pytest.mark.parametrize("grade", [0, 1, 2])
@pytest.mark.parametrize("state", CONSISTENT_STATES)
def test_failed_review_restarts_short_cycle(state, grade):
    new_state = schedule(state, grade)
    assert new_state.repetitions == 0
    assert new_state.interval_days == 1


def test_three_perfect_reviews_from_default_state():
    first = schedule(ReviewState(), 5)
    assert (first.interval_days, first.repetitions) == (1, 1)

    second = schedule(first, 5)
    assert (second.interval_days, second.repetitions) == (6, 2)

    third = schedule(second, 5)
    assert third.repetitions == 3
    assert third.interval_days == round_half_up(6 * third.easiness)
    assert third.interval_days > 6
    assert ReviewState().easiness < first.easiness < second.easiness < third.easiness


def test_easiness_update_follows_grade_curve():
    base = ReviewState(easiness=2.5)
    assert schedule(base, 5).easiness == pytest.approx(2.6)
    assert schedule(base, 4).easiness == pytest.approx(2.5)
    assert schedule(base, 3).easiness == pytest.approx(2.36)
    assert schedule(base, 0).easiness == pytest.approx(1.7)
    assert schedule(ReviewState(easiness=1.4), 0).easiness == MIN_EASINESS


def test_geometric_growth_uses_updated_easiness_and_rounds_half_up():
    state = ReviewState(easiness=2.6, interval_days=5, repetitions=2)
    # grade 4 keeps easiness at 2.6; 5 * 2.6 = 13.0
    assert schedule(state, 4).interval_days == 13

    halfway = ReviewState(easiness=2.4, interval_days=5, repetitions=2)
    # grade 5 lifts easiness to 2.5; 5 * 2.5 = 12.5 rounds up
    assert schedule(halfway, 5).interval_days == 13


def test_scheduler_never_produces_zero_interval_after_success():
    rng = random.Random(20261019)
    state = ReviewState()
    for _ in range(500):
        state = schedule(state, rng.randint(0, 5))
        assert state.easiness >= MIN_EASINESS
        if state.repetitions >= 1:
            assert state.interval_days >= 1


@pytest.mark.parametrize("grade", [-1, 6, 2.5, True, "3", None])
def test_invalid_grades_are_rejected(grade):
    with pytest.raises(InvalidGradeError):
        schedule(ReviewState(), grade)


def test_input_state_is_not_mutated_and_counters_track_outcomes():
    state = ReviewState()
    reviewed_at = datetime(2026, 3, 1, 9, 30)
    passed = schedule(state, 4, reviewed_at=reviewed_at)
    failed = schedule(passed, 1, reviewed_at=reviewed_at + timedelta(days=1))

    assert state == ReviewState()
    assert (passed.successes, passed.failures) == (1, 0)
    assert (failed.successes, failed.failures) == (1, 1)
    assert passed.next_due_at == datetime(2026, 3, 2, 9, 30)
    assert ReviewState().next_due_at is None


def test_custom_floor_is_respected():
    scheduler = ReviewScheduler(min_easiness=1.5)
    assert scheduler.schedule(ReviewState(easiness=1.6), 0).easiness == 1.5
    with pytest.raises(ValueError):
        ReviewScheduler(min_easiness=0)


@pytest.mark.parametrize("floor", [0.5, 1.0, 1.29])
def test_floor_below_stored_minimum_is_rejected(floor):
    with pytest.raises(ValueError):
        ReviewScheduler(min_easiness=floor)


def test_floored_state_fits_the_stored_record():
    state = ReviewState(easiness=MIN_EASINESS)
    for grade in range(6):
        new_state = ReviewScheduler().schedule(state, grade)
        assert ReviewStateRecord.from_domain(new_state).to_domain() == new_state


def test_is_success_threshold():
    assert not is_success(2)
    assert is_success(3)
    with pytest.raises(InvalidGradeError):
        is_success(9)


@pytest.mark.parametrize(
    "performance, expected",
    [(0, 0), (1, 1), (5, 3), (6, 3), (7.4, 4), (9, 5), (10, 5)],
)
def test_grade_from_performance(performance, expected):
    assert grade_from_performance(performance) == expected


@pytest.mark.parametrize("performance", [-0.5, 10.5, float("nan"), "high"])
def test_grade_from_performance_rejects_out_of_range(performance):
    with pytest.raises(InvalidGradeError):
        grade_from_performance(performance)


def _item(item_id, state):
    return ScheduledItem(learner_id="alice", item_id=item_id, state=state)


def test_due_reviews_order_and_limit():
    now = datetime(2026, 5, 10, 12, 0)
    fresh = _item("fresh", ReviewState())
    overdue = _item(
        "overdue",
        ReviewState(interval_days=1, repetitions=1, last_reviewed_at=now - timedelta(days=5)),
    )
    due_now = _item(
        "due-now",
        ReviewState(interval_days=6, repetitions=2, last_reviewed_at=now - timedelta(days=6)),
    )
    later = _item(
        "later",
        ReviewState(interval_days=6, repetitions=2, last_reviewed_at=now - timedelta(days=1)),
    )

    due = get_due_reviews([later, due_now, overdue, fresh], now)
    assert [item.item_id for item in due] == ["fresh", "overdue", "due-now"]

    assert [item.item_id for item in get_due_reviews([later, due_now, overdue, fresh], now, limit=2)] == [
        "fresh",
        "overdue",
    ]
    assert get_due_reviews([fresh], now, limit=0) == []


def test_review_forecast_buckets_by_day():
    now = datetime(2026, 5, 10, 12, 0)
    items = [
        _item("fresh", ReviewState()),
        _item("tomorrow", ReviewState(interval_days=1, repetitions=1, last_reviewed_at=now)),
        _item("in-six", ReviewState(interval_days=6, repetitions=2, last_reviewed_at=now)),
        _item("far", ReviewState(interval_days=30, repetitions=4, last_reviewed_at=now)),
    ]

    forecast = review_forecast(items, now, days=7)
    assert list(forecast) == [f"2026-05-{day:02d}" for day in range(10, 17)]
    assert forecast["2026-05-10"] == 1
    assert forecast["2026-05-11"] == 1
    assert forecast["2026-05-16"] == 1
    assert sum(forecast.values()) == 3
