"""Validation errors and input checks shared by the decision engines."""

import math
from typing import Any


class ValidationError(ValueError):
    """Base class for rejected engine input."""
    pass


class InvalidGradeError(ValidationError):
    """Raised when a review grade is not an integer in [0, 5]."""
    pass


class InvalidProgressionInputError(ValidationError):
    """Raised when lesson counts or thresholds are out of range."""
    pass


class InvalidResponseError(ValidationError):
    """Raised when a scored placement response is malformed."""
    pass


MIN_GRADE = 0
MAX_GRADE = 5


def validate_grade(grade: Any) -> int:
    """Return ``grade`` if it is an integer review grade.

    Raises InvalidGradeError otherwise; booleans and floats are rejected
    rather than coerced.
    """
    if isinstance(grade, bool) or not isinstance(grade, int):
        raise InvalidGradeError(
            f"Grade must be an integer between {MIN_GRADE} and {MAX_GRADE}, "
            f"got {type(grade).__name__}"
        )
    if not (MIN_GRADE <= grade <= MAX_GRADE):
        raise InvalidGradeError(
            f"Grade must be between {MIN_GRADE} and {MAX_GRADE}, got {grade}"
        )
    return grade


def validate_count(name: str, value: Any) -> int:
    """Validate a non-negative integer counter."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidProgressionInputError(f"{name} must be an integer")
    if value < 0:
        raise InvalidProgressionInputError(f"{name} cannot be negative, got {value}")
    return value


def validate_fraction(name: str, value: Any, *, allow_zero: bool = True) -> float:
    """Validate a finite number in [0, 1] (or (0, 1] when ``allow_zero`` is false)."""
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{name} must be numeric") from exc
    if not math.isfinite(number):
        raise ValidationError(f"{name} must be finite")
    lower_ok = number >= 0.0 if allow_zero else number > 0.0
    if not lower_ok or number > 1.0:
        bounds = "[0, 1]" if allow_zero else "(0, 1]"
        raise ValidationError(f"{name} must be within {bounds}, got {number}")
    return number
