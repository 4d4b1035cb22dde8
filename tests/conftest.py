import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from cefr_levels import CefrLevel  # noqa: E402
from engines.curriculum import LessonRef, StaticCurriculum  # noqa: E402


class FakeClock:
    """Manually advanced monotonic clock for cache expiry tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sample_curriculum() -> StaticCurriculum:
    lessons = []
    for level in (CefrLevel.A1, CefrLevel.A2, CefrLevel.B1):
        for unit in (1, 2):
            for lesson in (1, 2, 3, 4, 5):
                lessons.append(
                    LessonRef(
                        lesson_id=f"{level.value.lower()}-u{unit}-l{lesson}",
                        level=level,
                        unit=unit,
                        lesson=lesson,
                    )
                )
    return StaticCurriculum(lessons)
