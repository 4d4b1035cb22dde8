"""Curriculum lookup: per-tier lesson order and placement entry points.

Placement scoring only produces a tier and a position within that tier.
Turning the position into a concrete unit/lesson is the job of a
``CurriculumLookup`` so that scoring can be tested without curriculum data
and the catalogue can be swapped (static fixture, cached store loader, ...).
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple

from cefr_levels import CefrLevel
from engines.caching import TTLCache
from engines.validation import validate_fraction

_LOGGER = logging.getLogger(__name__)

DEFAULT_ENTRY_POINT: Tuple[int, int] = (1, 1)
DEFAULT_CACHE_MAX_ENTRIES = 64
DEFAULT_CACHE_TTL_SECONDS = 300.0


@dataclass(frozen=True)
class LessonRef:
    """Position of one lesson in the curriculum."""

    lesson_id: str
    level: CefrLevel
    unit: int
    lesson: int

    @property
    def sort_key(self) -> Tuple[int, int, str]:
        return (self.unit, self.lesson, self.lesson_id)


class CurriculumLookup(Protocol):
    def lessons_for_tier(self, level: CefrLevel) -> Sequence[LessonRef]:
        ...

    def total_lessons(self, level: CefrLevel) -> int:
        ...

    def starting_point(self, level: CefrLevel, position: float) -> Tuple[int, int]:
        ...


def entry_point_for(lessons: Sequence[LessonRef], position: float) -> Tuple[int, int]:
    """Map a position in ``[0, 1]`` linearly onto an ordered lesson list.

    Position 0 is the first lesson, positions close to 1 land in the last
    lesson. An empty list starts at unit 1, lesson 1.
    """
    position = validate_fraction("position", position)
    if not lessons:
        return DEFAULT_ENTRY_POINT
    index = min(len(lessons) - 1, int(math.floor(position * len(lessons))))
    chosen = lessons[index]
    return chosen.unit, chosen.lesson


class _LessonListMixin:
    """Shared ``total_lessons``/``starting_point`` on top of ``lessons_for_tier``."""

    def lessons_for_tier(self, level: CefrLevel) -> Sequence[LessonRef]:  # pragma: no cover - abstract
        raise NotImplementedError

    def total_lessons(self, level: CefrLevel) -> int:
        return len(self.lessons_for_tier(level))

    def starting_point(self, level: CefrLevel, position: float) -> Tuple[int, int]:
        return entry_point_for(self.lessons_for_tier(level), position)

    def lesson_ids(self, level: CefrLevel) -> List[str]:
        return [lesson.lesson_id for lesson in self.lessons_for_tier(level)]


class StaticCurriculum(_LessonListMixin):
    """In-memory curriculum built from a fixed lesson list."""

    def __init__(self, lessons: Iterable[LessonRef] = ()) -> None:
        grouped: Dict[CefrLevel, List[LessonRef]] = {level: [] for level in CefrLevel}
        seen: set[str] = set()
        for lesson in lessons:
            if lesson.lesson_id in seen:
                raise ValueError(f"Duplicate lesson id detected: {lesson.lesson_id}")
            if lesson.unit < 1 or lesson.lesson < 1:
                raise ValueError(f"Lesson {lesson.lesson_id} must have unit and lesson >= 1")
            seen.add(lesson.lesson_id)
            grouped[CefrLevel.coerce(lesson.level)].append(lesson)
        self._lessons = {
            level: tuple(sorted(items, key=lambda ref: ref.sort_key))
            for level, items in grouped.items()
        }

    @classmethod
    def from_rows(cls, rows: Iterable[dict]) -> "StaticCurriculum":
        """Build from catalogue rows with ``id``, ``cefr``, ``unit`` and ``lesson`` keys.

        Missing unit/lesson numbers default to 1, as in the lesson catalogue.
        """
        return cls(lesson_from_row(row) for row in rows)

    def lessons_for_tier(self, level: CefrLevel) -> Sequence[LessonRef]:
        return self._lessons[CefrLevel.coerce(level)]


def lesson_from_row(row: Mapping[str, Any]) -> LessonRef:
    """Parse one catalogue row; missing unit/lesson numbers default to 1."""
    return LessonRef(
        lesson_id=str(row["id"]),
        level=CefrLevel.coerce(row["cefr"]),
        unit=int(row.get("unit") or 1),
        lesson=int(row.get("lesson") or 1),
    )


class JsonCurriculumLoader:
    """Per-tier loader reading catalogue rows from a JSON list file.

    The file is re-read on every call; wrap the loader in a
    :class:`CachedCurriculumCatalog` to bound the reads.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def __call__(self, level: CefrLevel) -> List[LessonRef]:
        if not self.path.exists():
            raise FileNotFoundError(f"Curriculum file not found: {self.path}")
        with self.path.open("r", encoding="utf-8") as fh:
            rows = json.load(fh)
        if not isinstance(rows, list):
            raise ValueError("Curriculum file must contain a JSON list of lesson rows")
        target = CefrLevel.coerce(level)
        lessons = []
        for idx, row in enumerate(rows, start=1):
            if not isinstance(row, dict) or "id" not in row or "cefr" not in row:
                raise ValueError(f"Curriculum row #{idx} needs 'id' and 'cefr' keys")
            lesson = lesson_from_row(row)
            if lesson.level is target:
                lessons.append(lesson)
        return lessons


class CachedCurriculumCatalog(_LessonListMixin):
    """Wrap an external per-tier loader with a bounded TTL cache."""

    def __init__(
        self,
        loader: Callable[[CefrLevel], Iterable[LessonRef]],
        cache: Optional[TTLCache] = None,
    ) -> None:
        self._loader = loader
        self._cache = (
            cache
            if cache is not None
            else TTLCache(max_entries=DEFAULT_CACHE_MAX_ENTRIES, ttl_seconds=DEFAULT_CACHE_TTL_SECONDS)
        )

    @property
    def cache(self) -> TTLCache:
        return self._cache

    def lessons_for_tier(self, level: CefrLevel) -> Sequence[LessonRef]:
        level = CefrLevel.coerce(level)
        cached = self._cache.get(level)
        if cached is not None:
            return cached
        lessons = tuple(sorted(self._loader(level), key=lambda ref: ref.sort_key))
        _LOGGER.debug("Loaded %d lessons for %s", len(lessons), level.value)
        self._cache.set(level, lessons)
        return lessons

    def invalidate(self, level: Optional[CefrLevel] = None) -> None:
        if level is None:
            self._cache.clear()
        else:
            self._cache.pop(CefrLevel.coerce(level))
