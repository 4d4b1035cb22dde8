"""CEFR tier and skill category definitions plus the tier metadata registry."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence


class UnknownLevelError(ValueError):
    """Raised when a value does not name a known CEFR tier or skill category."""


class CefrLevelConfigError(ValueError):
    """Raised when a tier metadata file contains invalid data."""


class CefrLevel(str, Enum):
    """Common European Framework of Reference proficiency tiers, easiest first."""

    A1 = "A1"
    A2 = "A2"
    B1 = "B1"
    B2 = "B2"
    C1 = "C1"
    C2 = "C2"

    @classmethod
    def sequence(cls) -> Sequence["CefrLevel"]:
        return tuple(cls)

    @classmethod
    def lowest(cls) -> "CefrLevel":
        return cls.A1

    @classmethod
    def highest(cls) -> "CefrLevel":
        return cls.C2

    @classmethod
    def coerce(cls, value: "CefrLevel | str") -> "CefrLevel":
        """Return the tier for ``value`` (enum member or case-insensitive id)."""

        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                pass
        raise UnknownLevelError(f"Unknown CEFR level: {value!r}")

    @property
    def rank(self) -> int:
        return _LEVEL_ORDER.index(self)

    def next_level(self) -> Optional["CefrLevel"]:
        idx = self.rank
        if idx + 1 >= len(_LEVEL_ORDER):
            return None
        return _LEVEL_ORDER[idx + 1]

    def previous_level(self) -> Optional["CefrLevel"]:
        idx = self.rank
        if idx == 0:
            return None
        return _LEVEL_ORDER[idx - 1]


_LEVEL_ORDER: tuple[CefrLevel, ...] = tuple(CefrLevel)


class SkillCategory(str, Enum):
    """Skill categories tagged on exam responses.

    Declaration order is the deterministic tie-breaker when ranking skills.
    """

    GRAMMAR = "grammar"
    VOCABULARY = "vocabulary"
    READING = "reading"
    LISTENING = "listening"
    SPEAKING = "speaking"

    @classmethod
    def coerce(cls, value: "SkillCategory | str") -> "SkillCategory":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise UnknownLevelError(f"Unknown skill category: {value!r}")

    @property
    def order(self) -> int:
        return _SKILL_ORDER.index(self)


_SKILL_ORDER: tuple[SkillCategory, ...] = tuple(SkillCategory)


@dataclass(frozen=True)
class CefrLevelInfo:
    """Immutable description of a CEFR tier."""

    level: CefrLevel
    label: str
    description: str
    estimated_study_time: str


DEFAULT_LEVELS: tuple[dict[str, str], ...] = (
    {
        "id": "A1",
        "label": "Beginner",
        "description": "Understands and uses familiar everyday expressions.",
        "estimated_study_time": "2-3 months",
    },
    {
        "id": "A2",
        "label": "Elementary",
        "description": "Communicates in simple and routine tasks.",
        "estimated_study_time": "3-4 months",
    },
    {
        "id": "B1",
        "label": "Intermediate",
        "description": "Deals with most situations likely to arise while travelling.",
        "estimated_study_time": "4-6 months",
    },
    {
        "id": "B2",
        "label": "Upper intermediate",
        "description": "Interacts with a degree of fluency and spontaneity.",
        "estimated_study_time": "6-8 months",
    },
    {
        "id": "C1",
        "label": "Advanced",
        "description": "Uses language flexibly for social, academic and professional purposes.",
        "estimated_study_time": "8-12 months",
    },
    {
        "id": "C2",
        "label": "Proficient",
        "description": "Understands with ease virtually everything heard or read.",
        "estimated_study_time": "12+ months",
    },
)


class CefrLevelRegistry:
    """Tier metadata, either built in or loaded from a JSON file."""

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path is not None else None
        self._levels: List[CefrLevelInfo] = []
        self.reload()

    # ------------------------------------------------------------------
    def reload(self) -> None:
        """Reload tier metadata and validate the structure."""

        if self.path is None:
            raw: object = [dict(entry) for entry in DEFAULT_LEVELS]
        else:
            if not self.path.exists():
                raise FileNotFoundError(f"CEFR levels file not found: {self.path}")
            with self.path.open("r", encoding="utf-8") as fh:
                raw = json.load(fh)

        if not isinstance(raw, list):
            raise CefrLevelConfigError("CEFR levels file must contain a JSON list")

        by_level: dict[CefrLevel, CefrLevelInfo] = {}
        for idx, entry in enumerate(raw, start=1):
            if not isinstance(entry, dict):
                raise CefrLevelConfigError(f"Entry #{idx} must be a JSON object")

            if "id" not in entry or not str(entry["id"]).strip():
                raise CefrLevelConfigError(f"Entry #{idx} is missing a non-empty 'id'")
            if "label" not in entry or not str(entry["label"]).strip():
                raise CefrLevelConfigError(f"Entry #{idx} is missing a non-empty 'label'")

            try:
                level = CefrLevel.coerce(str(entry["id"]))
            except UnknownLevelError as exc:
                raise CefrLevelConfigError(f"Entry #{idx} has unknown id {entry['id']!r}") from exc
            if level in by_level:
                raise CefrLevelConfigError(f"Duplicate CEFR level id detected: {level.value}")

            by_level[level] = CefrLevelInfo(
                level=level,
                label=str(entry["label"]).strip(),
                description=str(entry.get("description", "")).strip(),
                estimated_study_time=str(entry.get("estimated_study_time", "")).strip(),
            )

        missing = [level.value for level in CefrLevel if level not in by_level]
        if missing:
            raise CefrLevelConfigError(f"CEFR levels file is missing tiers: {', '.join(missing)}")

        # Canonical tier order regardless of file order.
        self._levels = [by_level[level] for level in CefrLevel]

    # ------------------------------------------------------------------
    def get(self, level: CefrLevel | str) -> CefrLevelInfo:
        target = CefrLevel.coerce(level)
        for info in self._levels:
            if info.level is target:
                return info
        raise UnknownLevelError(f"Unknown CEFR level: {level!r}")

    def study_time(self, level: CefrLevel | str) -> str:
        return self.get(level).estimated_study_time


CEFR_LEVELS = CefrLevelRegistry()
"""Built-in tier metadata; the app swaps in a file-backed registry from CEFR_LEVELS_PATH."""
