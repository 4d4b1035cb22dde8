"""Environment variable validation and management."""

import math
import os
import logging
from dataclasses import dataclass
from typing import Dict, Optional

logger = logging.getLogger(__name__)

class EnvironmentError(Exception):
    """Raised when required environment variables are missing or invalid."""
    pass


_DEFAULTS: Dict[str, str] = {
    "ADVANCEMENT_THRESHOLD": "0.8",
    "PLACEMENT_MASTERY_CUTOFF": "0.7",
    "PLACEMENT_SUMMARY_SIZE": "2",
    "CURRICULUM_CACHE_TTL_SECONDS": "300",
    "CURRICULUM_CACHE_MAX_ENTRIES": "64",
    "RATE_LIMIT_PER_MINUTE": "100",
}


@dataclass(frozen=True)
class CoreSettings:
    advancement_threshold: float
    placement_mastery_cutoff: float
    placement_summary_size: int
    curriculum_cache_ttl_seconds: float
    curriculum_cache_max_entries: int
    rate_limit_per_minute: int
    cefr_levels_path: Optional[str] = None
    curriculum_path: Optional[str] = None


def validate_environment() -> None:
    """Validate configuration environment variables.

    Raises EnvironmentError if validation fails.
    """
    # Apply defaults before validation so dependent modules see consistent values.
    for var, value in _DEFAULTS.items():
        if not os.getenv(var):
            os.environ[var] = value
            logger.info("Environment variable %s not set; using default '%s'", var, value)

    threshold = get_env_float("ADVANCEMENT_THRESHOLD", 0.8)
    if not 0.0 < threshold <= 1.0:
        raise EnvironmentError(f"ADVANCEMENT_THRESHOLD must be in (0, 1], got {threshold}")

    cutoff = get_env_float("PLACEMENT_MASTERY_CUTOFF", 0.7)
    if not 0.0 < cutoff < 1.0:
        raise EnvironmentError(f"PLACEMENT_MASTERY_CUTOFF must be in (0, 1), got {cutoff}")

    if get_env_int("PLACEMENT_SUMMARY_SIZE", 2) < 0:
        raise EnvironmentError("PLACEMENT_SUMMARY_SIZE cannot be negative")
    if get_env_float("CURRICULUM_CACHE_TTL_SECONDS", 300.0) <= 0:
        raise EnvironmentError("CURRICULUM_CACHE_TTL_SECONDS must be positive")
    if get_env_int("CURRICULUM_CACHE_MAX_ENTRIES", 64) <= 0:
        raise EnvironmentError("CURRICULUM_CACHE_MAX_ENTRIES must be positive")
    if get_env_int("RATE_LIMIT_PER_MINUTE", 100) < 0:
        raise EnvironmentError("RATE_LIMIT_PER_MINUTE cannot be negative")

    levels_path = os.getenv("CEFR_LEVELS_PATH")
    if levels_path and not os.path.exists(levels_path):
        raise EnvironmentError(f"CEFR_LEVELS_PATH does not exist: {levels_path}")
    if not levels_path:
        logger.warning("Optional environment variable not set: CEFR_LEVELS_PATH (tier metadata file)")

    curriculum_path = os.getenv("CURRICULUM_PATH")
    if curriculum_path and not os.path.exists(curriculum_path):
        raise EnvironmentError(f"CURRICULUM_PATH does not exist: {curriculum_path}")
    if not curriculum_path:
        logger.warning("Optional environment variable not set: CURRICULUM_PATH (placement entry points start at unit 1, lesson 1)")


def load_settings() -> CoreSettings:
    """Validate the environment and return the resulting settings."""
    validate_environment()
    return CoreSettings(
        advancement_threshold=get_env_float("ADVANCEMENT_THRESHOLD", 0.8),
        placement_mastery_cutoff=get_env_float("PLACEMENT_MASTERY_CUTOFF", 0.7),
        placement_summary_size=get_env_int("PLACEMENT_SUMMARY_SIZE", 2),
        curriculum_cache_ttl_seconds=get_env_float("CURRICULUM_CACHE_TTL_SECONDS", 300.0),
        curriculum_cache_max_entries=get_env_int("CURRICULUM_CACHE_MAX_ENTRIES", 64),
        rate_limit_per_minute=get_env_int("RATE_LIMIT_PER_MINUTE", 100),
        cefr_levels_path=os.getenv("CEFR_LEVELS_PATH") or None,
        curriculum_path=os.getenv("CURRICULUM_PATH") or None,
    )

def get_env_float(name: str, default: float) -> float:
    """Get a finite float from an environment variable."""
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        number = float(value)
    except ValueError as exc:
        raise EnvironmentError(f"Invalid number for {name}: {value}") from exc
    if not math.isfinite(number):
        raise EnvironmentError(f"Invalid number for {name}: {value}")
    return number

def get_env_int(name: str, default: int) -> int:
    """Get an integer from an environment variable."""
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise EnvironmentError(f"Invalid integer for {name}: {value}") from exc
