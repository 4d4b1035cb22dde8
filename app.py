# app.py: stateless HTTP surface for the scheduling, progression and placement core
# - No sessions, no storage: callers post a snapshot and persist what comes back
# - Per-client fixed-window rate limiting on a bounded TTL cache

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from cefr_levels import CEFR_LEVELS, CefrLevelRegistry
from engines.caching import TTLCache
from engines.curriculum import CachedCurriculumCatalog, JsonCurriculumLoader
from engines.placement import PlacementScorer
from engines.progression import ProgressionEvaluator
from engines.spaced_repetition import ReviewScheduler
from env_validation import CoreSettings, load_settings
from schemas import (
    PlacementResultRecord,
    PlacementSubmission,
    ProgressionDecisionRecord,
    ProgressionSnapshotRecord,
    ReviewStateRecord,
)

logger = logging.getLogger(__name__)

RATE_LIMIT_WINDOW_SECONDS = 60.0
_RATE_LIMIT_MAX_CLIENTS = 10_000


class ReviewScheduleRequest(BaseModel):
    state: ReviewStateRecord = Field(default_factory=ReviewStateRecord)
    grade: int
    reviewed_at: Optional[datetime] = None


class ProgressionEvaluateRequest(BaseModel):
    snapshot: ProgressionSnapshotRecord
    advancement_threshold: Optional[float] = None


class ProgressionEvaluateResponse(BaseModel):
    snapshot: ProgressionSnapshotRecord
    decision: ProgressionDecisionRecord


def _build_curriculum(settings: CoreSettings) -> Optional[CachedCurriculumCatalog]:
    """File-backed lesson catalogue, or None when CURRICULUM_PATH is unset."""
    if not settings.curriculum_path:
        return None
    return CachedCurriculumCatalog(
        JsonCurriculumLoader(settings.curriculum_path),
        TTLCache(
            max_entries=settings.curriculum_cache_max_entries,
            ttl_seconds=settings.curriculum_cache_ttl_seconds,
        ),
    )


def _build_engines(settings: CoreSettings) -> Dict[str, Any]:
    curriculum = _build_curriculum(settings)
    registry = CefrLevelRegistry(settings.cefr_levels_path) if settings.cefr_levels_path else CEFR_LEVELS
    return {
        "scheduler": ReviewScheduler(),
        "evaluator": ProgressionEvaluator(settings.advancement_threshold, catalog=curriculum),
        "scorer": PlacementScorer(
            mastery_cutoff=settings.placement_mastery_cutoff,
            summary_size=settings.placement_summary_size,
            curriculum=curriculum,
            registry=registry,
        ),
    }


_SETTINGS = load_settings()
_ENGINES = _build_engines(_SETTINGS)
_RATE_LIMITS = TTLCache(
    max_entries=_RATE_LIMIT_MAX_CLIENTS,
    ttl_seconds=RATE_LIMIT_WINDOW_SECONDS,
)


@asynccontextmanager
async def _lifespan(_: FastAPI):
    global _SETTINGS
    try:
        settings = load_settings()
        _ENGINES.update(_build_engines(settings))
        _SETTINGS = settings
        logger.info(
            "Core ready: advancement_threshold=%s mastery_cutoff=%s rate_limit=%s/min",
            settings.advancement_threshold,
            settings.placement_mastery_cutoff,
            settings.rate_limit_per_minute,
        )
        yield
    except Exception as e:
        logger.error("Failed to initialize application: %s", str(e), exc_info=True)
        raise


app = FastAPI(title="Lernpfad core", version="1.0.0", lifespan=_lifespan)


def _client_key(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client is not None:
        return request.client.host
    return "unknown"


def _check_rate_limit(key: str, limit: int, now: Optional[float] = None) -> bool:
    """Count one request for ``key``; False once ``limit`` is exceeded in the window."""
    if limit <= 0:
        return True
    now = time.monotonic() if now is None else now
    entry = _RATE_LIMITS.get(key)
    if entry is None or now >= entry["reset_at"]:
        _RATE_LIMITS.set(key, {"count": 1, "reset_at": now + RATE_LIMIT_WINDOW_SECONDS})
        return True
    if entry["count"] >= limit:
        return False
    entry["count"] += 1
    return True


@app.middleware("http")
async def _enforce_rate_limit(request: Request, call_next):
    if request.url.path != "/health" and not _check_rate_limit(
        _client_key(request), _SETTINGS.rate_limit_per_minute
    ):
        return JSONResponse(status_code=429, content={"detail": "rate limit exceeded"})
    return await call_next(request)


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/reviews/schedule", response_model=ReviewStateRecord)
def schedule_review(payload: ReviewScheduleRequest) -> ReviewStateRecord:
    try:
        new_state = _ENGINES["scheduler"].schedule(
            payload.state.to_domain(),
            payload.grade,
            reviewed_at=payload.reviewed_at,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return ReviewStateRecord.from_domain(new_state)


@app.post("/progression/evaluate", response_model=ProgressionEvaluateResponse)
def evaluate_progression(payload: ProgressionEvaluateRequest) -> ProgressionEvaluateResponse:
    snapshot = payload.snapshot.to_domain()
    try:
        decision = _ENGINES["evaluator"].evaluate(snapshot, payload.advancement_threshold)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return ProgressionEvaluateResponse(
        snapshot=ProgressionSnapshotRecord.from_domain(snapshot),
        decision=ProgressionDecisionRecord.from_domain(decision),
    )


@app.post("/placement/score", response_model=PlacementResultRecord)
def score_placement(payload: PlacementSubmission) -> PlacementResultRecord:
    try:
        result = _ENGINES["scorer"].score(payload.to_domain())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return PlacementResultRecord.from_domain(result)
