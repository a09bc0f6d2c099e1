"""
Alter Compatibility Backend — Compatibility Route Handlers
===========================================================

What:  HTTP surface for compatibility scoring and its cache.
How:   Validates the request body, delegates to CompatibilityService,
       returns JSON. Errors are mapped by the handlers in main.py.
Who:   Called by the matching backend when it ranks candidates.

Endpoints:
    POST   /api/compatibility/evaluate                  two profile texts, no cache
    POST   /api/compatibility/calculate                 one pair, cached
    POST   /api/compatibility/calculate/batch           one user vs many targets
    GET    /api/compatibility/cache/{user}/{target}     stored scores only
    DELETE /api/compatibility/cache/users/{user}        drop rows for a user
    GET    /api/compatibility/cache/stats
    POST   /api/compatibility/cache/cleanup             drop expired rows
"""

import logging

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from altermatch.database import get_db_session
from altermatch.schemas.compatibility import (
    BatchCalculateRequest,
    BatchCompatibilityResponse,
    CacheCleanupResponse,
    CacheInvalidationResponse,
    CacheStatsResponse,
    CalculateRequest,
    CompatibilityRequest,
    CompatibilityResult,
    CompatibilityScores,
    ErrorResponse,
)
from altermatch.services.compatibility_service import (
    CompatibilityService,
    compatibility_service,
)

logger = logging.getLogger(__name__)

# ── Router Configuration ──────────────────────────────────────────────────
router = APIRouter(prefix="/api/compatibility", tags=["Compatibility"])

# Shared error documentation for endpoints that call the LLM
LLM_ERROR_RESPONSES = {
    400: {"description": "Invalid profile text", "model": ErrorResponse},
    502: {"description": "LLM returned an invalid analysis", "model": ErrorResponse},
    503: {"description": "LLM provider unavailable", "model": ErrorResponse},
    504: {"description": "LLM provider timed out", "model": ErrorResponse},
}


def get_compatibility_service() -> CompatibilityService:
    """Dependency hook; tests override it with a service wired to a stub client."""
    return compatibility_service


@router.post(
    "/evaluate",
    response_model=CompatibilityResult,
    response_model_by_alias=True,
    responses=LLM_ERROR_RESPONSES,
    summary="Score two profile texts",
    description=(
        "Runs one compatibility analysis on two free-form profile texts. "
        "Nothing is cached or stored."
    ),
)
async def evaluate(
    body: CompatibilityRequest,
    service: CompatibilityService = Depends(get_compatibility_service),
) -> CompatibilityResult:
    return await service.evaluate_profiles(body.profile1, body.profile2)


@router.post(
    "/calculate",
    response_model=CompatibilityScores,
    response_model_by_alias=True,
    responses={**LLM_ERROR_RESPONSES, 500: {"description": "Server error", "model": ErrorResponse}},
    summary="Score a user against a target, using the cache",
)
async def calculate(
    body: CalculateRequest,
    db: AsyncSession = Depends(get_db_session),
    service: CompatibilityService = Depends(get_compatibility_service),
) -> CompatibilityScores:
    """
    Return cached scores when both profiles are unchanged, otherwise
    evaluate and store them. `cached` in the body tells which happened.
    """
    return await service.get_or_calculate(
        db,
        user=body.user,
        target=body.target,
        embedding_score=body.embedding_score,
    )


@router.post(
    "/calculate/batch",
    response_model=BatchCompatibilityResponse,
    response_model_by_alias=True,
    responses={**LLM_ERROR_RESPONSES, 500: {"description": "Server error", "model": ErrorResponse}},
    summary="Score a user against up to 50 targets",
)
async def calculate_batch(
    body: BatchCalculateRequest,
    db: AsyncSession = Depends(get_db_session),
    service: CompatibilityService = Depends(get_compatibility_service),
) -> BatchCompatibilityResponse:
    result = await service.calculate_batch(
        db,
        user=body.user,
        targets=body.targets,
        embedding_scores=body.embedding_scores,
    )
    logger.info(
        "Batch for %s done: %d cached, %d calculated",
        body.user.id,
        result.cache_hits,
        result.calculated,
    )
    return result


@router.get(
    "/cache/stats",
    response_model=CacheStatsResponse,
    summary="Cache size and age range",
)
async def cache_stats(
    db: AsyncSession = Depends(get_db_session),
    service: CompatibilityService = Depends(get_compatibility_service),
) -> CacheStatsResponse:
    return await service.get_cache_stats(db)


@router.post(
    "/cache/cleanup",
    response_model=CacheCleanupResponse,
    summary="Delete expired cache rows",
)
async def cache_cleanup(
    db: AsyncSession = Depends(get_db_session),
    service: CompatibilityService = Depends(get_compatibility_service),
) -> CacheCleanupResponse:
    removed = await service.clean_expired_caches(db)
    return CacheCleanupResponse(removed=removed)


@router.delete(
    "/cache/users/{user_id}",
    response_model=CacheInvalidationResponse,
    summary="Invalidate every cached score involving a user",
    description="Call this when a user's profile changes or the account is deleted.",
)
async def invalidate_user_cache(
    user_id: str = Path(min_length=1, max_length=64),
    db: AsyncSession = Depends(get_db_session),
    service: CompatibilityService = Depends(get_compatibility_service),
) -> CacheInvalidationResponse:
    count = await service.invalidate_user_cache(db, user_id)
    return CacheInvalidationResponse(user_id=user_id, invalidated=count)


@router.get(
    "/cache/{user_id}/{target_user_id}",
    response_model=CompatibilityScores,
    response_model_by_alias=True,
    responses={404: {"description": "No valid cached scores", "model": ErrorResponse}},
    summary="Read stored scores without calling the LLM",
)
async def get_cached_scores(
    user_id: str = Path(min_length=1, max_length=64),
    target_user_id: str = Path(min_length=1, max_length=64),
    db: AsyncSession = Depends(get_db_session),
    service: CompatibilityService = Depends(get_compatibility_service),
) -> CompatibilityScores:
    return await service.get_cached_scores(db, user_id, target_user_id)
