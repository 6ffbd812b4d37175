"""Analysis-cache operational routes: health, stats, cleanup, invalidation."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from beautycache.api.cache_schemas import CleanupTriggerResponse, InvalidateResponse
from beautycache.api.deps import get_cache, get_scheduler, require_cache_admin
from beautycache.core.domain.schemas import AnalysisType, CacheStats, HealthReport
from beautycache.infra.analysis_cache import AnalysisCache
from beautycache.infra.scheduler import CacheCleanupScheduler
from beautycache.infra.timezone_utils import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cache", tags=["cache"])


@router.get("/health", response_model=HealthReport)
async def cache_health(
    scheduler: CacheCleanupScheduler = Depends(get_scheduler),
) -> HealthReport:
    return await scheduler.report()


@router.get("/stats", response_model=CacheStats)
async def cache_stats(
    owner_id: Optional[str] = Query(None, min_length=1),
    cache: AnalysisCache = Depends(get_cache),
    _: None = Depends(require_cache_admin),
) -> CacheStats:
    return await cache.stats(owner_id=owner_id)


@router.post("/cleanup", response_model=CleanupTriggerResponse)
async def run_cleanup(
    scheduler: CacheCleanupScheduler = Depends(get_scheduler),
    _: None = Depends(require_cache_admin),
) -> CleanupTriggerResponse:
    result = await scheduler.run_once()
    return CleanupTriggerResponse(
        status="ok",
        reclaimed=result.reclaimed,
        deleted=result.deleted,
        total_before=result.before.total,
        total_after=result.after.total,
        started_at=result.started_at,
        finished_at=result.finished_at,
    )


@router.delete("/owners/{owner_id}", response_model=InvalidateResponse)
async def invalidate_owner(
    owner_id: str,
    analysis_type: Optional[AnalysisType] = Query(None),
    scheduler: CacheCleanupScheduler = Depends(get_scheduler),
    _: None = Depends(require_cache_admin),
) -> InvalidateResponse:
    removed = await scheduler.invalidate_owner(owner_id, analysis_type)
    return InvalidateResponse(
        owner_id=owner_id,
        analysis_type=analysis_type.value if analysis_type else None,
        removed=removed,
        invalidated_at=utcnow(),
    )
