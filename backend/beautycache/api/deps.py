from __future__ import annotations

import secrets
from typing import Annotated, Optional

from fastapi import Header, HTTPException, Request, status

from beautycache.config import settings
from beautycache.infra.analysis_cache import AnalysisCache
from beautycache.infra.scheduler import CacheCleanupScheduler


def get_cache(request: Request) -> AnalysisCache:
    return request.app.state.analysis_cache


def get_scheduler(request: Request) -> CacheCleanupScheduler:
    return request.app.state.cleanup_scheduler


async def require_cache_admin(
    x_admin_key: Annotated[Optional[str], Header()] = None,
) -> None:
    """Gate for the cache operator endpoints (stats, sweeps, invalidation)."""
    expected = settings.admin_api_key
    if expected is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Cache admin endpoints are disabled: ADMIN_API_KEY is not set",
        )
    if x_admin_key is None or not secrets.compare_digest(x_admin_key, expected):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="X-Admin-Key does not grant cache admin access",
        )
