"""Get a cached analysis or generate (and cache) a fresh one.

Fail-open: if the cache cannot be reached the generator still runs and its
result is returned; the storage failure is reported on the result instead
of failing the request.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Awaitable, Callable, Optional, Union

from beautycache.core.domain.exceptions import StorageError
from beautycache.core.domain.schemas import AnalysisType, GenerationResult
from beautycache.infra.analysis_cache import AnalysisCache

logger = logging.getLogger(__name__)

Generator = Callable[[], Awaitable[Any]]


async def get_or_generate(
    cache: AnalysisCache,
    owner_id: str,
    analysis_type: Union[AnalysisType, str],
    generate: Generator,
    *,
    ttl: Optional[Union[timedelta, int, float]] = None,
    source_data: Any = None,
) -> GenerationResult:
    lookup = await cache.lookup(owner_id, analysis_type, source_data=source_data)
    if lookup.hit and lookup.entry is not None:
        entry = lookup.entry
        return GenerationResult(
            payload=entry.payload,
            from_cache=True,
            cached_at=entry.created_at,
            expires_at=entry.expires_at,
            access_count=entry.access_count,
        )

    cache_error: Optional[str] = None
    if lookup.error is not None:
        logger.warning(
            "Cache lookup failed, generating without cache: owner=%s type=%s error=%s",
            owner_id, analysis_type, lookup.error,
        )
        cache_error = str(lookup.error)

    payload = await generate()

    try:
        entry = await cache.set(
            owner_id, analysis_type, payload, ttl, source_data=source_data,
        )
    except StorageError as exc:
        logger.warning(
            "Cache save failed, returning uncached result: owner=%s type=%s error=%s",
            owner_id, analysis_type, exc,
        )
        return GenerationResult(
            payload=payload, from_cache=False, cache_error=cache_error or str(exc),
        )

    return GenerationResult(
        payload=payload,
        from_cache=False,
        cached_at=entry.created_at,
        expires_at=entry.expires_at,
        access_count=entry.access_count,
        cache_error=cache_error,
    )
