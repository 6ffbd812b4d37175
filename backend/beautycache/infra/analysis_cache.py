"""Per-owner, per-analysis-type cache in front of the AI generation step.

Rows live in the ai_analysis_cache table. Expiry is derived at query time
(`now < expires_at` is active); expired rows read as a miss until the cleanup
scheduler reclaims them.
"""

from __future__ import annotations

import hashlib
import json
import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any, AsyncIterator, Callable, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from beautycache.core.domain.exceptions import (
    InvalidConfigurationError,
    InvalidKeyError,
    StorageError,
)
from beautycache.core.domain.schemas import (
    AnalysisType,
    CacheEntry,
    CacheLookup,
    CacheOutcome,
    CacheStats,
)
from beautycache.infra.db.repository import AnalysisCacheRepository
from beautycache.infra.timezone_utils import Clock, utcnow

logger = logging.getLogger(__name__)

TTLLike = Union[timedelta, int, float]
TTLPolicy = Callable[[str], timedelta]


def fingerprint(source_data: Any) -> str:
    """MD5 of the canonical JSON form of the data an analysis was derived from."""
    canonical = json.dumps(source_data, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.md5(canonical.encode()).hexdigest()


def normalize_owner(owner_id: object) -> str:
    if owner_id is None:
        raise InvalidKeyError("owner_id", owner_id)
    owner = str(owner_id).strip()
    if not owner:
        raise InvalidKeyError("owner_id", owner_id)
    return owner


def normalize_analysis_type(analysis_type: object) -> str:
    if isinstance(analysis_type, AnalysisType):
        return analysis_type.value
    try:
        return AnalysisType(analysis_type).value
    except ValueError:
        raise InvalidKeyError("analysis_type", analysis_type) from None


def normalize_duration(name: str, value: object) -> timedelta:
    """timedelta or seconds -> positive timedelta, else InvalidConfigurationError."""
    if isinstance(value, timedelta):
        duration = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        duration = timedelta(seconds=value)
    else:
        raise InvalidConfigurationError(name, value)
    if duration <= timedelta(0):
        raise InvalidConfigurationError(name, value)
    return duration


def _entry_from_row(row) -> CacheEntry:
    return CacheEntry(
        owner_id=row.owner_id,
        analysis_type=row.analysis_type,
        payload=row.payload,
        created_at=row.created_at,
        expires_at=row.expires_at,
        access_count=row.access_count,
        last_accessed_at=row.last_accessed_at,
        source_hash=row.source_hash,
    )


def _default_ttl_policy(analysis_type: str) -> timedelta:
    from beautycache.config import settings

    return settings.ttl_for(analysis_type)


class AnalysisCache:
    """Single source of truth for cached analysis payloads.

    Each operation opens its own session and issues one statement, so no
    lock is held across operations and concurrent callers are serialized
    by the database row itself.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        ttl_policy: Optional[TTLPolicy] = None,
        clock: Clock = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._ttl_policy = ttl_policy or _default_ttl_policy
        self._clock = clock

    @asynccontextmanager
    async def _repo(self, operation: str) -> AsyncIterator[AnalysisCacheRepository]:
        try:
            async with self._session_factory() as session:
                yield AnalysisCacheRepository(session)
        except (SQLAlchemyError, OSError) as exc:
            raise StorageError(operation, str(exc)) from exc

    # --- reads ---

    async def get(
        self,
        owner_id: str,
        analysis_type: Union[AnalysisType, str],
        *,
        source_data: Any = None,
    ) -> Optional[CacheEntry]:
        """Active entry for the key, or None on a miss.

        A hit increments access_count and stamps last_accessed_at. When
        source_data is given, an entry derived from different data is a miss.
        """
        owner = normalize_owner(owner_id)
        atype = normalize_analysis_type(analysis_type)
        source_hash = fingerprint(source_data) if source_data is not None else None
        now = self._clock()

        async with self._repo("get") as repo:
            row = await repo.touch_active_entry(
                owner_id=owner, analysis_type=atype,
                now=now, source_hash=source_hash,
            )
            await repo.commit()

        if row is None:
            logger.debug("Cache miss: owner=%s type=%s", owner, atype)
            return None

        logger.debug(
            "Cache hit: owner=%s type=%s access_count=%d",
            owner, atype, row.access_count,
        )
        return _entry_from_row(row)

    async def lookup(
        self,
        owner_id: str,
        analysis_type: Union[AnalysisType, str],
        *,
        source_data: Any = None,
    ) -> CacheLookup:
        """get() with storage failures returned as an ERROR outcome.

        Key errors still raise.
        """
        try:
            entry = await self.get(owner_id, analysis_type, source_data=source_data)
        except StorageError as exc:
            return CacheLookup(outcome=CacheOutcome.ERROR, error=exc)
        if entry is None:
            return CacheLookup(outcome=CacheOutcome.MISS)
        return CacheLookup(outcome=CacheOutcome.HIT, entry=entry)

    async def stats(self, *, owner_id: Optional[str] = None) -> CacheStats:
        """Snapshot from one aggregate query; totals are sums of by_type."""
        owner = normalize_owner(owner_id) if owner_id is not None else None
        now = self._clock()
        async with self._repo("stats") as repo:
            by_type = await repo.aggregate_by_type(now, owner_id=owner)
        return CacheStats.from_type_rows(by_type, taken_at=now)

    # --- writes ---

    async def set(
        self,
        owner_id: str,
        analysis_type: Union[AnalysisType, str],
        payload: Any,
        ttl: Optional[TTLLike] = None,
        *,
        source_data: Any = None,
    ) -> CacheEntry:
        """Replace whatever is stored for the key with a fresh entry.

        ttl=None uses the configured TTL for the analysis type. access_count
        restarts at zero. Returns the entry that is stored afterwards: when an
        entry with a later created_at is already there, this write is dropped
        and that entry comes back instead.
        """
        owner = normalize_owner(owner_id)
        atype = normalize_analysis_type(analysis_type)
        ttl_td = normalize_duration("ttl", self._ttl_policy(atype) if ttl is None else ttl)
        source_hash = fingerprint(source_data) if source_data is not None else None

        created_at = self._clock()
        expires_at = created_at + ttl_td

        async with self._repo("set") as repo:
            row = await repo.upsert_entry(
                owner_id=owner, analysis_type=atype, payload=payload,
                source_hash=source_hash,
                created_at=created_at, expires_at=expires_at,
            )
            if row is None:
                # conflicting row is locked by the upsert, so it is still there
                row = await repo.fetch_entry(owner, atype)
                logger.debug(
                    "Dropped %s analysis write for owner=%s: stored entry from %s is newer",
                    atype, owner, row.created_at.isoformat(),
                )
            else:
                logger.debug(
                    "Cached %s analysis for owner=%s (expires %s)",
                    atype, owner, expires_at.isoformat(),
                )
            await repo.commit()

        return _entry_from_row(row)

    async def invalidate(
        self,
        owner_id: str,
        analysis_type: Union[AnalysisType, str, None] = None,
    ) -> int:
        """Drop one key, or every key of the owner when analysis_type is None."""
        owner = normalize_owner(owner_id)
        atype = normalize_analysis_type(analysis_type) if analysis_type is not None else None

        async with self._repo("invalidate") as repo:
            removed = await repo.delete_for_owner(owner, atype)
            await repo.commit()

        logger.debug(
            "Invalidated %d cache entr%s for owner=%s%s",
            removed, "y" if removed == 1 else "ies", owner,
            f" ({atype})" if atype else "",
        )
        return removed

    async def cleanup_expired(self) -> int:
        """Delete every row with expires_at <= now. Active rows are untouched."""
        now = self._clock()
        async with self._repo("cleanup_expired") as repo:
            removed = await repo.delete_expired(now)
            await repo.commit()
        return removed
