"""Thin persistence adapter for the ai_analysis_cache table.

Every method is a single statement so the database provides the atomicity:
upserts replace a row wholesale, hits increment in place and deletes are
predicate deletes. Callers pass `now` explicitly; nothing here reads the
database clock.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import and_, case, delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Row
from sqlalchemy.ext.asyncio import AsyncSession

from beautycache.core.domain.schemas import TypeStats

from .models import AnalysisCacheRow

logger = logging.getLogger(__name__)

_REPLACED_ON_UPSERT = (
    "payload",
    "source_hash",
    "created_at",
    "expires_at",
    "updated_at",
    "access_count",
    "last_accessed_at",
)

_ENTRY_COLUMNS = (
    AnalysisCacheRow.owner_id,
    AnalysisCacheRow.analysis_type,
    AnalysisCacheRow.payload,
    AnalysisCacheRow.created_at,
    AnalysisCacheRow.expires_at,
    AnalysisCacheRow.access_count,
    AnalysisCacheRow.last_accessed_at,
    AnalysisCacheRow.source_hash,
)


class AnalysisCacheRepository:

    def __init__(self, session: AsyncSession) -> None:
        self._s = session

    def _dialect_insert(self):
        dialect = self._s.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert
        if dialect == "sqlite":
            return sqlite_insert
        raise NotImplementedError(f"upsert not supported for dialect: {dialect}")

    # --- writes ---

    async def upsert_entry(
        self,
        *,
        owner_id: str,
        analysis_type: str,
        payload: Any,
        source_hash: Optional[str],
        created_at: datetime,
        expires_at: datetime,
    ) -> Optional[Row]:
        """INSERT ... ON CONFLICT DO UPDATE on (owner_id, analysis_type).

        A write carrying an older created_at than the stored row is dropped,
        so the latest write by wall clock stays visible. Returns the written
        row, or None when the write was dropped.
        """
        insert = self._dialect_insert()
        stmt = insert(AnalysisCacheRow).values(
            owner_id=owner_id,
            analysis_type=analysis_type,
            payload=payload,
            source_hash=source_hash,
            created_at=created_at,
            expires_at=expires_at,
            updated_at=created_at,
            access_count=0,
            last_accessed_at=None,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["owner_id", "analysis_type"],
            set_={name: stmt.excluded[name] for name in _REPLACED_ON_UPSERT},
            where=AnalysisCacheRow.created_at <= stmt.excluded.created_at,
        ).returning(*_ENTRY_COLUMNS)
        result = await self._s.execute(stmt)
        return result.one_or_none()

    async def touch_active_entry(
        self,
        *,
        owner_id: str,
        analysis_type: str,
        now: datetime,
        source_hash: Optional[str] = None,
    ) -> Optional[Row]:
        """Record a hit and return the row, or None if absent/expired/mismatched.

        One UPDATE ... RETURNING, so a row deleted by a concurrent sweep is
        never returned.
        """
        conditions = [
            AnalysisCacheRow.owner_id == owner_id,
            AnalysisCacheRow.analysis_type == analysis_type,
            AnalysisCacheRow.expires_at > now,
        ]
        if source_hash is not None:
            conditions.append(AnalysisCacheRow.source_hash == source_hash)

        stmt = (
            update(AnalysisCacheRow)
            .where(and_(*conditions))
            .values(
                access_count=AnalysisCacheRow.access_count + 1,
                last_accessed_at=now,
            )
            .returning(*_ENTRY_COLUMNS)
            .execution_options(synchronize_session=False)
        )
        result = await self._s.execute(stmt)
        return result.one_or_none()

    async def delete_for_owner(
        self, owner_id: str, analysis_type: Optional[str] = None,
    ) -> int:
        stmt = delete(AnalysisCacheRow).where(AnalysisCacheRow.owner_id == owner_id)
        if analysis_type is not None:
            stmt = stmt.where(AnalysisCacheRow.analysis_type == analysis_type)
        result = await self._s.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount  # type: ignore[return-value]

    async def delete_expired(self, now: datetime) -> int:
        stmt = delete(AnalysisCacheRow).where(AnalysisCacheRow.expires_at <= now)
        result = await self._s.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount  # type: ignore[return-value]

    # --- reads ---

    async def fetch_entry(self, owner_id: str, analysis_type: str) -> Optional[Row]:
        stmt = select(*_ENTRY_COLUMNS).where(
            AnalysisCacheRow.owner_id == owner_id,
            AnalysisCacheRow.analysis_type == analysis_type,
        )
        result = await self._s.execute(stmt)
        return result.one_or_none()

    async def aggregate_by_type(
        self, now: datetime, *, owner_id: Optional[str] = None,
    ) -> dict[str, TypeStats]:
        """Per-type totals from one GROUP BY round-trip."""
        active = func.coalesce(
            func.sum(case((AnalysisCacheRow.expires_at > now, 1), else_=0)), 0,
        )
        stmt = (
            select(
                AnalysisCacheRow.analysis_type,
                func.count(AnalysisCacheRow.id),
                active,
                func.coalesce(func.sum(AnalysisCacheRow.access_count), 0),
            )
            .group_by(AnalysisCacheRow.analysis_type)
            .order_by(AnalysisCacheRow.analysis_type)
        )
        if owner_id is not None:
            stmt = stmt.where(AnalysisCacheRow.owner_id == owner_id)

        result = await self._s.execute(stmt)
        by_type: dict[str, TypeStats] = {}
        for analysis_type, total, active_count, accesses in result.all():
            by_type[analysis_type] = TypeStats(
                total=int(total),
                active=int(active_count),
                expired=int(total) - int(active_count),
                total_accesses=int(accesses),
            )
        return by_type

    async def commit(self) -> None:
        await self._s.commit()
