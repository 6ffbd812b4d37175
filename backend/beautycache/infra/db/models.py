"""SQLAlchemy 2.x async ORM models."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from beautycache.infra.timezone_utils import utcnow


class Base(DeclarativeBase):
    pass


# --- analysis cache ---

class AnalysisCacheRow(Base):
    """One live row per (owner_id, analysis_type); writes replace it in place."""

    __tablename__ = "ai_analysis_cache"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)
    analysis_type: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[Any] = mapped_column(JSON, nullable=False)
    # md5 of the input data the payload was derived from
    source_hash: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    access_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0",
    )
    last_accessed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("owner_id", "analysis_type", name="uq_ai_cache_owner_type"),
        CheckConstraint("expires_at > created_at", name="ck_ai_cache_expiry_after_creation"),
        Index("ix_ai_cache_expires", "expires_at"),
        Index("ix_ai_cache_owner", "owner_id"),
    )
