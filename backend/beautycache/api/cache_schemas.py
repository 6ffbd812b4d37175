"""Pydantic v2 response schemas for cache admin endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class CleanupTriggerResponse(BaseModel):
    status: str
    reclaimed: int
    deleted: int
    total_before: int
    total_after: int
    started_at: datetime
    finished_at: datetime


class InvalidateResponse(BaseModel):
    owner_id: str
    analysis_type: Optional[str] = None
    removed: int
    invalidated_at: datetime
