"""Domain models for the analysis cache -- no IO deps."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from .exceptions import StorageError


# --- enums ---

class AnalysisType(str, Enum):
    COMPREHENSIVE = "comprehensive"
    SKIN = "skin"
    HAIR = "hair"
    LIFESTYLE = "lifestyle"
    HEALTH = "health"
    MAKEUP = "makeup"
    PRODUCT_RECOMMENDATIONS = "product_recommendations"


class CacheOutcome(str, Enum):
    HIT = "hit"
    MISS = "miss"
    ERROR = "error"


class SchedulerState(str, Enum):
    STOPPED = "Stopped"
    RUNNING = "Running"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


# --- cache entries ---

@dataclass(frozen=True)
class CacheEntry:
    """Snapshot of one cached analysis row. Expiry is derived from expires_at."""

    owner_id: str
    analysis_type: str
    payload: Any
    created_at: datetime
    expires_at: datetime
    access_count: int = 0
    last_accessed_at: Optional[datetime] = None
    source_hash: Optional[str] = None


@dataclass(frozen=True)
class CacheLookup:
    """Result-kind form of a cache read.

    ERROR carries the StorageError so the caller decides between
    fail-open (treat as miss) and fail-closed (raise it).
    """

    outcome: CacheOutcome
    entry: Optional[CacheEntry] = None
    error: Optional[StorageError] = None

    @property
    def hit(self) -> bool:
        return self.outcome is CacheOutcome.HIT


# --- statistics ---

class TypeStats(BaseModel):
    total: int = 0
    active: int = 0
    expired: int = 0
    total_accesses: int = 0


class CacheStats(BaseModel):
    """Point-in-time snapshot built from a single aggregate query."""

    total: int = 0
    active: int = 0
    expired: int = 0
    total_accesses: int = 0
    by_type: dict[str, TypeStats] = Field(default_factory=dict)
    taken_at: Optional[datetime] = None

    @classmethod
    def from_type_rows(
        cls, by_type: dict[str, TypeStats], *, taken_at: datetime,
    ) -> CacheStats:
        return cls(
            total=sum(t.total for t in by_type.values()),
            active=sum(t.active for t in by_type.values()),
            expired=sum(t.expired for t in by_type.values()),
            total_accesses=sum(t.total_accesses for t in by_type.values()),
            by_type=by_type,
            taken_at=taken_at,
        )


# --- scheduler ---

@dataclass(frozen=True)
class CleanupPassResult:
    """One reclamation pass.

    reclaimed is before.expired; it is reported, not reconciled against
    after.total since writes may land mid-pass.
    """

    started_at: datetime
    finished_at: datetime
    before: CacheStats
    after: CacheStats
    deleted: int

    @property
    def reclaimed(self) -> int:
        return self.before.expired


class PerformanceSummary(BaseModel):
    average_accesses_per_entry: float = 0.0
    expired_percentage: float = 0.0

    @classmethod
    def from_stats(cls, stats: CacheStats) -> PerformanceSummary:
        if stats.total == 0:
            return cls()
        return cls(
            average_accesses_per_entry=round(stats.total_accesses / stats.total, 2),
            expired_percentage=round(stats.expired / stats.total * 100, 2),
        )


class LastPassSummary(BaseModel):
    started_at: datetime
    finished_at: datetime
    reclaimed: int
    deleted: int
    total_before: int
    total_after: int


class HealthReport(BaseModel):
    status: HealthStatus
    state: SchedulerState
    storage_ok: bool
    degraded: bool
    consecutive_failures: int = 0
    passes_run: int = 0
    interval_s: Optional[float] = None
    stats: Optional[CacheStats] = None
    performance: Optional[PerformanceSummary] = None
    last_pass: Optional[LastPassSummary] = None
    last_error: Optional[str] = None
    timestamp: datetime


@dataclass
class GenerationResult:
    """What get_or_generate hands back to a request handler."""

    payload: Any
    from_cache: bool
    cached_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    access_count: int = 0
    cache_error: Optional[str] = None
