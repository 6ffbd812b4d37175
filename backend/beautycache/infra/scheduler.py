"""APScheduler wrapper for the periodic analysis-cache sweep.

One CacheCleanupScheduler is built at startup and handed to whoever needs
to start, stop or query it. A pass in flight when stop() is called runs to
completion; only future passes are cancelled.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Optional, Union

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from beautycache.config import DEFAULT_DEGRADED_AFTER_FAILURES, DEFAULT_TIMEZONE
from beautycache.core.domain.exceptions import StorageError
from beautycache.core.domain.schemas import (
    AnalysisType,
    CacheStats,
    CleanupPassResult,
    HealthReport,
    HealthStatus,
    LastPassSummary,
    PerformanceSummary,
    SchedulerState,
)
from beautycache.infra.analysis_cache import AnalysisCache, normalize_duration
from beautycache.infra.timezone_utils import Clock, now_in_tz, utcnow

logger = logging.getLogger(__name__)

_CLEANUP_JOB_ID = "analysis_cache_cleanup"


class CacheCleanupScheduler:

    def __init__(
        self,
        cache: AnalysisCache,
        *,
        degraded_after: int = DEFAULT_DEGRADED_AFTER_FAILURES,
        timezone_name: str = DEFAULT_TIMEZONE,
        clock: Clock = utcnow,
    ) -> None:
        self._cache = cache
        self._degraded_after = degraded_after
        self._timezone_name = timezone_name
        self._clock = clock

        self._scheduler: Optional[AsyncIOScheduler] = None
        self._interval: Optional[timedelta] = None
        self._inflight: set[asyncio.Task] = set()

        self._passes_run = 0
        self._consecutive_failures = 0
        self._last_pass: Optional[CleanupPassResult] = None
        self._last_stats: Optional[CacheStats] = None
        self._last_storage_ok = True
        self._last_error: Optional[str] = None

    # --- state ---

    @property
    def state(self) -> SchedulerState:
        return SchedulerState.RUNNING if self._scheduler is not None else SchedulerState.STOPPED

    @property
    def passes_run(self) -> int:
        return self._passes_run

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def degraded(self) -> bool:
        return self._consecutive_failures >= self._degraded_after

    @property
    def last_pass(self) -> Optional[CleanupPassResult]:
        return self._last_pass

    # --- lifecycle ---

    async def start(self, interval: Union[timedelta, int, float]) -> None:
        """Run one pass now, then one every `interval` until stop()."""
        interval_td = normalize_duration("interval", interval)
        if self._scheduler is not None:
            logger.info(
                "Cache cleanup scheduler already running (every %ss), ignoring start",
                self._interval.total_seconds() if self._interval else "?",
            )
            return

        scheduler = AsyncIOScheduler()
        scheduler.add_job(
            self._scheduled_pass,
            trigger=IntervalTrigger(seconds=interval_td.total_seconds()),
            id=_CLEANUP_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler = scheduler
        self._interval = interval_td
        logger.info(
            "Starting cache cleanup scheduler (every %ss)", interval_td.total_seconds(),
        )

        await self._scheduled_pass()

        # stop() may have been called while the initial pass was running
        if self._scheduler is scheduler:
            scheduler.start()
            logger.info("Cache cleanup scheduler initialised")

    def stop(self) -> None:
        if self._scheduler is None:
            logger.debug("Cache cleanup scheduler already stopped")
            return
        scheduler, self._scheduler = self._scheduler, None
        if scheduler.running:
            scheduler.shutdown(wait=False)
        logger.info("Cache cleanup scheduler stopped")

    async def aclose(self) -> None:
        """stop(), then wait for any pass already running, scheduled or direct."""
        self.stop()
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    # --- passes ---

    def _track(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def _scheduled_pass(self) -> None:
        # shielded: scheduler shutdown cancels the job wrapper, not the pass
        await asyncio.shield(self._track(self._guarded_pass()))

    async def _guarded_pass(self) -> None:
        try:
            await self._run_pass()
        except StorageError as exc:
            logger.warning(
                "Scheduled cache cleanup failed (%d consecutive): %s",
                self._consecutive_failures, exc,
            )
            if self._consecutive_failures == self._degraded_after:
                logger.error(
                    "Cache cleanup degraded after %d consecutive failed passes",
                    self._consecutive_failures,
                )
        except Exception:
            logger.exception("Scheduled cache cleanup crashed")

    async def run_once(self) -> CleanupPassResult:
        """stats -> cleanup_expired -> stats. Failures are recorded, then raised.

        The pass runs as a tracked task: a cancelled caller does not cut it
        short and aclose() waits for it.
        """
        return await asyncio.shield(self._track(self._run_pass()))

    async def _run_pass(self) -> CleanupPassResult:
        started_at = self._clock()
        self._passes_run += 1
        logger.debug("Starting cache cleanup pass #%d", self._passes_run)
        try:
            before = await self._cache.stats()
            logger.info(
                "Cache before cleanup: total=%d active=%d expired=%d",
                before.total, before.active, before.expired,
            )
            deleted = await self._cache.cleanup_expired()
            after = await self._cache.stats()
        except Exception as exc:
            self._consecutive_failures += 1
            self._last_storage_ok = not isinstance(exc, StorageError)
            self._last_error = str(exc)
            raise

        result = CleanupPassResult(
            started_at=started_at,
            finished_at=self._clock(),
            before=before,
            after=after,
            deleted=deleted,
        )
        self._consecutive_failures = 0
        self._last_pass = result
        self._last_stats = after
        self._last_storage_ok = True
        self._last_error = None
        logger.info(
            "Cache cleanup completed. Removed %d expired entries (total %d -> %d)",
            result.reclaimed, before.total, after.total,
        )
        return result

    # --- reporting / operator entry points ---

    async def report(self) -> HealthReport:
        try:
            stats = await self._cache.stats()
        except StorageError as exc:
            logger.warning("Cache health check could not read stats: %s", exc)
            self._last_storage_ok = False
            self._last_error = str(exc)
            stats = self._last_stats
        else:
            self._last_stats = stats
            self._last_storage_ok = True

        if not self._last_storage_ok:
            status = HealthStatus.UNHEALTHY
        elif self.degraded:
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.HEALTHY

        last = self._last_pass
        return HealthReport(
            status=status,
            state=self.state,
            storage_ok=self._last_storage_ok,
            degraded=self.degraded,
            consecutive_failures=self._consecutive_failures,
            passes_run=self._passes_run,
            interval_s=self._interval.total_seconds() if self._interval else None,
            stats=stats,
            performance=PerformanceSummary.from_stats(stats) if stats else None,
            last_pass=LastPassSummary(
                started_at=last.started_at,
                finished_at=last.finished_at,
                reclaimed=last.reclaimed,
                deleted=last.deleted,
                total_before=last.before.total,
                total_after=last.after.total,
            ) if last else None,
            last_error=self._last_error,
            timestamp=now_in_tz(self._timezone_name),
        )

    async def invalidate_owner(
        self,
        owner_id: str,
        analysis_type: Union[AnalysisType, str, None] = None,
    ) -> int:
        removed = await self._cache.invalidate(owner_id, analysis_type)
        label = analysis_type.value if isinstance(analysis_type, AnalysisType) else analysis_type
        logger.info(
            "Invalidated %d cached analyses for owner=%s%s",
            removed, owner_id, f" ({label})" if label else "",
        )
        return removed
