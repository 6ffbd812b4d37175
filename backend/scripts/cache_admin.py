"""Operator entry point for the analysis cache.

Usage:
  python -m scripts.cache_admin report
  python -m scripts.cache_admin cleanup
  python -m scripts.cache_admin invalidate OWNER_ID [--type skin]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from beautycache.config import settings
from beautycache.core.domain.exceptions import AnalysisCacheError
from beautycache.core.domain.schemas import AnalysisType
from beautycache.infra.analysis_cache import AnalysisCache
from beautycache.infra.db.session import async_session_factory, engine
from beautycache.infra.scheduler import CacheCleanupScheduler

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Analysis cache admin")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("report", help="Print the cache health report as JSON")
    sub.add_parser("cleanup", help="Run one expired-entry cleanup pass")
    inv = sub.add_parser("invalidate", help="Drop cached analyses for an owner")
    inv.add_argument("owner_id")
    inv.add_argument(
        "--type",
        dest="analysis_type",
        choices=[t.value for t in AnalysisType],
        default=None,
    )
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace) -> int:
    cache = AnalysisCache(async_session_factory, ttl_policy=settings.ttl_for)
    scheduler = CacheCleanupScheduler(
        cache,
        degraded_after=settings.cache_degraded_after_failures,
        timezone_name=settings.app_timezone,
    )
    try:
        if args.command == "report":
            report = await scheduler.report()
            print(json.dumps(report.model_dump(mode="json"), indent=2))
            return 0 if report.storage_ok else 1
        if args.command == "cleanup":
            result = await scheduler.run_once()
            print(f"Reclaimed {result.reclaimed} expired entries "
                  f"(total {result.before.total} -> {result.after.total})")
            return 0
        removed = await scheduler.invalidate_owner(args.owner_id, args.analysis_type)
        print(f"Removed {removed} cached analyses for {args.owner_id}")
        return 0
    except AnalysisCacheError as exc:
        logger.error("%s", exc)
        return 1
    finally:
        await engine.dispose()


def main(argv: list[str] | None = None) -> int:
    return asyncio.run(_run(_parse_args(argv)))


if __name__ == "__main__":
    sys.exit(main())
