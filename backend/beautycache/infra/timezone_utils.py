"""Clock helpers shared by the cache, the scheduler and the ORM defaults."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Naive UTC timestamp compatible with TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def now_in_tz(tz_name: str) -> datetime:
    """Aware timestamp in tz_name. Falls back to UTC if the zone is unknown."""
    try:
        from zoneinfo import ZoneInfo
        tz = ZoneInfo(tz_name)
    except (ImportError, KeyError, ValueError):
        tz = timezone.utc
    return datetime.now(tz)
