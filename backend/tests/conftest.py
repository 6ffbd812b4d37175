from __future__ import annotations

from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from beautycache.infra.analysis_cache import AnalysisCache
from beautycache.infra.db.models import Base


class FakeClock:
    """Manually advanced naive-UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class BrokenSessionFactory:
    """Session factory whose every session fails to connect."""

    def __call__(self) -> "BrokenSessionFactory":
        return self

    async def __aenter__(self):
        raise OperationalError("SELECT 1", {}, ConnectionRefusedError("connection refused"))

    async def __aexit__(self, *exc_info) -> bool:
        return False


def _ttl_policy(analysis_type: str) -> timedelta:
    return timedelta(hours=1)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    # one connection per session so concurrent operations contend in sqlite
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'analysis_cache.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def cache(session_factory, clock: FakeClock) -> AnalysisCache:
    return AnalysisCache(session_factory, ttl_policy=_ttl_policy, clock=clock)


@pytest.fixture
def broken_cache(clock: FakeClock) -> AnalysisCache:
    return AnalysisCache(BrokenSessionFactory(), ttl_policy=_ttl_policy, clock=clock)
