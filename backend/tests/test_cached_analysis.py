import pytest

from beautycache.core.domain.exceptions import InvalidKeyError
from beautycache.usecases.cached_analysis import get_or_generate


class CountingGenerator:
    def __init__(self, payload=None, error: Exception | None = None) -> None:
        self.payload = payload if payload is not None else {"summary": "fresh"}
        self.error = error
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.payload


@pytest.mark.asyncio
async def test_miss_generates_and_stores(cache):
    gen = CountingGenerator()
    result = await get_or_generate(cache, "u1", "skin", gen, ttl=60)

    assert gen.calls == 1
    assert not result.from_cache
    assert result.payload == {"summary": "fresh"}
    assert result.cache_error is None
    assert result.expires_at is not None
    assert (await cache.stats()).total == 1


@pytest.mark.asyncio
async def test_hit_skips_generator(cache):
    gen = CountingGenerator()
    await get_or_generate(cache, "u1", "skin", gen, ttl=60)
    result = await get_or_generate(cache, "u1", "skin", gen, ttl=60)

    assert gen.calls == 1
    assert result.from_cache
    assert result.access_count == 1
    assert result.payload == {"summary": "fresh"}


@pytest.mark.asyncio
async def test_expired_entry_regenerates(cache, clock):
    gen = CountingGenerator()
    await get_or_generate(cache, "u1", "hair", gen, ttl=60)
    clock.advance(seconds=60)
    result = await get_or_generate(cache, "u1", "hair", gen, ttl=60)

    assert gen.calls == 2
    assert not result.from_cache


@pytest.mark.asyncio
async def test_changed_source_data_regenerates(cache):
    gen = CountingGenerator()
    await get_or_generate(cache, "u1", "skin", gen, source_data={"skin_type": "dry"})
    await get_or_generate(cache, "u1", "skin", gen, source_data={"skin_type": "oily"})
    result = await get_or_generate(cache, "u1", "skin", gen, source_data={"skin_type": "oily"})

    assert gen.calls == 2
    assert result.from_cache


@pytest.mark.asyncio
async def test_fails_open_when_storage_down(broken_cache):
    gen = CountingGenerator()
    result = await get_or_generate(broken_cache, "u1", "skin", gen, ttl=60)

    assert gen.calls == 1
    assert result.payload == {"summary": "fresh"}
    assert not result.from_cache
    assert "connection refused" in result.cache_error


@pytest.mark.asyncio
async def test_invalid_key_is_not_swallowed(cache):
    gen = CountingGenerator()
    with pytest.raises(InvalidKeyError):
        await get_or_generate(cache, "", "skin", gen)
    assert gen.calls == 0


@pytest.mark.asyncio
async def test_generator_failure_propagates(cache):
    gen = CountingGenerator(error=RuntimeError("model timeout"))
    with pytest.raises(RuntimeError, match="model timeout"):
        await get_or_generate(cache, "u1", "skin", gen)
    assert (await cache.stats()).total == 0
