"""
Unit tests for the cache backends used by rate limit counters.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from unblocked.core.cache_backend import (
    CacheBackend,
    CacheConnectionError,
    CacheKeyError,
    CacheTypeError,
    InMemoryCacheBackend,
    RedisCacheBackend,
    create_cache_backend,
)
from unblocked.core.config import Settings


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestInMemoryCacheBackend:
    def test_implements_protocol(self):
        assert isinstance(InMemoryCacheBackend(), CacheBackend)

    @pytest.mark.asyncio
    async def test_set_get_delete(self):
        cache = InMemoryCacheBackend()

        assert await cache.set("k", "v") is True
        assert await cache.get("k") == "v"
        assert await cache.delete("k") is True
        assert await cache.get("k") is None
        assert await cache.delete("k") is False

    @pytest.mark.asyncio
    async def test_values_expire(self):
        clock = FakeClock()
        cache = InMemoryCacheBackend(clock=clock)
        await cache.set("k", "v", ttl_seconds=10)

        clock.advance(9.5)
        assert await cache.get("k") == "v"
        clock.advance(0.5)
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_incr_preserves_expiry(self):
        clock = FakeClock()
        cache = InMemoryCacheBackend(clock=clock)
        assert await cache.incr("counter") == 1
        await cache.expire("counter", 10)

        clock.advance(4)
        assert await cache.incr("counter") == 2
        assert await cache.ttl("counter") == 6

    @pytest.mark.asyncio
    async def test_incr_restarts_after_expiry(self):
        clock = FakeClock()
        cache = InMemoryCacheBackend(clock=clock)
        await cache.incr("counter")
        await cache.expire("counter", 5)

        clock.advance(5)

        assert await cache.incr("counter") == 1
        assert await cache.ttl("counter") is None

    @pytest.mark.asyncio
    async def test_incr_non_integer_raises(self):
        cache = InMemoryCacheBackend()
        await cache.set("k", "not-a-number")

        with pytest.raises(CacheTypeError):
            await cache.incr("k")

    @pytest.mark.asyncio
    async def test_empty_key_rejected(self):
        with pytest.raises(CacheKeyError):
            await InMemoryCacheBackend().get("")

    @pytest.mark.asyncio
    async def test_expire_missing_key(self):
        assert await InMemoryCacheBackend().expire("missing", 10) is False

    @pytest.mark.asyncio
    async def test_concurrent_increments_are_distinct(self):
        cache = InMemoryCacheBackend()

        results = await asyncio.gather(*(cache.incr("counter") for _ in range(50)))

        assert sorted(results) == list(range(1, 51))

    @given(amounts=st.lists(st.integers(min_value=-5, max_value=5), min_size=1, max_size=20))
    @settings(max_examples=25, deadline=None)
    @pytest.mark.asyncio
    async def test_incr_sums_amounts(self, amounts):
        cache = InMemoryCacheBackend()
        value = 0
        for amount in amounts:
            value = await cache.incr("counter", amount)

        assert value == sum(amounts)

    @pytest.mark.asyncio
    async def test_clear(self):
        cache = InMemoryCacheBackend()
        await cache.set("k", "v")
        cache.clear()

        assert await cache.get("k") is None


class TestRedisCacheBackend:
    @pytest.mark.asyncio
    async def test_ttl_maps_missing_and_persistent_to_none(self):
        client = AsyncMock()
        client.ttl.side_effect = [-2, -1, 7]
        cache = RedisCacheBackend(client)

        assert await cache.ttl("missing") is None
        assert await cache.ttl("persistent") is None
        assert await cache.ttl("expiring") == 7

    @pytest.mark.asyncio
    async def test_incr_type_error(self):
        client = AsyncMock()
        client.incr.side_effect = Exception("ERR value is not an integer or out of range")

        with pytest.raises(CacheTypeError):
            await RedisCacheBackend(client).incr("k")

    @pytest.mark.asyncio
    async def test_connection_errors_are_wrapped(self):
        client = AsyncMock()
        client.get.side_effect = ConnectionError("down")

        with pytest.raises(CacheConnectionError):
            await RedisCacheBackend(client).get("k")


class TestCreateCacheBackend:
    @pytest.mark.asyncio
    async def test_in_memory_without_redis_url(self, test_settings):
        first = await create_cache_backend(test_settings)
        second = await create_cache_backend(test_settings)

        assert isinstance(first, InMemoryCacheBackend)
        assert first is not second

    @pytest.mark.asyncio
    async def test_connects_redis_when_configured(self, monkeypatch):
        client = AsyncMock()
        connect = AsyncMock(return_value=client)
        monkeypatch.setattr("unblocked.core.cache_backend._create_redis_client", connect)

        backend = await create_cache_backend(Settings(UNBLOCKED_REDIS_URL="redis://cache:6379"))

        assert isinstance(backend, RedisCacheBackend)
        connect.assert_awaited_once_with("redis://cache:6379")

    @pytest.mark.asyncio
    async def test_falls_back_when_redis_unreachable(self, monkeypatch):
        failing = AsyncMock(side_effect=CacheConnectionError("Redis connection failed"))
        monkeypatch.setattr("unblocked.core.cache_backend._create_redis_client", failing)

        backend = await create_cache_backend(Settings(UNBLOCKED_REDIS_URL="redis://localhost:1"))

        assert isinstance(backend, InMemoryCacheBackend)
        failing.assert_awaited_once_with("redis://localhost:1")
