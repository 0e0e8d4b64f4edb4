"""
Unit tests for fixed-window counter storages.
"""

import asyncio

import pytest
import pytest_asyncio
from hypothesis import given, settings
from hypothesis import strategies as st
from sqlalchemy import select

from unblocked.core.cache_backend import InMemoryCacheBackend
from unblocked.db.engine import create_engine
from unblocked.db.metadata import build_metadata
from unblocked.db.migrations import run_migrations
from unblocked.db.registry import merge_schema
from unblocked.options import RateLimitOptions
from unblocked.rate_limit.storage import (
    CacheRateLimitStorage,
    CustomRateLimitStorage,
    DatabaseRateLimitStorage,
    KeyedLocks,
)


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class DictStore:
    """Minimal user-supplied store with async get/set."""

    def __init__(self):
        self.data = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value):
        self.data[key] = value


async def admitted(storage, key, window, max_requests, hits):
    results = [await storage.hit(key, window, max_requests) for _ in range(hits)]
    return sum(result.allowed for result in results)


class TestCacheRateLimitStorage:
    @given(
        max_requests=st.integers(min_value=1, max_value=10),
        hits=st.integers(min_value=1, max_value=25),
        window=st.integers(min_value=1, max_value=120),
    )
    @settings(max_examples=30, deadline=None)
    @pytest.mark.asyncio
    async def test_never_admits_more_than_max_per_window(self, max_requests, hits, window):
        clock = FakeClock()
        storage = CacheRateLimitStorage(InMemoryCacheBackend(clock=clock))

        first_window = await admitted(storage, "ip:1|default", window, max_requests, hits)
        clock.advance(window)
        next_window = await admitted(storage, "ip:1|default", window, max_requests, hits)

        assert first_window == min(hits, max_requests)
        assert next_window == min(hits, max_requests)

    @pytest.mark.asyncio
    async def test_rejection_reports_remaining_window(self):
        clock = FakeClock()
        storage = CacheRateLimitStorage(InMemoryCacheBackend(clock=clock))

        await storage.hit("k", 10, 1)
        clock.advance(4)
        rejected = await storage.hit("k", 10, 1)

        assert rejected.allowed is False
        assert rejected.retry_after_seconds == 6
        assert rejected.remaining == -1
        assert rejected.to_headers()["RateLimit-Remaining"] == "0"

    @pytest.mark.asyncio
    async def test_keys_are_independent(self):
        storage = CacheRateLimitStorage(InMemoryCacheBackend())

        await storage.hit("user:a|default", 10, 1)

        assert (await storage.hit("user:b|default", 10, 1)).allowed is True
        assert (await storage.hit("user:a|default", 10, 1)).allowed is False

    @pytest.mark.asyncio
    async def test_concurrent_hits_admit_exactly_max(self):
        storage = CacheRateLimitStorage(InMemoryCacheBackend())

        results = await asyncio.gather(*(storage.hit("hot", 60, 5) for _ in range(40)))

        assert sum(result.allowed for result in results) == 5

    @pytest.mark.asyncio
    async def test_uses_the_given_backend(self):
        cache = InMemoryCacheBackend()
        storage = CacheRateLimitStorage(cache)

        await storage.hit("k", 10, 2)

        assert storage.cache is cache
        assert await cache.get("rl:k") == "1"


class TestKeyedLocks:
    @pytest.mark.asyncio
    async def test_serializes_holders_of_one_key(self):
        locks = KeyedLocks()
        inside = []

        async def worker(name):
            async with locks.hold("k"):
                inside.append(name)
                assert len(inside) == 1
                await asyncio.sleep(0)
                inside.remove(name)

        await asyncio.gather(*(worker(i) for i in range(10)))

        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_lock_is_released_after_an_error(self):
        locks = KeyedLocks()

        with pytest.raises(RuntimeError):
            async with locks.hold("k"):
                raise RuntimeError("boom")

        assert len(locks) == 0


class TestCustomRateLimitStorage:
    @pytest.mark.asyncio
    async def test_fixed_window(self):
        clock = FakeClock()
        store = DictStore()
        storage = CustomRateLimitStorage(store, clock=clock)

        assert await admitted(storage, "k", 10, 3, 5) == 3
        assert store.data["k"]["count"] == 3
        clock.advance(10)
        assert (await storage.hit("k", 10, 3)).allowed is True
        assert store.data["k"] == {"key": "k", "count": 1, "lastRequest": 1_010_000}

    @pytest.mark.asyncio
    async def test_concurrent_hits_admit_exactly_max(self):
        storage = CustomRateLimitStorage(DictStore())

        results = await asyncio.gather(*(storage.hit("hot", 60, 4) for _ in range(20)))

        assert sum(result.allowed for result in results) == 4

    @pytest.mark.asyncio
    async def test_distinct_callers_leave_no_locks_behind(self):
        storage = CustomRateLimitStorage(DictStore())

        await asyncio.gather(*(storage.hit(f"ip:10.0.{i // 256}.{i % 256}|default", 10, 5) for i in range(2_000)))

        assert len(storage._locks) == 0


class TestDatabaseRateLimitStorage:
    @pytest_asyncio.fixture
    async def setup(self, sqlite_url):
        registry = merge_schema(rate_limit=RateLimitOptions(storage="database"))
        engine = create_engine(sqlite_url)
        await run_migrations(engine, registry)
        clock = FakeClock()
        table = build_metadata(registry).tables["rateLimit"]
        yield DatabaseRateLimitStorage(engine, table, clock=clock), clock, engine, table
        await engine.dispose()

    @pytest.mark.asyncio
    async def test_fixed_window(self, setup):
        storage, clock, engine, table = setup

        assert await admitted(storage, "ip:1|default", 10, 2, 4) == 2
        clock.advance(9)
        assert (await storage.hit("ip:1|default", 10, 2)).allowed is False
        clock.advance(1)
        assert (await storage.hit("ip:1|default", 10, 2)).allowed is True

        async with engine.connect() as conn:
            rows = (await conn.execute(select(table.c["key"], table.c["count"], table.c["lastRequest"]))).all()
        assert [tuple(row) for row in rows] == [("ip:1|default", 1, 1_010_000)]

    @pytest.mark.asyncio
    async def test_rejected_hits_do_not_grow_the_counter(self, setup):
        storage, _, engine, table = setup

        await admitted(storage, "k", 60, 1, 5)

        async with engine.connect() as conn:
            count = (await conn.execute(select(table.c["count"]).where(table.c["key"] == "k"))).scalar_one()
        assert count == 1

    @pytest.mark.asyncio
    async def test_concurrent_hits_admit_exactly_max(self, setup):
        storage, *_ = setup

        results = await asyncio.gather(*(storage.hit("hot", 60, 3) for _ in range(10)))

        assert sum(result.allowed for result in results) == 3
        assert len(storage._locks) == 0
