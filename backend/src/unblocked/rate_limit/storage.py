"""Fixed-window counter storages.

Every storage implements ``hit(key, window, max)``: count one request against
``key`` and report whether it is admitted. A window starts at the first
request for a key and lasts ``window`` seconds. Increments on the same key
are serialized so no more than ``max`` requests are admitted per window.
"""

from __future__ import annotations

import asyncio
import math
import time
import uuid
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Protocol

from sqlalchemy import Table, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine

from ..core.cache_backend import CacheBackend
from ..core.logging import get_logger

logger = get_logger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit check."""

    allowed: bool
    retry_after_seconds: int = 0
    remaining: int = 0
    limit: int = 0
    reset_seconds: int = 0

    def to_headers(self) -> dict[str, str]:
        """Generate standard rate limit response headers."""
        headers = {
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(max(0, self.remaining)),
            "RateLimit-Reset": str(self.reset_seconds),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after_seconds)
        return headers


def _result(count: int, max_requests: int, reset_seconds: int) -> RateLimitResult:
    allowed = count <= max_requests
    return RateLimitResult(
        allowed=allowed,
        retry_after_seconds=0 if allowed else max(1, reset_seconds),
        remaining=max_requests - count,
        limit=max_requests,
        reset_seconds=max(0, reset_seconds),
    )


class RateLimitStorage(Protocol):
    async def hit(self, key: str, window: int, max_requests: int) -> RateLimitResult: ...


class KeyedLocks:
    """Per-key asyncio locks, dropped once no caller holds or awaits them."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class CacheRateLimitStorage:
    """Counters in the cache backend: INCR, and EXPIRE when a window opens."""

    def __init__(self, cache: CacheBackend, namespace: str = "rl"):
        self.cache = cache
        self._namespace = namespace

    async def hit(self, key: str, window: int, max_requests: int) -> RateLimitResult:
        cache = self.cache
        cache_key = f"{self._namespace}:{key}"
        count = await cache.incr(cache_key)
        ttl = await cache.ttl(cache_key)
        if count == 1 or ttl is None:
            # First hit opens the window; a missing TTL means an earlier EXPIRE was lost
            await cache.expire(cache_key, window)
            ttl = window
        return _result(count, max_requests, ttl)


class DatabaseRateLimitStorage:
    """Counters in the ``rateLimit`` table.

    ``last_request`` stores the window start in epoch milliseconds. Admission
    is a conditional UPDATE, so concurrent processes cannot both take the last
    slot; a process-local lock per key keeps in-process callers from racing
    on window resets.
    """

    MAX_ATTEMPTS = 3

    def __init__(
        self,
        engine: AsyncEngine,
        table: Table,
        key_column: str = "key",
        count_column: str = "count",
        last_request_column: str = "lastRequest",
        use_number_id: bool = False,
        clock: Clock = time.time,
    ):
        self._engine = engine
        self._table = table
        self._key = table.c[key_column]
        self._count = table.c[count_column]
        self._last = table.c[last_request_column]
        self._use_number_id = use_number_id
        self._clock = clock
        self._locks = KeyedLocks()

    async def hit(self, key: str, window: int, max_requests: int) -> RateLimitResult:
        async with self._locks.hold(key):
            for _ in range(self.MAX_ATTEMPTS):
                try:
                    result = await self._hit(key, window, max_requests)
                except IntegrityError:
                    # Another process inserted the row first; count against it
                    continue
                if result is not None:
                    return result
        logger.warning("Rate limit counter contended, rejecting request", extra={"rate_limit_key": key})
        return _result(max_requests + 1, max_requests, window)

    async def _hit(self, key: str, window: int, max_requests: int) -> RateLimitResult | None:
        """One attempt; None means another writer moved the window first."""
        now_ms = int(self._clock() * 1000)
        window_ms = window * 1000
        async with self._engine.begin() as conn:
            row = (
                await conn.execute(select(self._count, self._last).where(self._key == key))
            ).first()

            if row is None:
                values: dict[str, Any] = {self._key.name: key, self._count.name: 1, self._last.name: now_ms}
                if not self._use_number_id:
                    values["id"] = uuid.uuid4().hex
                await conn.execute(insert(self._table).values(**values))
                return _result(1, max_requests, window)

            count, window_start = row
            if now_ms - window_start >= window_ms:
                reset = await conn.execute(
                    update(self._table)
                    .where(self._key == key, self._last == window_start)
                    .values({self._count: 1, self._last: now_ms})
                )
                if reset.rowcount != 1:
                    return None
                return _result(1, max_requests, window)

            reset_seconds = math.ceil((window_start + window_ms - now_ms) / 1000)
            admitted = await conn.execute(
                update(self._table)
                .where(self._key == key, self._last == window_start, self._count < max_requests)
                .values({self._count: self._count + 1})
            )
            if admitted.rowcount == 1:
                return _result(count + 1, max_requests, reset_seconds)
            return _result(max_requests + 1, max_requests, reset_seconds)


class CustomRateLimitStorage:
    """Adapter for a user object exposing async ``get(key)`` and ``set(key, value)``.

    Values are ``{"key", "count", "lastRequest"}`` mappings. The user store
    has no atomic increment, so hits are serialized per key in-process.
    """

    def __init__(self, store: Any, clock: Clock = time.time):
        self._store = store
        self._clock = clock
        self._locks = KeyedLocks()

    async def hit(self, key: str, window: int, max_requests: int) -> RateLimitResult:
        async with self._locks.hold(key):
            now_ms = int(self._clock() * 1000)
            current = await self._store.get(key)
            if not current or now_ms - current["lastRequest"] >= window * 1000:
                await self._store.set(key, {"key": key, "count": 1, "lastRequest": now_ms})
                return _result(1, max_requests, window)
            reset_seconds = math.ceil((current["lastRequest"] + window * 1000 - now_ms) / 1000)
            if current["count"] >= max_requests:
                return _result(current["count"] + 1, max_requests, reset_seconds)
            count = current["count"] + 1
            await self._store.set(key, {"key": key, "count": count, "lastRequest": current["lastRequest"]})
            return _result(count, max_requests, reset_seconds)
