"""Cache backend abstraction for Unblocked.

Provides a small key/value protocol with TTL and atomic counters, used by the
memory rate-limit storage. Two implementations are available:

- ``InMemoryCacheBackend``: single process, lost on restart.
- ``RedisCacheBackend``: shared across processes through ``redis.asyncio``.

``create_cache_backend()`` picks Redis when ``UNBLOCKED_REDIS_URL`` is set and
reachable, and the in-memory backend otherwise. It runs once during startup;
the composed application owns the result.

Example:
    backend = await create_cache_backend(settings)
    count = await backend.incr("rate:user-1:/chat")
    if count == 1:
        await backend.expire("rate:user-1:/chat", 10)

"""

import threading
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import redis.asyncio as redis

from .logging import get_logger

if TYPE_CHECKING:
    from .config import Settings

logger = get_logger(__name__)


class CacheError(Exception):
    """Base exception for cache operations."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class CacheConnectionError(CacheError):
    """Raised when the cache server cannot be reached."""


class CacheKeyError(CacheError):
    """Raised when a cache key is invalid."""


class CacheTypeError(CacheError):
    """Raised when a counter operation hits a non-integer value."""


@runtime_checkable
class CacheBackend(Protocol):
    """Protocol for cache backends.

    ``incr`` must be atomic: two concurrent increments of the same key always
    observe distinct results.
    """

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> bool: ...

    async def delete(self, key: str) -> bool: ...

    async def incr(self, key: str, amount: int = 1) -> int: ...

    async def expire(self, key: str, ttl_seconds: int) -> bool: ...

    async def ttl(self, key: str) -> int | None: ...


class InMemoryCacheBackend:
    """In-memory cache implementation with TTL support.

    Entries are ``key -> (value, expiry or None)``. Expired entries are removed
    lazily on access and periodically every ``cleanup_interval_seconds``.
    All operations hold a reentrant lock, so counters stay exact even when the
    backend is shared between threads.
    """

    def __init__(self, cleanup_interval_seconds: int = 60, clock: Callable[[], float] = time.time):
        self._data: dict[str, tuple[str, float | None]] = {}
        self._lock = threading.RLock()
        self._cleanup_interval = cleanup_interval_seconds
        self._clock = clock
        self._last_cleanup = clock()

    def _is_expired(self, expiry: float | None) -> bool:
        if expiry is None:
            return False
        return self._clock() >= expiry

    def _maybe_cleanup(self) -> None:
        """Drop expired entries if the cleanup interval has passed. Caller holds the lock."""
        if self._cleanup_interval <= 0:
            return
        now = self._clock()
        if now - self._last_cleanup < self._cleanup_interval:
            return
        self._last_cleanup = now
        for key in [k for k, (_, expiry) in self._data.items() if self._is_expired(expiry)]:
            del self._data[key]

    def _live_entry(self, key: str) -> tuple[str, float | None] | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        if self._is_expired(entry[1]):
            del self._data[key]
            return None
        return entry

    @staticmethod
    def _check_key(key: str) -> None:
        if not key:
            raise CacheKeyError("Cache key cannot be empty")

    async def get(self, key: str) -> str | None:
        self._check_key(key)
        with self._lock:
            self._maybe_cleanup()
            entry = self._live_entry(key)
            return entry[0] if entry else None

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> bool:
        self._check_key(key)
        with self._lock:
            self._maybe_cleanup()
            expiry = self._clock() + ttl_seconds if ttl_seconds else None
            self._data[key] = (str(value), expiry)
            return True

    async def delete(self, key: str) -> bool:
        self._check_key(key)
        with self._lock:
            return self._data.pop(key, None) is not None

    async def incr(self, key: str, amount: int = 1) -> int:
        """Increment a counter, treating a missing or expired key as 0.

        The existing expiry is preserved.

        Raises:
            CacheTypeError: If the existing value is not a valid integer.

        """
        self._check_key(key)
        with self._lock:
            self._maybe_cleanup()
            current_value = 0
            current_expiry = None
            entry = self._live_entry(key)
            if entry is not None:
                value_str, current_expiry = entry
                try:
                    current_value = int(value_str)
                except ValueError as e:
                    raise CacheTypeError(f"Value for key '{key}' is not a valid integer: {value_str!r}") from e

            new_value = current_value + amount
            self._data[key] = (str(new_value), current_expiry)
            return new_value

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        self._check_key(key)
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return False
            self._data[key] = (entry[0], self._clock() + ttl_seconds)
            return True

    async def ttl(self, key: str) -> int | None:
        """Seconds until ``key`` expires, or None if it is missing or has no expiry."""
        self._check_key(key)
        with self._lock:
            entry = self._live_entry(key)
            if entry is None or entry[1] is None:
                return None
            return max(0, int(entry[1] - self._clock() + 0.999))

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


class RedisCacheBackend:
    """Redis-backed cache implementation.

    Redis INCR is atomic server-side, so counters are exact across processes.
    Connection failures surface as ``CacheConnectionError``.
    """

    def __init__(self, redis_client: Any):
        self._client = redis_client

    async def get(self, key: str) -> str | None:
        try:
            return await self._client.get(key)
        except Exception as e:
            raise CacheConnectionError(f"Failed to get key '{key}' from Redis", details={"error": str(e)}) from e

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> bool:
        try:
            result = await self._client.set(key, value, ex=ttl_seconds) if ttl_seconds else await self._client.set(key, value)
            return bool(result)
        except Exception as e:
            raise CacheConnectionError(f"Failed to set key '{key}' in Redis", details={"error": str(e)}) from e

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self._client.delete(key))
        except Exception as e:
            raise CacheConnectionError(f"Failed to delete key '{key}' from Redis", details={"error": str(e)}) from e

    async def incr(self, key: str, amount: int = 1) -> int:
        try:
            result = await self._client.incr(key) if amount == 1 else await self._client.incrby(key, amount)
            return int(result)
        except Exception as e:
            error_str = str(e).lower()
            if "not an integer" in error_str or "wrongtype" in error_str:
                raise CacheTypeError(f"Value for key '{key}' is not a valid integer", details={"error": str(e)}) from e
            logger.error(f"Redis INCR failed for key '{key}': {e}")
            raise CacheConnectionError(f"Failed to increment key '{key}' in Redis", details={"error": str(e)}) from e

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        try:
            return bool(await self._client.expire(key, ttl_seconds))
        except Exception as e:
            raise CacheConnectionError(f"Failed to set expiration for key '{key}'", details={"error": str(e)}) from e

    async def ttl(self, key: str) -> int | None:
        try:
            result = int(await self._client.ttl(key))
        except Exception as e:
            raise CacheConnectionError(f"Failed to read TTL for key '{key}'", details={"error": str(e)}) from e
        # -2 means missing, -1 means no expiry
        return result if result >= 0 else None


async def _create_redis_client(redis_url: str) -> Any:
    """Create a Redis client and verify the connection."""
    try:
        client = redis.from_url(redis_url, decode_responses=True, socket_connect_timeout=5, socket_timeout=5)
        await client.ping()
        logger.info("Redis client initialized successfully", extra={"redis_url": redis_url})
        return client
    except Exception as e:
        logger.warning(f"Redis connection failed: {e}")
        raise CacheConnectionError(f"Redis connection failed: {e}", details={"redis_url": redis_url}) from e


async def create_cache_backend(settings: "Settings | None" = None) -> CacheBackend:
    """Connect the configured cache backend.

    Falls back to ``InMemoryCacheBackend`` with a warning when Redis is
    configured but unreachable.
    """
    if settings is None:
        from .config import get_settings_instance

        settings = get_settings_instance()

    if not settings.redis_enabled:
        logger.info("No Redis URL configured, using InMemoryCacheBackend")
        return InMemoryCacheBackend()

    try:
        client = await _create_redis_client(settings.redis_url)
    except CacheConnectionError as e:
        logger.warning(
            "Redis connection failed, falling back to InMemoryCacheBackend",
            extra={"redis_url": settings.redis_url, "error": str(e)},
        )
        return InMemoryCacheBackend()
    logger.info("Using RedisCacheBackend")
    return RedisCacheBackend(client)
