"""Request-time rate limit enforcement."""

from __future__ import annotations

from ..api.request import RequestContext
from ..core.exceptions import RateLimitExceededError
from ..core.logging import get_logger
from .resolver import RateLimitPolicy
from .storage import RateLimitResult, RateLimitStorage

logger = get_logger(__name__)


def get_client_ip(request: RequestContext) -> str | None:
    """First X-Forwarded-For address, else the direct client host."""
    forwarded = request.header("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client_host


def get_caller_key(request: RequestContext) -> str:
    if request.user_id:
        return f"user:{request.user_id}"
    ip = get_client_ip(request)
    return f"ip:{ip}" if ip else "anonymous"


class RateLimiter:
    def __init__(self, policy: RateLimitPolicy, storage: RateLimitStorage):
        self.policy = policy
        self.storage = storage

    async def check(self, request: RequestContext) -> RateLimitResult | None:
        """Count ``request`` against its rule.

        Returns None when no rule applies.

        Raises:
            RateLimitExceededError: The caller is over the rule's limit.

        """
        rule = self.policy.resolve(request.path)
        if rule is None:
            return None

        key = f"{get_caller_key(request)}|{rule.id}"
        result = await self.storage.hit(key, rule.window, rule.max)
        if not result.allowed:
            logger.warning(
                "Rate limit exceeded",
                extra={"rate_limit_key": key, "path": request.path, "retry_after": result.retry_after_seconds},
            )
            raise RateLimitExceededError(retry_after=result.retry_after_seconds)
        return result
