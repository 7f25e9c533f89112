"""Upstash Redis sliding-window adapter (remote backend).

Counting happens inside Redis via the ``upstash-ratelimit`` scripts, so the
increment-and-check is atomic across every server instance sharing the store.
This module only translates between that library and ``RateLimitResult``.
"""

from __future__ import annotations

from upstash_ratelimit import SlidingWindow
from upstash_ratelimit.asyncio import Ratelimit
from upstash_redis.asyncio import Redis

from app.adapters.rate_limit.base import AbstractRemoteRateLimiter, RateLimitResult


class UpstashSlidingWindowRateLimiter(AbstractRemoteRateLimiter):
    """One remote bucket: a fixed ``(limit, window_ms)`` sliding window."""

    def __init__(self, *, redis: Redis, limit: int, window_ms: int, prefix: str) -> None:
        self._ratelimit = Ratelimit(
            redis=redis,
            limiter=SlidingWindow(max_requests=limit, window=window_ms, unit="ms"),
            prefix=prefix,
        )
        self.prefix = prefix

    async def limit(self, identifier: str) -> RateLimitResult:
        """Count one attempt remotely.

        Raises:
            Exception: Whatever the client raises on transport/auth failure, or
                TypeError/ValueError when the response is malformed.
        """
        response = await self._ratelimit.limit(identifier)
        # upstash-ratelimit reports reset as UNIX seconds
        return RateLimitResult(
            success=bool(response.allowed),
            remaining=max(0, int(response.remaining)),
            reset_time=int(float(response.reset) * 1000),
            limit=int(response.limit),
        )


class UpstashRateLimiterFactory:
    """Builds per-bucket remote limiters sharing a single REST client."""

    def __init__(self, *, url: str, token: str, key_prefix: str) -> None:
        self._redis = Redis(url=url, token=token)
        self._key_prefix = key_prefix

    def __call__(self, bucket: str, limit: int, window_ms: int) -> UpstashSlidingWindowRateLimiter:
        return UpstashSlidingWindowRateLimiter(
            redis=self._redis,
            limit=limit,
            window_ms=window_ms,
            prefix=f"{self._key_prefix}:{bucket}",
        )

    async def aclose(self) -> None:
        await self._redis.close()
