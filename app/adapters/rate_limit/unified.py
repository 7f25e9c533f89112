"""Unified rate limiter with remote store and in-memory fallback.

Callers get one API (``limit_image_analysis``, ``limit_zoning``,
``limit_generic``) whichever backend ends up counting:

- With remote credentials configured, each bucket is served by its own
  remote sliding-window limiter.
- A remote failure or timeout degrades that single call to the in-process
  fixed-window counter. The remote path is tried again on the next call.
- Without credentials, or when remote setup fails, every call is counted
  in-process for the lifetime of the facade.

Nothing here raises into the HTTP layer: every path ends in a
``RateLimitResult``.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from app.adapters.rate_limit.base import AbstractRemoteRateLimiter, RateLimitResult
from app.adapters.rate_limit.in_memory import (
    ANONYMOUS_IDENTIFIER,
    DEFAULT_SWEEP_INTERVAL_SECONDS,
    InMemoryFixedWindowRateLimiter,
)

if TYPE_CHECKING:
    from app.core.config import RateLimitSettings

logger = logging.getLogger(__name__)

IMAGE_ANALYSIS_BUCKET = "image-analysis"
ZONING_BUCKET = "zoning"
GENERIC_BUCKET = "generic"

BACKEND_REMOTE = "remote"
BACKEND_MEMORY = "memory"

# Caller-defined buckets kept with a remote limiter; oldest dropped first
MAX_GENERIC_REMOTE_BUCKETS = 64

# (bucket, limit, window_ms) -> remote limiter
RemoteLimiterFactory = Callable[[str, int, int], AbstractRemoteRateLimiter]


@dataclass(frozen=True)
class BucketConfig:
    limit: int
    window_ms: int = 60_000


@dataclass(frozen=True)
class RateLimitConfig:
    """Everything the facade needs, resolved once at the process boundary.

    Attributes:
        remote_url: Remote store REST URL (``None`` selects the fallback).
        remote_token: Remote store REST token (``None`` selects the fallback).
        image_analysis: Ceiling and window for image analysis calls.
        zoning: Ceiling and window for ingredient zoning calls.
        remote_timeout_seconds: Upper bound on one remote call.
        sweep_interval_seconds: Interval between in-memory cleanup passes.
        key_prefix: Namespace for remote keys.
    """

    remote_url: str | None = None
    remote_token: str | None = None
    image_analysis: BucketConfig = field(default_factory=lambda: BucketConfig(limit=10))
    zoning: BucketConfig = field(default_factory=lambda: BucketConfig(limit=50))
    remote_timeout_seconds: float | None = 2.0
    sweep_interval_seconds: float | None = DEFAULT_SWEEP_INTERVAL_SECONDS
    key_prefix: str = "ratelimit"

    @property
    def remote_configured(self) -> bool:
        return bool(self.remote_url and self.remote_token)

    @classmethod
    def from_settings(cls, rate_limit_settings: "RateLimitSettings") -> "RateLimitConfig":
        window_ms = rate_limit_settings.window_seconds * 1000
        return cls(
            remote_url=rate_limit_settings.remote_url,
            remote_token=rate_limit_settings.remote_token,
            image_analysis=BucketConfig(
                limit=rate_limit_settings.image_analysis_requests,
                window_ms=window_ms,
            ),
            zoning=BucketConfig(
                limit=rate_limit_settings.zoning_requests,
                window_ms=window_ms,
            ),
            remote_timeout_seconds=rate_limit_settings.remote_timeout_seconds,
            sweep_interval_seconds=rate_limit_settings.sweep_interval_seconds,
            key_prefix=rate_limit_settings.key_prefix,
        )


def _default_remote_factory(config: RateLimitConfig) -> RemoteLimiterFactory:
    # Imported lazily so the fallback path has no hard dependency on the client
    from app.adapters.rate_limit.upstash import UpstashRateLimiterFactory

    return UpstashRateLimiterFactory(
        url=config.remote_url or "",
        token=config.remote_token or "",
        key_prefix=config.key_prefix,
    )


def _generic_bucket(limit: Any, window_ms: Any) -> str:
    return f"{GENERIC_BUCKET}-{limit}-{window_ms}"


def _usable_bucket(limit: Any, window_ms: Any) -> bool:
    """True when both values are finite numbers of at least 1."""
    for value in (limit, window_ms):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        if not math.isfinite(value) or value < 1:
            return False
    return True


class UnifiedRateLimiter:
    """Facade choosing between the remote store and the in-process counter."""

    def __init__(
        self,
        config: RateLimitConfig,
        *,
        fallback: InMemoryFixedWindowRateLimiter | None = None,
        remote_factory: RemoteLimiterFactory | None = None,
    ) -> None:
        """Select the backend and build the per-bucket remote limiters.

        Args:
            config: Resolved limiter configuration.
            fallback: In-process counter to use; one is created (and owned)
                when omitted.
            remote_factory: Builds remote limiters; defaults to the Upstash
                factory. Only consulted when remote credentials are present.
        """
        self._config = config
        self._owns_fallback = fallback is None
        if fallback is None:
            fallback = InMemoryFixedWindowRateLimiter(
                sweep_interval_seconds=config.sweep_interval_seconds,
            )
        self._fallback = fallback
        self._remote_factory: RemoteLimiterFactory | None = None
        self._remote: dict[str, AbstractRemoteRateLimiter] = {}
        self._remote_active = False

        self._initialize_remote(remote_factory)

    def _initialize_remote(self, remote_factory: RemoteLimiterFactory | None) -> None:
        if not self._config.remote_configured:
            logger.info(
                "rate_limit.backend_selected",
                extra={"backend": BACKEND_MEMORY, "reason": "remote_not_configured"},
            )
            return

        try:
            factory = remote_factory or _default_remote_factory(self._config)
            remote = {
                IMAGE_ANALYSIS_BUCKET: factory(
                    IMAGE_ANALYSIS_BUCKET,
                    self._config.image_analysis.limit,
                    self._config.image_analysis.window_ms,
                ),
                ZONING_BUCKET: factory(
                    ZONING_BUCKET,
                    self._config.zoning.limit,
                    self._config.zoning.window_ms,
                ),
            }
        except Exception as exc:
            logger.error(
                "rate_limit.remote_init_failed",
                extra={
                    "backend": BACKEND_MEMORY,
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )
            return

        self._remote_factory = factory
        self._remote = remote
        self._remote_active = True
        logger.info(
            "rate_limit.backend_selected",
            extra={"backend": BACKEND_REMOTE, "buckets": sorted(remote)},
        )

    @property
    def backend(self) -> str:
        return BACKEND_REMOTE if self._remote_active else BACKEND_MEMORY

    @property
    def config(self) -> RateLimitConfig:
        return self._config

    @property
    def fallback(self) -> InMemoryFixedWindowRateLimiter:
        return self._fallback

    async def limit_image_analysis(self, identifier: str) -> RateLimitResult:
        bucket = self._config.image_analysis
        return await self._limit(IMAGE_ANALYSIS_BUCKET, identifier, bucket.limit, bucket.window_ms)

    async def limit_zoning(self, identifier: str) -> RateLimitResult:
        bucket = self._config.zoning
        return await self._limit(ZONING_BUCKET, identifier, bucket.limit, bucket.window_ms)

    async def limit_generic(self, identifier: str, limit: int, window_ms: int) -> RateLimitResult:
        """Count against a caller-defined bucket.

        Calls sharing ``(limit, window_ms)`` share counters; the pair is part
        of the bucket name on both backends.
        """
        return await self._limit(_generic_bucket(limit, window_ms), identifier, limit, window_ms)

    async def _limit(
        self,
        bucket: str,
        identifier: str,
        limit: int,
        window_ms: int,
    ) -> RateLimitResult:
        key = identifier or ANONYMOUS_IDENTIFIER

        result = await self._try_remote(bucket, key, limit, window_ms)
        if result is not None:
            return result

        return self._fallback.limit(f"{bucket}:{key}", limit, window_ms)

    def _remote_for(self, bucket: str, limit: int, window_ms: int) -> AbstractRemoteRateLimiter | None:
        remote = self._remote.get(bucket)
        if remote is not None or self._remote_factory is None:
            return remote

        # Degenerate ceilings and windows are decided by the in-process counter
        if not _usable_bucket(limit, window_ms):
            return None

        try:
            remote = self._remote_factory(bucket, limit, window_ms)
        except Exception as exc:
            logger.error(
                "rate_limit.remote_bucket_init_failed",
                extra={
                    "bucket": bucket,
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )
            return None

        generic = [name for name in self._remote if name not in (IMAGE_ANALYSIS_BUCKET, ZONING_BUCKET)]
        if len(generic) >= MAX_GENERIC_REMOTE_BUCKETS:
            # Counts live in the remote store, so a dropped limiter loses nothing
            del self._remote[generic[0]]

        self._remote[bucket] = remote
        return remote

    async def _try_remote(
        self,
        bucket: str,
        identifier: str,
        limit: int,
        window_ms: int,
    ) -> RateLimitResult | None:
        """Ask the remote store; ``None`` means count locally instead."""
        if not self._remote_active:
            return None

        remote = self._remote_for(bucket, limit, window_ms)
        if remote is None:
            return None

        try:
            result = await asyncio.wait_for(
                remote.limit(identifier),
                timeout=self._config.remote_timeout_seconds,
            )
        except Exception as exc:
            logger.error(
                "rate_limit.remote_error",
                extra={
                    "bucket": bucket,
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )
            return None

        if not isinstance(result, RateLimitResult):
            logger.error(
                "rate_limit.remote_error",
                extra={
                    "bucket": bucket,
                    "error_type": "MalformedResult",
                    "error_msg": f"unexpected result type {type(result).__name__}",
                },
            )
            return None

        return result

    def status(self) -> dict[str, Any]:
        """Operational snapshot without identifiers."""
        return {
            "backend": self.backend,
            "buckets": {
                IMAGE_ANALYSIS_BUCKET: {
                    "limit": self._config.image_analysis.limit,
                    "window_ms": self._config.image_analysis.window_ms,
                },
                ZONING_BUCKET: {
                    "limit": self._config.zoning.limit,
                    "window_ms": self._config.zoning.window_ms,
                },
            },
            "memory_entries": len(self._fallback),
        }

    async def aclose(self) -> None:
        """Release the fallback counter (if owned) and the remote client."""
        if self._owns_fallback:
            self._fallback.destroy()

        closer = getattr(self._remote_factory, "aclose", None)
        if closer is not None:
            try:
                await closer()
            except Exception as exc:
                logger.warning(
                    "rate_limit.remote_close_failed",
                    extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
                )
        self._remote = {}
        self._remote_factory = None
        self._remote_active = False
