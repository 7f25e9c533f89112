"""Rate limiting dependencies for FastAPI routes.

This module wires the unified limiter into the HTTP layer.

Design goals:
- Minimal coupling: routes depend on a dependency function only.
- Explicit lifecycle: the limiter is built in the application lifespan,
  stored on ``app.state`` and closed on shutdown. No module-level state.
- Never fails open by exception: the limiter always returns a decision, and
  only a rejection turns into an HTTP 429.

Rate limiting strategy:
- One bucket per AI-backed route (image analysis, ingredient zoning).
- Keyed by client IP extracted from proxy headers.
"""

from __future__ import annotations

import logging
import time
from typing import Annotated, Awaitable, Callable

from fastapi import Depends, Request

from app.adapters.rate_limit.base import RateLimitResult
from app.adapters.rate_limit.unified import (
    IMAGE_ANALYSIS_BUCKET,
    ZONING_BUCKET,
    RateLimitConfig,
    UnifiedRateLimiter,
)
from app.core.client_ip import get_rate_limit_identifier
from app.core.config import RateLimitSettings, settings
from app.core.errors import RateLimitAppError
from app.core.logging import hash_for_log

logger = logging.getLogger(__name__)


def build_rate_limiter(rate_limit_settings: RateLimitSettings | None = None) -> UnifiedRateLimiter:
    """Create the process limiter from settings.

    Args:
        rate_limit_settings: Settings to use; defaults to global settings.

    Returns:
        UnifiedRateLimiter: Limiter with its backend already selected.
    """

    cfg = rate_limit_settings or settings.rate_limit
    return UnifiedRateLimiter(RateLimitConfig.from_settings(cfg))


def get_rate_limiter(request: Request) -> UnifiedRateLimiter:
    """Return the limiter owned by the running application."""

    return request.app.state.rate_limiter


RateLimiterDep = Annotated[UnifiedRateLimiter, Depends(get_rate_limiter)]


async def _enforce(
    request: Request,
    bucket: str,
    check: Callable[[str], Awaitable[RateLimitResult]],
) -> RateLimitResult:
    identifier = get_rate_limit_identifier(request)
    result = await check(identifier)

    if result.success:
        logger.debug(
            "rate_limit.allowed",
            extra={
                "bucket": bucket,
                "key_hash": hash_for_log(identifier),
                "limit": result.limit,
                "remaining": result.remaining,
            },
        )
        return result

    retry_after = result.retry_after_seconds(int(time.time() * 1000))
    logger.warning(
        "rate_limit.exceeded",
        extra={
            "bucket": bucket,
            "key_hash": hash_for_log(identifier),
            "limit": result.limit,
            "remaining": result.remaining,
            "reset_time": result.reset_time,
            "retry_after_s": retry_after,
        },
    )

    raise RateLimitAppError(
        code="rate_limit_exceeded",
        message="Too many requests. Please wait before trying again.",
        details={
            "limit": result.limit,
            "remaining": result.remaining,
            "reset_time": result.reset_time,
            "retry_after": retry_after,
        },
        result=result,
        retry_after=retry_after,
    )


async def enforce_image_analysis_rate_limit(
    request: Request,
    limiter: RateLimiterDep,
) -> RateLimitResult:
    """Admit or reject an image analysis request.

    Raises:
        RateLimitAppError: When the client has exhausted its window (HTTP 429).
    """

    return await _enforce(request, IMAGE_ANALYSIS_BUCKET, limiter.limit_image_analysis)


async def enforce_zoning_rate_limit(
    request: Request,
    limiter: RateLimiterDep,
) -> RateLimitResult:
    """Admit or reject an ingredient zoning request.

    Raises:
        RateLimitAppError: When the client has exhausted its window (HTTP 429).
    """

    return await _enforce(request, ZONING_BUCKET, limiter.limit_zoning)
