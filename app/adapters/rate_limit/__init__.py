"""Rate limiting adapters.

A remote shared store (Upstash Redis) does the counting when configured; an
in-memory fixed-window counter takes over when it is absent or failing.
"""

from app.adapters.rate_limit.base import (
    AbstractRateLimiter,
    AbstractRemoteRateLimiter,
    RateLimitResult,
)
from app.adapters.rate_limit.in_memory import (
    InMemoryFixedWindowRateLimiter,
    destroy_memory_rate_limiter,
    get_memory_rate_limiter,
)
from app.adapters.rate_limit.unified import (
    BucketConfig,
    RateLimitConfig,
    UnifiedRateLimiter,
)

__all__ = [
    "AbstractRateLimiter",
    "AbstractRemoteRateLimiter",
    "BucketConfig",
    "InMemoryFixedWindowRateLimiter",
    "RateLimitConfig",
    "RateLimitResult",
    "UnifiedRateLimiter",
    "destroy_memory_rate_limiter",
    "get_memory_rate_limiter",
]
