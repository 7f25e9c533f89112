"""Rate limiter interfaces.

Route dependencies should talk to the unified facade, and the facade talks to
backends through these shapes so the remote store and the in-process counter
stay interchangeable.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Decision returned for a single admission attempt.

    Attributes:
        success: Whether the request is admitted.
        remaining: Further admits allowed in the current window (never < 0).
        reset_time: UNIX epoch milliseconds when the current window resets.
        limit: Ceiling configured for this call.
    """

    success: bool
    remaining: int
    reset_time: int
    limit: int

    def retry_after_seconds(self, now_ms: int) -> int:
        """Seconds a rejected caller should wait before retrying.

        Args:
            now_ms: Current UNIX time in milliseconds.

        Returns:
            0 when admitted, otherwise whole seconds until reset (rounded up).
        """
        if self.success:
            return 0
        return max(0, int(math.ceil((self.reset_time - now_ms) / 1000)))


class AbstractRateLimiter(ABC):
    """Interface for per-call parameterised counters."""

    @abstractmethod
    def limit(self, identifier: str, limit: int, window_ms: int) -> RateLimitResult:
        """Count one attempt for ``identifier`` against ``(limit, window_ms)``.

        Args:
            identifier: Counting key (e.g., ``zoning:203.0.113.1``).
            limit: Max attempts admitted per window.
            window_ms: Window length in milliseconds.

        Returns:
            RateLimitResult describing whether it was admitted.
        """
        raise NotImplementedError


class AbstractRemoteRateLimiter(ABC):
    """Interface for a shared remote counter bound to one bucket.

    Remote limiters are configured with their ceiling and window at
    construction time, so ``limit`` only takes the identifier. Implementations
    may raise on any transport or protocol failure; the facade handles it.
    """

    @abstractmethod
    async def limit(self, identifier: str) -> RateLimitResult:
        raise NotImplementedError
