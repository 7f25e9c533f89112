"""In-memory fixed-window rate limiter (fallback backend).

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state.
- Never raises from ``limit``; it is the backstop when the remote store fails.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult

logger = logging.getLogger(__name__)

# Placeholder key for missing identifiers
ANONYMOUS_IDENTIFIER = "anonymous"

MIN_WINDOW_MS = 1
DEFAULT_SWEEP_INTERVAL_SECONDS = 60.0


@dataclass(frozen=True)
class _WindowEntry:
    count: int
    window_start: int
    reset_at: int


def _coerce_limit(value: Any) -> int:
    """Normalize a ceiling to a non-negative int; garbage becomes 0 (reject).

    Results echo this coerced value as ``limit``, not the raw argument, so a
    degenerate ceiling is reported as 0.
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number) or number < 1:
        return 0
    return int(number)


def _coerce_window_ms(value: Any) -> int:
    """Normalize a window length to at least ``MIN_WINDOW_MS``."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return MIN_WINDOW_MS
    if not math.isfinite(number) or number < MIN_WINDOW_MS:
        return MIN_WINDOW_MS
    return int(number)


class InMemoryFixedWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter using a fixed time window per identifier.

    A window opens on the first attempt seen for an identifier and lasts
    ``window_ms``. Every attempt inside a live window increments the count,
    rejected ones included, so a blocked client cannot earn budget back by
    retrying. Once the window has expired the entry is replaced by a fresh
    one on next access.

    A daemon thread sweeps expired entries every ``sweep_interval_seconds``
    so identifiers seen once do not accumulate. The thread never keeps the
    interpreter alive and stops on ``destroy()``.

    Important:
        This limiter is per-process only. If the API runs with multiple workers
        (e.g., multiple Uvicorn/Gunicorn workers), each worker will enforce its
        own independent limits.
    """

    def __init__(
        self,
        *,
        sweep_interval_seconds: float | None = DEFAULT_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the counter and start the background sweep.

        Args:
            sweep_interval_seconds: Seconds between cleanup passes. ``None`` or
                a non-positive value disables the background thread (callers
                can still run ``sweep()`` by hand).
            clock: Time source function returning UNIX time in seconds.
        """
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: dict[str, _WindowEntry] = {}
        self._stopped = threading.Event()
        self._sweep_interval = sweep_interval_seconds
        self._sweeper: threading.Thread | None = None

        if sweep_interval_seconds is not None and sweep_interval_seconds > 0:
            self._sweeper = threading.Thread(
                target=self._run_sweeper,
                name="rate-limit-sweeper",
                daemon=True,
            )
            self._sweeper.start()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def destroyed(self) -> bool:
        return self._stopped.is_set()

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def limit(self, identifier: str, limit: int, window_ms: int) -> RateLimitResult:
        """Count one attempt for ``identifier`` and decide admission.

        Degenerate input never raises: an empty identifier is counted under
        ``ANONYMOUS_IDENTIFIER``, a ceiling below 1 (or non-finite) rejects
        every attempt, and a window below 1 ms (or non-finite) is clamped to
        ``MIN_WINDOW_MS``.

        The returned ``limit`` is the coerced ceiling (0 for degenerate input).

        Args:
            identifier: Counting key.
            limit: Max attempts admitted per window.
            window_ms: Window length in milliseconds.

        Returns:
            RateLimitResult with admission decision and window metadata.
        """
        key = identifier or ANONYMOUS_IDENTIFIER
        if not isinstance(key, str):
            key = str(key)
        ceiling = _coerce_limit(limit)
        window = _coerce_window_ms(window_ms)

        now = self._now_ms()

        with self._lock:
            entry = self._entries.get(key)

            if entry is None or entry.reset_at <= now:
                entry = _WindowEntry(count=1, window_start=now, reset_at=now + window)
                success = ceiling >= 1
            else:
                success = entry.count < ceiling
                entry = _WindowEntry(
                    count=entry.count + 1,
                    window_start=entry.window_start,
                    reset_at=entry.reset_at,
                )

            self._entries[key] = entry

        return RateLimitResult(
            success=success,
            remaining=max(0, ceiling - entry.count),
            reset_time=entry.reset_at,
            limit=ceiling,
        )

    def sweep(self) -> int:
        """Drop every entry whose window has already expired.

        Returns:
            Number of evicted entries.
        """
        if self._stopped.is_set():
            return 0

        now = self._now_ms()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.reset_at <= now]
            for key in expired:
                del self._entries[key]
            size = len(self._entries)

        if expired:
            logger.debug(
                "rate_limit.sweep",
                extra={"evicted": len(expired), "entries": size},
            )
        return len(expired)

    def _run_sweeper(self) -> None:
        # Event.wait returns True once destroy() sets it, ending the loop.
        while not self._stopped.wait(self._sweep_interval):
            try:
                self.sweep()
            except Exception:  # pragma: no cover - keep the sweeper alive
                logger.exception("rate_limit.sweep_failed")

    def destroy(self) -> None:
        """Stop the sweep and forget all counters. Safe to call repeatedly."""
        self._stopped.set()
        sweeper = self._sweeper
        if sweeper is not None and sweeper.is_alive() and sweeper is not threading.current_thread():
            sweeper.join(timeout=1.0)
        self._sweeper = None
        with self._lock:
            self._entries.clear()


_memory_limiter: InMemoryFixedWindowRateLimiter | None = None
_memory_limiter_lock = threading.Lock()


def get_memory_rate_limiter() -> InMemoryFixedWindowRateLimiter:
    """Return the process-wide in-memory limiter, creating it on first use."""

    global _memory_limiter

    with _memory_limiter_lock:
        if _memory_limiter is None:
            _memory_limiter = InMemoryFixedWindowRateLimiter()
        return _memory_limiter


def destroy_memory_rate_limiter() -> None:
    """Destroy and forget the process-wide in-memory limiter, if any."""

    global _memory_limiter

    with _memory_limiter_lock:
        if _memory_limiter is not None:
            _memory_limiter.destroy()
            _memory_limiter = None
