"""Unit tests for the in-memory fixed-window rate limiter."""

import math
import time
from unittest.mock import Mock

import pytest

from app.adapters.rate_limit.in_memory import (
    ANONYMOUS_IDENTIFIER,
    InMemoryFixedWindowRateLimiter,
    destroy_memory_rate_limiter,
    get_memory_rate_limiter,
)


@pytest.fixture
def clock() -> Mock:
    return Mock(return_value=1000.0)


@pytest.fixture
def limiter(clock: Mock):
    limiter = InMemoryFixedWindowRateLimiter(sweep_interval_seconds=None, clock=clock)
    yield limiter
    limiter.destroy()


def test_first_call_opens_window(limiter: InMemoryFixedWindowRateLimiter) -> None:
    result = limiter.limit("k", 5, 60_000)

    assert result.success is True
    assert result.remaining == 4
    assert result.limit == 5
    assert result.reset_time == 1_000_000 + 60_000


def test_admits_exactly_limit_calls_then_rejects(limiter: InMemoryFixedWindowRateLimiter) -> None:
    results = [limiter.limit("k", 3, 60_000) for _ in range(4)]

    assert [r.success for r in results] == [True, True, True, False]
    assert [r.remaining for r in results] == [2, 1, 0, 0]
    assert len({r.reset_time for r in results}) == 1


def test_rejected_calls_keep_counting(limiter: InMemoryFixedWindowRateLimiter, clock: Mock) -> None:
    limiter.limit("k", 1, 60_000)
    for _ in range(5):
        assert limiter.limit("k", 1, 60_000).success is False

    # Still inside the original window: rejected calls did not reopen it
    clock.return_value = 1059.0
    blocked = limiter.limit("k", 1, 60_000)
    assert blocked.success is False
    assert blocked.reset_time == 1_060_000


def test_window_rollover_resets_count(limiter: InMemoryFixedWindowRateLimiter, clock: Mock) -> None:
    assert limiter.limit("k", 1, 100).success is True

    clock.return_value = 1000.0625
    assert limiter.limit("k", 1, 100).success is False
    assert limiter.limit("k", 1, 100).success is False

    clock.return_value = 1000.125
    fresh = limiter.limit("k", 1, 100)
    assert fresh.success is True
    assert fresh.remaining == 0
    assert fresh.reset_time == 1_000_125 + 100


def test_window_expires_exactly_at_reset_time(limiter: InMemoryFixedWindowRateLimiter, clock: Mock) -> None:
    limiter.limit("k", 1, 10_000)

    clock.return_value = 1010.0
    assert limiter.limit("k", 1, 10_000).success is True


def test_window_rollover_with_real_clock() -> None:
    limiter = InMemoryFixedWindowRateLimiter(sweep_interval_seconds=None)
    try:
        assert limiter.limit("k", 1, 100).success is True
        assert limiter.limit("k", 1, 100).success is False

        time.sleep(0.11)

        result = limiter.limit("k", 1, 100)
        assert result.success is True
        assert result.remaining == 0
    finally:
        limiter.destroy()


def test_isolated_by_identifier(limiter: InMemoryFixedWindowRateLimiter) -> None:
    limiter.limit("a", 2, 60_000)
    limiter.limit("a", 2, 60_000)
    assert limiter.limit("a", 2, 60_000).success is False

    other = limiter.limit("b", 2, 60_000)
    assert other.success is True
    assert other.remaining == 1


@pytest.mark.parametrize(
    ("identifier", "limit", "window_ms"),
    [
        ("", 5, 60_000),
        (None, 5, 60_000),
        ("k", 0, 60_000),
        ("k", -3, 60_000),
        ("k", math.inf, 60_000),
        ("k", math.nan, 60_000),
        ("k", 5, 0),
        ("k", 5, -100),
        ("k", 5, math.inf),
        ("k", 5, math.nan),
        ("k", "ten", "sixty"),
    ],
)
def test_degenerate_input_never_raises(
    limiter: InMemoryFixedWindowRateLimiter,
    identifier,
    limit,
    window_ms,
) -> None:
    for _ in range(3):
        result = limiter.limit(identifier, limit, window_ms)

        assert isinstance(result.success, bool)
        assert isinstance(result.remaining, int)
        assert isinstance(result.reset_time, int)
        assert isinstance(result.limit, int)
        assert result.remaining >= 0


def test_non_positive_limit_rejects(limiter: InMemoryFixedWindowRateLimiter) -> None:
    result = limiter.limit("k", 0, 60_000)

    assert result.success is False
    assert result.remaining == 0
    assert result.limit == 0


def test_empty_identifier_shares_placeholder_key(limiter: InMemoryFixedWindowRateLimiter) -> None:
    limiter.limit("", 2, 60_000)
    result = limiter.limit(ANONYMOUS_IDENTIFIER, 2, 60_000)

    assert result.remaining == 0


def test_sweep_removes_only_expired_entries(limiter: InMemoryFixedWindowRateLimiter, clock: Mock) -> None:
    limiter.limit("short", 5, 1_000)
    limiter.limit("long", 5, 60_000)
    assert len(limiter) == 2

    clock.return_value = 1002.0
    assert limiter.sweep() == 1
    assert len(limiter) == 1

    # The surviving entry keeps its count
    assert limiter.limit("long", 5, 60_000).remaining == 3


def test_background_sweep_bounds_memory() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryFixedWindowRateLimiter(sweep_interval_seconds=0.02, clock=clock)
    try:
        for i in range(1000):
            limiter.limit(f"client-{i}", 5, 50)
        assert len(limiter) > 0

        clock.return_value = 1001.0
        deadline = time.monotonic() + 2.0
        while len(limiter) and time.monotonic() < deadline:
            time.sleep(0.01)

        assert len(limiter) == 0
    finally:
        limiter.destroy()


def test_destroy_is_idempotent_and_clears_state(clock: Mock) -> None:
    limiter = InMemoryFixedWindowRateLimiter(sweep_interval_seconds=0.01, clock=clock)
    limiter.limit("k", 1, 60_000)

    limiter.destroy()
    limiter.destroy()

    assert limiter.destroyed is True
    assert len(limiter) == 0
    assert limiter.sweep() == 0


def test_destroy_unused_limiter() -> None:
    limiter = InMemoryFixedWindowRateLimiter()
    limiter.destroy()

    assert limiter.destroyed is True


def test_limit_still_answers_after_destroy(limiter: InMemoryFixedWindowRateLimiter) -> None:
    limiter.destroy()

    assert limiter.limit("k", 1, 60_000).success is True


def test_singleton_accessor_and_teardown() -> None:
    first = get_memory_rate_limiter()
    assert get_memory_rate_limiter() is first

    first.limit("k", 1, 60_000)
    destroy_memory_rate_limiter()
    destroy_memory_rate_limiter()

    assert first.destroyed is True
    second = get_memory_rate_limiter()
    assert second is not first
    assert second.limit("k", 1, 60_000).success is True


def test_retry_after_seconds(limiter: InMemoryFixedWindowRateLimiter) -> None:
    admitted = limiter.limit("k", 1, 60_000)
    blocked = limiter.limit("k", 1, 60_000)

    assert admitted.retry_after_seconds(1_000_000) == 0
    assert blocked.retry_after_seconds(1_000_000) == 60
    assert blocked.retry_after_seconds(1_059_001) == 1
    assert blocked.retry_after_seconds(1_070_000) == 0
