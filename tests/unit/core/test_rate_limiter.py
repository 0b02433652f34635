"""Unit tests for the per-user rate limiter."""

from collections import deque
from datetime import datetime, timedelta

from tutorapi.core.rate_limiter import RateLimiter, get_rate_limiter, reset_rate_limiter


def test_requests_within_limit_are_allowed() -> None:
    limiter = RateLimiter(requests_per_minute=3)

    assert limiter.is_allowed("user-1") == (True, 2)
    assert limiter.is_allowed("user-1") == (True, 1)
    assert limiter.is_allowed("user-1") == (True, 0)
    assert limiter.is_allowed("user-1") == (False, 0)


def test_limits_are_per_identifier() -> None:
    limiter = RateLimiter(requests_per_minute=1)

    assert limiter.is_allowed("user-1")[0]
    assert limiter.is_allowed("user-2")[0]
    assert not limiter.is_allowed("user-1")[0]


def test_old_requests_leave_the_window() -> None:
    limiter = RateLimiter(requests_per_minute=1)
    limiter._requests["user-1"] = deque([datetime.utcnow() - timedelta(minutes=2)])

    assert limiter.is_allowed("user-1") == (True, 0)


def test_retry_after_is_at_least_one_second() -> None:
    limiter = RateLimiter(requests_per_minute=1)
    limiter.is_allowed("user-1")

    assert 1 <= limiter.retry_after_seconds("user-1") <= 60
    assert limiter.retry_after_seconds("unknown") == 1


def test_global_limiter_follows_settings() -> None:
    reset_rate_limiter()
    limiter = get_rate_limiter()

    assert limiter.limit == 30
    assert get_rate_limiter() is limiter
    reset_rate_limiter()
