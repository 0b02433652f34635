"""
Rate Limiter - per-user cap on AI chat requests.

Every /ai-chat call costs LLM tokens, so each user gets a sliding one-minute
window of RATE_LIMIT_PER_MINUTE calls. State lives in process memory; each
API worker counts on its own.
"""
import threading
from collections import deque
from datetime import datetime, timedelta
from typing import Deque, Dict, Optional, Tuple

from tutorapi.core.logging_config import get_logger

logger = get_logger(__name__)

WINDOW = timedelta(minutes=1)
SWEEP_EVERY = timedelta(minutes=5)


class RateLimiter:
    """
    Sliding window rate limiter keyed by user id.

    Example:
        >>> limiter = RateLimiter(requests_per_minute=30)
        >>> limiter.is_allowed("user-123")
        (True, 29)
    """

    def __init__(self, requests_per_minute: int = 30):
        self.limit = requests_per_minute
        self.window = WINDOW

        self._requests: Dict[str, Deque[datetime]] = {}
        self._lock = threading.Lock()
        self._last_sweep = datetime.utcnow()

        logger.info(f"RateLimiter initialized: {requests_per_minute} requests/minute")

    def _recent(self, identifier: str, now: datetime) -> Deque[datetime]:
        """Timestamps of `identifier` still inside the window, oldest first."""
        stamps = self._requests.get(identifier) or deque()

        cutoff = now - self.window
        while stamps and stamps[0] <= cutoff:
            stamps.popleft()
        self._requests[identifier] = stamps
        return stamps

    def is_allowed(self, identifier: str) -> Tuple[bool, int]:
        """
        Record a request when the user still has room in the window.

        Returns:
            Tuple of (is_allowed, remaining_requests)
        """
        now = datetime.utcnow()
        with self._lock:
            self._sweep(now)
            stamps = self._recent(identifier, now)

            if len(stamps) >= self.limit:
                logger.warning(f"Rate limit exceeded for: {identifier[:8]}...")
                return False, 0

            stamps.append(now)
            return True, self.limit - len(stamps)

    def retry_after_seconds(self, identifier: str) -> int:
        """Seconds until the oldest request leaves the window, at least 1."""
        now = datetime.utcnow()
        with self._lock:
            stamps = self._recent(identifier, now)
            if not stamps:
                return 1
            wait = (stamps[0] + self.window - now).total_seconds()
        return max(1, int(wait))

    def _sweep(self, now: datetime) -> None:
        if now - self._last_sweep < SWEEP_EVERY:
            return

        for identifier in list(self._requests):
            if not self._recent(identifier, now):
                del self._requests[identifier]

        self._last_sweep = now
        logger.debug(f"Rate limiter sweep: {len(self._requests)} active users")


_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Process-wide limiter built from settings on first use."""
    global _rate_limiter
    if _rate_limiter is None:
        from tutorapi.core.config import get_settings
        _rate_limiter = RateLimiter(requests_per_minute=get_settings().rate_limit_per_minute)
    return _rate_limiter


def reset_rate_limiter() -> None:
    """Drop the global limiter so the next call rebuilds it from settings."""
    global _rate_limiter
    _rate_limiter = None
