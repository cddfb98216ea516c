"""Request rate limiting counters.

A RateCounter answers one question: after counting this request, is the key
still within `limit` requests for the current window?

Implementations:
- InMemoryRateCounter: per-process fixed windows (single worker, tests)
- RedisRateCounter: shared INCR + EXPIRE counters across workers

Redis keys:
- rate:{key} - request count for the window that started with the first request

Fail modes:
- Redis unavailable or erroring: fail open (request allowed, warning logged)
"""

import threading
import time
from collections.abc import Callable
from typing import Protocol

from agora.logging import get_logger

logger = get_logger(__name__)

DEFAULT_LIMIT = 100
DEFAULT_WINDOW_SECONDS = 15 * 60


class RateCounter(Protocol):
    """Protocol for request counters."""

    def increment_and_check(self, key: str, window_seconds: int, limit: int) -> bool:
        """Count one request for key.

        Returns:
            True if the request is within the limit, False if it exceeds it.
        """
        ...


class InMemoryRateCounter:
    """Thread-safe in-process counter.

    Each key gets a window that starts with its first request and lasts
    window_seconds; the count resets when the window ends.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: dict[str, tuple[float, int]] = {}

    def increment_and_check(self, key: str, window_seconds: int, limit: int) -> bool:
        now = self._clock()
        with self._lock:
            started, count = self._windows.get(key, (now, 0))
            if now - started >= window_seconds:
                started, count = now, 0
            count += 1
            self._windows[key] = (started, count)
            self._evict_expired(now, window_seconds)
        return count <= limit

    def _evict_expired(self, now: float, window_seconds: int) -> None:
        # Bounded cleanup so idle keys do not accumulate
        if len(self._windows) < 10_000:
            return
        expired = [k for k, (s, _) in self._windows.items() if now - s >= window_seconds]
        for k in expired:
            del self._windows[k]


class RedisRateCounter:
    """Rate counter using Redis.

    Thread-safe for use in FastAPI middleware.
    """

    def __init__(self, redis_client):
        """Initialize rate counter.

        Args:
            redis_client: Redis client instance (sync).
        """
        self._redis = redis_client

    def increment_and_check(self, key: str, window_seconds: int, limit: int) -> bool:
        redis_key = f"rate:{key}"
        try:
            pipe = self._redis.pipeline()
            pipe.incr(redis_key)
            # NX keeps the window anchored to the first request
            pipe.expire(redis_key, window_seconds, nx=True)
            results = pipe.execute()
        except Exception as e:
            logger.warning("rate_limit_check_failed", error_class=type(e).__name__)
            return True  # Fail open

        return int(results[0]) <= limit


# Global rate counter instance (initialized by app startup)
_rate_counter: RateCounter | None = None


def get_rate_counter() -> RateCounter:
    """Get the global rate counter.

    Returns an in-memory counter if not initialized (for testing without Redis).
    """
    global _rate_counter
    if _rate_counter is None:
        _rate_counter = InMemoryRateCounter()
    return _rate_counter


def set_rate_counter(counter: RateCounter | None) -> None:
    """Set the global rate counter.

    Called by app startup to configure Redis.
    """
    global _rate_counter
    _rate_counter = counter
