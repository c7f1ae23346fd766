"""
Sliding-window rate limiter keyed by client identifier.

Each identifier keeps the timestamps (epoch ms) of its accepted requests.
Every check first drops timestamps that fell out of the window, then counts.
"""

import logging
import threading
import time
from typing import Callable, Dict, List, Optional

from config import settings

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class RateLimiter:
    """
    Thread-safe request counter.

    Args:
        window_ms: Length of the sliding window in milliseconds
        max_requests: Requests allowed per identifier inside one window
        clock: Callable returning the current time in epoch milliseconds
    """

    def __init__(
        self,
        window_ms: int = 60000,
        max_requests: int = 10,
        clock: Callable[[], int] = _now_ms,
    ):
        self.window_ms = window_ms
        self.max_requests = max_requests
        self.clock = clock
        self._requests: Dict[str, List[int]] = {}
        self._last_sweep = 0
        self._lock = threading.Lock()

    def _prune(self, identifier: str, now: int) -> List[int]:
        valid = [t for t in self._requests.get(identifier, []) if now - t < self.window_ms]
        if valid:
            self._requests[identifier] = valid
        else:
            self._requests.pop(identifier, None)
        return valid

    def _sweep(self, now: int):
        """Drop identifiers whose newest request has left the window."""
        expired = [
            identifier
            for identifier, timestamps in self._requests.items()
            if not timestamps or now - timestamps[-1] >= self.window_ms
        ]
        for identifier in expired:
            del self._requests[identifier]
        self._last_sweep = now
        if expired:
            logger.debug(f"🧹 Evicted {len(expired)} idle rate limit entries")

    def is_allowed(self, identifier: str) -> bool:
        """Record the request and return True, or return False once the window is full."""
        with self._lock:
            now = self.clock()
            # At most one full sweep per window
            if now - self._last_sweep >= self.window_ms:
                self._sweep(now)
            valid = self._prune(identifier, now)

            if len(valid) >= self.max_requests:
                logger.warning(f"🚫 Rate limit exceeded for {identifier}")
                return False

            valid.append(now)
            self._requests[identifier] = valid
            return True

    def get_remaining_requests(self, identifier: str) -> int:
        with self._lock:
            valid = self._prune(identifier, self.clock())
            return max(0, self.max_requests - len(valid))

    def get_reset_time(self, identifier: str) -> int:
        """Epoch ms when the oldest in-window request expires (0 if none)."""
        with self._lock:
            valid = self._prune(identifier, self.clock())
            if not valid:
                return 0
            return min(valid) + self.window_ms

    def reset(self, identifier: Optional[str] = None):
        with self._lock:
            if identifier is None:
                self._requests.clear()
            else:
                self._requests.pop(identifier, None)


# Global rate limiter instance (per client IP)
global_rate_limiter = RateLimiter(
    window_ms=settings.RATE_LIMIT_WINDOW_MS,
    max_requests=settings.RATE_LIMIT_MAX_REQUESTS,
)


def get_rate_limiter() -> RateLimiter:
    return global_rate_limiter
