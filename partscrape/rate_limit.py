"""Per-key rate limiting shared by the crawler and the operator API.

The crawler calls `wait(vendor, delay)` before every fetch so that two
fetches against the same vendor are at least `delay` seconds apart. The
API calls `allow(client)` for a sliding-window request budget. Keys are
independent: a sleeping vendor never blocks another vendor.
"""

import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional

__all__ = ["RateLimiter", "get_rate_limiter"]


class RateLimiter:
    """Thread-safe limiter keyed by an arbitrary string."""

    def __init__(
        self,
        min_interval: float = 0.0,
        max_requests: int = 60,
        window: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.min_interval = min_interval
        self.max_requests = max_requests
        self.window = window
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._key_locks: Dict[str, threading.Lock] = {}
        self._last_call: Dict[str, float] = {}
        self._hits: Dict[str, Deque[float]] = {}

    def _lock_for(self, key: str) -> threading.Lock:
        with self._lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = self._key_locks[key] = threading.Lock()
            return lock

    def wait(self, key: str, min_interval: Optional[float] = None) -> float:
        """Block until `key` may proceed, then record the call.

        Returns the number of seconds slept.
        """
        interval = self.min_interval if min_interval is None else min_interval
        with self._lock_for(key):
            with self._lock:
                last = self._last_call.get(key)
            delay = 0.0
            if last is not None:
                delay = max(0.0, last + interval - self._clock())
            if delay > 0:
                self._sleep(delay)
            with self._lock:
                self._last_call[key] = self._clock()
        return delay

    def allow(self, key: str) -> bool:
        """Sliding-window check: True and record the hit if under budget."""
        now = self._clock()
        with self._lock:
            hits = self._hits.setdefault(key, deque())
            while hits and now - hits[0] >= self.window:
                hits.popleft()
            if len(hits) >= self.max_requests:
                return False
            hits.append(now)
            return True

    def remaining(self, key: str) -> int:
        now = self._clock()
        with self._lock:
            hits = self._hits.get(key, deque())
            active = sum(1 for t in hits if now - t < self.window)
        return max(0, self.max_requests - active)

    def reset(self, key: Optional[str] = None) -> None:
        """Forget recorded calls for one key, or for all keys."""
        with self._lock:
            if key is None:
                self._last_call.clear()
                self._hits.clear()
            else:
                self._last_call.pop(key, None)
                self._hits.pop(key, None)


_default_limiter: Optional[RateLimiter] = None
_default_lock = threading.Lock()


def get_rate_limiter() -> RateLimiter:
    """Process-wide limiter used for vendor fetch spacing."""
    global _default_limiter
    if _default_limiter is None:
        with _default_lock:
            if _default_limiter is None:
                _default_limiter = RateLimiter()
    return _default_limiter
