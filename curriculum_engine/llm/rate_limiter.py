"""Per-provider sliding-window admission control."""

import threading
import time
from collections import deque
from typing import Callable, Mapping

import structlog

logger = structlog.get_logger(__name__)

WINDOW_SECONDS = 60.0


class RateLimiter:
    """Counts admitted requests per provider over the last 60 seconds.

    ``try_acquire`` never blocks; callers move on to another provider when it
    returns False. Providers without a configured ceiling are always admitted.
    """

    def __init__(
        self,
        requests_per_minute: Mapping[str, int],
        clock: Callable[[], float] = time.monotonic,
    ):
        self._limits = dict(requests_per_minute)
        self._clock = clock
        self._windows: dict[str, deque[float]] = {p: deque() for p in self._limits}
        self._lock = threading.Lock()

    def _evict(self, window: deque[float], now: float) -> None:
        cutoff = now - WINDOW_SECONDS
        while window and window[0] <= cutoff:
            window.popleft()

    def try_acquire(self, provider: str) -> bool:
        limit = self._limits.get(provider)
        if limit is None:
            return True
        now = self._clock()
        with self._lock:
            window = self._windows[provider]
            self._evict(window, now)
            if len(window) >= limit:
                logger.warning("rate_limit_exhausted", provider=provider, limit=limit)
                return False
            window.append(now)
            return True

    def remaining(self, provider: str) -> int | None:
        """Requests still admissible in the current window, or None when unlimited."""
        limit = self._limits.get(provider)
        if limit is None:
            return None
        with self._lock:
            window = self._windows[provider]
            self._evict(window, self._clock())
            return limit - len(window)
