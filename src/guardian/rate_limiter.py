"""sliding-window rate limiting for llm stages and threat feed sources.

one limiter instance is shared by everything in a process that calls the same
upstream. each key gets its own window of call timestamps; a call is admitted
only if fewer than max_calls timestamps fall inside the last window_seconds.
"""

import logging
import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimit:
    max_calls: int
    window_seconds: float = 60.0

    @classmethod
    def per_minute(cls, max_calls: int) -> "RateLimit":
        return cls(max_calls=max_calls, window_seconds=60.0)


class RateLimiter:

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._windows: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()

    def _evict(self, window: Deque[float], now: float, window_seconds: float):
        cutoff = now - window_seconds
        while window and window[0] <= cutoff:
            window.popleft()

    def try_acquire(self, key: str, limit: Optional[RateLimit]) -> bool:
        """check and record in one step. a None limit is unlimited."""
        if limit is None:
            return True
        with self._lock:
            now = self._clock()
            window = self._windows[key]
            self._evict(window, now, limit.window_seconds)
            if len(window) >= limit.max_calls:
                logger.warning(
                    f"[RateLimiter] {key} over limit ({len(window)}/{limit.max_calls} in {limit.window_seconds:.0f}s)"
                )
                return False
            window.append(now)
            return True

    def current_count(self, key: str, window_seconds: float = 60.0) -> int:
        with self._lock:
            window = self._windows[key]
            self._evict(window, self._clock(), window_seconds)
            return len(window)

    def reset(self, key: Optional[str] = None):
        with self._lock:
            if key is None:
                self._windows.clear()
            else:
                self._windows.pop(key, None)
