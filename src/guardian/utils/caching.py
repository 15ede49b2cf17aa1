"""thread-safe ttl cache shared by the threat feed and module lookups."""

import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Optional, Tuple


class TTLCache:
    """lru cache whose entries carry their own expiry.

    every put supplies a ttl so callers can keep short-lived negative results
    next to long-lived positive ones. the clock is injectable for tests.
    """

    def __init__(self, maxsize: int = 10000, clock: Callable[[], float] = time.monotonic):
        self.maxsize = maxsize
        self._clock = clock
        self._cache: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self.misses += 1
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._cache[key]
                self.misses += 1
                return None
            self._cache.move_to_end(key)
            self.hits += 1
            return value

    def put(self, key: str, value: Any, ttl: float) -> None:
        with self._lock:
            if key in self._cache:
                self._cache.move_to_end(key)
            elif len(self._cache) >= self.maxsize:
                self._cache.popitem(last=False)
            self._cache[key] = (self._clock() + ttl, value)

    def expires_at(self, key: str) -> Optional[float]:
        with self._lock:
            entry = self._cache.get(key)
            return entry[0] if entry else None

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            stale = [key for key, (expires_at, _) in self._cache.items() if now >= expires_at]
            for key in stale:
                del self._cache[key]
            return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self.hits = 0
            self.misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def stats(self) -> dict:
        with self._lock:
            total = self.hits + self.misses
            return {
                "size": len(self._cache),
                "hits": self.hits,
                "misses": self.misses,
                "hit_rate": (self.hits / total) if total else 0.0,
            }
