"""
Process-level cache with bounded size and TTL expiration.

Used for per-session behavior tracking so entry lifetime and eviction are
explicit instead of an unbounded module-level dict.
"""

import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional, Tuple


class TTLCache:
    """
    Thread-safe LRU cache with TTL expiration.

    Entries older than ttl_seconds are dropped on read; the least recently
    used entry is evicted once maxsize is reached.
    """

    def __init__(
        self,
        maxsize: int = 1000,
        ttl_seconds: float = 300,
        clock: Optional[Callable[[], float]] = None,
    ):
        if maxsize <= 0:
            raise ValueError("maxsize must be positive")
        self.maxsize = maxsize
        self.ttl_seconds = ttl_seconds
        self._clock = clock or time.monotonic
        self._entries: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()
        self._lock = threading.RLock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            item = self._entries.get(key)
            if item is None:
                return default
            stored_at, value = item
            if self._clock() - stored_at > self.ttl_seconds:
                del self._entries[key]
                return default
            self._entries.move_to_end(key)
            return value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            while len(self._entries) >= self.maxsize:
                self._entries.popitem(last=False)
            self._entries[key] = (self._clock(), value)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "size": len(self._entries),
                "maxsize": self.maxsize,
                "ttl_seconds": self.ttl_seconds,
            }
