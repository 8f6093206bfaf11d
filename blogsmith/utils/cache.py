"""
Generated Content Cache
Thread-safe TTL cache shared by concurrent records; at most one producer runs per key
"""

import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

from blogsmith.utils.error_handler import error_handler


class ContentCache:
    """Caches expensive lookups (case studies, assets) across records in a batch"""

    def __init__(self, ttl_seconds: float = 86400.0, max_size: int = 1000, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._entries: "OrderedDict[Hashable, Tuple[float, Any]]" = OrderedDict()
        self._lock = threading.Lock()
        self._key_locks: Dict[Hashable, threading.Lock] = {}
        self.hits = 0
        self.misses = 0

    @classmethod
    def from_settings(cls, settings) -> "ContentCache":
        return cls(ttl_seconds=settings.cache_ttl_seconds, max_size=settings.cache_max_size)

    def get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if self._clock() - stored_at > self.ttl_seconds:
                del self._entries[key]
                return None
            return value

    def set(self, key: Hashable, value: Any):
        with self._lock:
            self._entries[key] = (self._clock(), value)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)

    def get_or_create(self, key: Hashable, producer: Callable[[], Any]) -> Any:
        """
        Return the cached value or produce it.
        Concurrent callers for the same key wait for the first producer
        instead of running their own. None results are not cached.
        """
        value = self.get(key)
        if value is not None:
            self._count(hit=True)
            return value

        lock = self._key_lock(key)
        with lock:
            try:
                value = self.get(key)
                if value is not None:
                    self._count(hit=True)
                    return value

                self._count(hit=False)
                value = producer()
                if value is not None:
                    self.set(key, value)
                return value
            finally:
                self._release_key_lock(key, lock)

    def invalidate(self, key: Hashable):
        with self._lock:
            self._entries.pop(key, None)

    def clear(self):
        with self._lock:
            self._entries.clear()
            self._key_locks.clear()
            self.hits = 0
            self.misses = 0

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            total = self.hits + self.misses
            return {
                "size": len(self._entries),
                "max_size": self.max_size,
                "hits": self.hits,
                "misses": self.misses,
                "hit_rate": self.hits / total if total else 0.0
            }

    def _key_lock(self, key: Hashable) -> threading.Lock:
        with self._lock:
            if key not in self._key_locks:
                self._key_locks[key] = threading.Lock()
            return self._key_locks[key]

    def _release_key_lock(self, key: Hashable, lock: threading.Lock):
        # Callers still waiting on this lock re-check the cache once they acquire it
        with self._lock:
            if self._key_locks.get(key) is lock:
                del self._key_locks[key]

    def _count(self, hit: bool):
        with self._lock:
            if hit:
                self.hits += 1
            else:
                self.misses += 1
        if not hit:
            error_handler.logger.debug(f"Cache miss ({self.misses} total)")
