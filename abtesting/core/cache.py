import threading
import time
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

LOAD_LOCK_STRIPES = 64


class TTLCache:
    """
    Thread-safe in-process cache with a bounded lifetime per entry.

    One instance is built per service instance and passed to whatever needs it;
    there is no module-level cache. A ttl of 0 disables caching entirely.
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int = 10_000,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._timer = timer
        self._store: Dict[Hashable, Tuple[Any, float]] = {}  # key -> (value, expires_at)
        self._lock = threading.Lock()
        # Loads are serialised per stripe so one key never has two loads in flight
        self._load_locks = [threading.RLock() for _ in range(LOAD_LOCK_STRIPES)]

    def get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._timer() >= expires_at:
                del self._store[key]
                return None
            return value

    def set(self, key: Hashable, value: Any) -> None:
        if self.ttl_seconds <= 0 or value is None:
            return
        with self._lock:
            if len(self._store) >= self.max_entries and key not in self._store:
                self._evict()
            self._store[key] = (value, self._timer() + self.ttl_seconds)

    def get_or_set(self, key: Hashable, fn: Callable[[], Any]) -> Optional[Any]:
        """
        Return the cached value or compute, cache and return fn(). None results
        are returned but not cached.

        Concurrent misses on the same key wait for the first loader and then
        re-check, so fn runs once per expiry. fn runs outside the entry lock so
        a slow store call never blocks readers of other keys.
        """
        value = self.get(key)
        if value is not None:
            return value
        if self.ttl_seconds <= 0:
            return fn()
        with self._load_locks[hash(key) % LOAD_LOCK_STRIPES]:
            value = self.get(key)
            if value is not None:
                return value
            value = fn()
            self.set(key, value)
            return value

    def delete(self, key: Hashable) -> None:
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def _evict(self) -> None:
        # Caller holds the lock. Drop expired entries first, then the oldest.
        now = self._timer()
        expired = [k for k, (_, exp) in self._store.items() if now >= exp]
        for k in expired:
            del self._store[k]
        if len(self._store) >= self.max_entries:
            oldest = min(self._store, key=lambda k: self._store[k][1])
            del self._store[oldest]
