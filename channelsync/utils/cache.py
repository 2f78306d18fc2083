"""TTL cache for fetched/reconciled results served to the dashboard.

Entries are never evicted on expiry: a read past the TTL still returns the
data, flagged stale, so callers can show it while refreshing in the background.

Usage:
    cache = ClientCache()
    entry = cache.get(("products", "shopify"))
    if entry is None or entry.is_stale:
        ...  # refetch, then cache.set(("products", "shopify"), result)
"""
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Hashable, Optional

DEFAULT_TTL_SECONDS = 5 * 60 * 60


@dataclass(frozen=True)
class CacheEntry:
    data: Any
    is_stale: bool
    stored_at: float


class ClientCache:
    """Thread-safe in-memory cache keyed by (resource, platform) tuples."""

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self._store: dict[Hashable, tuple[float, Any]] = {}
        self._lock = threading.Lock()
        self._ttl = ttl_seconds
        self._clock = clock

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def get(self, key: Hashable) -> Optional[CacheEntry]:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            return CacheEntry(data=value, is_stale=self._clock() - stored_at >= self._ttl, stored_at=stored_at)

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._store[key] = (self._clock(), value)

    def invalidate(self, key: Hashable) -> bool:
        """Drop a single key. Returns whether it was present."""
        with self._lock:
            return self._store.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
