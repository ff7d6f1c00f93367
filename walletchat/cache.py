import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional


@dataclass
class CacheEntry:
    data: Any
    timestamp: float


class TTLCache:
    """In-memory TTL cache that keeps expired entries around for stale reads.

    Entries are never dropped on expiry: ``get`` ignores them once they are
    older than the TTL, while ``get_stale`` still returns them so callers can
    fall back to the last known value when an upstream fails. No locking;
    concurrent writers are last-writer-wins.
    """

    def __init__(
        self,
        default_ttl: float = 60.0,
        max_size: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self.max_size = max_size
        self._clock = clock
        self._cache: Dict[str, CacheEntry] = {}
        self._access_order: List[str] = []

    def get(self, key: str, ttl: Optional[float] = None) -> Optional[Any]:
        entry = self._cache.get(key)
        if entry is None:
            return None

        max_age = self.default_ttl if ttl is None else ttl
        if self._clock() - entry.timestamp > max_age:
            return None

        self._touch(key)
        return entry.data

    def get_stale(self, key: str) -> Optional[Any]:
        """Return the cached value regardless of age."""
        entry = self._cache.get(key)
        return entry.data if entry is not None else None

    def age(self, key: str) -> Optional[float]:
        entry = self._cache.get(key)
        if entry is None:
            return None
        return self._clock() - entry.timestamp

    def set(self, key: str, value: Any) -> None:
        self._cache[key] = CacheEntry(data=value, timestamp=self._clock())
        self._touch(key)

        # Evict least recently used
        while len(self._cache) > self.max_size:
            oldest_key = self._access_order.pop(0)
            self._cache.pop(oldest_key, None)

    def delete(self, key: str) -> None:
        self._cache.pop(key, None)
        if key in self._access_order:
            self._access_order.remove(key)

    def clear(self) -> None:
        self._cache.clear()
        self._access_order.clear()

    def size(self) -> int:
        return len(self._cache)

    def _touch(self, key: str) -> None:
        if key in self._access_order:
            self._access_order.remove(key)
        self._access_order.append(key)
