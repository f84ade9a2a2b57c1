"""
In-process TTL cache for the Permissions Service.
"""

import threading
import time
from typing import Any, Callable, Dict, NamedTuple, Optional

from shared.logging import get_logger
from .base import PermissionCache


class CacheEntry(NamedTuple):
    value: Any
    created_at: float
    expires_at: float


class MemoryCache(PermissionCache):
    """Dictionary-backed cache with lazy expiry.

    Expired entries are dropped when read or swept; there is no size bound.
    """

    cache_type = "memory"

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self.logger = get_logger("permissions.cache.memory")
        self._clock = clock or time.monotonic
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    async def get(self, key: str) -> Optional[Any]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.expires_at <= now:
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return entry.value

    async def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        now = self._clock()
        with self._lock:
            self._entries[key] = CacheEntry(value, now, now + ttl_seconds)
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        with self._lock:
            for key in keys:
                if self._entries.pop(key, None) is not None:
                    removed += 1
        return removed

    async def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            keys = [key for key in self._entries if key.startswith(prefix)]
            for key in keys:
                del self._entries[key]
        return len(keys)

    async def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        self.logger.info("Cache cleared", count=count)
        return count

    def sweep(self) -> int:
        """Drop expired entries."""
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
            for key in expired:
                del self._entries[key]
        return len(expired)

    async def get_cache_stats(self) -> Dict[str, Any]:
        self.sweep()
        total = self._hits + self._misses
        return {
            "cache_type": self.cache_type,
            "entries": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self._hits / total if total else 0.0,
        }
