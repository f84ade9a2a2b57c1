"""
Cache interface used by the permission resolver.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class PermissionCache(ABC):
    """Async key/value cache with per-entry TTL.

    Values are JSON-compatible. Entries are never updated in place: a write
    replaces the whole entry and invalidation removes it.
    """

    cache_type = "base"

    async def start(self):
        """Open backend resources."""

    async def stop(self):
        """Release backend resources."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the live value for key, or None when absent or expired."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        ...

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        ...

    @abstractmethod
    async def delete_prefix(self, prefix: str) -> int:
        """Remove every key starting with prefix."""

    @abstractmethod
    async def clear(self) -> int:
        ...

    async def health_check(self) -> bool:
        return True

    async def get_cache_stats(self) -> Dict[str, Any]:
        return {"cache_type": self.cache_type}
