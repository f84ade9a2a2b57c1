"""
Redis caching layer for the Permissions Service.
"""

import json
from typing import Dict, Any, Optional

import redis.asyncio as redis

from shared.errors import BackingStoreUnavailable
from shared.logging import get_logger
from .base import PermissionCache


class RedisCache(PermissionCache):
    """Redis-backed permission cache.

    Keys are namespaced so clearing never touches data owned by other
    services sharing the instance. Read failures are reported as misses so
    the resolver recomputes from the grant store.
    """

    cache_type = "redis"

    def __init__(self, redis_url: str, namespace: str = "rbac"):
        self.redis_url = redis_url
        self.namespace = namespace
        self.logger = get_logger("permissions.cache.redis")
        self.redis: Optional[redis.Redis] = None

    async def start(self):
        """Start the Redis cache."""
        try:
            self.redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30
            )
            await self.redis.ping()
            self.logger.info("Redis cache started")

        except Exception as e:
            self.logger.error("Failed to start Redis cache", error=str(e))
            raise BackingStoreUnavailable("redis_start", str(e))

    async def stop(self):
        """Stop the Redis cache."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            self.logger.info("Redis cache stopped")

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def get(self, key: str) -> Optional[Any]:
        try:
            cached_data = await self.redis.get(self._key(key))
            if cached_data is None:
                return None
            return json.loads(cached_data)

        except Exception as e:
            self.logger.error("Error reading cache entry", key=key, error=str(e))
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        try:
            await self.redis.setex(self._key(key), ttl_seconds, json.dumps(value))
            self.logger.debug("Cached entry", key=key, ttl=ttl_seconds)
            return True

        except Exception as e:
            self.logger.error("Error writing cache entry", key=key, error=str(e))
            return False

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return await self.redis.delete(*(self._key(key) for key in keys))
        except Exception as e:
            self.logger.error("Error deleting cache entries", keys=list(keys), error=str(e))
            return 0

    async def delete_prefix(self, prefix: str) -> int:
        try:
            keys = [key async for key in self.redis.scan_iter(match=f"{self._key(prefix)}*")]
            if keys:
                await self.redis.delete(*keys)
            return len(keys)

        except Exception as e:
            self.logger.error("Error invalidating cache prefix", prefix=prefix, error=str(e))
            return 0

    async def clear(self) -> int:
        count = await self.delete_prefix("")
        self.logger.info("Cache cleared", count=count)
        return count

    async def get_cache_stats(self) -> Dict[str, Any]:
        try:
            info = await self.redis.info()
            hits = info.get("keyspace_hits", 0)
            misses = info.get("keyspace_misses", 0)
            total = hits + misses

            return {
                "cache_type": self.cache_type,
                "redis_version": info.get("redis_version"),
                "used_memory": info.get("used_memory_human"),
                "connected_clients": info.get("connected_clients"),
                "keyspace_hits": hits,
                "keyspace_misses": misses,
                "hit_rate": hits / total if total else 0.0
            }

        except Exception as e:
            self.logger.error("Error getting cache stats", error=str(e))
            return {"cache_type": self.cache_type}

    async def health_check(self) -> bool:
        """Check Redis health."""
        try:
            await self.redis.ping()
            return True
        except Exception:
            return False
