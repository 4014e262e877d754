"""
Redis cache for derived, non-authoritative data.

Key Patterns:
- digest:{user_id} - Last computed weekly digest (TTL: settings.digest_cache_ttl)
"""

import json
from typing import Any, Optional

import redis.asyncio as redis

from insight_engine.core.config import settings


class RedisCache:
    """Redis cache manager with typed key patterns."""

    DIGEST_PREFIX = "digest"

    def __init__(self):
        self._client: Optional[redis.Redis] = None

    async def connect(self) -> None:
        """Establish Redis connection."""
        if self._client is None:
            self._client = redis.from_url(
                str(settings.redis_url),
                encoding="utf-8",
                decode_responses=True,
            )

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.close()
            self._client = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    @property
    def client(self) -> redis.Redis:
        """Get Redis client, raising if not connected."""
        if self._client is None:
            raise RuntimeError("Redis not connected. Call connect() first.")
        return self._client

    async def get(self, key: str) -> Optional[str]:
        return await self.client.get(key)

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        if ttl:
            await self.client.setex(key, ttl, value)
        else:
            await self.client.set(key, value)

    async def delete(self, key: str) -> None:
        await self.client.delete(key)

    # Digest caching
    async def get_digest(self, user_id: str) -> Optional[dict[str, Any]]:
        """Return the last cached digest for a user, if any."""
        data = await self.get(f"{self.DIGEST_PREFIX}:{user_id}")
        return json.loads(data) if data else None

    async def set_digest(self, user_id: str, digest: dict[str, Any]) -> None:
        """Cache a freshly computed digest."""
        await self.set(
            f"{self.DIGEST_PREFIX}:{user_id}",
            json.dumps(digest, default=str),
            ttl=settings.digest_cache_ttl,
        )

    async def invalidate_digest(self, user_id: str) -> None:
        await self.delete(f"{self.DIGEST_PREFIX}:{user_id}")


# Global cache instance
cache = RedisCache()
