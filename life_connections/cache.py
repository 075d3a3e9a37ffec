"""Redis cache wrapper for narrative responses."""

import hashlib
import json
from typing import Any

import structlog
from redis.asyncio import Redis

logger = structlog.get_logger()


def make_cache_key(namespace: str, payload: dict[str, Any]) -> str:
    """Build a stable cache key from a JSON-serializable payload."""
    encoded = json.dumps(payload, sort_keys=True, default=str).encode()
    return f"{namespace}:{hashlib.sha256(encoded).hexdigest()}"


class Cache:
    """Redis cache manager."""

    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self.redis: Redis | None = None

    async def connect(self) -> None:
        """Connect to Redis."""
        self.redis = Redis.from_url(self.redis_url, encoding="utf-8", decode_responses=True)
        await self.redis.ping()
        logger.info("Redis connected")

    async def close(self) -> None:
        """Close Redis connection."""
        if self.redis:
            await self.redis.aclose()
            logger.info("Redis disconnected")

    def _client(self) -> Redis:
        if not self.redis:
            raise RuntimeError("Redis not connected")
        return self.redis

    async def set(self, key: str, value: str, expire: int | None = None) -> None:
        """Set a value in cache."""
        await self._client().set(key, value, ex=expire)

    async def get(self, key: str) -> str | None:
        """Get a value from cache."""
        return await self._client().get(key)

    async def delete(self, key: str) -> None:
        """Delete a value from cache."""
        await self._client().delete(key)

    async def get_json(self, key: str) -> dict[str, Any] | None:
        """Get a JSON object from cache, ignoring corrupt entries."""
        raw = await self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding corrupt cache entry", key=key)
            await self.delete(key)
            return None

    async def set_json(
        self, key: str, value: dict[str, Any], expire: int | None = None
    ) -> None:
        """Store a JSON object in cache."""
        await self.set(key, json.dumps(value, default=str), expire=expire)
