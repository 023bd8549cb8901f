"""
cache.py — Cache-aside helper over Redis
========================================
Values are stored JSON-encoded under plain string keys with a TTL in
seconds. Reads and writes degrade to "no cache" when Redis misbehaves,
so a flaky cache slows the homepage down instead of failing it.
Maintenance operations (delete, clear_prefix, reset) propagate errors.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger("portal.cache")

DEFAULT_TTL_SECONDS = 3600


class CacheService:
    def __init__(self, client: Redis) -> None:
        self._client = client

    async def init(self) -> None:
        """Verify the store is reachable. Raises on failure."""
        try:
            await self._client.ping()
        except RedisError:
            logger.error("Failed to connect to Redis")
            raise
        logger.info("Redis connection established")

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError:
            return False

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self._client.get(key)
        except RedisError as exc:
            logger.warning("Cache read failed for %s: %s", key, exc)
            return None
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError as exc:
            logger.warning("Cache value for %s is not valid JSON: %s", key, exc)
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        try:
            await self._client.set(key, json.dumps(value, default=str), ex=ttl_seconds)
        except RedisError as exc:
            logger.warning("Cache write failed for %s: %s", key, exc)

    async def delete(self, key: str) -> None:
        await self._client.delete(key)

    async def clear_prefix(self, prefix: str) -> int:
        """Delete every key starting with ``prefix``; returns how many went."""
        keys = [key async for key in self._client.scan_iter(match=f"{prefix}*")]
        if keys:
            await self._client.delete(*keys)
        return len(keys)

    async def reset(self) -> None:
        try:
            await self._client.flushdb()
        except RedisError:
            logger.error("Failed to flush Redis cache")
            raise
        logger.info("Redis cache flushed")
