"""
Redis client — lazily-created async client shared by Redis-backed adapters.

Only the push-token store and the health probe use Redis; the client is
created on first use so the in-memory configuration never connects.

Usage:
    from backend.app.core.redis_client import get_redis, close_redis

    client = get_redis()
    token = await client.hget("user_tokens:u-1", "token")
"""

from __future__ import annotations

import logging
from typing import Optional

import redis.asyncio as aioredis

from backend.app.core.config import settings

logger = logging.getLogger(__name__)

_redis_client: Optional[aioredis.Redis] = None


def get_redis() -> aioredis.Redis:
    """Get or create the async Redis client for ``settings.REDIS_URL``."""
    global _redis_client
    if _redis_client is None:
        _redis_client = aioredis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
        )
        logger.info("Redis client created: %s", _redacted_url(settings.REDIS_URL))
    return _redis_client


async def ping_redis() -> bool:
    """True if Redis answers PING."""
    return bool(await get_redis().ping())


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Redis connection closed")


def _redacted_url(url: str) -> str:
    return url.split("@")[-1] if "@" in url else url
