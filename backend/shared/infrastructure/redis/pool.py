"""
Process-wide async Redis client.

Created on first use and shared by the rotation cursor store, the screen
index, the notifier and the metrics recorder. Closed by the lifespan (API)
or by each CLI command.
"""

from __future__ import annotations

import asyncio

import redis.asyncio as redis

from shared.config.settings import settings, REDIS_URL
from shared.config.logging import get_logger

logger = get_logger(__name__)


_client: redis.Redis | None = None
_lock: asyncio.Lock | None = None


async def get_redis_pool() -> redis.Redis:
    global _client, _lock

    if _client is not None:
        return _client

    # Created lazily so the lock binds to the running loop
    if _lock is None:
        _lock = asyncio.Lock()

    async with _lock:
        if _client is None:
            _client = redis.from_url(
                REDIS_URL,
                max_connections=settings.redis_pool_max_connections,
                decode_responses=True,
                socket_connect_timeout=settings.redis_socket_timeout,
                socket_timeout=settings.redis_socket_timeout,
                health_check_interval=30,
            )
            logger.info("Redis client created", max_connections=settings.redis_pool_max_connections)
    return _client


async def check_redis_health() -> dict[str, str]:
    """PING; reports failure in the returned dict."""
    try:
        client = await get_redis_pool()
        await client.ping()
    except (redis.RedisError, OSError) as e:
        return {"status": "unhealthy", "error": str(e)}
    return {"status": "healthy"}


async def close_redis_pool() -> None:
    global _client, _lock

    if _client is not None:
        await _client.aclose()
        logger.info("Redis client closed")
    _client = None
    _lock = None
