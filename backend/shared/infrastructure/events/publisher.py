"""
Publishing screen events to Redis pub/sub, with bounded retries.
"""

from __future__ import annotations

import asyncio
import random

import redis.asyncio as redis

from shared.config.settings import settings
from shared.config.logging import get_logger
from .event_types import MAX_EVENT_SIZE
from .event_schema import ScreenEvent

logger = get_logger(__name__)

MAX_RETRY_DELAY = 5.0


def retry_delay(attempt: int, base_delay: float) -> float:
    """Full-jitter exponential backoff for 0-indexed attempt, capped at MAX_RETRY_DELAY."""
    ceiling = min(base_delay * 2 ** attempt, MAX_RETRY_DELAY)
    return random.uniform(base_delay, max(base_delay, ceiling))


async def publish_event(redis_client: redis.Redis, channel: str, event: ScreenEvent) -> int:
    """
    Publish one event, returning the subscriber count.

    Oversized events raise ValueError without touching Redis. After
    redis_publish_max_retries failed attempts the last RedisError is raised.
    """
    payload = event.to_json()
    size = len(payload.encode("utf-8"))
    if size > MAX_EVENT_SIZE:
        raise ValueError(f"{event.type} event is {size} bytes, limit is {MAX_EVENT_SIZE}")

    attempts = max(1, settings.redis_publish_max_retries)
    for attempt in range(attempts):
        try:
            return await redis_client.publish(channel, payload)
        except redis.RedisError as e:
            if attempt == attempts - 1:
                logger.error("Publish gave up", channel=channel, event_type=event.type, error=str(e))
                raise
            delay = retry_delay(attempt, settings.redis_publish_retry_delay)
            logger.warning(
                "Publish failed, retrying",
                channel=channel,
                event_type=event.type,
                attempt=attempt + 1,
                delay_seconds=round(delay, 2),
            )
            await asyncio.sleep(delay)
    raise AssertionError("unreachable")
