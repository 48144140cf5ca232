"""
Process-wide components, built once in the application lifespan (or by the
CLI) and handed to routers through app.state.
"""

from dataclasses import dataclass
from typing import Callable

import redis.asyncio as redis
from sqlalchemy.orm import Session

from shared.config.settings import settings
from shared.infrastructure.db import SessionLocal
from shared.infrastructure.metrics import KdsMetrics, MetricsRegistry
from kds_api.services.balancer import Balancer
from kds_api.services.feeds import PushOrderFeed
from kds_api.services.polling import PollingService
from kds_api.services.stores import (
    Notifier,
    RedisNotifier,
    RedisRotationCursorStore,
    RedisScreenIndex,
    RotationCursorStore,
    ScreenIndex,
)


@dataclass
class KdsContainer:
    """Long-lived KDS components sharing one Redis client."""

    cursor_store: RotationCursorStore
    index: ScreenIndex
    notifier: Notifier
    balancer: Balancer
    push_feed: PushOrderFeed
    polling: PollingService
    metrics: KdsMetrics | None = None


def build_container(
    redis_client: redis.Redis,
    session_factory: Callable[[], Session] = SessionLocal,
) -> KdsContainer:
    """Wire the Redis-backed stores, the balancer and the cycle runner."""
    cursor_store = RedisRotationCursorStore(redis_client)
    index = RedisScreenIndex(redis_client, order_ttl=settings.order_cache_ttl_seconds)
    notifier = RedisNotifier(redis_client)
    balancer = Balancer(cursor_store, index)
    push_feed = PushOrderFeed(max_pending=settings.push_buffer_max_orders)
    metrics = KdsMetrics(MetricsRegistry(redis_client))
    polling = PollingService(
        session_factory=session_factory,
        balancer=balancer,
        notifier=notifier,
        push_feed=push_feed,
        metrics=metrics,
    )
    return KdsContainer(
        cursor_store=cursor_store,
        index=index,
        notifier=notifier,
        balancer=balancer,
        push_feed=push_feed,
        polling=polling,
        metrics=metrics,
    )
