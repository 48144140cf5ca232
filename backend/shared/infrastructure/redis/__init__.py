"""
Redis access: connection pool and key layout.
"""

from .pool import get_redis_pool, close_redis_pool, check_redis_health
from .constants import (
    ORDER_CACHE_TTL,
    CHANNEL_ORDERS_UPDATED,
    balancer_index_key,
    screen_orders_key,
    order_data_key,
    channel_screen,
)

__all__ = [
    "get_redis_pool",
    "close_redis_pool",
    "check_redis_health",
    "ORDER_CACHE_TTL",
    "CHANNEL_ORDERS_UPDATED",
    "balancer_index_key",
    "screen_orders_key",
    "order_data_key",
    "channel_screen",
]
