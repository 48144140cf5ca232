"""
Store interfaces used by the balancer and the lifecycle service, with their
Redis implementations.

- RotationCursorStore: per-queue round-robin offset (get / set_after_batch / reset)
- ScreenIndex: per-screen set of open order ids plus cached order payloads
- Notifier: pushes manifests and lifecycle changes to screens

The cursor and the index are caches of the relational store. Redis failures
surface as StoreUnavailableError so callers can fail closed; notifications
are fire-and-forget and only log on failure.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Iterable, Protocol

import redis.asyncio as redis

from shared.config.constants import OrderAction
from shared.config.logging import get_logger
from shared.infrastructure.events import (
    ORDERS_ASSIGNED,
    ORDER_CANCELLED,
    ORDER_FINISHED,
    ORDER_REQUEUED,
    ORDER_RESTORED,
    ORDER_STARTED,
    SCREEN_STATUS_CHANGED,
    ScreenEvent,
    publish_event,
)
from shared.infrastructure.redis.constants import (
    CHANNEL_ORDERS_UPDATED,
    ORDER_CACHE_TTL,
    balancer_index_key,
    channel_screen,
    order_data_key,
    screen_orders_key,
)
from shared.utils.exceptions import StoreUnavailableError

if TYPE_CHECKING:
    from kds_api.services.balancer import ScreenAssignment

logger = get_logger(__name__)


# Lifecycle action -> screen event type
ACTION_EVENT_TYPES: dict[str, str] = {
    OrderAction.ASSIGNED: ORDERS_ASSIGNED,
    OrderAction.STARTED: ORDER_STARTED,
    OrderAction.REQUEUED: ORDER_REQUEUED,
    OrderAction.FINISHED: ORDER_FINISHED,
    OrderAction.RESTORED: ORDER_RESTORED,
    OrderAction.CANCELLED: ORDER_CANCELLED,
}


# =============================================================================
# Interfaces
# =============================================================================


class RotationCursorStore(Protocol):
    """Per-queue round-robin offset. Absent cursors read as 0."""

    async def get(self, queue_id: int) -> int: ...

    async def set_after_batch(self, queue_id: int, value: int) -> None: ...

    async def reset(self, queue_id: int) -> None: ...


class ScreenIndex(Protocol):
    """Fast lookup of open order ids per screen."""

    async def add(self, screen_id: int, order_id: int) -> None: ...

    async def remove(self, screen_id: int, order_id: int) -> None: ...

    async def members(self, screen_id: int) -> set[int]: ...

    async def replace(self, screen_id: int, order_ids: Iterable[int]) -> None: ...

    async def cache_order(self, order_id: int, payload: dict[str, Any]) -> None: ...

    async def drop_order(self, order_id: int) -> None: ...


class Notifier(Protocol):
    """Hands manifests and lifecycle changes to the screen transport."""

    async def distributed(self, queue_id: int, manifest: list["ScreenAssignment"]) -> None: ...

    async def order_changed(
        self,
        screen_id: int,
        order_id: int,
        action: str,
        payload: dict[str, Any] | None = None,
    ) -> None: ...

    async def screen_status_changed(self, screen_id: int, status: str) -> None: ...


# =============================================================================
# Redis implementations
# =============================================================================


class RedisRotationCursorStore:
    """
    Rotation cursor kept as a string-encoded integer at kds:balancer:index:{queue_id}.

    Callers serialize read-modify-write per queue; this store only reads and
    writes whole values.
    """

    def __init__(self, redis_client: redis.Redis):
        self._redis = redis_client

    async def get(self, queue_id: int) -> int:
        key = balancer_index_key(queue_id)
        try:
            raw = await self._redis.get(key)
        except redis.RedisError as e:
            raise StoreUnavailableError("cursor read", key, e) from e

        if raw is None:
            return 0
        try:
            return int(raw)
        except (TypeError, ValueError):
            logger.warning("Corrupt rotation cursor, restarting at 0", queue_id=queue_id, value=raw)
            return 0

    async def set_after_batch(self, queue_id: int, value: int) -> None:
        key = balancer_index_key(queue_id)
        try:
            await self._redis.set(key, str(value))
        except redis.RedisError as e:
            raise StoreUnavailableError("cursor write", key, e) from e

    async def reset(self, queue_id: int) -> None:
        await self.set_after_batch(queue_id, 0)


class RedisScreenIndex:
    """
    Per-screen sets at kds:screen:{screen_id}:orders and cached order blobs
    at kds:order:{order_id}.
    """

    def __init__(self, redis_client: redis.Redis, order_ttl: int = ORDER_CACHE_TTL):
        self._redis = redis_client
        self._order_ttl = order_ttl

    async def add(self, screen_id: int, order_id: int) -> None:
        key = screen_orders_key(screen_id)
        try:
            await self._redis.sadd(key, str(order_id))
        except redis.RedisError as e:
            raise StoreUnavailableError("index add", key, e) from e

    async def remove(self, screen_id: int, order_id: int) -> None:
        key = screen_orders_key(screen_id)
        try:
            await self._redis.srem(key, str(order_id))
        except redis.RedisError as e:
            raise StoreUnavailableError("index remove", key, e) from e

    async def members(self, screen_id: int) -> set[int]:
        key = screen_orders_key(screen_id)
        try:
            raw = await self._redis.smembers(key)
        except redis.RedisError as e:
            raise StoreUnavailableError("index read", key, e) from e
        return {int(v) for v in raw}

    async def replace(self, screen_id: int, order_ids: Iterable[int]) -> None:
        key = screen_orders_key(screen_id)
        values = [str(order_id) for order_id in order_ids]
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.delete(key)
                if values:
                    pipe.sadd(key, *values)
                await pipe.execute()
        except redis.RedisError as e:
            raise StoreUnavailableError("index rebuild", key, e) from e

    async def cache_order(self, order_id: int, payload: dict[str, Any]) -> None:
        key = order_data_key(order_id)
        try:
            await self._redis.set(key, json.dumps(payload, default=str), ex=self._order_ttl)
        except redis.RedisError as e:
            raise StoreUnavailableError("order cache write", key, e) from e

    async def drop_order(self, order_id: int) -> None:
        key = order_data_key(order_id)
        try:
            await self._redis.delete(key)
        except redis.RedisError as e:
            raise StoreUnavailableError("order cache drop", key, e) from e


class RedisNotifier:
    """
    Publishes ScreenEvents on kds:screen:{screen_id}; lifecycle changes are
    mirrored on kds:orders:updated as {screenId, orderId, action}.
    """

    def __init__(self, redis_client: redis.Redis):
        self._redis = redis_client

    async def distributed(self, queue_id: int, manifest: list["ScreenAssignment"]) -> None:
        for entry in manifest:
            if not entry.orders:
                continue
            event = ScreenEvent(
                type=ORDERS_ASSIGNED,
                screen_id=entry.screen_id,
                queue_id=queue_id,
                entity={"orders": entry.payloads()},
            )
            await self._publish(channel_screen(entry.screen_id), event, order_count=len(entry.orders))

    async def order_changed(
        self,
        screen_id: int,
        order_id: int,
        action: str,
        payload: dict[str, Any] | None = None,
    ) -> None:
        entity: dict[str, Any] = {"order_id": order_id, "action": action}
        if payload is not None:
            entity["order"] = payload
        event = ScreenEvent(
            type=ACTION_EVENT_TYPES.get(action, action),
            screen_id=screen_id,
            entity=entity,
        )
        await self._publish(channel_screen(screen_id), event, order_id=order_id)

        try:
            await self._redis.publish(
                CHANNEL_ORDERS_UPDATED,
                json.dumps({"screenId": screen_id, "orderId": order_id, "action": action}),
            )
        except redis.RedisError as e:
            logger.error(
                "Failed to publish order update",
                screen_id=screen_id,
                order_id=order_id,
                action=action,
                error=str(e),
            )

    async def screen_status_changed(self, screen_id: int, status: str) -> None:
        event = ScreenEvent(
            type=SCREEN_STATUS_CHANGED,
            screen_id=screen_id,
            entity={"status": status},
        )
        await self._publish(channel_screen(screen_id), event)

    async def _publish(self, channel: str, event: ScreenEvent, **log_context: Any) -> None:
        try:
            await publish_event(self._redis, channel, event)
        except (redis.RedisError, ValueError) as e:
            logger.error(
                "Failed to notify screen",
                channel=channel,
                event_type=event.type,
                error=str(e),
                **log_context,
            )
