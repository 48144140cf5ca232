"""
Balancer: decides which screen shows each newly ingested order.

One instance lives for the whole process. It owns a lock per queue so the
rotation cursor read-modify-write never interleaves for the same queue;
different queues distribute concurrently.

Flow per call:
    queue (+ active filters) -> filter_orders -> ONLINE screens
    -> SINGLE: everything to the first screen
    -> DISTRIBUTED: screens[(cursor + i) % n], cursor written once at the end
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shared.config.constants import DistributionStrategy
from shared.config.logging import balancer_logger as logger, short_id
from shared.infrastructure.db import safe_commit
from shared.utils.exceptions import QueueNotFoundError, StoreUnavailableError
from shared.utils.kds_schemas import BalanceStatsOutput, OrderOutput, ScreenLoad
from kds_api.models import Order, Screen
from kds_api.repositories import OrderRepository, QueueRepository, ScreenRepository
from kds_api.services.filter_engine import filter_orders
from kds_api.services.screen_service import ScreenRegistry
from kds_api.services.stores import RotationCursorStore, ScreenIndex


def order_payload(order: Order) -> dict[str, Any]:
    """JSON-ready representation pushed to screens and cached in Redis."""
    return OrderOutput.model_validate(order).model_dump(mode="json")


@dataclass
class ScreenAssignment:
    """One manifest entry: the orders a screen received in this batch."""

    screen_id: int
    orders: list[Order] = field(default_factory=list)

    @property
    def order_ids(self) -> list[int]:
        return [order.id for order in self.orders]

    def payloads(self) -> list[dict[str, Any]]:
        return [order_payload(order) for order in self.orders]


class Balancer:
    """
    Distributes batches across the ONLINE screens of a queue.

    Usage:
        balancer = Balancer(RedisRotationCursorStore(redis), RedisScreenIndex(redis))
        manifest = await balancer.distribute_orders(db, orders, queue_id)
    """

    def __init__(self, cursor_store: RotationCursorStore, index: ScreenIndex):
        self._cursors = cursor_store
        self._index = index
        self._locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def cursor_store(self) -> RotationCursorStore:
        return self._cursors

    @property
    def index(self) -> ScreenIndex:
        return self._index

    async def distribute_orders(
        self,
        db: Session,
        orders: Sequence[Order],
        queue_id: int,
    ) -> list[ScreenAssignment]:
        """
        Filter and assign a batch to the queue's ONLINE screens.

        Returns one entry per ONLINE screen (possibly empty), or an empty list
        when the queue is missing, nothing passes the filters, or no screen
        is ONLINE. Per-order failures are logged and skipped.

        Raises:
            StoreUnavailableError: the cursor or fast index failed; the cursor
                is left at its last persisted value. Orders already committed
                to a screen are carried in the error's partial_manifest.
        """
        async with self._locks[queue_id]:
            return await self._distribute(db, orders, queue_id)

    async def _distribute(
        self,
        db: Session,
        orders: Sequence[Order],
        queue_id: int,
    ) -> list[ScreenAssignment]:
        try:
            queue = QueueRepository(db).find_by_id(queue_id)
        except SQLAlchemyError as e:
            logger.error("Queue lookup failed", queue_id=queue_id, error=str(e))
            return []

        if queue is None:
            logger.error("Queue not found", queue_id=queue_id)
            return []

        # Read once for the whole call
        strategy = queue.strategy
        queue_name = queue.name

        filtered = filter_orders(orders, queue.active_filters)
        if not filtered:
            return []

        try:
            screens = ScreenRegistry(db).active_screens(queue_id)
        except SQLAlchemyError as e:
            logger.error("Screen lookup failed", queue_id=queue_id, queue=queue_name, error=str(e))
            return []

        logger.info(
            "Resolved active screens",
            queue_id=queue_id,
            queue=queue_name,
            active_screens=len(screens),
        )

        if not screens:
            logger.warning(
                "No active screens, orders left unassigned",
                queue_id=queue_id,
                queue=queue_name,
                orders=len(filtered),
            )
            return []

        # Ids are captured before the first commit expires the instances
        screen_ids = [screen.id for screen in screens]
        order_ids = [order.id for order in filtered]
        manifest = {screen_id: ScreenAssignment(screen_id=screen_id) for screen_id in screen_ids}

        if strategy == DistributionStrategy.DISTRIBUTED:
            start = await self._cursors.get(queue_id)
            targets = [screen_ids[(start + i) % len(screen_ids)] for i in range(len(filtered))]
        else:
            start = None
            targets = [screen_ids[0]] * len(filtered)

        try:
            for order, order_id, screen_id in zip(filtered, order_ids, targets):
                if not self._persist_assignment(db, order, order_id, screen_id, queue_id):
                    continue
                # Committed, so the screen owns it even if the index write fails
                manifest[screen_id].orders.append(order)
                await self._mirror_assignment(order, order_id, screen_id, queue_id)
        except StoreUnavailableError as e:
            e.partial_manifest = [manifest[s] for s in screen_ids if manifest[s].orders]
            raise

        if start is not None:
            # Failed orders still consumed their slot
            await self._cursors.set_after_batch(queue_id, start + len(filtered))

        distribution = ", ".join(
            f"{short_id(screen_id)}={len(manifest[screen_id].orders)}" for screen_id in screen_ids
        )
        logger.info(
            f"Distributed {len(filtered)} orders: {distribution}",
            queue_id=queue_id,
            queue=queue_name,
            strategy=strategy,
        )

        return [manifest[screen_id] for screen_id in screen_ids]

    def _persist_assignment(
        self,
        db: Session,
        order: Order,
        order_id: int,
        screen_id: int,
        queue_id: int,
    ) -> bool:
        """Commit one assignment. Returns False when the database write failed."""
        try:
            order.screen_id = screen_id
            safe_commit(db)
        except Exception as e:
            logger.error(
                "Failed to assign order",
                queue_id=queue_id,
                screen_id=screen_id,
                order_id=order_id,
                error=str(e),
            )
            return False
        return True

    async def _mirror_assignment(self, order: Order, order_id: int, screen_id: int, queue_id: int) -> None:
        """Copy a committed assignment into the fast index. Failures propagate."""
        try:
            await self._index.add(screen_id, order_id)
            await self._index.cache_order(order_id, order_payload(order))
        except StoreUnavailableError:
            logger.error(
                "Fast index write failed, aborting distribution",
                queue_id=queue_id,
                screen_id=screen_id,
                order_id=order_id,
            )
            raise

        logger.debug("Order assigned", order_id=order_id, screen_id=screen_id)

    # =========================================================================
    # Queries and operator controls
    # =========================================================================

    def get_orders_for_screen(self, db: Session, screen_id: int) -> list[Order]:
        """Open orders of a screen straight from the order store, oldest first."""
        return list(OrderRepository(db).find_open_for_screen(screen_id))

    async def get_balance_stats(self, db: Session, queue_id: int) -> BalanceStatsOutput:
        """Open orders per screen of a queue plus the current cursor."""
        queue = QueueRepository(db).find_by_id(queue_id)
        if queue is None:
            raise QueueNotFoundError(queue_id)

        screens = ScreenRepository(db).find_by_queue(queue_id)
        counts = OrderRepository(db).open_counts_by_screen([s.id for s in screens])
        active_ids = set(ScreenRegistry(db).active_screen_ids(queue_id))

        try:
            cursor = await self._cursors.get(queue_id)
        except StoreUnavailableError as e:
            logger.warning("Rotation cursor unavailable", queue_id=queue_id, error=str(e))
            cursor = None

        return BalanceStatsOutput(
            queue_id=queue.id,
            queue_name=queue.name,
            strategy=queue.strategy,
            active_screens=len(active_ids),
            total_screens=len(screens),
            total_orders=sum(counts.values()),
            rotation_cursor=cursor,
            screens=[
                ScreenLoad(
                    screen_id=s.id,
                    name=s.name,
                    status=s.status,
                    open_orders=counts.get(s.id, 0),
                )
                for s in screens
            ],
        )

    async def reset_balance_index(self, queue_id: int) -> None:
        """Restart the rotation of a queue at its first screen."""
        async with self._locks[queue_id]:
            await self._cursors.reset(queue_id)
        logger.info("Balance index reset", queue_id=queue_id)

    def handle_screen_standby(self, screen: Screen) -> None:
        # Assigned orders stay where they are; the screen just stops receiving new ones
        logger.info(
            "Screen entered standby, removed from balancing",
            screen_id=screen.id,
            screen=screen.name,
            queue_id=screen.queue_id,
        )

    def handle_screen_reactivation(self, screen: Screen) -> None:
        # No backfill; the screen joins the rotation from the next cycle
        logger.info(
            "Screen reactivated",
            screen_id=screen.id,
            screen=screen.name,
            queue_id=screen.queue_id,
        )
