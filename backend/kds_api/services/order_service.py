"""
Order lifecycle: ingestion, finish / undo / cancel and their side effects.

The order store is the source of truth. After each committed transition the
fast per-screen index and the cached order blob are updated and the screen is
notified; index failures at that point are logged and left for the rebuild,
since the transition itself is already durable.

State machine:
    PENDING <-> IN_PROGRESS -> FINISHED -> (undo) -> PENDING
    PENDING | IN_PROGRESS -> CANCELLED (terminal)

Repeating a transition the order already went through returns it unchanged.
Stale transitions (finish/cancel a CANCELLED order, cancel a FINISHED one,
undo a CANCELLED one) raise InvalidTransitionError.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Awaitable, Sequence

from sqlalchemy.orm import Session

from shared.config.constants import OrderAction, OrderStatus, can_transition
from shared.config.logging import order_logger as logger
from shared.config.settings import settings
from shared.infrastructure.db import safe_commit
from shared.utils.exceptions import (
    InvalidTransitionError,
    OrderNotFoundError,
    StoreUnavailableError,
)
from shared.utils.kds_schemas import OrderInput, OrderStatsOutput, ScreenOrderIdsOutput
from kds_api.models import Order, OrderItem, utcnow
from kds_api.repositories import OrderFilters, OrderRepository
from kds_api.services.balancer import order_payload
from kds_api.services.stores import Notifier, ScreenIndex


class OrderService:
    """
    Order operations for one database session.

    Usage:
        service = OrderService(db, container.index, container.notifier)
        order = await service.finish(order_id, screen_id)
    """

    def __init__(self, db: Session, index: ScreenIndex, notifier: Notifier):
        self._db = db
        self._repo = OrderRepository(db)
        self._index = index
        self._notifier = notifier

    # =========================================================================
    # Queries
    # =========================================================================

    def get_order(self, order_id: int) -> Order:
        order = self._repo.find_by_id(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def list_orders(self, filters: OrderFilters | None = None) -> Sequence[Order]:
        return self._repo.find_all(filters or OrderFilters())

    def recently_finished(
        self,
        screen_id: int,
        minutes_back: int | None = None,
        limit: int | None = None,
    ) -> Sequence[Order]:
        """FINISHED orders of a screen within the undo window, newest first."""
        minutes = minutes_back if minutes_back is not None else settings.undo_window_minutes
        since = utcnow() - timedelta(minutes=minutes)
        return self._repo.find_recently_finished(
            screen_id,
            since,
            limit or settings.recently_finished_limit,
        )

    def get_order_stats(self) -> OrderStatsOutput:
        """Open counts plus today's finished count and mean time to finish."""
        today = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
        finished = self._repo.find_finished_since(today)

        durations = [
            (finished_at - created_at).total_seconds()
            for created_at, finished_at in finished
            if created_at is not None and finished_at is not None
        ]
        avg = round(sum(durations) / len(durations), 1) if durations else None

        return OrderStatsOutput(
            pending=self._repo.count_by_status(OrderStatus.PENDING),
            in_progress=self._repo.count_by_status(OrderStatus.IN_PROGRESS),
            finished_today=len(finished),
            avg_finish_seconds=avg,
        )

    # =========================================================================
    # Ingestion
    # =========================================================================

    def upsert_orders(self, incoming: Sequence[OrderInput]) -> list[Order]:
        """
        Create orders whose external id is unseen; skip the rest.

        Existing orders are never updated by re-delivery. A failing order is
        logged and skipped. Returns the created orders in input order.
        """
        if not incoming:
            return []

        seen = self._repo.existing_external_ids([o.external_id for o in incoming])
        created: list[Order] = []

        for data in incoming:
            if data.external_id in seen:
                continue
            seen.add(data.external_id)

            order = Order(
                external_id=data.external_id,
                identifier=data.identifier,
                channel=data.channel,
                customer_name=data.customer_name,
                status=OrderStatus.PENDING,
                items=[
                    OrderItem(
                        name=item.name,
                        quantity=item.quantity,
                        modifier=item.modifier,
                        notes=item.notes,
                    )
                    for item in data.items
                ],
            )
            try:
                self._db.add(order)
                safe_commit(self._db)
            except Exception as e:
                logger.error(
                    "Failed to ingest order",
                    external_id=data.external_id,
                    identifier=data.identifier,
                    error=str(e),
                )
                continue
            created.append(order)

        if created:
            logger.info("Orders ingested", created=len(created), received=len(incoming))
        return created

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def finish(self, order_id: int, screen_id: int) -> Order:
        """
        Mark an order FINISHED from the screen that shows it.

        The screen id is trusted as given. The order leaves that screen's
        index (and its recorded screen's index, if different).
        """
        order = self.get_order(order_id)
        if order.status == OrderStatus.FINISHED:
            return order
        self._check_transition(order, OrderStatus.FINISHED)

        recorded_screen_id = order.screen_id
        order.status = OrderStatus.FINISHED
        order.finished_at = utcnow()
        safe_commit(self._db)

        await self._index_call(self._index.remove(screen_id, order_id), order_id, screen_id)
        if recorded_screen_id is not None and recorded_screen_id != screen_id:
            await self._index_call(
                self._index.remove(recorded_screen_id, order_id), order_id, recorded_screen_id
            )
        await self._index_call(self._index.drop_order(order_id), order_id, screen_id)
        await self._notifier.order_changed(screen_id, order_id, OrderAction.FINISHED)

        logger.info("Order finished", order_id=order_id, screen_id=screen_id)
        return order

    async def undo_finish(self, order_id: int) -> Order:
        """
        Put a FINISHED order back to PENDING on its screen.

        No recency window is enforced here. If the order lost its screen in
        the meantime it simply becomes PENDING and unassigned.
        """
        order = self.get_order(order_id)
        if order.status in OrderStatus.OPEN:
            return order
        self._check_transition(order, OrderStatus.PENDING)

        order.status = OrderStatus.PENDING
        order.finished_at = None
        safe_commit(self._db)

        screen_id = order.screen_id
        if screen_id is not None:
            await self._index_call(self._index.add(screen_id, order_id), order_id, screen_id)
            payload = order_payload(order)
            await self._index_call(self._index.cache_order(order_id, payload), order_id, screen_id)
            await self._notifier.order_changed(screen_id, order_id, OrderAction.RESTORED, payload)

        logger.info("Order restored", order_id=order_id, screen_id=screen_id)
        return order

    async def cancel(self, order_id: int, reason: str | None = None) -> Order:
        """Cancel an open order. The reason is only logged."""
        order = self.get_order(order_id)
        if order.status == OrderStatus.CANCELLED:
            return order
        self._check_transition(order, OrderStatus.CANCELLED)

        order.status = OrderStatus.CANCELLED
        safe_commit(self._db)

        screen_id = order.screen_id
        if screen_id is not None:
            await self._index_call(self._index.remove(screen_id, order_id), order_id, screen_id)
            await self._index_call(self._index.drop_order(order_id), order_id, screen_id)
            await self._notifier.order_changed(screen_id, order_id, OrderAction.CANCELLED)

        logger.info("Order cancelled", order_id=order_id, screen_id=screen_id, reason=reason)
        return order

    async def start(self, order_id: int) -> Order:
        """PENDING -> IN_PROGRESS."""
        return await self._move_open_order(order_id, OrderStatus.IN_PROGRESS, OrderAction.STARTED)

    async def requeue(self, order_id: int) -> Order:
        """IN_PROGRESS -> PENDING."""
        return await self._move_open_order(order_id, OrderStatus.PENDING, OrderAction.REQUEUED)

    async def _move_open_order(self, order_id: int, new_status: str, action: str) -> Order:
        order = self.get_order(order_id)
        if order.status == new_status:
            return order
        if order.status not in OrderStatus.OPEN:
            # FINISHED -> PENDING goes through undo_finish
            raise InvalidTransitionError("Order", order.status, new_status, order_id=order_id)
        self._check_transition(order, new_status)

        order.status = new_status
        safe_commit(self._db)

        screen_id = order.screen_id
        if screen_id is not None:
            payload = order_payload(order)
            await self._index_call(self._index.cache_order(order_id, payload), order_id, screen_id)
            await self._notifier.order_changed(screen_id, order_id, action, payload)

        logger.info("Order status changed", order_id=order_id, screen_id=screen_id, status=new_status)
        return order

    # =========================================================================
    # Maintenance
    # =========================================================================

    def cleanup_old_orders(self, hours_to_keep: int) -> int:
        """
        Delete FINISHED orders finished before the cutoff and CANCELLED orders
        created before it. Returns how many were deleted.
        """
        cutoff = utcnow() - timedelta(hours=hours_to_keep)
        order_ids = self._repo.find_expired_terminal_ids(cutoff)
        if not order_ids:
            return 0

        deleted = self._repo.delete_by_ids(order_ids)
        safe_commit(self._db)
        logger.info("Old orders cleaned up", deleted=deleted, hours_to_keep=hours_to_keep)
        return deleted

    async def rebuild_screen_index(self, screen_id: int) -> list[int]:
        """Replace a screen's fast index with its open orders from the store."""
        order_ids = self._repo.open_ids_for_screen(screen_id)
        await self._index.replace(screen_id, order_ids)
        logger.info("Screen index rebuilt", screen_id=screen_id, orders=len(order_ids))
        return order_ids

    async def screen_order_ids(self, screen_id: int) -> ScreenOrderIdsOutput:
        """Open order ids of a screen, from the index or, if it fails, the store."""
        try:
            order_ids = sorted(await self._index.members(screen_id))
            source = "index"
        except StoreUnavailableError as e:
            logger.warning("Fast index unavailable, reading orders from store", screen_id=screen_id, error=str(e))
            order_ids = self._repo.open_ids_for_screen(screen_id)
            source = "database"
        return ScreenOrderIdsOutput(screen_id=screen_id, order_ids=order_ids, source=source)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _check_transition(self, order: Order, new_status: str) -> None:
        if not can_transition(order.status, new_status):
            raise InvalidTransitionError(
                "Order",
                order.status,
                new_status,
                order_id=order.id,
                screen_id=order.screen_id,
            )

    async def _index_call(self, call: Awaitable[None], order_id: int, screen_id: int | None) -> None:
        try:
            await call
        except StoreUnavailableError as e:
            logger.warning(
                "Fast index update failed, rebuild will repair it",
                order_id=order_id,
                screen_id=screen_id,
                error=str(e),
            )
