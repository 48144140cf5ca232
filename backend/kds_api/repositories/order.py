"""
Order Repository - Data access for orders and their items.
Items are loaded with selectinload so screen payloads never hit N+1.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Sequence
from sqlalchemy import Select, and_, delete, func, or_, select
from sqlalchemy.orm import selectinload

from shared.config.constants import OrderStatus
from kds_api.models import Order, OrderItem
from .base import BaseRepository, RepositoryFilters


@dataclass
class OrderFilters(RepositoryFilters):
    """Filters specific to orders."""

    status: str | None = None
    statuses: list[str] | None = None
    screen_id: int | None = None


class OrderRepository(BaseRepository[Order]):
    """Repository for Order entities."""

    model = Order

    def _base_query(self) -> Select:
        return select(Order).options(selectinload(Order.items))

    def _apply_filters(self, query: Select, filters: RepositoryFilters) -> Select:
        if not isinstance(filters, OrderFilters):
            filters = OrderFilters(**filters.__dict__)

        if filters.status:
            query = query.where(Order.status == filters.status)
        elif filters.statuses:
            query = query.where(Order.status.in_(filters.statuses))

        if filters.screen_id:
            query = query.where(Order.screen_id == filters.screen_id)

        return query.order_by(Order.created_at.desc(), Order.id.desc())

    def find_by_ids(self, order_ids: list[int]) -> Sequence[Order]:
        if not order_ids:
            return []
        query = self._base_query().where(Order.id.in_(order_ids))
        return self._db.execute(query).scalars().unique().all()

    def existing_external_ids(self, external_ids: list[str]) -> set[str]:
        """External ids from the list that are already stored."""
        if not external_ids:
            return set()
        query = select(Order.external_id).where(Order.external_id.in_(external_ids))
        return set(self._db.execute(query).scalars().all())

    def find_open_for_screen(self, screen_id: int) -> Sequence[Order]:
        """PENDING/IN_PROGRESS orders on a screen, oldest first."""
        query = (
            self._base_query()
            .where(
                Order.screen_id == screen_id,
                Order.status.in_(OrderStatus.OPEN),
            )
            .order_by(Order.created_at, Order.id)
        )
        return self._db.execute(query).scalars().unique().all()

    def open_ids_for_screen(self, screen_id: int) -> list[int]:
        query = (
            select(Order.id)
            .where(
                Order.screen_id == screen_id,
                Order.status.in_(OrderStatus.OPEN),
            )
            .order_by(Order.id)
        )
        return list(self._db.execute(query).scalars().all())

    def open_counts_by_screen(self, screen_ids: list[int]) -> dict[int, int]:
        """Open order count per screen id (missing screens count 0)."""
        counts = {screen_id: 0 for screen_id in screen_ids}
        if not screen_ids:
            return counts
        query = (
            select(Order.screen_id, func.count(Order.id))
            .where(
                Order.screen_id.in_(screen_ids),
                Order.status.in_(OrderStatus.OPEN),
            )
            .group_by(Order.screen_id)
        )
        for screen_id, count in self._db.execute(query).all():
            counts[screen_id] = count
        return counts

    def find_unassigned_pending(
        self,
        created_since: datetime,
        limit: int,
        exclude_ids: list[int] | None = None,
        offset: int = 0,
    ) -> Sequence[Order]:
        """Unassigned PENDING orders created after created_since, oldest first."""
        query = self._base_query().where(
            Order.status == OrderStatus.PENDING,
            Order.screen_id.is_(None),
            Order.created_at >= created_since,
        )
        if exclude_ids:
            query = query.where(Order.id.not_in(exclude_ids))
        query = query.order_by(Order.created_at, Order.id).offset(offset).limit(limit)
        return self._db.execute(query).scalars().unique().all()

    def find_recently_finished(
        self,
        screen_id: int,
        finished_since: datetime,
        limit: int,
    ) -> Sequence[Order]:
        """FINISHED orders of a screen within the window, newest first."""
        query = (
            self._base_query()
            .where(
                Order.screen_id == screen_id,
                Order.status == OrderStatus.FINISHED,
                Order.finished_at >= finished_since,
            )
            .order_by(Order.finished_at.desc(), Order.id.desc())
            .limit(limit)
        )
        return self._db.execute(query).scalars().unique().all()

    def count_by_status(self, status: str) -> int:
        query = select(func.count(Order.id)).where(Order.status == status)
        return self._db.scalar(query) or 0

    def find_finished_since(self, since: datetime) -> Sequence[tuple[datetime, datetime]]:
        """(created_at, finished_at) pairs for orders finished after since."""
        query = select(Order.created_at, Order.finished_at).where(
            Order.status == OrderStatus.FINISHED,
            Order.finished_at >= since,
        )
        return self._db.execute(query).tuples().all()

    def find_expired_terminal_ids(self, cutoff: datetime) -> list[int]:
        """
        Ids eligible for the retention sweep.

        FINISHED orders finished before cutoff, and CANCELLED orders created
        before cutoff.
        """
        query = select(Order.id).where(
            or_(
                and_(Order.status == OrderStatus.FINISHED, Order.finished_at < cutoff),
                and_(Order.status == OrderStatus.CANCELLED, Order.created_at < cutoff),
            )
        )
        return list(self._db.execute(query).scalars().all())

    def delete_by_ids(self, order_ids: list[int]) -> int:
        """Bulk delete orders and their items. Returns orders deleted."""
        if not order_ids:
            return 0
        self._db.execute(
            delete(OrderItem)
            .where(OrderItem.order_id.in_(order_ids))
            .execution_options(synchronize_session=False)
        )
        result = self._db.execute(
            delete(Order)
            .where(Order.id.in_(order_ids))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
