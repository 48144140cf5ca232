"""
Queue and Filter Repositories.
"""

from typing import Sequence
from sqlalchemy import Select, select
from sqlalchemy.orm import selectinload

from kds_api.models import Filter, Queue
from .base import BaseRepository


class QueueRepository(BaseRepository[Queue]):
    """Queues with their filters eagerly loaded."""

    model = Queue

    def _base_query(self) -> Select:
        return (
            select(Queue)
            .options(selectinload(Queue.filters))
            .order_by(Queue.id)
        )

    def find_active(self) -> Sequence[Queue]:
        """Active queues in creation order."""
        query = self._base_query().where(Queue.active.is_(True))
        return self._db.execute(query).scalars().unique().all()

    def find_by_name(self, name: str) -> Queue | None:
        return self._db.scalar(self._base_query().where(Queue.name == name))


class FilterRepository(BaseRepository[Filter]):
    """Filters scoped to their queue."""

    model = Filter

    def _base_query(self) -> Select:
        return select(Filter).order_by(Filter.id)

    def find_for_queue(self, queue_id: int) -> Sequence[Filter]:
        query = self._base_query().where(Filter.queue_id == queue_id)
        return self._db.execute(query).scalars().all()

    def find_in_queue(self, filter_id: int, queue_id: int) -> Filter | None:
        query = self._base_query().where(
            Filter.id == filter_id,
            Filter.queue_id == queue_id,
        )
        return self._db.scalar(query)
