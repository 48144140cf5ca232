"""
Screen Repository - Data access for display endpoints.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Sequence
from sqlalchemy import Select, select

from shared.config.constants import ScreenStatus
from kds_api.models import Screen
from .base import BaseRepository, RepositoryFilters


@dataclass
class ScreenFilters(RepositoryFilters):
    """Filters specific to screens."""

    queue_id: int | None = None
    status: str | None = None


class ScreenRepository(BaseRepository[Screen]):
    """
    Repository for Screen entities.

    Every list is ordered by id, which is the stable screen order used by
    the balancer.
    """

    model = Screen

    def _base_query(self) -> Select:
        return select(Screen).order_by(Screen.id)

    def _apply_filters(self, query: Select, filters: RepositoryFilters) -> Select:
        if not isinstance(filters, ScreenFilters):
            filters = ScreenFilters(**filters.__dict__)

        if filters.queue_id:
            query = query.where(Screen.queue_id == filters.queue_id)
        if filters.status:
            query = query.where(Screen.status == filters.status)
        return query

    def find_by_queue(self, queue_id: int) -> Sequence[Screen]:
        query = self._base_query().where(Screen.queue_id == queue_id)
        return self._db.execute(query).scalars().all()

    def find_online(self, queue_id: int) -> Sequence[Screen]:
        """ONLINE screens of a queue in stable order."""
        query = self._base_query().where(
            Screen.queue_id == queue_id,
            Screen.status == ScreenStatus.ONLINE,
        )
        return self._db.execute(query).scalars().all()

    def find_stale_online(self, cutoff: datetime) -> Sequence[Screen]:
        """
        ONLINE screens whose last heartbeat is older than cutoff.

        Screens that never sent a heartbeat are left alone.
        """
        query = self._base_query().where(
            Screen.status == ScreenStatus.ONLINE,
            Screen.last_heartbeat.is_not(None),
            Screen.last_heartbeat < cutoff,
        )
        return self._db.execute(query).scalars().all()

    def find_by_api_key(self, api_key: str) -> Screen | None:
        return self._db.scalar(self._base_query().where(Screen.api_key == api_key))
