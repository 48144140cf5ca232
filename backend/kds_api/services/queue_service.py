"""
Queue and Filter administration.
"""

from typing import Sequence

from sqlalchemy.orm import Session

from shared.config.logging import kds_logger as logger
from shared.infrastructure.db import safe_commit
from shared.utils.exceptions import (
    ConflictError,
    DuplicateEntityError,
    FilterNotFoundError,
    QueueNotFoundError,
)
from shared.utils.kds_schemas import FilterCreate, FilterUpdate, QueueCreate, QueueUpdate
from kds_api.models import Filter, Queue
from kds_api.repositories import FilterRepository, QueueRepository, ScreenRepository


class QueueService:
    """CRUD for queues and their content filters."""

    def __init__(self, db: Session):
        self._db = db
        self._queues = QueueRepository(db)
        self._filters = FilterRepository(db)

    def list_queues(self) -> Sequence[Queue]:
        return self._queues.find_all()

    def get_queue(self, queue_id: int) -> Queue:
        queue = self._queues.find_by_id(queue_id)
        if queue is None:
            raise QueueNotFoundError(queue_id)
        return queue

    def create_queue(self, data: QueueCreate) -> Queue:
        if self._queues.find_by_name(data.name) is not None:
            raise DuplicateEntityError("Queue", data.name)

        queue = Queue(name=data.name, strategy=data.strategy, active=data.active)
        self._queues.save(queue)
        safe_commit(self._db)
        self._db.refresh(queue)

        logger.info("Queue created", queue_id=queue.id, queue=queue.name, strategy=queue.strategy)
        return queue

    def update_queue(self, queue_id: int, data: QueueUpdate) -> Queue:
        queue = self.get_queue(queue_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)

        new_name = changes.get("name")
        if new_name and new_name != queue.name:
            existing = self._queues.find_by_name(new_name)
            if existing is not None and existing.id != queue_id:
                raise DuplicateEntityError("Queue", new_name)

        for field, value in changes.items():
            setattr(queue, field, value)

        safe_commit(self._db)
        self._db.refresh(queue)
        logger.info("Queue updated", queue_id=queue_id, fields=sorted(changes))
        return queue

    def delete_queue(self, queue_id: int) -> None:
        """Delete a queue and its filters. Queues that still own screens are kept."""
        queue = self.get_queue(queue_id)
        if ScreenRepository(self._db).find_by_queue(queue_id):
            raise ConflictError(
                f"Queue {queue.name} still has screens; move or delete them first",
                queue_id=queue_id,
            )

        self._queues.delete(queue)
        safe_commit(self._db)
        logger.info("Queue deleted", queue_id=queue_id)

    # =========================================================================
    # Filters
    # =========================================================================

    def list_filters(self, queue_id: int) -> Sequence[Filter]:
        self.get_queue(queue_id)
        return self._filters.find_for_queue(queue_id)

    def get_filter(self, queue_id: int, filter_id: int) -> Filter:
        f = self._filters.find_in_queue(filter_id, queue_id)
        if f is None:
            raise FilterNotFoundError(filter_id, queue_id=queue_id)
        return f

    def add_filter(self, queue_id: int, data: FilterCreate) -> Filter:
        self.get_queue(queue_id)

        f = Filter(
            queue_id=queue_id,
            pattern=data.pattern.strip(),
            suppress=data.suppress,
            active=data.active,
        )
        self._filters.save(f)
        safe_commit(self._db)
        self._db.refresh(f)

        logger.info(
            "Filter added",
            queue_id=queue_id,
            filter_id=f.id,
            pattern=f.pattern,
            suppress=f.suppress,
        )
        return f

    def update_filter(self, queue_id: int, filter_id: int, data: FilterUpdate) -> Filter:
        f = self.get_filter(queue_id, filter_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if "pattern" in changes:
            changes["pattern"] = changes["pattern"].strip()

        for field, value in changes.items():
            setattr(f, field, value)

        safe_commit(self._db)
        self._db.refresh(f)
        logger.info("Filter updated", queue_id=queue_id, filter_id=filter_id, fields=sorted(changes))
        return f

    def delete_filter(self, queue_id: int, filter_id: int) -> None:
        f = self.get_filter(queue_id, filter_id)
        self._filters.delete(f)
        safe_commit(self._db)
        logger.info("Filter deleted", queue_id=queue_id, filter_id=filter_id)
