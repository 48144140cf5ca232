"""
Shared plumbing for the KDS repositories.

Repositories only flush; services decide when to commit (safe_commit).
"""

from dataclasses import dataclass
from typing import ClassVar, Generic, Sequence, TypeVar

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from shared.config.constants import Limits


ModelT = TypeVar("ModelT")


@dataclass
class RepositoryFilters:
    """Paging shared by every list query. Out-of-range values are clamped."""

    limit: int = Limits.DEFAULT_PAGE_SIZE
    offset: int = 0

    def __post_init__(self):
        self.limit = min(max(1, self.limit), Limits.MAX_PAGE_SIZE)
        self.offset = max(0, self.offset)


class BaseRepository(Generic[ModelT]):
    """
    Subclasses set `model` and override `_base_query` when they need
    eager loading, and `_apply_filters` for their own filter dataclass.
    """

    model: ClassVar[type]

    def __init__(self, db: Session):
        self._db = db

    def _base_query(self) -> Select:
        return select(self.model)

    def _apply_filters(self, query: Select, filters: RepositoryFilters) -> Select:
        return query

    def find_all(self, filters: RepositoryFilters | None = None) -> Sequence[ModelT]:
        filters = filters or RepositoryFilters()
        query = self._apply_filters(self._base_query(), filters)
        query = query.offset(filters.offset).limit(filters.limit)
        return self._db.execute(query).scalars().unique().all()

    def find_by_id(self, entity_id: int) -> ModelT | None:
        return self._db.scalar(self._base_query().where(self.model.id == entity_id))

    def save(self, entity: ModelT) -> ModelT:
        """Add and flush, so generated ids and defaults are loaded."""
        self._db.add(entity)
        self._db.flush()
        self._db.refresh(entity)
        return entity

    def delete(self, entity: ModelT) -> None:
        self._db.delete(entity)
        self._db.flush()
