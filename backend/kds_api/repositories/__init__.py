"""
Repository Pattern Implementation.

Repositories encapsulate queries with the eager loading and stable ordering
the services rely on.

Usage:
    from kds_api.repositories import OrderRepository

    repo = OrderRepository(db)
    orders = repo.find_open_for_screen(screen_id)
"""

from .base import BaseRepository, RepositoryFilters
from .order import OrderRepository, OrderFilters
from .queue import QueueRepository, FilterRepository
from .screen import ScreenRepository, ScreenFilters

__all__ = [
    "BaseRepository",
    "RepositoryFilters",
    "OrderRepository",
    "OrderFilters",
    "QueueRepository",
    "FilterRepository",
    "ScreenRepository",
    "ScreenFilters",
]
