"""
SQLAlchemy ORM Models Package.

- base: Base class and TimestampMixin
- screen: Queue, Screen, Filter
- order: Order, OrderItem
"""

from .base import Base, TimestampMixin, utcnow
from .screen import Queue, Screen, Filter
from .order import Order, OrderItem

__all__ = [
    "Base",
    "TimestampMixin",
    "utcnow",
    "Queue",
    "Screen",
    "Filter",
    "Order",
    "OrderItem",
]
