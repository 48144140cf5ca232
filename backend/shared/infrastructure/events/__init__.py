"""
Screen notifications over Redis pub/sub.

- event_types.py: Event type constants
- event_schema.py: ScreenEvent dataclass with validation
- publisher.py: publish_event with retry
"""

from .event_types import (
    ORDERS_ASSIGNED,
    ORDER_STARTED,
    ORDER_REQUEUED,
    ORDER_FINISHED,
    ORDER_RESTORED,
    ORDER_CANCELLED,
    SCREEN_STATUS_CHANGED,
    MAX_EVENT_SIZE,
)
from .event_schema import ScreenEvent
from .publisher import publish_event, retry_delay

__all__ = [
    "ORDERS_ASSIGNED",
    "ORDER_STARTED",
    "ORDER_REQUEUED",
    "ORDER_FINISHED",
    "ORDER_RESTORED",
    "ORDER_CANCELLED",
    "SCREEN_STATUS_CHANGED",
    "MAX_EVENT_SIZE",
    "ScreenEvent",
    "publish_event",
    "retry_delay",
]
