"""
Ingestion feeds drained at the start of every cycle.

The point-of-sale poller is an external producer; anything that can hand
over normalized orders implements OrderFeed. PushOrderFeed buffers orders
submitted through the push API until the next cycle picks them up.
"""

from collections import deque
from typing import Protocol, Sequence

from shared.config.logging import polling_logger as logger
from shared.utils.kds_schemas import OrderInput


class OrderFeed(Protocol):
    """Source of normalized orders. fetch() returns and forgets what it hands over."""

    async def fetch(self) -> list[OrderInput]: ...


class PushOrderFeed:
    """In-process buffer for orders pushed over HTTP."""

    def __init__(self, max_pending: int = 5000):
        self._buffer: deque[OrderInput] = deque()
        self._max_pending = max_pending

    @property
    def pending(self) -> int:
        return len(self._buffer)

    def submit(self, orders: Sequence[OrderInput]) -> int:
        """
        Queue orders for the next cycle. Returns how many were accepted.

        Orders beyond max_pending are refused; upstream is expected to
        re-deliver them and ingestion is idempotent by external id.
        """
        room = max(self._max_pending - len(self._buffer), 0)
        accepted = list(orders)[:room]
        self._buffer.extend(accepted)

        refused = len(orders) - len(accepted)
        if refused:
            logger.warning("Push buffer full, orders refused", refused=refused, pending=len(self._buffer))
        return len(accepted)

    async def fetch(self) -> list[OrderInput]:
        drained = list(self._buffer)
        self._buffer.clear()
        return drained
