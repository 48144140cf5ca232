"""
Centralized constants for the KDS backend.
Avoid magic strings and repeated constants.

Usage:
    from shared.config.constants import OrderStatus, ScreenStatus

    if order.status in OrderStatus.OPEN:
        ...
"""

from typing import Final


# =============================================================================
# Entity Status Constants
# =============================================================================


class OrderStatus:
    """Order status constants."""

    PENDING: Final[str] = "PENDING"
    IN_PROGRESS: Final[str] = "IN_PROGRESS"
    FINISHED: Final[str] = "FINISHED"
    CANCELLED: Final[str] = "CANCELLED"

    ALL: Final[list[str]] = [PENDING, IN_PROGRESS, FINISHED, CANCELLED]
    # Visible on a screen and tracked by the fast index
    OPEN: Final[list[str]] = [PENDING, IN_PROGRESS]
    # Eligible for the retention sweep
    TERMINAL: Final[list[str]] = [FINISHED, CANCELLED]


class ScreenStatus:
    """Screen activity constants."""

    ONLINE: Final[str] = "ONLINE"
    OFFLINE: Final[str] = "OFFLINE"
    STANDBY: Final[str] = "STANDBY"

    ALL: Final[list[str]] = [ONLINE, OFFLINE, STANDBY]


class DistributionStrategy:
    """Queue distribution strategies."""

    SINGLE: Final[str] = "SINGLE"
    DISTRIBUTED: Final[str] = "DISTRIBUTED"

    ALL: Final[list[str]] = [SINGLE, DISTRIBUTED]


class OrderAction:
    """Lifecycle notification actions published to screens."""

    ASSIGNED: Final[str] = "assigned"
    STARTED: Final[str] = "started"
    REQUEUED: Final[str] = "requeued"
    FINISHED: Final[str] = "finished"
    RESTORED: Final[str] = "restored"
    CANCELLED: Final[str] = "cancelled"


# =============================================================================
# Status Transitions
# =============================================================================

# Valid order status transitions (from -> [allowed to states])
# PENDING <-> IN_PROGRESS -> FINISHED -> (undo) -> PENDING; open -> CANCELLED
ORDER_TRANSITIONS: Final[dict[str, list[str]]] = {
    OrderStatus.PENDING: [OrderStatus.IN_PROGRESS, OrderStatus.FINISHED, OrderStatus.CANCELLED],
    OrderStatus.IN_PROGRESS: [OrderStatus.PENDING, OrderStatus.FINISHED, OrderStatus.CANCELLED],
    OrderStatus.FINISHED: [OrderStatus.PENDING],
    OrderStatus.CANCELLED: [],  # Terminal state
}


def can_transition(current: str, new_status: str) -> bool:
    """Check whether an order may move from current to new_status."""
    return new_status in ORDER_TRANSITIONS.get(current, [])


# =============================================================================
# Validation Constants
# =============================================================================


class Limits:
    """Validation limits."""

    MIN_QUANTITY: Final[int] = 1
    MAX_QUANTITY: Final[int] = 999

    MAX_NAME_LENGTH: Final[int] = 200
    MAX_PATTERN_LENGTH: Final[int] = 100
    MAX_NOTES_LENGTH: Final[int] = 500

    # Orders accepted per push request
    MAX_ORDERS_PER_BATCH: Final[int] = 500
    # Unassigned orders re-offered per cycle
    MAX_BACKLOG_ORDERS: Final[int] = 500
    # Rows read per page while selecting the backlog
    BACKLOG_SCAN_PAGE: Final[int] = 200

    DEFAULT_PAGE_SIZE: Final[int] = 50
    MAX_PAGE_SIZE: Final[int] = 200
