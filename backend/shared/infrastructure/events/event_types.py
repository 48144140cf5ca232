"""
Event Type Constants.

Defines all event types published to screens over Redis pub/sub.
"""

# =============================================================================
# Distribution
# =============================================================================

ORDERS_ASSIGNED = "ORDERS_ASSIGNED"  # Balancer manifest for one screen

# =============================================================================
# Order lifecycle
# Flow: PENDING <-> IN_PROGRESS -> FINISHED -> (undo) -> PENDING; open -> CANCELLED
# =============================================================================

ORDER_STARTED = "ORDER_STARTED"
ORDER_REQUEUED = "ORDER_REQUEUED"
ORDER_FINISHED = "ORDER_FINISHED"
ORDER_RESTORED = "ORDER_RESTORED"
ORDER_CANCELLED = "ORDER_CANCELLED"

# =============================================================================
# Screens
# =============================================================================

SCREEN_STATUS_CHANGED = "SCREEN_STATUS_CHANGED"

# Maximum serialized event size (bytes); manifests with many long orders stay well below
MAX_EVENT_SIZE = 256 * 1024
