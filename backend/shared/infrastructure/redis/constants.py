"""
Redis constants and key layout.
Centralizes TTLs and key prefixes for better visibility and management.

The rotation cursor and the per-screen fast index are caches: both can be
rebuilt from the order store at any time.
"""

# =============================================================================
# TTL (Time To Live) Constants (in seconds)
# =============================================================================

# Cached full-order blobs; the authoritative copy lives in the database
ORDER_CACHE_TTL = 3600  # 1 hour


# =============================================================================
# Key Prefixes
# =============================================================================

KEY_NAMESPACE = "kds"

PREFIX_BALANCER_INDEX = f"{KEY_NAMESPACE}:balancer:index:"
PREFIX_SCREEN_ORDERS_TEMPLATE = f"{KEY_NAMESPACE}:screen:{{screen_id}}:orders"
PREFIX_ORDER_DATA = f"{KEY_NAMESPACE}:order:"
PREFIX_METRICS = f"{KEY_NAMESPACE}:metrics:"


def balancer_index_key(queue_id: int) -> str:
    """Rotation cursor for a queue (string-encoded integer)."""
    return f"{PREFIX_BALANCER_INDEX}{queue_id}"


def screen_orders_key(screen_id: int) -> str:
    """Set of order ids currently shown on a screen."""
    return PREFIX_SCREEN_ORDERS_TEMPLATE.format(screen_id=screen_id)


def order_data_key(order_id: int) -> str:
    """Cached JSON blob for one order."""
    return f"{PREFIX_ORDER_DATA}{order_id}"


# =============================================================================
# Pub/Sub Channels
# =============================================================================

CHANNEL_ORDERS_UPDATED = f"{KEY_NAMESPACE}:orders:updated"


def channel_screen(screen_id: int) -> str:
    """Channel a live screen connection subscribes to."""
    if not isinstance(screen_id, int) or screen_id <= 0:
        raise ValueError(f"screen_id must be a positive integer, got {screen_id}")
    return f"{KEY_NAMESPACE}:screen:{screen_id}"
