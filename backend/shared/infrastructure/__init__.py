"""
Infrastructure module: Database, Redis and events.

Provides:
- Database sessions and transactions (db.py)
- Redis pool and key layout (redis/)
- Redis pub/sub for screen notifications (events/)
"""

from shared.infrastructure.db import (
    engine,
    SessionLocal,
    get_db,
    get_db_context,
    safe_commit,
)
from shared.infrastructure.redis import (
    get_redis_pool,
    close_redis_pool,
)
from shared.infrastructure.events import (
    ScreenEvent,
    publish_event,
)

__all__ = [
    # db
    "engine",
    "SessionLocal",
    "get_db",
    "get_db_context",
    "safe_commit",
    # redis
    "get_redis_pool",
    "close_redis_pool",
    # events
    "ScreenEvent",
    "publish_event",
]
