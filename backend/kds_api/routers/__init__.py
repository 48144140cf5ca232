"""
KDS API routers.

- orders: push ingestion and lifecycle commands
- screens: registry, heartbeats, standby/activation, per-screen views
- queues: queues, filters, balance stats
- polling: cycle runner controls
- metrics, health: operational endpoints
"""

from .orders import router as orders_router
from .screens import router as screens_router
from .queues import router as queues_router
from .polling import router as polling_router
from .metrics import router as metrics_router
from .health import router as health_router

__all__ = [
    "orders_router",
    "screens_router",
    "queues_router",
    "polling_router",
    "metrics_router",
    "health_router",
]
