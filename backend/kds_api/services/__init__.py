"""
KDS domain services.

- filter_engine: queue content filters
- balancer: order distribution across screens (Balancer, ScreenAssignment)
- screen_service: Screen Registry
- order_service: ingestion and lifecycle operations
- queue_service: queue and filter administration
- stores: rotation cursor, fast index and notifier interfaces + Redis versions
- feeds: ingestion feeds (push API buffer)
- polling: the ingestion + distribution cycle runner
- container: process-wide wiring
"""

from kds_api.services.filter_engine import filter_orders
from kds_api.services.balancer import Balancer, ScreenAssignment, order_payload
from kds_api.services.screen_service import ScreenRegistry
from kds_api.services.order_service import OrderService
from kds_api.services.queue_service import QueueService
from kds_api.services.feeds import OrderFeed, PushOrderFeed
from kds_api.services.polling import PollingService
from kds_api.services.container import KdsContainer, build_container

__all__ = [
    "filter_orders",
    "Balancer",
    "ScreenAssignment",
    "order_payload",
    "ScreenRegistry",
    "OrderService",
    "QueueService",
    "OrderFeed",
    "PushOrderFeed",
    "PollingService",
    "KdsContainer",
    "build_container",
]
