"""
Metrics infrastructure module.

Redis-backed counters and gauges for the distribution cycle.
"""

from shared.infrastructure.metrics.prometheus import (
    MetricsRegistry,
    KdsMetrics,
)

__all__ = [
    "MetricsRegistry",
    "KdsMetrics",
]
