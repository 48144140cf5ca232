"""
Metrics endpoint for Prometheus scraping.

Usage:
    GET /api/metrics -> Prometheus text format metrics
"""

from fastapi import APIRouter, Depends, Response

from kds_api.core.dependencies import get_container
from kds_api.services import KdsContainer

router = APIRouter(prefix="/api", tags=["metrics"])


@router.get("/metrics", include_in_schema=False)
async def prometheus_metrics(container: KdsContainer = Depends(get_container)) -> Response:
    """
    Expose distribution metrics in Prometheus text format.
    Empty when metrics are disabled.
    """
    content = await container.metrics.export() if container.metrics is not None else ""
    return Response(
        content=content,
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
