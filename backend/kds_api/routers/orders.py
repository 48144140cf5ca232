"""
Order router.
Push ingestion plus the lifecycle commands screens send (finish, undo,
cancel, start, requeue).
Thin router delegating to OrderService.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from shared.infrastructure.db import get_db
from shared.utils.schemas import OrderStatusType
from shared.utils.kds_schemas import (
    CancelOrderRequest,
    FinishOrderRequest,
    OrderOutput,
    OrderStatsOutput,
    PushOrdersRequest,
    PushOrdersResponse,
)
from kds_api.core.dependencies import get_container
from kds_api.repositories import OrderFilters
from kds_api.routers._common import Pagination, get_pagination
from kds_api.services import KdsContainer, OrderService

router = APIRouter(prefix="/api/orders", tags=["orders"])


def _get_service(db: Session, container: KdsContainer) -> OrderService:
    return OrderService(db, container.index, container.notifier)


@router.post("", response_model=PushOrdersResponse, status_code=status.HTTP_202_ACCEPTED)
def push_orders(
    body: PushOrdersRequest,
    container: KdsContainer = Depends(get_container),
) -> PushOrdersResponse:
    """
    Hand normalized orders to the next polling cycle.
    Re-delivered external ids are ignored at ingestion.
    """
    accepted = container.push_feed.submit(body.orders)
    return PushOrdersResponse(accepted=accepted, pending=container.push_feed.pending)


@router.get("", response_model=list[OrderOutput])
def list_orders(
    status_filter: OrderStatusType | None = Query(default=None, alias="status"),
    screen_id: int | None = None,
    pagination: Pagination = Depends(get_pagination),
    db: Session = Depends(get_db),
    container: KdsContainer = Depends(get_container),
) -> list[OrderOutput]:
    filters = OrderFilters(
        status=status_filter,
        screen_id=screen_id,
        limit=pagination.limit,
        offset=pagination.offset,
    )
    orders = _get_service(db, container).list_orders(filters)
    return [OrderOutput.model_validate(o) for o in orders]


@router.get("/stats", response_model=OrderStatsOutput)
def get_order_stats(
    db: Session = Depends(get_db),
    container: KdsContainer = Depends(get_container),
) -> OrderStatsOutput:
    """Open counts and today's finishing figures."""
    return _get_service(db, container).get_order_stats()


@router.get("/{order_id}", response_model=OrderOutput)
def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    container: KdsContainer = Depends(get_container),
) -> OrderOutput:
    return OrderOutput.model_validate(_get_service(db, container).get_order(order_id))


@router.post("/{order_id}/finish", response_model=OrderOutput)
async def finish_order(
    order_id: int,
    body: FinishOrderRequest,
    db: Session = Depends(get_db),
    container: KdsContainer = Depends(get_container),
) -> OrderOutput:
    """Mark an order FINISHED from the screen that shows it."""
    order = await _get_service(db, container).finish(order_id, body.screen_id)
    return OrderOutput.model_validate(order)


@router.post("/{order_id}/undo", response_model=OrderOutput)
async def undo_finish(
    order_id: int,
    db: Session = Depends(get_db),
    container: KdsContainer = Depends(get_container),
) -> OrderOutput:
    """Bring a FINISHED order back to PENDING on its screen."""
    order = await _get_service(db, container).undo_finish(order_id)
    return OrderOutput.model_validate(order)


@router.post("/{order_id}/cancel", response_model=OrderOutput)
async def cancel_order(
    order_id: int,
    body: CancelOrderRequest | None = None,
    db: Session = Depends(get_db),
    container: KdsContainer = Depends(get_container),
) -> OrderOutput:
    reason = body.reason if body else None
    order = await _get_service(db, container).cancel(order_id, reason)
    return OrderOutput.model_validate(order)


@router.post("/{order_id}/start", response_model=OrderOutput)
async def start_order(
    order_id: int,
    db: Session = Depends(get_db),
    container: KdsContainer = Depends(get_container),
) -> OrderOutput:
    order = await _get_service(db, container).start(order_id)
    return OrderOutput.model_validate(order)


@router.post("/{order_id}/requeue", response_model=OrderOutput)
async def requeue_order(
    order_id: int,
    db: Session = Depends(get_db),
    container: KdsContainer = Depends(get_container),
) -> OrderOutput:
    order = await _get_service(db, container).requeue(order_id)
    return OrderOutput.model_validate(order)
