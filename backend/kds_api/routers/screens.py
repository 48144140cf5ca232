"""
Screen router.
Registry CRUD, heartbeats, standby/activation and per-screen order views.
"""

from fastapi import APIRouter, Depends, Header, Query, status
from sqlalchemy.orm import Session

from shared.infrastructure.db import get_db
from shared.utils.schemas import CommandResult, ScreenStatusType
from shared.utils.kds_schemas import (
    OrderOutput,
    ScreenCreate,
    ScreenCredentialOutput,
    ScreenOrderIdsOutput,
    ScreenOutput,
    ScreenUpdate,
)
from kds_api.core.dependencies import get_container
from kds_api.routers._common import Pagination, get_pagination
from kds_api.services import KdsContainer, OrderService, ScreenRegistry

router = APIRouter(prefix="/api/screens", tags=["screens"])


def _get_registry(db: Session, container: KdsContainer | None = None) -> ScreenRegistry:
    if container is None:
        return ScreenRegistry(db)
    return ScreenRegistry(db, balancer=container.balancer, notifier=container.notifier)


def _get_order_service(db: Session, container: KdsContainer) -> OrderService:
    return OrderService(db, container.index, container.notifier)


@router.get("", response_model=list[ScreenOutput])
def list_screens(
    queue_id: int | None = None,
    status_filter: ScreenStatusType | None = Query(default=None, alias="status"),
    pagination: Pagination = Depends(get_pagination),
    db: Session = Depends(get_db),
) -> list[ScreenOutput]:
    screens = _get_registry(db).list_screens(
        queue_id=queue_id,
        status=status_filter,
        limit=pagination.limit,
        offset=pagination.offset,
    )
    return [ScreenOutput.model_validate(s) for s in screens]


@router.post("", response_model=ScreenCredentialOutput, status_code=status.HTTP_201_CREATED)
def create_screen(
    body: ScreenCreate,
    db: Session = Depends(get_db),
) -> ScreenCredentialOutput:
    """
    Register a screen. The credential is only returned here and on
    regeneration.
    """
    screen = _get_registry(db).create_screen(body)
    return ScreenCredentialOutput(screen_id=screen.id, api_key=screen.api_key)


@router.get("/me", response_model=ScreenOutput)
def get_current_screen(
    x_screen_key: str = Header(..., alias="X-Screen-Key"),
    db: Session = Depends(get_db),
) -> ScreenOutput:
    """Screen identified by the credential it was issued."""
    return ScreenOutput.model_validate(_get_registry(db).get_by_api_key(x_screen_key))


@router.get("/{screen_id}", response_model=ScreenOutput)
def get_screen(
    screen_id: int,
    db: Session = Depends(get_db),
) -> ScreenOutput:
    return ScreenOutput.model_validate(_get_registry(db).get_screen(screen_id))


@router.patch("/{screen_id}", response_model=ScreenOutput)
def update_screen(
    screen_id: int,
    body: ScreenUpdate,
    db: Session = Depends(get_db),
) -> ScreenOutput:
    return ScreenOutput.model_validate(_get_registry(db).update_screen(screen_id, body))


@router.delete("/{screen_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_screen(
    screen_id: int,
    db: Session = Depends(get_db),
    container: KdsContainer = Depends(get_container),
) -> None:
    await _get_registry(db, container).delete_screen(screen_id)


@router.post("/{screen_id}/regenerate-key", response_model=ScreenCredentialOutput)
def regenerate_key(
    screen_id: int,
    db: Session = Depends(get_db),
) -> ScreenCredentialOutput:
    api_key = _get_registry(db).regenerate_key(screen_id)
    return ScreenCredentialOutput(screen_id=screen_id, api_key=api_key)


# =============================================================================
# Activity
# =============================================================================


@router.post("/{screen_id}/heartbeat", response_model=ScreenOutput)
def heartbeat(
    screen_id: int,
    db: Session = Depends(get_db),
) -> ScreenOutput:
    """Sent periodically by the screen. Brings an OFFLINE screen back ONLINE."""
    return ScreenOutput.model_validate(_get_registry(db).heartbeat(screen_id))


@router.post("/{screen_id}/standby", response_model=CommandResult)
async def set_standby(
    screen_id: int,
    db: Session = Depends(get_db),
    container: KdsContainer = Depends(get_container),
) -> CommandResult:
    """Stop sending new orders to the screen. Its current orders stay."""
    await _get_registry(db, container).set_standby(screen_id)
    return CommandResult(success=True, message=f"Screen {screen_id} is in standby")


@router.post("/{screen_id}/activate", response_model=CommandResult)
async def activate(
    screen_id: int,
    db: Session = Depends(get_db),
    container: KdsContainer = Depends(get_container),
) -> CommandResult:
    await _get_registry(db, container).activate(screen_id)
    return CommandResult(success=True, message=f"Screen {screen_id} is online")


# =============================================================================
# Orders on a screen
# =============================================================================


@router.get("/{screen_id}/orders", response_model=list[OrderOutput])
def get_screen_orders(
    screen_id: int,
    db: Session = Depends(get_db),
    container: KdsContainer = Depends(get_container),
) -> list[OrderOutput]:
    """Open orders of the screen, oldest first."""
    _get_registry(db).get_screen(screen_id)
    orders = container.balancer.get_orders_for_screen(db, screen_id)
    return [OrderOutput.model_validate(o) for o in orders]


@router.get("/{screen_id}/orders/recently-finished", response_model=list[OrderOutput])
def get_recently_finished(
    screen_id: int,
    minutes_back: int | None = Query(default=None, ge=1, le=24 * 60),
    limit: int | None = Query(default=None, ge=1, le=100),
    db: Session = Depends(get_db),
    container: KdsContainer = Depends(get_container),
) -> list[OrderOutput]:
    """Orders the screen finished within the undo window, newest first."""
    _get_registry(db).get_screen(screen_id)
    orders = _get_order_service(db, container).recently_finished(screen_id, minutes_back, limit)
    return [OrderOutput.model_validate(o) for o in orders]


@router.get("/{screen_id}/order-ids", response_model=ScreenOrderIdsOutput)
async def get_screen_order_ids(
    screen_id: int,
    db: Session = Depends(get_db),
    container: KdsContainer = Depends(get_container),
) -> ScreenOrderIdsOutput:
    """Open order ids from the fast index, falling back to the database."""
    _get_registry(db).get_screen(screen_id)
    return await _get_order_service(db, container).screen_order_ids(screen_id)


@router.post("/{screen_id}/rebuild-index", response_model=ScreenOrderIdsOutput)
async def rebuild_index(
    screen_id: int,
    db: Session = Depends(get_db),
    container: KdsContainer = Depends(get_container),
) -> ScreenOrderIdsOutput:
    """Rewrite the screen's fast index from the database."""
    _get_registry(db).get_screen(screen_id)
    order_ids = await _get_order_service(db, container).rebuild_screen_index(screen_id)
    return ScreenOrderIdsOutput(screen_id=screen_id, order_ids=order_ids, source="database")
