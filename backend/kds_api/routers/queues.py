"""
Queue router.
Queue and filter administration, balance stats and rotation reset.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from shared.infrastructure.db import get_db
from shared.utils.schemas import CommandResult
from shared.utils.kds_schemas import (
    BalanceStatsOutput,
    FilterCreate,
    FilterOutput,
    FilterUpdate,
    QueueCreate,
    QueueOutput,
    QueueUpdate,
)
from kds_api.core.dependencies import get_container
from kds_api.services import KdsContainer, QueueService

router = APIRouter(prefix="/api/queues", tags=["queues"])


def _get_service(db: Session) -> QueueService:
    return QueueService(db)


@router.get("", response_model=list[QueueOutput])
def list_queues(db: Session = Depends(get_db)) -> list[QueueOutput]:
    return [QueueOutput.model_validate(q) for q in _get_service(db).list_queues()]


@router.post("", response_model=QueueOutput, status_code=status.HTTP_201_CREATED)
def create_queue(body: QueueCreate, db: Session = Depends(get_db)) -> QueueOutput:
    return QueueOutput.model_validate(_get_service(db).create_queue(body))


@router.get("/{queue_id}", response_model=QueueOutput)
def get_queue(queue_id: int, db: Session = Depends(get_db)) -> QueueOutput:
    return QueueOutput.model_validate(_get_service(db).get_queue(queue_id))


@router.patch("/{queue_id}", response_model=QueueOutput)
def update_queue(
    queue_id: int,
    body: QueueUpdate,
    db: Session = Depends(get_db),
) -> QueueOutput:
    """Rename a queue, switch its strategy or (de)activate it."""
    return QueueOutput.model_validate(_get_service(db).update_queue(queue_id, body))


@router.delete("/{queue_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_queue(queue_id: int, db: Session = Depends(get_db)) -> None:
    """Delete a queue with no screens left."""
    _get_service(db).delete_queue(queue_id)


# =============================================================================
# Balancing
# =============================================================================


@router.get("/{queue_id}/balance", response_model=BalanceStatsOutput)
async def get_balance_stats(
    queue_id: int,
    db: Session = Depends(get_db),
    container: KdsContainer = Depends(get_container),
) -> BalanceStatsOutput:
    """Open orders per screen and the current rotation cursor."""
    return await container.balancer.get_balance_stats(db, queue_id)


@router.post("/{queue_id}/reset-rotation", response_model=CommandResult)
async def reset_rotation(
    queue_id: int,
    db: Session = Depends(get_db),
    container: KdsContainer = Depends(get_container),
) -> CommandResult:
    """Restart the round-robin at the queue's first active screen."""
    _get_service(db).get_queue(queue_id)
    await container.balancer.reset_balance_index(queue_id)
    return CommandResult(success=True, message=f"Rotation reset for queue {queue_id}")


# =============================================================================
# Filters
# =============================================================================


@router.get("/{queue_id}/filters", response_model=list[FilterOutput])
def list_filters(queue_id: int, db: Session = Depends(get_db)) -> list[FilterOutput]:
    return [FilterOutput.model_validate(f) for f in _get_service(db).list_filters(queue_id)]


@router.post(
    "/{queue_id}/filters",
    response_model=FilterOutput,
    status_code=status.HTTP_201_CREATED,
)
def add_filter(
    queue_id: int,
    body: FilterCreate,
    db: Session = Depends(get_db),
) -> FilterOutput:
    return FilterOutput.model_validate(_get_service(db).add_filter(queue_id, body))


@router.patch("/{queue_id}/filters/{filter_id}", response_model=FilterOutput)
def update_filter(
    queue_id: int,
    filter_id: int,
    body: FilterUpdate,
    db: Session = Depends(get_db),
) -> FilterOutput:
    return FilterOutput.model_validate(_get_service(db).update_filter(queue_id, filter_id, body))


@router.delete("/{queue_id}/filters/{filter_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_filter(
    queue_id: int,
    filter_id: int,
    db: Session = Depends(get_db),
) -> None:
    _get_service(db).delete_filter(queue_id, filter_id)
