from datetime import datetime
from typing import List
from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.config.constants import Limits
from shared.utils.schemas import OrderStatusType, ScreenStatusType, StrategyType


# =============================================================================
# Ingestion
# =============================================================================

class OrderItemInput(BaseModel):
    """A normalized line item as delivered by the point of sale."""
    name: str = Field(min_length=1, max_length=Limits.MAX_NAME_LENGTH)
    quantity: int = Field(default=1, ge=Limits.MIN_QUANTITY, le=Limits.MAX_QUANTITY)
    modifier: str | None = Field(default=None, max_length=Limits.MAX_NOTES_LENGTH)
    notes: str | None = Field(default=None, max_length=Limits.MAX_NOTES_LENGTH)

class OrderInput(BaseModel):
    """A normalized order. external_id is the upstream idempotency key."""
    external_id: str = Field(min_length=1, max_length=Limits.MAX_NAME_LENGTH)
    identifier: str = Field(min_length=1, max_length=Limits.MAX_NAME_LENGTH)
    channel: str = Field(default="POS", max_length=Limits.MAX_NAME_LENGTH)
    customer_name: str | None = Field(default=None, max_length=Limits.MAX_NAME_LENGTH)
    items: List[OrderItemInput] = Field(default_factory=list)

class PushOrdersRequest(BaseModel):
    """Batch of orders submitted through the push API."""
    orders: List[OrderInput] = Field(min_length=1, max_length=Limits.MAX_ORDERS_PER_BATCH)

class PushOrdersResponse(BaseModel):
    """Orders accepted for the next cycle."""
    accepted: int
    pending: int


# =============================================================================
# Orders
# =============================================================================

class OrderItemOutput(BaseModel):
    """Output for a single order item."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    quantity: int
    modifier: str | None = None
    notes: str | None = None

class OrderOutput(BaseModel):
    """Output for an order with its items."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    external_id: str
    identifier: str
    channel: str
    customer_name: str | None = None
    status: OrderStatusType
    screen_id: int | None = None
    created_at: datetime
    finished_at: datetime | None = None
    items: List[OrderItemOutput]

class FinishOrderRequest(BaseModel):
    """Finish an order shown on a screen."""
    screen_id: int = Field(gt=0)

class CancelOrderRequest(BaseModel):
    """Cancel an order. The reason is only logged."""
    reason: str | None = Field(default=None, max_length=Limits.MAX_NOTES_LENGTH)

class OrderStatsOutput(BaseModel):
    """Kitchen-wide order counters."""
    pending: int
    in_progress: int
    finished_today: int
    avg_finish_seconds: float | None = None

class ScreenOrderIdsOutput(BaseModel):
    """Open order ids on a screen and where they were read from."""
    screen_id: int
    order_ids: List[int]
    source: str  # "index" or "database"


# =============================================================================
# Screens
# =============================================================================

class ScreenCreate(BaseModel):
    """Register a new screen in a queue."""
    name: str = Field(min_length=1, max_length=Limits.MAX_NAME_LENGTH)
    address: str | None = Field(default=None, max_length=Limits.MAX_NAME_LENGTH)
    queue_id: int = Field(gt=0)

class ScreenUpdate(BaseModel):
    """Partial screen update."""
    name: str | None = Field(default=None, min_length=1, max_length=Limits.MAX_NAME_LENGTH)
    address: str | None = Field(default=None, max_length=Limits.MAX_NAME_LENGTH)
    queue_id: int | None = Field(default=None, gt=0)

class ScreenOutput(BaseModel):
    """Output for a screen. The credential is never listed."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    address: str | None = None
    queue_id: int
    status: ScreenStatusType
    last_heartbeat: datetime | None = None
    created_at: datetime

class ScreenCredentialOutput(BaseModel):
    """Freshly issued screen credential."""
    screen_id: int
    api_key: str


# =============================================================================
# Queues and filters
# =============================================================================

class FilterCreate(BaseModel):
    """New content filter for a queue."""
    pattern: str = Field(min_length=1, max_length=Limits.MAX_PATTERN_LENGTH)
    suppress: bool = False
    active: bool = True

    @field_validator("pattern")
    @classmethod
    def pattern_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("pattern must not be blank")
        return v

class FilterUpdate(BaseModel):
    """Partial filter update."""
    pattern: str | None = Field(default=None, min_length=1, max_length=Limits.MAX_PATTERN_LENGTH)
    suppress: bool | None = None
    active: bool | None = None

    @field_validator("pattern")
    @classmethod
    def pattern_not_blank(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            raise ValueError("pattern must not be blank")
        return v

class FilterOutput(BaseModel):
    """Output for a filter."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    queue_id: int
    pattern: str
    suppress: bool
    active: bool

class QueueCreate(BaseModel):
    """New queue."""
    name: str = Field(min_length=1, max_length=Limits.MAX_NAME_LENGTH)
    strategy: StrategyType = "DISTRIBUTED"
    active: bool = True

class QueueUpdate(BaseModel):
    """Partial queue update."""
    name: str | None = Field(default=None, min_length=1, max_length=Limits.MAX_NAME_LENGTH)
    strategy: StrategyType | None = None
    active: bool | None = None

class QueueOutput(BaseModel):
    """Output for a queue with its filters."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    strategy: StrategyType
    active: bool
    filters: List[FilterOutput] = Field(default_factory=list)


# =============================================================================
# Balancing and polling
# =============================================================================

class ScreenLoad(BaseModel):
    """Open orders currently on one screen."""
    screen_id: int
    name: str
    status: ScreenStatusType
    open_orders: int

class BalanceStatsOutput(BaseModel):
    """Distribution snapshot for a queue."""
    queue_id: int
    queue_name: str
    strategy: StrategyType
    active_screens: int
    total_screens: int
    total_orders: int
    rotation_cursor: int | None = None
    screens: List[ScreenLoad]

class PollingStatusOutput(BaseModel):
    """Cycle runner status."""
    running: bool
    interval_seconds: float
    cycles: int
    last_cycle_at: datetime | None = None
    last_error: str | None = None
    pending_push_orders: int

class CycleSummaryOutput(BaseModel):
    """Result of a forced cycle."""
    correlation_id: str
    ingested: int
    offered: int
    assigned: int
    deleted: int
    per_screen: dict[int, int]
    duration_seconds: float
