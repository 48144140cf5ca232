"""
Shared Pydantic schemas used across the application.
"""

from typing import Literal

from pydantic import BaseModel


# =============================================================================
# Common Types
# =============================================================================

OrderStatusType = Literal["PENDING", "IN_PROGRESS", "FINISHED", "CANCELLED"]
ScreenStatusType = Literal["ONLINE", "OFFLINE", "STANDBY"]
StrategyType = Literal["SINGLE", "DISTRIBUTED"]


# =============================================================================
# Common Responses
# =============================================================================


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
    code: str | None = None


class CommandResult(BaseModel):
    """Outcome of an operator command."""

    success: bool
    message: str
