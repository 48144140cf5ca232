"""
Utilities module: Exceptions, schemas.
"""

from shared.utils.exceptions import (
    NotFoundError,
    ValidationError,
    ConflictError,
    StoreUnavailableError,
)
from shared.utils.schemas import ErrorResponse, CommandResult

__all__ = [
    # exceptions
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "StoreUnavailableError",
    # schemas
    "ErrorResponse",
    "CommandResult",
]
