"""
Error taxonomy for the KDS backend.

HTTP-facing errors derive from AppException: each subclass fixes its status
code and log level, and the error is logged once, when constructed, with
whatever keyword context the caller passes.

StoreUnavailableError is the odd one out. It is raised by the Redis store
adapters, caught by the distribution cycle, and only reaches HTTP through
the 503 handler registered in kds_api.main.

    raise OrderNotFoundError(order_id)
    raise InvalidTransitionError("Order", "CANCELLED", "FINISHED", order_id=12)
"""

from typing import Any

from fastapi import HTTPException, status

from shared.config.logging import get_logger

logger = get_logger(__name__)


class AppException(HTTPException):
    """Logs itself on construction."""

    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    log_level: str = "warning"

    def __init__(self, detail: str, headers: dict[str, str] | None = None, **log_context: Any):
        getattr(logger, self.log_level)(
            detail,
            status_code=self.http_status,
            error=type(self).__name__,
            **log_context,
        )
        super().__init__(status_code=self.http_status, detail=detail, headers=headers)


# --- 404 ---------------------------------------------------------------------


class NotFoundError(AppException):
    http_status = status.HTTP_404_NOT_FOUND

    def __init__(self, entity: str, entity_id: int | str | None = None, **log_context: Any):
        detail = f"{entity} {entity_id} not found" if entity_id is not None else f"{entity} not found"
        super().__init__(detail, entity=entity, entity_id=entity_id, **log_context)


class _EntityNotFound(NotFoundError):
    entity = ""

    def __init__(self, entity_id: int | None = None, **log_context: Any):
        super().__init__(self.entity, entity_id, **log_context)


class OrderNotFoundError(_EntityNotFound):
    entity = "Order"


class ScreenNotFoundError(_EntityNotFound):
    entity = "Screen"


class QueueNotFoundError(_EntityNotFound):
    entity = "Queue"


class FilterNotFoundError(_EntityNotFound):
    """Also raised when the filter belongs to another queue."""

    entity = "Filter"


# --- 400 ---------------------------------------------------------------------


class ValidationError(AppException):
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(detail, **log_context)


class InvalidTransitionError(ValidationError):
    """A lifecycle operation was applied to an order in the wrong status."""

    def __init__(self, entity: str, from_status: str, to_status: str, **log_context: Any):
        super().__init__(
            f"{entity} cannot move from {from_status} to {to_status}",
            entity=entity,
            from_status=from_status,
            to_status=to_status,
            **log_context,
        )


# --- 409 ---------------------------------------------------------------------


class ConflictError(AppException):
    http_status = status.HTTP_409_CONFLICT

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(detail, **log_context)


class DuplicateEntityError(ConflictError):
    def __init__(self, entity: str, identifier: str | None = None, **log_context: Any):
        detail = f"{entity} '{identifier}' already exists" if identifier else f"{entity} already exists"
        super().__init__(detail, entity=entity, identifier=identifier, **log_context)


# --- 500 ---------------------------------------------------------------------


class InternalError(AppException):
    log_level = "error"

    def __init__(self, detail: str = "Internal server error", **log_context: Any):
        super().__init__(detail, **log_context)


# --- Stores ------------------------------------------------------------------


class StoreUnavailableError(Exception):
    """
    The rotation cursor or fast index could not be read or written.

    Wraps the underlying RedisError. Distribution aborts without persisting
    the cursor and the next cycle retries.
    """

    def __init__(self, operation: str, key: str | None = None, cause: Exception | None = None):
        self.operation = operation
        self.key = key
        self.cause = cause
        # Manifest entries already committed when a distribution aborted
        self.partial_manifest: list = []
        message = f"Store unavailable during {operation}"
        if key:
            message += f" ({key})"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)
