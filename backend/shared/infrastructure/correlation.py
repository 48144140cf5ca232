"""
Correlation ids for logs.

HTTP requests take theirs from the X-Request-ID header (or a fresh uuid);
each polling cycle opens its own scope so every log line it emits can be
grouped together.
"""

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Callable, Iterator

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

# Context variable for the active correlation id
correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")


def get_correlation_id() -> str:
    """Get the current correlation id."""
    return correlation_id_var.get()


@contextmanager
def correlation_scope(prefix: str = "cycle") -> Iterator[str]:
    """
    Bind a fresh correlation id for the duration of the block.

    Usage:
        with correlation_scope("cycle") as cycle_id:
            logger.info("Cycle started")
    """
    correlation_id = f"{prefix}-{uuid.uuid4().hex[:8]}"
    token = correlation_id_var.set(correlation_id)
    try:
        yield correlation_id
    finally:
        correlation_id_var.reset(token)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add correlation ids to all requests.

    - If X-Request-ID header is present, uses that value
    - Otherwise generates a new UUID
    - Returns the id in response headers
    """

    HEADER_NAME = "X-Request-ID"

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        request_id = request.headers.get(self.HEADER_NAME) or str(uuid.uuid4())

        token = correlation_id_var.set(request_id)
        try:
            request.state.request_id = request_id
            response = await call_next(request)
            response.headers[self.HEADER_NAME] = request_id
            return response
        finally:
            correlation_id_var.reset(token)


class CorrelationIdFilter:
    """
    Logging filter that adds correlation_id to log records.

    Usage:
        import logging
        handler = logging.StreamHandler()
        handler.addFilter(CorrelationIdFilter())
    """

    def filter(self, record) -> bool:
        record.correlation_id = correlation_id_var.get() or "-"
        return True
