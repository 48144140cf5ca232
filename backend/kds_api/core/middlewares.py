"""
HTTP middlewares: correlation ids, response hardening, JSON-only bodies.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from shared.infrastructure.correlation import CorrelationIdMiddleware


SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers.update(SECURITY_HEADERS)
        if "server" in response.headers:
            del response.headers["server"]
        return response


class ContentTypeValidationMiddleware(BaseHTTPMiddleware):
    """
    415 for a POST/PATCH/PUT whose declared body is not JSON.
    Bodyless commands (finish without payload, heartbeat) send no
    Content-Type and pass through.
    """

    METHODS_WITH_BODY = frozenset({"POST", "PUT", "PATCH"})

    async def dispatch(self, request: Request, call_next):
        content_type = request.headers.get("content-type")
        if (
            request.method in self.METHODS_WITH_BODY
            and content_type
            and not content_type.startswith("application/json")
        ):
            return JSONResponse(status_code=415, content={"detail": "Request body must be application/json"})
        return await call_next(request)


def register_middlewares(app: FastAPI) -> None:
    # Last added runs first: the correlation id is bound before anything logs
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(ContentTypeValidationMiddleware)
    app.add_middleware(CorrelationIdMiddleware)
