"""
KDS API main application.
Entry point for the FastAPI server.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from shared.config.settings import settings
from shared.config.logging import kds_logger as logger
from shared.utils.exceptions import StoreUnavailableError
from shared.utils.schemas import ErrorResponse
from kds_api.core import configure_cors, lifespan, register_middlewares
from kds_api.routers import (
    health_router,
    metrics_router,
    orders_router,
    polling_router,
    queues_router,
    screens_router,
)


app = FastAPI(
    title="KDS API",
    description="Kitchen display order distribution and balancing",
    version="0.1.0",
    lifespan=lifespan,
)

configure_cors(app)
register_middlewares(app)


@app.exception_handler(StoreUnavailableError)
async def store_unavailable_handler(request: Request, exc: StoreUnavailableError) -> JSONResponse:
    """Fast store outages surface as 503 so screens retry."""
    logger.warning(
        "Store unavailable",
        path=request.url.path,
        operation=exc.operation,
        key=exc.key,
        error=str(exc),
    )
    return JSONResponse(
        status_code=503,
        content=ErrorResponse(
            detail="Fast store unavailable, retry later",
            code="STORE_UNAVAILABLE",
        ).model_dump(),
    )


# =============================================================================
# Include Routers
# =============================================================================

app.include_router(health_router)
app.include_router(metrics_router)
app.include_router(orders_router)
app.include_router(screens_router)
app.include_router(queues_router)
app.include_router(polling_router)


# =============================================================================
# Development entry point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "kds_api.main:app",
        host="0.0.0.0",
        port=settings.api_port,
        reload=settings.debug,
    )
