"""
Liveness and dependency health.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shared.config.settings import settings
from shared.infrastructure.db import get_db
from shared.infrastructure.redis import check_redis_health


router = APIRouter(prefix="/api", tags=["health"])

SERVICE_NAME = "kds-api"


@router.get("/health")
def health_check():
    """Liveness only; touches no dependency."""
    return {"status": "healthy", "service": SERVICE_NAME, "environment": settings.environment}


def _check_database(db: Session) -> dict[str, str]:
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        return {"status": "unhealthy", "error": str(e)}
    return {"status": "healthy"}


@router.get("/health/detailed")
async def detailed_health_check(request: Request, db: Session = Depends(get_db)):
    """
    PostgreSQL and Redis reachability plus the cycle runner status.

    503 when either store is down: screens keep their last orders but no
    new distribution happens.
    """
    dependencies = {
        "postgresql": _check_database(db),
        "redis": await check_redis_health(),
    }
    healthy = all(dep["status"] == "healthy" for dep in dependencies.values())

    body = {
        "status": "healthy" if healthy else "degraded",
        "service": SERVICE_NAME,
        "environment": settings.environment,
        "dependencies": dependencies,
    }
    container = getattr(request.app.state, "kds", None)
    if container is not None:
        body["polling"] = container.polling.status().model_dump(mode="json")

    if not healthy:
        return JSONResponse(content=body, status_code=503)
    return body
