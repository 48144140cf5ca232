"""
Application lifespan handler.
Manages startup and shutdown events for the FastAPI application.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from shared.infrastructure.db import engine, SessionLocal
from shared.infrastructure.redis import get_redis_pool, close_redis_pool
from shared.config.settings import settings
from shared.config.logging import setup_logging, kds_logger as logger
from kds_api.models import Base
from kds_api.services.container import build_container


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Runs on startup and shutdown.
    """
    setup_logging()

    config_errors = settings.validate_production_settings()
    if config_errors:
        for error in config_errors:
            logger.error(f"Configuration error: {error}")
        if settings.environment == "production":
            raise RuntimeError(
                f"Production configuration errors: {'; '.join(config_errors)}. "
                "Server will not start with this configuration."
            )

    logger.info("Starting KDS API", port=settings.api_port, env=settings.environment)

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created/verified")

    redis = await get_redis_pool()
    container = build_container(redis, SessionLocal)
    app.state.kds = container

    if settings.polling_autostart:
        await container.polling.start()

    yield

    logger.info("Shutting down KDS API")

    await container.polling.stop()

    await close_redis_pool()
    logger.info("Redis connection pool closed")
