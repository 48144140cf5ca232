"""
CORS for the browser clients: kitchen screens and the back office.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shared.config.settings import settings


# Used when ALLOWED_ORIGINS is empty (local Vite dev servers)
DEFAULT_CORS_ORIGINS = [
    "http://localhost:5173",  # screens
    "http://localhost:5174",  # back office
    "http://127.0.0.1:5173",
    "http://127.0.0.1:5174",
]

ALLOWED_METHODS = ["GET", "POST", "PATCH", "DELETE", "OPTIONS"]

# Screens authenticate /api/screens/me with X-Screen-Key
ALLOWED_HEADERS = ["Accept", "Content-Type", "X-Request-ID", "X-Screen-Key"]


def get_cors_origins() -> list[str]:
    origins = [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
    return origins or DEFAULT_CORS_ORIGINS


def configure_cors(app: FastAPI) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(),
        allow_credentials=True,
        allow_methods=ALLOWED_METHODS,
        allow_headers=ALLOWED_HEADERS,
        expose_headers=["X-Request-ID"],
        # No preflight caching while developing
        max_age=0 if settings.environment == "development" else 600,
    )
