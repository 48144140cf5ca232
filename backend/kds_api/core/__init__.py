"""
Application core: lifespan, middlewares, CORS and shared dependencies.
"""

from kds_api.core.lifespan import lifespan
from kds_api.core.middlewares import register_middlewares
from kds_api.core.cors import configure_cors
from kds_api.core.dependencies import get_container

__all__ = [
    "lifespan",
    "register_middlewares",
    "configure_cors",
    "get_container",
]
