"""
FastAPI dependencies for the process-wide KDS components.
"""

from fastapi import Request

from shared.utils.exceptions import InternalError
from kds_api.services.container import KdsContainer


def get_container(request: Request) -> KdsContainer:
    """Components built in the lifespan and stored on app.state."""
    container = getattr(request.app.state, "kds", None)
    if container is None:
        raise InternalError("KDS components are not initialized")
    return container
