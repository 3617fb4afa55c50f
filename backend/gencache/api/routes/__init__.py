"""Routes module exports."""

from gencache.api.routes.generation import router as generation_router
from gencache.api.routes.health import router as health_router

__all__ = [
    "generation_router",
    "health_router",
]
