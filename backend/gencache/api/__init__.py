"""API module exports."""

from gencache.api.deps import Generation, get_generation_service
from gencache.api.routes import generation_router, health_router

__all__ = [
    # Routers
    "generation_router",
    "health_router",
    # Dependencies
    "Generation",
    "get_generation_service",
]
