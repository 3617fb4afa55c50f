"""API dependencies for FastAPI routes."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from gencache.services.generation import GenerationService


def get_generation_service(request: Request) -> GenerationService:
    """Return the engine built during application startup.

    Raises:
        HTTPException: If the lifespan has not initialized the service
    """
    service: GenerationService | None = getattr(request.app.state, "generation_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Generation service is not initialized",
        )
    return service


# Type alias for cleaner route signatures
Generation = Annotated[GenerationService, Depends(get_generation_service)]
