"""Health check and monitoring endpoints."""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from gencache.api.deps import Generation
from gencache.api.schemas import HealthResponse, ServiceHealth
from gencache.core.config import get_settings

router = APIRouter(tags=["Health"])


@router.get(
    "/",
    summary="Root endpoint",
    response_description="API information and basic health status",
)
async def root() -> dict[str, Any]:
    """
    Root endpoint with API information.

    Returns basic API metadata including:
    - Application name and version
    - Current status
    - Environment name
    - Server timestamp
    """
    settings = get_settings()

    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "status": "healthy",
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "documentation": "/docs",
    }


async def _timed_health_check(
    name: str,
    check_fn: Any,
    timeout: float = 5.0
) -> tuple[str, bool, float, str | None]:
    """Execute a health check and measure its latency with timeout.

    Returns:
        Tuple of (name, healthy, latency_ms, error_message)
    """
    start = time.perf_counter()
    try:
        result = await asyncio.wait_for(check_fn(), timeout=timeout)
        latency = (time.perf_counter() - start) * 1000
        return (name, bool(result), latency, None)
    except asyncio.TimeoutError:
        latency = (time.perf_counter() - start) * 1000
        return (name, False, latency, f"Health check timed out after {timeout}s")
    except Exception as e:
        latency = (time.perf_counter() - start) * 1000
        return (name, False, latency, str(e))


def _storage_details(service: Any) -> dict[str, Any]:
    return {"type": "object-storage", "provider": service.store.store_name}


def _cache_details(service: Any) -> dict[str, Any]:
    provider = "upstash" if service.ephemeral.is_available else "not configured"
    return {"type": "redis", "provider": provider}


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Comprehensive health check",
    response_description="Detailed health status of both cache tiers",
)
async def health_check(service: Generation) -> HealthResponse:
    """
    Comprehensive health check endpoint for monitoring.

    Checks both cache tiers:
    - **Storage**: durable store reachability (unhealthy if down)
    - **Cache**: Redis/Upstash connectivity (degraded if down, requests fail open)

    Health checks are run in parallel with accurate per-service latency tracking.
    """
    settings = get_settings()
    services: dict[str, ServiceHealth] = {}
    overall_status = "healthy"

    tasks = [_timed_health_check("storage", service.store.check_health)]
    if service.ephemeral.is_available:
        tasks.append(_timed_health_check("cache", service.ephemeral.check_health))

    results = await asyncio.gather(*tasks)

    for name, healthy, latency, error in results:
        if name == "storage":
            details = _storage_details(service)
            if error:
                details["error"] = error
            services["storage"] = ServiceHealth(
                status="healthy" if healthy else "unhealthy",
                latency_ms=round(latency, 2),
                details=details,
            )
            if not healthy:
                overall_status = "unhealthy"

        elif name == "cache":
            cache_details = _cache_details(service)
            if error:
                cache_details["error"] = error
            services["cache"] = ServiceHealth(
                status="healthy" if healthy else "degraded",
                latency_ms=round(latency, 2),
                details=cache_details,
            )
            if not healthy and overall_status == "healthy":
                overall_status = "degraded"

    # Ephemeral tier replaced by the no-op tier
    if "cache" not in services:
        services["cache"] = ServiceHealth(status="degraded", details=_cache_details(service))
        if overall_status == "healthy":
            overall_status = "degraded"

    return HealthResponse(
        status=overall_status,
        timestamp=datetime.now(timezone.utc),
        version=settings.app_version,
        services=services,
    )


@router.get(
    "/health/live",
    summary="Liveness probe",
    response_description="Simple liveness check for orchestrators",
)
async def liveness() -> dict[str, str]:
    """
    Liveness probe endpoint.

    Returns 200 if the service process is running.
    This is a lightweight check that doesn't verify external dependencies.
    """
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get(
    "/health/cache",
    summary="Cache health check",
    response_description="Ephemeral tier connectivity status",
)
async def cache_health(service: Generation) -> JSONResponse:
    """
    Check ephemeral tier (Redis/Upstash) connectivity and response time.

    Always 200: the ephemeral tier is optional and requests fail open.
    """
    if not service.ephemeral.is_available:
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content={
                "service": "cache",
                **_cache_details(service),
                "status": "degraded",
                "message": "Cache service is not configured",
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )

    _, healthy, latency, error = await _timed_health_check(
        "cache", service.ephemeral.check_health
    )

    response_data: dict[str, Any] = {
        "service": "cache",
        **_cache_details(service),
        "status": "healthy" if healthy else "degraded",
        "latency_ms": round(latency, 2),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if error:
        response_data["error"] = error

    return JSONResponse(status_code=status.HTTP_200_OK, content=response_data)


@router.get(
    "/health/storage",
    summary="Durable storage health check",
    response_description="Durable store reachability",
)
async def storage_health(service: Generation) -> JSONResponse:
    """
    Check the durable store and its response time.

    Returns 503 Service Unavailable when the store is unreachable.
    """
    _, healthy, latency, error = await _timed_health_check("storage", service.store.check_health)

    response_data: dict[str, Any] = {
        "service": "storage",
        **_storage_details(service),
        "status": "healthy" if healthy else "unhealthy",
        "latency_ms": round(latency, 2),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if error:
        response_data["error"] = error

    status_code = status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=status_code, content=response_data)
