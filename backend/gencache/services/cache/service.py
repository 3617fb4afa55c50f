"""Ephemeral tier factory.

Chooses the Upstash implementation only when caching is enabled, the
credentials are present and a bounded-timeout ping succeeds; otherwise
substitutes the no-op tier so callers never see the difference.
"""

from upstash_redis.asyncio import Redis

from gencache.core.config import Settings
from gencache.core.logging import get_logger
from gencache.services.cache.base import EphemeralCacheService
from gencache.services.cache.metrics import CacheMetrics
from gencache.services.cache.noop import NoOpCacheService
from gencache.services.cache.upstash import UpstashCacheService

logger = get_logger(__name__)


async def create_cache_service(settings: Settings) -> EphemeralCacheService:
    """Build the ephemeral tier for this process."""
    metrics = CacheMetrics(reset_interval=settings.metrics_reset_interval_seconds)
    prefix = settings.cache_key_prefix

    if not settings.cache_enabled:
        logger.info("Caching disabled via CACHE_ENABLED=false")
        return NoOpCacheService(key_prefix=prefix, metrics=metrics)

    if not settings.redis_available:
        logger.info("Redis cache not configured, caching disabled")
        return NoOpCacheService(key_prefix=prefix, metrics=metrics)

    try:
        client = Redis(
            url=settings.upstash_redis_rest_url,
            token=settings.upstash_redis_rest_token,
        )
    except Exception as e:
        logger.warning("Failed to initialize Redis cache", error=str(e))
        return NoOpCacheService(key_prefix=prefix, metrics=metrics)

    service = UpstashCacheService(
        client,
        key_prefix=prefix,
        timeout=settings.ephemeral_timeout_seconds,
        admin_timeout=settings.ephemeral_admin_timeout_seconds,
        metrics=metrics,
    )
    if not await service.check_health(timeout=settings.ephemeral_probe_timeout_seconds):
        logger.warning("Redis ping failed, falling back to no-op cache")
        await service.close()
        return NoOpCacheService(key_prefix=prefix, metrics=metrics)

    logger.info("Redis connection healthy, using Upstash cache")
    return service
