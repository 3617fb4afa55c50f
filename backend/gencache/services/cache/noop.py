"""No-op ephemeral tier used when caching is disabled or Redis is unreachable."""

from gencache.core.logging import get_logger
from gencache.services.cache.base import EphemeralCacheService
from gencache.services.cache.metrics import CacheMetrics

logger = get_logger(__name__)


class NoOpCacheService(EphemeralCacheService):
    """Every read misses and every write is dropped."""

    backend_name = "noop"

    def __init__(self, key_prefix: str = "", metrics: CacheMetrics | None = None) -> None:
        super().__init__(key_prefix=key_prefix, metrics=metrics)
        logger.warning("Ephemeral cache disabled, using no-op tier")

    @property
    def is_available(self) -> bool:
        return False

    async def get(self, key: str) -> bytes | None:
        return None

    async def set(self, key: str, value: bytes, ttl: int) -> bool:
        return False

    async def delete(self, key: str) -> bool:
        return False

    async def clear_namespace(self, prefix: str) -> int:
        return 0

    async def get_multi(self, keys: list[str]) -> dict[str, bytes]:
        return {}
