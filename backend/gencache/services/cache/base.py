"""Ephemeral cache tier contract.

Every implementation fails open: reads degrade to a miss, writes and
deletes degrade to a logged no-op. Nothing here ever raises to callers.
"""

from abc import ABC, abstractmethod

from gencache.services.cache.metrics import CacheMetrics


class EphemeralCacheService(ABC):
    """Fast TTL key/value tier in front of the durable store."""

    backend_name: str = "base"

    def __init__(self, key_prefix: str = "", metrics: CacheMetrics | None = None) -> None:
        self._key_prefix = key_prefix
        self._metrics = metrics or CacheMetrics()

    @property
    def metrics(self) -> CacheMetrics:
        """Hit/miss/error counters. Read-only to callers."""
        return self._metrics

    @property
    @abstractmethod
    def is_available(self) -> bool:
        """Whether a real backing tier is connected."""
        ...

    def _make_key(self, key: str) -> str:
        """Apply the tenant prefix shared by every key on the instance."""
        return f"{self._key_prefix}{key}"

    @abstractmethod
    async def get(self, key: str) -> bytes | None:
        """Return the cached bytes or None on miss or failure."""
        ...

    @abstractmethod
    async def set(self, key: str, value: bytes, ttl: int) -> bool:
        """Store bytes with a TTL. Returns False when skipped or failed."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        ...

    @abstractmethod
    async def clear_namespace(self, prefix: str) -> int:
        """Delete every key under ``prefix``. Returns the number removed."""
        ...

    @abstractmethod
    async def get_multi(self, keys: list[str]) -> dict[str, bytes]:
        """Batch get. Only keys with values appear in the result."""
        ...

    async def check_health(self, timeout: float = 5.0) -> bool:
        return False

    async def close(self) -> None:
        return None
