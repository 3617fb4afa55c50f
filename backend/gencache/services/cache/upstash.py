"""Upstash Redis implementation of the ephemeral tier.

Redis over REST only stores strings, so binary artifacts are stored
base64 encoded. Every call is bounded by a short timeout; any failure
(timeout, transport, decode) degrades to the fail-open default.
"""

import asyncio
import base64
import binascii
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from upstash_redis.asyncio import Redis

from gencache.core.exceptions import EphemeralTierError
from gencache.core.logging import get_logger
from gencache.services.cache.base import EphemeralCacheService
from gencache.services.cache.metrics import CacheMetrics

logger = get_logger(__name__)

T = TypeVar("T")

_DELETE_BATCH = 100


def _namespace_of(key: str) -> str:
    return key.split(":", 1)[0]


class UpstashCacheService(EphemeralCacheService):
    """Async Redis caching with graceful degradation."""

    backend_name = "upstash"

    def __init__(
        self,
        client: Redis,
        *,
        key_prefix: str = "",
        timeout: float = 0.25,
        admin_timeout: float = 10.0,
        metrics: CacheMetrics | None = None,
    ) -> None:
        super().__init__(key_prefix=key_prefix, metrics=metrics)
        self._client = client
        self._timeout = timeout
        self._admin_timeout = admin_timeout
        logger.info("Redis cache initialized", key_prefix=key_prefix, timeout=timeout)

    @property
    def is_available(self) -> bool:
        return True

    async def _run(
        self,
        operation: str,
        call: Callable[[], Awaitable[T]],
        namespace: str = "",
        timeout: float | None = None,
    ) -> T:
        """Await a Redis call under the tier timeout, normalizing failures."""
        timeout = timeout or self._timeout
        try:
            return await asyncio.wait_for(call(), timeout=timeout)
        except asyncio.TimeoutError:
            error = f"{operation} timed out after {timeout}s"
        except Exception as e:
            error = f"{operation} failed: {e}"
        if namespace:
            self._metrics.record_error(namespace)
        raise EphemeralTierError(error)

    # ========== String operations ==========

    async def get(self, key: str) -> bytes | None:
        try:
            result = await self._run("get", lambda: self._client.get(self._make_key(key)), _namespace_of(key))
        except EphemeralTierError as e:
            logger.warning("Cache get failed", key=key, error=e.message)
            return None

        if not isinstance(result, str):
            return None
        try:
            return base64.b64decode(result, validate=True)
        except (binascii.Error, ValueError):
            logger.warning("Cache value decode failed", key=key)
            return None

    async def set(self, key: str, value: bytes, ttl: int) -> bool:
        encoded = base64.b64encode(value).decode("ascii")
        try:
            await self._run(
                "set",
                lambda: self._client.set(self._make_key(key), encoded, ex=ttl),
                _namespace_of(key),
            )
            return True
        except EphemeralTierError as e:
            logger.warning("Cache set failed", key=key, error=e.message)
            return False

    async def delete(self, key: str) -> bool:
        try:
            await self._run("delete", lambda: self._client.delete(self._make_key(key)), _namespace_of(key))
            return True
        except EphemeralTierError as e:
            logger.warning("Cache delete failed", key=key, error=e.message)
            return False

    async def clear_namespace(self, prefix: str) -> int:
        """Delete all keys under a namespace prefix.

        Upstash's REST API has no streaming SCAN, so KEYS is used with a
        pattern confined to this instance's prefix. Both run under the
        longer operator timeout. A failed batch stops the run and the keys
        already removed are still reported.
        """
        namespace = prefix.rstrip(":")
        pattern = self._make_key(f"{namespace}:*")
        try:
            keys: list[str] = await self._run(
                "keys", lambda: self._client.keys(pattern), namespace, self._admin_timeout
            )
        except EphemeralTierError as e:
            logger.warning("Cache clear namespace failed", namespace=namespace, error=e.message)
            return 0

        deleted = 0
        for start in range(0, len(keys), _DELETE_BATCH):
            batch = keys[start:start + _DELETE_BATCH]
            try:
                removed = await self._run(
                    "delete", lambda: self._client.delete(*batch), namespace, self._admin_timeout
                )
            except EphemeralTierError as e:
                logger.warning(
                    "Cache clear namespace interrupted",
                    namespace=namespace,
                    deleted=deleted,
                    remaining=len(keys) - start,
                    error=e.message,
                )
                return deleted
            deleted += removed if isinstance(removed, int) else len(batch)

        logger.info("Cache namespace cleared", namespace=namespace, deleted=deleted)
        return deleted

    # ========== Batch operations ==========

    async def get_multi(self, keys: list[str]) -> dict[str, bytes]:
        if not keys:
            return {}
        try:
            results: list[Any] = await self._run(
                "mget", lambda: self._client.mget(*[self._make_key(k) for k in keys])
            )
        except EphemeralTierError as e:
            logger.warning("Cache mget failed", count=len(keys), error=e.message)
            return {}

        found: dict[str, bytes] = {}
        for key, raw in zip(keys, results):
            if not isinstance(raw, str):
                continue
            try:
                found[key] = base64.b64decode(raw, validate=True)
            except (binascii.Error, ValueError):
                logger.warning("Cache value decode failed", key=key)
        return found

    # ========== Health check ==========

    async def check_health(self, timeout: float = 5.0) -> bool:
        """Check Redis connectivity with timeout."""
        try:
            result = await asyncio.wait_for(self._client.ping(), timeout=timeout)
            return bool(result)
        except asyncio.TimeoutError:
            logger.error("Redis health check timed out", timeout=timeout)
            return False
        except Exception as e:
            logger.error("Redis health check failed", error=str(e))
            return False

    async def close(self) -> None:
        try:
            await self._client.close()
        except Exception as e:
            logger.debug("Redis client close failed", error=str(e))
