"""Cache-aside controller over the ephemeral and durable tiers.

Lookup order for a request:
1. Ephemeral tier (fast, TTL based)
2. Durable store (backfills the ephemeral tier)
3. Generation, collapsed per key so concurrent callers share one call

A fresh artifact is written to the durable store first and then to the
ephemeral tier. Tier failures are absorbed and counted; only validation
and back end failures reach the caller. Failures are never cached, so
the next call for the same key starts over.

Every entry keeps the creation time stamped when it was generated: the
ephemeral value carries it as a header line and the durable store records
it with the object, so hits from either tier report the original time.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

from gencache.core.exceptions import (
    AppException,
    BackendError,
    StoreError,
)
from gencache.core.logging import get_logger, log_context
from gencache.core.tasks import cancel_tasks, create_background_task
from gencache.services.cache.base import EphemeralCacheService
from gencache.services.cache.keys import CacheKey, GenerationRequest, derive_key
from gencache.services.models import CacheEntry, GenerationResult, split_ephemeral
from gencache.services.storage import DurableContentStore, StoredObject, build_artifact_path

logger = get_logger(__name__)

GenerateFn = Callable[[], Awaitable[bytes]]


class CacheOrchestrator:
    """Serve, compute or degrade for every generation request."""

    def __init__(
        self,
        ephemeral: EphemeralCacheService,
        store: DurableContentStore,
        *,
        ttl_for: Callable[[str], int],
        backend_timeout: float = 30.0,
    ) -> None:
        self._ephemeral = ephemeral
        self._store = store
        self._ttl_for = ttl_for
        self._backend_timeout = backend_timeout
        # cache key -> shared generation task
        self._inflight: dict[str, asyncio.Task[GenerationResult]] = {}

    @property
    def ephemeral(self) -> EphemeralCacheService:
        return self._ephemeral

    @property
    def store(self) -> DurableContentStore:
        return self._store

    def inflight_count(self) -> int:
        return sum(1 for task in self._inflight.values() if not task.done())

    async def close(self) -> None:
        """Cancel generations still in flight; their waiters see CancelledError."""
        cancelled = await cancel_tasks(list(self._inflight.values()))
        if cancelled:
            logger.info("Cancelled in-flight generations", count=cancelled)

    async def get_or_generate(
        self,
        namespace: str,
        version: str,
        request: GenerationRequest,
        generate_fn: GenerateFn,
        *,
        request_id: str,
        content_type: str,
        extension: str,
    ) -> GenerationResult:
        """Return a cached artifact or compute, persist and return a new one."""
        key = derive_key(namespace, version, request)
        cache_key = str(key)
        path = build_artifact_path(key, request_id, extension)
        metrics = self._ephemeral.metrics

        cached = await self._lookup(key, path, content_type)
        if cached is not None:
            return cached

        metrics.record_miss(namespace)
        logger.debug("Cache miss", key=cache_key)

        task = self._inflight.get(cache_key)
        if task is None or (task.done() and (task.cancelled() or task.exception() is not None)):
            # No await between lookup and registration: atomic on the loop.
            task = create_background_task(
                self._generate_and_store(key, path, generate_fn, content_type),
                name=f"generate:{cache_key}",
            )
            self._inflight[cache_key] = task
            task.add_done_callback(lambda t, k=cache_key: self._release(k, t))
        else:
            logger.debug("Joining in-flight generation", key=cache_key)

        # Shielded so a cancelled caller only leaves the waiter set.
        return await asyncio.shield(task)

    async def lookup(
        self,
        namespace: str,
        version: str,
        request: GenerationRequest,
        *,
        request_id: str,
        content_type: str,
        extension: str,
    ) -> GenerationResult | None:
        """Cache-only read through both tiers; never generates."""
        key = derive_key(namespace, version, request)
        path = build_artifact_path(key, request_id, extension)
        return await self._lookup(key, path, content_type)

    async def _lookup(
        self,
        key: CacheKey,
        path: str,
        content_type: str,
    ) -> GenerationResult | None:
        namespace = key.namespace
        cache_key = str(key)
        metrics = self._ephemeral.metrics
        location = self._store.public_url(path)

        raw = await self._ephemeral.get(cache_key)
        if raw is not None:
            try:
                created_at, data = split_ephemeral(raw)
            except ValueError:
                metrics.record_error(namespace)
                logger.warning("Cache value has no creation stamp, ignoring", key=cache_key)
            else:
                metrics.record_hit(namespace)
                logger.debug("Cache hit", tier="ephemeral", key=cache_key)
                return GenerationResult(
                    entry=CacheEntry(data, content_type, key.version, created_at, location),
                    key=key,
                    cached=True,
                    source="ephemeral",
                )

        stored = await self._read_durable(namespace, path)
        if stored is not None:
            metrics.record_hit(namespace)
            logger.debug("Cache hit", tier="durable", key=cache_key, path=path)
            entry = CacheEntry(stored.data, content_type, key.version, stored.created_at, location)
            await self._ephemeral.set(cache_key, entry.to_ephemeral(), self._ttl_for(namespace))
            return GenerationResult(
                entry=entry,
                key=key,
                cached=True,
                source="durable",
            )
        return None

    def _release(self, cache_key: str, task: asyncio.Task[GenerationResult]) -> None:
        if self._inflight.get(cache_key) is task:
            del self._inflight[cache_key]

    async def _read_durable(self, namespace: str, path: str) -> StoredObject | None:
        """Durable lookup; any store failure counts as a miss."""
        try:
            return await self._store.read_object(path)
        except (StoreError, ValueError) as e:
            self._ephemeral.metrics.record_error(namespace)
            logger.warning("Durable read failed, treating as miss", path=path, error=str(e))
            return None

    async def _generate_and_store(
        self,
        key: CacheKey,
        path: str,
        generate_fn: GenerateFn,
        content_type: str,
    ) -> GenerationResult:
        with log_context(namespace=key.namespace, cache_key=str(key)):
            return await self._produce(key, path, generate_fn, content_type)

    async def _produce(
        self,
        key: CacheKey,
        path: str,
        generate_fn: GenerateFn,
        content_type: str,
    ) -> GenerationResult:
        namespace = key.namespace
        metrics = self._ephemeral.metrics

        try:
            data = await asyncio.wait_for(generate_fn(), timeout=self._backend_timeout)
        except asyncio.TimeoutError:
            metrics.record_error(namespace)
            raise BackendError(namespace, f"generation timed out after {self._backend_timeout}s")
        except AppException:
            metrics.record_error(namespace)
            raise
        except Exception as e:
            metrics.record_error(namespace)
            logger.error("Generation failed", key=str(key), error=str(e))
            raise BackendError(namespace, str(e)) from e

        created_at = datetime.now(timezone.utc)
        location: str | None = None
        durable = True
        try:
            location = await self._store.write_once(path, data, content_type, created_at=created_at)
        except (StoreError, ValueError) as e:
            durable = False
            metrics.record_error(namespace)
            logger.error(
                "Artifact not durably cached, needs reconciliation",
                key=str(key),
                path=path,
                error=str(e),
            )

        # A URL is only valid once the durable copy exists, so an artifact
        # that failed to persist is not advertised through the ephemeral tier.
        entry = CacheEntry(data, content_type, key.version, created_at, location)
        if durable:
            await self._ephemeral.set(str(key), entry.to_ephemeral(), self._ttl_for(namespace))

        logger.info("Artifact generated", key=str(key), size=len(data), durable=durable)
        return GenerationResult(
            entry=entry,
            key=key,
            cached=False,
            source="generated",
            durable=durable,
        )
