"""Durable, content-addressed artifact storage.

Artifacts are written once under ``{namespace}/{request_id}/{digest}.{ext}``
and never overwritten: since the path is derived from the request, an
existing object is by construction identical, so a second write is a
successful no-op. Entries never expire; removal is operator-triggered.

Two stores are provided:
- GCSContentStore: Google Cloud Storage, atomic create via generation
  precondition, public URLs on storage.googleapis.com
- LocalContentStore: a directory on disk for local development, written
  through a temporary file and hard-linked into place

Each object keeps its creation time: GCS in the blob's custom metadata,
the local store as the file's modification time.
"""

import asyncio
import os
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path, PurePosixPath
from typing import Any, TypeVar

from google.api_core.exceptions import NotFound, PreconditionFailed
from google.cloud import storage
from google.oauth2 import service_account

from gencache.core.config import Settings
from gencache.core.exceptions import NotFoundError, StoreError
from gencache.core.logging import get_logger
from gencache.services.cache.keys import CacheKey

logger = get_logger(__name__)

T = TypeVar("T")

GCS_PUBLIC_HOST = "https://storage.googleapis.com"
CREATED_AT_METADATA = "gencache-created-at"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class StoredObject:
    """Object bytes together with the time they were first written."""

    data: bytes
    created_at: datetime


def _to_ns(value: datetime) -> int:
    delta = value - _EPOCH
    return ((delta.days * 86400 + delta.seconds) * 1_000_000 + delta.microseconds) * 1000


def _from_ns(ns: int) -> datetime:
    return _EPOCH + timedelta(microseconds=ns // 1000)


def build_artifact_path(key: CacheKey, request_id: str, extension: str) -> str:
    """Content-addressed object path for a cache key."""
    request_id = request_id.strip().strip("/") or "_"
    return f"{key.namespace}/{request_id}/{key.digest}.{extension}"


def _validate_path(path: str) -> str:
    parts = PurePosixPath(path).parts
    if not parts or path.startswith("/") or ".." in parts:
        raise ValueError(f"Invalid artifact path: {path!r}")
    return path


class DurableContentStore(ABC):
    """Write-once object store with public retrieval locations."""

    store_name: str = "base"

    def __init__(self, timeout: float = 10.0) -> None:
        self._timeout = timeout

    async def _in_thread(self, operation: str, fn: Callable[[], T]) -> T:
        """Run a blocking SDK call in the default executor under the store timeout."""
        loop = asyncio.get_event_loop()
        try:
            return await asyncio.wait_for(loop.run_in_executor(None, fn), timeout=self._timeout)
        except asyncio.TimeoutError:
            raise StoreError(f"{self.store_name} {operation} timed out after {self._timeout}s")

    @abstractmethod
    def public_url(self, path: str) -> str:
        ...

    @abstractmethod
    async def exists(self, path: str) -> bool:
        ...

    @abstractmethod
    async def read(self, path: str) -> bytes:
        """Return the object bytes. Raises NotFoundError when absent."""
        ...

    @abstractmethod
    async def read_object(self, path: str) -> StoredObject | None:
        """Return bytes and creation time, or None when absent."""
        ...

    @abstractmethod
    async def write_once(
        self,
        path: str,
        data: bytes,
        content_type: str,
        created_at: datetime | None = None,
    ) -> str:
        """Persist ``data`` unless an object already exists; return its URL.

        ``created_at`` is recorded as the object's creation time when given.
        """
        ...

    @abstractmethod
    async def delete_prefix(self, prefix: str) -> int:
        """Remove every object under ``prefix``. Returns the count removed."""
        ...

    async def check_health(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class GCSContentStore(DurableContentStore):
    """Google Cloud Storage bucket as the durable tier."""

    store_name = "gcs"

    def __init__(self, client: storage.Client, bucket_name: str, timeout: float = 10.0) -> None:
        super().__init__(timeout)
        self._client = client
        self._bucket_name = bucket_name
        self._bucket = client.bucket(bucket_name)

    @classmethod
    def from_settings(cls, settings: Settings) -> "GCSContentStore":
        credentials_info: dict[str, Any] | None = settings.gcs_credentials
        if credentials_info:
            credentials = service_account.Credentials.from_service_account_info(credentials_info)
            client = storage.Client(
                project=credentials_info.get("project_id"),
                credentials=credentials,
            )
        else:
            # Application default credentials
            client = storage.Client()
        return cls(client, settings.gcs_bucket_name, timeout=settings.store_timeout_seconds)

    def public_url(self, path: str) -> str:
        return f"{GCS_PUBLIC_HOST}/{self._bucket_name}/{path}"

    async def exists(self, path: str) -> bool:
        blob = self._bucket.blob(_validate_path(path))
        try:
            return await self._in_thread("exists", blob.exists)
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"GCS exists failed for {path}: {e}") from e

    async def read(self, path: str) -> bytes:
        blob = self._bucket.blob(_validate_path(path))
        try:
            return await self._in_thread("read", blob.download_as_bytes)
        except NotFound:
            raise NotFoundError(f"Artifact {path}") from None
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"GCS read failed for {path}: {e}") from e

    async def read_object(self, path: str) -> StoredObject | None:
        _validate_path(path)

        def _fetch() -> StoredObject | None:
            blob = self._bucket.get_blob(path)
            if blob is None:
                return None
            data = blob.download_as_bytes()
            stamp = (blob.metadata or {}).get(CREATED_AT_METADATA)
            if stamp:
                created_at = datetime.fromisoformat(stamp)
            else:
                created_at = blob.time_created or datetime.now(timezone.utc)
            return StoredObject(data, created_at)

        try:
            return await self._in_thread("read", _fetch)
        except NotFound:
            # Deleted between the metadata fetch and the download
            return None
        except (StoreError, ValueError):
            raise
        except Exception as e:
            raise StoreError(f"GCS read failed for {path}: {e}") from e

    async def write_once(
        self,
        path: str,
        data: bytes,
        content_type: str,
        created_at: datetime | None = None,
    ) -> str:
        blob = self._bucket.blob(_validate_path(path))
        if created_at is not None:
            blob.metadata = {CREATED_AT_METADATA: created_at.isoformat()}
        try:
            # Generation 0 means "only if no live object exists"; GCS makes
            # the object visible only after the whole upload succeeds.
            await self._in_thread(
                "write",
                lambda: blob.upload_from_string(
                    data,
                    content_type=content_type,
                    if_generation_match=0,
                ),
            )
            logger.info("Artifact stored", store=self.store_name, path=path, size=len(data))
        except PreconditionFailed:
            logger.debug("Artifact already stored", store=self.store_name, path=path)
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"GCS write failed for {path}: {e}") from e
        return self.public_url(path)

    async def delete_prefix(self, prefix: str) -> int:
        def _delete_all() -> int:
            deleted = 0
            for blob in self._client.list_blobs(self._bucket_name, prefix=prefix):
                try:
                    blob.delete()
                    deleted += 1
                except NotFound:
                    continue
            return deleted

        try:
            # Listing and deleting can take longer than a single call
            loop = asyncio.get_event_loop()
            deleted = await loop.run_in_executor(None, _delete_all)
        except Exception as e:
            raise StoreError(f"GCS delete failed for prefix {prefix}: {e}") from e
        logger.info("Artifacts deleted", store=self.store_name, prefix=prefix, deleted=deleted)
        return deleted

    async def check_health(self) -> bool:
        try:
            return bool(await self._in_thread("health", self._bucket.exists))
        except Exception as e:
            logger.error("GCS health check failed", error=str(e))
            return False

    async def close(self) -> None:
        close = getattr(self._client, "close", None)
        if callable(close):
            await asyncio.get_event_loop().run_in_executor(None, close)


class LocalContentStore(DurableContentStore):
    """Filesystem directory as the durable tier (local development)."""

    store_name = "local"

    def __init__(self, root: str | Path, public_base_url: str, timeout: float = 10.0) -> None:
        super().__init__(timeout)
        self._root = Path(root).resolve()
        self._public_base_url = public_base_url.rstrip("/")
        self._root.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_settings(cls, settings: Settings) -> "LocalContentStore":
        return cls(
            settings.local_storage_dir,
            settings.local_public_base_url,
            timeout=settings.store_timeout_seconds,
        )

    @property
    def root(self) -> Path:
        return self._root

    def _file(self, path: str) -> Path:
        return self._root / _validate_path(path)

    def public_url(self, path: str) -> str:
        return f"{self._public_base_url}/{path}"

    async def exists(self, path: str) -> bool:
        target = self._file(path)
        return await self._in_thread("exists", target.is_file)

    async def read(self, path: str) -> bytes:
        target = self._file(path)
        try:
            return await self._in_thread("read", target.read_bytes)
        except FileNotFoundError:
            raise NotFoundError(f"Artifact {path}") from None
        except OSError as e:
            raise StoreError(f"Local read failed for {path}: {e}") from e

    async def read_object(self, path: str) -> StoredObject | None:
        target = self._file(path)

        def _fetch() -> StoredObject | None:
            try:
                with target.open("rb") as fh:
                    mtime_ns = os.fstat(fh.fileno()).st_mtime_ns
                    return StoredObject(fh.read(), _from_ns(mtime_ns))
            except FileNotFoundError:
                return None

        try:
            return await self._in_thread("read", _fetch)
        except OSError as e:
            raise StoreError(f"Local read failed for {path}: {e}") from e

    def _write_atomic(self, target: Path, data: bytes, created_at: datetime | None) -> bool:
        if target.is_file():
            return False
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".tmp-", suffix=target.suffix)
        try:
            with os.fdopen(fd, "wb") as tmp:
                tmp.write(data)
                tmp.flush()
                os.fsync(tmp.fileno())
            if created_at is not None:
                stamp = _to_ns(created_at)
                os.utime(tmp_name, ns=(stamp, stamp))
            # Raises FileExistsError if another writer finished first
            try:
                os.link(tmp_name, target)
            except FileExistsError:
                return False
        finally:
            Path(tmp_name).unlink(missing_ok=True)
        return True

    async def write_once(
        self,
        path: str,
        data: bytes,
        content_type: str,
        created_at: datetime | None = None,
    ) -> str:
        target = self._file(path)
        try:
            written = await self._in_thread("write", lambda: self._write_atomic(target, data, created_at))
        except OSError as e:
            raise StoreError(f"Local write failed for {path}: {e}") from e
        if written:
            logger.info("Artifact stored", store=self.store_name, path=path, size=len(data))
        else:
            logger.debug("Artifact already stored", store=self.store_name, path=path)
        return self.public_url(path)

    async def delete_prefix(self, prefix: str) -> int:
        base = self._root / _validate_path(prefix.rstrip("/"))

        def _delete_all() -> int:
            if base.is_file():
                base.unlink()
                return 1
            if not base.is_dir():
                return 0
            deleted = 0
            for file in sorted(base.rglob("*"), reverse=True):
                if file.is_file():
                    file.unlink()
                    deleted += 1
                elif file.is_dir():
                    file.rmdir()
            return deleted

        try:
            deleted = await asyncio.get_event_loop().run_in_executor(None, _delete_all)
        except OSError as e:
            raise StoreError(f"Local delete failed for prefix {prefix}: {e}") from e
        logger.info("Artifacts deleted", store=self.store_name, prefix=prefix, deleted=deleted)
        return deleted

    async def check_health(self) -> bool:
        return self._root.is_dir() and os.access(self._root, os.W_OK)


def create_content_store(settings: Settings) -> DurableContentStore:
    """Build the configured durable store."""
    if settings.storage_backend == "gcs":
        logger.info("Using GCS content store", bucket=settings.gcs_bucket_name)
        return GCSContentStore.from_settings(settings)
    logger.info("Using local content store", root=settings.local_storage_dir)
    return LocalContentStore.from_settings(settings)
