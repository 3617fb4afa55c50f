"""Test configuration and fixtures.

Provides isolated test fixtures for:
- In-memory Redis client driving the real Upstash tier
- In-memory durable store with failure injection
- Counting speech and dialogue back ends
- HTTP client with dependency overrides
"""

import asyncio
import os
import tempfile
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone

# Keep app import side effects (artifact mount, cache probe) out of the repo tree
os.environ.setdefault("LOCAL_STORAGE_DIR", tempfile.mkdtemp(prefix="gencache-test-"))
os.environ.setdefault("CACHE_ENABLED", "false")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from gencache.api.deps import get_generation_service
from gencache.core.config import Settings
from gencache.core.exceptions import BackendError, NotFoundError, StoreError
from gencache.main import app
from gencache.services.cache import CacheMetrics, NoOpCacheService, UpstashCacheService
from gencache.services.dialogue import DialogueGenerator
from gencache.services.generation import GenerationService
from gencache.services.models import Turn
from gencache.services.orchestrator import CacheOrchestrator
from gencache.services.storage import DurableContentStore, StoredObject
from gencache.services.tts import SpeechSynthesizer

KEY_PREFIX = "mandarin:"


# =============================================================================
# Fakes
# =============================================================================

class FakeRedis:
    """Async stand-in for ``upstash_redis.asyncio.Redis`` backed by a dict."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.fail: BaseException | None = None
        self.delay: float = 0.0

    async def _maybe_fail(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail is not None:
            raise self.fail

    async def get(self, key: str) -> str | None:
        await self._maybe_fail()
        return self.data.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        await self._maybe_fail()
        self.data[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        await self._maybe_fail()
        return sum(1 for k in keys if self.data.pop(k, None) is not None)

    async def keys(self, pattern: str) -> list[str]:
        await self._maybe_fail()
        prefix = pattern.rstrip("*")
        return [k for k in self.data if k.startswith(prefix)]

    async def mget(self, *keys: str) -> list[str | None]:
        await self._maybe_fail()
        return [self.data.get(k) for k in keys]

    async def ping(self) -> str:
        await self._maybe_fail()
        return "PONG"

    async def close(self) -> None:
        return None


class InMemoryContentStore(DurableContentStore):
    """Durable store kept in a dict, with switchable failures."""

    store_name = "memory"

    def __init__(self) -> None:
        super().__init__(timeout=1.0)
        self.objects: dict[str, tuple[bytes, str, datetime]] = {}
        self.writes = 0
        self.fail_reads = False
        self.fail_writes = False

    def public_url(self, path: str) -> str:
        return f"https://storage.test/bucket/{path}"

    async def exists(self, path: str) -> bool:
        if self.fail_reads:
            raise StoreError("store unreachable")
        return path in self.objects

    async def read(self, path: str) -> bytes:
        if self.fail_reads:
            raise StoreError("store unreachable")
        try:
            return self.objects[path][0]
        except KeyError:
            raise NotFoundError(f"Artifact {path}") from None

    async def read_object(self, path: str) -> StoredObject | None:
        if self.fail_reads:
            raise StoreError("store unreachable")
        if path not in self.objects:
            return None
        data, _, created_at = self.objects[path]
        return StoredObject(data, created_at)

    async def write_once(
        self,
        path: str,
        data: bytes,
        content_type: str,
        created_at: datetime | None = None,
    ) -> str:
        if self.fail_writes:
            raise StoreError("store unreachable")
        if path not in self.objects:
            self.objects[path] = (data, content_type, created_at or datetime.now(timezone.utc))
            self.writes += 1
        return self.public_url(path)

    async def delete_prefix(self, prefix: str) -> int:
        doomed = [p for p in self.objects if p.startswith(prefix)]
        for path in doomed:
            del self.objects[path]
        return len(doomed)


class CountingSynthesizer(SpeechSynthesizer):
    """Returns deterministic fake MP3 bytes and counts calls."""

    backend_name = "fake-tts"

    def __init__(self, delay: float = 0.0) -> None:
        self.calls: list[tuple[str, str]] = []
        self.delay = delay
        self.fail_when: Callable[[str, str], bool] = lambda text, voice: False

    async def synthesize(self, text: str, voice_id: str) -> bytes:
        self.calls.append((text, voice_id))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_when(text, voice_id):
            raise BackendError(self.backend_name, f"quota exceeded for {text!r}")
        return b"ID3" + f"{voice_id}|{text}".encode("utf-8")


DEFAULT_TURNS = [
    Turn("A", "你好！", "nǐ hǎo!", "Hello!"),
    Turn("B", "你好，你最近怎么样？", "nǐ hǎo, nǐ zuìjìn zěnmeyàng?", "Hi, how have you been?"),
    Turn("A", "我很好，谢谢。", "wǒ hěn hǎo, xièxie.", "I'm fine, thanks."),
    Turn("B", "那太好了。", "nà tài hǎo le.", "That's great."),
]


class StaticDialogueGenerator(DialogueGenerator):
    """Returns a fixed dialogue and counts calls."""

    provider_name = "fake-llm"

    def __init__(self, turns: list[Turn] | None = None) -> None:
        super().__init__(model="fake")
        self.turns = list(turns or DEFAULT_TURNS)
        self.calls: list[tuple[str, str]] = []

    async def _complete(self, prompt: str) -> str:
        raise NotImplementedError

    async def generate_dialogue(self, topic: str, context: str = "") -> list[Turn]:
        self.calls.append((topic, context))
        return list(self.turns)


def ttl_for(namespace: str) -> int:
    return {"tts": 604800, "conv-text": 3600, "conv-audio": 604800}[namespace]


# =============================================================================
# Settings
# =============================================================================

@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Create test settings with safe defaults."""
    return Settings(
        _env_file=None,
        debug=True,
        cache_enabled=False,
        upstash_redis_rest_url="",
        upstash_redis_rest_token="",
        storage_backend="local",
        local_storage_dir=str(tmp_path / "artifacts"),
        local_public_base_url="http://test/artifacts",
    )


# =============================================================================
# Engine Fixtures
# =============================================================================

@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def ephemeral(fake_redis: FakeRedis) -> UpstashCacheService:
    return UpstashCacheService(fake_redis, key_prefix=KEY_PREFIX, timeout=0.1, metrics=CacheMetrics())


@pytest.fixture
def noop_ephemeral() -> NoOpCacheService:
    return NoOpCacheService(key_prefix=KEY_PREFIX)


@pytest.fixture
def store() -> InMemoryContentStore:
    return InMemoryContentStore()


@pytest.fixture
def orchestrator(ephemeral: UpstashCacheService, store: InMemoryContentStore) -> CacheOrchestrator:
    return CacheOrchestrator(ephemeral, store, ttl_for=ttl_for, backend_timeout=2.0)


@pytest.fixture
def synthesizer() -> CountingSynthesizer:
    return CountingSynthesizer()


@pytest.fixture
def dialogue_generator() -> StaticDialogueGenerator:
    return StaticDialogueGenerator()


@pytest.fixture
def generation_service(
    orchestrator: CacheOrchestrator,
    synthesizer: CountingSynthesizer,
    dialogue_generator: StaticDialogueGenerator,
) -> GenerationService:
    return GenerationService(
        orchestrator,
        synthesizer,
        dialogue_generator,
        default_voice="cmn-CN-Wavenet-B",
    )


# =============================================================================
# HTTP Client Fixtures
# =============================================================================

@pytest_asyncio.fixture(scope="function")
async def client(generation_service: GenerationService) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client wired to the in-memory engine."""
    app.dependency_overrides[get_generation_service] = lambda: generation_service

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()

