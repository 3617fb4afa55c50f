"""Tests for the ephemeral tier: Upstash (fake client), no-op tier, factory."""

import asyncio
import base64
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import KEY_PREFIX, FakeRedis
from gencache.core.config import Settings
from gencache.services.cache import (
    CacheMetrics,
    NoOpCacheService,
    UpstashCacheService,
    create_cache_service,
)

pytestmark = pytest.mark.asyncio


def _settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "_env_file": None,
        "cache_enabled": True,
        "upstash_redis_rest_url": "https://example.upstash.io",
        "upstash_redis_rest_token": "token",
    }
    values.update(overrides)
    return Settings(**values)


# ---------------------------------------------------------------------------
# Upstash tier
# ---------------------------------------------------------------------------

class TestUpstashCache:

    async def test_set_get_roundtrip_with_prefix(self, ephemeral, fake_redis):
        assert await ephemeral.set("tts:abc", b"\x00\xffaudio", 60) is True
        assert "mandarin:tts:abc" in fake_redis.data
        assert fake_redis.ttls["mandarin:tts:abc"] == 60
        assert await ephemeral.get("tts:abc") == b"\x00\xffaudio"

    async def test_values_stored_base64(self, ephemeral, fake_redis):
        await ephemeral.set("tts:abc", "你好".encode("utf-8"), 60)
        stored = fake_redis.data["mandarin:tts:abc"]
        assert base64.b64decode(stored).decode("utf-8") == "你好"

    async def test_missing_key_returns_none(self, ephemeral):
        assert await ephemeral.get("tts:nope") is None

    async def test_corrupt_value_is_a_miss(self, ephemeral, fake_redis):
        fake_redis.data["mandarin:tts:bad"] = "not base64!!"
        assert await ephemeral.get("tts:bad") is None

    async def test_delete(self, ephemeral, fake_redis):
        await ephemeral.set("tts:abc", b"x", 60)
        assert await ephemeral.delete("tts:abc") is True
        assert fake_redis.data == {}

    async def test_clear_namespace_leaves_other_namespaces(self, ephemeral, fake_redis):
        for i in range(3):
            await ephemeral.set(f"tts:{i}", b"x", 60)
        await ephemeral.set("conv-text:1", b"y", 60)
        fake_redis.data["other-app:tts:1"] = "eA=="

        assert await ephemeral.clear_namespace("tts") == 3
        assert set(fake_redis.data) == {"mandarin:conv-text:1", "other-app:tts:1"}

    async def test_clear_namespace_batches_deletes(self, fake_redis):
        svc = UpstashCacheService(fake_redis, key_prefix=KEY_PREFIX)
        for i in range(250):
            fake_redis.data[f"mandarin:tts:{i}"] = "eA=="
        fake_redis.delete = AsyncMock(side_effect=lambda *keys: len(keys))

        assert await svc.clear_namespace("tts:") == 250
        assert [len(c.args) for c in fake_redis.delete.await_args_list] == [100, 100, 50]

    async def test_clear_namespace_reports_keys_removed_before_failure(self, fake_redis):
        svc = UpstashCacheService(fake_redis, key_prefix=KEY_PREFIX)
        for i in range(150):
            fake_redis.data[f"mandarin:tts:{i}"] = "eA=="
        real_delete = fake_redis.delete
        calls = 0

        async def flaky_delete(*keys: str) -> int:
            nonlocal calls
            calls += 1
            if calls == 2:
                raise ConnectionError("connection reset")
            return await real_delete(*keys)

        fake_redis.delete = flaky_delete

        assert await svc.clear_namespace("tts") == 100
        assert len(fake_redis.data) == 50

    async def test_clear_namespace_uses_operator_timeout(self, fake_redis):
        fake_redis.data["mandarin:tts:1"] = "eA=="
        fake_redis.delay = 0.05
        svc = UpstashCacheService(fake_redis, key_prefix=KEY_PREFIX, timeout=0.01, admin_timeout=1.0)

        assert await svc.get("tts:1") is None
        assert await svc.clear_namespace("tts") == 1

    async def test_get_multi_skips_missing(self, ephemeral):
        await ephemeral.set("tts:a", b"A", 60)
        await ephemeral.set("tts:c", b"C", 60)
        assert await ephemeral.get_multi(["tts:a", "tts:b", "tts:c"]) == {"tts:a": b"A", "tts:c": b"C"}
        assert await ephemeral.get_multi([]) == {}

    async def test_health(self, ephemeral, fake_redis):
        assert await ephemeral.check_health() is True
        fake_redis.fail = ConnectionError("down")
        assert await ephemeral.check_health() is False


class TestUpstashFailOpen:

    @pytest.mark.parametrize("method,args,expected", [
        ("get", ("tts:k",), None),
        ("set", ("tts:k", b"v", 60), False),
        ("delete", ("tts:k",), False),
        ("clear_namespace", ("tts",), 0),
        ("get_multi", (["tts:k"],), {}),
    ])
    async def test_transport_errors_degrade(self, ephemeral, fake_redis, method, args, expected):
        fake_redis.fail = ConnectionError("connection refused")
        assert await getattr(ephemeral, method)(*args) == expected

    async def test_timeouts_degrade(self, fake_redis):
        fake_redis.delay = 0.2
        svc = UpstashCacheService(fake_redis, key_prefix=KEY_PREFIX, timeout=0.01)
        assert await svc.get("tts:k") is None
        assert await svc.set("tts:k", b"v", 60) is False

    async def test_synchronous_client_errors_degrade(self):
        client = MagicMock()
        client.get.side_effect = RuntimeError("bad url")
        svc = UpstashCacheService(client, key_prefix=KEY_PREFIX)
        assert await svc.get("tts:k") is None

    async def test_errors_recorded_per_namespace(self, ephemeral, fake_redis):
        fake_redis.fail = ConnectionError("down")
        await ephemeral.get("tts:k")
        await ephemeral.set("conv-text:k", b"v", 60)
        snap = ephemeral.metrics.snapshot()
        assert snap["tts"]["errors"] == 1
        assert snap["conv-text"]["errors"] == 1

    async def test_close_swallows_client_errors(self):
        client = MagicMock()
        client.close = AsyncMock(side_effect=RuntimeError("already closed"))
        svc = UpstashCacheService(client)
        await svc.close()


# ---------------------------------------------------------------------------
# No-op tier: parametrized
# ---------------------------------------------------------------------------

class TestNoOpCache:

    @pytest.mark.parametrize("method,args,expected", [
        ("get", ("tts:k",), None),
        ("set", ("tts:k", b"v", 60), False),
        ("delete", ("tts:k",), False),
        ("clear_namespace", ("tts",), 0),
        ("get_multi", (["tts:k"],), {}),
        ("check_health", (), False),
    ])
    async def test_methods_return_default(self, noop_ephemeral, method, args, expected):
        assert await getattr(noop_ephemeral, method)(*args) == expected

    async def test_not_available_but_has_metrics(self, noop_ephemeral):
        assert noop_ephemeral.is_available is False
        assert noop_ephemeral.metrics.snapshot() == {}


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

class TestCreateCacheService:

    async def test_disabled(self):
        svc = await create_cache_service(_settings(cache_enabled=False))
        assert isinstance(svc, NoOpCacheService)

    async def test_missing_credentials(self):
        svc = await create_cache_service(_settings(upstash_redis_rest_token=""))
        assert isinstance(svc, NoOpCacheService)

    async def test_client_construction_failure(self):
        with patch("gencache.services.cache.service.Redis", side_effect=ValueError("bad url")):
            svc = await create_cache_service(_settings())
        assert isinstance(svc, NoOpCacheService)

    async def test_failed_probe_falls_back_and_closes(self):
        fake = FakeRedis()
        fake.fail = ConnectionError("unreachable")
        fake.close = AsyncMock()
        with patch("gencache.services.cache.service.Redis", return_value=fake):
            svc = await create_cache_service(_settings())
        assert isinstance(svc, NoOpCacheService)
        fake.close.assert_awaited_once()

    async def test_slow_probe_falls_back(self):
        fake = FakeRedis()
        fake.delay = 0.5
        with patch("gencache.services.cache.service.Redis", return_value=fake):
            svc = await create_cache_service(_settings(ephemeral_probe_timeout_seconds=0.01))
        assert isinstance(svc, NoOpCacheService)

    async def test_healthy_probe_uses_upstash(self):
        fake = FakeRedis()
        with patch("gencache.services.cache.service.Redis", return_value=fake) as redis_cls:
            svc = await create_cache_service(_settings(ephemeral_timeout_seconds=0.5))
        redis_cls.assert_called_once_with(url="https://example.upstash.io", token="token")
        assert isinstance(svc, UpstashCacheService)
        assert svc.is_available is True
        await svc.set("tts:k", b"v", 60)
        assert "mandarin:tts:k" in fake.data

    async def test_metrics_share_reset_interval(self):
        svc = await create_cache_service(_settings(cache_enabled=False, metrics_reset_interval_seconds=5))
        assert isinstance(svc.metrics, CacheMetrics)
        assert svc.metrics._reset_interval == 5


async def test_wait_for_is_applied_per_call(fake_redis):
    svc = UpstashCacheService(fake_redis, key_prefix=KEY_PREFIX, timeout=0.05)
    fake_redis.delay = 0.2
    start = asyncio.get_running_loop().time()
    await svc.get("tts:k")
    assert asyncio.get_running_loop().time() - start < 0.2
