"""Tests for the gencache-invalidate command."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from gencache import cli
from gencache.services.models import InvalidationResult


def _service(result: InvalidationResult) -> MagicMock:
    service = MagicMock()
    service.invalidate_namespace = AsyncMock(return_value=result)
    service.close = AsyncMock()
    return service


def test_invalidate_ephemeral_only(capsys):
    service = _service(InvalidationResult("tts", ephemeral_deleted=3))
    with patch.object(cli, "build_generation_service", AsyncMock(return_value=service)):
        with pytest.raises(SystemExit) as exc_info:
            cli.invalidate(["tts"])

    assert exc_info.value.code == 0
    service.invalidate_namespace.assert_awaited_once_with("tts", durable=False)
    service.close.assert_awaited_once()
    assert "tts: 3 ephemeral, 0 durable entries removed" in capsys.readouterr().out


def test_invalidate_durable(capsys):
    service = _service(InvalidationResult("conv-audio", ephemeral_deleted=1, durable_deleted=4))
    with patch.object(cli, "build_generation_service", AsyncMock(return_value=service)):
        with pytest.raises(SystemExit):
            cli.invalidate(["conv-audio", "--durable"])

    service.invalidate_namespace.assert_awaited_once_with("conv-audio", durable=True)
    assert "4 durable" in capsys.readouterr().out


def test_invalidate_closes_service_on_failure():
    service = _service(InvalidationResult("tts", 0))
    service.invalidate_namespace.side_effect = RuntimeError("store down")
    with patch.object(cli, "build_generation_service", AsyncMock(return_value=service)):
        with pytest.raises(RuntimeError):
            cli.invalidate(["tts"])
    service.close.assert_awaited_once()


def test_invalidate_rejects_unknown_namespace():
    with pytest.raises(SystemExit) as exc_info:
        cli.invalidate(["chat"])
    assert exc_info.value.code == 2


def test_help_explains_durable_flag(capsys):
    with pytest.raises(SystemExit) as exc_info:
        cli.invalidate(["--help"])

    assert exc_info.value.code == 0
    out = " ".join(capsys.readouterr().out.split())
    assert "refill them from the durable store" in out
    assert "--durable" in out
