"""Tests for the Google Cloud TTS adapter (mocked client)."""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from google.api_core.exceptions import ResourceExhausted
from google.cloud import texttospeech

from gencache.core.exceptions import BackendError
from gencache.services.tts import GoogleSpeechSynthesizer, language_code_for


@pytest.mark.parametrize("voice,expected", [
    ("cmn-CN-Wavenet-B", "cmn-CN"),
    ("en-US-Neural2-F", "en-US"),
    ("A", "cmn-CN"),
    ("", "cmn-CN"),
])
def test_language_code_for(voice: str, expected: str):
    assert language_code_for(voice, "cmn-CN") == expected


def _client(audio: bytes = b"ID3audio") -> MagicMock:
    client = MagicMock()
    client.synthesize_speech.return_value = SimpleNamespace(audio_content=audio)
    return client


@pytest.mark.asyncio
class TestGoogleSpeechSynthesizer:

    async def test_synthesize_mp3(self):
        client = _client()
        synth = GoogleSpeechSynthesizer(client)

        assert await synth.synthesize("你好", "cmn-CN-Wavenet-B") == b"ID3audio"

        kwargs = client.synthesize_speech.call_args.kwargs
        assert kwargs["input"].text == "你好"
        assert kwargs["voice"].name == "cmn-CN-Wavenet-B"
        assert kwargs["voice"].language_code == "cmn-CN"
        assert kwargs["audio_config"].audio_encoding == texttospeech.AudioEncoding.MP3

    async def test_api_error_becomes_backend_error(self):
        client = _client()
        client.synthesize_speech.side_effect = ResourceExhausted("quota")
        synth = GoogleSpeechSynthesizer(client)

        with pytest.raises(BackendError) as exc_info:
            await synth.synthesize("你好", "cmn-CN-Wavenet-B")
        assert exc_info.value.backend == "google-tts"
        assert exc_info.value.status_code == 502

    async def test_empty_audio_is_an_error(self):
        synth = GoogleSpeechSynthesizer(_client(audio=b""))
        with pytest.raises(BackendError, match="empty audio"):
            await synth.synthesize("你好", "cmn-CN-Wavenet-B")

    async def test_lazy_client_uses_service_account(self):
        info = {"type": "service_account", "project_id": "p"}
        synth = GoogleSpeechSynthesizer(credentials_info=info)

        with patch("gencache.services.tts.service_account.Credentials.from_service_account_info") as creds, \
                patch("gencache.services.tts.texttospeech.TextToSpeechClient", return_value=_client()) as cls:
            await synth.synthesize("你好", "cmn-CN-Wavenet-B")
            await synth.synthesize("再见", "cmn-CN-Wavenet-B")

        creds.assert_called_once_with(info)
        cls.assert_called_once_with(credentials=creds.return_value)

    async def test_client_init_failure(self):
        synth = GoogleSpeechSynthesizer()
        with patch(
            "gencache.services.tts.texttospeech.TextToSpeechClient",
            side_effect=RuntimeError("no default credentials"),
        ):
            with pytest.raises(BackendError, match="client init failed"):
                await synth.synthesize("你好", "cmn-CN-Wavenet-B")


def test_from_settings(test_settings):
    settings = test_settings.model_copy(update={"tts_language_code": "yue-HK"})
    synth = GoogleSpeechSynthesizer.from_settings(settings)
    assert synth._language_code == "yue-HK"
    assert synth._client is None
