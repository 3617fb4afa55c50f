"""Speech synthesis back ends.

The cache engine only needs ``synthesize(text, voice_id) -> bytes``; the
Google Cloud Text-to-Speech adapter below is the production binding.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any

from google.api_core.exceptions import GoogleAPICallError
from google.cloud import texttospeech
from google.oauth2 import service_account

from gencache.core.config import Settings
from gencache.core.exceptions import BackendError
from gencache.core.logging import get_logger

logger = get_logger(__name__)


def language_code_for(voice_id: str, default: str) -> str:
    """Language code embedded in a Cloud TTS voice name (``cmn-CN-Wavenet-B`` -> ``cmn-CN``)."""
    parts = voice_id.split("-")
    if len(parts) >= 3 and parts[0].isalpha() and parts[1].isalpha():
        return f"{parts[0]}-{parts[1]}"
    return default


class SpeechSynthesizer(ABC):
    """Abstract base class for speech synthesis back ends."""

    backend_name: str = "base"

    @abstractmethod
    async def synthesize(self, text: str, voice_id: str) -> bytes:
        """Return encoded audio for ``text``. Raises BackendError on failure."""
        ...


class GoogleSpeechSynthesizer(SpeechSynthesizer):
    """Google Cloud Text-to-Speech, MP3 output.

    Lazily initializes the client on first use to avoid blocking startup.
    Uses thread pool for non-blocking API calls.
    """

    backend_name = "google-tts"

    def __init__(
        self,
        client: texttospeech.TextToSpeechClient | None = None,
        *,
        credentials_info: dict[str, Any] | None = None,
        language_code: str = "cmn-CN",
    ) -> None:
        self._client = client
        self._credentials_info = credentials_info
        self._language_code = language_code
        self._init_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "GoogleSpeechSynthesizer":
        return cls(
            credentials_info=settings.tts_credentials,
            language_code=settings.tts_language_code,
        )

    def _build_client(self) -> texttospeech.TextToSpeechClient:
        if self._credentials_info:
            credentials = service_account.Credentials.from_service_account_info(
                self._credentials_info
            )
            return texttospeech.TextToSpeechClient(credentials=credentials)
        return texttospeech.TextToSpeechClient()

    async def _ensure_client(self) -> texttospeech.TextToSpeechClient:
        if self._client is not None:
            return self._client

        async with self._init_lock:
            # Double-check after acquiring lock
            if self._client is None:
                loop = asyncio.get_event_loop()
                try:
                    self._client = await loop.run_in_executor(None, self._build_client)
                except Exception as e:
                    raise BackendError(self.backend_name, f"client init failed: {e}") from e
                logger.info("Google Cloud TTS client initialized (lazy)")
        return self._client

    async def synthesize(self, text: str, voice_id: str) -> bytes:
        client = await self._ensure_client()

        synthesis_input = texttospeech.SynthesisInput(text=text)
        voice = texttospeech.VoiceSelectionParams(
            language_code=language_code_for(voice_id, self._language_code),
            name=voice_id,
        )
        audio_config = texttospeech.AudioConfig(
            audio_encoding=texttospeech.AudioEncoding.MP3,
        )

        loop = asyncio.get_event_loop()
        try:
            response = await loop.run_in_executor(
                None,
                lambda: client.synthesize_speech(
                    input=synthesis_input,
                    voice=voice,
                    audio_config=audio_config,
                ),
            )
        except GoogleAPICallError as e:
            logger.error("Google TTS synthesis failed", voice=voice_id, error=str(e))
            raise BackendError(self.backend_name, str(e)) from e

        audio = response.audio_content
        if not audio:
            raise BackendError(self.backend_name, "empty audio content")
        return bytes(audio)
