"""Caller-facing generation service.

Validates input, maps each operation onto a cache namespace and hands
the work to the CacheOrchestrator. One instance is built per process by
``build_generation_service`` and shared by every request.
"""

from datetime import datetime, timezone
from typing import Any

from gencache.core.config import Settings
from gencache.core.exceptions import MalformedOutputError, NotFoundError, ValidationError
from gencache.core.logging import get_logger
from gencache.services.cache import EphemeralCacheService, create_cache_service
from gencache.services.cache.constants import (
    CONTENT_TYPE_AUDIO,
    CONTENT_TYPE_JSON,
    EXTENSION_AUDIO,
    EXTENSION_JSON,
    NAMESPACE_CONVERSATION_TEXT,
    NAMESPACE_TTS,
    NAMESPACES,
)
from gencache.services.cache.keys import DialogueRequest, SpeechRequest, derive_key
from gencache.services.dialogue import DialogueGenerator, create_dialogue_generator
from gencache.services.models import (
    AudioResult,
    Conversation,
    DialogueResult,
    GenerationResult,
    InvalidationResult,
    TurnAudioBatch,
)
from gencache.services.orchestrator import CacheOrchestrator
from gencache.services.storage import DurableContentStore, create_content_store
from gencache.services.tts import GoogleSpeechSynthesizer, SpeechSynthesizer
from gencache.services.turns import PerTurnAudioCoordinator

logger = get_logger(__name__)


def _require_text(value: str, field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} must not be empty", details={"field": field})
    return value


class GenerationService:
    """Audio and dialogue generation behind the two-tier cache."""

    def __init__(
        self,
        orchestrator: CacheOrchestrator,
        synthesizer: SpeechSynthesizer,
        dialogue: DialogueGenerator,
        *,
        tts_version: str = "v1",
        conversation_version: str = "v1",
        turn_audio_version: str = "v1",
        default_voice: str = "cmn-CN-Wavenet-B",
    ) -> None:
        self._orchestrator = orchestrator
        self._synthesizer = synthesizer
        self._dialogue = dialogue
        self._tts_version = tts_version
        self._conversation_version = conversation_version
        self._default_voice = default_voice
        self._turns = PerTurnAudioCoordinator(orchestrator, synthesizer, turn_audio_version)

    @property
    def orchestrator(self) -> CacheOrchestrator:
        return self._orchestrator

    @property
    def ephemeral(self) -> EphemeralCacheService:
        return self._orchestrator.ephemeral

    @property
    def store(self) -> DurableContentStore:
        return self._orchestrator.store

    def _voice(self, voice_id: str | None) -> str:
        return voice_id.strip() if voice_id and voice_id.strip() else self._default_voice

    # ------------------------------------------------------------------
    # Audio
    # ------------------------------------------------------------------

    async def get_or_generate_audio(self, text: str, voice_id: str | None = None) -> AudioResult:
        """Synthesized speech for ``text``, served from cache when possible."""
        _require_text(text, "text")
        voice = self._voice(voice_id)

        result = await self._orchestrator.get_or_generate(
            NAMESPACE_TTS,
            self._tts_version,
            SpeechRequest(text=text, voice_id=voice),
            lambda: self._synthesizer.synthesize(text, voice),
            request_id=voice,
            content_type=CONTENT_TYPE_AUDIO,
            extension=EXTENSION_AUDIO,
        )
        return AudioResult(url=result.playable_url, cached=result.cached)

    # ------------------------------------------------------------------
    # Dialogue
    # ------------------------------------------------------------------

    def _dialogue_request(self, word_id: str, word: str) -> DialogueRequest:
        _require_text(word_id, "word_id")
        _require_text(word, "word")
        return DialogueRequest(word_id=word_id, word=word)

    def _to_conversation(self, result: GenerationResult) -> Conversation:
        try:
            return Conversation.from_bytes(result.entry.data)
        except (ValueError, KeyError, TypeError) as e:
            raise MalformedOutputError(
                NAMESPACE_CONVERSATION_TEXT, f"stored conversation is unreadable: {e}"
            ) from e

    async def get_or_generate_dialogue_text(self, word_id: str, word: str) -> DialogueResult:
        """Structured dialogue for a vocabulary word."""
        request = self._dialogue_request(word_id, word)
        key = derive_key(NAMESPACE_CONVERSATION_TEXT, self._conversation_version, request)
        conversation_id = f"{request.word_id.strip()}-{key.digest[:16]}"

        async def generate() -> bytes:
            turns = await self._dialogue.generate_dialogue(request.word.strip(), request.context)
            conversation = Conversation(
                id=conversation_id,
                word_id=request.word_id.strip(),
                word=request.word.strip(),
                generator_version=self._conversation_version,
                turns=tuple(turns),
                generated_at=datetime.now(timezone.utc).isoformat(),
            )
            return conversation.to_bytes()

        result = await self._orchestrator.get_or_generate(
            NAMESPACE_CONVERSATION_TEXT,
            self._conversation_version,
            request,
            generate,
            request_id=request.word_id.strip(),
            content_type=CONTENT_TYPE_JSON,
            extension=EXTENSION_JSON,
        )
        return DialogueResult(conversation=self._to_conversation(result), cached=result.cached)

    async def _existing_conversation(self, word_id: str, word: str) -> Conversation:
        request = self._dialogue_request(word_id, word)
        result = await self._orchestrator.lookup(
            NAMESPACE_CONVERSATION_TEXT,
            self._conversation_version,
            request,
            request_id=request.word_id.strip(),
            content_type=CONTENT_TYPE_JSON,
            extension=EXTENSION_JSON,
        )
        if result is None:
            raise NotFoundError(f"Conversation for word {word_id!r}")
        return self._to_conversation(result)

    # ------------------------------------------------------------------
    # Per-turn audio
    # ------------------------------------------------------------------

    async def get_or_generate_turn_audio(
        self,
        word_id: str,
        word: str,
        turn_index: int,
        voice_id: str | None = None,
    ) -> AudioResult:
        """Audio for one turn of an already generated conversation."""
        conversation = await self._existing_conversation(word_id, word)
        result = await self._turns.generate_turn(conversation, turn_index, self._voice(voice_id))
        return AudioResult(url=result.playable_url, cached=result.cached)

    async def get_or_generate_conversation_audio(
        self,
        word_id: str,
        word: str,
        voice_id: str | None = None,
    ) -> TurnAudioBatch:
        """Audio for every turn of an already generated conversation."""
        conversation = await self._existing_conversation(word_id, word)
        return await self._turns.generate_all(conversation, self._voice(voice_id))

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def get_cache_metrics(self) -> dict[str, Any]:
        return {
            "ephemeral_available": self.ephemeral.is_available,
            "inflight": self._orchestrator.inflight_count(),
            "per_namespace": self.ephemeral.metrics.snapshot(),
        }

    async def invalidate_namespace(
        self,
        namespace: str,
        *,
        durable: bool = False,
    ) -> InvalidationResult:
        """Drop every cached artifact in ``namespace``.

        The ephemeral tier is always cleared; the durable store only when
        ``durable`` is set. Without it the next read backfills the ephemeral
        tier from the durable copy and nothing is regenerated.
        """
        if namespace not in NAMESPACES:
            raise ValidationError(
                f"Unknown namespace: {namespace}",
                details={"namespaces": sorted(NAMESPACES)},
            )

        ephemeral_deleted = await self.ephemeral.clear_namespace(namespace)
        durable_deleted = 0
        if durable:
            durable_deleted = await self.store.delete_prefix(f"{namespace}/")

        logger.info(
            "Namespace invalidated",
            namespace=namespace,
            ephemeral_deleted=ephemeral_deleted,
            durable_deleted=durable_deleted,
        )
        return InvalidationResult(
            namespace=namespace,
            ephemeral_deleted=ephemeral_deleted,
            durable_deleted=durable_deleted,
        )

    async def check_health(self) -> dict[str, bool]:
        return {
            "ephemeral": await self.ephemeral.check_health(),
            "storage": await self.store.check_health(),
        }

    async def close(self) -> None:
        await self._orchestrator.close()
        await self.ephemeral.close()
        await self.store.close()


async def build_generation_service(settings: Settings) -> GenerationService:
    """Wire the tiers, back ends and orchestrator from settings."""
    ephemeral = await create_cache_service(settings)
    store = create_content_store(settings)
    orchestrator = CacheOrchestrator(
        ephemeral,
        store,
        ttl_for=settings.ttl_for,
        backend_timeout=settings.backend_timeout_seconds,
    )
    service = GenerationService(
        orchestrator,
        GoogleSpeechSynthesizer.from_settings(settings),
        create_dialogue_generator(settings),
        tts_version=settings.tts_generator_version,
        conversation_version=settings.conversation_generator_version,
        turn_audio_version=settings.turn_audio_generator_version,
        default_voice=settings.tts_voice_default,
    )
    logger.info(
        "Generation service ready",
        ephemeral=type(ephemeral).__name__,
        store=type(store).__name__,
    )
    return service
