"""Per-turn audio for a cached conversation.

Each turn is synthesized and cached independently, so one failed turn
never prevents the others from being served.
"""

import asyncio

from gencache.core.exceptions import NotFoundError
from gencache.core.logging import get_logger
from gencache.services.cache.constants import (
    CONTENT_TYPE_AUDIO,
    EXTENSION_AUDIO,
    NAMESPACE_CONVERSATION_AUDIO,
)
from gencache.services.cache.keys import TurnAudioRequest
from gencache.services.models import (
    Conversation,
    GenerationResult,
    TurnAudioBatch,
    TurnAudioResult,
)
from gencache.services.orchestrator import CacheOrchestrator
from gencache.services.tts import SpeechSynthesizer

logger = get_logger(__name__)


class PerTurnAudioCoordinator:
    """Fan out one cached synthesis per dialogue turn."""

    def __init__(
        self,
        orchestrator: CacheOrchestrator,
        synthesizer: SpeechSynthesizer,
        version: str,
    ) -> None:
        self._orchestrator = orchestrator
        self._synthesizer = synthesizer
        self._version = version

    async def generate_turn(
        self,
        conversation: Conversation,
        turn_index: int,
        voice_id: str,
    ) -> GenerationResult:
        """Audio for a single turn. Raises NotFoundError for an out-of-range index."""
        if not 0 <= turn_index < len(conversation.turns):
            raise NotFoundError(f"Turn {turn_index} of conversation {conversation.id}")

        text = conversation.turns[turn_index].chinese
        request = TurnAudioRequest(
            conversation_key=conversation.id,
            turn_index=turn_index,
            text=text,
            voice_id=voice_id,
        )
        return await self._orchestrator.get_or_generate(
            NAMESPACE_CONVERSATION_AUDIO,
            self._version,
            request,
            lambda: self._synthesizer.synthesize(text, voice_id),
            request_id=conversation.id,
            content_type=CONTENT_TYPE_AUDIO,
            extension=EXTENSION_AUDIO,
        )

    async def generate_all(self, conversation: Conversation, voice_id: str) -> TurnAudioBatch:
        """Audio for every turn; returns once all turns have settled."""
        outcomes = await asyncio.gather(
            *(
                self.generate_turn(conversation, index, voice_id)
                for index in range(len(conversation.turns))
            ),
            return_exceptions=True,
        )

        results: list[TurnAudioResult] = []
        for index, outcome in enumerate(outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                logger.warning(
                    "Turn audio failed",
                    conversation_id=conversation.id,
                    turn_index=index,
                    error=str(outcome),
                )
                results.append(TurnAudioResult(turn_index=index, error=str(outcome)))
            else:
                results.append(
                    TurnAudioResult(
                        turn_index=index,
                        url=outcome.playable_url,
                        cached=outcome.cached,
                    )
                )

        batch = TurnAudioBatch(
            conversation_id=conversation.id,
            voice_id=voice_id,
            results=tuple(results),
        )
        if batch.failed:
            logger.info(
                "Conversation audio partially generated",
                conversation_id=conversation.id,
                succeeded=len(batch.succeeded),
                failed=len(batch.failed),
            )
        return batch
