"""Generation API endpoints.

Every endpoint goes through the shared GenerationService, so repeated
requests are served from the ephemeral or durable tier and concurrent
identical requests share one back end call.
"""

from fastapi import APIRouter, Query

from gencache.api.deps import Generation
from gencache.api.schemas import (
    AudioResponse,
    CacheMetricsResponse,
    ConversationAudioRequest,
    ConversationAudioResponse,
    ConversationData,
    ConversationTextRequest,
    ConversationTextResponse,
    ErrorResponse,
    InvalidationResponse,
    TTSRequest,
    TurnAudioRequest,
)
from gencache.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(tags=["Generation"])

_BACKEND_ERRORS = {
    502: {"model": ErrorResponse, "description": "Generation back end failed"},
}


@router.post(
    "/tts",
    response_model=AudioResponse,
    summary="Synthesize speech",
    responses=_BACKEND_ERRORS,
)
async def synthesize_speech(request: TTSRequest, service: Generation) -> AudioResponse:
    """
    Return a URL for spoken audio of `text`.

    `cached` is false only when this request (or one it joined) ran the synthesizer.
    """
    result = await service.get_or_generate_audio(request.text, request.voice)
    return AudioResponse(url=result.url, cached=result.cached)


@router.post(
    "/conversation/text",
    response_model=ConversationTextResponse,
    summary="Generate dialogue text",
    responses=_BACKEND_ERRORS,
)
async def generate_conversation_text(
    request: ConversationTextRequest,
    service: Generation,
) -> ConversationTextResponse:
    """Return a 3-5 turn Mandarin dialogue built around `word`."""
    result = await service.get_or_generate_dialogue_text(request.word_id, request.word)
    return ConversationTextResponse(
        conversation=ConversationData.from_conversation(result.conversation),
        cached=result.cached,
    )


@router.post(
    "/conversation/audio",
    response_model=AudioResponse,
    summary="Generate audio for one dialogue turn",
    responses={
        404: {"model": ErrorResponse, "description": "Conversation or turn not found"},
        **_BACKEND_ERRORS,
    },
)
async def generate_turn_audio(request: TurnAudioRequest, service: Generation) -> AudioResponse:
    """Return audio for a single turn of a previously generated conversation."""
    result = await service.get_or_generate_turn_audio(
        request.word_id,
        request.word,
        request.turn_index,
        request.voice,
    )
    return AudioResponse(url=result.url, cached=result.cached)


@router.post(
    "/conversation/audio/all",
    response_model=ConversationAudioResponse,
    summary="Generate audio for every dialogue turn",
    responses={404: {"model": ErrorResponse, "description": "Conversation not found"}},
)
async def generate_conversation_audio(
    request: ConversationAudioRequest,
    service: Generation,
) -> ConversationAudioResponse:
    """
    Return per-turn audio for a previously generated conversation.

    Turns are generated independently; failed turns are listed in `failed`
    while the rest are still returned.
    """
    batch = await service.get_or_generate_conversation_audio(
        request.word_id,
        request.word,
        request.voice,
    )
    return ConversationAudioResponse.from_batch(batch)


@router.get(
    "/cache/metrics",
    response_model=CacheMetricsResponse,
    summary="Cache hit/miss/error counters",
)
async def cache_metrics(service: Generation) -> CacheMetricsResponse:
    return CacheMetricsResponse.model_validate(service.get_cache_metrics())


@router.delete(
    "/cache/{namespace}",
    response_model=InvalidationResponse,
    summary="Invalidate a cache namespace",
    responses={422: {"model": ErrorResponse, "description": "Unknown namespace"}},
)
async def invalidate_namespace(
    namespace: str,
    service: Generation,
    durable: bool = Query(
        default=False,
        description=(
            "Also delete durable artifacts. Without it the next read refills "
            "the ephemeral tier from the durable copy, so callers see no change."
        ),
    ),
) -> InvalidationResponse:
    """
    Drop every cached entry in `namespace` (`tts`, `conv-text` or `conv-audio`).

    Durable artifacts are kept unless `durable=true`. An ephemeral-only
    invalidation is refilled from the durable copy on the next read, so it
    only forces regeneration together with `durable=true`.
    """
    result = await service.invalidate_namespace(namespace, durable=durable)
    logger.info("Cache invalidated via API", namespace=namespace, durable=durable)
    return InvalidationResponse(
        namespace=result.namespace,
        ephemeral_deleted=result.ephemeral_deleted,
        durable_deleted=result.durable_deleted,
    )
