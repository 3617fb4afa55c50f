"""Pydantic schemas for API requests and responses."""

from datetime import datetime
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, Field

from gencache.services.models import Conversation, TurnAudioBatch


def _not_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be empty or whitespace")
    return value


NonBlankStr = Annotated[str, AfterValidator(_not_blank)]


# ============================================================
# Audio Schemas
# ============================================================

class TTSRequest(BaseModel):
    """Schema for speech synthesis request."""

    text: NonBlankStr = Field(..., min_length=1, max_length=5000)
    voice: str | None = Field(default=None, max_length=100, description="Cloud TTS voice name")


class AudioResponse(BaseModel):
    """Schema for a single audio artifact."""

    url: str
    cached: bool


# ============================================================
# Conversation Schemas
# ============================================================

class ConversationTextRequest(BaseModel):
    """Schema for dialogue generation request."""

    word_id: NonBlankStr = Field(..., min_length=1, max_length=200)
    word: NonBlankStr = Field(..., min_length=1, max_length=200)


class TurnAudioRequest(ConversationTextRequest):
    """Schema for single-turn audio request."""

    turn_index: int = Field(..., ge=0)
    voice: str | None = Field(default=None, max_length=100)


class ConversationAudioRequest(ConversationTextRequest):
    """Schema for whole-conversation audio request."""

    voice: str | None = Field(default=None, max_length=100)


class TurnData(BaseModel):
    """Schema for a dialogue turn."""

    speaker: str
    chinese: str
    pinyin: str = ""
    english: str = ""


class ConversationData(BaseModel):
    """Schema for a generated conversation."""

    id: str
    word_id: str
    word: str
    generator_version: str
    turns: list[TurnData]
    generated_at: str

    @classmethod
    def from_conversation(cls, conversation: Conversation) -> "ConversationData":
        return cls.model_validate(conversation.to_dict())


class ConversationTextResponse(BaseModel):
    """Schema for dialogue generation response."""

    conversation: ConversationData
    cached: bool


class TurnAudioData(BaseModel):
    """Schema for one turn's audio outcome."""

    turn_index: int
    url: str | None = None
    cached: bool = False
    error: str | None = None


class ConversationAudioResponse(BaseModel):
    """Schema for whole-conversation audio response.

    Partial success is reported with ``partial=True`` and a 200 status.
    """

    conversation_id: str
    voice: str
    turns: list[TurnAudioData]
    succeeded: list[int]
    failed: list[int]
    partial: bool

    @classmethod
    def from_batch(cls, batch: TurnAudioBatch) -> "ConversationAudioResponse":
        return cls(
            conversation_id=batch.conversation_id,
            voice=batch.voice_id,
            turns=[
                TurnAudioData(
                    turn_index=r.turn_index,
                    url=r.url,
                    cached=r.cached,
                    error=r.error,
                )
                for r in batch.results
            ],
            succeeded=batch.succeeded,
            failed=batch.failed,
            partial=batch.partial,
        )


# ============================================================
# Cache Schemas
# ============================================================

class NamespaceMetrics(BaseModel):
    """Schema for per-namespace cache counters."""

    hits: int
    misses: int
    errors: int
    total: int
    hit_rate: float
    error_rate: float


class CacheMetricsResponse(BaseModel):
    """Schema for cache metrics snapshot."""

    ephemeral_available: bool
    inflight: int
    per_namespace: dict[str, NamespaceMetrics]


class InvalidationResponse(BaseModel):
    """Schema for namespace invalidation result."""

    namespace: str
    ephemeral_deleted: int
    durable_deleted: int


# ============================================================
# Common Schemas
# ============================================================

class ErrorResponse(BaseModel):
    """Schema for error responses."""

    error: dict[str, Any] = Field(
        ...,
        json_schema_extra={"example": {"message": "Error description", "details": {}}},
    )


class ServiceHealth(BaseModel):
    """Schema for individual service health."""

    status: str = Field(..., pattern=r"^(healthy|unhealthy|degraded)$")
    latency_ms: float | None = None
    details: dict[str, Any] | None = None


class HealthResponse(BaseModel):
    """Schema for health check response."""

    status: str = Field(..., pattern=r"^(healthy|unhealthy|degraded)$")
    timestamp: datetime
    version: str
    services: dict[str, ServiceHealth]
