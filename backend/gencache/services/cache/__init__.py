"""Ephemeral cache tier and cache key derivation.

Provides:
- Deterministic, versioned SHA-256 cache keys per namespace
- Upstash Redis tier with short per-call timeouts
- No-op tier substituted automatically when Redis is disabled or unreachable
- Per-namespace hit/miss/error counters
"""

from gencache.services.cache.base import EphemeralCacheService
from gencache.services.cache.constants import (
    CONTENT_TYPE_AUDIO,
    CONTENT_TYPE_JSON,
    EXTENSION_AUDIO,
    EXTENSION_JSON,
    NAMESPACE_CONVERSATION_AUDIO,
    NAMESPACE_CONVERSATION_TEXT,
    NAMESPACE_TTS,
    NAMESPACES,
)
from gencache.services.cache.keys import (
    CacheKey,
    DialogueRequest,
    GenerationRequest,
    SpeechRequest,
    TurnAudioRequest,
    derive_key,
)
from gencache.services.cache.metrics import CacheMetrics
from gencache.services.cache.noop import NoOpCacheService
from gencache.services.cache.service import create_cache_service
from gencache.services.cache.upstash import UpstashCacheService

__all__ = [
    # Namespaces and content types
    "NAMESPACE_TTS",
    "NAMESPACE_CONVERSATION_TEXT",
    "NAMESPACE_CONVERSATION_AUDIO",
    "NAMESPACES",
    "CONTENT_TYPE_AUDIO",
    "CONTENT_TYPE_JSON",
    "EXTENSION_AUDIO",
    "EXTENSION_JSON",
    # Keys
    "CacheKey",
    "GenerationRequest",
    "SpeechRequest",
    "DialogueRequest",
    "TurnAudioRequest",
    "derive_key",
    # Tier
    "CacheMetrics",
    "EphemeralCacheService",
    "NoOpCacheService",
    "UpstashCacheService",
    "create_cache_service",
]
