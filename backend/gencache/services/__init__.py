"""Services module exports."""

from gencache.services.dialogue import DialogueGenerator, create_dialogue_generator
from gencache.services.generation import GenerationService, build_generation_service
from gencache.services.models import (
    AudioResult,
    CacheEntry,
    Conversation,
    DialogueResult,
    GenerationResult,
    InvalidationResult,
    Turn,
    TurnAudioBatch,
    TurnAudioResult,
)
from gencache.services.orchestrator import CacheOrchestrator
from gencache.services.storage import (
    DurableContentStore,
    GCSContentStore,
    LocalContentStore,
    create_content_store,
)
from gencache.services.tts import GoogleSpeechSynthesizer, SpeechSynthesizer
from gencache.services.turns import PerTurnAudioCoordinator

__all__ = [
    # Facade
    "GenerationService",
    "build_generation_service",
    # Engine
    "CacheOrchestrator",
    "PerTurnAudioCoordinator",
    # Durable tier
    "DurableContentStore",
    "GCSContentStore",
    "LocalContentStore",
    "create_content_store",
    # Back ends
    "SpeechSynthesizer",
    "GoogleSpeechSynthesizer",
    "DialogueGenerator",
    "create_dialogue_generator",
    # Models
    "AudioResult",
    "CacheEntry",
    "Conversation",
    "DialogueResult",
    "GenerationResult",
    "InvalidationResult",
    "Turn",
    "TurnAudioBatch",
    "TurnAudioResult",
]
