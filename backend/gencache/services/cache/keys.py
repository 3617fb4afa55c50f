"""Deterministic cache key derivation.

A key is the SHA-256 digest of ``namespace``, generator ``version`` and the
request's canonical byte encoding. Bumping a generator version therefore
moves every entry of that namespace to a fresh key space without touching
old entries.
"""

import hashlib
import json
from dataclasses import asdict, dataclass
from typing import Any, Protocol

from gencache.services.cache.constants import (
    NAMESPACE_CONVERSATION_AUDIO,
    NAMESPACE_CONVERSATION_TEXT,
    NAMESPACE_TTS,
    NAMESPACES,
)


class GenerationRequest(Protocol):
    """Any immutable request that can be encoded to stable bytes."""

    namespace: str

    def canonical_bytes(self) -> bytes: ...


def _canonical(payload: dict[str, Any]) -> bytes:
    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


@dataclass(frozen=True)
class SpeechRequest:
    """Synthesize ``text`` with ``voice_id``."""

    text: str
    voice_id: str

    namespace = NAMESPACE_TTS

    def canonical_bytes(self) -> bytes:
        # Text is hashed verbatim: whitespace changes what gets spoken.
        return _canonical({"text": self.text, "voice": self.voice_id})


@dataclass(frozen=True)
class DialogueRequest:
    """Generate a short dialogue around a vocabulary word."""

    word_id: str
    word: str
    context: str = ""

    namespace = NAMESPACE_CONVERSATION_TEXT

    def canonical_bytes(self) -> bytes:
        return _canonical({
            "word_id": self.word_id.strip(),
            "word": self.word.strip(),
            "context": self.context.strip(),
        })


@dataclass(frozen=True)
class TurnAudioRequest:
    """Audio for one turn of a cached conversation."""

    conversation_key: str
    turn_index: int
    text: str
    voice_id: str

    namespace = NAMESPACE_CONVERSATION_AUDIO

    def canonical_bytes(self) -> bytes:
        return _canonical(asdict(self))


@dataclass(frozen=True)
class CacheKey:
    """Fixed-length digest scoped to a namespace and generator version."""

    namespace: str
    version: str
    digest: str

    def __str__(self) -> str:
        return f"{self.namespace}:{self.digest}"


def derive_key(namespace: str, version: str, request: GenerationRequest) -> CacheKey:
    """Derive the cache key for ``request``. Pure and deterministic."""
    if namespace not in NAMESPACES:
        raise ValueError(f"Unknown cache namespace: {namespace}")

    hasher = hashlib.sha256()
    hasher.update(namespace.encode("utf-8"))
    hasher.update(b"\x00")
    hasher.update(version.encode("utf-8"))
    hasher.update(b"\x00")
    hasher.update(request.canonical_bytes())
    return CacheKey(namespace=namespace, version=version, digest=hasher.hexdigest())
