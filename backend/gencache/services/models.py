"""Artifact and conversation value types shared by the generation services."""

import base64
import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from gencache.services.cache.keys import CacheKey


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class CacheEntry:
    """A stored artifact plus the metadata needed to serve it again."""

    data: bytes
    content_type: str
    generator_version: str
    created_at: datetime = field(default_factory=_utcnow)
    location: str | None = None

    def to_ephemeral(self) -> bytes:
        """Ephemeral-tier value: the ISO creation time, a newline, then the payload."""
        return self.created_at.isoformat().encode("ascii") + b"\n" + self.data


def split_ephemeral(value: bytes) -> tuple[datetime, bytes]:
    """Recover ``(created_at, data)`` from an ephemeral-tier value.

    Raises ValueError when the creation stamp is missing or unreadable.
    """
    stamp, sep, data = value.partition(b"\n")
    if not sep:
        raise ValueError("ephemeral value has no creation stamp")
    return _aware(datetime.fromisoformat(stamp.decode("ascii"))), data


@dataclass(frozen=True)
class GenerationResult:
    """Outcome of one cache-aside lookup.

    ``source`` is ``"ephemeral"``, ``"durable"`` or ``"generated"``.
    ``durable`` is False when a fresh artifact could not be persisted.
    """

    entry: CacheEntry
    key: CacheKey
    cached: bool
    source: str
    durable: bool = True

    @property
    def url(self) -> str | None:
        return self.entry.location

    @property
    def playable_url(self) -> str:
        """Stored location, or an inline data URL when the artifact was not persisted."""
        if self.entry.location:
            return self.entry.location
        encoded = base64.b64encode(self.entry.data).decode("ascii")
        return f"data:{self.entry.content_type};base64,{encoded}"


@dataclass(frozen=True)
class Turn:
    """One line of a generated dialogue."""

    speaker: str
    chinese: str
    pinyin: str = ""
    english: str = ""


@dataclass(frozen=True)
class Conversation:
    id: str
    word_id: str
    word: str
    generator_version: str
    turns: tuple[Turn, ...]
    generated_at: str

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["turns"] = [asdict(t) for t in self.turns]
        return data

    def to_bytes(self) -> bytes:
        return json.dumps(self.to_dict(), ensure_ascii=False).encode("utf-8")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Conversation":
        return cls(
            id=data["id"],
            word_id=data["word_id"],
            word=data["word"],
            generator_version=data["generator_version"],
            turns=tuple(
                Turn(
                    speaker=t["speaker"],
                    chinese=t["chinese"],
                    pinyin=t.get("pinyin", ""),
                    english=t.get("english", ""),
                )
                for t in data["turns"]
            ),
            generated_at=data["generated_at"],
        )

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Conversation":
        return cls.from_dict(json.loads(raw.decode("utf-8")))


@dataclass(frozen=True)
class AudioResult:
    url: str
    cached: bool


@dataclass(frozen=True)
class DialogueResult:
    conversation: Conversation
    cached: bool


@dataclass(frozen=True)
class TurnAudioResult:
    """Per-turn outcome; exactly one of ``url`` and ``error`` is set."""

    turn_index: int
    url: str | None = None
    cached: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class TurnAudioBatch:
    conversation_id: str
    voice_id: str
    results: tuple[TurnAudioResult, ...]

    @property
    def succeeded(self) -> list[int]:
        return [r.turn_index for r in self.results if r.ok]

    @property
    def failed(self) -> list[int]:
        return [r.turn_index for r in self.results if not r.ok]

    @property
    def partial(self) -> bool:
        return bool(self.failed) and bool(self.succeeded)


@dataclass(frozen=True)
class InvalidationResult:
    namespace: str
    ephemeral_deleted: int
    durable_deleted: int = 0
