"""Dialogue generation back ends.

Supports multiple LLM providers behind a common interface:
- Google Gemini (default)
- OpenAI

Both ask for 3-5 turns in ``A: <Chinese> | <Pinyin> | <English>`` form
and share one parser, so the cached Conversation shape does not depend on
the provider.
"""

import re
from abc import ABC, abstractmethod

from google import genai
from google.genai import types as genai_types
from openai import AsyncOpenAI

from gencache.core.config import Settings
from gencache.core.exceptions import BackendError, MalformedOutputError
from gencache.core.logging import get_logger
from gencache.services.models import Turn

logger = get_logger(__name__)

MIN_TURNS = 3
MAX_TURNS = 5

_RICH_TURN = re.compile(r"^(A|B)[:：]\s*(.*?)\s*\|\s*(.*?)\s*\|\s*(.*)$")
_BARE_TURN = re.compile(r"^(A|B)[:：]\s*(.+)$")

FALLBACK_TURNS = (
    Turn(speaker="A", chinese="你好，今天天气真好。"),
    Turn(speaker="B", chinese="是的，我们去公园走走吧。"),
    Turn(speaker="A", chinese="好主意，我们现在就走。"),
)


def build_dialogue_prompt(word: str, context: str = "") -> str:
    """Prompt asking for a short rich-format Mandarin dialogue."""
    prompt = f"""Generate a short Mandarin conversation using the word "{word}".

For each turn, provide:
- Chinese (characters)
- Pinyin (phonetic transcription)
- English (translation)

Format:
A: <Chinese> | <Pinyin> | <English>
B: <Chinese> | <Pinyin> | <English>
A: <Chinese> | <Pinyin> | <English>
B: <Chinese> | <Pinyin> | <English>

Keep it conversational and natural, {MIN_TURNS}-{MAX_TURNS} turns, each turn 1-2 short sentences. Do not add any extra commentary or explanation."""
    return f"{prompt}\n\nContext: {context}" if context else prompt


def parse_dialogue(raw_text: str, backend: str = "llm") -> list[Turn]:
    """Parse ``A:``/``B:`` lines into turns.

    Raises MalformedOutputError when nothing parses. Fewer than three
    turns falls back to a fixed dialogue; more than five is truncated.
    """
    turns: list[Turn] = []
    for line in raw_text.splitlines():
        line = line.strip().strip("*").strip()
        if not line:
            continue
        if match := _RICH_TURN.match(line):
            speaker, chinese, pinyin, english = match.groups()
            turns.append(Turn(speaker=speaker, chinese=chinese, pinyin=pinyin, english=english))
        elif match := _BARE_TURN.match(line):
            turns.append(Turn(speaker=match.group(1), chinese=match.group(2).strip()))

    if not turns:
        raise MalformedOutputError(backend, "no dialogue turns found in output")

    if len(turns) < MIN_TURNS:
        logger.warning("Not enough turns generated, using fallback", parsed=len(turns))
        return list(FALLBACK_TURNS)

    return turns[:MAX_TURNS]


class DialogueGenerator(ABC):
    """Abstract base class for dialogue generation back ends."""

    provider_name: str = "base"

    def __init__(self, model: str, temperature: float = 0.7, max_tokens: int = 1000) -> None:
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    @abstractmethod
    async def _complete(self, prompt: str) -> str:
        """Return the raw completion text."""
        ...

    async def generate_dialogue(self, topic: str, context: str = "") -> list[Turn]:
        """Generate structured turns for ``topic``."""
        raw = await self._complete(build_dialogue_prompt(topic, context))
        return parse_dialogue(raw, self.provider_name)


class GeminiDialogueGenerator(DialogueGenerator):
    """Adapter for Google Gemini models."""

    provider_name = "gemini"

    def __init__(self, api_key: str, model: str, temperature: float = 0.7, max_tokens: int = 1000):
        super().__init__(model, temperature, max_tokens)
        self.api_key = api_key

        if not self.api_key:
            logger.warning("Gemini API key not configured")

        self.client = genai.Client(api_key=self.api_key)

    async def _complete(self, prompt: str) -> str:
        if not self.api_key:
            raise BackendError("gemini", "API key not configured")

        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=prompt,
                config=genai_types.GenerateContentConfig(
                    temperature=self.temperature,
                    max_output_tokens=self.max_tokens,
                ),
            )
        except Exception as e:
            logger.error("Gemini generation error", error=str(e), model=self.model)
            raise BackendError("gemini", str(e)) from e

        if not response.text:
            raise MalformedOutputError("gemini", "empty response")
        return response.text


class OpenAIDialogueGenerator(DialogueGenerator):
    """Adapter for OpenAI models."""

    provider_name = "openai"

    def __init__(self, api_key: str, model: str, temperature: float = 0.7, max_tokens: int = 1000):
        super().__init__(model, temperature, max_tokens)
        self.api_key = api_key

        if not self.api_key:
            logger.warning("OpenAI API key not configured")

        self.client = AsyncOpenAI(api_key=self.api_key or "unset")

    async def _complete(self, prompt: str) -> str:
        if not self.api_key:
            raise BackendError("openai", "API key not configured")

        try:
            completion = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except Exception as e:
            logger.error("OpenAI generation error", error=str(e), model=self.model)
            raise BackendError("openai", str(e)) from e

        content = completion.choices[0].message.content if completion.choices else None
        if not content:
            raise MalformedOutputError("openai", "empty response")
        return content


def create_dialogue_generator(settings: Settings) -> DialogueGenerator:
    """Build the configured dialogue back end."""
    if settings.default_llm_provider == "openai":
        return OpenAIDialogueGenerator(
            settings.openai_api_key,
            settings.default_llm_model,
            settings.llm_temperature,
            settings.llm_max_tokens,
        )
    return GeminiDialogueGenerator(
        settings.gemini_api_key,
        settings.default_llm_model,
        settings.llm_temperature,
        settings.llm_max_tokens,
    )
