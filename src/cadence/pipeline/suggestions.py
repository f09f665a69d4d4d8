"""
Weak-Word Suggestions

Asks an LLM to rewrite sentences flagged for weak words. Items are processed
one at a time; a failed rewrite is logged and skipped, so partial success is
a normal outcome.
"""

from typing import Any, Iterable

import structlog

from cadence.config import settings
from cadence.core.models import WeakWord, WeakWordSuggestion

logger = structlog.get_logger()

SYSTEM_PROMPT = (
    "You are a communication coach. Rewrite sentences to be more clear and "
    "confident by replacing weak words. Keep the meaning the same but make it stronger."
)


def build_prompt(word: str, sentence: str) -> str:
    return f'Improve this sentence by removing the weak word "{word}":\n\n"{sentence}"'


class SuggestionGenerator:
    """
    LLM-backed sentence rewriter.

    Usage:
        generator = SuggestionGenerator()
        suggestions = await generator.generate(analytics.weak_words)
    """

    def __init__(
        self,
        llm_provider: str | None = None,
        llm_model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        max_items: int | None = None,
        client: Any = None,
    ):
        self.llm_provider = llm_provider or settings.llm_provider
        self.llm_model = llm_model or settings.llm_model
        self.max_tokens = max_tokens or settings.llm_max_tokens
        self.temperature = settings.llm_temperature if temperature is None else temperature
        self.max_items = settings.suggestion_max_items if max_items is None else max_items
        self._client = client
        self._initialized = client is not None

    async def initialize(self) -> None:
        """Initialize LLM client."""
        if self._initialized:
            return

        try:
            if self.llm_provider == "openai":
                from openai import AsyncOpenAI

                self._client = AsyncOpenAI(api_key=settings.openai_api_key)
            elif self.llm_provider == "anthropic":
                from anthropic import AsyncAnthropic

                self._client = AsyncAnthropic(api_key=settings.anthropic_api_key)
            else:
                self._client = None

            self._initialized = True
            logger.info("Suggestion generator initialized", provider=self.llm_provider)

        except Exception as e:
            logger.warning("LLM client not available", error=str(e))
            self._client = None
            self._initialized = True

    async def rewrite(self, word: str, sentence: str) -> str:
        """Rewrite one sentence without the weak word."""
        await self.initialize()
        if self._client is None:
            raise RuntimeError("No LLM client configured")

        prompt = build_prompt(word, sentence)

        if self.llm_provider == "anthropic":
            response = await self._client.messages.create(
                model=self.llm_model,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
            content = response.content[0].text if response.content else ""
        else:
            response = await self._client.chat.completions.create(
                model=self.llm_model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
            content = response.choices[0].message.content or ""

        return content.strip()

    async def generate(self, weak_words: Iterable[WeakWord]) -> list[WeakWordSuggestion]:
        """Rewrite up to `max_items` weak-word sentences, sequentially."""
        await self.initialize()
        if self._client is None:
            logger.warning("Suggestions skipped, no LLM client", provider=self.llm_provider)
            return []

        batch = list(weak_words)[: self.max_items]
        suggestions = []
        for item in batch:
            try:
                suggestion = await self.rewrite(item.word, item.sentence)
            except Exception as e:
                logger.warning("Suggestion failed", word=item.word, error=str(e))
                continue

            if not suggestion:
                logger.warning("Empty suggestion", word=item.word)
                continue

            suggestions.append(
                WeakWordSuggestion(word=item.word, sentence=item.sentence, suggestion=suggestion)
            )

        logger.info("Suggestions generated", requested=len(batch), produced=len(suggestions))
        return suggestions


def apply_suggestions(
    weak_words: list[WeakWord],
    suggestions: Iterable[WeakWordSuggestion],
) -> list[WeakWord]:
    """Patch suggestions onto weak-word entries matched by (word, sentence)."""
    by_key = {(s.word, s.sentence): s.suggestion for s in suggestions}
    return [
        item.model_copy(update={"suggestion": by_key[(item.word, item.sentence)]})
        if (item.word, item.sentence) in by_key
        else item
        for item in weak_words
    ]
