"""
Unit tests for weak-word suggestions.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from cadence.core.models import WeakWord, WeakWordSuggestion
from cadence.pipeline.suggestions import (
    SYSTEM_PROMPT,
    SuggestionGenerator,
    apply_suggestions,
    build_prompt,
)


def openai_response(content):
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    return response


@pytest.fixture
def openai_client():
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=openai_response(" We should try it. "))
    return client


@pytest.fixture
def weak_words():
    return [
        WeakWord(word="just", sentence=f"We should just try option {i}")
        for i in range(7)
    ]


# ══════════════════════════════════════════════════════════════
# Generator Tests
# ══════════════════════════════════════════════════════════════


class TestSuggestionGenerator:
    """Test the LLM rewriter."""

    @pytest.mark.asyncio
    async def test_openai_rewrite(self, openai_client):
        generator = SuggestionGenerator(llm_provider="openai", llm_model="gpt-4", client=openai_client)

        result = await generator.rewrite("just", "We should just try it")

        assert result == "We should try it."
        kwargs = openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4"
        assert kwargs["messages"][0] == {"role": "system", "content": SYSTEM_PROMPT}
        assert kwargs["messages"][1]["content"] == build_prompt("just", "We should just try it")

    @pytest.mark.asyncio
    async def test_anthropic_rewrite(self):
        client = MagicMock()
        response = MagicMock()
        response.content = [MagicMock(text="Let's try it.")]
        client.messages.create = AsyncMock(return_value=response)
        generator = SuggestionGenerator(llm_provider="anthropic", llm_model="claude", client=client)

        result = await generator.rewrite("just", "Let's just try it")

        assert result == "Let's try it."
        assert client.messages.create.call_args.kwargs["system"] == SYSTEM_PROMPT

    @pytest.mark.asyncio
    async def test_generate_caps_items(self, openai_client, weak_words):
        """Only the first max_items weak words are rewritten."""
        generator = SuggestionGenerator(llm_provider="openai", max_items=5, client=openai_client)

        suggestions = await generator.generate(weak_words)

        assert len(suggestions) == 5
        assert openai_client.chat.completions.create.await_count == 5
        assert suggestions[0] == WeakWordSuggestion(
            word="just",
            sentence="We should just try option 0",
            suggestion="We should try it.",
        )

    @pytest.mark.asyncio
    async def test_failed_item_is_skipped(self, openai_client, weak_words):
        openai_client.chat.completions.create = AsyncMock(
            side_effect=[
                openai_response("First."),
                RuntimeError("rate limited"),
                openai_response("   "),
                openai_response("Fourth."),
            ]
        )
        generator = SuggestionGenerator(llm_provider="openai", max_items=4, client=openai_client)

        suggestions = await generator.generate(weak_words)

        assert [s.suggestion for s in suggestions] == ["First.", "Fourth."]
        assert [s.sentence for s in suggestions] == [
            "We should just try option 0",
            "We should just try option 3",
        ]

    @pytest.mark.asyncio
    async def test_no_client_generates_nothing(self, weak_words):
        generator = SuggestionGenerator(llm_provider="local")

        assert await generator.generate(weak_words) == []

        with pytest.raises(RuntimeError):
            await generator.rewrite("just", "We should just try")


# ══════════════════════════════════════════════════════════════
# Patching Tests
# ══════════════════════════════════════════════════════════════


class TestApplySuggestions:
    """Test patching suggestions onto weak words."""

    def test_matches_by_word_and_sentence(self):
        weak_words = [
            WeakWord(word="just", sentence="We just go"),
            WeakWord(word="really", sentence="We just go"),
            WeakWord(word="just", sentence="Other sentence"),
        ]
        suggestions = [WeakWordSuggestion(word="just", sentence="We just go", suggestion="We go")]

        patched = apply_suggestions(weak_words, suggestions)

        assert [w.suggestion for w in patched] == ["We go", None, None]
        assert weak_words[0].suggestion is None
