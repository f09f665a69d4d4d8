"""
Speech Analytics Engine

Computes communication-quality metrics from one participant's turns:

1. Tokenization - lower-cased whitespace split of the concatenated turn text
2. Filler words - positional exact matches against the filler lexicon
3. Pacing - words per minute
4. Repetition - frequent content words and frequent adjacent word pairs
5. Sentence starters - sentences opening with a weak starter
6. Weak words - vague terms found inside each sentence
7. Scores - clarity, conciseness and confidence on a 0-100 scale

The engine is pure and deterministic for a given lexicon and limits. It
returns None when there is nothing to analyze so callers can tell "no data"
apart from "computed, scores low".
"""

import math
import re
from collections import Counter
from dataclasses import dataclass
from typing import TYPE_CHECKING, Sequence

import structlog

from cadence.core.lexicon import Lexicon
from cadence.core.models import (
    AnalyticsResult,
    FillerInstance,
    FillerWordStats,
    PacingStats,
    PhraseCount,
    RepetitionStats,
    Scores,
    SentenceStarterStats,
    Turn,
    WeakWord,
    WordCount,
)

if TYPE_CHECKING:
    from cadence.config import Settings

logger = structlog.get_logger()

SENTENCE_SPLIT = re.compile(r"[.!?]+")


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves toward positive infinity."""
    return int(math.floor(value + 0.5))


def clamp_score(value: float) -> int:
    """Clamp to [0, 100], then round."""
    return round_half_up(max(0.0, min(100.0, value)))


@dataclass(frozen=True)
class AnalyticsLimits:
    """Output caps and frequency thresholds."""

    max_filler_instances: int = 20
    max_repeated_words: int = 10
    max_repeated_phrases: int = 5
    max_weak_words: int = 10
    repeated_word_min_count: int = 3
    repeated_phrase_min_count: int = 2
    min_repeated_word_length: int = 4

    @classmethod
    def from_settings(cls, config: "Settings | None" = None) -> "AnalyticsLimits":
        if config is None:
            from cadence.config import settings as config

        return cls(
            max_filler_instances=config.max_filler_instances,
            max_repeated_words=config.max_repeated_words,
            max_repeated_phrases=config.max_repeated_phrases,
            max_weak_words=config.max_weak_words,
            repeated_word_min_count=config.repeated_word_min_count,
            repeated_phrase_min_count=config.repeated_phrase_min_count,
            min_repeated_word_length=config.min_repeated_word_length,
        )


# ══════════════════════════════════════════════════════════════
# Engine
# ══════════════════════════════════════════════════════════════


class SpeechAnalyticsEngine:
    """
    Lexical speech analytics over a participant's transcript.

    Usage:
        engine = SpeechAnalyticsEngine()
        result = engine.analyze_turns(turns, duration_minutes=12.5)
    """

    def __init__(
        self,
        lexicon: Lexicon | None = None,
        limits: AnalyticsLimits | None = None,
    ):
        self.lexicon = lexicon or Lexicon.from_settings()
        self.limits = limits or AnalyticsLimits.from_settings()

    def analyze_turns(self, turns: Sequence[Turn], duration_minutes: float) -> AnalyticsResult | None:
        """Analyze turns in their stored order."""
        ordered = sorted(turns, key=lambda t: t.order)
        return self.analyze([turn.text for turn in ordered], duration_minutes)

    def analyze(self, texts: Sequence[str], duration_minutes: float) -> AnalyticsResult | None:
        """Analyze raw turn texts. Returns None when there is no speech."""
        if not texts:
            return None

        full_text = " ".join(texts)
        words = self.tokenize(full_text)
        word_count = len(words)
        if word_count == 0:
            return None

        if duration_minutes <= 0:
            duration_minutes = 1.0

        fillers = self._detect_fillers(words)
        repeated_words = self._repeated_words(words)
        repeated_phrases = self._repeated_phrases(words)

        sentences = self.split_sentences(full_text)
        weak_starters = self._weak_starters(sentences)
        weak_words = self._weak_words(sentences)

        filler_count = len(fillers)
        weak_starter_count = sum(starter.count for starter in weak_starters)

        filler_rate = filler_count / word_count * 100
        repetition_rate = sum(w.count for w in repeated_words) / word_count
        weak_starter_rate = weak_starter_count / len(sentences) if sentences else 0.0

        scores = Scores(
            clarity=clamp_score(100 - filler_rate * 10),
            conciseness=clamp_score(100 - repetition_rate * 50),
            confidence=clamp_score(100 - weak_starter_rate * 100),
        )

        logger.debug(
            "Speech analyzed",
            word_count=word_count,
            filler_count=filler_count,
            sentence_count=len(sentences),
            repeated_words=len(repeated_words),
        )

        return AnalyticsResult(
            filler_words=FillerWordStats(
                count=filler_count,
                rate_per_minute=filler_count / duration_minutes,
                instances=fillers[: self.limits.max_filler_instances],
            ),
            pacing=PacingStats(words_per_minute=round_half_up(word_count / duration_minutes)),
            repetitions=RepetitionStats(
                repeated_words=repeated_words,
                repeated_phrases=repeated_phrases,
            ),
            sentence_starters=SentenceStarterStats(total=len(sentences), weak=weak_starters),
            weak_words=weak_words[: self.limits.max_weak_words],
            scores=scores,
        )

    # ══════════════════════════════════════════════════════════════
    # Steps
    # ══════════════════════════════════════════════════════════════

    @staticmethod
    def tokenize(text: str) -> list[str]:
        return text.lower().split()

    @staticmethod
    def split_sentences(text: str) -> list[str]:
        """Split on runs of terminal punctuation, dropping blank sentences."""
        return [s for s in SENTENCE_SPLIT.split(text) if s.strip()]

    def _detect_fillers(self, words: list[str]) -> list[FillerInstance]:
        return [
            FillerInstance(word=word, position=position)
            for position, word in enumerate(words)
            if word in self.lexicon.filler_words
        ]

    def _repeated_words(self, words: list[str]) -> list[WordCount]:
        stop_words = self.lexicon.stop_words
        frequency = Counter(
            word
            for word in words
            if word not in stop_words and len(word) >= self.limits.min_repeated_word_length
        )
        repeated = [
            WordCount(word=word, count=count)
            for word, count in frequency.items()
            if count >= self.limits.repeated_word_min_count
        ]
        repeated.sort(key=lambda w: w.count, reverse=True)
        return repeated[: self.limits.max_repeated_words]

    def _repeated_phrases(self, words: list[str]) -> list[PhraseCount]:
        stop_words = self.lexicon.stop_words
        frequency = Counter(
            f"{first} {second}"
            for first, second in zip(words, words[1:])
            if first not in stop_words or second not in stop_words
        )
        repeated = [
            PhraseCount(phrase=phrase, count=count)
            for phrase, count in frequency.items()
            if count >= self.limits.repeated_phrase_min_count
        ]
        repeated.sort(key=lambda p: p.count, reverse=True)
        return repeated[: self.limits.max_repeated_phrases]

    def _weak_starters(self, sentences: list[str]) -> list[WordCount]:
        # Counter keeps first-observed order
        frequency: Counter[str] = Counter()
        for sentence in sentences:
            first_word = sentence.strip().lower().split()[0]
            if first_word in self.lexicon.weak_starters:
                frequency[first_word] += 1
        return [WordCount(word=word, count=count) for word, count in frequency.items()]

    def _weak_words(self, sentences: list[str]) -> list[WeakWord]:
        found = []
        for sentence in sentences:
            lowered = sentence.lower()
            for term in self.lexicon.weak_words:
                if term in lowered:
                    found.append(WeakWord(word=term, sentence=sentence.strip()))
        return found


def analyze_speech(
    turns: Sequence[Turn],
    duration_minutes: float,
    lexicon: Lexicon | None = None,
) -> AnalyticsResult | None:
    """Convenience wrapper around `SpeechAnalyticsEngine.analyze_turns`."""
    return SpeechAnalyticsEngine(lexicon=lexicon).analyze_turns(turns, duration_minutes)
