"""
Speech Analytics Lexicons

Term lists used by lexical pattern matching. These are configuration data:
the defaults below are English and can be replaced through settings.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cadence.config import Settings


DEFAULT_FILLER_WORDS: tuple[str, ...] = (
    "um", "uh", "like", "you know", "basically", "actually", "literally",
    "sort of", "kind of", "i mean", "right", "okay", "so", "well",
)

DEFAULT_WEAK_STARTERS: tuple[str, ...] = ("and", "but", "like", "so", "well", "um", "uh")

DEFAULT_WEAK_WORDS: tuple[str, ...] = (
    "thing", "stuff", "just", "really", "very", "quite", "pretty",
    "kind of", "sort of", "a bit", "maybe", "probably",
)

# Articles and basic prepositions/conjunctions
DEFAULT_STOP_WORDS: tuple[str, ...] = (
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
)


@dataclass(frozen=True)
class Lexicon:
    """Immutable bundle of the term lists the analytics engine matches against."""

    filler_words: frozenset[str] = field(default_factory=lambda: frozenset(DEFAULT_FILLER_WORDS))
    weak_starters: frozenset[str] = field(default_factory=lambda: frozenset(DEFAULT_WEAK_STARTERS))
    # Ordered: weak-word matches are reported in lexicon order per sentence
    weak_words: tuple[str, ...] = DEFAULT_WEAK_WORDS
    stop_words: frozenset[str] = field(default_factory=lambda: frozenset(DEFAULT_STOP_WORDS))

    @classmethod
    def from_settings(cls, config: "Settings | None" = None) -> "Lexicon":
        """Build a lexicon from application settings."""
        if config is None:
            from cadence.config import settings as config

        return cls(
            filler_words=frozenset(config.filler_words),
            weak_starters=frozenset(config.weak_starters),
            weak_words=tuple(config.weak_words),
            stop_words=frozenset(config.stop_words),
        )
