"""Core domain models and lexicons."""

from .lexicon import Lexicon
from .models import (
    AnalyticsResult,
    Conversation,
    ConversationStatus,
    SpeechAnalytics,
    TranscriptEvent,
    TranscriptEventKind,
    Turn,
    WeakWord,
)

__all__ = [
    "Lexicon",
    "AnalyticsResult",
    "Conversation",
    "ConversationStatus",
    "SpeechAnalytics",
    "TranscriptEvent",
    "TranscriptEventKind",
    "Turn",
    "WeakWord",
]
