"""
Cadence Speech Pipeline

Streaming turn assembly, transcript reconciliation, lexical speech analytics
and weak-word suggestions.
"""

from .analytics import AnalyticsLimits, SpeechAnalyticsEngine, analyze_speech
from .assembler import AssemblerState, TurnAssembler, TurnUpdate, handle_event
from .reconcile import turns_from_batch_transcript
from .speakers import build_speaker_map, resolve_participants
from .suggestions import SuggestionGenerator, apply_suggestions

__all__ = [
    # Turn assembly
    "AssemblerState",
    "TurnAssembler",
    "TurnUpdate",
    "handle_event",
    "build_speaker_map",
    "resolve_participants",
    # Reconciliation
    "turns_from_batch_transcript",
    # Analytics
    "AnalyticsLimits",
    "SpeechAnalyticsEngine",
    "analyze_speech",
    # Suggestions
    "SuggestionGenerator",
    "apply_suggestions",
]
