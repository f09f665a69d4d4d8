"""
Turn Assembler

Reduces an ordered stream of word/punctuation events from the speech-to-text
provider into finalized speaker turns.

The transition function `handle_event` is pure: it takes the current
`AssemblerState` and one `TranscriptEvent` and returns the next state plus an
optional `TurnUpdate`. `TurnAssembler` threads that state through a recording
session and keeps the emitted turns.

Merge policy: a finished sentence from the same speaker as the last turn that
starts less than `merge_gap_seconds` after that turn ended is appended to it
instead of opening a new turn.
"""

from dataclasses import dataclass, replace
from typing import Iterable

import structlog

from cadence.core.models import TranscriptEvent, TranscriptEventKind, Turn

logger = structlog.get_logger()

DEFAULT_MERGE_GAP_SECONDS = 2.0
UNKNOWN_SPEAKER = "Unknown"


# ══════════════════════════════════════════════════════════════
# State
# ══════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class AssemblerState:
    """Per-session assembler state."""

    buffer: str = ""
    speaker: str | None = None
    start_time: float | None = None
    end_time: float | None = None

    # Last finalized turn, used for merge decisions
    last_turn: Turn | None = None
    next_order: int = 0

    @property
    def pending_text(self) -> str:
        return self.buffer.strip()

    def cleared(self) -> "AssemblerState":
        """Drop the pending sentence, keeping turn history."""
        return replace(self, buffer="", speaker=None, start_time=None, end_time=None)


@dataclass(frozen=True)
class TurnUpdate:
    """A turn emitted by the assembler.

    When `merged` is True the turn replaces the previously emitted turn with
    the same `order`; otherwise it is a new turn.
    """

    turn: Turn
    merged: bool = False


# ══════════════════════════════════════════════════════════════
# Transition
# ══════════════════════════════════════════════════════════════


def handle_event(
    state: AssemblerState,
    event: TranscriptEvent,
    merge_gap_seconds: float = DEFAULT_MERGE_GAP_SECONDS,
) -> tuple[AssemblerState, TurnUpdate | None]:
    """Apply one transcript event to the assembler state."""
    if event.kind == TranscriptEventKind.WORD:
        state = replace(
            state,
            buffer=f"{state.buffer} {event.content}",
            speaker=event.speaker_label or UNKNOWN_SPEAKER,
            start_time=state.start_time if state.start_time is not None else event.start_time,
            end_time=event.end_time if event.end_time is not None else state.end_time,
        )
    elif event.kind == TranscriptEventKind.PUNCTUATION:
        state = replace(
            state,
            buffer=state.buffer + event.content,
            end_time=event.end_time if event.end_time is not None else state.end_time,
        )

    if not event.is_end_of_sentence:
        return state, None

    text = state.pending_text
    if not text or state.start_time is None or state.end_time is None:
        return state.cleared(), None

    return _finalize(state, text, merge_gap_seconds)


def _finalize(
    state: AssemblerState,
    text: str,
    merge_gap_seconds: float,
) -> tuple[AssemblerState, TurnUpdate]:
    """Close the pending sentence into a new or merged turn."""
    speaker = state.speaker or UNKNOWN_SPEAKER
    start_time = state.start_time
    end_time = state.end_time
    last = state.last_turn

    # Turns never start before the previous one
    if last is not None:
        start_time = max(start_time, last.start_time)
    end_time = max(end_time, start_time)

    if (
        last is not None
        and last.speaker_label == speaker
        and start_time - last.end_time < merge_gap_seconds
    ):
        merged = last.model_copy(
            update={
                "text": f"{last.text} {text}",
                "end_time": max(last.end_time, end_time),
            }
        )
        return replace(state.cleared(), last_turn=merged), TurnUpdate(turn=merged, merged=True)

    turn = Turn(
        speaker_label=speaker,
        text=text,
        start_time=start_time,
        end_time=end_time,
        order=state.next_order,
    )
    next_state = replace(state.cleared(), last_turn=turn, next_order=state.next_order + 1)
    return next_state, TurnUpdate(turn=turn)


# ══════════════════════════════════════════════════════════════
# Session Assembler
# ══════════════════════════════════════════════════════════════


class TurnAssembler:
    """
    Stateful wrapper around `handle_event` for one recording session.

    Usage:
        assembler = TurnAssembler()
        for event in events:
            update = assembler.feed(event)
        turns = assembler.turns
    """

    def __init__(self, merge_gap_seconds: float | None = None):
        if merge_gap_seconds is None:
            from cadence.config import settings

            merge_gap_seconds = settings.turn_merge_gap_seconds

        self.merge_gap_seconds = merge_gap_seconds
        self.state = AssemblerState()
        self._turns: list[Turn] = []

    @property
    def turns(self) -> list[Turn]:
        """Finalized turns in order."""
        return list(self._turns)

    @property
    def pending_text(self) -> str:
        """Text of the sentence currently being assembled."""
        return self.state.pending_text

    @property
    def pending_speaker(self) -> str | None:
        return self.state.speaker

    def feed(self, event: TranscriptEvent) -> TurnUpdate | None:
        """Apply one event and record any emitted turn."""
        pending = self.state.pending_text
        self.state, update = handle_event(self.state, event, self.merge_gap_seconds)

        if update is None:
            if event.is_end_of_sentence and pending:
                logger.warning(
                    "Sentence dropped without timing",
                    speaker=event.speaker_label,
                    length=len(pending),
                )
            return None

        if update.merged:
            self._turns[-1] = update.turn
        else:
            self._turns.append(update.turn)

        logger.debug(
            "Turn finalized",
            order=update.turn.order,
            speaker=update.turn.speaker_label,
            merged=update.merged,
        )
        return update

    def feed_all(self, events: Iterable[TranscriptEvent]) -> list[TurnUpdate]:
        """Apply a sequence of events, returning every emitted update."""
        updates = []
        for event in events:
            update = self.feed(event)
            if update is not None:
                updates.append(update)
        return updates

    def discard_pending(self) -> str:
        """Drop the in-progress sentence (disconnect or malformed input)."""
        discarded = self.state.pending_text
        self.state = self.state.cleared()
        if discarded:
            logger.info("Pending sentence discarded", length=len(discarded))
        return discarded
