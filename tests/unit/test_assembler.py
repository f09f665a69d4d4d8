"""
Unit tests for turn assembly.
"""

import pytest

from cadence.core.models import TranscriptEvent, TranscriptEventKind
from cadence.pipeline.assembler import (
    UNKNOWN_SPEAKER,
    AssemblerState,
    TurnAssembler,
    handle_event,
)


@pytest.fixture
def assembler() -> TurnAssembler:
    return TurnAssembler(merge_gap_seconds=2.0)


# ══════════════════════════════════════════════════════════════
# Transition Function Tests
# ══════════════════════════════════════════════════════════════


class TestHandleEvent:
    """Test the pure transition function."""

    def test_word_appends_to_buffer(self, word):
        """Words are buffered with their speaker and timing."""
        state, update = handle_event(AssemblerState(), word("Hello", 0.5, 0.9, speaker="S2"))

        assert update is None
        assert state.pending_text == "Hello"
        assert state.speaker == "S2"
        assert state.start_time == 0.5
        assert state.end_time == 0.9

    def test_punctuation_attaches_without_space(self, word, punct):
        """Punctuation is appended directly to the previous word."""
        state, _ = handle_event(AssemblerState(), word("Hello", 0.0, 0.4))
        state, _ = handle_event(state, punct(",", eos=False))

        assert state.pending_text == "Hello,"

    def test_end_of_sentence_emits_turn(self, word, punct):
        """A finished sentence becomes a turn spanning its words."""
        state = AssemblerState()
        state, _ = handle_event(state, word("Hello", 0.0, 0.4))
        state, _ = handle_event(state, word("world", 0.5, 0.9))
        state, update = handle_event(state, punct(".", 0.9, 1.0))

        assert update is not None
        assert update.merged is False
        assert update.turn.text == "Hello world."
        assert update.turn.speaker_label == "S1"
        assert update.turn.start_time == 0.0
        assert update.turn.end_time == 1.0
        assert update.turn.order == 0
        assert state.pending_text == ""
        assert state.next_order == 1

    def test_state_is_not_mutated(self, word):
        """The input state is left untouched."""
        original = AssemblerState()
        handle_event(original, word("Hello", 0.0, 0.4))

        assert original == AssemblerState()

    def test_empty_sentence_emits_nothing(self, punct):
        """End of sentence with nothing buffered only resets the state."""
        state, update = handle_event(AssemblerState(), punct("."))

        assert update is None
        assert state == AssemblerState()

    def test_sentence_without_timing_is_dropped(self, word, punct):
        """A sentence with no timing cannot be placed and is discarded."""
        state, _ = handle_event(AssemblerState(), word("Hello", None, None))
        state, update = handle_event(state, punct("."))

        assert update is None
        assert state.pending_text == ""

    def test_missing_speaker_is_unknown(self, word, punct):
        """Words without a speaker label are attributed to Unknown."""
        state, _ = handle_event(AssemblerState(), word("Hello", 0.0, 0.4, speaker=None))
        _, update = handle_event(state, punct(".", 0.4, 0.4))

        assert update.turn.speaker_label == UNKNOWN_SPEAKER

    def test_word_can_end_sentence(self, word):
        """The end-of-sentence flag on a word finalizes immediately."""
        _, update = handle_event(AssemblerState(), word("Yes", 0.0, 0.3, eos=True))

        assert update.turn.text == "Yes"


# ══════════════════════════════════════════════════════════════
# Merge Policy Tests
# ══════════════════════════════════════════════════════════════


class TestMergePolicy:
    """Test merging of consecutive sentences into turns."""

    def test_scenario_merge(self, assembler, word):
        """Two close sentences from one speaker form a single turn."""
        events = [
            word("Um", 0.0, 0.2),
            word("so", 0.2, 0.4),
            word("basically", 0.4, 0.8),
            word("I", 0.8, 0.9),
            word("think", 0.9, 1.2, eos=True),
            word("it's", 1.8, 2.0),
            word("a", 2.0, 2.1),
            word("great", 2.1, 2.4),
            word("idea", 2.4, 2.9, eos=True),
        ]

        updates = assembler.feed_all(events)

        assert [u.merged for u in updates] == [False, True]
        assert len(assembler.turns) == 1
        turn = assembler.turns[0]
        assert turn.text == "Um so basically I think it's a great idea"
        assert turn.start_time == 0.0
        assert turn.end_time == 2.9
        assert turn.order == 0

    def test_gap_at_threshold_starts_new_turn(self, assembler, sentence):
        """A gap of exactly the merge threshold does not merge."""
        assembler.feed_all(sentence("First point", 0.0, step=0.5))  # ends at 1.0
        assembler.feed_all(sentence("Second point", 3.0, step=0.5))

        turns = assembler.turns
        assert len(turns) == 2
        assert [t.order for t in turns] == [0, 1]

    def test_speaker_change_starts_new_turn(self, assembler, sentence):
        """A different speaker never merges, however close."""
        assembler.feed_all(sentence("How are you", 0.0, speaker="S1"))
        assembler.feed_all(sentence("Fine thanks", 1.0, speaker="S2"))

        turns = assembler.turns
        assert [t.speaker_label for t in turns] == ["S1", "S2"]
        assert [t.text for t in turns] == ["How are you.", "Fine thanks."]

    def test_start_times_are_monotone(self, assembler, sentence):
        """A late-arriving sentence is clamped to the previous turn's start."""
        assembler.feed_all(sentence("Go ahead", 5.0, speaker="S1"))
        assembler.feed_all(sentence("Sorry", 4.0, speaker="S2"))

        first, second = assembler.turns
        assert second.start_time == first.start_time
        assert second.end_time >= second.start_time

    def test_orders_are_contiguous(self, assembler, sentence):
        """Turn orders run 0..n-1 across merges and new turns."""
        assembler.feed_all(sentence("One", 0.0, speaker="S1"))
        assembler.feed_all(sentence("Two", 0.5, speaker="S1"))
        assembler.feed_all(sentence("Three", 1.0, speaker="S2"))
        assembler.feed_all(sentence("Four", 10.0, speaker="S2"))

        assert [t.order for t in assembler.turns] == [0, 1, 2]


# ══════════════════════════════════════════════════════════════
# Session Assembler Tests
# ══════════════════════════════════════════════════════════════


class TestTurnAssembler:
    """Test the stateful session wrapper."""

    def test_default_gap_from_settings(self):
        """The merge gap defaults to configuration."""
        assert TurnAssembler().merge_gap_seconds == 2.0

    def test_pending_text_and_speaker(self, assembler, word):
        """In-progress sentence is exposed for live display."""
        assembler.feed(word("Hello", 0.0, 0.4, speaker="S2"))

        assert assembler.pending_text == "Hello"
        assert assembler.pending_speaker == "S2"
        assert assembler.turns == []

    def test_discard_pending(self, assembler, sentence, word):
        """Discarding drops only the unfinished sentence."""
        assembler.feed_all(sentence("Done here", 0.0))
        assembler.feed(word("Unfinished", 1.0, 1.4))

        discarded = assembler.discard_pending()

        assert discarded == "Unfinished"
        assert assembler.pending_text == ""
        assert len(assembler.turns) == 1

    def test_turns_returns_copy(self, assembler, sentence):
        """Callers cannot mutate the assembler's turn list."""
        assembler.feed_all(sentence("Hello", 0.0))
        assembler.turns.clear()

        assert len(assembler.turns) == 1

    def test_event_model_round_trip(self, assembler):
        """Events validated from plain dicts feed like constructed ones."""
        events = [
            TranscriptEvent.model_validate(
                {"kind": "word", "content": "Hi", "speaker_label": "S1", "start_time": 0.0, "end_time": 0.2}
            ),
            TranscriptEvent(kind=TranscriptEventKind.PUNCTUATION, content="!", is_end_of_sentence=True),
        ]

        assembler.feed_all(events)

        assert assembler.turns[0].text == "Hi!"
        assert assembler.turns[0].end_time == 0.2
