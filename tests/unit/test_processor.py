"""
Unit tests for the realtime session processor.
"""

from uuid import uuid4

import pytest

from cadence.pipeline.assembler import TurnAssembler
from cadence.realtime.processor import RealtimeProcessor


def word(content, start, end, speaker="S1"):
    return {
        "type": "word",
        "start_time": start,
        "end_time": end,
        "alternatives": [{"content": content, "speaker": speaker}],
    }


def period(at):
    return {"type": "punctuation", "start_time": at, "end_time": at, "is_eos": True, "alternatives": [{"content": "."}]}


def transcript(*results):
    return {"message": "AddTranscript", "results": list(results)}


@pytest.fixture
def processor() -> RealtimeProcessor:
    return RealtimeProcessor(uuid4(), assembler=TurnAssembler(merge_gap_seconds=2.0))


class TestRealtimeProcessor:
    """Test provider message handling."""

    def test_final_sentence_emits_turn(self, processor):
        replies = processor.handle_provider_message(
            transcript(word("Hello", 0.0, 0.4), word("there", 0.4, 0.8), period(0.8))
        )

        assert [r.type for r in replies] == ["transcript.turn"]
        payload = replies[0].payload
        assert payload["text"] == "Hello there."
        assert payload["order"] == 0
        assert payload["merged"] is False
        assert replies[0].conversation_id == processor.conversation_id

    def test_unfinished_sentence_emits_partial(self, processor):
        replies = processor.handle_provider_message(transcript(word("Hello", 0.0, 0.4, speaker="S2")))

        assert [r.type for r in replies] == ["transcript.partial"]
        assert replies[0].payload == {"speaker_label": "S2", "text": "Hello"}

    def test_merged_turn_flagged(self, processor):
        processor.handle_provider_message(transcript(word("One", 0.0, 0.4), period(0.4)))
        replies = processor.handle_provider_message(transcript(word("Two", 1.0, 1.4), period(1.4)))

        assert replies[0].payload["merged"] is True
        assert replies[0].payload["text"] == "One. Two."
        assert len(processor.turns) == 1

    def test_partial_transcript_appends_to_pending(self, processor):
        processor.handle_provider_message(transcript(word("Hello", 0.0, 0.4)))

        replies = processor.handle_provider_message(
            {"message": "AddPartialTranscript", "metadata": {"transcript": "wor"}}
        )

        assert replies[0].type == "transcript.partial"
        assert replies[0].payload["text"] == "Hello wor"

    def test_empty_partial_sends_nothing(self, processor):
        assert processor.handle_provider_message({"message": "AddPartialTranscript", "results": []}) == []

    def test_malformed_result_drops_pending_sentence(self, processor):
        """A bad result discards the sentence in progress and processing continues."""
        replies = processor.handle_provider_message(
            transcript(
                word("Lost", 0.0, 0.4),
                {"type": "word", "alternatives": []},
                word("Kept", 1.0, 1.4),
                period(1.4),
            )
        )

        assert processor.malformed_count == 1
        assert [r.payload["text"] for r in replies] == ["Kept."]

    def test_other_messages_ignored(self, processor):
        assert processor.handle_provider_message({"message": "AudioAdded", "seq_no": 3}) == []
        assert processor.handle_provider_message({"message": "EndOfTranscript"}) == []
        assert processor.handle_provider_message({"unexpected": True}) == []

    def test_finish_discards_pending(self, processor):
        processor.handle_provider_message(transcript(word("Done", 0.0, 0.4), period(0.4), word("Never", 1.0, 1.2)))

        turns = processor.finish()

        assert [t.text for t in turns] == ["Done."]
        assert processor.assembler.pending_text == ""
        assert processor.finish() == turns
