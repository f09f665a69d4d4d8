"""
Unit tests for the realtime protocols.
"""

from uuid import uuid4

import pytest

from cadence.core.models import TranscriptEventKind
from cadence.realtime.protocol import (
    MalformedResultError,
    ProviderMessageType,
    RealtimeMessage,
    RealtimeMessageType,
    build_end_of_stream,
    build_start_recognition,
    decode_result,
    message_type,
    partial_text,
)


# ══════════════════════════════════════════════════════════════
# Provider Protocol Tests
# ══════════════════════════════════════════════════════════════


class TestDecodeResult:
    """Test decoding of provider results."""

    def test_word(self):
        event = decode_result(
            {
                "type": "word",
                "start_time": 1.2,
                "end_time": 1.5,
                "alternatives": [{"content": "hello", "speaker": "S2", "confidence": 0.9}],
            }
        )

        assert event.kind == TranscriptEventKind.WORD
        assert event.content == "hello"
        assert event.speaker_label == "S2"
        assert event.start_time == 1.2
        assert event.end_time == 1.5
        assert event.is_end_of_sentence is False

    def test_end_of_sentence_punctuation(self):
        event = decode_result({"type": "punctuation", "is_eos": True, "alternatives": [{"content": "."}]})

        assert event.kind == TranscriptEventKind.PUNCTUATION
        assert event.is_end_of_sentence is True
        assert event.start_time is None

    def test_first_alternative_wins(self):
        event = decode_result(
            {"type": "word", "alternatives": [{"content": "their"}, {"content": "there"}]}
        )

        assert event.content == "their"

    @pytest.mark.parametrize(
        "raw",
        [
            {"type": "word", "alternatives": []},
            {"type": "word"},
            {"type": "entity", "alternatives": [{"content": "x"}]},
            {"alternatives": [{"content": "x"}]},
            {"type": "word", "start_time": "soon", "alternatives": [{"content": "x"}]},
            ["word"],
        ],
    )
    def test_malformed(self, raw):
        with pytest.raises(MalformedResultError):
            decode_result(raw)


class TestProviderMessages:
    """Test provider message helpers."""

    def test_message_type(self):
        assert message_type({"message": "AddTranscript"}) == ProviderMessageType.ADD_TRANSCRIPT
        assert message_type({"message": "Unheard"}) is None
        assert message_type({}) is None

    def test_partial_text_from_metadata(self):
        message = {"message": "AddPartialTranscript", "metadata": {"transcript": " hello wor "}}

        assert partial_text(message) == "hello wor"

    def test_partial_text_from_results(self):
        message = {
            "message": "AddPartialTranscript",
            "results": [
                {"type": "word", "alternatives": [{"content": "hello"}]},
                {"type": "punctuation", "alternatives": [{"content": ","}]},
                {"type": "word", "alternatives": []},
                {"type": "word", "alternatives": [{"content": "world"}]},
            ],
        }

        assert partial_text(message) == "hello, world"

    def test_start_recognition(self):
        message = build_start_recognition(sample_rate=16000, language="en", max_delay=1.5)

        assert message["message"] == "StartRecognition"
        assert message["audio_format"] == {"type": "raw", "encoding": "pcm_s16le", "sample_rate": 16000}
        assert message["transcription_config"]["diarization"] == "speaker"
        assert message["transcription_config"]["max_delay"] == 1.5
        assert message["transcription_config"]["speaker_diarization_config"] == {"max_speakers": 2}

    def test_end_of_stream(self):
        assert build_end_of_stream(42) == {"message": "EndOfStream", "last_seq_no": 42}


# ══════════════════════════════════════════════════════════════
# Client Protocol Tests
# ══════════════════════════════════════════════════════════════


class TestRealtimeMessage:
    """Test client-facing messages."""

    def test_serializes_enum_value(self):
        conversation_id = uuid4()
        message = RealtimeMessage(type=RealtimeMessageType.PONG, conversation_id=conversation_id)

        data = message.model_dump(mode="json")

        assert data["type"] == "pong"
        assert data["conversation_id"] == str(conversation_id)
        assert data["payload"] == {}
        assert "timestamp" in data
