"""
Realtime Protocols

Two protocols meet in a recording session:

- The speech-to-text provider protocol (Speechmatics realtime v2), spoken by
  the server to the provider. Messages are JSON objects keyed by `message`;
  `AddTranscript` carries `results[]` of words and punctuation.
- The client WebSocket protocol, spoken between the browser and the server.
  Audio travels as binary PCM frames; control and transcript updates travel
  as JSON `RealtimeMessage`s.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, ValidationError

from cadence.core.models import TranscriptEvent, TranscriptEventKind


class MalformedResultError(ValueError):
    """A provider result is missing required fields or has an unknown type."""


# ══════════════════════════════════════════════════════════════
# Provider Protocol
# ══════════════════════════════════════════════════════════════


class ProviderMessageType(str, Enum):
    """Speechmatics realtime message names."""

    # Server -> Provider
    START_RECOGNITION = "StartRecognition"
    END_OF_STREAM = "EndOfStream"

    # Provider -> Server
    RECOGNITION_STARTED = "RecognitionStarted"
    AUDIO_ADDED = "AudioAdded"
    ADD_PARTIAL_TRANSCRIPT = "AddPartialTranscript"
    ADD_TRANSCRIPT = "AddTranscript"
    END_OF_TRANSCRIPT = "EndOfTranscript"
    INFO = "Info"
    WARNING = "Warning"
    ERROR = "Error"


class ResultAlternative(BaseModel):
    content: str = ""
    speaker: str | None = None
    confidence: float | None = None


class RecognitionResult(BaseModel):
    """One word or punctuation result inside an AddTranscript message."""

    type: str
    start_time: float | None = None
    end_time: float | None = None
    is_eos: bool = False
    alternatives: list[ResultAlternative] = Field(default_factory=list)

    def to_event(self) -> TranscriptEvent:
        """Convert to a transcript event, rejecting unusable results."""
        try:
            kind = TranscriptEventKind(self.type)
        except ValueError:
            raise MalformedResultError(f"Unknown result type: {self.type!r}") from None

        if not self.alternatives:
            raise MalformedResultError(f"{self.type} result has no alternatives")

        best = self.alternatives[0]
        return TranscriptEvent(
            kind=kind,
            content=best.content,
            speaker_label=best.speaker,
            start_time=self.start_time,
            end_time=self.end_time,
            is_end_of_sentence=self.is_eos,
        )


def decode_result(raw: Any) -> TranscriptEvent:
    """Decode one raw provider result into a transcript event."""
    if not isinstance(raw, dict):
        raise MalformedResultError("Result is not an object")
    try:
        result = RecognitionResult.model_validate(raw)
    except ValidationError as e:
        raise MalformedResultError(str(e)) from e
    return result.to_event()


def message_type(message: dict[str, Any]) -> ProviderMessageType | None:
    """Provider message type, or None for names this server does not handle."""
    try:
        return ProviderMessageType(message.get("message"))
    except ValueError:
        return None


def partial_text(message: dict[str, Any]) -> str:
    """Best-effort text of an AddPartialTranscript message."""
    metadata = message.get("metadata") or {}
    if metadata.get("transcript"):
        return str(metadata["transcript"]).strip()

    text = ""
    for raw in message.get("results") or []:
        if not isinstance(raw, dict) or not raw.get("alternatives"):
            continue
        content = raw["alternatives"][0].get("content", "")
        if raw.get("type") == "punctuation":
            text += content
        else:
            text += f" {content}"
    return text.strip()


def build_start_recognition(
    sample_rate: int,
    language: str = "en",
    operating_point: str = "enhanced",
    max_delay: float = 2.0,
    enable_partials: bool = True,
    max_speakers: int = 2,
) -> dict[str, Any]:
    """StartRecognition message for raw 16-bit little-endian PCM audio."""
    return {
        "message": ProviderMessageType.START_RECOGNITION.value,
        "audio_format": {
            "type": "raw",
            "encoding": "pcm_s16le",
            "sample_rate": sample_rate,
        },
        "transcription_config": {
            "language": language,
            "operating_point": operating_point,
            "max_delay": max_delay,
            "enable_partials": enable_partials,
            "diarization": "speaker",
            "speaker_diarization_config": {"max_speakers": max_speakers},
        },
    }


def build_end_of_stream(last_seq_no: int) -> dict[str, Any]:
    """EndOfStream message; `last_seq_no` is the number of audio frames sent."""
    return {"message": ProviderMessageType.END_OF_STREAM.value, "last_seq_no": last_seq_no}


# ══════════════════════════════════════════════════════════════
# Client Protocol
# ══════════════════════════════════════════════════════════════


class RealtimeMessageType(str, Enum):
    """WebSocket message types."""

    # Client -> Server
    SESSION_END = "session.end"
    PING = "ping"

    # Server -> Client
    SESSION_READY = "session.ready"
    SESSION_CLOSED = "session.closed"
    TRANSCRIPT_PARTIAL = "transcript.partial"
    TRANSCRIPT_TURN = "transcript.turn"
    ERROR = "error"
    PONG = "pong"


class RealtimeMessage(BaseModel):
    """JSON WebSocket message."""

    model_config = {"use_enum_values": True}

    type: RealtimeMessageType
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    conversation_id: UUID | None = None
    payload: dict[str, Any] = Field(default_factory=dict)


class PartialPayload(BaseModel):
    """In-progress sentence for live display."""

    speaker_label: str | None = None
    text: str


class TurnPayload(BaseModel):
    """A finalized or merged turn."""

    order: int
    speaker_label: str
    text: str
    start_time: float
    end_time: float
    merged: bool = False


class SessionClosedPayload(BaseModel):
    turn_count: int
    analysis_job_id: str | None = None


class ErrorPayload(BaseModel):
    """Payload for error message."""

    code: str
    message: str
    recoverable: bool = True
