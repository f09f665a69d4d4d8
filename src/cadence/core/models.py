"""
Cadence Core Domain Models

Pydantic models representing the core domain entities.
These are used throughout the application for data validation and serialization.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, model_validator


# ══════════════════════════════════════════════════════════════
# Enums
# ══════════════════════════════════════════════════════════════


class TranscriptEventKind(str, Enum):
    """Kind of a streamed transcript event."""

    WORD = "word"
    PUNCTUATION = "punctuation"


class ConversationStatus(str, Enum):
    """Conversation lifecycle status."""

    PENDING = "pending"
    ACTIVE = "active"
    ENDED = "ended"


class TranscriptSource(str, Enum):
    """Where the persisted turns of a conversation came from."""

    REALTIME = "realtime"
    BATCH = "batch"


# ══════════════════════════════════════════════════════════════
# Base Models
# ══════════════════════════════════════════════════════════════


class CadenceModel(BaseModel):
    """Base model with common configuration."""

    model_config = {"from_attributes": True, "populate_by_name": True}


class TimestampMixin(BaseModel):
    """Mixin for created/updated timestamps."""

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime | None = None


# ══════════════════════════════════════════════════════════════
# Transcript Models
# ══════════════════════════════════════════════════════════════


class TranscriptEvent(CadenceModel):
    """A single word or punctuation mark emitted by the speech-to-text provider."""

    kind: TranscriptEventKind
    content: str = ""
    speaker_label: str | None = None
    start_time: float | None = None  # seconds
    end_time: float | None = None  # seconds
    is_end_of_sentence: bool = False


class Turn(CadenceModel):
    """One finalized, speaker-attributed, time-bounded span of transcript text."""

    speaker_label: str
    text: str = Field(..., min_length=1)
    start_time: float  # seconds
    end_time: float  # seconds
    order: int = Field(ge=0)

    # Filled once the provider label is resolved to a conversation participant
    participant_id: UUID | None = None
    conversation_id: UUID | None = None

    @model_validator(mode="after")
    def check_invariants(self) -> "Turn":
        if not self.text.strip():
            raise ValueError("Turn text must not be blank")
        if self.start_time > self.end_time:
            raise ValueError("Turn start_time must not be after end_time")
        return self


class TurnInput(CadenceModel):
    """A turn submitted by a client that assembled the transcript itself."""

    speaker_label: str
    text: str = Field(..., min_length=1)
    start_time: float = 0.0
    end_time: float = 0.0


# ══════════════════════════════════════════════════════════════
# Conversation Models
# ══════════════════════════════════════════════════════════════


class Conversation(CadenceModel, TimestampMixin):
    """A recorded two-party conversation."""

    id: UUID = Field(default_factory=uuid4)
    initiator_user_id: UUID
    participant_user_id: UUID | None = None
    status: ConversationStatus = ConversationStatus.PENDING
    location: str | None = None

    started_at: datetime | None = None
    ended_at: datetime | None = None

    # Archived full recording used for reconciliation
    audio_path: str | None = None
    transcript_source: TranscriptSource | None = None

    @property
    def participant_ids(self) -> list[UUID]:
        """Distinct participants, initiator first."""
        ids = [self.initiator_user_id]
        if self.participant_user_id and self.participant_user_id != self.initiator_user_id:
            ids.append(self.participant_user_id)
        return ids

    @property
    def duration_minutes(self) -> float:
        """Elapsed minutes between start and end; 1 when either is unknown."""
        if self.started_at and self.ended_at:
            return (self.ended_at - self.started_at).total_seconds() / 60
        return 1.0


class ConversationCreate(CadenceModel):
    """Request model for creating a conversation."""

    initiator_user_id: UUID
    participant_user_id: UUID | None = None
    location: str | None = Field(None, max_length=255)


class ConversationStart(CadenceModel):
    """Request model for starting a conversation once the second party joined."""

    participant_user_id: UUID | None = None


# ══════════════════════════════════════════════════════════════
# Speech Analytics Models
# ══════════════════════════════════════════════════════════════


class FillerInstance(CadenceModel):
    """A filler word and its index in the participant's word list."""

    word: str
    position: int


class FillerWordStats(CadenceModel):
    count: int = 0
    rate_per_minute: float = 0.0
    instances: list[FillerInstance] = Field(default_factory=list)


class PacingStats(CadenceModel):
    words_per_minute: int = 0


class WordCount(CadenceModel):
    word: str
    count: int


class PhraseCount(CadenceModel):
    phrase: str
    count: int


class RepetitionStats(CadenceModel):
    repeated_words: list[WordCount] = Field(default_factory=list)
    repeated_phrases: list[PhraseCount] = Field(default_factory=list)


class SentenceStarterStats(CadenceModel):
    total: int = 0
    weak: list[WordCount] = Field(default_factory=list)


class WeakWord(CadenceModel):
    """Vague term found in a sentence; suggestion is filled in later by the rewriter."""

    word: str
    sentence: str
    suggestion: str | None = None


class Scores(CadenceModel):
    """Derived 0-100 communication-quality scores."""

    clarity: int = Field(ge=0, le=100)
    conciseness: int = Field(ge=0, le=100)
    confidence: int = Field(ge=0, le=100)


class AnalyticsResult(CadenceModel):
    """Speech analytics for one participant of one conversation."""

    filler_words: FillerWordStats
    pacing: PacingStats
    repetitions: RepetitionStats
    sentence_starters: SentenceStarterStats
    weak_words: list[WeakWord] = Field(default_factory=list)
    scores: Scores


class SpeechAnalytics(AnalyticsResult, TimestampMixin):
    """Stored analytics record, unique per (conversation, user)."""

    id: UUID = Field(default_factory=uuid4)
    conversation_id: UUID
    user_id: UUID


class WeakWordSuggestion(CadenceModel):
    """Rewritten sentence for a weak word, matched back by (word, sentence)."""

    word: str
    sentence: str
    suggestion: str


# ══════════════════════════════════════════════════════════════
# Dashboard Models
# ══════════════════════════════════════════════════════════════


class DashboardOverview(CadenceModel):
    total_conversations: int = 0
    completed_conversations: int = 0
    total_words: int = 0
    total_minutes: int = 0
    avg_clarity: int = 0
    avg_conciseness: int = 0
    avg_confidence: int = 0


class ScoreTrendPoint(CadenceModel):
    conversation: int
    clarity: int
    conciseness: int
    confidence: int


class FillerTrendPoint(CadenceModel):
    conversation: int
    count: int
    rate: float


class ConversationSummary(CadenceModel):
    id: UUID
    location: str | None = None
    status: ConversationStatus
    started_at: datetime | None = None
    ended_at: datetime | None = None


class UserDashboard(CadenceModel):
    """Aggregate communication metrics across a user's conversations."""

    overview: DashboardOverview
    performance_trend: list[ScoreTrendPoint] = Field(default_factory=list)
    filler_trend: list[FillerTrendPoint] = Field(default_factory=list)
    recent_conversations: list[ConversationSummary] = Field(default_factory=list)
