"""
SQLAlchemy ORM Models

Database tables for conversations, their transcript turns, and per-participant
speech analytics.
"""

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    DateTime,
    Enum as SQLEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cadence.core.models import ConversationStatus, TranscriptSource
from cadence.db import Base


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


# ══════════════════════════════════════════════════════════════
# Mixins
# ══════════════════════════════════════════════════════════════


class TimestampMixin:
    """Mixin adding created_at and updated_at timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=datetime.utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=datetime.utcnow,
        nullable=True,
    )


class UUIDMixin:
    """Mixin adding UUID primary key."""

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )


# ══════════════════════════════════════════════════════════════
# Conversation Models
# ══════════════════════════════════════════════════════════════


class ConversationModel(Base, UUIDMixin, TimestampMixin):
    """Recorded two-party conversation."""

    __tablename__ = "conversations"

    initiator_user_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False)
    participant_user_id: Mapped[UUID | None] = mapped_column(PGUUID(as_uuid=True), nullable=True)

    status: Mapped[ConversationStatus] = mapped_column(
        SQLEnum(ConversationStatus, name="conversationstatus", values_callable=_enum_values),
        default=ConversationStatus.PENDING,
        nullable=False,
    )
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)

    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Archived recording
    audio_path: Mapped[str | None] = mapped_column(String(500), nullable=True)
    transcript_source: Mapped[TranscriptSource | None] = mapped_column(
        SQLEnum(TranscriptSource, name="transcriptsource", values_callable=_enum_values),
        nullable=True,
    )

    # Relationships
    turns: Mapped[list["TranscriptTurnModel"]] = relationship(
        "TranscriptTurnModel",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="TranscriptTurnModel.order",
    )

    __table_args__ = (
        Index("ix_conversations_initiator", "initiator_user_id"),
        Index("ix_conversations_participant", "participant_user_id"),
        Index("ix_conversations_status", "status"),
    )


class TranscriptTurnModel(Base, UUIDMixin):
    """Finalized speaker turn."""

    __tablename__ = "transcript_turns"

    conversation_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
    )
    order: Mapped[int] = mapped_column("order", Integer, nullable=False)

    speaker_label: Mapped[str] = mapped_column(String(50), nullable=False)
    participant_id: Mapped[UUID | None] = mapped_column(PGUUID(as_uuid=True), nullable=True)

    text: Mapped[str] = mapped_column(Text, nullable=False)
    start_time: Mapped[float] = mapped_column(Float, nullable=False)
    end_time: Mapped[float] = mapped_column(Float, nullable=False)

    # Relationships
    conversation: Mapped["ConversationModel"] = relationship("ConversationModel", back_populates="turns")

    __table_args__ = (
        UniqueConstraint("conversation_id", "order", name="uq_transcript_turns_order"),
        Index("ix_transcript_turns_participant", "conversation_id", "participant_id"),
    )


# ══════════════════════════════════════════════════════════════
# Analytics Models
# ══════════════════════════════════════════════════════════════


class SpeechAnalyticsModel(Base, UUIDMixin, TimestampMixin):
    """Speech analytics for one participant of one conversation.

    Metric groups are stored as JSONB documents shaped like the
    corresponding pydantic models.
    """

    __tablename__ = "speech_analytics"

    # Derived data: kept when a conversation's turns are regenerated
    conversation_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False)
    user_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False)

    filler_words: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
    pacing: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
    repetitions: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
    sentence_starters: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
    weak_words: Mapped[list[dict[str, Any]]] = mapped_column(JSONB, default=list, nullable=False)
    scores: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)

    __table_args__ = (
        UniqueConstraint("conversation_id", "user_id", name="uq_speech_analytics_pair"),
        Index("ix_speech_analytics_user", "user_id", "created_at"),
    )
