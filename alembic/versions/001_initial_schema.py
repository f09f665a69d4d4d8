"""Initial schema for Cadence

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18

Creates the core tables:
- Conversations
- Transcript turns
- Speech analytics (one row per conversation participant)
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create enum types
    op.execute("CREATE TYPE conversationstatus AS ENUM ('pending', 'active', 'ended')")
    op.execute("CREATE TYPE transcriptsource AS ENUM ('realtime', 'batch')")

    # Conversations table
    op.create_table(
        "conversations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("initiator_user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("participant_user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("status", postgresql.ENUM("pending", "active", "ended", name="conversationstatus", create_type=False), nullable=False, server_default="pending"),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("audio_path", sa.String(500), nullable=True),
        sa.Column("transcript_source", postgresql.ENUM("realtime", "batch", name="transcriptsource", create_type=False), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_conversations_initiator", "conversations", ["initiator_user_id"])
    op.create_index("ix_conversations_participant", "conversations", ["participant_user_id"])
    op.create_index("ix_conversations_status", "conversations", ["status"])

    # Transcript turns table
    op.create_table(
        "transcript_turns",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("conversation_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("order", sa.Integer, nullable=False),
        sa.Column("speaker_label", sa.String(50), nullable=False),
        sa.Column("participant_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("text", sa.Text, nullable=False),
        sa.Column("start_time", sa.Float, nullable=False),
        sa.Column("end_time", sa.Float, nullable=False),
        sa.UniqueConstraint("conversation_id", "order", name="uq_transcript_turns_order"),
    )
    op.create_index("ix_transcript_turns_participant", "transcript_turns", ["conversation_id", "participant_id"])

    # Speech analytics table
    op.create_table(
        "speech_analytics",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("conversation_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("filler_words", postgresql.JSONB, nullable=False),
        sa.Column("pacing", postgresql.JSONB, nullable=False),
        sa.Column("repetitions", postgresql.JSONB, nullable=False),
        sa.Column("sentence_starters", postgresql.JSONB, nullable=False),
        sa.Column("weak_words", postgresql.JSONB, nullable=False, server_default="[]"),
        sa.Column("scores", postgresql.JSONB, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("conversation_id", "user_id", name="uq_speech_analytics_pair"),
    )
    op.create_index("ix_speech_analytics_user", "speech_analytics", ["user_id", "created_at"])


def downgrade() -> None:
    # Drop tables in reverse order
    op.drop_table("speech_analytics")
    op.drop_table("transcript_turns")
    op.drop_table("conversations")

    # Drop enum types
    op.execute("DROP TYPE IF EXISTS transcriptsource")
    op.execute("DROP TYPE IF EXISTS conversationstatus")
