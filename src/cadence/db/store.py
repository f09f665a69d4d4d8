"""
Conversation Store

Keyed persistence for conversations, transcript turns and speech analytics.
`SQLStore` is backed by PostgreSQL through the async SQLAlchemy session;
`InMemoryStore` keeps everything in process for development and tests.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import delete, func, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
import structlog

from cadence.config import settings
from cadence.core.models import (
    AnalyticsResult,
    Conversation,
    ConversationStatus,
    SpeechAnalytics,
    Turn,
    WeakWordSuggestion,
)
from cadence.db import get_session
from cadence.db.models import ConversationModel, SpeechAnalyticsModel, TranscriptTurnModel
from cadence.pipeline.suggestions import apply_suggestions

logger = structlog.get_logger()


class ConversationNotFoundError(LookupError):
    """No conversation with the requested ID."""

    def __init__(self, conversation_id: UUID):
        super().__init__(f"Conversation {conversation_id} not found")
        self.conversation_id = conversation_id


class TurnOrderError(ValueError):
    """A turn was inserted out of sequence."""


def _sort_user_conversations(conversations: Iterable[Conversation]) -> list[Conversation]:
    # Most recently started first; never-started conversations last
    return sorted(
        conversations,
        key=lambda c: (c.started_at is not None, c.started_at or datetime.min),
        reverse=True,
    )


# ══════════════════════════════════════════════════════════════
# Interface
# ══════════════════════════════════════════════════════════════


class ConversationStore(ABC):
    """Persistence operations used by the pipeline, API and worker."""

    # Conversations

    @abstractmethod
    async def create_conversation(self, conversation: Conversation) -> Conversation: ...

    @abstractmethod
    async def get_conversation(self, conversation_id: UUID) -> Conversation:
        """Raises ConversationNotFoundError for unknown IDs."""

    @abstractmethod
    async def update_conversation(self, conversation_id: UUID, **changes: Any) -> Conversation: ...

    @abstractmethod
    async def list_user_conversations(
        self,
        user_id: UUID,
        include_pending: bool = False,
    ) -> list[Conversation]:
        """Conversations the user initiated or joined, most recently started first."""

    # Turns

    @abstractmethod
    async def insert_turn(self, conversation_id: UUID, turn: Turn) -> Turn:
        """Append a turn. Its order must equal the number of stored turns."""

    @abstractmethod
    async def replace_turns(self, conversation_id: UUID, turns: list[Turn]) -> list[Turn]:
        """Replace every stored turn of the conversation, renumbering from 0."""

    @abstractmethod
    async def list_turns_by_conversation(self, conversation_id: UUID) -> list[Turn]: ...

    # Analytics

    @abstractmethod
    async def upsert_analytics(
        self,
        conversation_id: UUID,
        user_id: UUID,
        result: AnalyticsResult,
    ) -> SpeechAnalytics:
        """Insert, or overwrite every computed field of the existing record."""

    @abstractmethod
    async def get_analytics(self, conversation_id: UUID, user_id: UUID) -> SpeechAnalytics | None: ...

    @abstractmethod
    async def list_conversation_analytics(self, conversation_id: UUID) -> list[SpeechAnalytics]: ...

    @abstractmethod
    async def list_user_analytics(self, user_id: UUID, limit: int | None = None) -> list[SpeechAnalytics]:
        """Most recent first."""

    @abstractmethod
    async def patch_weak_word_suggestions(
        self,
        conversation_id: UUID,
        user_id: UUID,
        suggestions: list[WeakWordSuggestion],
    ) -> SpeechAnalytics | None: ...


def _renumber(conversation_id: UUID, turns: list[Turn]) -> list[Turn]:
    return [
        turn.model_copy(update={"order": index, "conversation_id": conversation_id})
        for index, turn in enumerate(turns)
    ]


# ══════════════════════════════════════════════════════════════
# In-Memory Store
# ══════════════════════════════════════════════════════════════


class InMemoryStore(ConversationStore):
    """Process-local store."""

    def __init__(self):
        self._conversations: dict[UUID, Conversation] = {}
        self._turns: dict[UUID, list[Turn]] = {}
        self._analytics: dict[tuple[UUID, UUID], SpeechAnalytics] = {}

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        self._conversations[conversation.id] = conversation
        self._turns.setdefault(conversation.id, [])
        return conversation

    async def get_conversation(self, conversation_id: UUID) -> Conversation:
        try:
            return self._conversations[conversation_id]
        except KeyError:
            raise ConversationNotFoundError(conversation_id) from None

    async def update_conversation(self, conversation_id: UUID, **changes: Any) -> Conversation:
        current = await self.get_conversation(conversation_id)
        updated = current.model_copy(update={**changes, "updated_at": datetime.utcnow()})
        self._conversations[conversation_id] = updated
        return updated

    async def list_user_conversations(
        self,
        user_id: UUID,
        include_pending: bool = False,
    ) -> list[Conversation]:
        matches = [
            c
            for c in self._conversations.values()
            if user_id in (c.initiator_user_id, c.participant_user_id)
            and (include_pending or c.status != ConversationStatus.PENDING)
        ]
        return _sort_user_conversations(matches)

    async def insert_turn(self, conversation_id: UUID, turn: Turn) -> Turn:
        await self.get_conversation(conversation_id)
        turns = self._turns.setdefault(conversation_id, [])
        if turn.order != len(turns):
            raise TurnOrderError(f"Expected turn order {len(turns)}, got {turn.order}")
        stored = turn.model_copy(update={"conversation_id": conversation_id})
        turns.append(stored)
        return stored

    async def replace_turns(self, conversation_id: UUID, turns: list[Turn]) -> list[Turn]:
        await self.get_conversation(conversation_id)
        self._turns[conversation_id] = _renumber(conversation_id, turns)
        return list(self._turns[conversation_id])

    async def list_turns_by_conversation(self, conversation_id: UUID) -> list[Turn]:
        return list(self._turns.get(conversation_id, []))

    async def upsert_analytics(
        self,
        conversation_id: UUID,
        user_id: UUID,
        result: AnalyticsResult,
    ) -> SpeechAnalytics:
        computed = result.model_dump()
        existing = self._analytics.get((conversation_id, user_id))
        if existing is None:
            record = SpeechAnalytics(conversation_id=conversation_id, user_id=user_id, **computed)
        else:
            record = SpeechAnalytics(
                id=existing.id,
                conversation_id=conversation_id,
                user_id=user_id,
                created_at=existing.created_at,
                updated_at=datetime.utcnow(),
                **computed,
            )
        self._analytics[(conversation_id, user_id)] = record
        return record

    async def get_analytics(self, conversation_id: UUID, user_id: UUID) -> SpeechAnalytics | None:
        return self._analytics.get((conversation_id, user_id))

    async def list_conversation_analytics(self, conversation_id: UUID) -> list[SpeechAnalytics]:
        return [a for (cid, _), a in self._analytics.items() if cid == conversation_id]

    async def list_user_analytics(self, user_id: UUID, limit: int | None = None) -> list[SpeechAnalytics]:
        records = sorted(
            (a for (_, uid), a in self._analytics.items() if uid == user_id),
            key=lambda a: a.created_at,
            reverse=True,
        )
        return records[:limit] if limit is not None else records

    async def patch_weak_word_suggestions(
        self,
        conversation_id: UUID,
        user_id: UUID,
        suggestions: list[WeakWordSuggestion],
    ) -> SpeechAnalytics | None:
        existing = self._analytics.get((conversation_id, user_id))
        if existing is None:
            return None
        patched = existing.model_copy(
            update={
                "weak_words": apply_suggestions(existing.weak_words, suggestions),
                "updated_at": datetime.utcnow(),
            }
        )
        self._analytics[(conversation_id, user_id)] = patched
        return patched


# ══════════════════════════════════════════════════════════════
# SQL Store
# ══════════════════════════════════════════════════════════════


class SQLStore(ConversationStore):
    """PostgreSQL store over the shared async session factory."""

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        async with get_session() as session:
            row = ConversationModel(
                id=conversation.id,
                initiator_user_id=conversation.initiator_user_id,
                participant_user_id=conversation.participant_user_id,
                status=conversation.status,
                location=conversation.location,
                started_at=conversation.started_at,
                ended_at=conversation.ended_at,
                audio_path=conversation.audio_path,
                transcript_source=conversation.transcript_source,
                created_at=conversation.created_at,
            )
            session.add(row)
            await session.flush()
            return Conversation.model_validate(row)

    async def get_conversation(self, conversation_id: UUID) -> Conversation:
        async with get_session() as session:
            row = await session.get(ConversationModel, conversation_id)
            if row is None:
                raise ConversationNotFoundError(conversation_id)
            return Conversation.model_validate(row)

    async def update_conversation(self, conversation_id: UUID, **changes: Any) -> Conversation:
        async with get_session() as session:
            row = await session.get(ConversationModel, conversation_id)
            if row is None:
                raise ConversationNotFoundError(conversation_id)
            for key, value in changes.items():
                setattr(row, key, value)
            await session.flush()
            await session.refresh(row)
            return Conversation.model_validate(row)

    async def list_user_conversations(
        self,
        user_id: UUID,
        include_pending: bool = False,
    ) -> list[Conversation]:
        async with get_session() as session:
            query = select(ConversationModel).where(
                or_(
                    ConversationModel.initiator_user_id == user_id,
                    ConversationModel.participant_user_id == user_id,
                )
            )
            if not include_pending:
                query = query.where(ConversationModel.status != ConversationStatus.PENDING)
            query = query.order_by(ConversationModel.started_at.desc().nulls_last())

            result = await session.execute(query)
            return [Conversation.model_validate(row) for row in result.scalars()]

    async def insert_turn(self, conversation_id: UUID, turn: Turn) -> Turn:
        async with get_session() as session:
            if await session.get(ConversationModel, conversation_id) is None:
                raise ConversationNotFoundError(conversation_id)

            count = await session.scalar(
                select(func.count())
                .select_from(TranscriptTurnModel)
                .where(TranscriptTurnModel.conversation_id == conversation_id)
            )
            if turn.order != count:
                raise TurnOrderError(f"Expected turn order {count}, got {turn.order}")

            row = self._turn_row(conversation_id, turn)
            session.add(row)
            await session.flush()
            return Turn.model_validate(row)

    async def replace_turns(self, conversation_id: UUID, turns: list[Turn]) -> list[Turn]:
        renumbered = _renumber(conversation_id, turns)
        async with get_session() as session:
            if await session.get(ConversationModel, conversation_id) is None:
                raise ConversationNotFoundError(conversation_id)

            await session.execute(
                delete(TranscriptTurnModel).where(TranscriptTurnModel.conversation_id == conversation_id)
            )
            session.add_all(self._turn_row(conversation_id, turn) for turn in renumbered)
            await session.flush()

        logger.info("Turns replaced", conversation_id=str(conversation_id), count=len(renumbered))
        return renumbered

    async def list_turns_by_conversation(self, conversation_id: UUID) -> list[Turn]:
        async with get_session() as session:
            result = await session.execute(
                select(TranscriptTurnModel)
                .where(TranscriptTurnModel.conversation_id == conversation_id)
                .order_by(TranscriptTurnModel.order)
            )
            return [Turn.model_validate(row) for row in result.scalars()]

    async def upsert_analytics(
        self,
        conversation_id: UUID,
        user_id: UUID,
        result: AnalyticsResult,
    ) -> SpeechAnalytics:
        computed = result.model_dump(mode="json")
        statement = (
            pg_insert(SpeechAnalyticsModel)
            .values(conversation_id=conversation_id, user_id=user_id, created_at=datetime.utcnow(), **computed)
            .on_conflict_do_update(
                constraint="uq_speech_analytics_pair",
                set_={**computed, "updated_at": datetime.utcnow()},
            )
            .returning(SpeechAnalyticsModel)
        )
        async with get_session() as session:
            result = await session.scalars(statement, execution_options={"populate_existing": True})
            row = result.one()
            return SpeechAnalytics.model_validate(row)

    async def get_analytics(self, conversation_id: UUID, user_id: UUID) -> SpeechAnalytics | None:
        async with get_session() as session:
            row = await self._analytics_row(session, conversation_id, user_id)
            return SpeechAnalytics.model_validate(row) if row else None

    async def list_conversation_analytics(self, conversation_id: UUID) -> list[SpeechAnalytics]:
        async with get_session() as session:
            result = await session.execute(
                select(SpeechAnalyticsModel).where(SpeechAnalyticsModel.conversation_id == conversation_id)
            )
            return [SpeechAnalytics.model_validate(row) for row in result.scalars()]

    async def list_user_analytics(self, user_id: UUID, limit: int | None = None) -> list[SpeechAnalytics]:
        async with get_session() as session:
            query = (
                select(SpeechAnalyticsModel)
                .where(SpeechAnalyticsModel.user_id == user_id)
                .order_by(SpeechAnalyticsModel.created_at.desc())
            )
            if limit is not None:
                query = query.limit(limit)
            result = await session.execute(query)
            return [SpeechAnalytics.model_validate(row) for row in result.scalars()]

    async def patch_weak_word_suggestions(
        self,
        conversation_id: UUID,
        user_id: UUID,
        suggestions: list[WeakWordSuggestion],
    ) -> SpeechAnalytics | None:
        async with get_session() as session:
            row = await self._analytics_row(session, conversation_id, user_id)
            if row is None:
                return None

            current = SpeechAnalytics.model_validate(row)
            patched = apply_suggestions(current.weak_words, suggestions)
            row.weak_words = [item.model_dump(mode="json") for item in patched]
            await session.flush()
            await session.refresh(row)
            return SpeechAnalytics.model_validate(row)

    @staticmethod
    def _turn_row(conversation_id: UUID, turn: Turn) -> TranscriptTurnModel:
        return TranscriptTurnModel(
            conversation_id=conversation_id,
            order=turn.order,
            speaker_label=turn.speaker_label,
            participant_id=turn.participant_id,
            text=turn.text,
            start_time=turn.start_time,
            end_time=turn.end_time,
        )

    @staticmethod
    async def _analytics_row(session, conversation_id: UUID, user_id: UUID) -> SpeechAnalyticsModel | None:
        result = await session.execute(
            select(SpeechAnalyticsModel).where(
                SpeechAnalyticsModel.conversation_id == conversation_id,
                SpeechAnalyticsModel.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()


# ══════════════════════════════════════════════════════════════
# Store Selection
# ══════════════════════════════════════════════════════════════

_store: ConversationStore | None = None


def get_store() -> ConversationStore:
    """Process-wide store for the configured backend."""
    global _store

    if _store is None:
        _store = InMemoryStore() if settings.store_backend == "memory" else SQLStore()
    return _store


def set_store(store: ConversationStore | None) -> None:
    """Install a store instance (None resets to the configured backend)."""
    global _store
    _store = store


__all__ = [
    "ConversationStore",
    "InMemoryStore",
    "SQLStore",
    "ConversationNotFoundError",
    "TurnOrderError",
    "get_store",
    "set_store",
]
