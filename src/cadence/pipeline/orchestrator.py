"""
Conversation Pipeline

Coordinates the post-recording flow for a conversation:

1. Record    - persist assembled turns with speakers resolved to participants
2. Reconcile - batch-transcribe the archived recording, replace the turns
3. Analyze   - compute analytics once per (conversation, participant)
4. Annotate  - patch LLM rewrites onto the stored weak words
"""

import asyncio
from datetime import datetime
from pathlib import Path
from uuid import UUID

import structlog

from cadence.core.models import (
    Conversation,
    ConversationStatus,
    SpeechAnalytics,
    TranscriptSource,
    Turn,
    TurnInput,
    UserDashboard,
)
from cadence.db.store import ConversationStore, get_store
from cadence.integrations.speechmatics import SpeechmaticsBatchClient

from .analytics import SpeechAnalyticsEngine
from .dashboard import build_dashboard
from .reconcile import turns_from_batch_transcript
from .speakers import resolve_participants, turns_for_participant
from .suggestions import SuggestionGenerator

logger = structlog.get_logger()


class ConversationStateError(ValueError):
    """The requested lifecycle transition is not allowed."""


def turns_from_inputs(inputs: list[TurnInput]) -> list[Turn]:
    """Build ordered turns from client-assembled input, dropping blank text."""
    turns: list[Turn] = []
    last_start = 0.0
    for item in inputs:
        text = item.text.strip()
        if not text:
            continue
        start_time = max(item.start_time, last_start)
        turns.append(
            Turn(
                speaker_label=item.speaker_label,
                text=text,
                start_time=start_time,
                end_time=max(item.end_time, start_time),
                order=len(turns),
            )
        )
        last_start = start_time
    return turns


class ConversationPipeline:
    """
    Post-recording pipeline over the conversation store.

    Usage:
        pipeline = ConversationPipeline()
        await pipeline.record_turns(conversation_id, assembler.turns)
        analytics = await pipeline.analyze_conversation(conversation_id)
    """

    def __init__(
        self,
        store: ConversationStore | None = None,
        engine: SpeechAnalyticsEngine | None = None,
        suggestion_generator: SuggestionGenerator | None = None,
        batch_client: SpeechmaticsBatchClient | None = None,
    ):
        self.store = store or get_store()
        self.engine = engine or SpeechAnalyticsEngine()
        self._suggestion_generator = suggestion_generator
        self._batch_client = batch_client

    async def close(self) -> None:
        """Close provider clients."""
        if self._batch_client is not None:
            await self._batch_client.close()

    @property
    def suggestion_generator(self) -> SuggestionGenerator:
        if self._suggestion_generator is None:
            self._suggestion_generator = SuggestionGenerator()
        return self._suggestion_generator

    @property
    def batch_client(self) -> SpeechmaticsBatchClient:
        if self._batch_client is None:
            self._batch_client = SpeechmaticsBatchClient()
        return self._batch_client

    # ══════════════════════════════════════════════════════════════
    # Lifecycle
    # ══════════════════════════════════════════════════════════════

    async def start_conversation(
        self,
        conversation_id: UUID,
        participant_user_id: UUID | None = None,
    ) -> Conversation:
        """pending -> active."""
        conversation = await self.store.get_conversation(conversation_id)
        if conversation.status != ConversationStatus.PENDING:
            raise ConversationStateError(f"Conversation is already {conversation.status.value}")

        changes = {"status": ConversationStatus.ACTIVE, "started_at": datetime.utcnow()}
        if participant_user_id is not None:
            changes["participant_user_id"] = participant_user_id

        conversation = await self.store.update_conversation(conversation_id, **changes)
        logger.info("Conversation started", conversation_id=str(conversation_id))
        return conversation

    async def end_conversation(
        self,
        conversation_id: UUID,
        audio_path: str | None = None,
    ) -> Conversation:
        """-> ended. Ending an ended conversation only records the audio path."""
        conversation = await self.store.get_conversation(conversation_id)

        changes: dict = {}
        if audio_path:
            changes["audio_path"] = audio_path
        if conversation.status != ConversationStatus.ENDED:
            changes["status"] = ConversationStatus.ENDED
            changes["ended_at"] = datetime.utcnow()

        if not changes:
            return conversation

        conversation = await self.store.update_conversation(conversation_id, **changes)
        logger.info(
            "Conversation ended",
            conversation_id=str(conversation_id),
            duration_minutes=round(conversation.duration_minutes, 2),
        )
        return conversation

    # ══════════════════════════════════════════════════════════════
    # Turns
    # ══════════════════════════════════════════════════════════════

    async def record_turns(self, conversation_id: UUID, turns: list[Turn]) -> list[Turn]:
        """Append streamed turns after any already stored, in order.

        Start times never fall behind the latest stored turn.
        """
        conversation = await self.store.get_conversation(conversation_id)
        existing = await self.store.list_turns_by_conversation(conversation_id)
        offset = len(existing)
        last_start = max((turn.start_time for turn in existing), default=0.0)

        stored = []
        for index, turn in enumerate(resolve_participants(turns, conversation)):
            start_time = max(turn.start_time, last_start)
            turn = turn.model_copy(
                update={
                    "order": offset + index,
                    "start_time": start_time,
                    "end_time": max(turn.end_time, start_time),
                }
            )
            stored.append(await self.store.insert_turn(conversation_id, turn))
            last_start = start_time

        if stored and conversation.transcript_source is None:
            await self.store.update_conversation(conversation_id, transcript_source=TranscriptSource.REALTIME)

        logger.info("Turns recorded", conversation_id=str(conversation_id), count=len(stored))
        return stored

    async def record_turn_inputs(self, conversation_id: UUID, inputs: list[TurnInput]) -> list[Turn]:
        return await self.record_turns(conversation_id, turns_from_inputs(inputs))

    async def reconcile(
        self,
        conversation_id: UUID,
        audio: bytes | None = None,
        content_type: str | None = None,
        analyze: bool = True,
    ) -> list[Turn]:
        """Replace streamed turns with the batch transcript.

        Analytics is recomputed for every participant unless `analyze` is False.
        """
        log = logger.bind(conversation_id=str(conversation_id))
        conversation = await self.store.get_conversation(conversation_id)

        if audio is None:
            if not conversation.audio_path:
                raise ConversationStateError("Conversation has no archived recording")
            audio = await asyncio.to_thread(Path(conversation.audio_path).read_bytes)

        transcript = await self.batch_client.transcribe(audio, content_type=content_type)
        turns = resolve_participants(turns_from_batch_transcript(transcript), conversation)

        stored = await self.store.replace_turns(conversation_id, turns)
        await self.store.update_conversation(conversation_id, transcript_source=TranscriptSource.BATCH)
        log.info("Transcript reconciled", turn_count=len(stored))

        if analyze:
            await self.analyze_conversation(conversation_id, force=True)
        return stored

    # ══════════════════════════════════════════════════════════════
    # Analytics
    # ══════════════════════════════════════════════════════════════

    async def analyze_participant(
        self,
        conversation_id: UUID,
        user_id: UUID,
        force: bool = False,
    ) -> SpeechAnalytics | None:
        """Compute and store analytics for one participant.

        Existing results are returned untouched unless `force` is set.
        Returns None when the participant has no turns.
        """
        log = logger.bind(conversation_id=str(conversation_id), user_id=str(user_id))

        if not force:
            existing = await self.store.get_analytics(conversation_id, user_id)
            if existing is not None:
                log.debug("Analytics already computed")
                return existing

        conversation = await self.store.get_conversation(conversation_id)
        turns = resolve_participants(await self.store.list_turns_by_conversation(conversation_id), conversation)
        own_turns = turns_for_participant(turns, user_id)

        result = self.engine.analyze_turns(own_turns, conversation.duration_minutes)
        if result is None:
            log.info("No analytics available", turn_count=len(own_turns))
            return None

        analytics = await self.store.upsert_analytics(conversation_id, user_id, result)
        log.info(
            "Analytics computed",
            turn_count=len(own_turns),
            clarity=result.scores.clarity,
            conciseness=result.scores.conciseness,
            confidence=result.scores.confidence,
        )
        return analytics

    async def analyze_conversation(
        self,
        conversation_id: UUID,
        force: bool = False,
    ) -> dict[UUID, SpeechAnalytics | None]:
        """Analyze every participant; participants run concurrently."""
        conversation = await self.store.get_conversation(conversation_id)
        user_ids = conversation.participant_ids

        results = await asyncio.gather(
            *(self.analyze_participant(conversation_id, user_id, force=force) for user_id in user_ids)
        )
        return dict(zip(user_ids, results))

    async def generate_suggestions(self, conversation_id: UUID, user_id: UUID) -> SpeechAnalytics | None:
        """Rewrite the first weak-word sentences and patch them onto stored analytics."""
        analytics = await self.store.get_analytics(conversation_id, user_id)
        if analytics is None or not analytics.weak_words:
            return analytics

        suggestions = await self.suggestion_generator.generate(analytics.weak_words)
        if not suggestions:
            return analytics

        return await self.store.patch_weak_word_suggestions(conversation_id, user_id, suggestions)

    async def user_dashboard(self, user_id: UUID) -> UserDashboard:
        conversations = await self.store.list_user_conversations(user_id)
        analytics = await self.store.list_user_analytics(user_id)

        user_turns = {}
        for conversation in conversations:
            turns = resolve_participants(
                await self.store.list_turns_by_conversation(conversation.id),
                conversation,
            )
            user_turns[conversation.id] = turns_for_participant(turns, user_id)

        return build_dashboard(conversations, analytics, user_turns)
