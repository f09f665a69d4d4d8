"""
Conversation Routes

Conversation lifecycle, stored transcript turns and transcript reconciliation.
"""

from uuid import UUID

import structlog
from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from cadence.core.models import (
    Conversation,
    ConversationCreate,
    ConversationStart,
    Turn,
    TurnInput,
)
from cadence.db.store import ConversationNotFoundError, ConversationStore
from cadence.pipeline.orchestrator import ConversationPipeline, ConversationStateError
from cadence.worker.queue import JobPriority, enqueue_job
from cadence.worker.tasks import analysis_job_id

from ..dependencies import get_conversation_store, get_pipeline

logger = structlog.get_logger()

router = APIRouter()


# ══════════════════════════════════════════════════════════════
# Request/Response Models
# ══════════════════════════════════════════════════════════════


class ConversationEnd(BaseModel):
    """End request; the recording path is set when the audio was archived."""

    audio_path: str | None = Field(None, max_length=1024)


class ConversationEndResponse(BaseModel):
    conversation: Conversation
    analysis_job_id: str | None = None


class ReconcileRequest(BaseModel):
    content_type: str | None = None


class JobResponse(BaseModel):
    """A queued background job."""

    conversation_id: UUID
    job_id: str | None
    queued: bool


def not_found(e: ConversationNotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


def conflict(e: ConversationStateError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


# ══════════════════════════════════════════════════════════════
# Lifecycle
# ══════════════════════════════════════════════════════════════


@router.post("", response_model=Conversation, status_code=201)
async def create_conversation(
    request: ConversationCreate,
    store: ConversationStore = Depends(get_conversation_store),
) -> Conversation:
    """Create a pending conversation."""
    conversation = await store.create_conversation(
        Conversation(
            initiator_user_id=request.initiator_user_id,
            participant_user_id=request.participant_user_id,
            location=request.location,
        )
    )
    logger.info("Conversation created", conversation_id=str(conversation.id))
    return conversation


@router.get("", response_model=list[Conversation])
async def list_conversations(
    user_id: UUID,
    include_pending: bool = Query(False),
    store: ConversationStore = Depends(get_conversation_store),
) -> list[Conversation]:
    """A user's conversations, most recently started first."""
    return await store.list_user_conversations(user_id, include_pending=include_pending)


@router.get("/{conversation_id}", response_model=Conversation)
async def get_conversation(
    conversation_id: UUID,
    store: ConversationStore = Depends(get_conversation_store),
) -> Conversation:
    try:
        return await store.get_conversation(conversation_id)
    except ConversationNotFoundError as e:
        raise not_found(e)


@router.post("/{conversation_id}/start", response_model=Conversation)
async def start_conversation(
    conversation_id: UUID,
    request: ConversationStart | None = Body(None),
    pipeline: ConversationPipeline = Depends(get_pipeline),
) -> Conversation:
    """Mark a pending conversation active once the second party joined."""
    try:
        return await pipeline.start_conversation(
            conversation_id,
            participant_user_id=request.participant_user_id if request else None,
        )
    except ConversationNotFoundError as e:
        raise not_found(e)
    except ConversationStateError as e:
        raise conflict(e)


@router.post("/{conversation_id}/end", response_model=ConversationEndResponse)
async def end_conversation(
    conversation_id: UUID,
    request: ConversationEnd | None = Body(None),
    pipeline: ConversationPipeline = Depends(get_pipeline),
) -> ConversationEndResponse:
    """End a conversation and queue analytics for its participants."""
    try:
        conversation = await pipeline.end_conversation(
            conversation_id,
            audio_path=request.audio_path if request else None,
        )
    except ConversationNotFoundError as e:
        raise not_found(e)

    job_id = await enqueue_job(
        "analyze_conversation",
        str(conversation_id),
        priority=JobPriority.HIGH,
        job_id=analysis_job_id(str(conversation_id)),
    )
    return ConversationEndResponse(conversation=conversation, analysis_job_id=job_id)


# ══════════════════════════════════════════════════════════════
# Turns
# ══════════════════════════════════════════════════════════════


@router.get("/{conversation_id}/turns", response_model=list[Turn])
async def list_turns(
    conversation_id: UUID,
    store: ConversationStore = Depends(get_conversation_store),
) -> list[Turn]:
    """Stored turns in conversation order."""
    try:
        await store.get_conversation(conversation_id)
    except ConversationNotFoundError as e:
        raise not_found(e)
    return await store.list_turns_by_conversation(conversation_id)


@router.post("/{conversation_id}/turns", response_model=list[Turn], status_code=201)
async def save_turns(
    conversation_id: UUID,
    turns: list[TurnInput],
    pipeline: ConversationPipeline = Depends(get_pipeline),
) -> list[Turn]:
    """Append client-assembled turns after any already stored."""
    try:
        return await pipeline.record_turn_inputs(conversation_id, turns)
    except ConversationNotFoundError as e:
        raise not_found(e)


@router.post("/{conversation_id}/reconcile", response_model=JobResponse, status_code=202)
async def reconcile_conversation(
    conversation_id: UUID,
    request: ReconcileRequest | None = Body(None),
    store: ConversationStore = Depends(get_conversation_store),
) -> JobResponse:
    """Queue batch re-transcription of the archived recording."""
    try:
        conversation = await store.get_conversation(conversation_id)
    except ConversationNotFoundError as e:
        raise not_found(e)

    if not conversation.audio_path:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Conversation has no archived recording",
        )

    job_id = await enqueue_job(
        "reconcile_conversation",
        str(conversation_id),
        request.content_type if request else None,
        priority=JobPriority.NORMAL,
        job_id=f"reconcile:{conversation_id}",
        rerun=True,
    )
    return JobResponse(conversation_id=conversation_id, job_id=job_id, queued=job_id is not None)
