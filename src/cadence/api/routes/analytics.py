"""
Analytics Routes

Per-participant speech analytics, per-user history and the user dashboard.
"""

from uuid import UUID

import redis.asyncio as redis
import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from cadence.core.models import SpeechAnalytics, UserDashboard
from cadence.db.redis import AnalyticsLockedError, analytics_lock
from cadence.db.store import ConversationNotFoundError, ConversationStore
from cadence.pipeline.orchestrator import ConversationPipeline
from cadence.worker.queue import JobPriority, enqueue_job
from cadence.worker.tasks import suggestions_job_id

from ..dependencies import get_conversation_store, get_lock_client, get_pipeline
from .conversations import JobResponse, not_found

logger = structlog.get_logger()

router = APIRouter()

NO_ANALYTICS = "No analytics available"


# ══════════════════════════════════════════════════════════════
# Per Conversation
# ══════════════════════════════════════════════════════════════


@router.get("/conversations/{conversation_id}", response_model=list[SpeechAnalytics])
async def get_conversation_analytics(
    conversation_id: UUID,
    store: ConversationStore = Depends(get_conversation_store),
) -> list[SpeechAnalytics]:
    """Analytics for every participant that has been analyzed."""
    try:
        await store.get_conversation(conversation_id)
    except ConversationNotFoundError as e:
        raise not_found(e)
    return await store.list_conversation_analytics(conversation_id)


@router.get("/conversations/{conversation_id}/users/{user_id}", response_model=SpeechAnalytics)
async def get_participant_analytics(
    conversation_id: UUID,
    user_id: UUID,
    store: ConversationStore = Depends(get_conversation_store),
) -> SpeechAnalytics:
    analytics = await store.get_analytics(conversation_id, user_id)
    if analytics is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NO_ANALYTICS)
    return analytics


@router.post("/conversations/{conversation_id}/users/{user_id}", response_model=SpeechAnalytics)
async def compute_participant_analytics(
    conversation_id: UUID,
    user_id: UUID,
    force: bool = Query(False, description="Recompute existing analytics"),
    pipeline: ConversationPipeline = Depends(get_pipeline),
    lock_client: redis.Redis = Depends(get_lock_client),
):
    """Compute analytics for one participant.

    Stored analytics are returned as-is unless `force` is set; a participant
    without turns yields 204.
    """
    try:
        async with analytics_lock(lock_client, conversation_id, user_id):
            analytics = await pipeline.analyze_participant(conversation_id, user_id, force=force)
    except ConversationNotFoundError as e:
        raise not_found(e)
    except AnalyticsLockedError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    if analytics is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return analytics


@router.post(
    "/conversations/{conversation_id}/users/{user_id}/suggestions",
    response_model=JobResponse,
    status_code=202,
)
async def request_suggestions(
    conversation_id: UUID,
    user_id: UUID,
    store: ConversationStore = Depends(get_conversation_store),
) -> JobResponse:
    """Queue LLM rewrites for the participant's weak-word sentences."""
    if await store.get_analytics(conversation_id, user_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NO_ANALYTICS)

    job_id = await enqueue_job(
        "generate_weak_word_suggestions",
        str(conversation_id),
        str(user_id),
        priority=JobPriority.LOW,
        job_id=suggestions_job_id(str(conversation_id), str(user_id)),
        rerun=True,
    )
    return JobResponse(conversation_id=conversation_id, job_id=job_id, queued=job_id is not None)


# ══════════════════════════════════════════════════════════════
# Per User
# ══════════════════════════════════════════════════════════════


@router.get("/users/{user_id}", response_model=list[SpeechAnalytics])
async def get_user_analytics(
    user_id: UUID,
    limit: int = Query(10, ge=1, le=100),
    store: ConversationStore = Depends(get_conversation_store),
) -> list[SpeechAnalytics]:
    """A user's analytics history, most recent first."""
    return await store.list_user_analytics(user_id, limit=limit)


@router.get("/users/{user_id}/dashboard", response_model=UserDashboard)
async def get_user_dashboard(
    user_id: UUID,
    pipeline: ConversationPipeline = Depends(get_pipeline),
) -> UserDashboard:
    return await pipeline.user_dashboard(user_id)
