"""
Background Tasks

Post-session jobs executed by ARQ workers. Every task returns a result dict
with a `success` flag instead of raising, so failures are recorded as job
results.
"""

from typing import Any
from uuid import UUID

import structlog

from cadence.config import settings
from cadence.db.redis import AnalyticsLockedError, analytics_lock, get_redis
from cadence.pipeline.orchestrator import ConversationPipeline

from .queue import JobPriority, enqueue_job

logger = structlog.get_logger()


# ══════════════════════════════════════════════════════════════
# Worker Lifecycle
# ══════════════════════════════════════════════════════════════


async def startup(ctx: dict[str, Any]) -> None:
    """Initialize worker resources on startup."""
    logger.info("Worker starting up")

    if settings.store_backend == "postgres":
        from cadence.db import init_db

        await init_db()
        ctx["db_initialized"] = True

    from cadence.db.redis import init_redis

    await init_redis()

    ctx["pipeline"] = ConversationPipeline()
    logger.info("Worker startup complete")


async def shutdown(ctx: dict[str, Any]) -> None:
    """Cleanup worker resources on shutdown."""
    logger.info("Worker shutting down")

    pipeline: ConversationPipeline | None = ctx.get("pipeline")
    if pipeline is not None:
        await pipeline.close()

    from cadence.db.redis import close_redis

    await close_redis()

    if ctx.get("db_initialized"):
        from cadence.db import close_db

        await close_db()

    logger.info("Worker shutdown complete")


def _pipeline(ctx: dict[str, Any]) -> ConversationPipeline:
    if "pipeline" not in ctx:
        ctx["pipeline"] = ConversationPipeline()
    return ctx["pipeline"]


def suggestions_job_id(conversation_id: str, user_id: str) -> str:
    return f"suggestions:{conversation_id}:{user_id}"


def analysis_job_id(conversation_id: str) -> str:
    return f"analyze:{conversation_id}"


# ══════════════════════════════════════════════════════════════
# Analytics Tasks
# ══════════════════════════════════════════════════════════════


async def analyze_participant(
    ctx: dict[str, Any],
    conversation_id: str,
    user_id: str,
    force: bool = False,
) -> dict[str, Any]:
    """
    Compute speech analytics for one participant.

    Holds the per-pair analytics lock for the duration of the computation
    and, when weak words were found, queues suggestion generation.

    Args:
        ctx: ARQ context
        conversation_id: UUID of the conversation
        user_id: UUID of the participant
        force: Recompute even if analytics already exist

    Returns:
        Processing result
    """
    log = logger.bind(conversation_id=conversation_id, user_id=user_id)
    pipeline = _pipeline(ctx)

    try:
        client = await get_redis()
        async with analytics_lock(client, UUID(conversation_id), UUID(user_id)):
            analytics = await pipeline.analyze_participant(UUID(conversation_id), UUID(user_id), force=force)

    except AnalyticsLockedError as e:
        log.info("Analytics already in progress")
        return {"success": False, "skipped": True, "error": str(e)}

    except Exception as e:
        log.error("Participant analysis failed", error=str(e))
        return {"success": False, "conversation_id": conversation_id, "user_id": user_id, "error": str(e)}

    if analytics is None:
        return {"success": True, "conversation_id": conversation_id, "user_id": user_id, "analytics_id": None}

    if any(item.suggestion is None for item in analytics.weak_words):
        await enqueue_job(
            generate_weak_word_suggestions,
            conversation_id,
            user_id,
            priority=JobPriority.LOW,
            job_id=suggestions_job_id(conversation_id, user_id),
            rerun=True,
        )

    return {
        "success": True,
        "conversation_id": conversation_id,
        "user_id": user_id,
        "analytics_id": str(analytics.id),
        "scores": analytics.scores.model_dump(),
    }


async def analyze_conversation(
    ctx: dict[str, Any],
    conversation_id: str,
    force: bool = False,
) -> dict[str, Any]:
    """
    Compute speech analytics for every participant of a conversation.

    Args:
        ctx: ARQ context
        conversation_id: UUID of the conversation
        force: Recompute even if analytics already exist

    Returns:
        Per-participant results
    """
    pipeline = _pipeline(ctx)

    try:
        conversation = await pipeline.store.get_conversation(UUID(conversation_id))
    except Exception as e:
        logger.error("Conversation analysis failed", conversation_id=conversation_id, error=str(e))
        return {"success": False, "conversation_id": conversation_id, "error": str(e)}

    participants = {}
    for user_id in conversation.participant_ids:
        participants[str(user_id)] = await analyze_participant(ctx, conversation_id, str(user_id), force=force)

    logger.info(
        "Conversation analysis complete",
        conversation_id=conversation_id,
        participant_count=len(participants),
    )

    return {
        "success": all(r["success"] or r.get("skipped") for r in participants.values()),
        "conversation_id": conversation_id,
        "participants": participants,
    }


async def generate_weak_word_suggestions(
    ctx: dict[str, Any],
    conversation_id: str,
    user_id: str,
) -> dict[str, Any]:
    """
    Ask the LLM rewriter for weak-word suggestions and patch them on.

    Args:
        ctx: ARQ context
        conversation_id: UUID of the conversation
        user_id: UUID of the participant

    Returns:
        Number of suggestions stored
    """
    pipeline = _pipeline(ctx)

    try:
        analytics = await pipeline.generate_suggestions(UUID(conversation_id), UUID(user_id))
    except Exception as e:
        logger.error(
            "Suggestion generation failed",
            conversation_id=conversation_id,
            user_id=user_id,
            error=str(e),
        )
        return {"success": False, "conversation_id": conversation_id, "user_id": user_id, "error": str(e)}

    if analytics is None:
        return {"success": False, "conversation_id": conversation_id, "user_id": user_id, "error": "No analytics available"}

    return {
        "success": True,
        "conversation_id": conversation_id,
        "user_id": user_id,
        "suggestion_count": sum(1 for item in analytics.weak_words if item.suggestion),
    }


# ══════════════════════════════════════════════════════════════
# Reconciliation Tasks
# ══════════════════════════════════════════════════════════════


async def reconcile_conversation(
    ctx: dict[str, Any],
    conversation_id: str,
    content_type: str | None = None,
) -> dict[str, Any]:
    """
    Replace a conversation's streamed turns with a batch transcript.

    Analytics for every participant is recomputed afterwards.

    Args:
        ctx: ARQ context
        conversation_id: UUID of the conversation
        content_type: MIME type of the archived recording

    Returns:
        Processing result
    """
    log = logger.bind(conversation_id=conversation_id)
    pipeline = _pipeline(ctx)

    log.info("Reconciling transcript")

    try:
        turns = await pipeline.reconcile(UUID(conversation_id), content_type=content_type, analyze=False)
    except Exception as e:
        log.error("Transcript reconciliation failed", error=str(e))
        return {"success": False, "conversation_id": conversation_id, "error": str(e)}

    # Turns changed, so stored analytics are stale
    analysis = await analyze_conversation(ctx, conversation_id, force=True)

    return {
        "success": True,
        "conversation_id": conversation_id,
        "turn_count": len(turns),
        "analysis": analysis,
    }
