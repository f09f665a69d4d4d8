"""Shared FastAPI dependencies."""

import redis.asyncio as redis
from fastapi import Depends

from cadence.db.redis import get_redis
from cadence.db.store import ConversationStore, get_store
from cadence.integrations.speechmatics import SpeechmaticsRealtimeClient
from cadence.pipeline.orchestrator import ConversationPipeline


async def get_conversation_store() -> ConversationStore:
    """The configured conversation store."""
    return get_store()


async def get_pipeline(
    store: ConversationStore = Depends(get_conversation_store),
) -> ConversationPipeline:
    """A conversation pipeline over the request's store."""
    return ConversationPipeline(store=store)


async def get_lock_client() -> redis.Redis:
    """Redis client holding per-pair analytics locks."""
    return await get_redis()


async def get_realtime_client() -> SpeechmaticsRealtimeClient:
    """A fresh, unconnected provider session."""
    return SpeechmaticsRealtimeClient()
