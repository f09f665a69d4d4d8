"""
Redis Module

Redis connection for the job queue and per-conversation analytics locks.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator
from uuid import UUID

import redis.asyncio as redis
import structlog
from redis.exceptions import LockNotOwnedError

from cadence.config import settings

logger = structlog.get_logger()

_redis_client: redis.Redis | None = None


async def init_redis() -> None:
    """Initialize Redis connection."""
    global _redis_client

    _redis_client = redis.from_url(
        str(settings.redis_url),
        encoding="utf-8",
        decode_responses=True,
    )

    # Test connection
    await _redis_client.ping()
    logger.info("Redis connection initialized")


async def close_redis() -> None:
    """Close Redis connection."""
    global _redis_client

    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Redis connection closed")


async def get_redis() -> redis.Redis:
    """Get Redis client instance."""
    if not _redis_client:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis_client


class AnalyticsLockedError(RuntimeError):
    """Analytics for this (conversation, user) pair is already being computed."""


def analytics_lock_key(conversation_id: UUID, user_id: UUID) -> str:
    return f"cadence:analytics-lock:{conversation_id}:{user_id}"


@asynccontextmanager
async def analytics_lock(
    client: redis.Redis,
    conversation_id: UUID,
    user_id: UUID,
    timeout: float | None = None,
) -> AsyncIterator[None]:
    """Hold the analytics lock for one pair; fail fast if another holder exists."""
    lock = client.lock(
        analytics_lock_key(conversation_id, user_id),
        timeout=timeout or settings.analytics_lock_timeout_seconds,
    )
    if not await lock.acquire(blocking=False):
        raise AnalyticsLockedError(f"Analytics already running for {conversation_id}/{user_id}")
    try:
        yield
    finally:
        try:
            await lock.release()
        except LockNotOwnedError:
            logger.warning(
                "Analytics lock expired before release",
                conversation_id=str(conversation_id),
                user_id=str(user_id),
            )


__all__ = [
    "init_redis",
    "close_redis",
    "get_redis",
    "analytics_lock",
    "analytics_lock_key",
    "AnalyticsLockedError",
]
