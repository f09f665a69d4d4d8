"""
ARQ Queue Configuration

Sets up the async Redis queue for background job processing.
"""

from datetime import timedelta
from enum import Enum
from typing import Any, Callable

import structlog
from arq import create_pool
from arq.connections import RedisSettings, ArqRedis
from arq.constants import result_key_prefix

from cadence.config import settings

logger = structlog.get_logger()


class JobPriority(str, Enum):
    """Job priority levels."""

    HIGH = "high"      # Post-session analytics
    NORMAL = "normal"  # Reconciliation
    LOW = "low"        # LLM suggestions


# Queue names by priority
QUEUE_NAMES = {
    JobPriority.HIGH: "cadence:high",
    JobPriority.NORMAL: "cadence:default",
    JobPriority.LOW: "cadence:low",
}

# Global connection pool
_pool: ArqRedis | None = None


def get_redis_settings() -> RedisSettings:
    """ARQ connection settings from the configured Redis URL."""
    return RedisSettings(
        host=settings.redis_url.host or "localhost",
        port=settings.redis_url.port or 6379,
        password=settings.redis_url.password,
        database=int(settings.redis_url.path.lstrip("/") or "0") if settings.redis_url.path else 0,
    )


async def get_redis_pool() -> ArqRedis:
    """Get or create ARQ Redis connection pool."""
    global _pool

    if _pool is None:
        _pool = await create_pool(get_redis_settings())
        logger.info("ARQ Redis pool created")

    return _pool


async def close_redis_pool() -> None:
    """Close the ARQ Redis pool."""
    global _pool

    if _pool:
        await _pool.close()
        _pool = None
        logger.info("ARQ Redis pool closed")


async def enqueue_job(
    func: str | Callable,
    *args: Any,
    priority: JobPriority = JobPriority.NORMAL,
    defer_by: timedelta | None = None,
    job_id: str | None = None,
    rerun: bool = False,
    **kwargs: Any,
) -> str | None:
    """
    Enqueue a job for background processing.

    Args:
        func: Function name or callable to execute
        *args: Positional arguments for the function
        priority: Job priority level
        defer_by: Delay before job execution
        job_id: Optional custom job ID; a queued or running job with the
            same ID is not enqueued twice
        rerun: Drop the stored result of a finished job with the same ID,
            so the job runs again; a queued or running one still dedupes
        **kwargs: Keyword arguments for the function

    Returns:
        Job ID if enqueued successfully, None otherwise
    """
    func_name = func if isinstance(func, str) else func.__name__

    try:
        pool = await get_redis_pool()
        if rerun and job_id:
            await pool.delete(result_key_prefix + job_id)

        job = await pool.enqueue_job(
            func_name,
            *args,
            _queue_name=QUEUE_NAMES[priority],
            _defer_by=defer_by,
            _job_id=job_id,
            **kwargs,
        )

        if job:
            logger.info(
                "Job enqueued",
                job_id=job.job_id,
                func=func_name,
                priority=priority.value,
                defer_by=str(defer_by) if defer_by else None,
            )
            return job.job_id

        logger.info("Job already queued or recently finished", func=func_name, job_id=job_id)
        return None

    except Exception as e:
        logger.error(
            "Failed to enqueue job",
            func=func_name,
            error=str(e),
        )
        return None


def get_worker_settings(priority: JobPriority = JobPriority.NORMAL) -> dict[str, Any]:
    """
    Get ARQ worker settings.

    This is used by the CLI to start workers.
    """
    from .tasks import (
        analyze_conversation,
        analyze_participant,
        generate_weak_word_suggestions,
        reconcile_conversation,
        startup,
        shutdown,
    )

    return {
        "functions": [
            analyze_conversation,
            analyze_participant,
            generate_weak_word_suggestions,
            reconcile_conversation,
        ],
        "on_startup": startup,
        "on_shutdown": shutdown,
        "redis_settings": get_redis_settings(),
        "queue_name": QUEUE_NAMES[priority],
        "max_jobs": settings.worker_max_jobs,
        "job_timeout": settings.worker_job_timeout,
        "keep_result": 3600,  # Keep results for 1 hour
        "health_check_interval": 30,
        "retry_jobs": True,
        "max_tries": 3,
    }
