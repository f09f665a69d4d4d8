"""Health check endpoints."""

from fastapi import APIRouter, Response
from sqlalchemy import text

from cadence import __version__
from cadence.config import settings

router = APIRouter()


@router.get("/health")
async def health_check() -> dict:
    """Basic health check."""
    return {
        "status": "healthy",
        "version": __version__,
    }


@router.get("/health/ready")
async def readiness_check():
    """Kubernetes readiness probe."""
    # Check database connection
    if settings.store_backend == "postgres":
        from cadence.db import get_session

        try:
            async with get_session() as session:
                await session.execute(text("SELECT 1"))
        except Exception:
            return Response(status_code=503, content="Database not ready")

    # Check Redis connection
    from cadence.db.redis import get_redis

    try:
        redis = await get_redis()
        await redis.ping()
    except Exception:
        return Response(status_code=503, content="Redis not ready")

    return {"status": "ready"}


@router.get("/health/live")
async def liveness_check() -> dict:
    """Kubernetes liveness probe."""
    return {"status": "alive"}
