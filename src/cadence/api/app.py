"""
Cadence FastAPI Application

Main application factory and configuration.
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from cadence import __version__
from cadence.config import settings

from .routes import analytics, conversations, health, realtime, speech

logger = structlog.get_logger()


# ══════════════════════════════════════════════════════════════
# Lifespan Management
# ══════════════════════════════════════════════════════════════


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    logger.info(
        "Starting Cadence API",
        version=__version__,
        environment=settings.app_env,
        store=settings.store_backend,
    )

    from cadence.db import close_db, init_db
    from cadence.db.redis import close_redis, init_redis
    from cadence.worker.queue import close_redis_pool

    if settings.store_backend == "postgres":
        await init_db()

    await init_redis()

    logger.info("Cadence API started successfully")

    yield

    logger.info("Shutting down Cadence API")

    await close_redis_pool()
    await close_redis()
    await close_db()
    logger.info("Cadence API shutdown complete")


# ══════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Cadence API",
        description="Live conversation transcription and speech analytics",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    # ──────────────────────────────────────────────────────────
    # Middleware
    # ──────────────────────────────────────────────────────────

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests with timing."""
        start = time.perf_counter()

        response = await call_next(request)

        duration = (time.perf_counter() - start) * 1000
        logger.info(
            "Request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round(duration, 2),
        )

        return response

    # ──────────────────────────────────────────────────────────
    # Routes
    # ──────────────────────────────────────────────────────────

    app.include_router(
        health.router,
        tags=["Health"],
    )

    api_prefix = f"/api/{settings.api_version}"

    app.include_router(
        conversations.router,
        prefix=f"{api_prefix}/conversations",
        tags=["Conversations"],
    )

    app.include_router(
        analytics.router,
        prefix=f"{api_prefix}/analytics",
        tags=["Analytics"],
    )

    app.include_router(
        speech.router,
        prefix=f"{api_prefix}/speech",
        tags=["Speech"],
    )

    app.include_router(
        realtime.router,
        prefix="/ws",
        tags=["Realtime"],
    )

    return app


# Create default app instance
app = create_app()
