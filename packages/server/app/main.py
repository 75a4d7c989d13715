"""
VideoConnect API Server

Entry point for the FastAPI application.
"""

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from app.core.config import get_settings
from app.core.database import async_session_factory
from app.core.errors import register_error_handlers
from app.core.logging import configure_logging
from app.core.middleware import CSRFMiddleware, SecurityHeadersMiddleware
from app.core.notifications import ConnectionManager
from app.core.redis import close_redis, ping_redis
from app.api.v1 import router as api_v1_router
from app.api.v1.auth import router as auth_router
from app.api.v1.ws import router as ws_router
from app.services.classifiers import build_classifier
from app.services.moderation import ArqModerationQueue, LocalModerationQueue, ModerationWorkflow

settings = get_settings()
log = structlog.get_logger()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="VideoConnect",
        description="Video sharing with group and organization access control.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    register_error_handlers(app)

    # Middleware, outermost first
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(CSRFMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-CSRF-Token", "Range"],
        expose_headers=["Content-Range", "Accept-Ranges", "Content-Length"],
    )

    # Real-time rooms and the in-process moderation queue. The ARQ queue needs
    # a Redis pool and replaces the local one at startup. The ARQ worker only
    # reaches sockets through Redis, so that backend implies fan-out.
    connections = ConnectionManager(
        redis_fanout=settings.notifications_redis_fanout or settings.moderation_backend == "arq"
    )
    app.state.connections = connections
    app.state.notifier = connections
    app.state.moderation_queue = LocalModerationQueue(
        ModerationWorkflow(
            classifier=build_classifier(settings),
            notifier=connections,
            session_factory=async_session_factory,
            timeout_seconds=settings.moderation_timeout_seconds,
        )
    )

    # Auth routes
    app.include_router(auth_router, prefix="/auth", tags=["Authentication"])

    # API routes
    app.include_router(api_v1_router, prefix="/api/v1")

    # Notifications
    app.include_router(ws_router, tags=["Notifications"])

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check endpoint for startup probes."""
        async with async_session_factory() as session:
            await session.execute(text("SELECT 1"))
        if connections.redis_fanout:
            await ping_redis()
        return {"status": "ready"}

    @app.on_event("startup")
    async def on_startup():
        log.info(
            "VideoConnect starting",
            moderation_backend=settings.moderation_backend,
            group_role_policy=settings.group_role_policy,
        )
        if settings.moderation_backend == "arq":
            app.state.moderation_queue = await ArqModerationQueue.create(settings)
        await connections.start()

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("VideoConnect shutting down")
        await connections.stop()
        queue = app.state.moderation_queue
        if isinstance(queue, ArqModerationQueue):
            await queue.close()
        elif isinstance(queue, LocalModerationQueue):
            await queue.drain()
        await close_redis()

    return app


app = create_app()
