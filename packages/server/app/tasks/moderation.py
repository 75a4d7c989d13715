"""
ARQ background task: moderate an uploaded video.

Enqueued by `ArqModerationQueue` with job id `moderation:<video_id>`. Events
are published through Redis so the API process holding the owner's sockets
delivers them.
"""

from __future__ import annotations

import structlog
from arq.connections import RedisSettings

from app.core.config import get_settings
from app.core.database import async_session_factory
from app.core.logging import configure_logging
from app.core.notifications import ConnectionManager
from app.core.redis import close_redis
from app.services.classifiers import build_classifier
from app.services.moderation import ModerationJob, ModerationWorkflow

log = structlog.get_logger()
settings = get_settings()


async def startup(ctx: dict) -> None:
    configure_logging(settings.log_level, settings.log_format)
    ctx["workflow"] = ModerationWorkflow(
        classifier=build_classifier(settings),
        notifier=ConnectionManager(redis_fanout=True),
        session_factory=async_session_factory,
        timeout_seconds=settings.moderation_timeout_seconds,
    )
    log.info("moderation_worker.started")


async def shutdown(ctx: dict) -> None:
    await close_redis()


async def run_moderation(ctx: dict, job: dict) -> str | None:
    """Run one moderation job. Returns the resulting status, or None if skipped."""
    result = await ctx["workflow"].run(ModerationJob.from_dict(job))
    return result.status.value if result else None


# ARQ worker settings
class WorkerSettings:
    """ARQ worker configuration."""

    functions = [run_moderation]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    # Classifier timeout plus headroom for the status write
    job_timeout = int(settings.moderation_timeout_seconds) + 30
    max_tries = 1
