"""
Moderation workflow: drives a video from `processing` to `safe` or `flagged`.

A run emits `sensitivity:checking`, asks the classifier for a verdict under a
timeout, persists the status with a conditional update and, only if that
update matched, emits `sensitivity:result`. Classifier failures fail open to
`safe` with an `error` annotation.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

import structlog
from arq import create_pool
from arq.connections import RedisSettings
from fastapi import Request
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings
from app.core.notifications import NotificationChannel
from app.models.video import Video
from app.services.classifiers import ModerationClassifier
from videoconnect_shared.schemas.common import VIDEO_TRANSITIONS, VideoStatus
from videoconnect_shared.schemas.notifications import (
    EventName,
    SensitivityCheckingPayload,
    SensitivityResultPayload,
)

log = structlog.get_logger()


@dataclass(frozen=True)
class ModerationJob:
    video_id: uuid.UUID
    file_path: str
    owner_id: uuid.UUID

    def to_dict(self) -> dict[str, str]:
        return {
            "video_id": str(self.video_id),
            "file_path": self.file_path,
            "owner_id": str(self.owner_id),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ModerationJob":
        return cls(
            video_id=uuid.UUID(str(data["video_id"])),
            file_path=data["file_path"],
            owner_id=uuid.UUID(str(data["owner_id"])),
        )


class ModerationWorkflow:
    def __init__(
        self,
        classifier: ModerationClassifier,
        notifier: NotificationChannel,
        session_factory: Callable[[], AsyncSession],
        timeout_seconds: float = 120.0,
    ):
        self.classifier = classifier
        self.notifier = notifier
        self.session_factory = session_factory
        self.timeout_seconds = timeout_seconds

    async def run(self, job: ModerationJob) -> Optional[SensitivityResultPayload]:
        """Moderate one upload. Returns the emitted result, or None when the
        video was no longer awaiting moderation."""
        video_id = str(job.video_id)
        log.info("moderation.started", video_id=video_id)

        await self._notify(
            job.owner_id,
            EventName.SENSITIVITY_CHECKING,
            SensitivityCheckingPayload(videoId=video_id).model_dump(mode="json"),
        )

        error: Optional[str] = None
        confidence: Optional[int] = None
        labels: list[str] = []
        try:
            verdict = await asyncio.wait_for(
                self.classifier.analyze(job.file_path), timeout=self.timeout_seconds
            )
            status = VideoStatus.SAFE if verdict.is_safe else VideoStatus.FLAGGED
            confidence = verdict.confidence
            labels = list(verdict.labels)
        except asyncio.TimeoutError:
            status = VideoStatus.SAFE
            error = f"Moderation timed out after {self.timeout_seconds:g}s"
        except Exception as e:
            status = VideoStatus.SAFE
            error = str(e) or type(e).__name__

        if error is not None:
            log.warning("moderation.failed_open", video_id=video_id, error=error)

        if status not in VIDEO_TRANSITIONS[VideoStatus.PROCESSING]:
            raise ValueError(f"Invalid moderation outcome: {status}")

        async with self.session_factory() as session:
            result = await session.execute(
                update(Video)
                .where(Video.id == job.video_id, Video.status == VideoStatus.PROCESSING.value)
                .values(status=status.value)
            )
            await session.commit()

        if result.rowcount == 0:
            # Deleted, or already moderated by an earlier run
            log.info("moderation.skipped", video_id=video_id)
            return None

        payload = SensitivityResultPayload(
            videoId=video_id,
            status=status,
            confidence=confidence,
            labels=labels,
            error=error,
        )
        await self._notify(
            job.owner_id,
            EventName.SENSITIVITY_RESULT,
            payload.model_dump(mode="json", exclude_none=True),
        )
        log.info(
            "moderation.completed",
            video_id=video_id,
            status=status.value,
            confidence=confidence,
        )
        return payload

    async def _notify(self, owner_id: uuid.UUID, event: EventName, payload: dict) -> None:
        # A lost notification must not undo a committed status
        try:
            await self.notifier.emit(owner_id, event.value, payload)
        except Exception:
            log.exception("moderation.notify_failed", event=event.value, owner_id=str(owner_id))


# ---------------------------------------------------------------------------
# Job queues
# ---------------------------------------------------------------------------

class ModerationQueue(Protocol):
    async def enqueue(self, job: ModerationJob) -> None:
        ...


class LocalModerationQueue:
    """Runs each job as a detached task on the current event loop."""

    def __init__(self, workflow: ModerationWorkflow):
        self.workflow = workflow
        self._tasks: set[asyncio.Task] = set()

    async def enqueue(self, job: ModerationJob) -> None:
        task = asyncio.create_task(self.workflow.run(job))
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            log.error("moderation.task_failed", exc_info=task.exception())

    async def drain(self) -> None:
        """Wait for every pending job, including ones enqueued meanwhile."""
        while self._tasks:
            pending = list(self._tasks)
            await asyncio.gather(*pending, return_exceptions=True)
            self._tasks.difference_update(pending)


class ArqModerationQueue:
    """Hands jobs to the ARQ worker (`app.tasks.moderation`)."""

    def __init__(self, pool):
        self.pool = pool

    @classmethod
    async def create(cls, settings: Settings) -> "ArqModerationQueue":
        pool = await create_pool(RedisSettings.from_dsn(settings.redis_url))
        return cls(pool)

    async def enqueue(self, job: ModerationJob) -> None:
        # One job per upload; ARQ ignores a duplicate job id
        await self.pool.enqueue_job(
            "run_moderation", job.to_dict(), _job_id=f"moderation:{job.video_id}"
        )

    async def close(self) -> None:
        await self.pool.close()


def get_moderation_queue(request: Request) -> ModerationQueue:
    """FastAPI dependency for the app's moderation queue."""
    return request.app.state.moderation_queue
