"""
Video catalog — upload, library listing, metadata updates, deletion and
range streaming. Every read and write is gated by the access policy.
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field
from typing import Optional, Sequence

import sqlalchemy as sa
import structlog
from sqlalchemy import delete, func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.access import (
    GroupRolePolicy,
    build_access_view,
    can_delete,
    can_edit,
    load_access_view,
    load_requester,
    resolve_role,
)
from app.core.config import get_settings
from app.core.errors import AuthorizationError, NotFoundError, StorageError, ValidationError
from app.core.notifications import NotificationChannel
from app.core.storage import LocalFileStorage, StoredFile, StreamRange
from app.models.group import Group
from app.models.user import User
from app.models.video import Video, VideoGroupAccess
from app.services.moderation import ModerationJob, ModerationQueue
from videoconnect_shared.schemas.common import AccountKind, Pagination, Role, VideoStatus
from videoconnect_shared.schemas.identity import UserSummary
from videoconnect_shared.schemas.notifications import (
    EventName,
    SensitivityResultPayload,
    UploadCompletePayload,
)
from videoconnect_shared.schemas.videos import (
    GroupAccessRead,
    LibraryFilter,
    OrganizationAccess,
    VideoMetadata,
    VideoRead,
    VideoUpdate,
)

log = structlog.get_logger()


def _policy() -> GroupRolePolicy:
    return GroupRolePolicy(get_settings().group_role_policy)


def ensure_video_media_type(content_type: Optional[str]) -> str:
    """Only `video/*` uploads are accepted."""
    if not content_type or not content_type.lower().startswith("video/"):
        raise ValidationError("Only video files are allowed")
    return content_type


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

async def to_video_reads(videos: Sequence[Video], session: AsyncSession) -> list[VideoRead]:
    """Serialize videos, batch-loading owners, grants and group names."""
    if not videos:
        return []
    video_ids = [v.id for v in videos]
    owner_ids = {v.owner_id for v in videos}

    owners_result = await session.execute(select(User).where(User.id.in_(list(owner_ids))))
    owners = {u.id: u for u in owners_result.scalars().all()}

    grants_result = await session.execute(
        select(VideoGroupAccess, Group.name)
        .join(Group, Group.id == VideoGroupAccess.group_id, isouter=True)
        .where(VideoGroupAccess.video_id.in_(video_ids))
        .order_by(VideoGroupAccess.video_id, VideoGroupAccess.position)
    )
    grants: dict[uuid.UUID, list[GroupAccessRead]] = {}
    for grant, group_name in grants_result.all():
        grants.setdefault(grant.video_id, []).append(
            GroupAccessRead(group=grant.group_id, group_name=group_name, role=Role(grant.role))
        )

    return [
        VideoRead(
            id=v.id,
            name=v.name,
            description=v.description,
            tags=list(v.tags or []),
            video_type=v.video_type,
            file_size=v.file_size,
            status=VideoStatus(v.status),
            owner=UserSummary.model_validate(owners[v.owner_id]),
            owner_kind=AccountKind(v.owner_kind),
            organization_access=OrganizationAccess(
                enabled=v.org_access_enabled, role=Role(v.org_access_role)
            ),
            group_access=grants.get(v.id, []),
            created_at=v.created_at,
            updated_at=v.updated_at,
        )
        for v in videos
    ]


async def to_video_read(video: Video, session: AsyncSession) -> VideoRead:
    return (await to_video_reads([video], session))[0]


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------

async def _validate_group_access(metadata: VideoMetadata, session: AsyncSession) -> None:
    group_ids = [entry.group for entry in metadata.group_access]
    if len(set(group_ids)) != len(group_ids):
        raise ValidationError("A group may appear only once in group access")
    if not group_ids:
        return
    result = await session.execute(select(Group.id).where(Group.id.in_(group_ids)))
    missing = set(group_ids) - set(result.scalars().all())
    if missing:
        raise ValidationError(
            f"Unknown group id(s): {', '.join(sorted(str(m) for m in missing))}"
        )


async def upload_video(
    owner: User,
    stored: StoredFile,
    metadata: VideoMetadata,
    session: AsyncSession,
    queue: ModerationQueue,
    notifier: NotificationChannel,
    storage: LocalFileStorage,
) -> Video:
    """Persist an uploaded video as `processing` and hand it to moderation.

    Returns as soon as the job is queued; the verdict arrives later as a
    `sensitivity:result` event. The stored file is removed only when no row
    was committed for it. Once the row exists a failing notifier or queue
    never fails the upload; a job that cannot be queued fails open to `safe`.
    """
    try:
        video = await _create_video(owner, stored, metadata, session)
    except Exception:
        await storage.delete(stored.file_path)
        raise

    await _notify(
        notifier,
        owner.id,
        EventName.UPLOAD_COMPLETE,
        UploadCompletePayload(videoId=str(video.id)).model_dump(mode="json"),
    )
    job = ModerationJob(video_id=video.id, file_path=video.file_path, owner_id=owner.id)
    try:
        await queue.enqueue(job)
    except Exception as e:
        log.exception("moderation.enqueue_failed", video_id=str(video.id))
        await _fail_open(video, str(e) or type(e).__name__, session, notifier)
    return video


async def _create_video(
    owner: User, stored: StoredFile, metadata: VideoMetadata, session: AsyncSession
) -> Video:
    ensure_video_media_type(stored.content_type)
    await _validate_group_access(metadata, session)

    video = Video(
        filename=stored.filename,
        file_path=stored.file_path,
        video_type=stored.content_type,
        file_size=stored.size,
        name=metadata.name,
        description=metadata.description or "",
        tags=metadata.tags,
        status=VideoStatus.PROCESSING.value,
        owner_id=owner.id,
        owner_kind=AccountKind.USER.value,
        org_access_enabled=metadata.organization_access.enabled,
        org_access_role=metadata.organization_access.role.value,
    )
    session.add(video)
    await session.flush()
    for position, entry in enumerate(metadata.group_access):
        session.add(
            VideoGroupAccess(
                video_id=video.id,
                group_id=entry.group,
                role=entry.role.value,
                position=position,
            )
        )
    # The moderation job reads the row from another session
    await session.commit()

    log.info("video.uploaded", video_id=str(video.id), owner_id=str(owner.id), size=stored.size)
    return video


async def _notify(
    notifier: NotificationChannel, owner_id: uuid.UUID, event: EventName, payload: dict
) -> None:
    try:
        await notifier.emit(owner_id, event.value, payload)
    except Exception:
        log.exception("video.notify_failed", event=event.value, owner_id=str(owner_id))


async def _fail_open(
    video: Video, error: str, session: AsyncSession, notifier: NotificationChannel
) -> None:
    """Mark a video that never reached moderation as safe and tell the owner,
    the same outcome as a failed classifier run."""
    await session.execute(
        update(Video)
        .where(Video.id == video.id, Video.status == VideoStatus.PROCESSING.value)
        .values(status=VideoStatus.SAFE.value)
    )
    await session.commit()
    await session.refresh(video)
    log.warning("moderation.failed_open", video_id=str(video.id), error=error)

    await _notify(
        notifier,
        video.owner_id,
        EventName.SENSITIVITY_RESULT,
        SensitivityResultPayload(videoId=str(video.id), status=VideoStatus.SAFE, error=error)
        .model_dump(mode="json", exclude_none=True),
    )


# ---------------------------------------------------------------------------
# Library
# ---------------------------------------------------------------------------

async def list_videos(
    user: User,
    library_filter: LibraryFilter,
    page: int,
    limit: int,
    session: AsyncSession,
) -> tuple[list[Video], Pagination]:
    """One page of the videos visible to `user`, newest first."""
    settings = get_settings()
    if page < 1:
        raise ValidationError("page must be a positive integer")
    if limit < 1 or limit > settings.max_page_size:
        raise ValidationError(f"limit must be between 1 and {settings.max_page_size}")

    requester = await load_requester(user, session)

    group_match = sa.exists(
        select(VideoGroupAccess.video_id).where(
            VideoGroupAccess.video_id == Video.id,
            VideoGroupAccess.group_id.in_(list(requester.group_ids)),
        )
    )
    org_match = (
        Video.org_access_enabled.is_(True)
        if requester.organization_id is not None
        else sa.false()
    )
    is_owner = Video.owner_id == requester.user_id

    if library_filter == LibraryFilter.MINE:
        condition = is_owner
    elif library_filter == LibraryFilter.SHARED:
        condition = sa.and_(Video.owner_id != requester.user_id, sa.or_(group_match, org_match))
    else:
        condition = sa.or_(is_owner, group_match, org_match)

    total = (
        await session.execute(select(func.count()).select_from(Video).where(condition))
    ).scalar_one()
    result = await session.execute(
        select(Video)
        .where(condition)
        .order_by(Video.created_at.desc(), Video.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    videos = list(result.scalars().all())

    pagination = Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit))
    return videos, pagination


# ---------------------------------------------------------------------------
# Single video
# ---------------------------------------------------------------------------

async def _get_video_or_404(video_id: uuid.UUID, session: AsyncSession) -> Video:
    video = await session.get(Video, video_id)
    if not video:
        raise NotFoundError("Video not found")
    return video


async def get_video(
    video_id: uuid.UUID, user: User, session: AsyncSession
) -> tuple[Video, Role]:
    """Fetch a video and the caller's effective role on it."""
    video = await _get_video_or_404(video_id, session)
    requester = await load_requester(user, session)
    role = resolve_role(await load_access_view(video, session), requester, _policy())
    if role is None:
        raise AuthorizationError("Access denied")
    return video, role


async def update_video(
    video_id: uuid.UUID, user: User, patch: VideoUpdate, session: AsyncSession
) -> Video:
    video, role = await get_video(video_id, user, session)
    if not can_edit(role):
        raise AuthorizationError("Editor or admin role required to update this video")

    changes = {k: v for k, v in patch.model_dump(exclude_unset=True).items() if v is not None}
    if changes:
        await session.execute(update(Video).where(Video.id == video.id).values(**changes))
        await session.flush()
        await session.refresh(video)

    log.info("video.updated", video_id=str(video.id), user_id=str(user.id), fields=sorted(changes))
    return video


async def delete_video(
    video_id: uuid.UUID, user: User, session: AsyncSession, storage: LocalFileStorage
) -> bool:
    """Delete a video. Only the owner may delete, whatever roles are granted.

    The record is removed and committed before the file. Returns whether the
    backing file was removed too.
    """
    video = await _get_video_or_404(video_id, session)
    requester = await load_requester(user, session)
    if not can_delete(build_access_view(video, ()), requester):
        raise AuthorizationError("Only the video owner can delete this video")

    file_path = video.file_path
    await session.execute(delete(VideoGroupAccess).where(VideoGroupAccess.video_id == video.id))
    await session.delete(video)
    await session.commit()
    log.info("video.deleted", video_id=str(video_id), user_id=str(user.id))

    try:
        await storage.delete(file_path)
    except StorageError as e:
        log.error("video.file_delete_failed", video_id=str(video_id), error=e.detail)
        return False
    return True


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class VideoStream:
    file_path: str
    media_type: str
    status_code: int
    start: int
    length: int
    headers: dict[str, str] = field(default_factory=dict)


async def open_stream(
    video_id: uuid.UUID,
    user: User,
    range_header: Optional[str],
    session: AsyncSession,
    storage: LocalFileStorage,
) -> VideoStream:
    video, _role = await get_video(video_id, user, session)
    file_size = await storage.size(video.file_path)

    headers = {"Accept-Ranges": "bytes"}
    if range_header:
        byte_range = StreamRange.from_header(range_header, file_size)
        headers["Content-Range"] = byte_range.content_range(file_size)
        headers["Content-Length"] = str(byte_range.length)
        return VideoStream(
            file_path=video.file_path,
            media_type=video.video_type,
            status_code=206,
            start=byte_range.start,
            length=byte_range.length,
            headers=headers,
        )

    headers["Content-Length"] = str(file_size)
    return VideoStream(
        file_path=video.file_path,
        media_type=video.video_type,
        status_code=200,
        start=0,
        length=file_size,
        headers=headers,
    )
