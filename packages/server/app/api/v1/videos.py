"""
Video API endpoints.

POST   /api/v1/videos                  — Upload (multipart), moderation runs in background
GET    /api/v1/videos                  — Library: ?filter=all|mine|shared&page=&limit=
GET    /api/v1/videos/{videoId}        — Video details and the caller's role
PATCH  /api/v1/videos/{videoId}        — Update name, description, tags (editor/admin)
DELETE /api/v1/videos/{videoId}        — Delete (owner only)
GET    /api/v1/videos/{videoId}/stream — Byte-range streaming
"""

from __future__ import annotations

import json
import uuid
from typing import Optional

import pydantic
from fastapi import APIRouter, Depends, File, Form, Header, Query, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import require_user
from app.core.config import get_settings
from app.core.database import get_session
from app.core.errors import ValidationError
from app.core.notifications import NotificationChannel, get_notifier
from app.core.storage import LocalFileStorage, get_storage
from app.models.user import User
from app.services import videos as video_service
from app.services.moderation import ModerationQueue, get_moderation_queue
from videoconnect_shared.schemas.videos import (
    LibraryFilter,
    VideoDeleteResponse,
    VideoDetailResponse,
    VideoListResponse,
    VideoMetadata,
    VideoRead,
    VideoUpdate,
    VideoUploadResponse,
)

router = APIRouter()
settings = get_settings()


def _parse_json_field(raw: Optional[str], field: str):
    if raw is None or raw == "":
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        raise ValidationError(f"{field} must be valid JSON")


def _parse_tags_field(raw: Optional[str]):
    # Either a JSON list or a comma-separated string
    if raw and raw.lstrip().startswith("["):
        return _parse_json_field(raw, "tags")
    return raw


@router.post("", response_model=VideoUploadResponse, status_code=201)
async def upload_video(
    file: UploadFile = File(...),
    name: str = Form(...),
    description: str = Form(""),
    tags: Optional[str] = Form(None),
    organization_access: Optional[str] = Form(None),
    group_access: Optional[str] = Form(None),
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
    storage: LocalFileStorage = Depends(get_storage),
    queue: ModerationQueue = Depends(get_moderation_queue),
    notifier: NotificationChannel = Depends(get_notifier),
):
    """Store the file and return while moderation is still running."""
    video_service.ensure_video_media_type(file.content_type)

    fields = {
        "name": name,
        "description": description,
        "tags": _parse_tags_field(tags),
        "organization_access": _parse_json_field(organization_access, "organization_access"),
        "group_access": _parse_json_field(group_access, "group_access"),
    }
    try:
        metadata = VideoMetadata.model_validate({k: v for k, v in fields.items() if v is not None})
    except pydantic.ValidationError as e:
        raise ValidationError("; ".join(err["msg"] for err in e.errors()))

    stored = await storage.save(file)
    video = await video_service.upload_video(
        user, stored, metadata, session, queue, notifier, storage
    )

    return VideoUploadResponse(
        message="Video uploaded successfully",
        id=video.id,
        name=video.name,
        status=video.status,
    )


@router.get("", response_model=VideoListResponse)
async def list_videos(
    filter: LibraryFilter = Query(LibraryFilter.ALL),
    page: int = Query(1),
    limit: int = Query(settings.default_page_size),
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    videos, pagination = await video_service.list_videos(user, filter, page, limit, session)
    return VideoListResponse(
        videos=await video_service.to_video_reads(videos, session),
        pagination=pagination,
    )


@router.get("/{videoId}", response_model=VideoDetailResponse)
async def get_video(
    videoId: uuid.UUID,
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    video, role = await video_service.get_video(videoId, user, session)
    return VideoDetailResponse(
        video=await video_service.to_video_read(video, session),
        user_role=role,
    )


@router.patch("/{videoId}", response_model=VideoRead)
async def update_video(
    videoId: uuid.UUID,
    body: VideoUpdate,
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    video = await video_service.update_video(videoId, user, body, session)
    return await video_service.to_video_read(video, session)


@router.delete("/{videoId}", response_model=VideoDeleteResponse)
async def delete_video(
    videoId: uuid.UUID,
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
    storage: LocalFileStorage = Depends(get_storage),
):
    file_removed = await video_service.delete_video(videoId, user, session, storage)
    return VideoDeleteResponse(message="Video deleted successfully", file_removed=file_removed)


@router.get("/{videoId}/stream")
async def stream_video(
    videoId: uuid.UUID,
    range: Optional[str] = Header(None),
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
    storage: LocalFileStorage = Depends(get_storage),
):
    stream = await video_service.open_stream(videoId, user, range, session, storage)
    return StreamingResponse(
        storage.iter_range(stream.file_path, stream.start, stream.length),
        status_code=stream.status_code,
        headers=stream.headers,
        media_type=stream.media_type,
    )
