"""Video schemas: sharing configuration, metadata CRUD, library listing."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, UUID4, field_validator

from .common import AccountKind, Pagination, Role, VideoStatus
from .identity import UserSummary


class LibraryFilter(str, Enum):
    ALL = "all"
    MINE = "mine"
    SHARED = "shared"


# ---------------------------------------------------------------------------
# Sharing configuration
# ---------------------------------------------------------------------------

class OrganizationAccess(BaseModel):
    enabled: bool = False
    role: Role = Role.VIEWER


class GroupAccessEntry(BaseModel):
    group: UUID4
    role: Role = Role.VIEWER


def parse_tags(value: object) -> list[str]:
    """Accept a list of tags or a comma-separated string."""
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = list(value)
    return [str(t).strip() for t in items if str(t).strip()]


class VideoMetadata(BaseModel):
    """Metadata sent alongside an upload."""
    name: str = Field(..., min_length=1, max_length=300)
    description: str = ""
    tags: List[str] = Field(default_factory=list)
    organization_access: OrganizationAccess = Field(default_factory=OrganizationAccess)
    group_access: List[GroupAccessEntry] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Video name is required")
        return v

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, v: object) -> list[str]:
        return parse_tags(v)


class VideoUpdate(BaseModel):
    """Partial update. Only fields that are sent overwrite the stored value."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=300)
    description: Optional[str] = None
    tags: Optional[List[str]] = None

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, v: object) -> Optional[list[str]]:
        if v is None:
            return None
        return parse_tags(v)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class GroupAccessRead(BaseModel):
    group: UUID4
    group_name: Optional[str] = None
    role: Role


class VideoRead(BaseModel):
    id: UUID4
    name: str
    description: str = ""
    tags: List[str] = Field(default_factory=list)
    video_type: str
    file_size: Optional[int] = None
    status: VideoStatus
    owner: UserSummary
    owner_kind: AccountKind = AccountKind.USER
    organization_access: OrganizationAccess
    group_access: List[GroupAccessRead] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class VideoDetailResponse(BaseModel):
    video: VideoRead
    user_role: Role


class VideoListResponse(BaseModel):
    videos: List[VideoRead]
    pagination: Pagination


class VideoUploadResponse(BaseModel):
    message: str
    id: UUID4
    name: str
    status: VideoStatus


class VideoDeleteResponse(BaseModel):
    message: str
    file_removed: bool
