"""Video metadata and per-group sharing grants."""

from typing import List, Optional
import uuid

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Video(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "videos"

    filename: str = Field(nullable=False)
    file_path: str = Field(nullable=False)
    video_type: str = Field(nullable=False)  # declared media type, e.g. video/mp4
    file_size: Optional[int] = Field(default=None, sa_type=sa.BigInteger)
    name: str = Field(nullable=False, index=True)
    description: str = Field(default="", nullable=False)
    tags: List[str] = Field(
        default_factory=list,
        sa_type=sa.JSON().with_variant(postgresql.JSONB(), "postgresql"),
        nullable=False,
    )
    status: str = Field(default="processing", nullable=False, index=True)  # processing | safe | flagged
    owner_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    owner_kind: str = Field(default="user", nullable=False)  # user | organization
    org_access_enabled: bool = Field(default=False, nullable=False)
    org_access_role: str = Field(default="viewer", nullable=False)  # viewer | editor | admin


class VideoGroupAccess(SQLModel, table=True):
    __tablename__ = "video_group_access"

    video_id: uuid.UUID = Field(foreign_key="videos.id", primary_key=True)
    group_id: uuid.UUID = Field(foreign_key="groups.id", primary_key=True, index=True)
    role: str = Field(nullable=False, default="viewer")  # viewer | editor | admin
    position: int = Field(nullable=False, default=0)  # stored order of the access list
