from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel


class Role(str, Enum):
    VIEWER = "viewer"
    EDITOR = "editor"
    ADMIN = "admin"


# Privilege order for sharing roles
ROLE_RANK: dict["Role", int] = {
    Role.VIEWER: 0,
    Role.EDITOR: 1,
    Role.ADMIN: 2,
}

EDIT_ROLES = frozenset({Role.EDITOR, Role.ADMIN})


class VideoStatus(str, Enum):
    PROCESSING = "processing"
    SAFE = "safe"
    FLAGGED = "flagged"


# Valid status transitions; safe and flagged are terminal
VIDEO_TRANSITIONS: dict["VideoStatus", list["VideoStatus"]] = {
    VideoStatus.PROCESSING: [VideoStatus.SAFE, VideoStatus.FLAGGED],
    VideoStatus.SAFE: [],
    VideoStatus.FLAGGED: [],
}


class AccountKind(str, Enum):
    USER = "user"
    ORGANIZATION = "organization"


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class APIResponse(BaseModel):
    message: Optional[str] = None
    data: Optional[Any] = None
