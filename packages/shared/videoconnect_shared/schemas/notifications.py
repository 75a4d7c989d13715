"""Real-time event names and payloads pushed to per-identity rooms."""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from .common import VideoStatus


class EventName(str, Enum):
    UPLOAD_COMPLETE = "upload:complete"
    UPLOAD_PROGRESS = "upload:progress"
    SENSITIVITY_CHECKING = "sensitivity:checking"
    SENSITIVITY_RESULT = "sensitivity:result"


class UploadCompletePayload(BaseModel):
    videoId: str
    status: VideoStatus = VideoStatus.PROCESSING


class UploadProgressPayload(BaseModel):
    videoId: str
    progress: float = Field(..., ge=0, le=100)


class SensitivityCheckingPayload(BaseModel):
    videoId: str
    status: VideoStatus = VideoStatus.PROCESSING


class SensitivityResultPayload(BaseModel):
    videoId: str
    status: VideoStatus
    confidence: Optional[int] = None
    labels: List[str] = Field(default_factory=list)
    error: Optional[str] = None
