"""Group schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, UUID4

from .identity import UserSummary


class GroupCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    user_ids: List[UUID4] = Field(default_factory=list)


class GroupUpdate(BaseModel):
    """Partial update. `description=""` clears the description; omitting it keeps it."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    user_ids: Optional[List[UUID4]] = None


class GroupRead(BaseModel):
    id: UUID4
    name: str
    description: Optional[str] = None
    created_by: UserSummary
    users: List[UserSummary] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class GroupListResponse(BaseModel):
    groups: List[GroupRead]
