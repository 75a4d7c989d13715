"""Group model and the membership join table.

`group_memberships` is the single source of truth for both a group's member
set and a user's group set.
"""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin, utcnow


class Group(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "groups"

    name: str = Field(nullable=False, index=True)
    description: Optional[str] = None
    created_by: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)


class GroupMembership(SQLModel, table=True):
    __tablename__ = "group_memberships"

    group_id: uuid.UUID = Field(foreign_key="groups.id", primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", primary_key=True, index=True)
    added_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
