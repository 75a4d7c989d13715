"""
Access policy for videos.

Resolves the effective role a requester holds on a video from ownership,
group grants and the organization grant. Resolution is pure: callers load
the requester's memberships first (`load_requester`) and pass snapshots in.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.group import GroupMembership
from app.models.user import User
from app.models.video import Video, VideoGroupAccess
from videoconnect_shared.schemas.common import EDIT_ROLES, ROLE_RANK, Role


class GroupRolePolicy(str, Enum):
    FIRST_MATCH = "first_match"
    HIGHEST_PRIVILEGE = "highest_privilege"


@dataclass(frozen=True)
class GroupGrant:
    group_id: uuid.UUID
    role: Role


@dataclass(frozen=True)
class VideoAccessView:
    """Snapshot of the sharing configuration of one video."""

    owner_id: uuid.UUID
    org_access_enabled: bool = False
    org_access_role: Role = Role.VIEWER
    group_access: Sequence[GroupGrant] = ()


@dataclass(frozen=True)
class Requester:
    """Snapshot of the caller's identity and memberships."""

    user_id: uuid.UUID
    organization_id: Optional[uuid.UUID] = None
    group_ids: frozenset[uuid.UUID] = field(default_factory=frozenset)


def resolve_role(
    video: VideoAccessView,
    requester: Requester,
    policy: GroupRolePolicy = GroupRolePolicy.FIRST_MATCH,
) -> Optional[Role]:
    """Effective role of `requester` on `video`, or None for no access.

    Order: ownership, then group grants in stored order, then the
    organization grant.
    """
    if requester.user_id == video.owner_id:
        return Role.ADMIN

    matches = [g.role for g in video.group_access if g.group_id in requester.group_ids]
    if matches:
        if policy == GroupRolePolicy.HIGHEST_PRIVILEGE:
            return max(matches, key=ROLE_RANK.__getitem__)
        return matches[0]

    if requester.organization_id is not None and video.org_access_enabled:
        return video.org_access_role

    return None


def has_access(role: Optional[Role]) -> bool:
    return role is not None


def can_edit(role: Optional[Role]) -> bool:
    return role in EDIT_ROLES


def can_delete(video: VideoAccessView, requester: Requester) -> bool:
    # Ownership only; a granted admin role never authorizes deletion.
    return requester.user_id == video.owner_id


# ---------------------------------------------------------------------------
# Snapshot loaders
# ---------------------------------------------------------------------------

async def load_requester(user: User, session: AsyncSession) -> Requester:
    """Build a Requester from the user's current group memberships."""
    result = await session.execute(
        select(GroupMembership.group_id).where(GroupMembership.user_id == user.id)
    )
    return Requester(
        user_id=user.id,
        organization_id=user.organization_id,
        group_ids=frozenset(result.scalars().all()),
    )


def build_access_view(video: Video, grants: Sequence[VideoGroupAccess]) -> VideoAccessView:
    ordered = sorted(grants, key=lambda g: g.position)
    return VideoAccessView(
        owner_id=video.owner_id,
        org_access_enabled=video.org_access_enabled,
        org_access_role=Role(video.org_access_role),
        group_access=tuple(GroupGrant(g.group_id, Role(g.role)) for g in ordered),
    )


async def load_access_view(video: Video, session: AsyncSession) -> VideoAccessView:
    result = await session.execute(
        select(VideoGroupAccess)
        .where(VideoGroupAccess.video_id == video.id)
        .order_by(VideoGroupAccess.position)
    )
    return build_access_view(video, result.scalars().all())
