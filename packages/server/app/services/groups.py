"""
Group registry: named member sets with an immutable creator.

Membership lives only in `group_memberships`, so a group's member set and a
user's group set are the same rows read from either side.
"""

from __future__ import annotations

import uuid
from typing import Iterable

import structlog
from sqlalchemy import delete, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from app.models.base import utcnow
from app.models.group import Group, GroupMembership
from app.models.user import User
from app.models.video import VideoGroupAccess
from videoconnect_shared.schemas.groups import GroupCreate, GroupRead, GroupUpdate
from videoconnect_shared.schemas.identity import UserSummary

log = structlog.get_logger()


async def _require_users_exist(user_ids: Iterable[uuid.UUID], session: AsyncSession) -> None:
    wanted = set(user_ids)
    if not wanted:
        return
    result = await session.execute(select(User.id).where(User.id.in_(list(wanted))))
    missing = wanted - set(result.scalars().all())
    if missing:
        raise ValidationError(f"Unknown user id(s): {', '.join(sorted(str(m) for m in missing))}")


async def get_member_ids(group_id: uuid.UUID, session: AsyncSession) -> set[uuid.UUID]:
    result = await session.execute(
        select(GroupMembership.user_id).where(GroupMembership.group_id == group_id)
    )
    return set(result.scalars().all())


async def to_group_read(group: Group, session: AsyncSession) -> GroupRead:
    creator = await session.get(User, group.created_by)
    result = await session.execute(
        select(User)
        .join(GroupMembership, GroupMembership.user_id == User.id)
        .where(GroupMembership.group_id == group.id)
        .order_by(GroupMembership.added_at, User.name)
    )
    return GroupRead(
        id=group.id,
        name=group.name,
        description=group.description,
        created_by=UserSummary.model_validate(creator),
        users=[UserSummary.model_validate(u) for u in result.scalars().all()],
        created_at=group.created_at,
        updated_at=group.updated_at,
    )


async def _get_group_or_404(group_id: uuid.UUID, session: AsyncSession) -> Group:
    group = await session.get(Group, group_id)
    if not group:
        raise NotFoundError("Group not found")
    return group


async def create_group(req: GroupCreate, creator: User, session: AsyncSession) -> Group:
    """Create a group; the creator is always among the initial members."""
    members = set(req.user_ids)
    await _require_users_exist(members, session)
    members.add(creator.id)

    group = Group(name=req.name.strip(), description=req.description, created_by=creator.id)
    session.add(group)
    await session.flush()

    for user_id in members:
        session.add(GroupMembership(group_id=group.id, user_id=user_id))
    await session.flush()

    log.info("group.created", group_id=str(group.id), creator_id=str(creator.id), members=len(members))
    return group


async def list_groups(user: User, session: AsyncSession) -> list[Group]:
    """Groups the user is a member of or created, newest first."""
    member_of = select(GroupMembership.group_id).where(GroupMembership.user_id == user.id)
    result = await session.execute(
        select(Group)
        .where(or_(Group.id.in_(member_of), Group.created_by == user.id))
        .order_by(Group.created_at.desc(), Group.id)
    )
    return list(result.scalars().all())


async def get_group(group_id: uuid.UUID, user: User, session: AsyncSession) -> Group:
    group = await _get_group_or_404(group_id, session)
    if group.created_by != user.id and user.id not in await get_member_ids(group.id, session):
        raise AuthorizationError("Access denied")
    return group


async def update_group(
    group_id: uuid.UUID, patch: GroupUpdate, caller: User, session: AsyncSession
) -> Group:
    """Apply a partial update. Only current members may update; the creator is
    not privileged here once they have left the group."""
    group = await _get_group_or_404(group_id, session)
    old_members = await get_member_ids(group.id, session)
    if caller.id not in old_members:
        raise AuthorizationError("Only group members can update the group")

    changes = patch.model_dump(exclude_unset=True)
    if changes.get("name") is not None:
        group.name = changes["name"].strip()
    if "description" in changes:
        group.description = changes["description"]

    added: set[uuid.UUID] = set()
    removed: set[uuid.UUID] = set()
    if patch.user_ids is not None:
        new_members = set(patch.user_ids)
        added = new_members - old_members
        removed = old_members - new_members
        await _require_users_exist(added, session)

        if removed:
            await session.execute(
                delete(GroupMembership).where(
                    GroupMembership.group_id == group.id,
                    GroupMembership.user_id.in_(list(removed)),
                )
            )
        for user_id in added:
            session.add(GroupMembership(group_id=group.id, user_id=user_id))

    group.updated_at = utcnow()
    session.add(group)
    try:
        await session.flush()
    except IntegrityError:
        # Another request added the same member concurrently
        await session.rollback()
        raise ConflictError()

    log.info(
        "group.updated",
        group_id=str(group.id),
        caller_id=str(caller.id),
        added=len(added),
        removed=len(removed),
    )
    return group


async def delete_group(group_id: uuid.UUID, caller: User, session: AsyncSession) -> None:
    group = await _get_group_or_404(group_id, session)
    if group.created_by != caller.id:
        raise AuthorizationError("Only the group creator can delete this group")

    await session.execute(delete(GroupMembership).where(GroupMembership.group_id == group.id))
    await session.execute(delete(VideoGroupAccess).where(VideoGroupAccess.group_id == group.id))
    await session.delete(group)
    await session.flush()

    log.info("group.deleted", group_id=str(group.id), caller_id=str(caller.id))
