"""
Group API endpoints.

GET    /api/v1/groups           — Groups the caller belongs to or created
POST   /api/v1/groups           — Create a group (creator joins automatically)
GET    /api/v1/groups/{groupId} — Get a group (members and creator)
PATCH  /api/v1/groups/{groupId} — Update a group (members only)
DELETE /api/v1/groups/{groupId} — Delete a group (creator only)
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import require_user
from app.core.database import get_session
from app.models.user import User
from app.services import groups as group_service
from videoconnect_shared.schemas.common import APIResponse
from videoconnect_shared.schemas.groups import (
    GroupCreate,
    GroupListResponse,
    GroupRead,
    GroupUpdate,
)

router = APIRouter()


@router.get("", response_model=GroupListResponse)
async def list_groups(
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    groups = await group_service.list_groups(user, session)
    return GroupListResponse(groups=[await group_service.to_group_read(g, session) for g in groups])


@router.post("", response_model=GroupRead, status_code=201)
async def create_group(
    body: GroupCreate,
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    group = await group_service.create_group(body, user, session)
    return await group_service.to_group_read(group, session)


@router.get("/{groupId}", response_model=GroupRead)
async def get_group(
    groupId: uuid.UUID,
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    group = await group_service.get_group(groupId, user, session)
    return await group_service.to_group_read(group, session)


@router.patch("/{groupId}", response_model=GroupRead)
async def update_group(
    groupId: uuid.UUID,
    body: GroupUpdate,
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    group = await group_service.update_group(groupId, body, user, session)
    return await group_service.to_group_read(group, session)


@router.delete("/{groupId}", response_model=APIResponse)
async def delete_group(
    groupId: uuid.UUID,
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    await group_service.delete_group(groupId, user, session)
    return APIResponse(message="Group deleted successfully")
