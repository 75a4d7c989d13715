"""
Account directory and profile endpoints.

GET    /api/v1/users                      — User directory (group building)
GET    /api/v1/organizations              — Organization directory (registration)
PATCH  /api/v1/profile                    — Update own user profile
PATCH  /api/v1/organization/profile       — Update own organization profile
GET    /api/v1/organization/members       — Users linked to the organization
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import (
    AuthenticatedAccount,
    get_authenticated_account,
    require_organization,
    require_user,
)
from app.core.database import get_session
from app.models.organization import Organization
from app.models.user import User
from app.services import identity as identity_service
from videoconnect_shared.schemas.identity import (
    OrganizationListResponse,
    OrganizationProfileUpdate,
    OrganizationResponse,
    OrganizationSummary,
    UserListResponse,
    UserProfileUpdate,
    UserResponse,
    UserSummary,
)

router = APIRouter()


@router.get("/users", response_model=UserListResponse, tags=["Users"])
async def list_users(
    auth: AuthenticatedAccount = Depends(get_authenticated_account),
    session: AsyncSession = Depends(get_session),
):
    users = await identity_service.list_users(session)
    return UserListResponse(users=[UserSummary.model_validate(u) for u in users])


@router.get("/organizations", response_model=OrganizationListResponse, tags=["Organizations"])
async def list_organizations(session: AsyncSession = Depends(get_session)):
    """Public: users pick their organization while registering."""
    orgs = await identity_service.list_organizations(session)
    return OrganizationListResponse(
        organizations=[OrganizationSummary.model_validate(o) for o in orgs]
    )


@router.patch("/profile", response_model=UserResponse, tags=["Users"])
async def update_profile(
    body: UserProfileUpdate,
    user: User = Depends(require_user),
    session: AsyncSession = Depends(get_session),
):
    user = await identity_service.update_user_profile(user, body, session)
    return UserResponse.model_validate(user)


@router.patch("/organization/profile", response_model=OrganizationResponse, tags=["Organizations"])
async def update_organization_profile(
    body: OrganizationProfileUpdate,
    org: Organization = Depends(require_organization),
    session: AsyncSession = Depends(get_session),
):
    org = await identity_service.update_organization_profile(org, body, session)
    return OrganizationResponse.model_validate(org)


@router.get("/organization/members", response_model=UserListResponse, tags=["Organizations"])
async def list_organization_members(
    search: Optional[str] = Query(None, max_length=100),
    org: Organization = Depends(require_organization),
    session: AsyncSession = Depends(get_session),
):
    members = await identity_service.list_organization_members(org.id, session, search)
    return UserListResponse(users=[UserSummary.model_validate(u) for u in members])
