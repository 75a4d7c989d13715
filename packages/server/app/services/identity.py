"""
Identity service: registration, credential checks, profiles and directories
for user and organization accounts.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import hash_password, verify_password_or_dummy
from app.core.errors import AuthenticationError, DuplicateError, ValidationError
from app.models.organization import Organization
from app.models.user import User
from videoconnect_shared.schemas.identity import (
    OrganizationProfileUpdate,
    OrganizationRegisterRequest,
    UserProfileUpdate,
    UserRegisterRequest,
)

log = structlog.get_logger()


async def _flush_unique(session: AsyncSession, detail: str) -> None:
    """Flush, reporting a unique-constraint race as DuplicateError."""
    try:
        await session.flush()
    except IntegrityError:
        # Another request took the same email, username or code concurrently
        await session.rollback()
        raise DuplicateError(detail)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

async def register_user(req: UserRegisterRequest, session: AsyncSession) -> User:
    email = req.email.lower()
    result = await session.execute(
        select(User).where(or_(User.email == email, User.username == req.username))
    )
    if result.scalars().first():
        raise DuplicateError("User with this email or username already exists")

    if req.organization_id is not None:
        if not await session.get(Organization, req.organization_id):
            raise ValidationError("Organization does not exist")

    user = User(
        name=req.name,
        username=req.username,
        email=email,
        password_hash=hash_password(req.password),
        mobile_number=req.mobile_number,
        organization_id=req.organization_id,
    )
    session.add(user)
    await _flush_unique(session, "User with this email or username already exists")

    log.info("user.registered", user_id=str(user.id))
    return user


async def authenticate_user(email: str, password: str, session: AsyncSession) -> User:
    """Verify user credentials. Unknown email and wrong password look the same."""
    result = await session.execute(select(User).where(User.email == email.lower()))
    user = result.scalar_one_or_none()

    if not verify_password_or_dummy(password, user.password_hash if user else None):
        log.warning("auth.login_failure", kind="user")
        raise AuthenticationError("Invalid credentials")
    return user


async def update_user_profile(
    user: User, patch: UserProfileUpdate, session: AsyncSession
) -> User:
    changes = patch.model_dump(exclude_unset=True)
    if "email" in changes and changes["email"] is not None:
        changes["email"] = changes["email"].lower()

    email = changes.get("email")
    username = changes.get("username")
    clauses = []
    if email and email != user.email:
        clauses.append(User.email == email)
    if username and username != user.username:
        clauses.append(User.username == username)
    if clauses:
        result = await session.execute(
            select(User.id).where(or_(*clauses), User.id != user.id)
        )
        if result.first():
            raise DuplicateError("Email or username already in use")

    for key, value in changes.items():
        if value is None and key in ("name", "username", "email"):
            continue
        setattr(user, key, value)
    session.add(user)
    await _flush_unique(session, "Email or username already in use")

    log.info("user.profile_updated", user_id=str(user.id), fields=sorted(changes))
    return user


async def list_users(session: AsyncSession) -> list[User]:
    """User directory, used to pick group members."""
    result = await session.execute(select(User).order_by(func.lower(User.name)))
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------

async def register_organization(
    req: OrganizationRegisterRequest, session: AsyncSession
) -> Organization:
    email = req.email.lower()
    result = await session.execute(
        select(Organization).where(
            or_(Organization.email == email, Organization.org_code == req.org_code)
        )
    )
    if result.scalars().first():
        raise DuplicateError("Organization with this email or code already exists")

    org = Organization(
        name=req.name,
        org_code=req.org_code,
        email=email,
        password_hash=hash_password(req.password),
        description=req.description,
        address=req.address,
        mobile=req.mobile,
    )
    session.add(org)
    await _flush_unique(session, "Organization with this email or code already exists")

    log.info("org.registered", org_id=str(org.id), org_code=org.org_code)
    return org


async def authenticate_organization(
    org_code: str, password: str, session: AsyncSession
) -> Organization:
    result = await session.execute(
        select(Organization).where(Organization.org_code == org_code.strip().upper())
    )
    org = result.scalar_one_or_none()

    if not verify_password_or_dummy(password, org.password_hash if org else None):
        log.warning("auth.login_failure", kind="organization")
        raise AuthenticationError("Invalid credentials")
    return org


async def update_organization_profile(
    org: Organization, patch: OrganizationProfileUpdate, session: AsyncSession
) -> Organization:
    changes = patch.model_dump(exclude_unset=True)
    if changes.get("email") is not None:
        changes["email"] = changes["email"].lower()
        if changes["email"] != org.email:
            result = await session.execute(
                select(Organization.id).where(
                    Organization.email == changes["email"], Organization.id != org.id
                )
            )
            if result.first():
                raise DuplicateError("Email already in use")

    for key, value in changes.items():
        if value is None and key in ("name", "email", "mobile"):
            continue
        setattr(org, key, value)
    session.add(org)
    await _flush_unique(session, "Email already in use")

    log.info("org.profile_updated", org_id=str(org.id), fields=sorted(changes))
    return org


async def list_organizations(session: AsyncSession) -> list[Organization]:
    """Organization directory, used at user registration."""
    result = await session.execute(select(Organization).order_by(Organization.name))
    return list(result.scalars().all())


async def list_organization_members(
    org_id: uuid.UUID, session: AsyncSession, search: Optional[str] = None
) -> list[User]:
    query = select(User).where(User.organization_id == org_id)
    if search:
        pattern = f"%{search.lower()}%"
        query = query.where(
            or_(func.lower(User.name).like(pattern), func.lower(User.username).like(pattern))
        )
    result = await session.execute(query.order_by(User.created_at.desc()))
    return list(result.scalars().all())
