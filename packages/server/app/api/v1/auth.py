"""
Authentication endpoints.

- User registration & login (email/password)
- Organization registration & login (org code/password)
- Current account and logout
"""

from __future__ import annotations

import time

import structlog
from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import (
    CSRF_COOKIE,
    SESSION_COOKIE,
    AuthenticatedAccount,
    create_jwt,
    generate_csrf_token,
    get_authenticated_account,
    revoke_jwt,
)
from app.core.config import get_settings
from app.core.database import get_session
from app.services import identity as identity_service
from videoconnect_shared.schemas.common import AccountKind
from videoconnect_shared.schemas.identity import (
    AuthResponse,
    MeResponse,
    OrganizationLoginRequest,
    OrganizationRegisterRequest,
    OrganizationResponse,
    UserLoginRequest,
    UserRegisterRequest,
    UserResponse,
)

log = structlog.get_logger()
settings = get_settings()
router = APIRouter()

# Cookie config
COOKIE_KWARGS = {
    "httponly": True,
    "secure": not settings.debug,  # allow non-HTTPS in dev
    "samesite": "lax",
    "path": "/",
    "max_age": settings.jwt_expire_minutes * 60,
}


def _set_session_cookies(response: Response, token: str, csrf: str) -> None:
    """Set the session JWT and CSRF cookies on a response."""
    response.set_cookie(key=SESSION_COOKIE, value=token, **COOKIE_KWARGS)
    response.set_cookie(
        key=CSRF_COOKIE,
        value=csrf,
        httponly=False,  # JS must read this
        secure=not settings.debug,
        samesite="lax",
        path="/",
        max_age=settings.jwt_expire_minutes * 60,
    )


def _issue_session(response: Response, account_id, kind: AccountKind) -> str:
    token, _jti = create_jwt(account_id, kind)
    _set_session_cookies(response, token, generate_csrf_token())
    return token


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

@router.post("/register/user", response_model=AuthResponse, status_code=201)
async def register_user(
    body: UserRegisterRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    """Register an individual user, optionally linked to an organization."""
    user = await identity_service.register_user(body, session)
    token = _issue_session(response, user.id, AccountKind.USER)
    return AuthResponse(
        account_kind=AccountKind.USER,
        account_id=str(user.id),
        token=token,
        message="User registered successfully",
    )


@router.post("/register/organization", response_model=AuthResponse, status_code=201)
async def register_organization(
    body: OrganizationRegisterRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    org = await identity_service.register_organization(body, session)
    token = _issue_session(response, org.id, AccountKind.ORGANIZATION)
    return AuthResponse(
        account_kind=AccountKind.ORGANIZATION,
        account_id=str(org.id),
        token=token,
        message="Organization registered successfully",
    )


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------

@router.post("/login/user", response_model=AuthResponse)
async def login_user(
    body: UserLoginRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    """Authenticate with email/password and receive a JWT session."""
    user = await identity_service.authenticate_user(body.email, body.password, session)
    token = _issue_session(response, user.id, AccountKind.USER)
    log.info("auth.login_success", kind="user", account_id=str(user.id))
    return AuthResponse(
        account_kind=AccountKind.USER,
        account_id=str(user.id),
        token=token,
        message="Login successful",
    )


@router.post("/login/organization", response_model=AuthResponse)
async def login_organization(
    body: OrganizationLoginRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    org = await identity_service.authenticate_organization(body.org_code, body.password, session)
    token = _issue_session(response, org.id, AccountKind.ORGANIZATION)
    log.info("auth.login_success", kind="organization", account_id=str(org.id))
    return AuthResponse(
        account_kind=AccountKind.ORGANIZATION,
        account_id=str(org.id),
        token=token,
        message="Login successful",
    )


# ---------------------------------------------------------------------------
# Session Management
# ---------------------------------------------------------------------------

@router.get("/me", response_model=MeResponse)
async def me(auth: AuthenticatedAccount = Depends(get_authenticated_account)):
    """The account behind the current session."""
    if auth.kind == AccountKind.USER:
        return MeResponse(account_kind=auth.kind, user=UserResponse.model_validate(auth.user))
    return MeResponse(
        account_kind=auth.kind,
        organization=OrganizationResponse.model_validate(auth.organization),
    )


@router.post("/logout")
async def logout(
    response: Response,
    auth: AuthenticatedAccount = Depends(get_authenticated_account),
):
    """Invalidate the current session."""
    if auth.jti:
        ttl = int(auth.expires_at - time.time()) if auth.expires_at else settings.jwt_expire_minutes * 60
        await revoke_jwt(auth.jti, ttl)

    response.delete_cookie(SESSION_COOKIE, path="/")
    response.delete_cookie(CSRF_COOKIE, path="/")
    return {"message": "Logged out successfully"}
