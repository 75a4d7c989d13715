"""
Authentication and Authorization for VideoConnect.

Supports:
- Two account kinds: individual users and organizations
- Email/Password (users) and org-code/Password (organizations) credentials
- JWT session tokens via the `vc_session` cookie or a Bearer header
- JWT revocation list in Redis (logout)
- Account-kind authorization dependencies
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
import structlog
from fastapi import Depends, Request, WebSocket
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_session
from app.core.errors import AuthenticationError, AuthorizationError
from app.core.middleware import CSRF_COOKIE, SESSION_COOKIE  # noqa: F401
from app.core.redis import get_redis
from app.models.organization import Organization
from app.models.user import User
from videoconnect_shared.schemas.common import AccountKind

log = structlog.get_logger()
settings = get_settings()

authorization_header = APIKeyHeader(name="Authorization", auto_error=False)

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=settings.bcrypt_rounds)).decode()


def verify_password(password: str, hashed: str) -> bool:
    """Verify a password against a bcrypt hash."""
    try:
        return bcrypt.checkpw(password.encode(), hashed.encode())
    except ValueError:
        return False


# A valid hash to compare against when the account does not exist, so an
# unknown account costs the same as a wrong password.
_DUMMY_HASH = bcrypt.hashpw(b"dummy-password", bcrypt.gensalt(rounds=4)).decode()


def verify_password_or_dummy(password: str, hashed: Optional[str]) -> bool:
    if hashed is None:
        verify_password(password, _DUMMY_HASH)
        return False
    return verify_password(password, hashed)


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def create_jwt(
    account_id: uuid.UUID,
    kind: AccountKind,
    *,
    expires_delta: timedelta | None = None,
) -> tuple[str, str]:
    """Create a signed JWT. Returns (token, jti)."""
    jti = str(uuid.uuid4())
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    payload = {
        "sub": str(account_id),
        "kind": kind.value,
        "iat": now,
        "exp": exp,
        "jti": jti,
    }
    token = jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)
    return token, jti


def decode_jwt(token: str) -> dict:
    """Decode and verify a JWT. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


# ---------------------------------------------------------------------------
# JWT Revocation (Redis)
# ---------------------------------------------------------------------------

async def revoke_jwt(jti: str, ttl_seconds: int) -> None:
    """Add a JWT ID to the revocation list in Redis."""
    redis = await get_redis()
    await redis.setex(f"jwt:revoked:{jti}", max(ttl_seconds, 1), "1")


async def is_jwt_revoked(jti: str) -> bool:
    """Check if a JWT ID has been revoked."""
    redis = await get_redis()
    return await redis.exists(f"jwt:revoked:{jti}") > 0


# ---------------------------------------------------------------------------
# CSRF Token
# ---------------------------------------------------------------------------

def generate_csrf_token() -> str:
    """Generate a random CSRF token."""
    return secrets.token_urlsafe(32)


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------

class AuthenticatedAccount:
    """Container for an authenticated user or organization."""

    def __init__(
        self,
        kind: AccountKind,
        *,
        user: User | None = None,
        organization: Organization | None = None,
        jti: str | None = None,
        expires_at: int | None = None,
    ):
        self.kind = kind
        self.user = user
        self.organization = organization
        self.jti = jti
        self.expires_at = expires_at
        self.account_id: uuid.UUID = user.id if user is not None else organization.id


def extract_token(request: Request, authorization: Optional[str]) -> Optional[str]:
    """Bearer header first, then the session cookie."""
    if authorization and authorization.startswith("Bearer "):
        token = authorization[7:].strip()
        if token:
            return token
    return request.cookies.get(SESSION_COOKIE)


async def authenticate_token(token: str, session: AsyncSession) -> AuthenticatedAccount:
    """Resolve a session token to its account. Every failure is a generic 401."""
    try:
        payload = decode_jwt(token)
        account_id = uuid.UUID(payload["sub"])
        kind = AccountKind(payload["kind"])
    except (jwt.PyJWTError, KeyError, ValueError):
        raise AuthenticationError("Authentication required")

    jti = payload.get("jti")
    if jti and await is_jwt_revoked(jti):
        raise AuthenticationError("Authentication required")

    if kind == AccountKind.USER:
        user = await session.get(User, account_id)
        if not user:
            raise AuthenticationError("Authentication required")
        return AuthenticatedAccount(kind, user=user, jti=jti, expires_at=payload.get("exp"))

    organization = await session.get(Organization, account_id)
    if not organization:
        raise AuthenticationError("Authentication required")
    return AuthenticatedAccount(
        kind, organization=organization, jti=jti, expires_at=payload.get("exp")
    )


async def get_authenticated_account(
    request: Request,
    authorization: Optional[str] = Depends(authorization_header),
    session: AsyncSession = Depends(get_session),
) -> AuthenticatedAccount:
    """Main authentication dependency. Tries Bearer, then the session cookie."""
    token = extract_token(request, authorization)
    if not token:
        raise AuthenticationError("Authentication required")
    account = await authenticate_token(token, session)
    request.state.auth = account
    return account


async def authenticate_ws_token(
    websocket: WebSocket,
    token: Optional[str],
    session: AsyncSession,
) -> Optional[AuthenticatedAccount]:
    """WebSocket authentication: `?token=` query param or the session cookie.

    Returns None instead of raising so the caller can close with 4001.
    """
    token = token or websocket.cookies.get(SESSION_COOKIE)
    if not token:
        return None
    try:
        return await authenticate_token(token, session)
    except AuthenticationError:
        return None


# ---------------------------------------------------------------------------
# Authorization dependencies (account kind checks)
# ---------------------------------------------------------------------------

async def require_user(
    auth: AuthenticatedAccount = Depends(get_authenticated_account),
) -> User:
    """Requires an individual user account."""
    if auth.kind != AccountKind.USER or auth.user is None:
        raise AuthorizationError("User account required")
    return auth.user


async def require_organization(
    auth: AuthenticatedAccount = Depends(get_authenticated_account),
) -> Organization:
    """Requires an organization account."""
    if auth.kind != AccountKind.ORGANIZATION or auth.organization is None:
        raise AuthorizationError("Organization account required")
    return auth.organization
