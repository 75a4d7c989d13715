"""
Tests for Authentication and Authorization.

Covers:
- Password hashing
- JWT creation, decoding, revocation
- CSRF middleware
- Security headers middleware
- User and organization registration, login, /me and logout
- Account-kind authorization (require_user, require_organization)
"""

from __future__ import annotations

import uuid
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import jwt as pyjwt
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.auth import (
    AuthenticatedAccount,
    create_jwt,
    decode_jwt,
    generate_csrf_token,
    hash_password,
    require_organization,
    require_user,
    verify_password,
    verify_password_or_dummy,
)
from app.core.errors import AuthorizationError, CSRFValidationError
from app.core.middleware import CSRFMiddleware, SecurityHeadersMiddleware, SECURITY_HEADERS
from videoconnect_shared.schemas.common import AccountKind


# ---------------------------------------------------------------------------
# Unit Tests: Password hashing
# ---------------------------------------------------------------------------

class TestPasswordHashing:
    def test_hash_and_verify(self):
        password = "MySecureP@ssw0rd!"
        hashed = hash_password(password)
        assert hashed != password
        assert verify_password(password, hashed)

    def test_wrong_password_fails(self):
        hashed = hash_password("correct-password")
        assert not verify_password("wrong-password", hashed)

    def test_different_hashes_for_same_password(self):
        """bcrypt uses random salt, so hashes differ."""
        h1 = hash_password("same")
        h2 = hash_password("same")
        assert h1 != h2
        assert verify_password("same", h1)
        assert verify_password("same", h2)

    def test_malformed_hash_is_a_mismatch(self):
        assert not verify_password("anything", "not-a-bcrypt-hash")

    def test_unknown_account_never_verifies(self):
        assert verify_password_or_dummy("dummy-password", None) is False


# ---------------------------------------------------------------------------
# Unit Tests: JWT
# ---------------------------------------------------------------------------

class TestJWT:
    def test_create_and_decode(self):
        uid = uuid.uuid4()
        token, jti = create_jwt(uid, AccountKind.USER)
        payload = decode_jwt(token)
        assert payload["sub"] == str(uid)
        assert payload["kind"] == "user"
        assert payload["jti"] == jti

    def test_organization_kind(self):
        token, _ = create_jwt(uuid.uuid4(), AccountKind.ORGANIZATION)
        assert decode_jwt(token)["kind"] == "organization"

    def test_expired_jwt_raises(self):
        token, _ = create_jwt(uuid.uuid4(), AccountKind.USER, expires_delta=timedelta(seconds=-1))
        with pytest.raises(pyjwt.ExpiredSignatureError):
            decode_jwt(token)

    def test_tampered_jwt_raises(self):
        token, _ = create_jwt(uuid.uuid4(), AccountKind.USER)
        tampered = token[:-5] + "XXXXX"
        with pytest.raises(pyjwt.InvalidSignatureError):
            decode_jwt(tampered)


# ---------------------------------------------------------------------------
# Unit Tests: CSRF Token
# ---------------------------------------------------------------------------

class TestCSRFToken:
    def test_generates_unique_tokens(self):
        t1 = generate_csrf_token()
        t2 = generate_csrf_token()
        assert t1 != t2
        assert len(t1) > 20


# ---------------------------------------------------------------------------
# Integration Tests: Middleware
# ---------------------------------------------------------------------------

class TestSecurityHeadersMiddleware:
    def test_headers_present(self):
        app = FastAPI()
        app.add_middleware(SecurityHeadersMiddleware)

        @app.get("/test")
        async def test_endpoint():
            return {"ok": True}

        client = TestClient(app)
        resp = client.get("/test")
        assert resp.status_code == 200
        for header, value in SECURITY_HEADERS.items():
            assert resp.headers.get(header) == value


class TestCSRFMiddleware:
    def _make_app(self) -> FastAPI:
        app = FastAPI()
        app.add_middleware(CSRFMiddleware)

        @app.get("/test")
        async def get_test():
            return {"ok": True}

        @app.post("/test")
        async def post_test():
            return {"ok": True}

        return app

    def test_get_passes_without_csrf(self):
        client = TestClient(self._make_app())
        resp = client.get("/test")
        assert resp.status_code == 200

    def test_post_with_bearer_skips_csrf(self):
        client = TestClient(self._make_app(), cookies={"vc_session": "some-jwt"})
        resp = client.post("/test", headers={"Authorization": "Bearer some-jwt"})
        assert resp.status_code == 200

    def test_post_without_session_cookie_passes(self):
        """No session cookie = not a browser request, skip CSRF."""
        client = TestClient(self._make_app())
        resp = client.post("/test")
        assert resp.status_code == 200

    def test_post_with_session_but_no_csrf_fails(self):
        client = TestClient(self._make_app(), cookies={"vc_session": "some-jwt"})
        resp = client.post("/test")
        assert resp.status_code == 403
        assert resp.json() == {
            "detail": "Invalid or missing CSRF token.",
            "code": "CSRF_VALIDATION_FAILED",
        }

    def test_post_with_matching_csrf_passes(self):
        csrf_token = "test-csrf-token"
        client = TestClient(
            self._make_app(),
            cookies={"vc_session": "some-jwt", "vc_csrf": csrf_token},
        )
        resp = client.post("/test", headers={"X-CSRF-Token": csrf_token})
        assert resp.status_code == 200

    def test_post_with_mismatched_csrf_fails(self):
        client = TestClient(
            self._make_app(),
            cookies={"vc_session": "some-jwt", "vc_csrf": "token-a"},
        )
        resp = client.post("/test", headers={"X-CSRF-Token": "token-b"})
        assert resp.status_code == 403
        assert resp.json()["code"] == CSRFValidationError.code


# ---------------------------------------------------------------------------
# Integration Tests: Auth Endpoints
# ---------------------------------------------------------------------------

def _user_body(**overrides) -> dict:
    body = {
        "name": "Alice Example",
        "username": "alice",
        "email": "Alice@Example.com",
        "password": "secret123",
        "confirm_password": "secret123",
    }
    body.update(overrides)
    return body


def _org_body(**overrides) -> dict:
    body = {
        "name": "Acme",
        "org_code": "acme",
        "email": "hello@acme-corp.com",
        "mobile": "+1-555-0199",
        "password": "secret123",
        "confirm_password": "secret123",
    }
    body.update(overrides)
    return body


class TestAuthEndpoints:
    async def test_register_user_issues_session(self, client):
        resp = await client.post("/auth/register/user", json=_user_body())
        assert resp.status_code == 201
        data = resp.json()
        assert data["account_kind"] == "user"
        assert decode_jwt(data["token"])["sub"] == data["account_id"]
        set_cookie = " ".join(resp.headers.get_list("set-cookie"))
        assert "vc_session=" in set_cookie
        assert "vc_csrf=" in set_cookie

    async def test_register_user_duplicate_email(self, client):
        assert (await client.post("/auth/register/user", json=_user_body())).status_code == 201
        client.cookies.clear()
        resp = await client.post(
            "/auth/register/user", json=_user_body(username="alice2", email="alice@example.com")
        )
        assert resp.status_code == 409
        assert resp.json()["code"] == "DUPLICATE"

    async def test_register_user_password_mismatch(self, client):
        resp = await client.post("/auth/register/user", json=_user_body(confirm_password="other"))
        assert resp.status_code == 400
        assert resp.json()["code"] == "VALIDATION_ERROR"

    async def test_register_user_unknown_organization(self, client):
        resp = await client.post(
            "/auth/register/user", json=_user_body(organization_id=str(uuid.uuid4()))
        )
        assert resp.status_code == 400

    async def test_login_user_and_me(self, client):
        await client.post("/auth/register/user", json=_user_body())
        client.cookies.clear()

        resp = await client.post(
            "/auth/login/user", json={"email": "alice@example.com", "password": "secret123"}
        )
        assert resp.status_code == 200
        token = resp.json()["token"]

        me = await client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["account_kind"] == "user"
        assert me.json()["user"]["email"] == "alice@example.com"

    async def test_login_failures_are_indistinguishable(self, client):
        await client.post("/auth/register/user", json=_user_body())
        client.cookies.clear()

        wrong_password = await client.post(
            "/auth/login/user", json={"email": "alice@example.com", "password": "nope"}
        )
        unknown_email = await client.post(
            "/auth/login/user", json={"email": "ghost@example.com", "password": "nope"}
        )
        assert wrong_password.status_code == unknown_email.status_code == 401
        assert wrong_password.json() == unknown_email.json()

    async def test_register_and_login_organization(self, client):
        resp = await client.post("/auth/register/organization", json=_org_body())
        assert resp.status_code == 201
        assert resp.json()["account_kind"] == "organization"
        client.cookies.clear()

        login = await client.post(
            "/auth/login/organization", json={"org_code": "AcMe", "password": "secret123"}
        )
        assert login.status_code == 200

        me = await client.get(
            "/auth/me", headers={"Authorization": f"Bearer {login.json()['token']}"}
        )
        assert me.json()["organization"]["org_code"] == "ACME"

    async def test_me_requires_authentication(self, client):
        resp = await client.get("/auth/me")
        assert resp.status_code == 401
        assert resp.json()["code"] == "AUTHENTICATION_FAILED"

    async def test_garbage_token_is_rejected(self, client):
        resp = await client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401

    async def test_token_for_deleted_account_is_rejected(self, client, auth_headers):
        ghost = MagicMock(id=uuid.uuid4())
        resp = await client.get("/auth/me", headers=auth_headers(ghost))
        assert resp.status_code == 401

    async def test_logout_revokes_token(self, client, make_user, auth_headers):
        user = await make_user("Logout")
        headers = auth_headers(user)
        jti = decode_jwt(headers["Authorization"][7:])["jti"]

        with patch("app.api.v1.auth.revoke_jwt", AsyncMock()) as revoke:
            resp = await client.post("/auth/logout", headers=headers)

        assert resp.status_code == 200
        assert resp.json() == {"message": "Logged out successfully"}
        revoke.assert_awaited_once()
        assert revoke.await_args.args[0] == jti
        assert revoke.await_args.args[1] > 0

    async def test_revoked_token_is_rejected(self, client, make_user, auth_headers):
        user = await make_user("Revoked")
        with patch("app.core.auth.is_jwt_revoked", AsyncMock(return_value=True)):
            resp = await client.get("/auth/me", headers=auth_headers(user))
        assert resp.status_code == 401


# ---------------------------------------------------------------------------
# Unit Tests: Account-kind authorization
# ---------------------------------------------------------------------------

class TestAccountKindAuthorization:
    def _user_auth(self) -> AuthenticatedAccount:
        return AuthenticatedAccount(AccountKind.USER, user=MagicMock(id=uuid.uuid4()))

    def _org_auth(self) -> AuthenticatedAccount:
        return AuthenticatedAccount(AccountKind.ORGANIZATION, organization=MagicMock(id=uuid.uuid4()))

    async def test_require_user_accepts_user(self):
        auth = self._user_auth()
        assert await require_user(auth) is auth.user

    async def test_require_user_rejects_organization(self):
        with pytest.raises(AuthorizationError) as exc_info:
            await require_user(self._org_auth())
        assert exc_info.value.status_code == 403

    async def test_require_organization_rejects_user(self):
        with pytest.raises(AuthorizationError):
            await require_organization(self._user_auth())

    async def test_organization_cannot_use_group_endpoints(self, client, make_org, auth_headers):
        org = await make_org("NoGroups")
        resp = await client.get(
            "/api/v1/groups", headers=auth_headers(org, AccountKind.ORGANIZATION)
        )
        assert resp.status_code == 403


# ---------------------------------------------------------------------------
# Unit Tests: JWT Revocation (mocked Redis)
# ---------------------------------------------------------------------------

class TestJWTRevocation:
    @pytest.mark.asyncio
    async def test_revoke_and_check(self):
        mock_redis = AsyncMock()
        mock_redis.setex = AsyncMock()
        mock_redis.exists = AsyncMock(return_value=1)

        with patch("app.core.auth.get_redis", return_value=mock_redis):
            from app.core.auth import revoke_jwt, is_jwt_revoked

            await revoke_jwt("test-jti-123", 3600)
            mock_redis.setex.assert_called_once_with("jwt:revoked:test-jti-123", 3600, "1")

            result = await is_jwt_revoked("test-jti-123")
            assert result is True

    @pytest.mark.asyncio
    async def test_non_revoked_jwt(self):
        mock_redis = AsyncMock()
        mock_redis.exists = AsyncMock(return_value=0)

        with patch("app.core.auth.get_redis", return_value=mock_redis):
            from app.core.auth import is_jwt_revoked
            result = await is_jwt_revoked("non-existent-jti")
            assert result is False
