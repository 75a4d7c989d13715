"""
Tests for account directories and profile updates.
"""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from unittest.mock import patch

import pytest

from app.core.auth import hash_password
from app.core.errors import DuplicateError
from app.models.organization import Organization
from app.models.user import User
from app.services import identity
from videoconnect_shared.schemas.common import AccountKind
from videoconnect_shared.schemas.identity import (
    OrganizationRegisterRequest,
    UserProfileUpdate,
    UserRegisterRequest,
)


class TestDirectories:
    async def test_organizations_directory_is_public(self, client, make_org):
        org = await make_org("Zeta Corp")
        resp = await client.get("/api/v1/organizations")
        assert resp.status_code == 200
        codes = [o["org_code"] for o in resp.json()["organizations"]]
        assert org.org_code in codes

    async def test_user_directory_requires_auth(self, client, make_user, auth_headers):
        alice = await make_user("Alice")
        assert (await client.get("/api/v1/users")).status_code == 401

        resp = await client.get("/api/v1/users", headers=auth_headers(alice))
        assert resp.status_code == 200
        assert str(alice.id) in {u["id"] for u in resp.json()["users"]}

    async def test_organization_members_search(self, client, make_org, make_user, auth_headers):
        org = await make_org()
        await make_user("Dana Scully", organization_id=org.id)
        await make_user("Fox Mulder", organization_id=org.id)
        await make_user("Walter Skinner")
        headers = auth_headers(org, AccountKind.ORGANIZATION)

        everyone = await client.get("/api/v1/organization/members", headers=headers)
        assert {u["name"] for u in everyone.json()["users"]} == {"Dana Scully", "Fox Mulder"}

        found = await client.get("/api/v1/organization/members?search=SCUL", headers=headers)
        assert [u["name"] for u in found.json()["users"]] == ["Dana Scully"]

    async def test_members_endpoint_requires_organization(self, client, make_user, auth_headers):
        alice = await make_user("Alice")
        resp = await client.get("/api/v1/organization/members", headers=auth_headers(alice))
        assert resp.status_code == 403


class TestProfiles:
    async def test_user_profile_partial_update(self, client, make_user, auth_headers):
        alice = await make_user("Alice")
        resp = await client.patch(
            "/api/v1/profile",
            json={"mobile_number": "+1-555-0142", "email": "New.Alice@Example.com"},
            headers=auth_headers(alice),
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["mobile_number"] == "+1-555-0142"
        assert body["email"] == "new.alice@example.com"
        assert body["username"] == alice.username

    async def test_user_profile_rejects_taken_username(self, client, make_user, auth_headers):
        alice = await make_user("Alice")
        bob = await make_user("Bob")
        resp = await client.patch(
            "/api/v1/profile", json={"username": bob.username}, headers=auth_headers(alice)
        )
        assert resp.status_code == 409

    async def test_organization_profile_update(self, client, make_org, auth_headers):
        org = await make_org()
        resp = await client.patch(
            "/api/v1/organization/profile",
            json={"description": "We make things", "address": "1 Main St"},
            headers=auth_headers(org, AccountKind.ORGANIZATION),
        )
        assert resp.status_code == 200
        assert resp.json()["description"] == "We make things"
        assert resp.json()["org_code"] == org.org_code


@contextmanager
def _insert_after_uniqueness_check(session, session_factory, row_factory):
    """Commit a clashing row from another session right after the service's
    uniqueness query, so the check passes and the flush hits the constraint."""
    real_execute = session.execute
    fired = []

    async def execute(*args, **kwargs):
        result = await real_execute(*args, **kwargs)
        if not fired:
            fired.append(True)
            async with session_factory() as other:
                other.add(row_factory())
                await other.commit()
        return result

    with patch.object(session, "execute", execute):
        yield


def _user(username: str, email: str) -> User:
    return User(name="Rival", username=username, email=email, password_hash=hash_password("x" * 8))


class TestUniquenessRaces:
    async def test_concurrent_user_registration_is_duplicate(self, session, session_factory):
        req = UserRegisterRequest(
            name="Alice",
            username="alice",
            email="alice@example.com",
            password="password123",
            confirm_password="password123",
        )
        with _insert_after_uniqueness_check(
            session, session_factory, lambda: _user("alice", "rival@example.com")
        ):
            with pytest.raises(DuplicateError):
                await identity.register_user(req, session)

    async def test_concurrent_username_change_is_duplicate(
        self, session, session_factory, make_user
    ):
        alice = await make_user("Alice")
        with _insert_after_uniqueness_check(
            session, session_factory, lambda: _user("taken", "taken@example.com")
        ):
            with pytest.raises(DuplicateError):
                await identity.update_user_profile(alice, UserProfileUpdate(username="taken"), session)

    async def test_concurrent_org_registration_is_duplicate(self, session, session_factory):
        req = OrganizationRegisterRequest(
            name="Acme",
            org_code="acme",
            email="hello@acme-corp.com",
            mobile="+1-555-0100",
            password="password123",
            confirm_password="password123",
        )

        def rival() -> Organization:
            return Organization(
                name="Rival",
                org_code="ACME",
                email=f"rival-{uuid.uuid4().hex[:6]}@example.com",
                password_hash=hash_password("x" * 8),
                mobile="+1-555-0101",
            )

        with _insert_after_uniqueness_check(session, session_factory, rival):
            with pytest.raises(DuplicateError):
                await identity.register_organization(req, session)
