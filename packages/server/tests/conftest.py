"""
Shared fixtures: a throwaway SQLite database per test, account factories, a
recording notifier, a scripted classifier and an HTTP client wired to them.
"""

from __future__ import annotations

import asyncio
import os
import tempfile
import uuid
from collections.abc import AsyncGenerator
from typing import Any, Optional
from unittest.mock import AsyncMock, patch

# Settings are read once at import time; configure before importing the app.
_TMP = tempfile.mkdtemp(prefix="videoconnect-tests-")
os.environ.setdefault("VC_DATABASE_URL", f"sqlite+aiosqlite:///{_TMP}/app.db")
os.environ.setdefault("VC_UPLOAD_DIR", os.path.join(_TMP, "uploads"))
os.environ.setdefault("VC_SECRET_KEY", "test-secret-key")
os.environ.setdefault("VC_BCRYPT_ROUNDS", "4")
os.environ.setdefault("VC_MODERATION_BACKEND", "local")
os.environ.setdefault("VC_MODERATION_SERVICE_URL", "")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

import app.models  # noqa: F401  (populate metadata)
from app.core.auth import create_jwt, hash_password
from app.core.database import get_session
from app.core.storage import LocalFileStorage, get_storage
from app.main import app as fastapi_app
from app.models.group import Group, GroupMembership
from app.models.organization import Organization
from app.models.user import User
from app.models.video import Video, VideoGroupAccess
from app.services.classifiers import ClassifierVerdict
from app.services.moderation import LocalModerationQueue, ModerationWorkflow
from videoconnect_shared.schemas.common import AccountKind, Role, VideoStatus


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------

class RecordingNotifier:
    """Notification channel that remembers every emitted event."""

    def __init__(self) -> None:
        self.events: list[tuple[str, str, dict[str, Any]]] = []

    async def emit(self, identity_id, event: str, payload: dict[str, Any]) -> None:
        self.events.append((str(identity_id), event, payload))

    def named(self, event: str) -> list[tuple[str, dict[str, Any]]]:
        return [(room, payload) for room, name, payload in self.events if name == event]


class ScriptedClassifier:
    """Classifier returning a fixed verdict, raising, or hanging."""

    def __init__(
        self,
        verdict: Optional[ClassifierVerdict] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ) -> None:
        self.verdict = verdict or ClassifierVerdict(is_safe=True, confidence=92, labels=[])
        self.error = error
        self.delay = delay
        self.calls: list[str] = []

    async def analyze(self, file_path: str) -> ClassifierVerdict:
        self.calls.append(file_path)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.verdict


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/test.db")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as s:
        yield s


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_user(session):
    async def _make(
        name: str = "User",
        organization_id: Optional[uuid.UUID] = None,
        password: str = "password123",
    ) -> User:
        suffix = uuid.uuid4().hex[:8]
        user = User(
            name=name,
            username=f"{name.lower().replace(' ', '')}-{suffix}",
            email=f"{name.lower().replace(' ', '.')}.{suffix}@example.com",
            password_hash=hash_password(password),
            organization_id=organization_id,
        )
        session.add(user)
        await session.commit()
        return user

    return _make


@pytest.fixture
def make_org(session):
    async def _make(name: str = "Org", password: str = "password123") -> Organization:
        code = f"ORG{uuid.uuid4().hex[:6].upper()}"
        org = Organization(
            name=name,
            org_code=code,
            email=f"{code.lower()}@example.com",
            password_hash=hash_password(password),
            mobile="+1-555-0100",
        )
        session.add(org)
        await session.commit()
        return org

    return _make


@pytest.fixture
def make_group(session):
    async def _make(creator: User, members: list[User] = (), name: str = "Team") -> Group:
        group = Group(name=name, created_by=creator.id)
        session.add(group)
        await session.flush()
        for user_id in {creator.id, *(m.id for m in members)}:
            session.add(GroupMembership(group_id=group.id, user_id=user_id))
        await session.commit()
        return group

    return _make


@pytest.fixture
def make_video(session, tmp_path):
    async def _make(
        owner: User,
        name: str = "Clip",
        group_access: list[tuple[Group, Role]] = (),
        org_access: Optional[Role] = None,
        status: VideoStatus = VideoStatus.SAFE,
        content: bytes = b"",
    ) -> Video:
        path = tmp_path / f"{uuid.uuid4().hex}.mp4"
        path.write_bytes(content)
        video = Video(
            filename="clip.mp4",
            file_path=str(path),
            video_type="video/mp4",
            file_size=len(content),
            name=name,
            status=status.value,
            owner_id=owner.id,
            org_access_enabled=org_access is not None,
            org_access_role=(org_access or Role.VIEWER).value,
        )
        session.add(video)
        await session.flush()
        for position, (group, role) in enumerate(group_access):
            session.add(
                VideoGroupAccess(video_id=video.id, group_id=group.id, role=role.value, position=position)
            )
        await session.commit()
        return video

    return _make


@pytest.fixture
def auth_headers():
    def _headers(account, kind: AccountKind = AccountKind.USER) -> dict[str, str]:
        token, _ = create_jwt(account.id, kind)
        return {"Authorization": f"Bearer {token}"}

    return _headers


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def classifier() -> ScriptedClassifier:
    return ScriptedClassifier()


@pytest.fixture
def storage(tmp_path) -> LocalFileStorage:
    return LocalFileStorage(str(tmp_path / "uploads"), max_bytes=1024 * 1024)


@pytest.fixture
def moderation_queue(classifier, notifier, session_factory) -> LocalModerationQueue:
    return LocalModerationQueue(
        ModerationWorkflow(
            classifier=classifier,
            notifier=notifier,
            session_factory=session_factory,
            timeout_seconds=5,
        )
    )


@pytest.fixture
async def client(session_factory, storage, notifier, moderation_queue):
    """HTTP client against the real app with test collaborators injected."""

    async def _get_session():
        async with session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    fastapi_app.dependency_overrides[get_session] = _get_session
    fastapi_app.dependency_overrides[get_storage] = lambda: storage
    previous = (fastapi_app.state.notifier, fastapi_app.state.moderation_queue)
    fastapi_app.state.notifier = notifier
    fastapi_app.state.moderation_queue = moderation_queue

    with patch("app.core.auth.is_jwt_revoked", AsyncMock(return_value=False)):
        async with AsyncClient(
            transport=ASGITransport(app=fastapi_app), base_url="http://test"
        ) as ac:
            yield ac

    await moderation_queue.drain()
    fastapi_app.state.notifier, fastapi_app.state.moderation_queue = previous
    fastapi_app.dependency_overrides.clear()
