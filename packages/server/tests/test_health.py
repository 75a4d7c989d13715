"""
Health check endpoint tests.
"""

import json

import pytest
import structlog
from httpx import AsyncClient, ASGITransport
from app.core.logging import configure_logging
from app.main import app


@pytest.fixture
async def client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    """Health endpoint should return status ok."""
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_ready_check(client: AsyncClient):
    """Ready endpoint should return status ready."""
    response = await client.get("/ready")
    assert response.status_code == 200
    assert response.json() == {"status": "ready"}


@pytest.mark.asyncio
async def test_api_root(client: AsyncClient):
    """API v1 root should return version and endpoint list."""
    response = await client.get("/api/v1/")
    assert response.status_code == 200
    data = response.json()
    assert data["api"] == "v1"
    assert "/groups" in data["endpoints"]
    assert "/videos" in data["endpoints"]


@pytest.mark.asyncio
async def test_security_headers_on_responses(client: AsyncClient):
    response = await client.get("/health")
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert "media-src 'self' blob:" in response.headers["Content-Security-Policy"]


def test_configure_logging_json(capsys):
    """JSON logging filters below the configured level."""
    configure_logging("info", "json")
    try:
        log = structlog.get_logger()
        log.debug("health.hidden")
        log.info("health.visible", video_id="v1")

        lines = capsys.readouterr().out.strip().splitlines()
        assert len(lines) == 1
        entry = json.loads(lines[0])
        assert entry["event"] == "health.visible"
        assert entry["level"] == "info"
        assert entry["video_id"] == "v1"
    finally:
        configure_logging()


def test_configure_logging_console_accepts_each_level():
    for level in ("debug", "info", "warning", "error"):
        configure_logging(level, "console")
    configure_logging()
