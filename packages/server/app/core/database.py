"""
Database engine and request-scoped sessions.

PostgreSQL (asyncpg) in deployment; SQLite (aiosqlite) works for local runs
and tests. The schema is owned by the Alembic migrations.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import get_settings

settings = get_settings()


def build_engine(database_url: str) -> AsyncEngine:
    kwargs = {"echo": settings.debug}
    if make_url(database_url).get_backend_name() == "postgresql":
        kwargs.update(pool_pre_ping=True, pool_size=10, max_overflow=20)
    return create_async_engine(database_url, **kwargs)


engine = build_engine(settings.database_url)

# Moderation jobs and the API share this factory; objects stay readable after
# commit because responses are built from them.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions. Commits when the handler succeeds."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
