"""Shared pytest fixtures for the Screen Studio test suite.

Provides the in-memory database engine, a repository bound to it, and
``Settings`` pointing at temporary directories.
"""

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from screen_studio.core.config import Settings
from screen_studio.services.storage.database import init_db
from screen_studio.services.storage.repository import RecordingRepository

# ---------------------------------------------------------------------------
# Database Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def db_engine():
    """In-memory SQLite engine with all tables created.

    ``StaticPool`` keeps a single connection so every session sees the
    same in-memory database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def repository(db_engine):
    """A ``RecordingRepository`` on a session that is committed after the test."""
    factory = async_sessionmaker(db_engine, expire_on_commit=False)
    async with factory() as session:
        yield RecordingRepository(session)
        await session.commit()


# ---------------------------------------------------------------------------
# Settings Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def test_settings(tmp_path):
    """Settings that keep uploads and downloads inside ``tmp_path``."""
    return Settings(
        uploads_dir=str(tmp_path / "uploads"),
        downloads_dir=str(tmp_path / "downloads"),
        database_url="sqlite+aiosqlite://",
        max_upload_mb=1,
        _env_file=None,
    )
