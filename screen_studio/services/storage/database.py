"""
Recording metadata database: engine lifecycle and unit-of-work sessions.

The backend keeps one async engine per process. It is bound lazily from
``Settings.database_url`` (or explicitly through ``use_engine`` when a test
supplies its own in-memory engine). Route handlers open ``get_session()``,
which commits when the block exits cleanly and rolls back when it raises.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from screen_studio.core.config import get_settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for the recordings table."""


_engine: AsyncEngine | None = None
_sessions: async_sessionmaker[AsyncSession] | None = None


def sqlite_file(db_url: str) -> Path | None:
    """Return the file behind a SQLite URL, or None for in-memory and other backends."""
    url = make_url(db_url)
    if url.get_backend_name() != "sqlite" or url.database in (None, "", ":memory:"):
        return None
    return Path(url.database)


def use_engine(engine: AsyncEngine) -> None:
    """Make *engine* the process engine and bind a fresh session factory to it."""
    global _engine, _sessions
    _engine = engine
    _sessions = async_sessionmaker(engine, expire_on_commit=False)


def get_engine(url: str | None = None) -> AsyncEngine:
    """Return the process engine, creating it from *url* or settings on first use.

    A file-backed SQLite database gets its parent directory created so a
    fresh checkout can start the server without preparing ``data/``.
    """
    if _engine is None:
        db_url = url or get_settings().database_url
        path = sqlite_file(db_url)
        if path is not None:
            path.parent.mkdir(parents=True, exist_ok=True)
        use_engine(create_async_engine(db_url, echo=False))
        logger.debug("Database engine created for %s", make_url(db_url).render_as_string())
    return _engine


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    """One unit of work: commit on clean exit, roll back and re-raise on error."""
    if _sessions is None:
        get_engine()
    async with _sessions() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        await session.commit()


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Create the recordings table when it does not exist yet."""
    # Registers the ORM table on Base.metadata
    from screen_studio.services.storage import models_db  # noqa: F401

    async with (engine or get_engine()).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose the process engine (server shutdown)."""
    engine = _engine
    reset_engine()
    if engine is not None:
        await engine.dispose()


def reset_engine() -> None:
    """Forget the process engine without disposing it; the caller still owns it."""
    global _engine, _sessions
    _engine = None
    _sessions = None
