"""Integration test fixtures for Screen Studio.

Provides an async HTTP client bound to the FastAPI app, backed by an
in-memory SQLite database and a temporary uploads directory.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from screen_studio.api.app import create_app
from screen_studio.services.storage import database


@pytest.fixture
def app(test_settings):
    """Create a fresh FastAPI application instance."""
    return create_app(test_settings)


@pytest.fixture
async def async_client(app, db_engine):
    """AsyncClient backed by the in-memory test engine.

    Injects the test engine into the database module so that all routes
    use the same in-memory SQLite with tables already created.
    """
    database.use_engine(db_engine)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    database.reset_engine()
