"""
FastAPI application factory.

``create_app()`` assembles the application with CORS, error handlers,
routers, and the health endpoint. The module-level ``app`` instance
allows ``uvicorn screen_studio.api.app:app --reload --port 5000``.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from screen_studio.api.middleware.error_handler import register_error_handlers
from screen_studio.api.routes import recording
from screen_studio.core.config import Settings, get_settings
from screen_studio.core.models import HealthResponse
from screen_studio.services.storage.database import close_db, get_engine, init_db


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application startup and shutdown lifecycle.

    Startup: create the uploads directory and the SQLite tables.
    Shutdown: dispose the DB engine.
    """
    settings: Settings = app.state.settings
    Path(settings.uploads_dir).mkdir(parents=True, exist_ok=True)
    await init_db(get_engine(settings.database_url))
    yield
    await close_db()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build and return a fully configured FastAPI application.

    Args:
        settings: Explicit configuration; falls back to ``get_settings()``.

    Returns:
        FastAPI: The configured application, ready for ``uvicorn``.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Screen Studio",
        description="Upload, list and delete screen recordings.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # -- CORS --
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -- Error handlers --
    register_error_handlers(app)

    # -- Health check --
    @app.get("/health", response_model=HealthResponse, tags=["system"])
    async def health() -> HealthResponse:
        return HealthResponse(timestamp=datetime.now(UTC))

    # -- REST routes (list/upload live at the root path) --
    app.include_router(recording.router)

    return app


app = create_app()
