"""
Global error handling middleware for the FastAPI application.

Catches ScreenStudioError subclasses, Pydantic validation errors, and
unhandled exceptions, converting them into the ``{success: false, error}``
envelope every client reads.
"""

import logging
from datetime import UTC, datetime

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from screen_studio.core.exceptions import ScreenStudioError

logger = logging.getLogger(__name__)


def _error_body(error: str, code: str, timestamp: str | None = None) -> dict:
    return {
        "success": False,
        "error": error,
        "code": code,
        "timestamp": timestamp or datetime.now(UTC).isoformat(),
    }


def register_error_handlers(app: FastAPI) -> None:
    """Attach exception handlers to the FastAPI application.

    Registers three handlers in priority order:
    1. ``ScreenStudioError`` — maps domain errors to structured JSON responses.
    2. ``RequestValidationError`` — malformed body/params, e.g. a missing
       ``recording`` multipart field (422).
    3. ``Exception`` — catch-all for unexpected server errors (500).

    Args:
        app: The FastAPI application instance to register handlers on.
    """

    @app.exception_handler(ScreenStudioError)
    async def screen_studio_error_handler(
        _request: Request, exc: ScreenStudioError
    ) -> JSONResponse:
        """Convert domain-specific errors into a JSON error envelope."""
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.detail, exc.code, exc.timestamp),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        _request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle Pydantic request validation errors."""
        return JSONResponse(
            status_code=422,
            content=_error_body(str(exc), "VALIDATION_ERROR"),
        )

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all handler — prevents stack traces from leaking to clients."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content=_error_body("Internal server error", "INTERNAL_ERROR"),
        )
