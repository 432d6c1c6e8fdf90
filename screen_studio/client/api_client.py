"""
Asynchronous HTTP client for the Screen Studio backend API.

Uses ``httpx.AsyncClient`` because the capture session, the catalog and
the UIs all run on a single asyncio event loop.
"""

import logging
from collections.abc import AsyncIterator, Callable

import httpx
from pydantic import ValidationError

from screen_studio.core.models import RecordingRecord
from screen_studio.core.utils import recording_url

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

_UPLOAD_CHUNK_SIZE = 64 * 1024


class APIError(Exception):
    """User-friendly API error with categorized message.

    Categories: "connection", "timeout", "http", "network", "api", "unknown".
    "api" means the server answered but reported ``success: false``.
    """

    def __init__(self, message: str, category: str = "unknown") -> None:
        self.message = message
        self.category = category
        super().__init__(message)


class APIClient:
    """Thin asynchronous wrapper around httpx for calling the FastAPI backend.

    All methods return parsed models/dicts or raise ``APIError`` with
    user-friendly messages for display in the UI.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:5000",
        timeout: float = 30.0,
        upload_timeout: float = 600.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the HTTP client.

        Args:
            base_url: Base URL of the Screen Studio backend.
            timeout: Default per-request timeout in seconds.
            upload_timeout: Timeout applied to the multipart upload.
            transport: Optional transport override (e.g. ``httpx.MockTransport``).
        """
        self._base_url = base_url.rstrip("/")
        self._upload_timeout = upload_timeout
        self._client = httpx.AsyncClient(
            base_url=self._base_url, timeout=timeout, transport=transport
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def __aenter__(self) -> "APIClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Execute an HTTP request with user-friendly error handling.

        Args:
            method: HTTP method name ("get", "post", "delete").
            path: Endpoint path (e.g. "/api/recordings/3").
            **kwargs: Passed through to httpx (content, headers, timeout, etc.).

        Returns:
            The httpx Response object with a successful status code.

        Raises:
            APIError: On connection, timeout, HTTP status, or network errors.
        """
        try:
            resp = await self._client.request(method.upper(), path, **kwargs)
            resp.raise_for_status()
            return resp
        except httpx.ConnectError:
            raise APIError(
                "Backend server is not running. Start it with: `screen-studio serve`",
                category="connection",
            ) from None
        except httpx.TimeoutException:
            raise APIError(
                "Request timed out. The server may be overloaded.",
                category="timeout",
            ) from None
        except httpx.HTTPStatusError as exc:
            try:
                detail = exc.response.json().get("error") or exc.response.text
            except ValueError:
                detail = exc.response.text or str(exc)
            raise APIError(str(detail), category="http") from None
        except httpx.HTTPError as exc:
            raise APIError(f"Network error: {exc}", category="network") from None

    @staticmethod
    def _unwrap(resp: httpx.Response, fallback: str) -> dict:
        """Return the JSON envelope, raising ``APIError`` unless ``success`` is true."""
        try:
            body = resp.json()
        except ValueError:
            raise APIError(fallback, category="api") from None
        if not isinstance(body, dict):
            raise APIError(fallback, category="api")
        if not body.get("success"):
            raise APIError(body.get("error") or fallback, category="api")
        return body

    @staticmethod
    def _records(payload: object, fallback: str) -> list[RecordingRecord]:
        """Validate one record or a list of them, raising ``APIError`` on bad shapes."""
        items = payload if isinstance(payload, list) else [payload]
        try:
            return [RecordingRecord.model_validate(item) for item in items]
        except ValidationError as exc:
            logger.error("Malformed recording payload: %s", exc)
            raise APIError(f"{fallback}: malformed server response", category="api") from None

    # -- health --

    async def health_check(self) -> dict:
        return (await self._request("get", "/health")).json()

    async def check_connection(self) -> tuple[bool, str]:
        """Check if the backend is reachable. Returns (ok, message)."""
        try:
            await self.health_check()
            return True, "Connected"
        except APIError as exc:
            return False, exc.message

    # -- recordings --

    async def list_recordings(self) -> list[RecordingRecord]:
        body = self._unwrap(await self._request("get", "/"), "Failed to fetch recordings")
        data = body.get("data") or []
        if not isinstance(data, list):
            raise APIError("Failed to fetch recordings: malformed server response", category="api")
        return self._records(data, "Failed to fetch recordings")

    async def upload_recording(
        self,
        data: bytes,
        filename: str,
        mime_type: str = "video/webm",
        on_progress: ProgressCallback | None = None,
    ) -> RecordingRecord | None:
        """Upload one recording as a single multipart ``recording`` field.

        The multipart body is encoded up front so the total payload size is
        known; ``on_progress(sent, total)`` fires as each chunk is handed to
        the transport.
        """
        encoded = self._client.build_request(
            "POST", "/", files={"recording": (filename, data, mime_type)}
        )
        payload = encoded.read()
        total = len(payload)

        async def _body() -> AsyncIterator[bytes]:
            sent = 0
            for offset in range(0, total, _UPLOAD_CHUNK_SIZE):
                chunk = payload[offset : offset + _UPLOAD_CHUNK_SIZE]
                yield chunk
                sent += len(chunk)
                if on_progress is not None:
                    on_progress(sent, total)

        resp = await self._request(
            "post",
            "/",
            content=_body(),
            headers={
                "Content-Type": encoded.headers["Content-Type"],
                "Content-Length": str(total),
            },
            timeout=self._upload_timeout,
        )
        body = self._unwrap(resp, "Upload failed")
        logger.info("Uploaded %s (%d bytes)", filename, len(data))
        data_field = body.get("data")
        return self._records(data_field, "Upload failed")[0] if data_field else None

    async def delete_recording(self, recording_id: int) -> dict:
        resp = await self._request("delete", f"/api/recordings/{recording_id}")
        return self._unwrap(resp, "Failed to delete recording")

    async def fetch_recording(self, filename: str) -> bytes:
        """Fetch a stored recording's raw bytes."""
        return (await self._request("get", f"/uploads/{filename}")).content

    def recording_url(self, filename: str) -> str:
        return recording_url(self._base_url, filename)
