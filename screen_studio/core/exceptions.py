"""
Screen Studio exception hierarchy.

All application-specific exceptions inherit from ScreenStudioError,
enabling centralized error handling in the API middleware layer and
uniform error messages in the client.
"""

from datetime import UTC, datetime


class ScreenStudioError(Exception):
    """Base exception for all Screen Studio errors."""

    def __init__(
        self,
        detail: str = "An unexpected error occurred",
        code: str = "SCREEN_STUDIO_ERROR",
        status_code: int = 500,
    ) -> None:
        self.detail = detail
        self.code = code
        self.status_code = status_code
        self.timestamp = datetime.now(UTC).isoformat()
        super().__init__(detail)


# ---------------------------------------------------------------------------
# Backend
# ---------------------------------------------------------------------------


class RecordingNotFoundError(ScreenStudioError):
    """Raised when a recording ID or stored file does not exist."""

    def __init__(self, recording_id: int | str) -> None:
        super().__init__(
            detail=f"Recording not found: {recording_id}",
            code="RECORDING_NOT_FOUND",
            status_code=404,
        )


class InvalidUploadError(ScreenStudioError):
    """Raised when an upload is missing its file or has an unsupported type."""

    def __init__(self, detail: str = "Invalid upload") -> None:
        super().__init__(detail=detail, code="INVALID_UPLOAD", status_code=400)


class UploadTooLargeError(ScreenStudioError):
    """Raised when an upload exceeds the configured size limit."""

    def __init__(self, limit_mb: int) -> None:
        super().__init__(
            detail=f"File too large (limit {limit_mb} MB)",
            code="UPLOAD_TOO_LARGE",
            status_code=413,
        )


class StorageError(ScreenStudioError):
    """Raised when the file store cannot be written or read."""

    def __init__(self, detail: str = "Storage operation failed") -> None:
        super().__init__(detail=detail, code="STORAGE_ERROR", status_code=500)


# ---------------------------------------------------------------------------
# Capture
# ---------------------------------------------------------------------------


class CaptureError(ScreenStudioError):
    """Base class for capture-side failures (devices, encoder)."""

    def __init__(self, detail: str = "Capture failed", code: str = "CAPTURE_ERROR") -> None:
        super().__init__(detail=detail, code=code, status_code=500)


class DeviceAcquisitionError(CaptureError):
    """Raised when a display or microphone stream cannot be acquired."""

    def __init__(self, detail: str = "Could not acquire capture device") -> None:
        super().__init__(detail=detail, code="DEVICE_ACQUISITION_ERROR")


class EncoderError(CaptureError):
    """Raised when the media encoder cannot be created or started."""

    def __init__(self, detail: str = "Encoder failed") -> None:
        super().__init__(detail=detail, code="ENCODER_ERROR")


class InvalidTransitionError(CaptureError):
    """Raised when the capture session is asked to make an illegal state change."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(
            detail=f"Invalid session transition: {current} -> {target}",
            code="INVALID_TRANSITION",
        )
