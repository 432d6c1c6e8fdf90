"""
Capture module - device/encoder abstraction layer.

Factory function for creating capture backends based on configuration.
"""

from .base import (
    CaptureBackend,
    CaptureOptions,
    DisplayConstraints,
    MediaEncoder,
    MediaStream,
    MediaTrack,
    MicrophoneConstraints,
    negotiate_mime_type,
)

__all__ = [
    "CaptureBackend",
    "CaptureOptions",
    "DisplayConstraints",
    "MediaEncoder",
    "MediaStream",
    "MediaTrack",
    "MicrophoneConstraints",
    "create_capture_backend",
    "negotiate_mime_type",
]


def create_capture_backend(provider: str = "ffmpeg", **kwargs) -> CaptureBackend:
    """Create a capture backend instance.

    Args:
        provider: Backend name (only "ffmpeg" for now).
        **kwargs: Backend-specific configuration.

    Raises:
        ValueError: If provider is unknown
    """
    if provider == "ffmpeg":
        from .ffmpeg import FFmpegCaptureBackend

        return FFmpegCaptureBackend(**kwargs)
    raise ValueError(f"Unknown capture provider: {provider}")
