"""
Abstract capture capability used by the capture session.

Backends (FFmpeg on the local desktop, fakes in tests) implement
``CaptureBackend`` so the session logic never touches real hardware.
The shapes mirror browser capture: a ``MediaStream`` of ``MediaTrack``
objects and a ``MediaEncoder`` that emits fragments on a fixed cadence.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from screen_studio.core.config import Settings

logger = logging.getLogger(__name__)

DataCallback = Callable[[bytes], None]


@dataclass(frozen=True)
class DisplayConstraints:
    """Requested screen capture; values are ideals, not hard requirements."""

    width: int = 1920
    height: int = 1080
    frame_rate: int = 30
    system_audio: bool = True


@dataclass(frozen=True)
class MicrophoneConstraints:
    """Requested microphone processing."""

    echo_cancellation: bool = True
    noise_suppression: bool = True
    sample_rate: int = 44100


@dataclass(frozen=True)
class CaptureOptions:
    """Everything a capture session needs to know about capture and encoding."""

    display: DisplayConstraints = DisplayConstraints()
    microphone: MicrophoneConstraints = MicrophoneConstraints()
    use_microphone: bool = True
    codec_preferences: tuple[str, ...] = (
        "video/webm;codecs=vp9,opus",
        "video/webm;codecs=vp8,opus",
        "video/webm",
    )
    video_bits_per_second: int = 2_500_000
    fragment_interval: float = 1.0

    @classmethod
    def from_settings(cls, settings: Settings, use_microphone: bool = True) -> "CaptureOptions":
        return cls(
            display=DisplayConstraints(
                width=settings.capture_width,
                height=settings.capture_height,
                frame_rate=settings.capture_frame_rate,
                system_audio=settings.capture_system_audio,
            ),
            microphone=MicrophoneConstraints(
                echo_cancellation=settings.microphone_echo_cancellation,
                noise_suppression=settings.microphone_noise_suppression,
                sample_rate=settings.microphone_sample_rate,
            ),
            use_microphone=use_microphone,
            codec_preferences=tuple(settings.codec_preferences),
            video_bits_per_second=settings.video_bits_per_second,
            fragment_interval=settings.fragment_interval,
        )


class MediaTrack(ABC):
    """One video or audio source.

    ``on_ended`` is invoked when the source goes away on its own (e.g. the
    user revoked screen sharing), never as a result of ``stop()``. An ended
    track still holds its device until ``stop()`` releases it.
    """

    def __init__(self, kind: str, label: str = "") -> None:
        self.kind = kind
        self.label = label
        self.on_ended: Callable[[], None] | None = None
        self._ended = False
        self._released = False

    @property
    def live(self) -> bool:
        return not (self._ended or self._released)

    @property
    def ended(self) -> bool:
        return self._ended

    @property
    def released(self) -> bool:
        return self._released

    def stop(self) -> None:
        """Release the underlying device exactly once; repeated calls are no-ops."""
        if self._released:
            return
        self._released = True
        self._release()

    def end(self) -> None:
        """Mark the source as ended externally and notify ``on_ended``."""
        if not self.live:
            return
        self._ended = True
        logger.info("%s track ended by source: %s", self.kind, self.label)
        if self.on_ended is not None:
            self.on_ended()

    @abstractmethod
    def _release(self) -> None:
        """Free the hardware or OS resource behind this track."""


class MediaStream:
    """An ordered bundle of tracks."""

    def __init__(self, tracks: Iterable[MediaTrack] = ()) -> None:
        self.tracks: list[MediaTrack] = list(tracks)

    @property
    def video_tracks(self) -> list[MediaTrack]:
        return [t for t in self.tracks if t.kind == "video"]

    @property
    def audio_tracks(self) -> list[MediaTrack]:
        return [t for t in self.tracks if t.kind == "audio"]

    @classmethod
    def combine(cls, *streams: "MediaStream | None") -> "MediaStream":
        return cls(track for stream in streams if stream is not None for track in stream.tracks)


class MediaEncoder(ABC):
    """Encodes a ``MediaStream`` and emits fragments via ``on_data_available``."""

    def __init__(self, stream: MediaStream, mime_type: str) -> None:
        self.stream = stream
        self.mime_type = mime_type
        self.on_data_available: DataCallback | None = None

    def _emit(self, fragment: bytes) -> None:
        if fragment and self.on_data_available is not None:
            self.on_data_available(fragment)

    @abstractmethod
    async def start(self, timeslice: float) -> None:
        """Begin encoding, emitting a fragment roughly every *timeslice* seconds."""

    @abstractmethod
    async def stop(self) -> None:
        """Stop encoding; every remaining fragment is emitted before this returns."""

    @abstractmethod
    def abort(self) -> None:
        """Stop immediately without waiting for buffered output (teardown)."""


class CaptureBackend(ABC):
    """Device and encoder capability consumed by ``CaptureSession``."""

    @abstractmethod
    async def acquire_display_capture(self, constraints: DisplayConstraints) -> MediaStream:
        """Return a stream with one video track (plus system audio if offered).

        Raises:
            DeviceAcquisitionError: If the screen cannot be captured.
        """

    @abstractmethod
    async def acquire_microphone(self, constraints: MicrophoneConstraints) -> MediaStream:
        """Return a stream with one microphone audio track.

        Raises:
            DeviceAcquisitionError: If no microphone is available or access is denied.
        """

    @abstractmethod
    def is_type_supported(self, mime_type: str) -> bool:
        """Whether ``create_encoder`` can produce *mime_type*."""

    @abstractmethod
    def create_encoder(
        self,
        stream: MediaStream,
        mime_type: str,
        video_bits_per_second: int,
    ) -> MediaEncoder:
        """Build (but do not start) an encoder for *stream*."""


def negotiate_mime_type(backend: CaptureBackend, preferences: Iterable[str]) -> str:
    """Pick the first supported MIME type; the last preference is the guaranteed fallback."""
    preferences = list(preferences)
    if not preferences:
        raise ValueError("codec preference list is empty")
    for mime_type in preferences:
        if backend.is_type_supported(mime_type):
            return mime_type
    logger.warning("No preferred codec supported, falling back to %s", preferences[-1])
    return preferences[-1]
