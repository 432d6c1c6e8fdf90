"""
Capture session — the lifecycle of one recording attempt.

States: idle -> requesting_devices -> recording -> stopped
        -> (uploading -> idle | stopped), plus reset -> idle.

The session owns the tracks, the encoder, the elapsed-time timer and the
accumulated fragments. Every command is gated on the current state, so
calling one from the wrong state is a no-op rather than an error. All work
happens on the caller's asyncio event loop; no locks are needed.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from pathlib import Path
from typing import Protocol

from screen_studio.client.api_client import APIError, ProgressCallback
from screen_studio.client.capture.base import (
    CaptureBackend,
    CaptureOptions,
    MediaEncoder,
    MediaStream,
    MediaTrack,
    negotiate_mime_type,
)
from screen_studio.client.timer import IntervalTimer
from screen_studio.core.exceptions import InvalidTransitionError
from screen_studio.core.utils import download_filename, upload_filename

logger = logging.getLogger(__name__)


class SessionState(StrEnum):
    """Lifecycle states of a capture session."""

    IDLE = "idle"
    REQUESTING_DEVICES = "requesting_devices"
    RECORDING = "recording"
    STOPPED = "stopped"
    UPLOADING = "uploading"


_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.IDLE: frozenset({SessionState.REQUESTING_DEVICES}),
    SessionState.REQUESTING_DEVICES: frozenset({SessionState.RECORDING, SessionState.IDLE}),
    SessionState.RECORDING: frozenset({SessionState.STOPPED}),
    SessionState.STOPPED: frozenset({SessionState.UPLOADING, SessionState.IDLE}),
    SessionState.UPLOADING: frozenset({SessionState.IDLE, SessionState.STOPPED}),
}


@dataclass(frozen=True)
class Artifact:
    """The playable media produced once recording stops."""

    data: bytes
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.data)


class RecordingUploader(Protocol):
    """The part of ``APIClient`` the session needs."""

    async def upload_recording(
        self,
        data: bytes,
        filename: str,
        mime_type: str = ...,
        on_progress: ProgressCallback | None = ...,
    ) -> object: ...


class CaptureSession:
    """Explicit state machine for a single screen recording.

    Args:
        backend: Device/encoder capability.
        uploader: Sends the finished artifact to the backend.
        options: Capture constraints, codec preferences and fragment cadence.
        timer: Elapsed-time ticker; defaults to a 1-second ``IntervalTimer``.
        on_upload_success: Called after a successful upload, before the
            session clears itself (catalog refresh trigger).
        on_change: Called after every observable change so a UI can redraw.
    """

    def __init__(
        self,
        backend: CaptureBackend,
        uploader: RecordingUploader,
        options: CaptureOptions | None = None,
        timer: IntervalTimer | None = None,
        on_upload_success: Callable[[], None] | None = None,
        on_change: Callable[["CaptureSession"], None] | None = None,
    ) -> None:
        self._backend = backend
        self._uploader = uploader
        self._options = options or CaptureOptions()
        self._timer = timer or IntervalTimer(1.0)
        self._on_upload_success = on_upload_success
        self._on_change = on_change

        self._state = SessionState.IDLE
        self._elapsed = 0
        self._fragments: list[bytes] = []
        self._artifact: Artifact | None = None
        self._upload_progress = 0
        self._error: str | None = None

        self._tracks: list[MediaTrack] = []
        self._encoder: MediaEncoder | None = None
        self._closed = False
        self._stopping = False
        self._stop_task: asyncio.Task | None = None
        self._stopped = asyncio.Event()
        self._stopped.set()

    # ------------------------------------------------------------------
    # Read-only view
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def elapsed(self) -> int:
        return self._elapsed

    @property
    def fragments(self) -> tuple[bytes, ...]:
        return tuple(self._fragments)

    @property
    def artifact(self) -> Artifact | None:
        return self._artifact

    @property
    def upload_progress(self) -> int:
        return self._upload_progress

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def can_upload(self) -> bool:
        return self._state is SessionState.STOPPED and bool(self._fragments)

    @property
    def can_download(self) -> bool:
        return self._artifact is not None

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def start(self) -> bool:
        """Acquire devices and begin recording.

        Returns:
            True if the session is now recording; False if the command was
            ignored (not idle) or failed (``error`` explains why).
        """
        if self._state is not SessionState.IDLE or self._closed:
            return False

        self._error = None
        self._transition(SessionState.REQUESTING_DEVICES)

        try:
            screen = await self._backend.acquire_display_capture(self._options.display)
        except Exception as exc:
            logger.error("Error starting recording: %s", exc)
            self._error = f"Failed to start recording: {exc}"
            self._transition(SessionState.IDLE)
            return False

        microphone = None
        if self._options.use_microphone:
            try:
                microphone = await self._backend.acquire_microphone(self._options.microphone)
            except Exception as exc:
                logger.warning("Microphone access denied, recording without mic audio: %s", exc)

        combined = MediaStream.combine(screen, microphone)
        self._tracks = list(combined.tracks)

        if self._closed:
            # Torn down while the device prompts were pending
            self._release_tracks()
            self._transition(SessionState.IDLE)
            return False

        mime_type = negotiate_mime_type(self._backend, self._options.codec_preferences)
        try:
            encoder = self._backend.create_encoder(
                combined, mime_type, self._options.video_bits_per_second
            )
            encoder.on_data_available = self._on_data_available
            await encoder.start(self._options.fragment_interval)
        except Exception as exc:
            logger.error("Error starting encoder (%s): %s", mime_type, exc)
            self._release_tracks()
            self._error = f"Failed to start recording: {exc}"
            self._transition(SessionState.IDLE)
            return False

        self._encoder = encoder
        for track in combined.video_tracks[:1]:
            track.on_ended = self._on_source_ended

        self._fragments = []
        self._artifact = None
        self._elapsed = 0
        self._stopped.clear()
        self._transition(SessionState.RECORDING)
        self._timer.start(self._tick)
        logger.info("Recording started (%s, %d tracks)", mime_type, len(self._tracks))
        return True

    async def stop(self) -> bool:
        """Stop recording, release every track and build the artifact.

        The encoder is drained first, so the fragments it flushes on the
        way out still belong to this recording.

        Returns:
            True if a recording was stopped; False if there was none or a
            stop is already in progress.
        """
        if self._state is not SessionState.RECORDING or self._stopping:
            return False

        self._stopping = True
        self._timer.cancel()
        encoder = self._encoder
        try:
            if encoder is not None:
                await encoder.stop()
        except Exception as exc:
            logger.error("Encoder did not stop cleanly: %s", exc)
        finally:
            self._stopping = False

        self._release_tracks()
        mime_type = encoder.mime_type if encoder is not None else "video/webm"
        self._encoder = None
        self._artifact = Artifact(data=b"".join(self._fragments), mime_type=_base_type(mime_type))
        self._transition(SessionState.STOPPED)
        self._stopped.set()
        logger.info(
            "Recording stopped after %ds: %d fragments, %d bytes",
            self._elapsed,
            len(self._fragments),
            self._artifact.size,
        )
        return True

    async def upload(self) -> bool:
        """Upload the artifact; only valid when stopped with at least one fragment.

        Returns:
            True on success (session is idle and cleared); False if the
            command was ignored or the upload failed (``error`` is set and
            the artifact is kept for retry or download).
        """
        if not self.can_upload or self._artifact is None:
            return False

        self._upload_progress = 0
        self._error = None
        self._transition(SessionState.UPLOADING)

        try:
            await self._uploader.upload_recording(
                self._artifact.data,
                filename=upload_filename(),
                mime_type=self._artifact.mime_type,
                on_progress=self._on_upload_progress,
            )
        except APIError as exc:
            logger.error("Upload failed: %s", exc.message)
            return self._upload_failed(exc.message)
        except Exception as exc:
            logger.exception("Unexpected error during upload")
            return self._upload_failed(str(exc) or type(exc).__name__)

        logger.info("Recording uploaded successfully (%d bytes)", self._artifact.size)
        if self._on_upload_success is not None:
            self._on_upload_success()
        self._clear()
        self._transition(SessionState.IDLE)
        return True

    async def reset(self) -> bool:
        """Discard the current recording without uploading.

        Ignored while devices are being requested, a stop is draining or an
        upload is running. A running recording is stopped first so its
        devices are released.
        """
        if self._state in (SessionState.REQUESTING_DEVICES, SessionState.UPLOADING):
            return False
        if self._stopping:
            return False
        if self._state is SessionState.RECORDING:
            await self.stop()
        self._clear()
        if self._state is not SessionState.IDLE:
            self._transition(SessionState.IDLE)
        else:
            self._notify()
        return True

    def download(self, directory: str | Path, now: datetime | None = None) -> Path | None:
        """Write the artifact to *directory*; returns the file path, or None without one."""
        if self._artifact is None:
            return None
        target_dir = Path(directory)
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / download_filename(now)
        path.write_bytes(self._artifact.data)
        logger.info("Saved recording to %s", path)
        return path

    def close(self) -> None:
        """Teardown hook: cancel the timer and release any still-open tracks.

        Unconditional and idempotent; this is not a state transition.
        """
        self._closed = True
        self._timer.cancel()
        if self._encoder is not None:
            self._encoder.abort()
            self._encoder = None
        self._release_tracks()
        self._stopped.set()

    async def wait_stopped(self) -> None:
        """Block until the current recording stops (returns at once when not recording)."""
        await self._stopped.wait()

    async def __aenter__(self) -> "CaptureSession":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def _on_data_available(self, fragment: bytes) -> None:
        if self._state is not SessionState.RECORDING or not fragment:
            return
        self._fragments.append(fragment)
        self._notify()

    def _on_source_ended(self) -> None:
        if self._state is not SessionState.RECORDING or self._stopping:
            return
        logger.info("Screen sharing ended externally, stopping recording")
        self._stop_task = asyncio.get_running_loop().create_task(self.stop())

    def _on_upload_progress(self, loaded: int, total: int) -> None:
        if total <= 0:
            return
        percent = min(round(loaded * 100 / total), 100)
        if percent > self._upload_progress:
            self._upload_progress = percent
            self._notify()

    def _tick(self) -> None:
        if self._state is SessionState.RECORDING:
            self._elapsed += 1
            self._notify()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _transition(self, target: SessionState) -> None:
        if target not in _TRANSITIONS[self._state]:
            raise InvalidTransitionError(self._state.value, target.value)
        logger.debug("Session %s -> %s", self._state.value, target.value)
        self._state = target
        self._notify()

    def _upload_failed(self, reason: str) -> bool:
        self._error = f"Upload failed: {reason}"
        self._upload_progress = 0
        self._transition(SessionState.STOPPED)
        return False

    def _release_tracks(self) -> None:
        tracks, self._tracks = self._tracks, []
        for track in tracks:
            track.on_ended = None
            track.stop()

    def _clear(self) -> None:
        self._fragments = []
        self._artifact = None
        self._upload_progress = 0
        self._error = None
        self._elapsed = 0

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self)


def _base_type(mime_type: str) -> str:
    """``"video/webm;codecs=vp9,opus" -> "video/webm"``."""
    return mime_type.split(";", 1)[0].strip() or "video/webm"
