"""
FFmpeg capture backend - records the local desktop with ffmpeg.

Platform-specific screen grabbing:
- Linux: x11grab (+ PulseAudio for microphone / system audio monitor)
- macOS: avfoundation
- Windows: gdigrab (+ DirectShow for the microphone)

Each acquired device becomes an ``FFmpegTrack`` holding its ffmpeg input
arguments. The encoder runs one ffmpeg process over all tracks, muxes WebM
to stdout and emits whatever bytes arrived every ``timeslice`` seconds.
If ffmpeg exits on its own (display closed, device unplugged) the video
track reports ``ended``, which the session treats like a stop command.
"""

import asyncio
import logging
import os
import shutil
import subprocess
import sys
from collections.abc import Callable

from screen_studio.client.capture.base import (
    CaptureBackend,
    DisplayConstraints,
    MediaEncoder,
    MediaStream,
    MediaTrack,
    MicrophoneConstraints,
)
from screen_studio.core.exceptions import DeviceAcquisitionError, EncoderError

logger = logging.getLogger(__name__)

_READ_SIZE = 64 * 1024

# WebM codec name -> ffmpeg encoder
VIDEO_ENCODERS = {"vp9": "libvpx-vp9", "vp8": "libvpx", "av1": "libaom-av1"}
AUDIO_ENCODERS = {"opus": "libopus", "vorbis": "libvorbis"}


def parse_mime_type(mime_type: str) -> tuple[str, list[str]]:
    """``"video/webm;codecs=vp9,opus" -> ("video/webm", ["vp9", "opus"])``."""
    base, _, params = mime_type.partition(";")
    codecs: list[str] = []
    for param in params.split(";"):
        key, _, value = param.strip().partition("=")
        if key.strip().lower() == "codecs":
            codecs = [c.strip().strip('"').lower() for c in value.split(",") if c.strip()]
    return base.strip().lower(), codecs


def _parse_probe_names(output: str) -> dict[str, str]:
    """Map name -> flags for ``ffmpeg -encoders`` / ``ffmpeg -devices`` listings."""
    names: dict[str, str] = {}
    in_table = False
    for line in output.splitlines():
        stripped = line.strip()
        if not in_table:
            in_table = stripped.startswith("--")
            continue
        parts = stripped.split()
        if len(parts) >= 2:
            names[parts[1]] = parts[0]
    return names


class FFmpegTrack(MediaTrack):
    """A device expressed as ffmpeg input arguments."""

    def __init__(
        self,
        kind: str,
        label: str,
        input_args: list[str],
        filters: tuple[str, ...] = (),
    ) -> None:
        super().__init__(kind, label)
        self.input_args = input_args
        self.filters = filters
        self.release_hook: Callable[[], None] | None = None

    def _release(self) -> None:
        logger.debug("Releasing %s track: %s", self.kind, self.label)
        if self.release_hook is not None:
            self.release_hook()


class FFmpegEncoder(MediaEncoder):
    """Runs ffmpeg over every track and slices its WebM output into fragments."""

    def __init__(
        self,
        ffmpeg: str,
        stream: MediaStream,
        mime_type: str,
        video_bits_per_second: int,
        display: DisplayConstraints,
        drain_timeout: float = 5.0,
    ) -> None:
        super().__init__(stream, mime_type)
        self._ffmpeg = ffmpeg
        self._drain_timeout = drain_timeout
        self._video_bits = video_bits_per_second
        self._display = display
        self._process: asyncio.subprocess.Process | None = None
        self._buffer = bytearray()
        self._reader: asyncio.Task | None = None
        self._flusher: asyncio.Task | None = None
        self._reaper: asyncio.Task | None = None
        self._stopping = False
        for track in stream.tracks:
            if isinstance(track, FFmpegTrack):
                track.release_hook = self._terminate

    def build_command(self) -> list[str]:
        """Assemble the ffmpeg argument list for the current stream and codecs."""
        video = [t for t in self.stream.video_tracks if isinstance(t, FFmpegTrack)]
        audio = [t for t in self.stream.audio_tracks if isinstance(t, FFmpegTrack)]
        if not video:
            raise EncoderError("No video track to encode")

        cmd = [self._ffmpeg, "-hide_banner", "-loglevel", "error", "-nostdin"]
        inputs = [video[0], *audio]
        for track in inputs:
            cmd += track.input_args

        width, height = self._display.width, self._display.height
        graph = [
            f"[0:v]scale={width}:{height}:force_original_aspect_ratio=decrease,"
            f"scale=trunc(iw/2)*2:trunc(ih/2)*2[vout]"
        ]
        audio_labels = []
        for position, track in enumerate(audio, start=1):
            if track.filters:
                graph.append(f"[{position}:a]{','.join(track.filters)}[a{position}]")
                audio_labels.append(f"[a{position}]")
            else:
                audio_labels.append(f"[{position}:a]")

        audio_map: str | None = None
        if len(audio_labels) > 1:
            mixed = "".join(audio_labels)
            graph.append(f"{mixed}amix=inputs={len(audio_labels)}:duration=longest[aout]")
            audio_map = "[aout]"
        elif audio_labels:
            label = audio_labels[0]
            # Unfiltered single input is mapped directly, outside the graph
            audio_map = label if label.startswith("[a") else label.strip("[]")

        cmd += ["-filter_complex", ";".join(graph), "-map", "[vout]"]
        if audio_map is not None:
            cmd += ["-map", audio_map]

        _, codecs = parse_mime_type(self.mime_type)
        video_codec = next((VIDEO_ENCODERS[c] for c in codecs if c in VIDEO_ENCODERS), None)
        audio_codec = next((AUDIO_ENCODERS[c] for c in codecs if c in AUDIO_ENCODERS), None)
        if video_codec:
            cmd += ["-c:v", video_codec]
            if video_codec.startswith("libvpx"):
                cmd += ["-deadline", "realtime", "-cpu-used", "8"]
        cmd += ["-b:v", str(self._video_bits)]
        if audio_map is None:
            cmd += ["-an"]
        elif audio_codec:
            cmd += ["-c:a", audio_codec]

        cmd += ["-f", "webm", "pipe:1"]
        return cmd

    async def start(self, timeslice: float) -> None:
        cmd = self.build_command()
        logger.debug("Starting ffmpeg: %s", " ".join(cmd))
        try:
            self._process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise EncoderError(f"Could not start ffmpeg: {exc}") from exc

        loop = asyncio.get_running_loop()
        self._reader = loop.create_task(self._read_output())
        self._flusher = loop.create_task(self._flush_periodically(timeslice))

    async def stop(self) -> None:
        """Ask ffmpeg to finish, then read its trailing output (last cluster, cues)."""
        if self._stopping:
            return
        self._stopping = True
        if self._flusher is not None:
            self._flusher.cancel()
        self._flush()
        self._terminate()

        reader = self._reader
        if reader is not None and reader is not asyncio.current_task():
            done, _ = await asyncio.wait({reader}, timeout=self._drain_timeout)
            if not done:
                logger.warning("ffmpeg did not finish within %.1fs, killing it", self._drain_timeout)
                self._kill()
                reader.cancel()
        self._flush()

    def abort(self) -> None:
        self._stopping = True
        for task in (self._flusher, self._reader):
            if task is not None:
                task.cancel()
        self._buffer.clear()
        self._kill()

    async def _read_output(self) -> None:
        assert self._process is not None and self._process.stdout is not None
        while chunk := await self._process.stdout.read(_READ_SIZE):
            self._buffer.extend(chunk)
        if self._stopping:
            # stop() emits the drained tail
            return

        # ffmpeg ended without being asked to: treat as the source going away
        self._flush()
        returncode = await self._process.wait()
        stderr = b""
        if self._process.stderr is not None:
            stderr = await self._process.stderr.read()
        logger.warning(
            "ffmpeg exited unexpectedly (code %s): %s",
            returncode,
            stderr.decode(errors="replace").strip()[-500:],
        )
        for track in self.stream.video_tracks[:1]:
            track.end()

    async def _flush_periodically(self, timeslice: float) -> None:
        while True:
            await asyncio.sleep(timeslice)
            self._flush()

    def _flush(self) -> None:
        if not self._buffer:
            return
        fragment = bytes(self._buffer)
        self._buffer.clear()
        self._emit(fragment)

    def _terminate(self) -> None:
        process = self._process
        if process is None or process.returncode is not None:
            return
        try:
            # SIGTERM lets ffmpeg write the WebM trailer before exiting
            process.terminate()
        except ProcessLookupError:
            return
        self._reap(process)

    def _kill(self) -> None:
        process = self._process
        if process is None or process.returncode is not None:
            return
        try:
            process.kill()
        except ProcessLookupError:
            return
        self._reap(process)

    def _reap(self, process: asyncio.subprocess.Process) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if self._reaper is None or self._reaper.done():
            # Reap the child so it does not linger as a zombie
            self._reaper = loop.create_task(process.wait())


class FFmpegCaptureBackend(CaptureBackend):
    """Capture backend that drives a local ffmpeg binary.

    Args:
        ffmpeg_path: ffmpeg executable name or path.
        display_input: Screen input override (``:0.0``, ``1``, ``desktop``).
        microphone_input: Microphone device (PulseAudio source, avfoundation
            index, or DirectShow device name).
        system_audio_input: Optional system-audio source (e.g. a PulseAudio
            monitor); empty means system audio is not offered.
        platform: ``sys.platform`` override.
    """

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        display_input: str = "",
        microphone_input: str = "default",
        system_audio_input: str = "",
        platform: str | None = None,
    ) -> None:
        self._ffmpeg_path = ffmpeg_path
        self._display_input = display_input
        self._microphone_input = microphone_input
        self._system_audio_input = system_audio_input
        self._platform = platform or sys.platform
        self._probe_cache: dict[str, dict[str, str]] = {}
        self._display = DisplayConstraints()

    # -- probing --

    def _resolve_ffmpeg(self) -> str | None:
        return shutil.which(self._ffmpeg_path)

    def _probe(self, flag: str) -> dict[str, str]:
        """Run ``ffmpeg -hide_banner <flag>`` once and cache the parsed table."""
        if flag not in self._probe_cache:
            ffmpeg = self._resolve_ffmpeg()
            if ffmpeg is None:
                return {}
            try:
                result = subprocess.run(
                    [ffmpeg, "-hide_banner", flag],
                    capture_output=True,
                    text=True,
                    timeout=10,
                )
            except (OSError, subprocess.TimeoutExpired) as exc:
                logger.warning("ffmpeg %s probe failed: %s", flag, exc)
                self._probe_cache[flag] = {}
                return {}
            self._probe_cache[flag] = _parse_probe_names(result.stdout)
        return self._probe_cache[flag]

    async def _require_device_format(self, fmt: str) -> str:
        ffmpeg = self._resolve_ffmpeg()
        if ffmpeg is None:
            raise DeviceAcquisitionError(f"ffmpeg not found: {self._ffmpeg_path}")
        devices = await asyncio.to_thread(self._probe, "-devices")
        if "D" not in devices.get(fmt, ""):
            raise DeviceAcquisitionError(f"ffmpeg was built without {fmt} capture support")
        # Warm the encoder table here so is_type_supported never blocks the loop
        await asyncio.to_thread(self._probe, "-encoders")
        return ffmpeg

    # -- CaptureBackend --

    async def acquire_display_capture(self, constraints: DisplayConstraints) -> MediaStream:
        fps = str(constraints.frame_rate)
        if self._platform.startswith("linux"):
            display = self._display_input or os.environ.get("DISPLAY", "")
            if not display:
                raise DeviceAcquisitionError("No X11 display available (set DISPLAY)")
            fmt, args = "x11grab", ["-f", "x11grab", "-framerate", fps, "-i", display]
        elif self._platform == "darwin":
            display = self._display_input or "1"
            fmt, args = "avfoundation", [
                "-f", "avfoundation",
                "-capture_cursor", "1",
                "-framerate", fps,
                "-i", f"{display}:none",
            ]
        elif self._platform == "win32":
            display = self._display_input or "desktop"
            fmt, args = "gdigrab", ["-f", "gdigrab", "-framerate", fps, "-i", display]
        else:
            raise DeviceAcquisitionError(f"Unsupported platform: {self._platform}")

        await self._require_device_format(fmt)
        self._display = constraints
        tracks: list[MediaTrack] = [FFmpegTrack("video", f"screen {display}", args)]

        if constraints.system_audio and self._system_audio_input and fmt == "x11grab":
            tracks.append(
                FFmpegTrack(
                    "audio",
                    f"system audio {self._system_audio_input}",
                    ["-f", "pulse", "-i", self._system_audio_input],
                )
            )
        logger.info("Acquired display capture: %s", display)
        return MediaStream(tracks)

    async def acquire_microphone(self, constraints: MicrophoneConstraints) -> MediaStream:
        device = self._microphone_input
        if self._platform.startswith("linux"):
            fmt = "pulse"
            args = [
                "-f", "pulse",
                "-sample_rate", str(constraints.sample_rate),
                "-i", device or "default",
            ]
        elif self._platform == "darwin":
            fmt = "avfoundation"
            index = "0" if device in ("", "default") else device
            args = ["-f", "avfoundation", "-i", f"none:{index}"]
        elif self._platform == "win32":
            if device in ("", "default"):
                raise DeviceAcquisitionError(
                    "Set microphone_input to a DirectShow audio device name"
                )
            fmt = "dshow"
            args = ["-f", "dshow", "-i", f"audio={device}"]
        else:
            raise DeviceAcquisitionError(f"Unsupported platform: {self._platform}")

        await self._require_device_format(fmt)
        # Echo cancellation is left to the OS audio stack; ffmpeg only denoises
        filters = ("afftdn",) if constraints.noise_suppression else ()
        logger.info("Acquired microphone: %s", device or "default")
        return MediaStream([FFmpegTrack("audio", f"microphone {device}", args, filters)])

    def is_type_supported(self, mime_type: str) -> bool:
        base, codecs = parse_mime_type(mime_type)
        if base != "video/webm":
            return False
        encoders = self._probe("-encoders")
        if not encoders:
            return False
        for codec in codecs:
            encoder = VIDEO_ENCODERS.get(codec) or AUDIO_ENCODERS.get(codec)
            if encoder is None or encoder not in encoders:
                return False
        return True

    def create_encoder(
        self,
        stream: MediaStream,
        mime_type: str,
        video_bits_per_second: int,
    ) -> FFmpegEncoder:
        ffmpeg = self._resolve_ffmpeg()
        if ffmpeg is None:
            raise EncoderError(f"ffmpeg not found: {self._ffmpeg_path}")
        return FFmpegEncoder(ffmpeg, stream, mime_type, video_bits_per_second, self._display)
