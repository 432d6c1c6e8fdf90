"""Unit tests for the FFmpeg capture backend.

ffmpeg itself is never executed: ``shutil.which`` and ``subprocess.run``
are patched and the encoder's command line is inspected directly.
"""

import asyncio
import subprocess
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from screen_studio.client.capture import create_capture_backend
from screen_studio.client.capture.base import (
    DisplayConstraints,
    MediaStream,
    MicrophoneConstraints,
)
from screen_studio.client.capture.ffmpeg import (
    FFmpegCaptureBackend,
    FFmpegEncoder,
    FFmpegTrack,
    _parse_probe_names,
    parse_mime_type,
)
from screen_studio.core.exceptions import DeviceAcquisitionError, EncoderError

_ENCODERS_OUTPUT = """\
Encoders:
 V..... = Video
 ------
 V....D libvpx               libvpx VP8 (codec vp8)
 V....D libvpx-vp9           libvpx VP9 (codec vp9)
 A....D libopus              libopus Opus (codec opus)
"""

_DEVICES_OUTPUT = """\
Devices:
 D. = Demuxing supported
 .E = Muxing supported
 --
 D  lavfi           Libavfilter virtual input device
  E pulse           Pulse audio output
 D  x11grab         X11 screen capture, using XCB
"""


def _run_result(stdout: str) -> MagicMock:
    result = MagicMock()
    result.stdout = stdout
    return result


@pytest.fixture
def probes():
    """Patch ffmpeg discovery and probe output."""
    outputs = {"-encoders": _ENCODERS_OUTPUT, "-devices": _DEVICES_OUTPUT}

    def _run(cmd, **kwargs):
        return _run_result(outputs[cmd[-1]])

    with (
        patch("screen_studio.client.capture.ffmpeg.shutil.which", return_value="/usr/bin/ffmpeg"),
        patch("screen_studio.client.capture.ffmpeg.subprocess.run", side_effect=_run) as run,
    ):
        yield run


def _encoder(tracks, mime_type="video/webm;codecs=vp9,opus", **kwargs) -> FFmpegEncoder:
    return FFmpegEncoder(
        "ffmpeg", MediaStream(tracks), mime_type, 2_500_000, DisplayConstraints(), **kwargs
    )


def _process(stdout: asyncio.StreamReader) -> MagicMock:
    """A running ffmpeg stand-in whose stdout the test controls."""
    process = MagicMock()
    process.returncode = None
    process.stdout = stdout
    process.stderr = None
    process.wait = AsyncMock(return_value=0)
    return process


class TestParsing:
    """Verify MIME and probe-table parsing."""

    def test_parse_mime_type(self):
        assert parse_mime_type("video/webm;codecs=vp9,opus") == ("video/webm", ["vp9", "opus"])
        assert parse_mime_type('video/webm; codecs="vp8, opus"') == ("video/webm", ["vp8", "opus"])
        assert parse_mime_type("video/webm") == ("video/webm", [])

    def test_parse_probe_names(self):
        names = _parse_probe_names(_DEVICES_OUTPUT)
        assert names["x11grab"] == "D"
        assert names["pulse"] == "E"
        assert "Devices:" not in names


class TestTypeSupport:
    """Verify codec support is derived from ``ffmpeg -encoders``."""

    def test_supported_types(self, probes):
        backend = FFmpegCaptureBackend(platform="linux")
        assert backend.is_type_supported("video/webm;codecs=vp9,opus")
        assert backend.is_type_supported("video/webm;codecs=vp8,opus")
        assert backend.is_type_supported("video/webm")
        assert not backend.is_type_supported("video/webm;codecs=av1,opus")
        assert not backend.is_type_supported("video/mp4")

    def test_probe_is_cached(self, probes):
        backend = FFmpegCaptureBackend(platform="linux")
        backend.is_type_supported("video/webm;codecs=vp9,opus")
        backend.is_type_supported("video/webm;codecs=vp8,opus")
        assert probes.call_count == 1

    def test_missing_ffmpeg_supports_nothing(self):
        with patch("screen_studio.client.capture.ffmpeg.shutil.which", return_value=None):
            backend = FFmpegCaptureBackend(platform="linux")
            assert not backend.is_type_supported("video/webm")

    def test_probe_timeout(self):
        with (
            patch("screen_studio.client.capture.ffmpeg.shutil.which", return_value="/usr/bin/ffmpeg"),
            patch(
                "screen_studio.client.capture.ffmpeg.subprocess.run",
                side_effect=subprocess.TimeoutExpired("ffmpeg", 10),
            ),
        ):
            backend = FFmpegCaptureBackend(platform="linux")
            assert not backend.is_type_supported("video/webm")


class TestDeviceAcquisition:
    """Verify platform-specific input arguments and failures."""

    async def test_linux_display(self, probes, monkeypatch):
        monkeypatch.setenv("DISPLAY", ":1")
        backend = FFmpegCaptureBackend(platform="linux", system_audio_input="sink.monitor")
        stream = await backend.acquire_display_capture(DisplayConstraints(frame_rate=30))

        video, system = stream.tracks
        assert video.kind == "video"
        assert video.input_args == ["-f", "x11grab", "-framerate", "30", "-i", ":1"]
        assert system.kind == "audio"
        assert system.input_args == ["-f", "pulse", "-i", "sink.monitor"]

    async def test_acquisition_warms_encoder_probe(self, probes, monkeypatch):
        """Codec checks after acquiring the screen use the cached table, not a new subprocess."""
        monkeypatch.setenv("DISPLAY", ":0")
        backend = FFmpegCaptureBackend(platform="linux")
        await backend.acquire_display_capture(DisplayConstraints())

        probed = [call.args[0][-1] for call in probes.call_args_list]
        assert sorted(probed) == ["-devices", "-encoders"]
        assert backend.is_type_supported("video/webm;codecs=vp9,opus")
        assert probes.call_count == 2

    async def test_system_audio_not_requested(self, probes, monkeypatch):
        monkeypatch.setenv("DISPLAY", ":0")
        backend = FFmpegCaptureBackend(platform="linux", system_audio_input="sink.monitor")
        stream = await backend.acquire_display_capture(DisplayConstraints(system_audio=False))
        assert [t.kind for t in stream.tracks] == ["video"]

    async def test_linux_without_display(self, probes, monkeypatch):
        monkeypatch.delenv("DISPLAY", raising=False)
        backend = FFmpegCaptureBackend(platform="linux")
        with pytest.raises(DeviceAcquisitionError, match="DISPLAY"):
            await backend.acquire_display_capture(DisplayConstraints())

    async def test_missing_capture_device_format(self, probes):
        """avfoundation is absent from the probed device list."""
        backend = FFmpegCaptureBackend(platform="darwin")
        with pytest.raises(DeviceAcquisitionError, match="avfoundation"):
            await backend.acquire_display_capture(DisplayConstraints())

    async def test_ffmpeg_not_installed(self, monkeypatch):
        monkeypatch.setenv("DISPLAY", ":0")
        with patch("screen_studio.client.capture.ffmpeg.shutil.which", return_value=None):
            backend = FFmpegCaptureBackend(platform="linux")
            with pytest.raises(DeviceAcquisitionError, match="not found"):
                await backend.acquire_display_capture(DisplayConstraints())

    async def test_unsupported_platform(self):
        backend = FFmpegCaptureBackend(platform="sunos5")
        with pytest.raises(DeviceAcquisitionError, match="Unsupported platform"):
            await backend.acquire_display_capture(DisplayConstraints())

    async def test_pulse_output_only_is_not_a_microphone(self, probes):
        """pulse listed without demux support cannot capture a microphone."""
        backend = FFmpegCaptureBackend(platform="linux")
        with pytest.raises(DeviceAcquisitionError, match="pulse"):
            await backend.acquire_microphone(MicrophoneConstraints())

    async def test_windows_microphone_needs_device_name(self):
        backend = FFmpegCaptureBackend(platform="win32")
        with pytest.raises(DeviceAcquisitionError, match="DirectShow"):
            await backend.acquire_microphone(MicrophoneConstraints())


class TestEncoderCommand:
    """Verify the ffmpeg command assembled for different track sets."""

    def test_video_only(self):
        video = FFmpegTrack("video", "screen", ["-f", "x11grab", "-i", ":0"])
        cmd = _encoder([video]).build_command()

        assert cmd[:5] == ["ffmpeg", "-hide_banner", "-loglevel", "error", "-nostdin"]
        assert "-an" in cmd
        assert cmd[cmd.index("-c:v") + 1] == "libvpx-vp9"
        assert cmd[cmd.index("-b:v") + 1] == "2500000"
        assert cmd[-3:] == ["-f", "webm", "pipe:1"]
        assert "-c:a" not in cmd

    def test_single_unfiltered_audio_is_mapped_directly(self):
        video = FFmpegTrack("video", "screen", ["-i", ":0"])
        audio = FFmpegTrack("audio", "system", ["-i", "monitor"])
        cmd = _encoder([video, audio]).build_command()

        maps = [cmd[i + 1] for i, arg in enumerate(cmd) if arg == "-map"]
        assert maps == ["[vout]", "1:a"]
        assert cmd[cmd.index("-c:a") + 1] == "libopus"
        assert "-an" not in cmd

    def test_mic_and_system_audio_are_mixed(self):
        video = FFmpegTrack("video", "screen", ["-i", ":0"])
        system = FFmpegTrack("audio", "system", ["-i", "monitor"])
        mic = FFmpegTrack("audio", "mic", ["-i", "default"], filters=("afftdn",))
        cmd = _encoder([video, system, mic]).build_command()

        graph = cmd[cmd.index("-filter_complex") + 1]
        assert "[2:a]afftdn[a2]" in graph
        assert "[1:a][a2]amix=inputs=2:duration=longest[aout]" in graph
        maps = [cmd[i + 1] for i, arg in enumerate(cmd) if arg == "-map"]
        assert maps == ["[vout]", "[aout]"]

    def test_vp8_codec(self):
        video = FFmpegTrack("video", "screen", ["-i", ":0"])
        cmd = _encoder([video], "video/webm;codecs=vp8,opus").build_command()
        assert cmd[cmd.index("-c:v") + 1] == "libvpx"
        assert "realtime" in cmd

    def test_plain_webm_leaves_codec_to_ffmpeg(self):
        video = FFmpegTrack("video", "screen", ["-i", ":0"])
        cmd = _encoder([video], "video/webm").build_command()
        assert "-c:v" not in cmd

    def test_no_video_track(self):
        audio = FFmpegTrack("audio", "mic", ["-i", "default"])
        with pytest.raises(EncoderError):
            _encoder([audio]).build_command()


class TestEncoderFragments:
    """Verify buffering and emission without a real process."""

    async def test_stop_flushes_buffer_once(self):
        video = FFmpegTrack("video", "screen", ["-i", ":0"])
        encoder = _encoder([video])
        fragments = []
        encoder.on_data_available = fragments.append

        encoder._buffer.extend(b"abc")
        await encoder.stop()
        await encoder.stop()
        assert fragments == [b"abc"]

    async def test_stop_drains_trailing_output(self):
        """Bytes ffmpeg writes after SIGTERM (last cluster, cues) are emitted by stop."""
        encoder = _encoder([FFmpegTrack("video", "screen", ["-i", ":0"])])
        fragments = []
        encoder.on_data_available = fragments.append

        stdout = asyncio.StreamReader()
        process = _process(stdout)

        def _terminate():
            stdout.feed_data(b"trailer")
            stdout.feed_eof()

        process.terminate.side_effect = _terminate
        encoder._process = process
        encoder._buffer.extend(b"head")
        encoder._reader = asyncio.create_task(encoder._read_output())

        await encoder.stop()
        assert fragments == [b"head", b"trailer"]
        process.kill.assert_not_called()

    async def test_stop_kills_ffmpeg_that_never_exits(self, caplog):
        """A process that ignores SIGTERM is killed once the drain timeout passes."""
        encoder = _encoder([FFmpegTrack("video", "screen", ["-i", ":0"])], drain_timeout=0.05)
        process = _process(asyncio.StreamReader())
        encoder._process = process
        encoder._reader = asyncio.create_task(encoder._read_output())

        await encoder.stop()
        process.terminate.assert_called_once()
        process.kill.assert_called_once()
        await asyncio.sleep(0.01)
        assert encoder._reader.cancelled()
        assert "killing it" in caplog.text

    async def test_abort_discards_buffer_and_kills(self):
        """Teardown does not wait for ffmpeg and emits nothing."""
        encoder = _encoder([FFmpegTrack("video", "screen", ["-i", ":0"])])
        fragments = []
        encoder.on_data_available = fragments.append
        process = _process(asyncio.StreamReader())
        encoder._process = process
        encoder._reader = asyncio.create_task(encoder._read_output())
        encoder._buffer.extend(b"partial")

        encoder.abort()
        await asyncio.sleep(0.01)
        assert fragments == []
        process.kill.assert_called_once()
        assert encoder._reader.cancelled()

    async def test_unexpected_exit_ends_video_track(self):
        """ffmpeg exiting on its own flushes its output and reports the source as ended."""
        video = FFmpegTrack("video", "screen", ["-i", ":0"])
        encoder = _encoder([video])
        fragments = []
        encoder.on_data_available = fragments.append
        ended = []
        video.on_ended = lambda: ended.append(True)

        stdout = asyncio.StreamReader()
        stdout.feed_data(b"last")
        stdout.feed_eof()
        encoder._process = _process(stdout)

        await encoder._read_output()
        assert fragments == [b"last"]
        assert ended == [True]
        assert video.ended

    def test_empty_flush_emits_nothing(self):
        encoder = _encoder([FFmpegTrack("video", "screen", ["-i", ":0"])])
        fragments = []
        encoder.on_data_available = fragments.append
        encoder._flush()
        assert fragments == []

    def test_track_stop_terminates_process(self):
        video = FFmpegTrack("video", "screen", ["-i", ":0"])
        encoder = _encoder([video])
        process = MagicMock()
        process.returncode = None
        encoder._process = process

        video.stop()
        process.terminate.assert_called_once()


def test_factory_rejects_unknown_provider():
    """Only the ffmpeg provider is known."""
    assert isinstance(create_capture_backend("ffmpeg", platform="linux"), FFmpegCaptureBackend)
    with pytest.raises(ValueError, match="Unknown capture provider"):
        create_capture_backend("browser")
