"""UI utility functions.

Streamlit reruns scripts on short-lived threads, while ``APIClient`` and
``CaptureSession`` are bound to one asyncio event loop. A single background
loop thread (cached per server process) hosts all of that async work; each
browser session keeps its own capture session in ``st.session_state``.
"""

import asyncio
import platform
import subprocess
import threading
from collections.abc import Callable, Coroutine
from concurrent.futures import Future
from pathlib import Path
from typing import Any, TypeVar

import streamlit as st

from screen_studio.client.api_client import APIClient
from screen_studio.client.capture import CaptureOptions, create_capture_backend
from screen_studio.client.session import CaptureSession, SessionState
from screen_studio.client.timer import IntervalTimer
from screen_studio.core.config import get_settings

T = TypeVar("T")


class BackgroundLoop:
    """An asyncio event loop running forever on a daemon thread."""

    def __init__(self) -> None:
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self.loop.run_forever, name="screen-studio-loop", daemon=True
        )
        self._thread.start()

    def submit(self, coro: Coroutine[Any, Any, T]) -> Future[T]:
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def run(self, coro: Coroutine[Any, Any, T], timeout: float | None = None) -> T:
        return self.submit(coro).result(timeout)

    def call(self, fn: Callable[..., T], *args: Any) -> T:
        """Run a plain callable on the loop thread and wait for its result."""

        async def _call() -> T:
            return fn(*args)

        return self.run(_call())


@st.cache_resource
def get_background_loop() -> BackgroundLoop:
    return BackgroundLoop()


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run *coro* on the shared loop and block this script run until it finishes."""
    return get_background_loop().run(coro)


@st.cache_resource
def get_api_client(base_url: str = "http://localhost:5000") -> APIClient:
    """Return a cached API client instance (one per base URL)."""
    settings = get_settings()
    return APIClient(
        base_url=base_url,
        timeout=settings.request_timeout,
        upload_timeout=settings.upload_timeout,
    )


SessionKey = tuple[str, bool]


class SessionSlot:
    """Holds the single capture session of one browser session.

    A new key (backend URL, microphone toggle) builds a new session once the
    current one is idle; a busy session is kept until it gets there. The
    replaced session is handed to *close* so its devices and timer are freed.
    """

    def __init__(
        self,
        factory: Callable[[SessionKey], CaptureSession],
        close: Callable[[CaptureSession], None],
    ) -> None:
        self._factory = factory
        self._close = close
        self.key: SessionKey | None = None
        self.session: CaptureSession | None = None

    def get(self, key: SessionKey) -> CaptureSession:
        current = self.session
        if current is not None and (key == self.key or current.state is not SessionState.IDLE):
            return current
        if current is not None:
            self._close(current)
        self.session = self._factory(key)
        self.key = key
        return self.session


def _build_capture_session(key: SessionKey) -> CaptureSession:
    base_url, use_microphone = key
    settings = get_settings()
    backend = create_capture_backend(
        settings.capture_provider,
        ffmpeg_path=settings.ffmpeg_path,
        display_input=settings.display_input,
        microphone_input=settings.microphone_input,
        system_audio_input=settings.system_audio_input,
    )
    return CaptureSession(
        backend,
        get_api_client(base_url),
        CaptureOptions.from_settings(settings, use_microphone=use_microphone),
        timer=IntervalTimer(1.0),
    )


def _close_on_loop(session: CaptureSession) -> None:
    # Timer and encoder tasks live on the background loop
    get_background_loop().call(session.close)


def get_capture_session(base_url: str, use_microphone: bool = True) -> CaptureSession:
    """Return this browser session's capture session for *base_url*."""
    if "capture_slot" not in st.session_state:
        st.session_state.capture_slot = SessionSlot(_build_capture_session, _close_on_loop)
    return st.session_state.capture_slot.get((base_url, use_microphone))


def open_folder_in_explorer(folder_path: str) -> None:
    """Open the given folder in the OS file explorer (Finder / Explorer / xdg-open)."""
    path = Path(folder_path).resolve()
    path.mkdir(parents=True, exist_ok=True)

    system = platform.system()
    if system == "Darwin":
        subprocess.Popen(["open", str(path)])  # noqa: S603,S607
    elif system == "Windows":
        subprocess.Popen(["explorer", str(path)])  # noqa: S603,S607
    else:  # Linux
        subprocess.Popen(["xdg-open", str(path)])  # noqa: S603,S607
