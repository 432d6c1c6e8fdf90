"""
Recorder component — renders the capture session's state machine.

States: idle -> requesting_devices -> recording -> stopped -> uploading -> idle
"""

import logging
import time

import streamlit as st

from screen_studio.client.session import CaptureSession, SessionState
from screen_studio.core.utils import download_filename, format_elapsed, format_file_size
from screen_studio.ui.utils import get_background_loop, get_capture_session, run_async

logger = logging.getLogger(__name__)


def _session() -> CaptureSession:
    return get_capture_session(
        st.session_state.api_base_url, st.session_state.record_microphone
    )


def render_recorder() -> None:
    """Render the recording UI for the current session state."""
    session = _session()
    status = session.state

    if session.error:
        st.error(session.error)

    if status is SessionState.IDLE:
        _render_idle(session)
    elif status is SessionState.REQUESTING_DEVICES:
        st.info("Waiting for screen and microphone access...")
    elif status is SessionState.RECORDING:
        _render_recording(session)
    elif status is SessionState.STOPPED:
        _render_stopped(session)
    elif status is SessionState.UPLOADING:
        _render_upload_progress(session)


def _render_idle(session: CaptureSession) -> None:
    st.session_state.record_microphone = st.toggle(
        "Record microphone",
        value=st.session_state.record_microphone,
        help="Microphone audio is mixed with system audio when access is granted",
    )
    if st.button("Start Recording", type="primary", use_container_width=True):
        started = run_async(_session().start())
        if not started:
            logger.info("Recording did not start: %s", _session().error)
        st.rerun()


@st.fragment(run_every=1)
def _live_status() -> None:
    session = _session()
    if session.state is not SessionState.RECORDING:
        # Capture ended outside the UI (e.g. the display source went away)
        st.rerun()
    size = sum(len(f) for f in session.fragments)
    col1, col2 = st.columns(2)
    col1.metric("\U0001f534 Recording", format_elapsed(session.elapsed))
    col2.metric("Captured", format_file_size(size))


def _render_recording(session: CaptureSession) -> None:
    _live_status()
    if st.button("Stop Recording", type="primary", use_container_width=True):
        run_async(session.stop())
        st.rerun()


def _render_stopped(session: CaptureSession) -> None:
    artifact = session.artifact
    if artifact is None:
        return

    st.subheader("Recording Preview")
    st.caption(f"Duration {format_elapsed(session.elapsed)} · {format_file_size(artifact.size)}")
    if artifact.size:
        st.video(artifact.data, format=artifact.mime_type)
    else:
        st.warning("No media was captured.")

    col1, col2, col3 = st.columns(3)
    with col1:
        st.download_button(
            "Download",
            data=artifact.data,
            file_name=download_filename(),
            mime=artifact.mime_type,
            disabled=not session.can_download,
            use_container_width=True,
        )
    with col2:
        if st.button(
            "Upload",
            type="primary",
            disabled=not session.can_upload,
            use_container_width=True,
        ):
            _upload(session)
    with col3:
        if st.button("New Recording", use_container_width=True):
            run_async(session.reset())
            st.rerun()


def _upload(session: CaptureSession) -> None:
    """Run the upload on the shared loop while polling its progress."""
    future = get_background_loop().submit(session.upload())
    bar = st.progress(0, text="Uploading... 0%")
    while not future.done():
        bar.progress(session.upload_progress, text=f"Uploading... {session.upload_progress}%")
        time.sleep(0.1)

    if future.result():
        st.session_state.recordings_refresh_token += 1
        st.session_state.flash = "Recording uploaded successfully!"
    st.rerun()


def _render_upload_progress(session: CaptureSession) -> None:
    # Another script run owns the upload; just mirror its progress
    st.progress(session.upload_progress, text=f"Uploading... {session.upload_progress}%")
    time.sleep(0.5)
    st.rerun()
