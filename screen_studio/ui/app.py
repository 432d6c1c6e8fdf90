"""
Screen Studio Streamlit UI — main entry point.

Run with: ``streamlit run screen_studio/ui/app.py``
"""

import logging

import streamlit as st

from screen_studio.core.config import get_settings
from screen_studio.ui.utils import get_api_client, open_folder_in_explorer, run_async

# ---------------------------------------------------------------------------
# Page config (must be first Streamlit call)
# ---------------------------------------------------------------------------
st.set_page_config(
    page_title="Screen Studio",
    page_icon="\U0001f3ac",
    layout="wide",
)

_settings = get_settings()
logging.basicConfig(level=getattr(logging, _settings.log_level.upper(), logging.INFO))

# ---------------------------------------------------------------------------
# Session state defaults
# ---------------------------------------------------------------------------
_DEFAULTS = {
    "api_base_url": _settings.api_base_url,
    "record_microphone": True,
    "recordings_refresh_token": 0,
}

for key, value in _DEFAULTS.items():
    if key not in st.session_state:
        st.session_state[key] = value

# ---------------------------------------------------------------------------
# Sidebar
# ---------------------------------------------------------------------------
with st.sidebar:
    st.title("\U0001f3ac Screen Studio")
    st.caption("Record your screen, share it from the library")
    st.divider()
    st.session_state.api_base_url = st.text_input(
        "Backend API URL",
        value=st.session_state.api_base_url,
        help=f"URL of the Screen Studio backend (default: {_settings.api_base_url})",
    )

    _client = get_api_client(st.session_state.api_base_url)
    _conn_ok, _conn_msg = run_async(_client.check_connection())
    if _conn_ok:
        st.success(f"Backend: {_conn_msg}")
    else:
        st.error(f"Backend: {_conn_msg}")

    st.divider()
    if st.button("Open Downloads Folder", use_container_width=True):
        open_folder_in_explorer(_settings.downloads_dir)

# ---------------------------------------------------------------------------
# Navigation (multipage)
# ---------------------------------------------------------------------------
recorder_page = st.Page(
    "pages/01_recorder.py",
    title="Recorder",
    icon="\U0001f534",
    default=True,
)
recordings_page = st.Page(
    "pages/02_recordings.py",
    title="Recordings",
    icon="\U0001f4fc",
)

nav = st.navigation([recorder_page, recordings_page])
nav.run()
