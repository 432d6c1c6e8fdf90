"""
Recorder page — capture the screen, preview, download or upload.
"""

import streamlit as st

from screen_studio.ui.components.recorder import render_recorder

st.header("Screen Recorder")

_flash = st.session_state.pop("flash", None)
if _flash:
    st.success(_flash)

render_recorder()
