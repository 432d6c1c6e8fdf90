"""
Recordings page — browse, play and delete uploaded recordings.
"""

import streamlit as st

from screen_studio.ui.components.recording_list import render_recording_list

st.header("Recordings")
render_recording_list()
