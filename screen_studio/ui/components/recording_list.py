"""
Recording list component — cards for every uploaded recording.
"""

import streamlit as st

from screen_studio.client.catalog import DELETE_CONFIRMATION, RecordingCatalog
from screen_studio.core.models import RecordingRecord
from screen_studio.core.utils import format_date, format_file_size, recordings_count_label
from screen_studio.ui.utils import get_api_client, run_async


def _catalog() -> RecordingCatalog:
    """One catalog per browser session; delete confirmation is the dialog below."""
    base_url = st.session_state.api_base_url
    catalog = st.session_state.get("catalog")
    if catalog is None or st.session_state.get("catalog_base_url") != base_url:
        alerts: list[str] = []
        catalog = RecordingCatalog(
            get_api_client(base_url),
            confirm=lambda _message: True,
            alert=alerts.append,
        )
        st.session_state.catalog = catalog
        st.session_state.catalog_alerts = alerts
        st.session_state.catalog_base_url = base_url
    return catalog


@st.dialog("Delete Recording")
def _confirm_delete(record: RecordingRecord) -> None:
    st.write(DELETE_CONFIRMATION)
    st.caption(record.original_name or record.filename)
    col1, col2 = st.columns(2)
    with col1:
        if st.button("Delete", type="primary", use_container_width=True):
            run_async(_catalog().delete(record.id))
            st.rerun()
    with col2:
        if st.button("Cancel", use_container_width=True):
            st.rerun()


def _render_card(record: RecordingRecord, catalog: RecordingCatalog) -> None:
    client = get_api_client(st.session_state.api_base_url)
    url = client.recording_url(record.filename)
    with st.container(border=True):
        st.markdown(f"**{record.original_name or record.filename}**")
        st.video(url)
        details = (
            f"Size: {format_file_size(record.size)} · "
            f"Created: {format_date(record.created_at)}"
        )
        if record.mimetype:
            details += f" · Type: {record.mimetype}"
        st.caption(details)

        col1, col2 = st.columns(2)
        with col1:
            st.link_button("Download", url, use_container_width=True)
        with col2:
            deleting = catalog.is_deleting(record.id)
            if st.button(
                "Deleting..." if deleting else "Delete",
                key=f"delete_{record.id}",
                disabled=deleting,
                use_container_width=True,
            ):
                _confirm_delete(record)


def render_recording_list() -> None:
    """Render the uploaded recordings with refresh, retry and delete."""
    catalog = _catalog()

    with st.spinner("Loading recordings..."):
        run_async(catalog.refresh(st.session_state.recordings_refresh_token))

    alerts: list[str] = st.session_state.catalog_alerts
    while alerts:
        st.error(alerts.pop(0))

    if catalog.error:
        st.error(catalog.error)
        if st.button("Retry"):
            with st.spinner("Loading recordings..."):
                run_async(catalog.retry())
            st.rerun()
        return

    header, action = st.columns([4, 1])
    header.subheader(f"Uploaded Recordings ({recordings_count_label(len(catalog.records))})")
    if action.button("Refresh List", use_container_width=True):
        with st.spinner("Loading recordings..."):
            run_async(catalog.load())
        st.rerun()

    if not catalog.records:
        st.info("No recordings yet. Upload your first screen recording to get started!")
        return

    columns = st.columns(2)
    for index, record in enumerate(catalog.records):
        with columns[index % 2]:
            _render_card(record, catalog)
