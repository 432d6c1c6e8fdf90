"""Shared presentation and naming helpers for Screen Studio.

All functions here are pure: no I/O, no global state.
"""

from datetime import UTC, datetime

_SIZE_UNITS = ("Bytes", "KB", "MB", "GB")


def format_file_size(size: int) -> str:
    """Render a byte count with binary prefixes, e.g. ``1536 -> "1.5 KB"``.

    Values are rounded to two decimals and trailing zeros are dropped.
    """
    if size <= 0:
        return "0 Bytes"
    # Integer comparison avoids float log rounding at exact powers of 1024
    index = 0
    while index < len(_SIZE_UNITS) - 1 and size >= 1024 ** (index + 1):
        index += 1
    value = f"{size / 1024**index:.2f}".rstrip("0").rstrip(".")
    return f"{value} {_SIZE_UNITS[index]}"


def format_date(value: datetime | str) -> str:
    """Render a timestamp in local time, e.g. ``"Mar 5, 2024, 02:07 PM"``.

    Accepts a datetime or an ISO-8601 string (``Z`` suffix allowed).
    Naive values are assumed to be UTC.
    """
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    local = value.astimezone()
    return f"{local:%b} {local.day}, {local:%Y, %I:%M %p}"


def format_elapsed(seconds: int) -> str:
    """Render elapsed seconds as ``MM:SS`` (minutes keep growing past 99)."""
    minutes, secs = divmod(max(seconds, 0), 60)
    return f"{minutes:02d}:{secs:02d}"


def download_filename(now: datetime | None = None) -> str:
    """Local file name for a downloaded artifact.

    ``screen-recording-2024-03-05T14-07-09.webm`` (UTC, colons replaced).
    """
    now = now or datetime.now(UTC)
    stamp = now.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S").replace(":", "-")
    return f"screen-recording-{stamp}.webm"


def upload_filename(now: datetime | None = None) -> str:
    """Multipart file name for an upload: ``recording-<epoch ms>.webm``."""
    now = now or datetime.now(UTC)
    return f"recording-{int(now.timestamp() * 1000)}.webm"


def recording_url(base_url: str, filename: str) -> str:
    """URL that streams a stored recording's bytes."""
    return f"{base_url.rstrip('/')}/uploads/{filename}"


def recordings_count_label(count: int) -> str:
    """``"1 recording"`` / ``"3 recordings"``."""
    return f"{count} {'recording' if count == 1 else 'recordings'}"
