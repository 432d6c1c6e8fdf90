"""
Application configuration via pydantic-settings.

Loads values from .env file with sensible defaults for local development.
Use ``get_settings()`` at entry points only (CLI, ASGI app, Streamlit app);
everything below them receives its configuration explicitly.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Screen Studio settings loaded from environment / .env file.

    All settings can be overridden via environment variables or a `.env` file.
    Field names map directly to env var names (case-insensitive).

    Attributes:
        api_base_url: Backend URL used by the client (CLI and Streamlit UI).
        uploads_dir: Directory where the backend stores uploaded recordings.
        database_url: Async SQLAlchemy connection string for SQLite.
        codec_preferences: Ordered encoder MIME types, most efficient first.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Silently ignore unrecognized env vars
    )

    # --- Client ---
    api_base_url: str = "http://localhost:5000"
    request_timeout: float = 30.0
    upload_timeout: float = 600.0  # Whole-request budget for a single multipart POST
    downloads_dir: str = "data/downloads"

    # --- Capture ---
    capture_width: int = 1920
    capture_height: int = 1080
    capture_frame_rate: int = 30
    capture_system_audio: bool = True
    microphone_echo_cancellation: bool = True
    microphone_noise_suppression: bool = True
    microphone_sample_rate: int = 44100
    video_bits_per_second: int = 2_500_000  # 2.5 Mbps
    fragment_interval: float = 1.0  # Seconds between encoder fragments
    codec_preferences: list[str] = Field(
        default_factory=lambda: [
            "video/webm;codecs=vp9,opus",
            "video/webm;codecs=vp8,opus",
            "video/webm",
        ]
    )

    # Capture backend ("ffmpeg")
    capture_provider: str = "ffmpeg"
    ffmpeg_path: str = "ffmpeg"
    display_input: str = ""  # Empty = platform default ($DISPLAY, screen 1, desktop)
    microphone_input: str = "default"
    system_audio_input: str = ""  # e.g. a PulseAudio monitor source; empty = none offered

    # --- Server ---
    app_host: str = "0.0.0.0"  # Bind address for the FastAPI server
    app_port: int = 5000
    log_level: str = "INFO"  # Python logging level
    database_url: str = "sqlite+aiosqlite:///data/screen_studio.db"
    uploads_dir: str = "data/uploads"
    max_upload_mb: int = 1024
    cors_origins: list[str] = Field(
        default_factory=lambda: [
            "http://localhost:8501",  # Streamlit
            "http://localhost:3000",  # Dev frontend
        ]
    )


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings singleton.

    Uses ``functools.lru_cache`` so the .env file is read only once.

    Returns:
        Settings: The application-wide configuration object.
    """
    return Settings()
