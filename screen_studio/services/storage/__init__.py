"""
Storage module - Database and file system operations.
"""

from screen_studio.services.storage.database import (
    Base,
    close_db,
    get_engine,
    get_session,
    init_db,
    reset_engine,
    use_engine,
)
from screen_studio.services.storage.files import RecordingFileStore
from screen_studio.services.storage.models_db import Recording
from screen_studio.services.storage.repository import RecordingRepository

__all__ = [
    "Base",
    "Recording",
    "RecordingFileStore",
    "RecordingRepository",
    "close_db",
    "get_engine",
    "get_session",
    "init_db",
    "reset_engine",
    "use_engine",
]
