"""
Recording REST endpoints.

Implements the upload / list / delete / stream contract used by the
capture client and the recordings catalog. Metadata goes through
``RecordingRepository``; bytes go through ``RecordingFileStore``.
"""

import logging

from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.responses import FileResponse

from screen_studio.core.config import Settings
from screen_studio.core.exceptions import InvalidUploadError
from screen_studio.core.models import (
    DeleteResponse,
    RecordingListResponse,
    RecordingRecord,
    UploadResponse,
)
from screen_studio.services.storage.database import get_session
from screen_studio.services.storage.files import RecordingFileStore
from screen_studio.services.storage.repository import RecordingRepository

logger = logging.getLogger(__name__)

router = APIRouter(tags=["recordings"])

_MEDIA_PREFIXES = ("video/", "audio/")
_MEDIA_SUFFIXES = (".webm", ".mp4", ".mkv", ".ogg")


def get_app_settings(request: Request) -> Settings:
    """Settings injected into ``create_app``."""
    return request.app.state.settings


def get_file_store(settings: Settings = Depends(get_app_settings)) -> RecordingFileStore:
    return RecordingFileStore(settings.uploads_dir, max_bytes=settings.max_upload_mb * 1024 * 1024)


def _to_record(recording) -> RecordingRecord:
    """Convert an ORM Recording object to its API model.

    Args:
        recording: SQLAlchemy ORM ``Recording`` instance.

    Returns:
        RecordingRecord: Pydantic model serialized with camelCase keys.
    """
    return RecordingRecord(
        id=recording.id,
        filename=recording.filename,
        original_name=recording.original_name,
        size=recording.size,
        created_at=recording.created_at,
        mimetype=recording.mimetype,
    )


def _is_media(content_type: str | None, filename: str | None) -> bool:
    """Accept video/audio MIME types, or a generic type with a media extension."""
    if content_type and content_type.startswith(_MEDIA_PREFIXES):
        return True
    return bool(filename) and filename.lower().endswith(_MEDIA_SUFFIXES)


@router.get("/", response_model=RecordingListResponse, response_model_exclude_none=True)
async def list_recordings():
    """List every uploaded recording, newest first."""
    async with get_session() as session:
        repo = RecordingRepository(session)
        recordings = await repo.list_recordings()
    return RecordingListResponse(data=[_to_record(r) for r in recordings])


@router.post("/", response_model=UploadResponse, response_model_exclude_none=True)
async def upload_recording(
    recording: UploadFile = File(...),
    store: RecordingFileStore = Depends(get_file_store),
):
    """Store a single multipart ``recording`` field and register its metadata."""
    if not _is_media(recording.content_type, recording.filename):
        raise InvalidUploadError(
            f"Unsupported file type: {recording.content_type or 'unknown'}"
        )

    filename, size = await store.save(recording, recording.filename)
    if size == 0:
        store.delete(filename)
        raise InvalidUploadError("Uploaded file is empty")

    try:
        async with get_session() as session:
            repo = RecordingRepository(session)
            stored = await repo.create_recording(
                filename=filename,
                size=size,
                original_name=recording.filename,
                mimetype=recording.content_type,
            )
    except Exception:
        # Keep the uploads dir consistent with the DB
        store.delete(filename)
        raise

    return UploadResponse(data=_to_record(stored))


@router.delete(
    "/api/recordings/{recording_id}",
    response_model=DeleteResponse,
    response_model_exclude_none=True,
)
async def delete_recording(
    recording_id: int,
    store: RecordingFileStore = Depends(get_file_store),
):
    """Delete a recording's metadata row and its stored file."""
    async with get_session() as session:
        repo = RecordingRepository(session)
        removed = await repo.delete_recording(recording_id)

    file_removed = store.delete(removed.filename)
    logger.info("Deleted recording id=%s (file removed: %s)", recording_id, file_removed)
    return DeleteResponse(id=recording_id)


@router.get("/uploads/{filename}")
async def get_recording_file(
    filename: str,
    store: RecordingFileStore = Depends(get_file_store),
):
    """Stream a stored recording's raw bytes (preview / download / view)."""
    path = store.resolve(filename)
    return FileResponse(path)
