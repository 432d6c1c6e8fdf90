"""
CRUD repository for the ``recordings`` table.

``RecordingRepository`` receives an ``AsyncSession`` and provides all
data-access methods.  It calls ``flush()`` rather than ``commit()`` so
that transaction boundaries are controlled by the caller (typically
:func:`get_session`).
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from screen_studio.core.exceptions import RecordingNotFoundError
from screen_studio.services.storage.models_db import Recording

logger = logging.getLogger(__name__)


class RecordingRepository:
    """Data-access layer for uploaded recording metadata.

    Args:
        session: An active SQLAlchemy ``AsyncSession``.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_recording(
        self,
        filename: str,
        size: int,
        original_name: str | None = None,
        mimetype: str | None = None,
    ) -> Recording:
        """Insert and return a new recording row."""
        recording = Recording(
            filename=filename,
            original_name=original_name,
            size=size,
            mimetype=mimetype,
        )
        self._session.add(recording)
        await self._session.flush()
        logger.info("Stored recording id=%s filename=%s size=%d", recording.id, filename, size)
        return recording

    async def get_recording(self, recording_id: int) -> Recording:
        """Return a recording by ID or raise :class:`RecordingNotFoundError`."""
        recording = await self._session.get(Recording, recording_id)
        if recording is None:
            raise RecordingNotFoundError(recording_id)
        return recording

    async def get_by_filename(self, filename: str) -> Recording | None:
        """Return the recording stored under *filename*, if any."""
        result = await self._session.execute(
            select(Recording).where(Recording.filename == filename)
        )
        return result.scalar_one_or_none()

    async def list_recordings(self) -> list[Recording]:
        """Return every recording, newest first."""
        stmt = select(Recording).order_by(Recording.created_at.desc(), Recording.id.desc())
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def delete_recording(self, recording_id: int) -> Recording:
        """Delete a recording row and return the removed object.

        The caller is responsible for removing the stored file.
        """
        recording = await self.get_recording(recording_id)
        await self._session.delete(recording)
        await self._session.flush()
        return recording
