"""Filesystem store for uploaded recording bytes.

Files are written under a single uploads directory with generated,
collision-free names; the original client filename is kept only as metadata.
"""

import logging
import secrets
import time
from pathlib import Path
from typing import Protocol

from screen_studio.core.exceptions import RecordingNotFoundError, StorageError, UploadTooLargeError

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024


class AsyncReadable(Protocol):
    """Anything with ``await read(size)``, e.g. ``fastapi.UploadFile``."""

    async def read(self, size: int = -1) -> bytes: ...


class RecordingFileStore:
    """Stores, resolves and deletes recording files under *root*.

    Args:
        root: Uploads directory (created on demand).
        max_bytes: Upper bound for a single stored file.
    """

    def __init__(self, root: str | Path, max_bytes: int) -> None:
        self._root = Path(root)
        self._max_bytes = max_bytes

    @property
    def root(self) -> Path:
        return self._root

    def generate_filename(self, original_name: str | None) -> str:
        """``<epoch ms>-<random hex><original extension or .webm>``."""
        suffix = Path(original_name or "").suffix.lower() or ".webm"
        return f"{int(time.time() * 1000)}-{secrets.token_hex(4)}{suffix}"

    async def save(self, source: AsyncReadable, original_name: str | None) -> tuple[str, int]:
        """Stream *source* to a new file and return ``(filename, size)``.

        Raises:
            UploadTooLargeError: If the payload exceeds ``max_bytes``; the
                partial file is removed.
            StorageError: If the file cannot be written.
        """
        self._root.mkdir(parents=True, exist_ok=True)
        filename = self.generate_filename(original_name)
        path = self._root / filename
        size = 0
        try:
            with open(path, "wb") as out:
                while chunk := await source.read(_CHUNK_SIZE):
                    size += len(chunk)
                    if size > self._max_bytes:
                        raise UploadTooLargeError(self._max_bytes // (1024 * 1024))
                    out.write(chunk)
        except UploadTooLargeError:
            path.unlink(missing_ok=True)
            raise
        except OSError as exc:
            path.unlink(missing_ok=True)
            raise StorageError(f"Could not store upload: {exc}") from exc
        logger.debug("Wrote %d bytes to %s", size, path)
        return filename, size

    def resolve(self, filename: str) -> Path:
        """Return the path of an existing stored file.

        Raises:
            RecordingNotFoundError: If the name escapes the uploads directory
                or the file does not exist.
        """
        root = self._root.resolve()
        resolved = (root / filename).resolve()
        # Prevent path traversal: only serve files directly inside the uploads dir
        if resolved.parent != root or not resolved.is_file():
            raise RecordingNotFoundError(filename)
        return resolved

    def delete(self, filename: str) -> bool:
        """Remove a stored file; returns False if it was already gone."""
        try:
            path = self.resolve(filename)
        except RecordingNotFoundError:
            logger.warning("Stored file missing on delete: %s", filename)
            return False
        try:
            path.unlink()
        except OSError as exc:
            raise StorageError(f"Could not delete {filename}: {exc}") from exc
        return True
