"""
Recording catalog — the client-side view of uploaded recordings.

Holds the fetched records plus loading / error / per-record deleting flags.
Rendering is left to the UI (CLI or Streamlit); this class only owns state
and talks to the backend through ``APIClient``.
"""

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

from screen_studio.client.api_client import APIError
from screen_studio.core.models import RecordingRecord

logger = logging.getLogger(__name__)

DELETE_CONFIRMATION = "Are you sure you want to delete this recording?"

ConfirmCallback = Callable[[str], bool | Awaitable[bool]]


class CatalogBackend(Protocol):
    """The part of ``APIClient`` the catalog needs."""

    async def list_recordings(self) -> list[RecordingRecord]: ...

    async def delete_recording(self, recording_id: int) -> dict: ...


class RecordingCatalog:
    """Fetches, holds and prunes the list of uploaded recordings.

    Args:
        client: Backend access (normally ``APIClient``).
        confirm: Asked before every delete; may be sync or async.
        alert: Receives user-facing delete failure messages.
    """

    def __init__(
        self,
        client: CatalogBackend,
        confirm: ConfirmCallback,
        alert: Callable[[str], None] | None = None,
    ) -> None:
        self._client = client
        self._confirm = confirm
        self._alert = alert or (lambda message: logger.warning("%s", message))

        self.records: list[RecordingRecord] = []
        self.loading = False
        self.error: str | None = None
        self._deleting: set[int] = set()
        self._refresh_token: object = None
        self._mounted = False

    def is_deleting(self, recording_id: int) -> bool:
        return recording_id in self._deleting

    async def mount(self, refresh_token: object = None) -> None:
        """Initial fetch when the view appears."""
        self._mounted = True
        self._refresh_token = refresh_token
        await self.load()

    async def refresh(self, refresh_token: object) -> bool:
        """Re-fetch when *refresh_token* differs from the last one seen.

        Returns:
            True if a fetch was issued.
        """
        if self._mounted and refresh_token == self._refresh_token:
            return False
        await self.mount(refresh_token)
        return True

    async def load(self) -> None:
        """Fetch the full collection, replacing the local copy on success."""
        self.loading = True
        self.error = None
        try:
            self.records = await self._client.list_recordings()
        except APIError as exc:
            logger.error("Failed to fetch recordings: %s", exc.message)
            self.error = exc.message or "Failed to fetch recordings"
        finally:
            self.loading = False

    async def retry(self) -> None:
        """Manual retry after a failed fetch; issues the same request again."""
        await self.load()

    async def delete(self, recording_id: int) -> bool:
        """Confirm, then delete one record.

        Returns:
            True if the record was deleted and removed locally.
        """
        if recording_id in self._deleting:
            return False

        # Held from the prompt onwards so a second click cannot open another one
        self._deleting.add(recording_id)
        try:
            answer = self._confirm(DELETE_CONFIRMATION)
            if inspect.isawaitable(answer):
                answer = await answer
            if not answer:
                return False
            await self._client.delete_recording(recording_id)
        except APIError as exc:
            logger.error("Failed to delete recording %s: %s", recording_id, exc.message)
            self._alert(exc.message or "Failed to delete recording")
            return False
        finally:
            self._deleting.discard(recording_id)

        self.records = [r for r in self.records if r.id != recording_id]
        return True
