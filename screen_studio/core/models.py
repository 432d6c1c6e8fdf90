"""
Pydantic v2 request / response models shared by the API layer and the client.

Wire field names are camelCase (``originalName``, ``createdAt``) to match the
JSON contract consumed by browser and Python clients alike.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """GET /health response."""

    status: str = "ok"
    version: str = "0.1.0"
    timestamp: datetime


# ---------------------------------------------------------------------------
# Recording
# ---------------------------------------------------------------------------


class RecordingRecord(BaseModel):
    """Server-held metadata describing one uploaded recording."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    filename: str
    original_name: str | None = None
    size: int = 0
    created_at: datetime
    mimetype: str | None = None


# ---------------------------------------------------------------------------
# Response envelopes
# ---------------------------------------------------------------------------


class Envelope(BaseModel):
    """Common ``{success, error?}`` wrapper used by every JSON endpoint."""

    success: bool = True
    error: str | None = None


class RecordingListResponse(Envelope):
    """GET / response."""

    data: list[RecordingRecord] = Field(default_factory=list)


class UploadResponse(Envelope):
    """POST / response."""

    data: RecordingRecord | None = None


class DeleteResponse(Envelope):
    """DELETE /api/recordings/{id} response."""

    id: int | None = None
