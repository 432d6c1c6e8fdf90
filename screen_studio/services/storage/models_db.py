"""
SQLAlchemy ORM models for Screen Studio.

Tables: ``recordings``.
"""

from datetime import UTC, datetime

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from screen_studio.services.storage.database import Base


class Recording(Base):
    """Metadata for one uploaded recording; the bytes live in the uploads dir."""

    __tablename__ = "recordings"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    filename: Mapped[str] = mapped_column(String(255), unique=True)
    original_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    size: Mapped[int] = mapped_column(default=0)
    mimetype: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=lambda: datetime.now(UTC), index=True
    )

    def __repr__(self) -> str:
        return f"<Recording id={self.id} filename={self.filename!r}>"
