"""SearchHistory model — one row per completed search."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Float, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from sauce_finder.models.base import Base


class SearchHistory(Base):
    """Persistent log of searches shown in the history panel."""

    __tablename__ = "search_history"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    input_label: Mapped[str] = mapped_column(String(2048), nullable=False)
    input_type: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    results_count: Mapped[int] = mapped_column(Integer, nullable=False, insert_default=0)
    top_result: Mapped[str | None] = mapped_column(String(512), nullable=True)
    similarity: Mapped[float] = mapped_column(Float, nullable=False, insert_default=0.0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
        default=lambda: datetime.now(timezone.utc),
    )
