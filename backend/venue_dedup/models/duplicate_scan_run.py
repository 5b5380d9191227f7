"""Duplicate scan run model."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from venue_dedup.models.base import Base, CreatedAtMixin, IdMixin

SCAN_STATUS_QUEUED = "queued"
SCAN_STATUS_RUNNING = "running"
SCAN_STATUS_COMPLETED = "completed"
SCAN_STATUS_FAILED = "failed"


class DuplicateScanRun(Base, IdMixin, CreatedAtMixin):
    """Tracks one background candidate scan so reviewers can poll its outcome."""

    __tablename__ = "duplicate_scan_runs"

    status: Mapped[str] = mapped_column(String(16), default=SCAN_STATUS_QUEUED, index=True, nullable=False)
    options_json: Mapped[dict[str, object]] = mapped_column(JSON, default=dict, nullable=False)
    stats_json: Mapped[dict[str, object]] = mapped_column(JSON, default=dict, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
