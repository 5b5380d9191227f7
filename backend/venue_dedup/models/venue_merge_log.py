"""Venue merge audit log model."""

from sqlalchemy import JSON, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from venue_dedup.models.base import Base, CreatedAtMixin, IdMixin

MERGE_ACTION = "merge"
NOT_DUPLICATE_ACTION = "not_duplicate"


class VenueMergeLog(Base, IdMixin, CreatedAtMixin):
    """Audit record for every merge and every "not a duplicate" decision."""

    __tablename__ = "venue_merge_logs"

    action_type: Mapped[str] = mapped_column(String(50), index=True, nullable=False)
    primary_venue_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    secondary_venue_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    performed_by: Mapped[str] = mapped_column(String(255), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_json: Mapped[dict[str, object]] = mapped_column(JSON, default=dict, nullable=False)
