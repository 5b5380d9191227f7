"""Fuzzy duplicate candidate ORM model."""

from datetime import datetime

from sqlalchemy import JSON, CheckConstraint, DateTime, Float, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from venue_dedup.models.base import Base, CreatedAtMixin, IdMixin, UpdatedAtMixin

CANDIDATE_STATUS_PENDING = "pending"
CANDIDATE_STATUS_MERGED = "merged"
CANDIDATE_STATUS_REJECTED = "rejected"
CANDIDATE_STATUSES = (
    CANDIDATE_STATUS_PENDING,
    CANDIDATE_STATUS_MERGED,
    CANDIDATE_STATUS_REJECTED,
)


class DuplicateCandidate(Base, IdMixin, CreatedAtMixin, UpdatedAtMixin):
    """Unordered venue pair suspected to be the same place.

    Venue ids are stored in canonical order (``venue1_id < venue2_id``) and
    reference venues by identity only, so rows can outlive a hard delete until
    reconciliation removes them.
    """

    __tablename__ = "venue_duplicate_candidates"
    __table_args__ = (
        UniqueConstraint("venue1_id", "venue2_id", name="uq_venue_duplicate_candidates_pair"),
        CheckConstraint("venue1_id < venue2_id", name="ck_venue_duplicate_candidates_order"),
    )

    venue1_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    venue2_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    confidence_score: Mapped[float] = mapped_column(Float, index=True, nullable=False)
    name_similarity: Mapped[float] = mapped_column(Float, nullable=False)
    location_similarity: Mapped[float] = mapped_column(Float, nullable=False)
    match_criteria: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16),
        default=CANDIDATE_STATUS_PENDING,
        index=True,
        nullable=False,
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
