"""Event ORM model."""

from datetime import time

from sqlalchemy import ForeignKey, Integer, String, Time
from sqlalchemy.orm import Mapped, mapped_column

from venue_dedup.models.base import Base, CreatedAtMixin, IdMixin, UpdatedAtMixin


class Event(Base, IdMixin, CreatedAtMixin, UpdatedAtMixin):
    """Recurring trivia night held at one venue."""

    __tablename__ = "events"

    venue_id: Mapped[int] = mapped_column(
        ForeignKey("venues.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    frequency: Mapped[str] = mapped_column(String(32), default="weekly", nullable=False)
    entry_fee_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
