"""Scrape source ORM model."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from venue_dedup.models.base import Base, CreatedAtMixin, IdMixin


class Source(Base, IdMixin, CreatedAtMixin):
    """External site that venues and events are scraped from."""

    __tablename__ = "sources"

    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    website_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
