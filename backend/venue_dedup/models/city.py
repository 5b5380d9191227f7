"""City ORM model."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from venue_dedup.models.base import Base, CreatedAtMixin, IdMixin


class City(Base, IdMixin, CreatedAtMixin):
    """City a venue belongs to."""

    __tablename__ = "cities"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    country_code: Mapped[str | None] = mapped_column(String(8), nullable=True)
