"""SQLAlchemy metadata registry import for Alembic."""

from venue_dedup.models import (
    City,
    DuplicateCandidate,
    DuplicateScanRun,
    Event,
    EventSource,
    Source,
    Venue,
    VenueMergeLog,
)
from venue_dedup.models.base import Base

__all__ = [
    "Base",
    "City",
    "Source",
    "Venue",
    "Event",
    "EventSource",
    "DuplicateCandidate",
    "DuplicateScanRun",
    "VenueMergeLog",
]
