"""ORM models package exports."""

from venue_dedup.models.city import City
from venue_dedup.models.duplicate_candidate import DuplicateCandidate
from venue_dedup.models.duplicate_scan_run import DuplicateScanRun
from venue_dedup.models.event import Event
from venue_dedup.models.event_source import EventSource
from venue_dedup.models.source import Source
from venue_dedup.models.venue import Venue
from venue_dedup.models.venue_merge_log import VenueMergeLog

__all__ = [
    "City",
    "Source",
    "Venue",
    "Event",
    "EventSource",
    "DuplicateCandidate",
    "DuplicateScanRun",
    "VenueMergeLog",
]
