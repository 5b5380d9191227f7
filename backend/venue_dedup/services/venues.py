"""Venue lookups shared by the review and merge services."""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from venue_dedup.dedup.snapshot import VenueSnapshot
from venue_dedup.models.event import Event
from venue_dedup.models.venue import Venue


def get_live_venue(db: Session, venue_id: int) -> Venue | None:
    """Return the venue unless it is missing or soft-deleted."""

    venue = db.get(Venue, venue_id)
    if venue is None or venue.deleted_at is not None:
        return None
    return venue


def count_events(db: Session, venue_ids: Iterable[int]) -> dict[int, int]:
    ids = list(venue_ids)
    if not ids:
        return {}
    rows = db.execute(
        select(Event.venue_id, func.count(Event.id)).where(Event.venue_id.in_(ids)).group_by(Event.venue_id)
    ).all()
    counts = {venue_id: 0 for venue_id in ids}
    counts.update({int(venue_id): int(count) for venue_id, count in rows})
    return counts


def snapshot_venues(db: Session, *venues: Venue) -> list[VenueSnapshot]:
    """Snapshot venues with their event counts, preserving argument order."""

    counts = count_events(db, [venue.id for venue in venues])
    return [VenueSnapshot.from_model(venue, event_count=counts.get(venue.id, 0)) for venue in venues]
