"""Removal of registry rows that point at venues which are gone."""

from __future__ import annotations

import logging

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.orm import Session

from venue_dedup.dedup.pairs import PairKey
from venue_dedup.models.duplicate_candidate import CANDIDATE_STATUS_PENDING, DuplicateCandidate
from venue_dedup.models.venue import Venue

logger = logging.getLogger(__name__)


def is_live_venue(venue: Venue | None) -> bool:
    return venue is not None and venue.deleted_at is None


def reconcile(db: Session, venue1_id: int, venue2_id: int) -> int:
    """Delete every candidate row for a pair when either venue is missing or soft-deleted.

    Does not commit. Returns the number of rows removed (0 when both venues are live).
    """

    pair = PairKey.of(venue1_id, venue2_id)
    venue1 = db.get(Venue, pair.low)
    venue2 = db.get(Venue, pair.high)
    if is_live_venue(venue1) and is_live_venue(venue2):
        return 0
    result = db.execute(
        delete(DuplicateCandidate).where(
            DuplicateCandidate.venue1_id == pair.low,
            DuplicateCandidate.venue2_id == pair.high,
        )
    )
    removed = int(result.rowcount or 0)
    if removed:
        logger.info(
            "dedup.reconcile pair=%s removed=%d venue1_live=%s venue2_live=%s",
            pair.key,
            removed,
            is_live_venue(venue1),
            is_live_venue(venue2),
        )
    return removed


def reconcile_venue(db: Session, venue_id: int, *, keep_candidate_id: int | None = None) -> int:
    """Delete pending rows that reference a venue which is no longer live. Does not commit."""

    stmt = delete(DuplicateCandidate).where(
        DuplicateCandidate.status == CANDIDATE_STATUS_PENDING,
        or_(DuplicateCandidate.venue1_id == venue_id, DuplicateCandidate.venue2_id == venue_id),
    )
    if keep_candidate_id is not None:
        stmt = stmt.where(DuplicateCandidate.id != keep_candidate_id)
    removed = int(db.execute(stmt).rowcount or 0)
    if removed:
        logger.info("dedup.reconcile_venue venue_id=%d removed=%d", venue_id, removed)
    return removed


def sweep_orphans(db: Session) -> int:
    """Delete pending rows whose venues are missing or soft-deleted. Does not commit."""

    live_ids = select(Venue.id).where(Venue.deleted_at.is_(None))
    result = db.execute(
        delete(DuplicateCandidate).where(
            and_(
                DuplicateCandidate.status == CANDIDATE_STATUS_PENDING,
                or_(
                    DuplicateCandidate.venue1_id.not_in(live_ids),
                    DuplicateCandidate.venue2_id.not_in(live_ids),
                ),
            )
        )
    )
    removed = int(result.rowcount or 0)
    if removed:
        logger.info("dedup.sweep_orphans removed=%d", removed)
    return removed
