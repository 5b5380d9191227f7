"""Batch candidate scanner: blocks, scores and upserts venue pairs."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from time import perf_counter

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.orm import Session

from venue_dedup.config import get_settings
from venue_dedup.dedup.errors import InvalidArgumentError, NotFoundError, UnscorablePairError
from venue_dedup.dedup.geo import bounding_box
from venue_dedup.dedup.pairs import PairKey
from venue_dedup.dedup.similarity import PairScore, normalize_postcode, score_pair
from venue_dedup.dedup.snapshot import VenueSnapshot
from venue_dedup.models.duplicate_candidate import CANDIDATE_STATUS_PENDING, DuplicateCandidate
from venue_dedup.models.venue import Venue
from venue_dedup.schemas.duplicates import ScanOptions, ScanStats
from venue_dedup.services.reconciliation import sweep_orphans

logger = logging.getLogger(__name__)

ProgressCallback = Callable[["ScanProgress"], None]


@dataclass(slots=True)
class ScanProgress:
    """Per-page progress snapshot handed to progress callbacks."""

    page: int
    total_pages: int
    venues_processed: int
    total_venues: int
    duplicates_found: int
    duplicates_stored: int
    last_venue_id: int | None


def scan(
    db: Session,
    options: ScanOptions | None = None,
    *,
    progress_callback: ProgressCallback | None = None,
) -> ScanStats:
    """Walk live venues page by page and upsert candidate pairs.

    Each page is committed on its own, so an interrupted scan leaves a valid
    registry and can be resumed with ``resume_after_id``. Pairs already merged
    or rejected are never touched.
    """

    options = options or default_scan_options()
    _validate_options(options)
    radius_km = get_settings().blocking_radius_km
    total_started = perf_counter()
    logger.info(
        "dedup.scan_started clear_existing=%s min_confidence=%.2f batch_size=%d resume_after_id=%s",
        options.clear_existing,
        options.min_confidence,
        options.batch_size,
        options.resume_after_id,
    )

    swept = sweep_orphans(db)
    cleared = 0
    if options.clear_existing:
        result = db.execute(
            delete(DuplicateCandidate).where(DuplicateCandidate.status == CANDIDATE_STATUS_PENDING)
        )
        cleared = int(result.rowcount or 0)
    db.commit()
    if swept or cleared:
        logger.info("dedup.scan_prepared swept_orphans=%d cleared_pending=%d", swept, cleared)

    live_filter = Venue.deleted_at.is_(None)
    resume_after = options.resume_after_id or 0
    total_venues = int(
        db.scalar(select(func.count(Venue.id)).where(live_filter, Venue.id > resume_after)) or 0
    )
    total_pages = -(-total_venues // options.batch_size)

    stats = ScanStats()
    last_id = resume_after
    page = 0
    while True:
        venues = list(
            db.scalars(
                select(Venue)
                .where(live_filter, Venue.id > last_id)
                .order_by(Venue.id.asc())
                .limit(options.batch_size)
            )
        )
        if not venues:
            break
        page += 1
        page_started = perf_counter()
        for venue in venues:
            _scan_venue(db, venue, options=options, radius_km=radius_km, stats=stats)
        last_id = venues[-1].id
        stats.last_venue_id = last_id
        db.commit()
        logger.info(
            "dedup.scan_page page=%d/%d venues=%d processed=%d found=%d stored=%d page_ms=%.2f",
            page,
            total_pages,
            len(venues),
            stats.processed,
            stats.duplicates_found,
            stats.duplicates_stored,
            (perf_counter() - page_started) * 1000.0,
        )
        if progress_callback is not None:
            progress_callback(
                ScanProgress(
                    page=page,
                    total_pages=total_pages,
                    venues_processed=stats.processed,
                    total_venues=total_venues,
                    duplicates_found=stats.duplicates_found,
                    duplicates_stored=stats.duplicates_stored,
                    last_venue_id=last_id,
                )
            )

    logger.info(
        (
            "dedup.scan_completed processed=%d found=%d stored=%d skipped_reviewed=%d "
            "stale_removed=%d unscorable=%d total_ms=%.2f"
        ),
        stats.processed,
        stats.duplicates_found,
        stats.duplicates_stored,
        stats.skipped_reviewed,
        stats.stale_removed,
        stats.unscorable,
        (perf_counter() - total_started) * 1000.0,
    )
    return stats


def default_scan_options() -> ScanOptions:
    settings = get_settings()
    return ScanOptions(
        min_confidence=settings.scan_default_min_confidence,
        batch_size=settings.scan_default_batch_size,
    )


def scan_venue(db: Session, venue_id: int, options: ScanOptions | None = None) -> ScanStats:
    """Score one live venue against every blocked partner and commit.

    Used when a single venue is created or edited, so partners on both sides
    of its id are considered. ``clear_existing`` and ``resume_after_id`` do
    not apply here.
    """

    options = options or default_scan_options()
    _validate_options(options)
    venue = db.scalar(select(Venue).where(Venue.id == venue_id, Venue.deleted_at.is_(None)))
    if venue is None:
        raise NotFoundError(f"Venue {venue_id} was not found or has already been merged.")

    started = perf_counter()
    stats = ScanStats()
    _scan_venue(
        db,
        venue,
        options=options,
        radius_km=get_settings().blocking_radius_km,
        stats=stats,
        higher_ids_only=False,
    )
    stats.last_venue_id = venue.id
    db.commit()
    logger.info(
        "dedup.scan_venue venue_id=%d found=%d stored=%d skipped_reviewed=%d stale_removed=%d ms=%.2f",
        venue_id,
        stats.duplicates_found,
        stats.duplicates_stored,
        stats.skipped_reviewed,
        stats.stale_removed,
        (perf_counter() - started) * 1000.0,
    )
    return stats


def find_partner_venues(
    db: Session,
    venue: Venue,
    *,
    radius_km: float,
    higher_ids_only: bool = True,
) -> list[Venue]:
    """Blocking: live venues sharing the city, postcode or neighbourhood.

    The batch scan only looks at larger ids so each pair is visited once.
    """

    conditions = []
    if venue.city_id is not None:
        conditions.append(Venue.city_id == venue.city_id)
    postcode = normalize_postcode(venue.postcode)
    if postcode:
        conditions.append(func.upper(func.replace(Venue.postcode, " ", "")) == postcode)
    if venue.latitude is not None and venue.longitude is not None:
        min_lat, max_lat, min_lon, max_lon = bounding_box(venue.latitude, venue.longitude, radius_km)
        conditions.append(
            and_(
                Venue.latitude.between(min_lat, max_lat),
                Venue.longitude.between(min_lon, max_lon),
            )
        )
    if not conditions:
        return []
    id_filter = Venue.id > venue.id if higher_ids_only else Venue.id != venue.id
    return list(
        db.scalars(
            select(Venue)
            .where(Venue.deleted_at.is_(None), id_filter, or_(*conditions))
            .order_by(Venue.id.asc())
        )
    )


def upsert_candidate(db: Session, pair: PairKey, score: PairScore) -> str:
    """Insert or refresh the pair's candidate row.

    Returns ``"inserted"``, ``"refreshed"`` or ``"reviewed"`` (left untouched).
    """

    candidate = db.scalar(
        select(DuplicateCandidate).where(
            DuplicateCandidate.venue1_id == pair.low,
            DuplicateCandidate.venue2_id == pair.high,
        )
    )
    if candidate is None:
        db.add(
            DuplicateCandidate(
                venue1_id=pair.low,
                venue2_id=pair.high,
                confidence_score=score.confidence_score,
                name_similarity=score.name_similarity,
                location_similarity=score.location_similarity,
                match_criteria=list(score.match_criteria),
                status=CANDIDATE_STATUS_PENDING,
            )
        )
        return "inserted"
    if candidate.status != CANDIDATE_STATUS_PENDING:
        return "reviewed"
    candidate.confidence_score = score.confidence_score
    candidate.name_similarity = score.name_similarity
    candidate.location_similarity = score.location_similarity
    candidate.match_criteria = list(score.match_criteria)
    return "refreshed"


def discard_stale_candidate(db: Session, pair: PairKey) -> int:
    """Delete the pair's pending row after it re-scored below the threshold.

    Merged and rejected rows are kept. Returns the number of rows deleted.
    """

    result = db.execute(
        delete(DuplicateCandidate).where(
            DuplicateCandidate.venue1_id == pair.low,
            DuplicateCandidate.venue2_id == pair.high,
            DuplicateCandidate.status == CANDIDATE_STATUS_PENDING,
        )
    )
    return int(result.rowcount or 0)


def _scan_venue(
    db: Session,
    venue: Venue,
    *,
    options: ScanOptions,
    radius_km: float,
    stats: ScanStats,
    higher_ids_only: bool = True,
) -> None:
    snapshot = VenueSnapshot.from_model(venue)
    partners = find_partner_venues(db, venue, radius_km=radius_km, higher_ids_only=higher_ids_only)
    for partner in partners:
        try:
            score = score_pair(snapshot, VenueSnapshot.from_model(partner))
        except UnscorablePairError as exc:
            stats.unscorable += 1
            logger.warning("dedup.scan_skip_pair venue1_id=%d venue2_id=%d reason=%s", venue.id, partner.id, exc)
            continue
        pair = PairKey.of(venue.id, partner.id)
        if score.confidence_score < options.min_confidence:
            stats.stale_removed += discard_stale_candidate(db, pair)
            continue
        stats.duplicates_found += 1
        outcome = upsert_candidate(db, pair, score)
        if outcome == "reviewed":
            stats.skipped_reviewed += 1
        else:
            stats.duplicates_stored += 1
    stats.processed += 1


def _validate_options(options: ScanOptions) -> None:
    if not 0.0 <= options.min_confidence <= 1.0:
        raise InvalidArgumentError(f"min_confidence must be within [0, 1], got {options.min_confidence}.")
    if options.batch_size < 1:
        raise InvalidArgumentError(f"batch_size must be positive, got {options.batch_size}.")
