"""Duplicate review queue: listing, statistics, comparison and rejection."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Select, and_, case, exists, func, or_, select, update
from sqlalchemy.orm import Session, aliased

from venue_dedup.config import get_settings
from venue_dedup.dedup.errors import ConflictError, InvalidArgumentError, NotFoundError, UnscorablePairError
from venue_dedup.dedup.pairs import PairKey
from venue_dedup.dedup.policy import DEFAULT_FIELD_SIDES, OverridableField, choose_primary, metadata_conflicts
from venue_dedup.dedup.similarity import HIGH_CONFIDENCE_MIN, MEDIUM_CONFIDENCE_MIN, confidence_band, score_pair
from venue_dedup.models.city import City
from venue_dedup.models.duplicate_candidate import (
    CANDIDATE_STATUS_MERGED,
    CANDIDATE_STATUS_PENDING,
    CANDIDATE_STATUS_REJECTED,
    DuplicateCandidate,
)
from venue_dedup.models.event import Event
from venue_dedup.models.event_source import EventSource
from venue_dedup.models.source import Source
from venue_dedup.models.venue import Venue
from venue_dedup.models.venue_merge_log import NOT_DUPLICATE_ACTION, VenueMergeLog
from venue_dedup.schemas.duplicates import (
    CandidateListResponse,
    CandidateRead,
    CandidateSummary,
    DuplicateStatistics,
    EventSourceSummary,
    EventSummary,
    VenueComparison,
    VenueDetail,
)
from venue_dedup.services.reconciliation import is_live_venue, reconcile
from venue_dedup.services.transactions import atomic
from venue_dedup.services.venues import snapshot_venues

logger = logging.getLogger(__name__)

NAME_POSTCODE_DUPLICATE = "name_postcode_duplicate"
NAME_CITY_DUPLICATE = "name_city_duplicate"

_BAND_FILTERS = {"all", "high_confidence", "medium_confidence", "low_confidence"}
_SORT_KEYS = {"confidence", "name", "name_similarity", "location_similarity"}


def get_candidate(db: Session, candidate_id: int) -> DuplicateCandidate:
    candidate = db.get(DuplicateCandidate, candidate_id)
    if candidate is None:
        raise NotFoundError(f"Duplicate candidate {candidate_id} was not found.")
    return candidate


def get_candidate_for_pair(db: Session, pair: PairKey) -> DuplicateCandidate | None:
    return db.scalar(
        select(DuplicateCandidate).where(
            DuplicateCandidate.venue1_id == pair.low,
            DuplicateCandidate.venue2_id == pair.high,
        )
    )


def transition_candidate(db: Session, candidate_id: int, status: str, *, reviewed_by: str) -> None:
    """Move a pending candidate to ``status``; raise ``ConflictError`` if it is no longer pending.

    The write is conditional on the stored status, so two reviewers acting on
    the same pair cannot both succeed. Does not commit.
    """

    result = db.execute(
        update(DuplicateCandidate)
        .where(
            DuplicateCandidate.id == candidate_id,
            DuplicateCandidate.status == CANDIDATE_STATUS_PENDING,
        )
        .values(status=status, reviewed_by=reviewed_by, reviewed_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount != 1:
        raise ConflictError(f"Duplicate candidate {candidate_id} has already been reviewed.")


def list_candidates(
    db: Session,
    *,
    band: str = "all",
    sort: str = "confidence",
    page: int = 1,
    per_page: int | None = None,
) -> CandidateListResponse:
    """Pending candidates whose venues are both live, filtered, sorted and paginated."""

    if band not in _BAND_FILTERS:
        raise InvalidArgumentError(f"Unknown confidence filter: {band!r}.")
    if sort not in _SORT_KEYS:
        raise InvalidArgumentError(f"Unknown sort key: {sort!r}.")
    per_page = per_page or get_settings().review_page_size
    if page < 1 or per_page < 1:
        raise InvalidArgumentError("page and per_page must be positive.")

    venue1 = aliased(Venue)
    venue2 = aliased(Venue)
    base = _pending_pairs(select(DuplicateCandidate, venue1, venue2), venue1, venue2)
    base = _apply_band(base, band)

    total = count_candidates(db, band=band)
    rows = db.execute(
        base.order_by(*_sort_clauses(sort, venue1, venue2))
        .offset((page - 1) * per_page)
        .limit(per_page)
    ).all()
    items = [_candidate_summary(candidate, first, second) for candidate, first, second in rows]
    return CandidateListResponse(items=items, total=total, page=page, per_page=per_page)


def count_candidates(db: Session, *, band: str = "all") -> int:
    if band not in _BAND_FILTERS:
        raise InvalidArgumentError(f"Unknown confidence filter: {band!r}.")
    venue1 = aliased(Venue)
    venue2 = aliased(Venue)
    stmt = _pending_pairs(select(func.count(DuplicateCandidate.id)).select_from(DuplicateCandidate), venue1, venue2)
    return int(db.scalar(_apply_band(stmt, band)) or 0)


def statistics(db: Session) -> DuplicateStatistics:
    """Aggregates over every stored candidate, whatever its status."""

    score = DuplicateCandidate.confidence_score
    status = DuplicateCandidate.status
    row = db.execute(
        select(
            func.count(DuplicateCandidate.id),
            func.sum(case((score >= HIGH_CONFIDENCE_MIN, 1), else_=0)),
            func.sum(case((and_(score >= MEDIUM_CONFIDENCE_MIN, score < HIGH_CONFIDENCE_MIN), 1), else_=0)),
            func.sum(case((score < MEDIUM_CONFIDENCE_MIN, 1), else_=0)),
            func.sum(case((status == CANDIDATE_STATUS_PENDING, 1), else_=0)),
            func.sum(case((status == CANDIDATE_STATUS_MERGED, 1), else_=0)),
            func.sum(case((status == CANDIDATE_STATUS_REJECTED, 1), else_=0)),
            func.avg(score),
            func.avg(DuplicateCandidate.name_similarity),
            func.avg(DuplicateCandidate.location_similarity),
        )
    ).one()
    total, high, medium, low, pending, merged, rejected, avg_conf, avg_name, avg_location = row
    return DuplicateStatistics(
        total=int(total or 0),
        high_confidence=int(high or 0),
        medium_confidence=int(medium or 0),
        low_confidence=int(low or 0),
        pending=int(pending or 0),
        merged=int(merged or 0),
        rejected=int(rejected or 0),
        avg_confidence=_rounded(avg_conf),
        avg_name_similarity=_rounded(avg_name),
        avg_location_similarity=_rounded(avg_location),
    )


def list_exact_matches(db: Session, *, page: int = 1, per_page: int | None = None) -> CandidateListResponse:
    """Live venue pairs with the same normalized name and the same postcode or city.

    Pairs already rejected or merged through the registry are left out.
    """

    per_page = per_page or get_settings().review_page_size
    if page < 1 or per_page < 1:
        raise InvalidArgumentError("page and per_page must be positive.")
    venue1 = aliased(Venue)
    venue2 = aliased(Venue)
    total = count_exact_matches(db)
    stmt, same_postcode = _exact_pairs(select(venue1, venue2), venue1, venue2)
    rows = db.execute(
        stmt.add_columns(same_postcode.label("same_postcode"))
        .order_by(venue1.name.asc(), venue1.id.asc(), venue2.id.asc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    ).all()
    items = []
    for first, second, postcode_match in rows:
        pair = PairKey.of(first.id, second.id)
        items.append(
            CandidateSummary(
                id=None,
                pair_key=pair.key,
                venue1_id=first.id,
                venue1_name=first.name,
                venue1_postcode=first.postcode,
                venue1_city_id=first.city_id,
                venue2_id=second.id,
                venue2_name=second.name,
                venue2_postcode=second.postcode,
                venue2_city_id=second.city_id,
                confidence_score=None,
                name_similarity=None,
                location_similarity=None,
                confidence_band=None,
                match_criteria=[NAME_POSTCODE_DUPLICATE if postcode_match else NAME_CITY_DUPLICATE],
            )
        )
    return CandidateListResponse(items=items, total=total, page=page, per_page=per_page)


def count_exact_matches(db: Session) -> int:
    venue1 = aliased(Venue)
    venue2 = aliased(Venue)
    stmt, _ = _exact_pairs(select(func.count(venue1.id)), venue1, venue2)
    return int(db.scalar(stmt) or 0)


def get_comparison(db: Session, venue1_id: int, venue2_id: int) -> VenueComparison:
    """Side-by-side view of two venues.

    When either venue is missing or soft-deleted the pair's registry rows are
    removed and a ``resolved`` payload is returned instead of an error.
    """

    pair = PairKey.of(venue1_id, venue2_id)
    first = db.get(Venue, venue1_id)
    second = db.get(Venue, venue2_id)
    if not (is_live_venue(first) and is_live_venue(second)):
        removed = reconcile(db, venue1_id, venue2_id)
        db.commit()
        logger.info("dedup.comparison_resolved pair=%s removed=%d", pair.key, removed)
        return VenueComparison(pair_key=pair.key, resolved=True, removed_candidates=removed)

    snapshot1, snapshot2 = snapshot_venues(db, first, second)
    comparison = VenueComparison(
        pair_key=pair.key,
        venue1=_venue_detail(db, first),
        venue2=_venue_detail(db, second),
        allowed_override_fields=[field.value for field in OverridableField],
        default_field_sides={field.value: side.value for field, side in DEFAULT_FIELD_SIDES.items()},
    )
    try:
        score = score_pair(snapshot1, snapshot2)
    except UnscorablePairError as exc:
        logger.warning("dedup.comparison_unscorable pair=%s reason=%s", pair.key, exc)
    else:
        comparison.name_similarity = score.name_similarity
        comparison.location_similarity = score.location_similarity
        comparison.confidence_score = score.confidence_score
        comparison.confidence_band = score.band.value
        comparison.match_criteria = list(score.match_criteria)

    candidate = get_candidate_for_pair(db, pair)
    if candidate is not None:
        comparison.candidate = CandidateRead.model_validate(candidate)
    primary, secondary = choose_primary(snapshot1, snapshot2)
    comparison.suggested_primary_id = primary.id
    comparison.metadata_conflicts = metadata_conflicts(primary, secondary)
    return comparison


def reject(
    db: Session,
    *,
    candidate_id: int | None = None,
    pair: PairKey | None = None,
    reviewed_by: str | None = None,
    notes: str | None = None,
) -> DuplicateCandidate:
    """Mark a candidate as "not a duplicate" and record the decision."""

    if (candidate_id is None) == (pair is None):
        raise InvalidArgumentError("Provide exactly one of candidate_id or pair.")
    reviewer = reviewed_by or get_settings().default_reviewer
    with atomic(db, "reject"):
        candidate = _load_pending_target(db, candidate_id=candidate_id, pair=pair)
        _reject_candidate(db, candidate, reviewer=reviewer, notes=notes)
    db.refresh(candidate)
    return candidate


def batch_reject(db: Session, pairs: Iterable[PairKey | str], *, reviewed_by: str | None = None) -> int:
    """Reject every pair in one transaction; any failure leaves the registry untouched."""

    keys = _unique_pairs(pairs)
    reviewer = reviewed_by or get_settings().default_reviewer
    with atomic(db, "batch_reject"):
        for key in keys:
            candidate = _load_pending_target(db, pair=key)
            _reject_candidate(db, candidate, reviewer=reviewer, notes=None)
    logger.info("dedup.batch_reject pairs=%d reviewer=%s", len(keys), reviewer)
    return len(keys)


def parse_pair_keys(pairs: Iterable[PairKey | str]) -> list[PairKey]:
    return [pair if isinstance(pair, PairKey) else PairKey.parse(pair) for pair in pairs]


def _unique_pairs(pairs: Iterable[PairKey | str]) -> list[PairKey]:
    keys = parse_pair_keys(pairs)
    if not keys:
        raise InvalidArgumentError("At least one pair is required.")
    if len(set(keys)) != len(keys):
        raise InvalidArgumentError("Batch contains the same pair more than once.")
    return keys


def _load_pending_target(
    db: Session,
    *,
    candidate_id: int | None = None,
    pair: PairKey | None = None,
) -> DuplicateCandidate:
    if candidate_id is not None:
        candidate = get_candidate(db, candidate_id)
    else:
        candidate = get_candidate_for_pair(db, pair)
        if candidate is None:
            raise NotFoundError(f"No duplicate candidate exists for pair {pair.key}.")
    if candidate.status != CANDIDATE_STATUS_PENDING:
        raise ConflictError(f"Duplicate candidate {candidate.id} is already {candidate.status}.")
    return candidate


def _reject_candidate(db: Session, candidate: DuplicateCandidate, *, reviewer: str, notes: str | None) -> None:
    transition_candidate(db, candidate.id, CANDIDATE_STATUS_REJECTED, reviewed_by=reviewer)
    db.add(
        VenueMergeLog(
            action_type=NOT_DUPLICATE_ACTION,
            primary_venue_id=candidate.venue1_id,
            secondary_venue_id=candidate.venue2_id,
            performed_by=reviewer,
            notes=notes,
            metadata_json={
                "candidate_id": candidate.id,
                "confidence_score": candidate.confidence_score,
                "match_criteria": list(candidate.match_criteria or []),
            },
        )
    )
    logger.info(
        "dedup.candidate_rejected candidate_id=%d pair=%d-%d reviewer=%s",
        candidate.id,
        candidate.venue1_id,
        candidate.venue2_id,
        reviewer,
    )


def _pending_pairs(stmt: Select, venue1, venue2) -> Select:
    return (
        stmt.join(venue1, venue1.id == DuplicateCandidate.venue1_id)
        .join(venue2, venue2.id == DuplicateCandidate.venue2_id)
        .where(
            DuplicateCandidate.status == CANDIDATE_STATUS_PENDING,
            venue1.deleted_at.is_(None),
            venue2.deleted_at.is_(None),
        )
    )


def _apply_band(stmt: Select, band: str) -> Select:
    score = DuplicateCandidate.confidence_score
    if band == "high_confidence":
        return stmt.where(score >= HIGH_CONFIDENCE_MIN)
    if band == "medium_confidence":
        return stmt.where(score >= MEDIUM_CONFIDENCE_MIN, score < HIGH_CONFIDENCE_MIN)
    if band == "low_confidence":
        return stmt.where(score < MEDIUM_CONFIDENCE_MIN)
    return stmt


def _sort_clauses(sort: str, venue1, venue2) -> list[Any]:
    if sort == "name":
        return [venue1.name.asc(), venue2.name.asc(), DuplicateCandidate.id.asc()]
    if sort == "name_similarity":
        return [DuplicateCandidate.name_similarity.desc(), DuplicateCandidate.id.asc()]
    if sort == "location_similarity":
        return [DuplicateCandidate.location_similarity.desc(), DuplicateCandidate.id.asc()]
    return [DuplicateCandidate.confidence_score.desc(), DuplicateCandidate.id.asc()]


def _exact_pairs(stmt: Select, venue1, venue2) -> tuple[Select, Any]:
    postcode1 = func.upper(func.replace(venue1.postcode, " ", ""))
    postcode2 = func.upper(func.replace(venue2.postcode, " ", ""))
    same_postcode = and_(
        venue1.postcode.is_not(None),
        venue2.postcode.is_not(None),
        func.trim(venue1.postcode) != "",
        postcode1 == postcode2,
    )
    same_city = and_(venue1.city_id.is_not(None), venue1.city_id == venue2.city_id)
    reviewed = exists().where(
        DuplicateCandidate.venue1_id == venue1.id,
        DuplicateCandidate.venue2_id == venue2.id,
        DuplicateCandidate.status != CANDIDATE_STATUS_PENDING,
    )
    stmt = (
        stmt.select_from(venue1)
        .join(
            venue2,
            and_(
                venue1.id < venue2.id,
                func.lower(func.trim(venue1.name)) == func.lower(func.trim(venue2.name)),
            ),
        )
        .where(
            venue1.deleted_at.is_(None),
            venue2.deleted_at.is_(None),
            or_(same_postcode, same_city),
            ~reviewed,
        )
    )
    return stmt, same_postcode


def _candidate_summary(candidate: DuplicateCandidate, venue1: Venue, venue2: Venue) -> CandidateSummary:
    return CandidateSummary(
        id=candidate.id,
        pair_key=f"{candidate.venue1_id}-{candidate.venue2_id}",
        venue1_id=venue1.id,
        venue1_name=venue1.name,
        venue1_postcode=venue1.postcode,
        venue1_city_id=venue1.city_id,
        venue2_id=venue2.id,
        venue2_name=venue2.name,
        venue2_postcode=venue2.postcode,
        venue2_city_id=venue2.city_id,
        confidence_score=candidate.confidence_score,
        name_similarity=candidate.name_similarity,
        location_similarity=candidate.location_similarity,
        confidence_band=confidence_band(candidate.confidence_score).value,
        match_criteria=list(candidate.match_criteria or []),
    )


def _venue_detail(db: Session, venue: Venue) -> VenueDetail:
    city_name = None
    if venue.city_id is not None:
        city = db.get(City, venue.city_id)
        city_name = city.name if city is not None else None
    return VenueDetail(
        id=venue.id,
        name=venue.name,
        slug=venue.slug,
        address=venue.address,
        postcode=venue.postcode,
        city_id=venue.city_id,
        city_name=city_name,
        latitude=venue.latitude,
        longitude=venue.longitude,
        place_id=venue.place_id,
        phone=venue.phone,
        website=venue.website,
        facebook=venue.facebook,
        instagram=venue.instagram,
        image_count=len(venue.images_json or []),
        created_at=venue.created_at,
        events=_event_summaries(db, venue.id),
    )


def _event_summaries(db: Session, venue_id: int) -> list[EventSummary]:
    events = list(
        db.scalars(
            select(Event)
            .where(Event.venue_id == venue_id)
            .order_by(Event.day_of_week.asc(), Event.start_time.asc(), Event.id.asc())
        )
    )
    if not events:
        return []
    source_rows = db.execute(
        select(EventSource, Source.name)
        .join(Source, Source.id == EventSource.source_id)
        .where(EventSource.event_id.in_([event.id for event in events]))
        .order_by(EventSource.last_seen_at.desc(), EventSource.id.asc())
    ).all()
    sources_by_event: dict[int, list[EventSourceSummary]] = {}
    for event_source, source_name in source_rows:
        sources_by_event.setdefault(event_source.event_id, []).append(
            EventSourceSummary(
                source_id=event_source.source_id,
                source_name=source_name,
                source_url=event_source.source_url,
                last_seen_at=event_source.last_seen_at,
            )
        )
    return [
        EventSummary(
            id=event.id,
            name=event.name,
            day_of_week=event.day_of_week,
            start_time=event.start_time,
            sources=sources_by_event.get(event.id, []),
        )
        for event in events
    ]


def _rounded(value: Any) -> float | None:
    return None if value is None else round(float(value), 4)
