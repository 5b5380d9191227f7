"""Venue merge orchestration.

A merge folds a secondary venue into a primary one inside a single
transaction: events are re-pointed, images combined, selected fields copied
across, the secondary soft-deleted, the candidate row closed and an audit
row written. Any failure rolls the whole thing back.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from time import perf_counter
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from venue_dedup.config import get_settings
from venue_dedup.dedup.errors import ConflictError, InvalidArgumentError, NotFoundError
from venue_dedup.dedup.pairs import PairKey
from venue_dedup.dedup.policy import (
    EventStrategy,
    FieldChange,
    MetadataStrategy,
    OverridableField,
    choose_primary,
    combine_images,
    metadata_conflicts,
    parse_field_overrides,
    resolve_field_changes,
)
from venue_dedup.models.duplicate_candidate import CANDIDATE_STATUS_MERGED, CANDIDATE_STATUS_PENDING
from venue_dedup.models.event import Event
from venue_dedup.models.venue import Venue
from venue_dedup.models.venue_merge_log import MERGE_ACTION, VenueMergeLog
from venue_dedup.schemas.duplicates import MergePreviewRead
from venue_dedup.services.reconciliation import reconcile_venue
from venue_dedup.services.registry import get_candidate_for_pair, parse_pair_keys, transition_candidate
from venue_dedup.services.transactions import atomic
from venue_dedup.services.venues import count_events, get_live_venue, snapshot_venues

logger = logging.getLogger(__name__)

_SAFE_MAX_EVENTS = 10
_REVIEW_MAX_EVENTS = 50
_REVIEW_MAX_CONFLICTS = 3
_MAX_HISTORY_LIMIT = 500


@dataclass(slots=True)
class MergeOptions:
    performed_by: str | None = None
    metadata_strategy: MetadataStrategy = MetadataStrategy.COMBINE
    field_overrides: Sequence[str | OverridableField] = ()
    event_strategy: EventStrategy = EventStrategy.MIGRATE_ALL
    notes: str | None = None


@dataclass(slots=True)
class MergeResult:
    primary_venue_id: int
    secondary_venue_id: int
    candidate_id: int | None
    log_id: int
    events_migrated: int
    images_combined: int
    fields_overridden: list[str] = field(default_factory=list)
    field_changes: list[dict[str, Any]] = field(default_factory=list)


def merge_venues(
    db: Session,
    primary_id: int,
    secondary_id: int,
    options: MergeOptions | None = None,
) -> MergeResult:
    """Merge ``secondary_id`` into ``primary_id`` and commit.

    Raises ``NotFoundError`` when a venue is missing or already soft-deleted,
    ``ConflictError`` when the pair was reviewed concurrently,
    ``InvalidArgumentError`` for bad input and ``MergeIntegrityError`` for
    storage constraint violations. Nothing is written unless the whole merge
    succeeds.
    """

    options = options or MergeOptions()
    PairKey.of(primary_id, secondary_id)
    overrides = parse_field_overrides(options.field_overrides)
    _validate_strategies(options)

    started = perf_counter()
    with atomic(db, "merge"):
        result = _merge_in_transaction(db, primary_id, secondary_id, options, overrides)
    logger.info(
        "dedup.merge_completed primary_id=%d secondary_id=%d candidate_id=%s events=%d images=%d fields=%s ms=%.2f",
        result.primary_venue_id,
        result.secondary_venue_id,
        result.candidate_id,
        result.events_migrated,
        result.images_combined,
        ",".join(result.fields_overridden) or "-",
        (perf_counter() - started) * 1000.0,
    )
    return result


def determine_primary(db: Session, venue1_id: int, venue2_id: int) -> tuple[int, int]:
    """Return ``(primary_id, secondary_id)`` for two live venues."""

    PairKey.of(venue1_id, venue2_id)
    first = _require_live(db, venue1_id)
    second = _require_live(db, venue2_id)
    primary, secondary = choose_primary(*snapshot_venues(db, first, second))
    return primary.id, secondary.id


def preview_merge(
    db: Session,
    primary_id: int,
    secondary_id: int,
    options: MergeOptions | None = None,
) -> MergePreviewRead:
    """Describe what ``merge_venues`` would do, without writing anything."""

    options = options or MergeOptions()
    PairKey.of(primary_id, secondary_id)
    overrides = parse_field_overrides(options.field_overrides)
    primary = _require_live(db, primary_id)
    secondary = _require_live(db, secondary_id)
    primary_snapshot, secondary_snapshot = snapshot_venues(db, primary, secondary)

    changes = resolve_field_changes(
        primary_snapshot,
        secondary_snapshot,
        metadata_strategy=options.metadata_strategy,
        field_overrides=overrides,
    )
    _, images_added = combine_images(primary.images_json or [], secondary.images_json or [])
    conflicts = metadata_conflicts(primary_snapshot, secondary_snapshot)
    events_to_migrate = count_events(db, [secondary.id])[secondary.id]
    return MergePreviewRead(
        primary_venue_id=primary.id,
        secondary_venue_id=secondary.id,
        events_to_migrate=events_to_migrate,
        images_to_combine=images_added,
        metadata_conflicts=conflicts,
        field_changes=[_change_payload(change) for change in changes],
        recommended_action=_recommendation(len(conflicts), events_to_migrate),
    )


def batch_merge(db: Session, pairs: Iterable[PairKey | str], *, performed_by: str | None = None) -> int:
    """Merge every pair in one transaction, picking the primary of each automatically.

    The first failing pair aborts the batch; nothing from earlier pairs is kept.
    """

    keys = parse_pair_keys(pairs)
    if not keys:
        raise InvalidArgumentError("At least one pair is required.")
    if len(set(keys)) != len(keys):
        raise InvalidArgumentError("Batch contains the same pair more than once.")
    options = MergeOptions(performed_by=performed_by)

    started = perf_counter()
    with atomic(db, "batch_merge"):
        for key in keys:
            primary_id, secondary_id = _choose_primary_ids(db, key)
            _merge_in_transaction(db, primary_id, secondary_id, options, [])
    logger.info(
        "dedup.batch_merge pairs=%d performed_by=%s ms=%.2f",
        len(keys),
        _performer(options),
        (perf_counter() - started) * 1000.0,
    )
    return len(keys)


def list_merge_history(
    db: Session,
    *,
    venue_id: int | None = None,
    action_type: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    limit: int = 50,
) -> list[VenueMergeLog]:
    """Newest audit rows first, optionally narrowed to one venue, action or time window.

    ``since`` is inclusive and ``until`` exclusive.
    """

    if limit < 1:
        raise InvalidArgumentError("limit must be positive.")
    if since is not None and until is not None and since >= until:
        raise InvalidArgumentError("since must be earlier than until.")
    stmt = select(VenueMergeLog)
    if venue_id is not None:
        stmt = stmt.where(
            (VenueMergeLog.primary_venue_id == venue_id) | (VenueMergeLog.secondary_venue_id == venue_id)
        )
    if action_type:
        stmt = stmt.where(VenueMergeLog.action_type == action_type)
    if since is not None:
        stmt = stmt.where(VenueMergeLog.created_at >= since)
    if until is not None:
        stmt = stmt.where(VenueMergeLog.created_at < until)
    stmt = stmt.order_by(VenueMergeLog.created_at.desc(), VenueMergeLog.id.desc()).limit(
        min(limit, _MAX_HISTORY_LIMIT)
    )
    return list(db.scalars(stmt))


def _merge_in_transaction(
    db: Session,
    primary_id: int,
    secondary_id: int,
    options: MergeOptions,
    overrides: Sequence[OverridableField],
) -> MergeResult:
    pair = PairKey.of(primary_id, secondary_id)
    locked = _lock_venues(db, pair)
    primary = locked.get(primary_id)
    secondary = locked.get(secondary_id)
    if primary is None or secondary is None:
        missing = primary_id if primary is None else secondary_id
        raise NotFoundError(f"Venue {missing} was not found.")

    candidate = get_candidate_for_pair(db, pair)
    if candidate is not None and candidate.status != CANDIDATE_STATUS_PENDING:
        raise ConflictError(f"Pair {pair.key} is already {candidate.status}.")
    for venue in (primary, secondary):
        if venue.deleted_at is not None:
            raise NotFoundError(f"Venue {venue.id} has already been merged or deleted.")

    performer = _performer(options)
    primary_snapshot, secondary_snapshot = snapshot_venues(db, primary, secondary)
    changes = resolve_field_changes(
        primary_snapshot,
        secondary_snapshot,
        metadata_strategy=options.metadata_strategy,
        field_overrides=overrides,
    )

    events_migrated = _migrate_events(db, secondary.id, primary.id)
    combined, images_added = combine_images(primary.images_json or [], secondary.images_json or [])
    primary.images_json = combined
    _apply_field_changes(db, primary, secondary, changes)
    db.flush()

    _touch_live_primary(db, primary.id)
    _soft_delete(db, secondary.id, merged_into_id=primary.id, performed_by=performer)
    if candidate is not None:
        transition_candidate(db, candidate.id, CANDIDATE_STATUS_MERGED, reviewed_by=performer)
    reconcile_venue(db, secondary.id, keep_candidate_id=candidate.id if candidate is not None else None)

    fields_overridden = [override.value for override in overrides]
    change_payloads = [_change_payload(change) for change in changes]
    log = VenueMergeLog(
        action_type=MERGE_ACTION,
        primary_venue_id=primary.id,
        secondary_venue_id=secondary.id,
        performed_by=performer,
        notes=options.notes,
        metadata_json={
            "candidate_id": candidate.id if candidate is not None else None,
            "events_migrated": events_migrated,
            "images_combined": images_added,
            "fields_overridden": fields_overridden,
            "field_changes": change_payloads,
            "metadata_strategy": options.metadata_strategy.value,
            "event_strategy": options.event_strategy.value,
        },
    )
    db.add(log)
    db.flush()
    return MergeResult(
        primary_venue_id=primary.id,
        secondary_venue_id=secondary.id,
        candidate_id=candidate.id if candidate is not None else None,
        log_id=log.id,
        events_migrated=events_migrated,
        images_combined=images_added,
        fields_overridden=fields_overridden,
        field_changes=change_payloads,
    )


def _migrate_events(db: Session, from_venue_id: int, to_venue_id: int) -> int:
    result = db.execute(
        update(Event)
        .where(Event.venue_id == from_venue_id)
        .values(venue_id=to_venue_id)
        .execution_options(synchronize_session="fetch")
    )
    return int(result.rowcount or 0)


def _apply_field_changes(db: Session, primary: Venue, secondary: Venue, changes: list[FieldChange]) -> None:
    for change in changes:
        if change.field == OverridableField.SLUG.value and change.value and change.value == secondary.slug:
            # Slugs are unique; free the secondary's slug before the primary takes it.
            secondary.slug = f"{secondary.slug}-merged-{secondary.id}"
            db.flush()
        setattr(primary, change.field, change.value)


def _lock_venues(db: Session, pair: PairKey) -> dict[int, Venue]:
    # Row locks in id order; a no-op on SQLite.
    venues = db.scalars(
        select(Venue)
        .where(Venue.id.in_((pair.low, pair.high)))
        .order_by(Venue.id.asc())
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return {venue.id: venue for venue in venues}


def _touch_live_primary(db: Session, venue_id: int) -> None:
    result = db.execute(
        update(Venue)
        .where(Venue.id == venue_id, Venue.deleted_at.is_(None))
        .values(updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount != 1:
        raise ConflictError(f"Venue {venue_id} was merged or deleted concurrently.")


def _soft_delete(db: Session, venue_id: int, *, merged_into_id: int, performed_by: str) -> None:
    result = db.execute(
        update(Venue)
        .where(Venue.id == venue_id, Venue.deleted_at.is_(None))
        .values(
            deleted_at=datetime.now(timezone.utc),
            deleted_by=performed_by,
            merged_into_id=merged_into_id,
        )
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount != 1:
        raise ConflictError(f"Venue {venue_id} was merged or deleted concurrently.")


def _choose_primary_ids(db: Session, pair: PairKey) -> tuple[int, int]:
    low = db.get(Venue, pair.low)
    high = db.get(Venue, pair.high)
    if low is None or high is None:
        raise NotFoundError(f"Pair {pair.key} references a venue that no longer exists.")
    primary, secondary = choose_primary(*snapshot_venues(db, low, high))
    return primary.id, secondary.id


def _require_live(db: Session, venue_id: int) -> Venue:
    venue = get_live_venue(db, venue_id)
    if venue is None:
        raise NotFoundError(f"Venue {venue_id} was not found or has already been merged.")
    return venue


def _validate_strategies(options: MergeOptions) -> None:
    try:
        options.metadata_strategy = MetadataStrategy(options.metadata_strategy)
        options.event_strategy = EventStrategy(options.event_strategy)
    except ValueError as exc:
        raise InvalidArgumentError(str(exc)) from exc


def _performer(options: MergeOptions) -> str:
    return options.performed_by or get_settings().default_reviewer


def _change_payload(change: FieldChange) -> dict[str, Any]:
    return {
        "field": change.field,
        "previous": change.previous,
        "value": change.value,
        "source": change.source.value,
    }


def _recommendation(conflict_count: int, event_count: int) -> str:
    if conflict_count == 0 and event_count <= _SAFE_MAX_EVENTS:
        return "safe"
    if conflict_count <= _REVIEW_MAX_CONFLICTS and event_count <= _REVIEW_MAX_EVENTS:
        return "review_conflicts"
    return "manual_review"
