"""Duplicate review, scan and merge routes for the admin UI."""

from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Path, Query
from sqlalchemy.orm import Session

from venue_dedup.db.dependencies import get_db
from venue_dedup.dedup.errors import (
    ConflictError,
    DedupError,
    InvalidArgumentError,
    MergeIntegrityError,
    NotFoundError,
)
from venue_dedup.dedup.pairs import PairKey
from venue_dedup.schemas.common import ApiResponse
from venue_dedup.schemas.duplicates import (
    BatchRequest,
    BatchResult,
    CandidateListResponse,
    CandidateSort,
    ConfidenceFilter,
    DuplicateStatistics,
    MergeLogRead,
    MergePreviewRead,
    MergeRequest,
    MergeResultRead,
    RejectByIdRequest,
    RejectRequest,
    RejectResultRead,
    ScanOptions,
    ScanRunRead,
    ScanStats,
    VenueComparison,
)
from venue_dedup.services.background_jobs import create_scan_run, get_scan_run, run_duplicate_scan_job
from venue_dedup.services.merge import (
    MergeOptions,
    batch_merge,
    determine_primary,
    list_merge_history,
    merge_venues,
    preview_merge,
)
from venue_dedup.services.registry import (
    batch_reject,
    get_comparison,
    list_candidates,
    list_exact_matches,
    reject,
    statistics,
)
from venue_dedup.services.scanner import scan_venue

router = APIRouter(prefix="/duplicates")


def _http_error(exc: DedupError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=f"Already resolved: {exc}")
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, InvalidArgumentError):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, MergeIntegrityError):
        return HTTPException(status_code=500, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


@router.post("/scan", response_model=ApiResponse[ScanRunRead], status_code=202)
def start_scan(
    payload: ScanOptions,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
) -> ApiResponse[ScanRunRead]:
    """Queue a background candidate scan and return its run record."""

    run = create_scan_run(db, payload)
    background_tasks.add_task(run_duplicate_scan_job, run.id)
    return ApiResponse(data=ScanRunRead.model_validate(run))


@router.post("/scan/venues/{venue_id}", response_model=ApiResponse[ScanStats])
def scan_single_venue(
    venue_id: int = Path(..., ge=1),
    payload: ScanOptions | None = None,
    db: Session = Depends(get_db),
) -> ApiResponse[ScanStats]:
    """Score one venue against its neighbours right away."""

    try:
        stats = scan_venue(db, venue_id, payload)
    except DedupError as exc:
        raise _http_error(exc) from exc
    return ApiResponse(data=stats)


@router.get("/scans/{run_id}", response_model=ApiResponse[ScanRunRead])
def read_scan_run(
    run_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
) -> ApiResponse[ScanRunRead]:
    try:
        run = get_scan_run(db, run_id)
    except DedupError as exc:
        raise _http_error(exc) from exc
    return ApiResponse(data=ScanRunRead.model_validate(run))


@router.get("", response_model=ApiResponse[CandidateListResponse])
def read_candidates(
    band: ConfidenceFilter = Query(default="all", alias="filter"),
    sort: CandidateSort = Query(default="confidence"),
    page: int = Query(default=1, ge=1),
    per_page: int | None = Query(default=None, ge=1, le=200),
    db: Session = Depends(get_db),
) -> ApiResponse[CandidateListResponse]:
    """Pending review queue."""

    try:
        listing = list_candidates(db, band=band, sort=sort, page=page, per_page=per_page)
    except DedupError as exc:
        raise _http_error(exc) from exc
    return ApiResponse(data=listing)


@router.get("/exact", response_model=ApiResponse[CandidateListResponse])
def read_exact_matches(
    page: int = Query(default=1, ge=1),
    per_page: int | None = Query(default=None, ge=1, le=200),
    db: Session = Depends(get_db),
) -> ApiResponse[CandidateListResponse]:
    """Same-name pairs sharing a postcode or city, computed on read."""

    try:
        listing = list_exact_matches(db, page=page, per_page=per_page)
    except DedupError as exc:
        raise _http_error(exc) from exc
    return ApiResponse(data=listing)


@router.get("/statistics", response_model=ApiResponse[DuplicateStatistics])
def read_statistics(db: Session = Depends(get_db)) -> ApiResponse[DuplicateStatistics]:
    return ApiResponse(data=statistics(db))


@router.get("/compare/{venue1_id}/{venue2_id}", response_model=ApiResponse[VenueComparison])
def read_comparison(
    venue1_id: int = Path(..., ge=1),
    venue2_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
) -> ApiResponse[VenueComparison]:
    """Side-by-side comparison; ``resolved`` is true when the pair is gone."""

    try:
        comparison = get_comparison(db, venue1_id, venue2_id)
    except DedupError as exc:
        raise _http_error(exc) from exc
    return ApiResponse(data=comparison)


@router.get("/preview/{primary_id}/{secondary_id}", response_model=ApiResponse[MergePreviewRead])
def read_merge_preview(
    primary_id: int = Path(..., ge=1),
    secondary_id: int = Path(..., ge=1),
    field_overrides: list[str] = Query(default=[]),
    db: Session = Depends(get_db),
) -> ApiResponse[MergePreviewRead]:
    try:
        preview = preview_merge(db, primary_id, secondary_id, MergeOptions(field_overrides=field_overrides))
    except DedupError as exc:
        raise _http_error(exc) from exc
    return ApiResponse(data=preview)


@router.post("/merge", response_model=ApiResponse[MergeResultRead])
def post_merge(payload: MergeRequest, db: Session = Depends(get_db)) -> ApiResponse[MergeResultRead]:
    """Merge one pair; the secondary venue is soft-deleted."""

    try:
        primary_id, secondary_id = payload.primary_id, payload.secondary_id
        if payload.auto_select_primary:
            primary_id, secondary_id = determine_primary(db, primary_id, secondary_id)
        result = merge_venues(
            db,
            primary_id,
            secondary_id,
            MergeOptions(
                performed_by=payload.performed_by,
                metadata_strategy=payload.metadata_strategy,
                field_overrides=payload.field_overrides,
                event_strategy=payload.event_strategy,
                notes=payload.notes,
            ),
        )
    except DedupError as exc:
        raise _http_error(exc) from exc
    return ApiResponse(
        data=MergeResultRead(
            primary_venue_id=result.primary_venue_id,
            secondary_venue_id=result.secondary_venue_id,
            candidate_id=result.candidate_id,
            log_id=result.log_id,
            events_migrated=result.events_migrated,
            images_combined=result.images_combined,
            fields_overridden=result.fields_overridden,
            field_changes=result.field_changes,
        )
    )


@router.post("/reject", response_model=ApiResponse[RejectResultRead])
def post_reject_pair(payload: RejectRequest, db: Session = Depends(get_db)) -> ApiResponse[RejectResultRead]:
    try:
        pair = PairKey.of(payload.venue1_id, payload.venue2_id)
        candidate = reject(db, pair=pair, reviewed_by=payload.reviewed_by, notes=payload.notes)
    except DedupError as exc:
        raise _http_error(exc) from exc
    return ApiResponse(data=RejectResultRead(candidate_id=candidate.id, pair_key=pair.key, status=candidate.status))


@router.post("/{candidate_id}/reject", response_model=ApiResponse[RejectResultRead])
def post_reject_candidate(
    payload: RejectByIdRequest,
    candidate_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
) -> ApiResponse[RejectResultRead]:
    """Mark one candidate as "not a duplicate"."""

    try:
        candidate = reject(db, candidate_id=candidate_id, reviewed_by=payload.reviewed_by, notes=payload.notes)
    except DedupError as exc:
        raise _http_error(exc) from exc
    pair_key = PairKey.of(candidate.venue1_id, candidate.venue2_id).key
    return ApiResponse(data=RejectResultRead(candidate_id=candidate.id, pair_key=pair_key, status=candidate.status))


@router.post("/batch/merge", response_model=ApiResponse[BatchResult])
def post_batch_merge(payload: BatchRequest, db: Session = Depends(get_db)) -> ApiResponse[BatchResult]:
    """Merge all listed pairs or none of them."""

    try:
        count = batch_merge(db, payload.pairs, performed_by=payload.performed_by)
    except DedupError as exc:
        raise _http_error(exc) from exc
    return ApiResponse(data=BatchResult(success_count=count))


@router.post("/batch/reject", response_model=ApiResponse[BatchResult])
def post_batch_reject(payload: BatchRequest, db: Session = Depends(get_db)) -> ApiResponse[BatchResult]:
    """Reject all listed pairs or none of them."""

    try:
        count = batch_reject(db, payload.pairs, reviewed_by=payload.performed_by)
    except DedupError as exc:
        raise _http_error(exc) from exc
    return ApiResponse(data=BatchResult(success_count=count))


@router.get("/merge-history", response_model=ApiResponse[list[MergeLogRead]])
def read_merge_history(
    venue_id: int | None = Query(default=None, ge=1),
    action_type: str | None = Query(default=None, min_length=1),
    since: datetime | None = Query(default=None),
    until: datetime | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
) -> ApiResponse[list[MergeLogRead]]:
    try:
        logs = list_merge_history(
            db,
            venue_id=venue_id,
            action_type=action_type,
            since=since,
            until=until,
            limit=limit,
        )
    except DedupError as exc:
        raise _http_error(exc) from exc
    return ApiResponse(data=[MergeLogRead.model_validate(log) for log in logs])
