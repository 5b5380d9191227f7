"""Background jobs for duplicate candidate scans."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from time import perf_counter

from sqlalchemy.orm import Session

from venue_dedup.db.session import SessionLocal
from venue_dedup.dedup.errors import NotFoundError
from venue_dedup.models.duplicate_scan_run import (
    SCAN_STATUS_COMPLETED,
    SCAN_STATUS_FAILED,
    SCAN_STATUS_QUEUED,
    SCAN_STATUS_RUNNING,
    DuplicateScanRun,
)
from venue_dedup.schemas.duplicates import ScanOptions
from venue_dedup.services.scanner import ScanProgress, scan

logger = logging.getLogger(__name__)


def create_scan_run(db: Session, options: ScanOptions) -> DuplicateScanRun:
    """Persist a queued run so callers can poll it before the job starts."""

    run = DuplicateScanRun(status=SCAN_STATUS_QUEUED, options_json=options.model_dump(), stats_json={})
    db.add(run)
    db.commit()
    db.refresh(run)
    logger.info("dedup.scan_run_queued run_id=%d", run.id)
    return run


def get_scan_run(db: Session, run_id: int) -> DuplicateScanRun:
    run = db.get(DuplicateScanRun, run_id)
    if run is None:
        raise NotFoundError(f"Scan run {run_id} was not found.")
    return run


def run_duplicate_scan_job(run_id: int) -> None:
    """Execute a queued scan run in a background-friendly DB session."""

    total_started = perf_counter()
    db = SessionLocal()
    try:
        run = get_scan_run(db, run_id)
        options = ScanOptions.model_validate(run.options_json or {})
        run.status = SCAN_STATUS_RUNNING
        run.started_at = datetime.now(timezone.utc)
        db.commit()

        def record_progress(progress: ScanProgress) -> None:
            run.stats_json = {
                "page": progress.page,
                "total_pages": progress.total_pages,
                "processed": progress.venues_processed,
                "total_venues": progress.total_venues,
                "duplicates_found": progress.duplicates_found,
                "duplicates_stored": progress.duplicates_stored,
                "last_venue_id": progress.last_venue_id,
            }
            db.commit()

        stats = scan(db, options, progress_callback=record_progress)
        run.status = SCAN_STATUS_COMPLETED
        run.stats_json = stats.model_dump()
        run.finished_at = datetime.now(timezone.utc)
        db.commit()
        logger.info(
            "dedup.scan_job_timing run_id=%d processed=%d stored=%d total_ms=%.2f",
            run_id,
            stats.processed,
            stats.duplicates_stored,
            (perf_counter() - total_started) * 1000.0,
        )
    except Exception as exc:
        logger.exception(
            "dedup.scan_job_failed run_id=%d elapsed_ms=%.2f",
            run_id,
            (perf_counter() - total_started) * 1000.0,
        )
        db.rollback()
        _mark_failed(db, run_id, exc)
        raise
    finally:
        db.close()


def _mark_failed(db: Session, run_id: int, exc: Exception) -> None:
    run = db.get(DuplicateScanRun, run_id)
    if run is None:
        return
    run.status = SCAN_STATUS_FAILED
    run.error_message = f"{type(exc).__name__}: {exc}"
    run.finished_at = datetime.now(timezone.utc)
    db.commit()
