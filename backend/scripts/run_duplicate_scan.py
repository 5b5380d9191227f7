"""Run a duplicate candidate scan in the foreground and print its statistics.

Usage (from repository root):
    python backend/scripts/run_duplicate_scan.py --min-confidence 0.8

Usage (from backend directory):
    python scripts/run_duplicate_scan.py --clear
    # or
    python -m scripts.run_duplicate_scan
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Make `venue_dedup` imports work whether the script is run from repo root or backend/.
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from venue_dedup.config import get_settings
from venue_dedup.db.session import SessionLocal
from venue_dedup.schemas.duplicates import ScanOptions
from venue_dedup.services.registry import statistics
from venue_dedup.services.scanner import ScanProgress, scan, scan_venue


def parse_args() -> argparse.Namespace:
    """Parse script CLI arguments."""

    settings = get_settings()
    parser = argparse.ArgumentParser(description="Scan live venues for likely duplicates.")
    parser.add_argument(
        "--clear",
        action="store_true",
        help="Delete pending candidates before scanning. Reviewed pairs are always kept.",
    )
    parser.add_argument(
        "--min-confidence",
        type=float,
        default=settings.scan_default_min_confidence,
        help=f"Minimum confidence to store (default: {settings.scan_default_min_confidence})",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=settings.scan_default_batch_size,
        help=f"Venues per committed page (default: {settings.scan_default_batch_size})",
    )
    parser.add_argument(
        "--resume-after-id",
        type=int,
        default=None,
        help="Only scan venues with an id greater than this one.",
    )
    parser.add_argument(
        "--venue-id",
        type=int,
        default=None,
        help="Scan a single venue against its neighbours instead of the whole directory.",
    )
    parser.add_argument("--quiet", action="store_true", help="Suppress per-page progress output.")
    return parser.parse_args()


def _print_progress(progress: ScanProgress) -> None:
    print(
        f"page {progress.page}/{progress.total_pages} "
        f"venues={progress.venues_processed}/{progress.total_venues} "
        f"found={progress.duplicates_found} stored={progress.duplicates_stored}"
    )


def main() -> None:
    """Run the scan and print a summary."""

    args = parse_args()
    logging.basicConfig(level=logging.WARNING if args.quiet else get_settings().log_level.upper())
    options = ScanOptions(
        clear_existing=args.clear,
        min_confidence=args.min_confidence,
        batch_size=args.batch_size,
        resume_after_id=args.resume_after_id,
    )

    with SessionLocal() as db:
        if args.venue_id is not None:
            stats = scan_venue(db, args.venue_id, options)
        else:
            stats = scan(db, options, progress_callback=None if args.quiet else _print_progress)
        summary = statistics(db)

    print("Scan complete")
    print(f"venues_processed={stats.processed}")
    print(f"duplicates_found={stats.duplicates_found}")
    print(f"duplicates_stored={stats.duplicates_stored}")
    print(f"skipped_reviewed={stats.skipped_reviewed}")
    print(f"stale_removed={stats.stale_removed}")
    print(f"unscorable_pairs={stats.unscorable}")
    print()
    print("Registry:")
    print(f"  total={summary.total} pending={summary.pending} merged={summary.merged} rejected={summary.rejected}")
    print(
        f"  high={summary.high_confidence} medium={summary.medium_confidence} low={summary.low_confidence}"
    )


if __name__ == "__main__":
    main()
