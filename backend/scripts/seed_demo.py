"""Seed demo venues that contain a few duplicates, then scan for them.

Usage (from repository root):
    python backend/scripts/seed_demo.py

Usage (from backend directory):
    python scripts/seed_demo.py
    # or
    python -m scripts.seed_demo
"""

from __future__ import annotations

import argparse
import sys
from datetime import datetime, time, timezone
from pathlib import Path

from sqlalchemy import delete, or_, select

# Make `venue_dedup` imports work whether the script is run from repo root or backend/.
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from venue_dedup.db.session import SessionLocal
from venue_dedup.models.city import City
from venue_dedup.models.duplicate_candidate import DuplicateCandidate
from venue_dedup.models.event import Event
from venue_dedup.models.event_source import EventSource
from venue_dedup.models.source import Source
from venue_dedup.models.venue import Venue
from venue_dedup.schemas.duplicates import ScanOptions
from venue_dedup.services.scanner import scan


DEMO_CITY = "London"
DEMO_SOURCE = "demo-scraper"


def build_demo_venues(city_id: int) -> list[Venue]:
    """Return deterministic venues: two near-duplicate pairs and one singleton."""

    created = datetime(2026, 1, 5, 12, 0, 0, tzinfo=timezone.utc)
    rows = [
        ("The Crown Pub", "demo-the-crown-pub", "SW1A 1AA", 51.5010, -0.1416, "0207 000 0001", None),
        ("The Crown", None, "sw1a1aa", 51.5011, -0.1417, None, "https://thecrown.example"),
        ("Red Lion", "demo-red-lion", "E1 6AN", 51.5202, -0.0735, None, None),
        ("The Red Lion", None, None, 51.5204, -0.0737, "0207 000 0002", "https://redlion.example"),
        ("Kings Arms", "demo-kings-arms", "N1 9GU", 51.5362, -0.1030, None, None),
    ]
    return [
        Venue(
            name=name,
            slug=slug,
            postcode=postcode,
            city_id=city_id,
            latitude=latitude,
            longitude=longitude,
            phone=phone,
            website=website,
            address=f"{idx + 1} Demo Street, London",
            images_json=[{"url": f"https://images.example/demo-{idx}.jpg"}],
            metadata_json={"seeded": True},
            created_at=created.replace(day=created.day + idx),
        )
        for idx, (name, slug, postcode, latitude, longitude, phone, website) in enumerate(rows)
    ]


def reset_demo(db) -> None:
    """Remove previously seeded demo venues and everything attached to them."""

    demo_ids = list(db.scalars(select(Venue.id).where(Venue.metadata_json["seeded"].as_boolean().is_(True))))
    if demo_ids:
        db.execute(
            delete(DuplicateCandidate).where(
                or_(DuplicateCandidate.venue1_id.in_(demo_ids), DuplicateCandidate.venue2_id.in_(demo_ids))
            )
        )
        event_ids = select(Event.id).where(Event.venue_id.in_(demo_ids))
        db.execute(delete(EventSource).where(EventSource.event_id.in_(event_ids)))
        db.execute(delete(Event).where(Event.venue_id.in_(demo_ids)))
        db.execute(delete(Venue).where(Venue.id.in_(demo_ids)))
    db.commit()


def _get_or_create_city(db) -> City:
    city = db.scalar(select(City).where(City.name == DEMO_CITY))
    if city is None:
        city = City(name=DEMO_CITY, country_code="GB")
        db.add(city)
        db.flush()
    return city


def _get_or_create_source(db) -> Source:
    source = db.scalar(select(Source).where(Source.name == DEMO_SOURCE))
    if source is None:
        source = Source(name=DEMO_SOURCE, website_url="https://scraper.example")
        db.add(source)
        db.flush()
    return source


def parse_args() -> argparse.Namespace:
    """Parse script CLI arguments."""

    parser = argparse.ArgumentParser(description="Seed demo venues and run a duplicate scan.")
    parser.add_argument(
        "--no-reset",
        action="store_true",
        help="Do not delete previously seeded demo venues before seeding.",
    )
    parser.add_argument(
        "--no-scan",
        action="store_true",
        help="Only insert venues; skip the duplicate scan.",
    )
    return parser.parse_args()


def main() -> None:
    """Seed demo data and print a short summary."""

    args = parse_args()

    with SessionLocal() as db:
        if not args.no_reset:
            reset_demo(db)

        city = _get_or_create_city(db)
        source = _get_or_create_source(db)
        venues = build_demo_venues(city.id)
        db.add_all(venues)
        db.flush()
        for venue in venues:
            event = Event(venue_id=venue.id, name=f"{venue.name} Quiz", day_of_week=2, start_time=time(19, 30))
            db.add(event)
            db.flush()
            db.add(EventSource(event_id=event.id, source_id=source.id, source_url=f"https://scraper.example/{event.id}"))
        db.commit()

        stats = None if args.no_scan else scan(db, ScanOptions())

    print("Seed complete")
    print(f"venues_created={len(venues)}")
    if stats is not None:
        print(f"venues_scanned={stats.processed}")
        print(f"duplicates_stored={stats.duplicates_stored}")
    print()
    print("Inspect:")
    print("  GET /duplicates")
    print("  GET /duplicates/exact")
    print("  GET /duplicates/statistics")


if __name__ == "__main__":
    main()
