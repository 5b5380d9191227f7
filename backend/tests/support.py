"""Shared in-memory database fixtures for duplicate detection tests."""

from __future__ import annotations

import unittest
from datetime import datetime, time, timezone

from sqlalchemy import create_engine, delete
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from venue_dedup.db.base import Base
from venue_dedup.models.city import City
from venue_dedup.models.duplicate_candidate import DuplicateCandidate
from venue_dedup.models.event import Event
from venue_dedup.models.event_source import EventSource
from venue_dedup.models.source import Source
from venue_dedup.models.venue import Venue


class DatabaseTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.engine = create_engine(
            "sqlite+pysqlite:///:memory:",
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        cls.SessionLocal = sessionmaker(bind=cls.engine, autoflush=False, autocommit=False, future=True)
        Base.metadata.create_all(cls.engine)

    @classmethod
    def tearDownClass(cls) -> None:
        Base.metadata.drop_all(cls.engine)
        cls.engine.dispose()

    def setUp(self) -> None:
        self.db: Session = self.SessionLocal()
        self._reset_tables()

    def tearDown(self) -> None:
        self.db.close()

    def _reset_tables(self) -> None:
        for table in reversed(Base.metadata.sorted_tables):
            self.db.execute(delete(table))
        self.db.commit()

    def make_city(self, name: str = "London") -> City:
        city = City(name=name, country_code="GB")
        self.db.add(city)
        self.db.flush()
        return city

    def make_venue(self, name: str, **fields) -> Venue:
        fields.setdefault("images_json", [])
        fields.setdefault("metadata_json", {})
        venue = Venue(name=name, **fields)
        self.db.add(venue)
        self.db.flush()
        return venue

    def make_events(self, venue: Venue, count: int, *, source: Source | None = None) -> list[Event]:
        events = []
        for index in range(count):
            event = Event(
                venue_id=venue.id,
                name=f"{venue.name} quiz {index + 1}",
                day_of_week=index % 7,
                start_time=time(19, 0),
            )
            self.db.add(event)
            self.db.flush()
            if source is not None:
                self.db.add(
                    EventSource(
                        event_id=event.id,
                        source_id=source.id,
                        source_url=f"https://scraper.example/events/{event.id}",
                        last_seen_at=datetime(2026, 9, 1, tzinfo=timezone.utc),
                    )
                )
            events.append(event)
        self.db.flush()
        return events

    def make_candidate(self, venue_a: Venue, venue_b: Venue, *, confidence: float = 0.8, **fields) -> DuplicateCandidate:
        low, high = sorted((venue_a.id, venue_b.id))
        candidate = DuplicateCandidate(
            venue1_id=low,
            venue2_id=high,
            confidence_score=confidence,
            name_similarity=fields.pop("name_similarity", confidence),
            location_similarity=fields.pop("location_similarity", 1.0),
            match_criteria=fields.pop("match_criteria", ["similar_name"]),
            **fields,
        )
        self.db.add(candidate)
        self.db.flush()
        return candidate

    def soft_delete(self, venue: Venue) -> None:
        venue.deleted_at = datetime.now(timezone.utc)
        self.db.commit()
