"""Service-level tests for the duplicate review queue."""

from __future__ import annotations

import unittest

from sqlalchemy import delete, select

from support import DatabaseTestCase
from venue_dedup.dedup.errors import ConflictError, InvalidArgumentError, NotFoundError
from venue_dedup.dedup.pairs import PairKey
from venue_dedup.models.duplicate_candidate import CANDIDATE_STATUS_PENDING, DuplicateCandidate
from venue_dedup.models.source import Source
from venue_dedup.models.venue import Venue
from venue_dedup.models.venue_merge_log import NOT_DUPLICATE_ACTION, VenueMergeLog
from venue_dedup.schemas.duplicates import ScanOptions
from venue_dedup.services.registry import (
    NAME_CITY_DUPLICATE,
    NAME_POSTCODE_DUPLICATE,
    batch_reject,
    count_candidates,
    count_exact_matches,
    get_comparison,
    list_candidates,
    list_exact_matches,
    reject,
    statistics,
)
from venue_dedup.services.scanner import scan


class DuplicateRegistryTests(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.london = self.make_city("London")
        self.crown_a = self.make_venue("The Crown", postcode="SW1A 1AA", city_id=self.london.id, slug="the-crown")
        self.crown_b = self.make_venue("The Crown", postcode="sw1a1aa", city_id=self.london.id)
        self.crown_pub = self.make_venue("The Crown Pub", postcode="SW1A 1AA", city_id=self.london.id)
        self.db.commit()
        scan(self.db, ScanOptions())
        self.exact_pair = PairKey.of(self.crown_a.id, self.crown_b.id)
        self.near_pair = PairKey.of(self.crown_a.id, self.crown_pub.id)

    def _candidate(self, pair: PairKey) -> DuplicateCandidate:
        return self.db.scalar(
            select(DuplicateCandidate).where(
                DuplicateCandidate.venue1_id == pair.low,
                DuplicateCandidate.venue2_id == pair.high,
            )
        )

    def test_list_sorts_by_confidence_and_paginates(self) -> None:
        listing = list_candidates(self.db, per_page=2)

        self.assertEqual(listing.total, 3)
        self.assertEqual(len(listing.items), 2)
        self.assertEqual(listing.items[0].pair_key, self.exact_pair.key)
        self.assertEqual(listing.items[0].confidence_band, "high")
        self.assertEqual(listing.items[0].venue1_name, "The Crown")

        second_page = list_candidates(self.db, page=2, per_page=2)
        self.assertEqual(len(second_page.items), 1)

    def test_band_filters(self) -> None:
        high = list_candidates(self.db, band="high_confidence")
        medium = list_candidates(self.db, band="medium_confidence")
        low = list_candidates(self.db, band="low_confidence")

        self.assertEqual([item.pair_key for item in high.items], [self.exact_pair.key])
        self.assertEqual(medium.total, 2)
        self.assertEqual(low.total, 0)
        self.assertEqual(count_candidates(self.db, band="medium_confidence"), 2)

    def test_name_sort_and_unknown_options(self) -> None:
        listing = list_candidates(self.db, sort="name")
        self.assertEqual(len(listing.items), 3)

        with self.assertRaises(InvalidArgumentError):
            list_candidates(self.db, band="everything")
        with self.assertRaises(InvalidArgumentError):
            list_candidates(self.db, sort="random")

    def test_list_hides_pairs_with_soft_deleted_venues(self) -> None:
        self.soft_delete(self.crown_pub)

        listing = list_candidates(self.db)

        self.assertEqual([item.pair_key for item in listing.items], [self.exact_pair.key])

    def test_statistics_cover_every_status(self) -> None:
        reject(self.db, pair=self.exact_pair, reviewed_by="reviewer")

        stats = statistics(self.db)

        self.assertEqual(stats.total, 3)
        self.assertEqual(stats.high_confidence, 1)
        self.assertEqual(stats.medium_confidence, 2)
        self.assertEqual(stats.pending, 2)
        self.assertEqual(stats.rejected, 1)
        self.assertEqual(stats.merged, 0)
        self.assertIsNotNone(stats.avg_confidence)

    def test_statistics_on_empty_registry(self) -> None:
        self._reset_tables()

        stats = statistics(self.db)

        self.assertEqual(stats.total, 0)
        self.assertIsNone(stats.avg_confidence)

    def test_reject_records_decision_and_conflicts_on_repeat(self) -> None:
        candidate = self._candidate(self.near_pair)

        rejected = reject(self.db, candidate_id=candidate.id, reviewed_by="alice", notes="different rooms")

        self.assertEqual(rejected.status, "rejected")
        self.assertEqual(rejected.reviewed_by, "alice")
        self.assertIsNotNone(rejected.reviewed_at)
        log = self.db.scalar(select(VenueMergeLog))
        self.assertEqual(log.action_type, NOT_DUPLICATE_ACTION)
        self.assertEqual(log.notes, "different rooms")
        self.assertEqual(log.metadata_json["candidate_id"], candidate.id)

        with self.assertRaises(ConflictError):
            reject(self.db, candidate_id=candidate.id, reviewed_by="bob")
        self.assertEqual(len(self.db.scalars(select(VenueMergeLog)).all()), 1)

    def test_reject_missing_candidate(self) -> None:
        with self.assertRaises(NotFoundError):
            reject(self.db, candidate_id=999_999)
        with self.assertRaises(NotFoundError):
            reject(self.db, pair=PairKey.of(self.crown_a.id, 999_999))

    def test_reject_uses_default_reviewer(self) -> None:
        rejected = reject(self.db, pair=self.near_pair)
        self.assertEqual(rejected.reviewed_by, "admin_user")

    def test_batch_reject_is_all_or_nothing(self) -> None:
        bad_pair = PairKey.of(self.crown_b.id, 999_999)

        with self.assertRaises(NotFoundError):
            batch_reject(self.db, [self.exact_pair.key, bad_pair.key], reviewed_by="alice")

        self.assertEqual(self._candidate(self.exact_pair).status, CANDIDATE_STATUS_PENDING)
        self.assertEqual(self.db.scalars(select(VenueMergeLog)).all(), [])

        count = batch_reject(self.db, [self.exact_pair.key, self.near_pair], reviewed_by="alice")
        self.assertEqual(count, 2)
        self.assertEqual(self._candidate(self.near_pair).status, "rejected")

    def test_batch_reject_validates_keys_before_writing(self) -> None:
        with self.assertRaises(InvalidArgumentError):
            batch_reject(self.db, [self.exact_pair.key, "not-a-pair"])
        with self.assertRaises(InvalidArgumentError):
            batch_reject(self.db, [self.exact_pair.key, self.exact_pair.key])
        self.assertEqual(self._candidate(self.exact_pair).status, CANDIDATE_STATUS_PENDING)


class ExactMatchViewTests(DatabaseTestCase):
    def test_exact_view_lists_same_name_pairs(self) -> None:
        london = self.make_city("London")
        leeds = self.make_city("Leeds")
        first = self.make_venue("The Crown", postcode="SW1A 1AA", city_id=london.id)
        second = self.make_venue("the crown ", postcode="sw1a 1aa", city_id=leeds.id)
        third = self.make_venue("The Crown", city_id=leeds.id)
        self.make_venue("The Crown", city_id=None)
        self.db.commit()

        listing = list_exact_matches(self.db)

        kinds = {item.pair_key: item.match_criteria for item in listing.items}
        self.assertEqual(
            kinds,
            {
                PairKey.of(first.id, second.id).key: [NAME_POSTCODE_DUPLICATE],
                PairKey.of(second.id, third.id).key: [NAME_CITY_DUPLICATE],
            },
        )
        self.assertEqual(listing.total, 2)
        self.assertEqual(count_exact_matches(self.db), 2)
        self.assertTrue(all(item.id is None for item in listing.items))

    def test_exact_view_excludes_reviewed_and_deleted(self) -> None:
        city = self.make_city("London")
        first = self.make_venue("Red Lion", city_id=city.id)
        second = self.make_venue("Red Lion", city_id=city.id)
        third = self.make_venue("Red Lion", city_id=city.id)
        self.make_candidate(first, second, confidence=0.95)
        self.db.commit()
        reject(self.db, pair=PairKey.of(first.id, second.id))
        self.soft_delete(third)

        self.assertEqual(list_exact_matches(self.db).items, [])


class ComparisonTests(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        city = self.make_city("London")
        source = Source(name="quizmeisters", website_url="https://quiz.example")
        self.db.add(source)
        self.db.flush()
        self.primary = self.make_venue(
            "The Crown",
            slug="the-crown",
            postcode="SW1A 1AA",
            city_id=city.id,
            phone="0207 111",
            images_json=[{"url": "https://img.example/1.jpg"}],
        )
        self.secondary = self.make_venue("The Crown Pub", postcode="SW1A 1AA", city_id=city.id, phone="0207 222")
        self.make_events(self.primary, 2, source=source)
        self.candidate_id = self.make_candidate(self.primary, self.secondary, confidence=0.8727).id
        self.db.commit()

    def test_comparison_of_live_pair(self) -> None:
        comparison = get_comparison(self.db, self.secondary.id, self.primary.id)

        self.assertFalse(comparison.resolved)
        self.assertEqual(comparison.venue1.id, self.secondary.id)
        self.assertEqual(comparison.venue2.city_name, "London")
        self.assertEqual(len(comparison.venue2.events), 2)
        self.assertEqual(comparison.venue2.events[0].sources[0].source_name, "quizmeisters")
        self.assertEqual(comparison.venue2.image_count, 1)
        self.assertAlmostEqual(comparison.confidence_score, 0.8727, places=4)
        self.assertEqual(comparison.confidence_band, "medium")
        self.assertEqual(comparison.candidate.id, self.candidate_id)
        self.assertEqual(comparison.suggested_primary_id, self.primary.id)
        self.assertEqual(comparison.default_field_sides["website"], "secondary")
        self.assertIn("slug", comparison.allowed_override_fields)
        self.assertIn("phone", {conflict["field"] for conflict in comparison.metadata_conflicts})

    def test_stale_comparison_resolves_and_removes_rows(self) -> None:
        self.soft_delete(self.secondary)

        comparison = get_comparison(self.db, self.primary.id, self.secondary.id)

        self.assertTrue(comparison.resolved)
        self.assertEqual(comparison.removed_candidates, 1)
        self.assertIsNone(comparison.venue1)
        self.assertIsNone(self.db.scalar(select(DuplicateCandidate).where(DuplicateCandidate.id == self.candidate_id)))

    def test_stale_comparison_after_hard_delete_removes_rows(self) -> None:
        primary_id, secondary_id = self.primary.id, self.secondary.id
        self.db.execute(delete(Venue).where(Venue.id == secondary_id))
        self.db.commit()

        comparison = get_comparison(self.db, primary_id, secondary_id)

        self.assertTrue(comparison.resolved)
        self.assertEqual(comparison.removed_candidates, 1)
        self.assertIsNone(comparison.venue2)
        self.assertIsNone(self.db.scalar(select(DuplicateCandidate).where(DuplicateCandidate.id == self.candidate_id)))

    def test_comparison_with_missing_venue(self) -> None:
        comparison = get_comparison(self.db, self.primary.id, 999_999)

        self.assertTrue(comparison.resolved)
        self.assertEqual(comparison.removed_candidates, 0)


if __name__ == "__main__":
    unittest.main()
