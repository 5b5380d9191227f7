"""Unit tests for pair keys and the pure merge policy helpers."""

import unittest
from datetime import datetime, timezone

from venue_dedup.dedup.errors import InvalidArgumentError
from venue_dedup.dedup.pairs import PairKey
from venue_dedup.dedup.policy import (
    FieldSide,
    MetadataStrategy,
    OverridableField,
    choose_primary,
    combine_images,
    metadata_conflicts,
    parse_field_overrides,
    resolve_field_changes,
)
from venue_dedup.dedup.snapshot import VenueSnapshot


class PairKeyTests(unittest.TestCase):
    def test_pair_is_canonical(self) -> None:
        self.assertEqual(PairKey.of(34, 12), PairKey.of(12, 34))
        self.assertEqual(PairKey.of(34, 12).key, "12-34")
        self.assertEqual(str(PairKey.parse(" 34-12 ")), "12-34")

    def test_invalid_pairs_are_rejected(self) -> None:
        for args in ((5, 5), (0, 3), (-1, 2)):
            with self.assertRaises(InvalidArgumentError):
                PairKey.of(*args)
        for raw in ("12", "12-34-56", "a-b", "12-12"):
            with self.assertRaises(InvalidArgumentError):
                PairKey.parse(raw)


class OverrideParsingTests(unittest.TestCase):
    def test_known_fields_parse_case_insensitively(self) -> None:
        parsed = parse_field_overrides(["Website", "slug", OverridableField.PHONE, "website"])
        self.assertEqual(parsed, [OverridableField.WEBSITE, OverridableField.SLUG, OverridableField.PHONE])

    def test_fields_outside_allow_list_are_rejected(self) -> None:
        for raw in ("name", "deleted_at", "images_json", ""):
            with self.assertRaises(InvalidArgumentError):
                parse_field_overrides([raw])


class ChoosePrimaryTests(unittest.TestCase):
    def test_slug_wins_over_completeness(self) -> None:
        with_slug = VenueSnapshot(id=9, name="The Crown", slug="the-crown")
        complete = VenueSnapshot(
            id=2,
            name="The Crown",
            address="1 High St",
            postcode="SW1A 1AA",
            phone="0207",
            website="https://crown.example",
            event_count=8,
        )
        primary, secondary = choose_primary(complete, with_slug)
        self.assertEqual((primary.id, secondary.id), (9, 2))

    def test_more_complete_record_wins(self) -> None:
        sparse = VenueSnapshot(id=1, name="Red Lion", slug="red-lion")
        rich = VenueSnapshot(id=2, name="Red Lion", slug="red-lion-2", phone="0207", event_count=3)
        self.assertEqual(choose_primary(sparse, rich)[0].id, 2)

    def test_event_count_contribution_is_capped(self) -> None:
        busy = VenueSnapshot(id=1, name="A", slug="a", event_count=40)
        complete = VenueSnapshot(
            id=2,
            name="A",
            slug="b",
            address="x",
            postcode="y",
            phone="z",
            website="w",
            place_id="p",
            facebook="f",
            instagram="i",
            event_count=4,
        )
        self.assertEqual(choose_primary(busy, complete)[0].id, 2)

    def test_ties_prefer_older_then_lower_id(self) -> None:
        older = VenueSnapshot(id=8, name="A", created_at=datetime(2025, 1, 1, tzinfo=timezone.utc))
        newer = VenueSnapshot(id=3, name="A", created_at=datetime(2026, 1, 1, tzinfo=timezone.utc))
        self.assertEqual(choose_primary(newer, older)[0].id, 8)

        first = VenueSnapshot(id=3, name="A")
        second = VenueSnapshot(id=8, name="A")
        self.assertEqual(choose_primary(second, first)[0].id, 3)


class FieldChangeTests(unittest.TestCase):
    def setUp(self) -> None:
        self.primary = VenueSnapshot(
            id=1,
            name="The Crown",
            slug="the-crown",
            address="1 High St",
            phone="0207 111",
            website="https://old.example",
            facebook=None,
        )
        self.secondary = VenueSnapshot(
            id=2,
            name="The Crown Pub",
            slug="the-crown-pub",
            address="1 High Street, London",
            phone="0207 222",
            website="https://new.example",
            facebook="https://facebook.com/crown",
        )

    def _changes(self, **kwargs) -> dict[str, object]:
        kwargs.setdefault("metadata_strategy", MetadataStrategy.COMBINE)
        kwargs.setdefault("field_overrides", [])
        changes = resolve_field_changes(self.primary, self.secondary, **kwargs)
        return {change.field: change for change in changes}

    def test_defaults_take_secondary_website_and_fill_gaps(self) -> None:
        changes = self._changes()

        self.assertEqual(changes["website"].value, "https://new.example")
        self.assertEqual(changes["website"].source, FieldSide.SECONDARY)
        self.assertEqual(changes["facebook"].value, "https://facebook.com/crown")
        self.assertNotIn("phone", changes)
        self.assertNotIn("slug", changes)
        # Combine keeps the longer metadata value.
        self.assertEqual(changes["name"].value, "The Crown Pub")
        self.assertEqual(changes["address"].value, "1 High Street, London")

    def test_overrides_flip_direction(self) -> None:
        changes = self._changes(field_overrides=[OverridableField.WEBSITE, OverridableField.PHONE])

        self.assertNotIn("website", changes)
        self.assertEqual(changes["phone"].value, "0207 222")

    def test_prefer_primary_keeps_metadata(self) -> None:
        changes = self._changes(metadata_strategy=MetadataStrategy.PREFER_PRIMARY)
        self.assertNotIn("name", changes)
        self.assertNotIn("address", changes)

    def test_conflicts_list_both_values(self) -> None:
        conflicts = {item["field"]: item for item in metadata_conflicts(self.primary, self.secondary)}
        self.assertEqual(conflicts["phone"], {"field": "phone", "primary": "0207 111", "secondary": "0207 222"})
        self.assertNotIn("facebook", conflicts)


class CombineImagesTests(unittest.TestCase):
    def test_union_deduplicates_by_identity(self) -> None:
        primary = [{"url": "https://img.example/1.jpg"}, {"reference": "ref-a"}]
        secondary = [
            {"url": "https://img.example/1.jpg", "caption": "dup"},
            {"reference": "ref-a", "url": "https://img.example/other.jpg"},
            {"url": "https://img.example/2.jpg"},
            {"caption": "no identity"},
        ]

        combined, added = combine_images(primary, secondary)

        self.assertEqual(added, 2)
        self.assertEqual(len(combined), 4)
        self.assertEqual(combined[:2], primary)
        self.assertIn({"caption": "no identity"}, combined)


if __name__ == "__main__":
    unittest.main()
