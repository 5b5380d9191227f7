"""HTTP-level tests for the duplicate review routes."""

from __future__ import annotations

import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient
from sqlalchemy import select

from support import DatabaseTestCase
from venue_dedup.db.dependencies import get_db
from venue_dedup.main import app
from venue_dedup.models.duplicate_candidate import DuplicateCandidate
from venue_dedup.models.duplicate_scan_run import SCAN_STATUS_QUEUED
from venue_dedup.schemas.duplicates import ScanOptions
from venue_dedup.services.scanner import scan


class DuplicatesRouterTests(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        city = self.make_city("London")
        self.crown = self.make_venue("The Crown", slug="the-crown", postcode="SW1A 1AA", city_id=city.id)
        self.crown_pub = self.make_venue("The Crown Pub", postcode="SW1A 1AA", city_id=city.id)
        self.make_events(self.crown, 3)
        self.make_events(self.crown_pub, 2)
        self.db.commit()
        scan(self.db, ScanOptions())
        self.candidate_id = self.db.scalar(select(DuplicateCandidate.id))

        def override_get_db():
            db = self.SessionLocal()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        super().tearDown()

    def test_health(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_list_and_statistics(self) -> None:
        response = self.client.get("/duplicates", params={"filter": "medium_confidence", "sort": "confidence"})
        self.assertEqual(response.status_code, 200)
        payload = response.json()["data"]
        self.assertEqual(payload["total"], 1)
        self.assertEqual(payload["items"][0]["pair_key"], f"{self.crown.id}-{self.crown_pub.id}")

        stats = self.client.get("/duplicates/statistics").json()["data"]
        self.assertEqual(stats["total"], 1)
        self.assertEqual(stats["pending"], 1)

    def test_unknown_filter_is_rejected(self) -> None:
        response = self.client.get("/duplicates", params={"filter": "everything"})
        self.assertEqual(response.status_code, 422)

    def test_reject_twice_conflicts(self) -> None:
        first = self.client.post(f"/duplicates/{self.candidate_id}/reject", json={"reviewed_by": "alice"})
        second = self.client.post(f"/duplicates/{self.candidate_id}/reject", json={"reviewed_by": "bob"})

        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.json()["data"]["status"], "rejected")
        self.assertEqual(second.status_code, 409)

    def test_reject_by_pair_and_missing_pair(self) -> None:
        response = self.client.post(
            "/duplicates/reject",
            json={"venue1_id": self.crown_pub.id, "venue2_id": self.crown.id},
        )
        self.assertEqual(response.status_code, 200)

        missing = self.client.post("/duplicates/reject", json={"venue1_id": self.crown.id, "venue2_id": 999999})
        self.assertEqual(missing.status_code, 404)

    def test_merge_flow(self) -> None:
        response = self.client.post(
            "/duplicates/merge",
            json={
                "primary_id": self.crown.id,
                "secondary_id": self.crown_pub.id,
                "performed_by": "alice",
                "field_overrides": ["website"],
            },
        )

        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertEqual(data["events_migrated"], 2)
        self.assertEqual(data["candidate_id"], self.candidate_id)
        self.assertEqual(data["fields_overridden"], ["website"])

        again = self.client.post(
            "/duplicates/merge",
            json={"primary_id": self.crown.id, "secondary_id": self.crown_pub.id},
        )
        self.assertEqual(again.status_code, 409)

        history = self.client.get("/duplicates/merge-history", params={"venue_id": self.crown_pub.id})
        self.assertEqual(len(history.json()["data"]), 1)

    def test_merge_with_auto_selected_primary(self) -> None:
        response = self.client.post(
            "/duplicates/merge",
            json={"primary_id": self.crown_pub.id, "secondary_id": self.crown.id, "auto_select_primary": True},
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["primary_venue_id"], self.crown.id)

    def test_merge_rejects_unknown_override_field(self) -> None:
        response = self.client.post(
            "/duplicates/merge",
            json={"primary_id": self.crown.id, "secondary_id": self.crown_pub.id, "field_overrides": ["name"]},
        )
        self.assertEqual(response.status_code, 422)

    def test_compare_preview_and_stale_compare(self) -> None:
        compare = self.client.get(f"/duplicates/compare/{self.crown.id}/{self.crown_pub.id}")
        self.assertEqual(compare.status_code, 200)
        self.assertFalse(compare.json()["data"]["resolved"])
        self.assertEqual(len(compare.json()["data"]["venue1"]["events"]), 3)

        preview = self.client.get(f"/duplicates/preview/{self.crown.id}/{self.crown_pub.id}")
        self.assertEqual(preview.status_code, 200)
        self.assertEqual(preview.json()["data"]["events_to_migrate"], 2)

        self.soft_delete(self.crown_pub)
        stale = self.client.get(f"/duplicates/compare/{self.crown.id}/{self.crown_pub.id}")
        self.assertEqual(stale.status_code, 200)
        self.assertTrue(stale.json()["data"]["resolved"])

        preview_stale = self.client.get(f"/duplicates/preview/{self.crown.id}/{self.crown_pub.id}")
        self.assertEqual(preview_stale.status_code, 404)

    def test_batch_routes(self) -> None:
        malformed = self.client.post("/duplicates/batch/reject", json={"pairs": ["abc"]})
        self.assertEqual(malformed.status_code, 422)

        pair_key = f"{self.crown.id}-{self.crown_pub.id}"
        merged = self.client.post("/duplicates/batch/merge", json={"pairs": [pair_key], "performed_by": "alice"})
        self.assertEqual(merged.status_code, 200)
        self.assertEqual(merged.json()["data"]["success_count"], 1)

    def test_exact_view(self) -> None:
        response = self.client.get("/duplicates/exact")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["items"], [])

    def test_single_venue_scan(self) -> None:
        response = self.client.post(f"/duplicates/scan/venues/{self.crown_pub.id}")
        self.assertEqual(response.status_code, 200)
        stats = response.json()["data"]
        self.assertEqual(stats["processed"], 1)
        self.assertEqual(stats["duplicates_found"], 1)
        self.assertEqual(stats["duplicates_stored"], 1)

        strict = self.client.post(f"/duplicates/scan/venues/{self.crown.id}", json={"min_confidence": 0.95})
        self.assertEqual(strict.json()["data"]["stale_removed"], 1)

        missing = self.client.post("/duplicates/scan/venues/999999")
        self.assertEqual(missing.status_code, 404)

    def test_merge_history_rejects_inverted_window(self) -> None:
        response = self.client.get(
            "/duplicates/merge-history",
            params={"since": "2026-09-15T00:00:00Z", "until": "2026-09-01T00:00:00Z"},
        )
        self.assertEqual(response.status_code, 422)

    def test_scan_is_queued_in_background(self) -> None:
        queued: list[int] = []

        def fake_job(run_id: int) -> None:
            queued.append(run_id)

        with patch("venue_dedup.routers.duplicates.run_duplicate_scan_job", fake_job):
            response = self.client.post("/duplicates/scan", json={"min_confidence": 0.8})

        self.assertEqual(response.status_code, 202)
        run = response.json()["data"]
        self.assertEqual(run["status"], SCAN_STATUS_QUEUED)
        self.assertEqual(run["options_json"]["min_confidence"], 0.8)
        self.assertEqual(queued, [run["id"]])

        polled = self.client.get(f"/duplicates/scans/{run['id']}")
        self.assertEqual(polled.status_code, 200)
        self.assertEqual(self.client.get("/duplicates/scans/999999").status_code, 404)


if __name__ == "__main__":
    unittest.main()
