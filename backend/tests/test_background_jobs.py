"""Tests for the background duplicate scan job."""

from __future__ import annotations

import unittest
from unittest.mock import patch

from support import DatabaseTestCase
from venue_dedup.models.duplicate_scan_run import (
    SCAN_STATUS_COMPLETED,
    SCAN_STATUS_FAILED,
    DuplicateScanRun,
)
from venue_dedup.schemas.duplicates import ScanOptions
from venue_dedup.services.background_jobs import create_scan_run, run_duplicate_scan_job


class ScanJobTests(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        city = self.make_city("London")
        self.make_venue("The Crown", postcode="SW1A 1AA", city_id=city.id)
        self.make_venue("The Crown", postcode="SW1A 1AA", city_id=city.id)
        self.db.commit()

    def test_job_records_completed_run(self) -> None:
        run = create_scan_run(self.db, ScanOptions(batch_size=1))

        with patch("venue_dedup.services.background_jobs.SessionLocal", self.SessionLocal):
            run_duplicate_scan_job(run.id)

        self.db.expire_all()
        stored = self.db.get(DuplicateScanRun, run.id)
        self.assertEqual(stored.status, SCAN_STATUS_COMPLETED)
        self.assertEqual(stored.stats_json["processed"], 2)
        self.assertEqual(stored.stats_json["duplicates_stored"], 1)
        self.assertIsNotNone(stored.started_at)
        self.assertIsNotNone(stored.finished_at)

    def test_job_failure_is_recorded_and_reraised(self) -> None:
        run = create_scan_run(self.db, ScanOptions())

        with (
            patch("venue_dedup.services.background_jobs.SessionLocal", self.SessionLocal),
            patch("venue_dedup.services.background_jobs.scan", side_effect=RuntimeError("database went away")),
        ):
            with self.assertRaises(RuntimeError):
                run_duplicate_scan_job(run.id)

        self.db.expire_all()
        stored = self.db.get(DuplicateScanRun, run.id)
        self.assertEqual(stored.status, SCAN_STATUS_FAILED)
        self.assertIn("database went away", stored.error_message)


if __name__ == "__main__":
    unittest.main()
