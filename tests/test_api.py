"""
Tests for the admin HTTP routes (FastAPI TestClient, fake provider and captions).
"""
import unittest
import sys
import os
import time
from datetime import timedelta

from fastapi import FastAPI
from fastapi.testclient import TestClient

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

from api import dependencies, routes
from exceptions import QuotaExceededError
from models import ExtractionMethod, TranscriptClassification, VideoRecord, utc_now
from services.engine import BatchImportOrchestrator
from services.jobs import JobManager
from services.pacing import PacingPolicy
from services.statistics import StatisticsRefresher
from services.storage import InMemoryVideoStore
from services.transcript import TranscriptExtractor
from fakes import LONG_TEXT, FakeCaptionSource, FakeProvider, RecordingSleep, make_details

CHANNEL_ID = "UCtrailheadchannel000001"
PREFIX = "/admin/youtube"


def build_app() -> FastAPI:
    app = FastAPI()
    app.include_router(routes.router)
    return app


class TestAdminRoutes(unittest.TestCase):

    def setUp(self):
        self.saved = (dependencies.store, dependencies.provider, dependencies.orchestrator,
                      dependencies.stats_refresher, dependencies.job_manager)
        ids = ["a", "b", "c"]
        self.provider = FakeProvider(pages=[ids], details={vid: make_details(vid) for vid in ids})
        sleep = RecordingSleep()
        extractor = TranscriptExtractor(FakeCaptionSource(default=LONG_TEXT), metadata_provider=self.provider,
                                        language_variants=("en",), retry_attempts=0, sleep=sleep)
        self.store = InMemoryVideoStore()
        dependencies.store = self.store
        dependencies.provider = self.provider
        dependencies.orchestrator = BatchImportOrchestrator(self.provider, extractor, self.store,
                                                            policy=PacingPolicy.immediate(), sleep=sleep)
        dependencies.stats_refresher = StatisticsRefresher(self.provider, self.store, sleep=sleep)
        dependencies.job_manager = JobManager()
        self.client = TestClient(build_app())
        self.client.__enter__()

    def tearDown(self):
        self.client.__exit__(None, None, None)
        (dependencies.store, dependencies.provider, dependencies.orchestrator,
         dependencies.stats_refresher, dependencies.job_manager) = self.saved

    def wait_for_job(self, job_id, timeout=5.0):
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            job = self.client.get(f"{PREFIX}/jobs/{job_id}").json()
            if job["status"] != "running":
                return job
            time.sleep(0.02)
        self.fail(f"job {job_id} did not finish")

    def test_import_wait(self):
        response = self.client.post(f"{PREFIX}/channels/@trailhead/import", json={"count": 2, "wait": True})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["imported"], 2)
        self.assertEqual(body["transcript_successes"], 2)
        self.assertEqual(body["shortfall"], 0)

    def test_import_background_job(self):
        response = self.client.post(f"{PREFIX}/channels/@trailhead/import", json={"count": 3})
        self.assertEqual(response.status_code, 202)
        job_id = response.json()["job_id"]
        self.assertEqual(response.headers["Location"], f"{PREFIX}/jobs/{job_id}")

        job = self.wait_for_job(job_id)
        self.assertEqual(job["status"], "completed")
        self.assertEqual(job["result"]["imported"], 3)
        self.assertEqual(len(self.client.get(f"{PREFIX}/jobs").json()), 1)

    def test_import_without_body_uses_defaults(self):
        response = self.client.post(f"{PREFIX}/channels/@trailhead/import")
        self.assertEqual(response.status_code, 202)
        self.assertEqual(response.json()["kind"], "import")

    def test_import_systemic_error_wait(self):
        self.provider.listing_error = QuotaExceededError()
        response = self.client.post(f"{PREFIX}/channels/@trailhead/import", json={"wait": True})
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.headers["X-Error-Code"], "QUOTA_EXCEEDED")

    def test_quota_reached_blocks_new_runs(self):
        self.provider.quota_reached = True
        response = self.client.post(f"{PREFIX}/channels/@trailhead/import", json={"wait": True})
        self.assertEqual(response.status_code, 403)

    def test_retry_transcripts(self):
        self.client.post(f"{PREFIX}/channels/@trailhead/import", json={"count": 1, "wait": True})
        response = self.client.post(f"{PREFIX}/videos/retry-transcripts",
                                    json={"video_ids": [" a ", "a", "zzz"], "mode": "all", "wait": True})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["requested"], 2)
        self.assertEqual(body["attempted"], 1)
        self.assertEqual(body["transcript_errors"], 1)

    def test_retry_requires_ids(self):
        response = self.client.post(f"{PREFIX}/videos/retry-transcripts", json={"video_ids": ["  "]})
        self.assertEqual(response.status_code, 422)

    def test_refresh_stats_wait(self):
        response = self.client.post(f"{PREFIX}/videos/refresh-stats", json={"max_videos": 10, "wait": True})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["selected"], 0)

    def test_stats_status(self):
        now = utc_now()
        dependencies.store = InMemoryVideoStore([
            VideoRecord(video_id="fresh", stats_updated_at=now - timedelta(hours=2)),
            VideoRecord(video_id="stale", stats_updated_at=now - timedelta(hours=30)),
            VideoRecord(video_id="never"),
        ])
        dependencies.stats_refresher.stale_after = timedelta(hours=24)

        response = self.client.get(f"{PREFIX}/stats-status")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["total_videos"], 3)
        self.assertEqual(body["needing_refresh"], 2)
        self.assertEqual(body["never_refreshed"], 1)
        self.assertEqual(body["oldest_refresh_at"], (now - timedelta(hours=30)).isoformat())
        self.assertEqual(body["stale_after_hours"], 24)

    def test_stats_status_empty_store(self):
        body = self.client.get(f"{PREFIX}/stats-status").json()
        self.assertEqual((body["total_videos"], body["needing_refresh"]), (0, 0))
        self.assertIsNone(body["oldest_refresh_at"])

    def test_refresh_stats_validation(self):
        response = self.client.post(f"{PREFIX}/videos/refresh-stats", json={"max_videos": 0})
        self.assertEqual(response.status_code, 422)

    def test_unknown_job(self):
        response = self.client.get(f"{PREFIX}/jobs/nope")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.headers["X-Error-Code"], "RESOURCE_NOT_FOUND")

    def test_channel_videos_and_video_detail(self):
        self.client.post(f"{PREFIX}/channels/@trailhead/import", json={"count": 2, "wait": True})

        listing = self.client.get(f"{PREFIX}/channels/{CHANNEL_ID}/videos").json()
        self.assertEqual(listing["count"], 2)
        first = listing["videos"][0]
        self.assertEqual(first["import_status"], "completed")
        self.assertEqual(first["transcript_classification"], "real")
        self.assertNotIn("transcript", first)

        video = self.client.get(f"{PREFIX}/videos/a").json()
        self.assertEqual(video["transcript"]["method"], ExtractionMethod.DIRECT.value)
        self.assertEqual(self.client.get(f"{PREFIX}/videos/ghost").status_code, 404)

    def test_health(self):
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["status"], "healthy")
        self.assertIn("statistics", body)

    def test_health_degraded_and_503_without_services(self):
        dependencies.orchestrator = None
        dependencies.provider = None
        self.assertEqual(self.client.get("/health").status_code, 503)
        response = self.client.post(f"{PREFIX}/channels/@trailhead/import", json={"wait": True})
        self.assertEqual(response.status_code, 503)
        # Stored data stays readable
        self.assertEqual(self.client.get(f"{PREFIX}/channels/{CHANNEL_ID}/videos").status_code, 200)


if __name__ == '__main__':
    unittest.main()
