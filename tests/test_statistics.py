"""
Tests for the StatisticsRefresher.
"""
import unittest
import sys
import os
from datetime import timedelta

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

from exceptions import APIConfigurationError, QuotaExceededError, TransientError
from models import VideoRecord, VideoStatistics, utc_now
from services.statistics import StatisticsRefresher
from services.storage import InMemoryVideoStore
from fakes import FakeProvider, RecordingSleep


class TestStatisticsRefresher(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        old = utc_now() - timedelta(days=2)
        self.records = [VideoRecord(video_id=f"v{i}", stats_updated_at=old) for i in range(5)]
        self.records.append(VideoRecord(video_id="fresh", stats_updated_at=utc_now()))
        self.store = InMemoryVideoStore(self.records)
        self.provider = FakeProvider()
        self.provider.statistics = {f"v{i}": VideoStatistics(1000 + i, 10, 1) for i in range(5)}
        self.sleep = RecordingSleep()
        self.refresher = StatisticsRefresher(self.provider, self.store, stale_after=timedelta(hours=24),
                                             chunk_size=2, chunk_delay_seconds=2.0, sleep=self.sleep)

    async def test_refreshes_stale_videos_in_chunks(self):
        summary = await self.refresher.refresh_due()
        self.assertEqual(summary.selected, 5)
        self.assertEqual(summary.updated_count, 5)
        self.assertEqual(summary.failed_chunks, 0)
        self.assertEqual([len(c) for c in self.provider.stats_batch_calls], [2, 2, 1])
        self.assertEqual(self.sleep.calls, [2.0, 2.0])
        record = await self.store.get_video("v3")
        self.assertEqual(record.view_count, 1003)
        self.assertGreater(record.stats_updated_at, utc_now() - timedelta(minutes=1))
        self.assertNotIn("fresh", [vid for c in self.provider.stats_batch_calls for vid in c])

    async def test_max_videos(self):
        summary = await self.refresher.refresh_due(max_videos=3)
        self.assertEqual(summary.selected, 3)
        self.assertEqual(summary.updated_count, 3)

    async def test_nothing_due(self):
        store = InMemoryVideoStore([VideoRecord(video_id="fresh", stats_updated_at=utc_now())])
        summary = await StatisticsRefresher(self.provider, store, sleep=self.sleep).refresh_due()
        self.assertEqual(summary.selected, 0)
        self.assertEqual(self.provider.stats_batch_calls, [])

    async def test_failed_chunk_is_skipped(self):
        self.provider.stats_errors = {1: TransientError("backend error")}
        summary = await self.refresher.refresh_due()
        self.assertEqual(summary.failed_chunks, 1)
        self.assertEqual(summary.updated_count, 3)
        self.assertEqual(len(summary.errors), 1)

    async def test_quota_stops_remaining_chunks(self):
        self.provider.stats_errors = {1: QuotaExceededError()}
        summary = await self.refresher.refresh_due()
        self.assertEqual(summary.updated_count, 2)
        self.assertEqual(summary.failed_chunks, 2)
        self.assertEqual(len(self.provider.stats_batch_calls), 2)

    async def test_credentials_error_aborts(self):
        self.provider.stats_errors = {0: APIConfigurationError("key rejected")}
        with self.assertRaises(APIConfigurationError):
            await self.refresher.refresh_due()

    def test_chunk_size_capped(self):
        refresher = StatisticsRefresher(self.provider, self.store, chunk_size=500)
        self.assertEqual(refresher.chunk_size, 50)


if __name__ == '__main__':
    unittest.main()
