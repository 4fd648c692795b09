#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Statistics refresh for stored videos.

Selects videos whose view/like/comment counts are stale, fetches fresh counts
in provider-sized chunks with a fixed pause between chunks and writes them
back. A failing chunk is logged and skipped; credential errors abort the run.
"""

import asyncio
from datetime import timedelta
from typing import Optional

from config import config
from exceptions import APIConfigurationError, QuotaExceededError
from logging_config import StructuredLogger
from models import StatsRefreshSummary, utc_now
from services.storage import PersistenceSink
from services.youtube_api import VideoMetadataProvider
from utils import SleepFunc, chunked

logger = StructuredLogger(__name__)

MAX_CHUNK_SIZE = 50


class StatisticsRefresher:
    """Periodic refresh of video statistics."""

    def __init__(self, provider: VideoMetadataProvider, store: PersistenceSink,
                 stale_after: timedelta = config.STATS_STALE_AFTER,
                 chunk_size: int = config.BATCH_SIZE,
                 chunk_delay_seconds: float = config.STATS_CHUNK_DELAY_SECONDS,
                 sleep: SleepFunc = asyncio.sleep):
        self.provider = provider
        self.store = store
        self.stale_after = stale_after
        self.chunk_size = min(max(int(chunk_size), 1), MAX_CHUNK_SIZE)
        self.chunk_delay_seconds = chunk_delay_seconds
        self._sleep = sleep

    async def refresh_due(self, max_videos: Optional[int] = None) -> StatsRefreshSummary:
        """Refresh statistics of up to max_videos stale videos.

        Args:
            max_videos: Upper bound on selected videos (config.STATS_MAX_VIDEOS by default).

        Returns:
            StatsRefreshSummary: Selected, updated and failed chunk counts.

        Raises:
            APIConfigurationError: Credentials missing or rejected.
        """
        limit = max_videos if max_videos is not None else config.STATS_MAX_VIDEOS
        due = await self.store.get_videos_for_stats_update(limit, self.stale_after)
        summary = StatsRefreshSummary(selected=len(due))
        if not due:
            logger.info("No videos due for a statistics refresh.")
            return summary

        chunks = list(chunked([r.video_id for r in due], self.chunk_size))
        logger.info(f"Refreshing statistics for {len(due)} video(s) in {len(chunks)} chunk(s)")

        for index, chunk in enumerate(chunks):
            if index > 0 and self.chunk_delay_seconds > 0:
                await self._sleep(self.chunk_delay_seconds)
            try:
                stats = await self.provider.get_video_statistics_batch(chunk)
                refreshed_at = utc_now()
                for video_id, statistics in stats.items():
                    await self.store.update_video_statistics(video_id, statistics, refreshed_at)
                    summary.updated_count += 1
            except APIConfigurationError:
                raise
            except QuotaExceededError as e:
                # Later chunks would fail the same way
                summary.failed_chunks += len(chunks) - index
                summary.errors.append(f"chunk {index + 1}: {e.message}")
                logger.error(f"Quota exhausted during statistics refresh at chunk {index + 1}/{len(chunks)}",
                             exc_info=False)
                break
            except Exception as e:
                summary.failed_chunks += 1
                summary.errors.append(f"chunk {index + 1}: {e}")
                logger.error(f"Statistics chunk {index + 1}/{len(chunks)} failed: {e}", chunk_size=len(chunk))

        logger.info(
            f"Statistics refresh finished: {summary.updated_count}/{summary.selected} updated, "
            f"{summary.failed_chunks} failed chunk(s)"
        )
        return summary
