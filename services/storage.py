#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Video stores for Trailhead Ingest.

PersistenceSink is the interface the import pipeline writes through. The
relational store of the site lives elsewhere; this module ships an in-memory
store and a JSON-file-backed variant used by the command line and the admin
server.
"""

import asyncio
import json
import os
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Set

from exceptions import PersistenceError, ResourceNotFoundError
from logging_config import StructuredLogger
from models import (ExtractionMethod, ImportStatus, TranscriptClassification,
                    TranscriptRecord, VideoRecord, VideoStatistics, utc_now)

logger = StructuredLogger(__name__)


class PersistenceSink(ABC):
    """Storage operations used by the importer, the retry run and the stats refresh."""

    @abstractmethod
    async def save_video(self, record: VideoRecord) -> VideoRecord:
        """Insert or update a video's metadata; returns the stored record with its internal_id."""

    @abstractmethod
    async def save_transcript(self, video_id: str, text: str,
                              classification: TranscriptClassification,
                              method: ExtractionMethod, error: Optional[str] = None) -> None:
        """Store the transcript of an existing video."""

    @abstractmethod
    async def mark_import_status(self, video_id: str, status: ImportStatus,
                                 error_message: Optional[str] = None) -> None:
        """Set the import status (and error message) of an existing video."""

    @abstractmethod
    async def get_video(self, video_id: str) -> Optional[VideoRecord]:
        """Return the stored record or None."""

    @abstractmethod
    async def filter_existing_video_ids(self, video_ids: Iterable[str]) -> Set[str]:
        """Return the subset of video_ids that is already stored; the dedup check of an import."""

    @abstractmethod
    async def list_channel_videos(self, channel_id: str) -> List[VideoRecord]:
        """Stored records of a channel, newest first."""

    @abstractmethod
    async def get_videos_for_stats_update(self, limit: int, stale_after: timedelta,
                                          now: Optional[datetime] = None) -> List[VideoRecord]:
        """Videos whose statistics are older than stale_after, never refreshed first."""

    @abstractmethod
    async def count_videos(self) -> int:
        """Number of stored videos."""

    @abstractmethod
    async def oldest_stats_update(self) -> Optional[datetime]:
        """Earliest statistics refresh time among refreshed videos; None when none was refreshed."""

    @abstractmethod
    async def update_video_statistics(self, video_id: str, statistics: VideoStatistics,
                                      refreshed_at: Optional[datetime] = None) -> None:
        """Write back counts and the refresh timestamp."""


class InMemoryVideoStore(PersistenceSink):
    """Dict-backed store. All mutations go through one asyncio.Lock."""

    def __init__(self, records: Optional[List[VideoRecord]] = None):
        self._videos: Dict[str, VideoRecord] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()
        for record in records or []:
            self._insert(record)

    def _insert(self, record: VideoRecord) -> VideoRecord:
        if record.internal_id is None:
            record.internal_id = self._next_id
        self._next_id = max(self._next_id, record.internal_id + 1)
        self._videos[record.video_id] = record
        return record

    def _require(self, video_id: str) -> VideoRecord:
        record = self._videos.get(video_id)
        if record is None:
            raise ResourceNotFoundError(f"Video {video_id} is not stored")
        return record

    async def _changed(self) -> None:
        """Hook called after every mutation, inside the lock."""

    async def save_video(self, record: VideoRecord) -> VideoRecord:
        async with self._lock:
            existing = self._videos.get(record.video_id)
            if existing is not None:
                record.internal_id = existing.internal_id
                if record.transcript is None:
                    record.transcript = existing.transcript
            stored = self._insert(record)
            await self._changed()
            return stored

    async def save_transcript(self, video_id: str, text: str,
                              classification: TranscriptClassification,
                              method: ExtractionMethod, error: Optional[str] = None) -> None:
        async with self._lock:
            record = self._require(video_id)
            record.transcript = TranscriptRecord(
                text=text or "",
                classification=classification,
                method=method,
                error=error,
                attempted_at=utc_now(),
            )
            await self._changed()

    async def mark_import_status(self, video_id: str, status: ImportStatus,
                                 error_message: Optional[str] = None) -> None:
        async with self._lock:
            record = self._require(video_id)
            record.import_status = status
            record.error_message = error_message
            await self._changed()

    async def get_video(self, video_id: str) -> Optional[VideoRecord]:
        return self._videos.get(video_id)

    async def filter_existing_video_ids(self, video_ids: Iterable[str]) -> Set[str]:
        return {vid for vid in video_ids if vid in self._videos}

    async def list_channel_videos(self, channel_id: str) -> List[VideoRecord]:
        records = [r for r in self._videos.values() if r.channel_id == channel_id]
        return sorted(records, key=lambda r: (r.published_at is not None, r.published_at), reverse=True)

    async def get_videos_for_stats_update(self, limit: int, stale_after: timedelta,
                                          now: Optional[datetime] = None) -> List[VideoRecord]:
        cutoff = (now or utc_now()) - stale_after
        due = [r for r in self._videos.values()
               if r.stats_updated_at is None or r.stats_updated_at <= cutoff]
        # Never refreshed first, then oldest refresh first
        due.sort(key=lambda r: (r.stats_updated_at is not None, r.stats_updated_at or cutoff))
        return due[:max(limit, 0)]

    async def count_videos(self) -> int:
        return len(self._videos)

    async def oldest_stats_update(self) -> Optional[datetime]:
        refreshed = [r.stats_updated_at for r in self._videos.values() if r.stats_updated_at is not None]
        return min(refreshed, default=None)

    async def update_video_statistics(self, video_id: str, statistics: VideoStatistics,
                                      refreshed_at: Optional[datetime] = None) -> None:
        async with self._lock:
            record = self._require(video_id)
            record.view_count = statistics.view_count
            record.like_count = statistics.like_count
            record.comment_count = statistics.comment_count
            record.stats_updated_at = refreshed_at or utc_now()
            await self._changed()


class JsonFileVideoStore(InMemoryVideoStore):
    """InMemoryVideoStore persisted to a JSON file after every mutation.

    Writes go to a temporary file that replaces the target, so a crash never
    leaves a half-written store behind.
    """

    def __init__(self, path: str):
        super().__init__()
        self.path = path
        self._load()

    def _load(self) -> None:
        if not os.path.exists(self.path):
            logger.info(f"Video store {self.path} does not exist yet, starting empty.")
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Could not read video store {self.path}: {e}") from e

        for item in data.get("videos", []):
            self._insert(VideoRecord.from_dict(item))
        logger.info(f"Loaded {len(self._videos)} video(s) from {self.path}")

    async def _changed(self) -> None:
        payload = {"videos": [r.to_dict() for r in self._videos.values()]}
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            fd, tmp_path = tempfile.mkstemp(prefix=".videos-", suffix=".json", dir=directory)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise PersistenceError(f"Could not write video store {self.path}: {e}") from e
