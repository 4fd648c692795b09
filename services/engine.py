#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Batch import engine for Trailhead Ingest.

Orchestrates channel imports (discovery with dedup, batched metadata fetch,
per-video persistence and paced transcript extraction) and transcript retry
runs. Per-video failures are isolated and counted; only systemic failures
(credentials, quota, unreachable provider) propagate.
"""

import asyncio
import random
import time
import uuid
from typing import Any, Dict, Iterable, List, Optional, Set, Union

from config import config
from exceptions import is_systemic_error
from logging_config import StructuredLogger
from models import (ImportStatus, ImportSummary, RetryMode, RetrySummary, RetryVideoResult,
                    TranscriptClassification, TranscriptResult, VideoDetails, VideoRecord)
from services.pacing import PacingPolicy, RateLimiter
from services.storage import PersistenceSink
from services.transcript import TranscriptExtractor
from services.youtube_api import VideoMetadataProvider
from utils import ClockFunc, SleepFunc, chunked, performance_timer

logger = StructuredLogger(__name__)


class BatchImportOrchestrator:
    """Runs channel imports and transcript retries against one provider and store.

    Each run gets its own RateLimiter, so the circuit breaker state never leaks
    from one run into the next.
    """

    def __init__(self, provider: VideoMetadataProvider, extractor: TranscriptExtractor,
                 store: PersistenceSink, policy: Optional[PacingPolicy] = None,
                 sleep: SleepFunc = asyncio.sleep, clock: ClockFunc = time.monotonic,
                 rng: Optional[random.Random] = None,
                 max_import_count: int = config.MAX_IMPORT_COUNT,
                 max_discovery_pages: int = config.MAX_DISCOVERY_PAGES):
        """Initialize the orchestrator.

        Args:
            provider: Source of channel listings and video metadata.
            extractor: Transcript extractor.
            store: Persistence sink for videos and transcripts.
            policy: Pacing policy; built from config when omitted.
            sleep: Async sleep used for every pacing delay.
            clock: Monotonic clock for the circuit breaker.
            rng: Random source for the inter-batch jitter.
            max_import_count: Upper bound of desired_count.
            max_discovery_pages: Listing pages read at most per import.
        """
        self.provider = provider
        self.extractor = extractor
        self.store = store
        self.policy = policy or PacingPolicy.from_config()
        self._sleep = sleep
        self._clock = clock
        self._rng = rng
        self.max_import_count = max(int(max_import_count), 1)
        self.max_discovery_pages = max(int(max_discovery_pages), 1)

        self._global_stats = {
            "imports_run": 0,
            "retries_run": 0,
            "videos_imported": 0,
            "transcript_attempts": 0,
            "engine_start_time": time.monotonic(),
        }
        logger.info("BatchImportOrchestrator initialized.")

    def _new_limiter(self, name: str) -> RateLimiter:
        return RateLimiter(self.policy, sleep=self._sleep, clock=self._clock, rng=self._rng, name=name)

    def clamp_count(self, desired_count: Any) -> int:
        """Clamp a requested count to 1..max_import_count (non-numbers count as 1)."""
        try:
            value = int(desired_count)
        except (TypeError, ValueError):
            value = 1
        return min(max(value, 1), self.max_import_count)

    # --- Channel import ---

    async def import_channel(self, channel_ref: str, desired_count: int,
                             existing_video_ids: Optional[Iterable[str]] = None) -> ImportSummary:
        """Import up to desired_count new videos of a channel.

        Args:
            channel_ref: Channel ID, handle or channel URL.
            desired_count: Number of new videos wanted (clamped to 1..50).
            existing_video_ids: IDs to treat as already imported. When None the
                                store is asked for every listing page.

        Returns:
            ImportSummary: Counters and per-video errors of the run.

        Raises:
            APIConfigurationError, QuotaExceededError, TransientError: Systemic
            failures while listing the channel or fetching metadata.
            ResourceNotFoundError: The channel does not exist.
        """
        run_id = uuid.uuid4().hex[:8]
        log = logger.bind(run_id=run_id, channel=channel_ref)
        requested = self.clamp_count(desired_count)
        summary = ImportSummary(channel_ref=channel_ref, requested=requested)
        existing = set(existing_video_ids) if existing_video_ids is not None else None
        self._global_stats["imports_run"] += 1

        log.info(f"Starting import of {requested} new video(s) from '{channel_ref}'", requested=requested)

        with performance_timer(f"import_channel[{channel_ref}]", threshold_ms=60000):
            candidates = await self._discover(channel_ref, requested, existing, summary, log)
            summary.available = len(candidates)
            if not candidates:
                log.info(f"No new videos found for '{channel_ref}'",
                         skipped_duplicates=summary.skipped_duplicates)
                return summary

            details_list = await self.provider.get_video_details_batch(candidates)
            found = {d.video_id: d for d in details_list}
            for video_id in candidates:
                if video_id not in found:
                    summary.metadata_failures += 1
                    summary.errors.append(f"{video_id}: metadata not returned by provider")

            ordered = [found[vid] for vid in candidates if vid in found]
            limiter = self._new_limiter(f"import:{run_id}")
            attempt_index = 0

            for batch_number, batch in enumerate(chunked(ordered, self.policy.batch_size)):
                if batch_number > 0:
                    await limiter.between_batches()
                for position, details in enumerate(batch):
                    attempted = await self._import_one(details, limiter, attempt_index,
                                                       batch_number, position, summary, log)
                    if attempted:
                        attempt_index += 1

            summary.circuit_breaker_tripped = limiter.tripped

        self._global_stats["videos_imported"] += summary.imported
        log.info(
            f"Import of '{channel_ref}' finished: {summary.imported}/{requested} imported, "
            f"{summary.transcript_successes} transcript(s), {summary.content_extracts} content extract(s), "
            f"{summary.transcript_errors} error(s)",
            **{k: v for k, v in summary.to_dict().items() if k != "errors"},
        )
        return summary

    async def _discover(self, channel_ref: str, requested: int, existing: Optional[Set[str]],
                        summary: ImportSummary, log) -> List[str]:
        """Page through the channel listing until enough new IDs are found."""
        candidates: List[str] = []
        seen: Set[str] = set()
        page_token: Optional[str] = None

        for page_number in range(1, self.max_discovery_pages + 1):
            page = await self.provider.list_channel_videos(channel_ref, page_token)
            page_ids = [vid for vid in page.video_ids if vid and vid not in seen]
            seen.update(page_ids)

            if existing is None:
                already_stored = await self.store.filter_existing_video_ids(page_ids)
            else:
                already_stored = existing.intersection(page_ids)

            for video_id in page_ids:
                if video_id in already_stored:
                    summary.skipped_duplicates += 1
                    continue
                candidates.append(video_id)
                if len(candidates) >= requested:
                    log.debug(f"Found {requested} candidate(s) after {page_number} page(s)")
                    return candidates

            page_token = page.next_page_token
            if not page_token:
                log.debug(f"Channel listing ended after {page_number} page(s)")
                return candidates

        log.warning(
            f"Stopped discovery after {self.max_discovery_pages} page(s) with "
            f"{len(candidates)}/{requested} candidate(s)"
        )
        return candidates

    async def _import_one(self, details: VideoDetails, limiter: RateLimiter, attempt_index: int,
                          batch_number: int, position: int, summary: ImportSummary, log) -> bool:
        """Persist one video and extract its transcript.

        Returns:
            bool: True if a transcript extraction was attempted.
        """
        video_id = details.video_id
        try:
            await self.store.save_video(VideoRecord.from_details(details, ImportStatus.PROCESSING))
        except Exception as e:
            if is_systemic_error(e):
                raise
            summary.metadata_failures += 1
            summary.errors.append(f"{video_id}: metadata save failed: {e}")
            log.error(f"Could not save metadata for {video_id}, skipping", video_id=video_id)
            return False

        summary.imported += 1
        await limiter.before_attempt(attempt_index, batch_number, position)
        result = await self.extractor.extract(video_id, details)
        self._global_stats["transcript_attempts"] += 1
        limiter.record(result)
        await self._store_outcome(video_id, result, summary, log)
        return True

    async def _store_outcome(self, video_id: str, result: TranscriptResult,
                             summary: Union[ImportSummary, RetrySummary], log) -> ImportStatus:
        """Save the transcript and the terminal status, updating the run counters."""
        status = result.import_status
        error_message = result.error if status != ImportStatus.COMPLETED else None

        try:
            await self.store.save_transcript(video_id, result.text, result.classification,
                                             result.method, result.error)
        except Exception as e:
            if is_systemic_error(e):
                raise
            status = ImportStatus.COMPLETED_WITH_ERRORS
            error_message = f"Transcript save failed: {e}"
            summary.transcript_errors += 1
            summary.errors.append(f"{video_id}: {error_message}")
            log.error(f"Could not save transcript for {video_id}", video_id=video_id)
        else:
            if result.is_real:
                summary.transcript_successes += 1
            elif result.is_content_extract:
                summary.content_extracts += 1
            else:
                summary.transcript_errors += 1
                summary.errors.append(f"{video_id}: {result.error}")

        try:
            await self.store.mark_import_status(video_id, status, error_message)
        except Exception as e:
            if is_systemic_error(e):
                raise
            summary.errors.append(f"{video_id}: status update failed: {e}")
            log.error(f"Could not update import status for {video_id}", video_id=video_id)

        return status

    # --- Transcript retry ---

    async def retry_transcripts(self, video_ids: Iterable[str],
                                mode: Union[RetryMode, str] = RetryMode.FAILED_ONLY) -> RetrySummary:
        """Re-run transcript extraction for stored videos.

        Under RetryMode.FAILED_ONLY, videos that already have a real transcript
        are skipped and left untouched; RetryMode.ALL retries every listed video.
        Unknown IDs are reported as errors.

        Args:
            video_ids: Provider video IDs.
            mode: 'failed_only' or 'all'.

        Returns:
            RetrySummary: Counters plus one result per requested video.
        """
        mode = RetryMode(mode)
        ids = list(dict.fromkeys(vid.strip() for vid in video_ids if vid and vid.strip()))
        run_id = uuid.uuid4().hex[:8]
        log = logger.bind(run_id=run_id, mode=mode.value)
        summary = RetrySummary(mode=mode, requested=len(ids))
        self._global_stats["retries_run"] += 1

        targets: List[VideoRecord] = []
        for video_id in ids:
            record = await self.store.get_video(video_id)
            if record is None:
                summary.transcript_errors += 1
                summary.errors.append(f"{video_id}: video not found")
                summary.results.append(RetryVideoResult(video_id, status="not_found", error="Video not found"))
                continue
            if mode == RetryMode.FAILED_ONLY and record.transcript_classification == TranscriptClassification.REAL:
                summary.skipped_count += 1
                summary.results.append(RetryVideoResult(
                    video_id, title=record.title, classification=TranscriptClassification.REAL,
                    method=record.transcript.method, status="skipped",
                ))
                continue
            targets.append(record)

        log.info(f"Retrying transcripts for {len(targets)} video(s), {summary.skipped_count} skipped")

        limiter = self._new_limiter(f"retry:{run_id}")
        attempt_index = 0
        for batch_number, batch in enumerate(chunked(targets, self.policy.batch_size)):
            if batch_number > 0:
                await limiter.between_batches()
            for position, record in enumerate(batch):
                await limiter.before_attempt(attempt_index, batch_number, position)
                attempt_index += 1
                summary.attempted += 1

                result = await self.extractor.extract(record.video_id, record.to_details())
                self._global_stats["transcript_attempts"] += 1
                limiter.record(result)
                status = await self._store_outcome(record.video_id, result, summary, log)
                summary.results.append(RetryVideoResult(
                    record.video_id, title=record.title, classification=result.classification,
                    method=result.method, status=status.value, error=result.error,
                ))

        summary.circuit_breaker_tripped = limiter.tripped
        log.info(
            f"Retry finished: {summary.transcript_successes} real, {summary.content_extracts} content "
            f"extract(s), {summary.transcript_errors} error(s), {summary.skipped_count} skipped"
        )
        return summary

    def get_global_stats(self) -> Dict[str, Any]:
        """Engine counters plus the extractor's."""
        stats = {k: v for k, v in self._global_stats.items() if k != "engine_start_time"}
        stats["uptime_seconds"] = round(time.monotonic() - self._global_stats["engine_start_time"], 1)
        stats["extractor"] = self.extractor.get_stats()
        return stats
