#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Transcript extraction for Trailhead Ingest.

Tries caption strategies in a fixed order (direct, language variants,
auto-generated captions), then falls back to a content extract built from the
caption track listing or from the video metadata. Always returns a tagged
TranscriptResult; a single video never raises.
"""

import asyncio
from typing import Any, Dict, List, Optional, Sequence, Tuple

from config import config
from exceptions import (AppBaseError, CaptionFetchError, NoCaptionsError,
                        RateLimitedError, TimeoutExceededError)
from logging_config import StructuredLogger
from models import ExtractionMethod, TranscriptResult, VideoDetails
from services.captions import CaptionSource
from text_processing import clean_transcript, detect_topics, format_duration, join_segments
from utils import RetryableRequest, SleepFunc

logger = StructuredLogger(__name__)

# (method, language hint, auto-generated only)
Strategy = Tuple[ExtractionMethod, Optional[str], bool]


def build_content_extract(details: VideoDetails, caption_tracks: Optional[Sequence[str]] = None) -> str:
    """Structured text summary of a video for when no caption text is available."""
    lines = [f"Title: {details.title}"]
    if details.channel_title:
        lines.append(f"Channel: {details.channel_title}")
    if details.published_at:
        lines.append(f"Published: {details.published_at.date().isoformat()}")
    if details.duration_seconds:
        lines.append(f"Duration: {format_duration(details.duration_seconds)}")
    if caption_tracks:
        lines.append(f"Caption tracks: {', '.join(caption_tracks)}")

    description = (details.description or "").strip()
    if description:
        lines.extend(["", "Description:", description])

    topics = detect_topics(details.title, details.description)
    if topics:
        lines.extend(["", "Main Topics:"])
        lines.extend(f"- {topic}" for topic in topics)

    return "\n".join(lines)


class TranscriptExtractor:
    """Produces a TranscriptResult for one video using ordered fallback strategies.

    Caption strategies retry unknown failures with exponential backoff. A
    missing track moves on to the next strategy. A rate-limit error stops the
    caption strategies at once and yields a failed result flagged
    rate_limited, so the caller can feed its circuit breaker.
    """

    def __init__(self, caption_source: CaptionSource, metadata_provider=None,
                 language_variants: Sequence[str] = config.TRANSCRIPT_LANGUAGE_VARIANTS,
                 min_chars: int = config.MIN_TRANSCRIPT_CHARS,
                 retry_attempts: int = config.STRATEGY_RETRY_ATTEMPTS,
                 retry_base_delay_ms: int = config.STRATEGY_RETRY_BASE_DELAY_MS,
                 timeout_seconds: Optional[float] = config.EXTRACTION_TIMEOUT_SECONDS,
                 sleep: SleepFunc = asyncio.sleep):
        """Initialize the extractor.

        Args:
            caption_source: Source of caption segments.
            metadata_provider: VideoMetadataProvider used for the caption track
                               listing and, when the caller passes no details,
                               for the metadata fallback. Optional.
            language_variants: Language codes tried in order by the variant strategy.
            min_chars: Cleaned caption text shorter than this is not usable.
            retry_attempts: Retries per caption strategy on unknown failures.
            retry_base_delay_ms: Base delay of the per-strategy backoff.
            timeout_seconds: Bound on the whole extraction of one video.
            sleep: Async sleep used by the backoff.
        """
        self._captions = caption_source
        self._provider = metadata_provider
        self.language_variants = tuple(language_variants)
        self.min_chars = min_chars
        self.retry_attempts = max(int(retry_attempts), 0)
        self.retry_base_delay_ms = retry_base_delay_ms
        self.timeout_seconds = timeout_seconds
        self._sleep = sleep

        self._stats = {
            "extractions": 0,
            "real": 0,
            "content_extracts": 0,
            "failed": 0,
            "rate_limited": 0,
            "timeouts": 0,
        }

    def strategies(self) -> List[Strategy]:
        """Caption strategies in the order they are tried."""
        plan: List[Strategy] = [(ExtractionMethod.DIRECT, None, False)]
        plan.extend((ExtractionMethod.LANGUAGE_VARIANT, lang, False) for lang in self.language_variants)
        plan.append((ExtractionMethod.AUTO_CAPTIONS, None, True))
        return plan

    async def extract(self, video_id: str, details: Optional[VideoDetails] = None) -> TranscriptResult:
        """Extract a transcript for one video.

        Args:
            video_id: Provider video ID.
            details: Metadata already known for the video, if any.

        Returns:
            TranscriptResult: Real, content extract or failed. Never raises for
            a video-level problem.
        """
        self._stats["extractions"] += 1
        diagnostics: Dict[str, Any] = {"strategies_attempted": [], "languages_tried": []}
        log = logger.bind(video_id=video_id)

        try:
            result = await asyncio.wait_for(self._run(video_id, details, diagnostics, log),
                                            timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            self._stats["timeouts"] += 1
            log.warning(f"Transcript extraction for {video_id} timed out after {self.timeout_seconds}s")
            result = TranscriptResult.failed(
                f"Transcript fetch timeout after {self.timeout_seconds}s", **diagnostics
            )
        except Exception as e:
            log.error(f"Unexpected error extracting transcript for {video_id}: {e}")
            result = TranscriptResult.failed(f"Unexpected error: {type(e).__name__}: {e}", **diagnostics)

        self._count(result)
        log.info(
            f"Transcript for {video_id}: {result.classification.value} via {result.method.value}",
            classification=result.classification.value,
            method=result.method.value,
            rate_limited=result.rate_limited,
            chars=len(result.text),
        )
        return result

    async def _run(self, video_id: str, details: Optional[VideoDetails],
                   diagnostics: Dict[str, Any], log: StructuredLogger) -> TranscriptResult:
        last_error: Optional[str] = None

        for method, language, auto_generated in self.strategies():
            diagnostics["strategies_attempted"].append(method.value)
            if language:
                diagnostics["languages_tried"].append(language)
            try:
                segments = await RetryableRequest.execute_with_retry(
                    self._captions.fetch_captions,
                    video_id,
                    language,
                    auto_generated,
                    max_retries=self.retry_attempts,
                    base_delay_ms=self.retry_base_delay_ms,
                    timeout_seconds=None,
                    retry_on_exceptions=(CaptionFetchError, TimeoutExceededError),
                    operation_name=f"fetch_captions[{method.value}:{language or '-'}]",
                    sleep=self._sleep,
                )
            except RateLimitedError as e:
                log.warning(f"Rate limited during {method.value} caption fetch for {video_id}", error=e.message)
                return TranscriptResult.failed(e.message, rate_limited=True, **diagnostics)
            except NoCaptionsError as e:
                last_error = e.message
                log.debug(f"{method.value} ({language or 'default'}): no captions")
                continue
            except (CaptionFetchError, TimeoutExceededError) as e:
                last_error = e.message
                log.warning(f"{method.value} ({language or 'default'}) failed after retries: {e.message}")
                continue

            text = clean_transcript(join_segments(s.text for s in segments))
            if len(text) >= self.min_chars:
                return TranscriptResult.real(text, method, language=language, **diagnostics)

            last_error = f"Caption text too short ({len(text)} chars) from {method.value}"
            log.debug(last_error)

        return await self._fallback(video_id, details, diagnostics, last_error, log)

    async def _fallback(self, video_id: str, details: Optional[VideoDetails],
                        diagnostics: Dict[str, Any], last_error: Optional[str],
                        log: StructuredLogger) -> TranscriptResult:
        """Captions-list detection, then the metadata content extract."""
        tracks: List[str] = []
        if self._provider is not None:
            diagnostics["strategies_attempted"].append(ExtractionMethod.CAPTIONS_LIST.value)
            try:
                tracks = list(await self._provider.list_caption_tracks(video_id))
            except AppBaseError as e:
                log.warning(f"Caption track listing failed for {video_id}: {e.message}")
            diagnostics["caption_tracks"] = tracks

        if details is None and self._provider is not None:
            try:
                details = await self._provider.get_video_details(video_id)
            except AppBaseError as e:
                log.warning(f"Metadata unavailable for content extract of {video_id}: {e.message}")
                return TranscriptResult.failed(e.message, **diagnostics)

        if details is None:
            return TranscriptResult.failed(last_error or f"No captions or metadata for {video_id}", **diagnostics)

        if tracks:
            return TranscriptResult.content_extract(
                build_content_extract(details, tracks), ExtractionMethod.CAPTIONS_LIST,
                error=last_error, **diagnostics
            )

        diagnostics["strategies_attempted"].append(ExtractionMethod.CONTENT_EXTRACT.value)
        return TranscriptResult.content_extract(
            build_content_extract(details), ExtractionMethod.CONTENT_EXTRACT,
            error=last_error, **diagnostics
        )

    def _count(self, result: TranscriptResult) -> None:
        if result.is_real:
            self._stats["real"] += 1
        elif result.is_content_extract:
            self._stats["content_extracts"] += 1
        else:
            self._stats["failed"] += 1
        if result.rate_limited:
            self._stats["rate_limited"] += 1

    def get_stats(self) -> Dict[str, int]:
        return dict(self._stats)
