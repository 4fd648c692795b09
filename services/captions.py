#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Caption sources for Trailhead Ingest.

Defines the CaptionSource interface used by the transcript extractor and the
implementation backed by youtube_transcript_api. Library errors are mapped
onto three outcomes: no captions, rate limited, or an unknown (retryable)
fetch failure.
"""

import asyncio
import functools
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

import requests
from youtube_transcript_api import (YouTubeTranscriptApi, CouldNotRetrieveTranscript,
                                    NoTranscriptFound, RequestBlocked, TranscriptsDisabled,
                                    VideoUnavailable, YouTubeRequestFailed)

from config import config
from exceptions import CaptionFetchError, NoCaptionsError, RateLimitedError, TimeoutExceededError
from logging_config import StructuredLogger
from models import CaptionSegment
from utils import performance_timer

logger = StructuredLogger(__name__)

_BLOCKING_MARKERS = ("captcha", "too many requests", "429")


class CaptionSource(ABC):
    """Downloads caption segments for a video."""

    @abstractmethod
    async def fetch_captions(self, video_id: str, language_hint: Optional[str] = None,
                             auto_generated: bool = False) -> List[CaptionSegment]:
        """Fetch the caption segments of one track.

        Args:
            video_id: Provider video ID.
            language_hint: Preferred language code; None lets the source pick the
                           video's default track.
            auto_generated: Only accept automatically generated tracks.

        Raises:
            NoCaptionsError: No matching track exists.
            RateLimitedError: The provider throttled or blocked the request.
            CaptionFetchError: Any other failure.
        """


class TranscriptApiCaptionSource(CaptionSource):
    """CaptionSource over youtube_transcript_api (blocking calls run in the executor)."""

    def __init__(self, api: Optional[YouTubeTranscriptApi] = None,
                 timeout_seconds: float = config.CAPTION_TIMEOUT_SECONDS,
                 auto_caption_languages: Sequence[str] = config.AUTO_CAPTION_LANGUAGES):
        self._api = api or YouTubeTranscriptApi()
        self.timeout_seconds = timeout_seconds
        self.auto_caption_languages = tuple(auto_caption_languages)

    async def fetch_captions(self, video_id: str, language_hint: Optional[str] = None,
                             auto_generated: bool = False) -> List[CaptionSegment]:
        loop = asyncio.get_running_loop()
        call = functools.partial(self._fetch_sync, video_id, language_hint, auto_generated)
        label = f"captions[{video_id}][{language_hint or 'default'}{':auto' if auto_generated else ''}]"

        try:
            with performance_timer(label, threshold_ms=2000):
                snippets = await asyncio.wait_for(loop.run_in_executor(None, call),
                                                  timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            raise TimeoutExceededError(
                f"Caption download for {video_id} timed out after {self.timeout_seconds}s"
            ) from None
        except CouldNotRetrieveTranscript as e:
            raise self._map_error(video_id, e) from e
        except requests.exceptions.RequestException as e:
            logger.warning(f"Caption transport error for {video_id}", video_id=video_id,
                           error_type=type(e).__name__)
            raise CaptionFetchError(
                f"Caption request failed for {video_id}: {type(e).__name__}: {e}"
            ) from e

        segments = [self._to_segment(s) for s in snippets]
        if not segments:
            raise NoCaptionsError(f"Caption track for {video_id} is empty")
        return segments

    def _fetch_sync(self, video_id: str, language_hint: Optional[str], auto_generated: bool):
        """Blocking download; returns the library's snippet objects."""
        if auto_generated:
            languages = [language_hint] if language_hint else list(self.auto_caption_languages)
            transcript = self._api.list(video_id).find_generated_transcript(languages)
            return transcript.fetch()

        if language_hint:
            return self._api.fetch(video_id, languages=[language_hint])

        # No hint: first listed track, manually created tracks come first
        transcript_list = self._api.list(video_id)
        transcript = next(iter(transcript_list), None)
        if transcript is None:
            raise NoCaptionsError(f"No caption tracks listed for {video_id}")
        return transcript.fetch()

    @staticmethod
    def _to_segment(snippet) -> CaptionSegment:
        if isinstance(snippet, dict):
            text, start, duration = snippet.get("text", ""), snippet.get("start", 0.0), snippet.get("duration", 0.0)
        else:
            text = getattr(snippet, "text", "")
            start = getattr(snippet, "start", 0.0)
            duration = getattr(snippet, "duration", 0.0)
        return CaptionSegment(text=text or "", offset_ms=int(float(start) * 1000),
                              duration_ms=int(float(duration) * 1000))

    @staticmethod
    def _map_error(video_id: str, error: CouldNotRetrieveTranscript) -> Exception:
        """Translate a youtube_transcript_api error into one of our caption errors."""
        message = str(error).strip().splitlines()[0] if str(error).strip() else type(error).__name__

        if isinstance(error, RequestBlocked):
            logger.warning(f"Caption request blocked for {video_id}", video_id=video_id,
                           error_type=type(error).__name__)
            return RateLimitedError(f"Caption request blocked for {video_id}: {message}")

        if isinstance(error, (NoTranscriptFound, TranscriptsDisabled, VideoUnavailable)):
            return NoCaptionsError(f"No captions for {video_id}: {type(error).__name__}")

        # YouTubeRequestFailed wraps the HTTP error, a 429 only shows up in its text
        lowered = str(error).lower()
        if any(m in lowered for m in _BLOCKING_MARKERS):
            return RateLimitedError(f"Caption request throttled for {video_id}: {message}")

        if isinstance(error, YouTubeRequestFailed):
            return CaptionFetchError(f"Caption request failed for {video_id}: {message}")

        return CaptionFetchError(f"Caption download failed for {video_id}: {type(error).__name__}: {message}")
