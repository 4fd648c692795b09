#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
YouTube Data API v3 Client for Trailhead Ingest.

Defines the VideoMetadataProvider interface used by the import pipeline and
its implementation over google-api-python-client: channel upload listing,
batched video details and statistics, and caption track listing. HTTP errors
are mapped onto the application exception hierarchy and transient failures
are retried with exponential backoff.
"""

import asyncio
import re
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from googleapiclient.discovery import Resource, build
from googleapiclient.errors import HttpError

from config import config
from exceptions import (APIConfigurationError, InvalidInputError,
                        QuotaExceededError, RateLimitedError,
                        ResourceNotFoundError, TransientError)
from logging_config import StructuredLogger
from models import ChannelVideoPage, VideoDetails, VideoStatistics
from utils import RetryableRequest, SleepFunc, chunked, performance_timer

logger = StructuredLogger(__name__)


class VideoMetadataProvider(ABC):
    """Source of channel listings and video metadata."""

    @abstractmethod
    async def list_channel_videos(self, channel_ref: str,
                                  page_token: Optional[str] = None) -> ChannelVideoPage:
        """Return one page of the channel's uploads, newest first."""

    @abstractmethod
    async def get_video_details(self, video_id: str) -> VideoDetails:
        """Return metadata for one video.

        Raises:
            ResourceNotFoundError, QuotaExceededError, APIConfigurationError
        """

    @abstractmethod
    async def get_video_details_batch(self, video_ids: Sequence[str]) -> List[VideoDetails]:
        """Return metadata for several videos; unknown IDs are left out."""

    @abstractmethod
    async def get_video_statistics_batch(self, video_ids: Sequence[str]) -> Dict[str, VideoStatistics]:
        """Return current counts keyed by video ID."""

    @abstractmethod
    async def list_caption_tracks(self, video_id: str) -> List[str]:
        """Return the language codes of the caption tracks a video has."""


class YouTubeAPIClient(VideoMetadataProvider):
    """Client for the YouTube Data API v3.

    Blocking googleapiclient requests run in the default executor, one at a
    time per call, wrapped by RetryableRequest.
    """

    CHANNEL_PATTERNS = {
        "channel_id": re.compile(r"(?:https?://)?(?:www\.|m\.)?youtube\.com/channel/(?P<identifier>UC[a-zA-Z0-9_-]{22})"),
        "channel_handle": re.compile(r"(?:https?://)?(?:www\.|m\.)?youtube\.com/(?P<identifier>@[a-zA-Z0-9_.-]+)"),
        "channel_user": re.compile(r"(?:https?://)?(?:www\.|m\.)?youtube\.com/user/(?P<identifier>[a-zA-Z0-9_.-]+)"),
    }
    BARE_CHANNEL_ID = re.compile(r"^UC[a-zA-Z0-9_-]{22}$")

    # API quota costs for different endpoint calls
    API_COST = {
        "videos.list": 1,
        "channels.list": 1,
        "playlistItems.list": 1,
        "captions.list": 50,
    }

    QUOTA_REASONS = ("quotaExceeded", "dailyLimitExceeded", "servingLimitExceeded")
    CREDENTIAL_REASONS = ("keyInvalid", "keyExpired", "accessNotConfigured", "ipRefererBlocked",
                          "API key not valid", "API_KEY_INVALID", "forbidden")

    def __init__(self, api_key: Optional[str] = None, youtube: Optional[Resource] = None,
                 max_retries: int = config.API_RETRY_ATTEMPTS,
                 base_delay_ms: int = config.API_RETRY_BASE_DELAY_MS,
                 timeout_seconds: float = config.API_TIMEOUT_SECONDS,
                 quota_reset_seconds: float = config.QUOTA_RESET_SECONDS,
                 sleep: SleepFunc = asyncio.sleep,
                 clock: Callable[[], float] = time.monotonic):
        """Initialize the YouTube API client.

        Args:
            api_key: YouTube Data API key. If None, taken from config.
            youtube: Prebuilt API resource (tests); built from the key otherwise.
            max_retries: Retries for transient API failures.
            base_delay_ms: Base delay of the retry backoff.
            timeout_seconds: Timeout of a single API request.
            quota_reset_seconds: How long a quota error blocks further calls.
            sleep: Async sleep used by the backoff.
            clock: Monotonic clock timing the quota block.

        Raises:
            APIConfigurationError: If the API key is missing or the client cannot be built.
        """
        self.api_key = api_key if api_key is not None else config.API_KEY
        self.quota_reset_seconds = quota_reset_seconds
        self._clock = clock
        self._quota_reached_at: Optional[float] = None
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.timeout_seconds = timeout_seconds
        self._sleep = sleep

        if youtube is not None:
            self.youtube = youtube
        else:
            if not self.api_key:
                logger.critical("YouTube API key is missing.", exc_info=False)
                raise APIConfigurationError(
                    f"YouTube API key is not configured (set {config.API_KEY_ENV_VAR})."
                )
            try:
                self.youtube = build("youtube", "v3", developerKey=self.api_key, cache_discovery=False)
            except Exception as e:
                logger.critical(f"Error initializing YouTube API client build: {e}", error=str(e))
                raise APIConfigurationError(f"Could not initialize YouTube API service: {e}") from e

        self.api_calls_count = 0
        self.api_quota_used = 0
        self._uploads_playlist_cache: Dict[str, str] = {}
        logger.info("YouTube API Client initialized.")

    @property
    def quota_reached(self) -> bool:
        """True from a quota error until quota_reset_seconds have passed."""
        if self._quota_reached_at is None:
            return False
        if self._clock() - self._quota_reached_at >= self.quota_reset_seconds:
            logger.info("YouTube API quota block expired, calls allowed again.")
            self._quota_reached_at = None
            return False
        return True

    @quota_reached.setter
    def quota_reached(self, value: bool) -> None:
        self._quota_reached_at = self._clock() if value else None

    # --- Request execution ---

    def _map_http_error(self, error: HttpError) -> Exception:
        """Translate a googleapiclient HttpError into an application exception."""
        status_code = getattr(getattr(error, "resp", None), "status", None)
        try:
            status_code = int(status_code) if status_code is not None else None
        except (TypeError, ValueError):
            status_code = None

        content = getattr(error, "content", b"") or b""
        if isinstance(content, bytes):
            content = content.decode("utf-8", errors="replace")
        details = f"{content} {error}"
        uri = getattr(error, "uri", "unknown URI")

        if status_code == 403 and any(reason in details for reason in self.QUOTA_REASONS):
            self.quota_reached = True
            return QuotaExceededError(f"YouTube API quota exceeded (URI: {uri})")
        if status_code in (400, 401, 403) and (
                status_code == 401 or any(reason in details for reason in self.CREDENTIAL_REASONS)):
            return APIConfigurationError(f"YouTube API rejected the credentials ({status_code}): {error}")
        if status_code == 404:
            return ResourceNotFoundError(f"YouTube resource not found (404) at URI: {uri}")
        if status_code == 429:
            return RateLimitedError("YouTube API rate limit reached (429)")
        if status_code is not None and status_code >= 500:
            return TransientError(f"YouTube API unavailable ({status_code}): {error}",
                                  error_code="YOUTUBE_API_UNAVAILABLE", http_status_code=502)
        return InvalidInputError(f"YouTube API rejected the request ({status_code}): {error}")

    def _execute_sync(self, api_request: Any) -> dict:
        """Run one request in the calling (executor) thread with errors mapped."""
        try:
            return api_request.execute()
        except HttpError as e:
            raise self._map_http_error(e) from e
        except OSError as e:
            raise TransientError(f"YouTube API unreachable: {e}", error_code="YOUTUBE_API_UNREACHABLE",
                                 http_status_code=502) from e

    async def _execute_api_call(self, api_request: Any, endpoint: str) -> dict:
        """Executes the API call with retry logic and timeout.

        Args:
            api_request: The Google API Client Library request object.
            endpoint: Endpoint name, used for quota accounting and logs.

        Returns:
            dict: The parsed JSON response from the API.

        Raises:
            QuotaExceededError, APIConfigurationError, ResourceNotFoundError,
            RateLimitedError, TransientError, InvalidInputError
        """
        max_retries = 0 if self.quota_reached else self.max_retries

        with performance_timer(f"youtube_api.{endpoint}", threshold_ms=1000):
            try:
                response = await RetryableRequest.execute_with_retry(
                    self._execute_sync,
                    api_request,
                    max_retries=max_retries,
                    base_delay_ms=self.base_delay_ms,
                    timeout_seconds=self.timeout_seconds,
                    retry_on_exceptions=(TransientError,),
                    operation_name=endpoint,
                    sleep=self._sleep,
                )
            except QuotaExceededError as qe:
                self.quota_reached = True
                logger.critical(f"YouTube API quota exceeded: {qe}", exc_info=False, endpoint=endpoint)
                raise

        self.api_calls_count += 1
        self.api_quota_used += self.API_COST.get(endpoint, 1)
        return response or {}

    # --- Channel listing ---

    def parse_channel_ref(self, channel_ref: str) -> Tuple[str, str]:
        """Split a channel reference into (lookup parameter, value).

        Accepts a channel ID (UC...), an @handle, a bare handle, or a channel
        URL in /channel/, /@handle or /user/ form.

        Raises:
            InvalidInputError: If the reference is empty.
        """
        ref = (channel_ref or "").strip()
        if not ref:
            raise InvalidInputError("Channel reference is required")

        match = self.CHANNEL_PATTERNS["channel_id"].match(ref)
        if match:
            return "id", match.group("identifier")
        match = self.CHANNEL_PATTERNS["channel_handle"].match(ref)
        if match:
            return "forHandle", match.group("identifier")
        match = self.CHANNEL_PATTERNS["channel_user"].match(ref)
        if match:
            return "forUsername", match.group("identifier")

        if self.BARE_CHANNEL_ID.match(ref):
            return "id", ref
        if "/" in ref or " " in ref:
            raise InvalidInputError(f"Unrecognized channel reference: {ref[:100]}")
        return "forHandle", ref if ref.startswith("@") else f"@{ref}"

    async def get_uploads_playlist_id(self, channel_ref: str) -> str:
        """Resolve a channel reference to its uploads playlist ID (cached).

        Raises:
            ResourceNotFoundError: If the channel does not exist or has no uploads playlist.
        """
        cached = self._uploads_playlist_cache.get(channel_ref)
        if cached:
            return cached

        param, value = self.parse_channel_ref(channel_ref)
        req = self.youtube.channels().list(
            part="contentDetails",
            fields="items(id,contentDetails/relatedPlaylists/uploads)",
            **{param: value},
        )
        resp = await self._execute_api_call(req, "channels.list")
        items = resp.get("items") or []
        if not items:
            raise ResourceNotFoundError(f"Channel not found: {channel_ref}")

        playlist_id = items[0].get("contentDetails", {}).get("relatedPlaylists", {}).get("uploads")
        if not playlist_id:
            raise ResourceNotFoundError(f"Channel {channel_ref} has no uploads playlist")

        logger.debug(f"Resolved channel '{channel_ref}' to uploads playlist {playlist_id}",
                     channel_id=items[0].get("id"))
        self._uploads_playlist_cache[channel_ref] = playlist_id
        return playlist_id

    async def list_channel_videos(self, channel_ref: str,
                                  page_token: Optional[str] = None) -> ChannelVideoPage:
        playlist_id = await self.get_uploads_playlist_id(channel_ref)
        params = {
            "part": "contentDetails",
            "playlistId": playlist_id,
            "maxResults": config.BATCH_SIZE,
            "fields": "nextPageToken,items(contentDetails/videoId)",
        }
        if page_token:
            params["pageToken"] = page_token

        resp = await self._execute_api_call(self.youtube.playlistItems().list(**params), "playlistItems.list")
        video_ids = [
            item.get("contentDetails", {}).get("videoId")
            for item in resp.get("items", []) or []
        ]
        return ChannelVideoPage(
            video_ids=[vid for vid in video_ids if vid],
            next_page_token=resp.get("nextPageToken") or None,
        )

    # --- Videos ---

    async def get_video_details(self, video_id: str) -> VideoDetails:
        details = await self.get_video_details_batch([video_id])
        if not details:
            raise ResourceNotFoundError(f"Video not found: {video_id}")
        return details[0]

    async def get_video_details_batch(self, video_ids: Sequence[str]) -> List[VideoDetails]:
        """Fetch details for any number of IDs in requests of at most BATCH_SIZE.

        Results keep the order of video_ids; IDs the API does not return are
        logged and left out.
        """
        unique_ids = list(dict.fromkeys(vid for vid in video_ids if vid))
        by_id: Dict[str, VideoDetails] = {}

        for batch_ids in chunked(unique_ids, config.BATCH_SIZE):
            req = self.youtube.videos().list(
                part="snippet,contentDetails,statistics",
                id=",".join(batch_ids),
                maxResults=len(batch_ids),
            )
            resp = await self._execute_api_call(req, "videos.list")
            for item in resp.get("items", []) or []:
                details = VideoDetails.from_api_response(item)
                if details.video_id:
                    by_id[details.video_id] = details

        missing = [vid for vid in unique_ids if vid not in by_id]
        if missing:
            logger.warning(f"{len(missing)} video(s) not returned by videos.list", missing=missing[:10])

        logger.info(f"Retrieved details for {len(by_id)}/{len(unique_ids)} video(s).")
        return [by_id[vid] for vid in unique_ids if vid in by_id]

    async def get_video_statistics_batch(self, video_ids: Sequence[str]) -> Dict[str, VideoStatistics]:
        unique_ids = list(dict.fromkeys(vid for vid in video_ids if vid))
        stats: Dict[str, VideoStatistics] = {}

        for batch_ids in chunked(unique_ids, config.BATCH_SIZE):
            req = self.youtube.videos().list(
                part="statistics",
                id=",".join(batch_ids),
                fields="items(id,statistics(viewCount,likeCount,commentCount))",
                maxResults=len(batch_ids),
            )
            resp = await self._execute_api_call(req, "videos.list")
            for item in resp.get("items", []) or []:
                if item.get("id"):
                    stats[item["id"]] = VideoStatistics.from_api_response(item.get("statistics", {}))
        return stats

    async def list_caption_tracks(self, video_id: str) -> List[str]:
        req = self.youtube.captions().list(part="snippet", videoId=video_id, fields="items(snippet(language,trackKind))")
        resp = await self._execute_api_call(req, "captions.list")
        languages = []
        for item in resp.get("items", []) or []:
            language = item.get("snippet", {}).get("language")
            if language and language not in languages:
                languages.append(language)
        return languages

    def get_api_stats(self) -> Dict[str, Any]:
        """Returns current API usage statistics."""
        return {
            "api_calls_count": self.api_calls_count,
            "api_quota_used_estimated": self.api_quota_used,
            "quota_reached_flag": self.quota_reached,
            "resolved_channels": len(self._uploads_playlist_cache),
        }
