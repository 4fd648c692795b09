"""
In-process fakes shared by the test modules: clock, sleep, metadata provider
and caption source.
"""
import os
import sys
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from exceptions import NoCaptionsError, ResourceNotFoundError
from models import CaptionSegment, ChannelVideoPage, VideoDetails, VideoStatistics, VideoType
from services.captions import CaptionSource
from services.youtube_api import VideoMetadataProvider

LONG_TEXT = ("Today we hike the ridge trail to the summit and camp by the lake. "
             "The climb is steep but the views are worth every step.")


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class RecordingSleep:
    """Async sleep that records delays and advances an optional FakeClock."""

    def __init__(self, clock: Optional[FakeClock] = None):
        self.calls: List[float] = []
        self.clock = clock

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.clock is not None:
            self.clock.now += seconds

    @property
    def total(self) -> float:
        return sum(self.calls)


def make_details(video_id: str, channel_id: str = "UCtrailheadchannel000001", title: str = None,
                 description: str = "Backpacking loop with a summit push.", duration: int = 600,
                 day: int = 1) -> VideoDetails:
    return VideoDetails(
        video_id=video_id,
        title=title or f"Trail video {video_id}",
        description=description,
        thumbnail_url=f"https://i.ytimg.com/vi/{video_id}/hqdefault.jpg",
        published_at=datetime(2024, 5, day, tzinfo=timezone.utc),
        channel_id=channel_id,
        channel_title="Trailhead Test Channel",
        duration_seconds=duration,
        video_type=VideoType.VIDEO,
        statistics=VideoStatistics(view_count=100, like_count=10, comment_count=1),
    )


class FakeProvider(VideoMetadataProvider):
    """Provider serving a paged channel listing and a details table."""

    def __init__(self, pages: Optional[List[List[str]]] = None, details: Optional[Dict[str, VideoDetails]] = None,
                 caption_tracks: Optional[Dict[str, List[str]]] = None):
        self.pages = pages or []
        self.details = details or {}
        self.caption_tracks = caption_tracks or {}
        self.statistics: Dict[str, VideoStatistics] = {}
        self.listing_calls: List[Optional[str]] = []
        self.details_batch_calls: List[List[str]] = []
        self.stats_batch_calls: List[List[str]] = []
        self.stats_errors: Dict[int, Exception] = {}
        self.listing_error: Optional[Exception] = None
        self.details_error: Optional[Exception] = None
        self.tracks_error: Optional[Exception] = None
        self.quota_reached = False

    async def list_channel_videos(self, channel_ref: str, page_token: Optional[str] = None) -> ChannelVideoPage:
        self.listing_calls.append(page_token)
        if self.listing_error is not None:
            raise self.listing_error
        index = int(page_token) if page_token else 0
        if index >= len(self.pages):
            return ChannelVideoPage([], None)
        next_token = str(index + 1) if index + 1 < len(self.pages) else None
        return ChannelVideoPage(list(self.pages[index]), next_token)

    async def get_video_details(self, video_id: str) -> VideoDetails:
        if self.details_error is not None:
            raise self.details_error
        if video_id not in self.details:
            raise ResourceNotFoundError(f"Video {video_id} not found")
        return self.details[video_id]

    async def get_video_details_batch(self, video_ids: Sequence[str]) -> List[VideoDetails]:
        self.details_batch_calls.append(list(video_ids))
        if self.details_error is not None:
            raise self.details_error
        return [self.details[vid] for vid in video_ids if vid in self.details]

    async def get_video_statistics_batch(self, video_ids: Sequence[str]) -> Dict[str, VideoStatistics]:
        call_number = len(self.stats_batch_calls)
        self.stats_batch_calls.append(list(video_ids))
        if call_number in self.stats_errors:
            raise self.stats_errors[call_number]
        return {vid: self.statistics[vid] for vid in video_ids if vid in self.statistics}

    async def list_caption_tracks(self, video_id: str) -> List[str]:
        if self.tracks_error is not None:
            raise self.tracks_error
        return list(self.caption_tracks.get(video_id, []))


class FakeCaptionSource(CaptionSource):
    """Caption source answering from a table keyed by (video_id, language_hint, auto_generated).

    A value is either caption text, an exception instance to raise, or a list of
    those consumed one per call. Missing keys raise NoCaptionsError.
    """

    def __init__(self, responses=None, default=None):
        self.responses = dict(responses or {})
        self.default = default
        self.calls: List[tuple] = []

    async def fetch_captions(self, video_id: str, language_hint: Optional[str] = None,
                             auto_generated: bool = False) -> List[CaptionSegment]:
        key = (video_id, language_hint, auto_generated)
        self.calls.append(key)
        response = self.responses.get(key, self.default)
        if isinstance(response, list):
            response = response.pop(0) if len(response) > 1 else response[0]
        if response is None:
            raise NoCaptionsError(f"No captions for {video_id}")
        if isinstance(response, Exception):
            raise response
        return [CaptionSegment(text=part, offset_ms=i * 1000, duration_ms=1000)
                for i, part in enumerate(response.split(". "))]
