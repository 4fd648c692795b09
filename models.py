#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Pydantic models and Dataclasses for Trailhead Ingest API requests, responses,
and internal data structures.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import isodate
from pydantic import BaseModel, Field, field_validator

from config import config
from enums import (
    ExtractionMethod,
    ImportStatus,
    JobStatus,
    RetryMode,
    TranscriptClassification,
    VideoType,
)
from logging_config import StructuredLogger
from text_processing import classify_type, clean_title, parse_duration

logger = StructuredLogger(__name__)

__all__ = [
    "CaptionSegment", "ChannelVideoPage", "ErrorResponse", "ExtractionMethod",
    "ImportRequest", "ImportStatus", "ImportSummary", "JobResponse", "JobStatus",
    "RefreshStatsRequest", "RetryMode", "RetrySummary", "RetryTranscriptsRequest",
    "RetryVideoResult", "StatsRefreshSummary", "TranscriptClassification",
    "TranscriptRecord", "TranscriptResult", "VideoDetails", "VideoRecord",
    "VideoStatistics", "VideoType", "parse_timestamp", "utc_now",
]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp (as returned by the Data API) into an aware datetime.

    Args:
        value: ISO 8601 string, datetime or None

    Returns:
        datetime: Timezone-aware datetime (UTC assumed when missing), or None
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = isodate.parse_datetime(str(value))
        except (isodate.ISO8601Error, ValueError) as e:
            logger.warning(f"Could not parse timestamp '{value}': {e}")
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# --- Provider data ---

@dataclass
class CaptionSegment:
    """One timed caption line."""

    text: str
    offset_ms: int = 0
    duration_ms: int = 0


@dataclass
class VideoStatistics:
    view_count: int = 0
    like_count: int = 0
    comment_count: int = 0

    @classmethod
    def from_api_response(cls, statistics: dict) -> "VideoStatistics":
        """Build from the 'statistics' part of a Data API video resource.

        Counts hidden by the uploader are missing from the payload and read as 0.
        """
        statistics = statistics or {}
        return cls(
            view_count=int(statistics.get("viewCount", 0) or 0),
            like_count=int(statistics.get("likeCount", 0) or 0),
            comment_count=int(statistics.get("commentCount", 0) or 0),
        )


@dataclass
class ChannelVideoPage:
    """One page of a channel's upload listing."""

    video_ids: List[str] = field(default_factory=list)
    next_page_token: Optional[str] = None


@dataclass
class VideoDetails:
    """Data class for video metadata returned by a metadata provider."""

    video_id: str
    title: str = ""
    description: str = ""
    thumbnail_url: str = ""
    published_at: Optional[datetime] = None
    channel_id: str = ""
    channel_title: str = ""
    duration_seconds: int = 0
    video_type: VideoType = VideoType.VIDEO
    statistics: VideoStatistics = field(default_factory=VideoStatistics)
    tags: List[str] = field(default_factory=list)

    @classmethod
    def from_api_response(cls, item: dict) -> "VideoDetails":
        """Create a VideoDetails instance from a YouTube API video resource item.

        Args:
            item: YouTube API response item for a video (snippet, contentDetails,
                  statistics parts)

        Returns:
            VideoDetails: New instance populated with API data
        """
        snippet = item.get("snippet", {}) or {}
        content_details = item.get("contentDetails", {}) or {}
        thumbnails = snippet.get("thumbnails", {}) or {}

        thumbnail_url = ""
        for size in ("high", "default", "medium"):
            if thumbnails.get(size, {}).get("url"):
                thumbnail_url = thumbnails[size]["url"]
                break

        title = snippet.get("title", "") or ""
        description = snippet.get("description", "") or ""
        duration_seconds = parse_duration(content_details.get("duration", ""))

        return cls(
            video_id=item.get("id", ""),
            title=title,
            description=description,
            thumbnail_url=thumbnail_url,
            published_at=parse_timestamp(snippet.get("publishedAt")),
            channel_id=snippet.get("channelId", "") or "",
            channel_title=snippet.get("channelTitle", "") or "",
            duration_seconds=duration_seconds,
            video_type=classify_type(duration_seconds, title, description),
            statistics=VideoStatistics.from_api_response(item.get("statistics", {})),
            tags=snippet.get("tags", []) or [],
        )

    @property
    def url(self) -> str:
        return f"https://youtu.be/{self.video_id}" if self.video_id else "#"


# --- Transcript data ---

@dataclass(frozen=True)
class TranscriptResult:
    """Outcome of a transcript extraction for one video.

    The classification is fixed when the result is created; use the factory
    classmethods rather than the constructor so a REAL result can only come
    from a caption strategy.
    """

    classification: TranscriptClassification
    text: str = ""
    method: ExtractionMethod = ExtractionMethod.NONE
    error: Optional[str] = None
    rate_limited: bool = False
    diagnostics: Dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def real(cls, text: str, method: ExtractionMethod, **diagnostics: Any) -> "TranscriptResult":
        """Result for text downloaded from an actual caption track.

        Raises:
            ValueError: If the method is not a caption download strategy
        """
        if not method.is_caption_method:
            raise ValueError(f"Method '{method.value}' cannot produce a real transcript")
        return cls(TranscriptClassification.REAL, text, method, diagnostics=diagnostics)

    @classmethod
    def content_extract(cls, text: str, method: ExtractionMethod, error: Optional[str] = None,
                        **diagnostics: Any) -> "TranscriptResult":
        """Result for a synthesized summary built from metadata or track listings."""
        if method.is_caption_method:
            raise ValueError(f"Method '{method.value}' cannot produce a content extract")
        return cls(TranscriptClassification.CONTENT_EXTRACT, text, method, error=error,
                   diagnostics=diagnostics)

    @classmethod
    def failed(cls, error: str, rate_limited: bool = False, **diagnostics: Any) -> "TranscriptResult":
        return cls(TranscriptClassification.FAILED, "", ExtractionMethod.NONE, error=error,
                   rate_limited=rate_limited, diagnostics=diagnostics)

    @property
    def is_real(self) -> bool:
        return self.classification == TranscriptClassification.REAL

    @property
    def is_content_extract(self) -> bool:
        return self.classification == TranscriptClassification.CONTENT_EXTRACT

    @property
    def is_failed(self) -> bool:
        return self.classification == TranscriptClassification.FAILED

    @property
    def import_status(self) -> ImportStatus:
        """Terminal import status a video gets for this outcome."""
        if self.is_real:
            return ImportStatus.COMPLETED
        if self.is_content_extract:
            return ImportStatus.COMPLETED_CONTENT_ONLY
        return ImportStatus.COMPLETED_WITH_ERRORS


@dataclass
class TranscriptRecord:
    """Stored transcript for one video."""

    text: str = ""
    classification: TranscriptClassification = TranscriptClassification.FAILED
    method: ExtractionMethod = ExtractionMethod.NONE
    error: Optional[str] = None
    attempted_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "classification": self.classification.value,
            "method": self.method.value,
            "error": self.error,
            "attempted_at": _format_timestamp(self.attempted_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TranscriptRecord":
        return cls(
            text=data.get("text", "") or "",
            classification=TranscriptClassification(data.get("classification", "failed")),
            method=ExtractionMethod(data.get("method", "none")),
            error=data.get("error"),
            attempted_at=parse_timestamp(data.get("attempted_at")),
        )


@dataclass
class VideoRecord:
    """Persisted video: provider metadata plus import bookkeeping."""

    video_id: str
    title: str = ""
    description: str = ""
    thumbnail_url: str = ""
    published_at: Optional[datetime] = None
    channel_id: str = ""
    channel_title: str = ""
    duration_seconds: int = 0
    video_type: VideoType = VideoType.VIDEO
    view_count: int = 0
    like_count: int = 0
    comment_count: int = 0
    stats_updated_at: Optional[datetime] = None
    import_status: ImportStatus = ImportStatus.PENDING
    error_message: Optional[str] = None
    transcript: Optional[TranscriptRecord] = None
    internal_id: Optional[int] = None

    @classmethod
    def from_details(cls, details: VideoDetails,
                     status: ImportStatus = ImportStatus.PROCESSING) -> "VideoRecord":
        """Create a new record from provider metadata; stats count as refreshed now."""
        return cls(
            video_id=details.video_id,
            title=clean_title(details.title) or details.title,
            description=details.description,
            thumbnail_url=details.thumbnail_url,
            published_at=details.published_at,
            channel_id=details.channel_id,
            channel_title=details.channel_title,
            duration_seconds=details.duration_seconds,
            video_type=details.video_type,
            view_count=details.statistics.view_count,
            like_count=details.statistics.like_count,
            comment_count=details.statistics.comment_count,
            stats_updated_at=utc_now(),
            import_status=status,
        )

    def to_details(self) -> VideoDetails:
        """Rebuild provider-style metadata from the stored record."""
        return VideoDetails(
            video_id=self.video_id,
            title=self.title,
            description=self.description,
            thumbnail_url=self.thumbnail_url,
            published_at=self.published_at,
            channel_id=self.channel_id,
            channel_title=self.channel_title,
            duration_seconds=self.duration_seconds,
            video_type=self.video_type,
            statistics=VideoStatistics(self.view_count, self.like_count, self.comment_count),
        )

    @property
    def transcript_classification(self) -> Optional[TranscriptClassification]:
        return self.transcript.classification if self.transcript else None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible primitives."""
        return {
            "video_id": self.video_id,
            "internal_id": self.internal_id,
            "title": self.title,
            "description": self.description,
            "thumbnail_url": self.thumbnail_url,
            "published_at": _format_timestamp(self.published_at),
            "channel_id": self.channel_id,
            "channel_title": self.channel_title,
            "duration_seconds": self.duration_seconds,
            "video_type": self.video_type.value,
            "view_count": self.view_count,
            "like_count": self.like_count,
            "comment_count": self.comment_count,
            "stats_updated_at": _format_timestamp(self.stats_updated_at),
            "import_status": self.import_status.value,
            "error_message": self.error_message,
            "transcript": self.transcript.to_dict() if self.transcript else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VideoRecord":
        transcript = data.get("transcript")
        return cls(
            video_id=data["video_id"],
            internal_id=data.get("internal_id"),
            title=data.get("title", "") or "",
            description=data.get("description", "") or "",
            thumbnail_url=data.get("thumbnail_url", "") or "",
            published_at=parse_timestamp(data.get("published_at")),
            channel_id=data.get("channel_id", "") or "",
            channel_title=data.get("channel_title", "") or "",
            duration_seconds=int(data.get("duration_seconds", 0) or 0),
            video_type=VideoType(data.get("video_type", "video")),
            view_count=int(data.get("view_count", 0) or 0),
            like_count=int(data.get("like_count", 0) or 0),
            comment_count=int(data.get("comment_count", 0) or 0),
            stats_updated_at=parse_timestamp(data.get("stats_updated_at")),
            import_status=ImportStatus(data.get("import_status", "pending")),
            error_message=data.get("error_message"),
            transcript=TranscriptRecord.from_dict(transcript) if transcript else None,
        )


# --- Run summaries ---

@dataclass
class ImportSummary:
    """Externally visible outcome of one channel import run."""

    channel_ref: str
    requested: int
    available: int = 0
    imported: int = 0
    transcript_successes: int = 0
    content_extracts: int = 0
    transcript_errors: int = 0
    skipped_duplicates: int = 0
    metadata_failures: int = 0
    circuit_breaker_tripped: bool = False
    errors: List[str] = field(default_factory=list)

    @property
    def shortfall(self) -> int:
        """How many requested videos were not imported."""
        return max(self.requested - self.imported, 0)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["shortfall"] = self.shortfall
        return data


@dataclass
class RetryVideoResult:
    video_id: str
    title: str = ""
    classification: Optional[TranscriptClassification] = None
    method: Optional[ExtractionMethod] = None
    status: str = ""
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "video_id": self.video_id,
            "title": self.title,
            "classification": self.classification.value if self.classification else None,
            "method": self.method.value if self.method else None,
            "status": self.status,
            "error": self.error,
        }


@dataclass
class RetrySummary:
    """Outcome of a transcript retry run."""

    mode: RetryMode
    requested: int
    attempted: int = 0
    transcript_successes: int = 0
    content_extracts: int = 0
    transcript_errors: int = 0
    skipped_count: int = 0
    circuit_breaker_tripped: bool = False
    errors: List[str] = field(default_factory=list)
    results: List[RetryVideoResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "requested": self.requested,
            "attempted": self.attempted,
            "transcript_successes": self.transcript_successes,
            "content_extracts": self.content_extracts,
            "transcript_errors": self.transcript_errors,
            "skipped_count": self.skipped_count,
            "circuit_breaker_tripped": self.circuit_breaker_tripped,
            "errors": list(self.errors),
            "results": [r.to_dict() for r in self.results],
        }


@dataclass
class StatsRefreshSummary:
    selected: int = 0
    updated_count: int = 0
    failed_chunks: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# --- API request / response models ---

class ImportRequest(BaseModel):
    """Body of the channel import endpoint."""

    count: int = Field(
        config.DEFAULT_IMPORT_COUNT,
        description=f"Number of new videos to import (clamped to 1..{config.MAX_IMPORT_COUNT})."
    )
    wait: bool = Field(
        False,
        description="Run the import inside the request and return its summary instead of a job."
    )


class RetryTranscriptsRequest(BaseModel):
    """Body of the transcript retry endpoint."""

    video_ids: List[str] = Field(..., description="Provider video IDs to retry.")
    mode: RetryMode = Field(RetryMode.FAILED_ONLY, description="'failed_only' skips videos with a real transcript.")
    wait: bool = False

    @field_validator("video_ids")
    @classmethod
    def video_ids_must_not_be_empty(cls, v: List[str]) -> List[str]:
        """Strip and de-duplicate IDs while keeping their order.

        Raises:
            ValueError: If no usable ID remains
        """
        cleaned = []
        for video_id in v:
            video_id = (video_id or "").strip()
            if video_id and video_id not in cleaned:
                cleaned.append(video_id)
        if not cleaned:
            raise ValueError("At least one video ID is required")
        return cleaned


class RefreshStatsRequest(BaseModel):
    max_videos: int = Field(config.STATS_MAX_VIDEOS, ge=1, description="Upper bound on videos refreshed.")
    wait: bool = False


class JobResponse(BaseModel):
    """Data model for background job status."""

    job_id: str
    kind: str
    status: JobStatus
    created_at: datetime
    finished_at: Optional[datetime] = None
    result: Optional[Dict[str, Any]] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None


class ErrorResponse(BaseModel):
    """Data model for API error responses."""

    error: str = Field(..., description="Error message")
    error_code: Optional[str] = Field(None, description="Machine-readable error code")
    detail: Optional[str] = Field(None, description="Detailed error information")
