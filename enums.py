#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Enumerations shared by the models, the text helpers and the services.
"""

from enum import Enum


class VideoType(str, Enum):
    VIDEO = "video"
    SHORT = "short"


class TranscriptClassification(str, Enum):
    """How a stored transcript was obtained.

    REAL is reserved for text downloaded from an actual caption track.
    """

    REAL = "real"
    CONTENT_EXTRACT = "content_extract"
    FAILED = "failed"


class ExtractionMethod(str, Enum):
    DIRECT = "direct"
    LANGUAGE_VARIANT = "language-variant"
    AUTO_CAPTIONS = "auto-captions"
    CAPTIONS_LIST = "captions-list"
    CONTENT_EXTRACT = "content-extract"
    NONE = "none"

    @property
    def is_caption_method(self) -> bool:
        """True for the strategies that download an actual caption track."""
        return self in (
            ExtractionMethod.DIRECT,
            ExtractionMethod.LANGUAGE_VARIANT,
            ExtractionMethod.AUTO_CAPTIONS,
        )


class ImportStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    COMPLETED_CONTENT_ONLY = "completed_content_only"
    COMPLETED_WITH_ERRORS = "completed_with_errors"


class RetryMode(str, Enum):
    FAILED_ONLY = "failed_only"
    ALL = "all"


class JobStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
