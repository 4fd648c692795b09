#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Text processing helpers for Trailhead Ingest.

Pure functions: ISO-8601 duration parsing, short/long-form classification,
caption cleaning, title cleaning and the topic heuristics used to build
content extracts when no caption track can be downloaded.
"""

import functools
import re
from datetime import timedelta
from typing import Iterable, List

import emoji
import isodate

from enums import VideoType

SHORT_MAX_SECONDS = 60

_SHORTS_MARKER = re.compile(r"#shorts?\b", re.IGNORECASE)

# Caption noise
_BRACKETED = re.compile(r"\[[^\]]*\]")
_PARENTHETICAL = re.compile(r"\([^)]*\)")
_MUSIC_SEGMENT = re.compile(r"[♪♫][^♪♫]*[♪♫]")
_MUSIC_NOTE = re.compile(r"[♪♫]")
_FILLER = re.compile(r"\b(?:u+h+|u+m+|a+h+|err+|erm)\b,?", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")
_SPACE_BEFORE_PUNCT = re.compile(r"\s+([,.!?;:])")
_REPEATED_COMMA = re.compile(r",(?:\s*,)+")
_LEADING_PUNCT = re.compile(r"^[\s,;:]+")
_MISSING_SPACE_AFTER_SENTENCE = re.compile(r"(\b[A-Za-z][a-z]+[.!?])(?=[A-Z])")

# Topic heuristics for content extracts, checked against title + description
TOPIC_KEYWORDS = {
    "Hiking and trekking": ("hike", "hiking", "trek", "trail", "summit", "backpacking"),
    "Camping": ("camp", "camping", "tent", "campsite", "overnight", "bivy"),
    "Climbing and mountaineering": ("climb", "climbing", "boulder", "mountaineering", "alpine"),
    "Paddling": ("kayak", "canoe", "paddle", "rafting", "sup "),
    "Fishing": ("fishing", "fly fishing", "angler", "trout", "bass"),
    "Cycling": ("bike", "biking", "cycling", "mtb", "bikepacking"),
    "Snow sports": ("ski", "skiing", "snowboard", "snowshoe", "backcountry"),
    "Travel and destinations": ("travel", "road trip", "national park", "destination", "itinerary"),
    "Gear reviews": ("gear", "review", "unboxing", "test", "pack list"),
    "Survival and bushcraft": ("survival", "bushcraft", "shelter", "fire starting", "knife"),
}


@functools.lru_cache(maxsize=1024)
def parse_duration(iso8601: str) -> int:
    """Parse an ISO-8601 duration (e.g. 'PT1H2M3S') into whole seconds.

    Missing components count as zero. Empty or malformed input returns 0
    instead of raising, as do calendar durations (years/months) that have no
    fixed length.
    """
    if not iso8601 or not isinstance(iso8601, str):
        return 0

    try:
        parsed = isodate.parse_duration(iso8601.strip())
    except (isodate.ISO8601Error, ValueError, TypeError, AttributeError):
        return 0

    if not isinstance(parsed, timedelta):
        return 0

    seconds = int(parsed.total_seconds())
    return seconds if seconds > 0 else 0


def classify_type(duration_seconds: int, title: str, description: str) -> VideoType:
    """Classify a video as a short or a long-form video.

    A video is a short when it lasts between 1 and 60 seconds, or when its
    title or description carries a '#shorts' / '#short' marker. A zero
    duration without a marker stays a regular video.
    """
    if duration_seconds and 0 < duration_seconds <= SHORT_MAX_SECONDS:
        return VideoType.SHORT

    text = f"{title or ''} {description or ''}"
    if _SHORTS_MARKER.search(text):
        return VideoType.SHORT

    return VideoType.VIDEO


def clean_transcript(text: str) -> str:
    """Strip caption noise from raw caption text.

    Removes [bracketed] annotations, (parenthetical) asides, music-note
    segments and filler interjections, then collapses whitespace and fixes the
    spacing around punctuation.
    """
    if not text:
        return ""

    cleaned = _BRACKETED.sub(" ", text)
    cleaned = _PARENTHETICAL.sub(" ", cleaned)
    cleaned = _MUSIC_SEGMENT.sub(" ", cleaned)
    cleaned = _MUSIC_NOTE.sub(" ", cleaned)
    cleaned = _FILLER.sub(" ", cleaned)

    cleaned = _WHITESPACE.sub(" ", cleaned)
    cleaned = _SPACE_BEFORE_PUNCT.sub(r"\1", cleaned)
    cleaned = _REPEATED_COMMA.sub(",", cleaned)
    cleaned = _MISSING_SPACE_AFTER_SENTENCE.sub(r"\1 ", cleaned)
    cleaned = _LEADING_PUNCT.sub("", cleaned)

    return cleaned.strip()


def join_segments(texts: Iterable[str]) -> str:
    """Join caption segment texts into one block of raw text."""
    return " ".join(t.strip() for t in texts if t and t.strip())


@functools.lru_cache(maxsize=1024)
def clean_title(title: str) -> str:
    """Remove emoji and redundant whitespace from a video title."""
    if not title:
        return ""
    without_emoji = emoji.replace_emoji(title, replace="")
    return _WHITESPACE.sub(" ", without_emoji).strip()


def format_duration(duration_seconds: int) -> str:
    """Render a duration in seconds as '1 h 02 min 03 s' / '4 min 05 s' / '45 s'."""
    if not duration_seconds or duration_seconds <= 0:
        return "unknown"

    hours, remainder = divmod(int(duration_seconds), 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours:
        return f"{hours} h {minutes:02d} min {seconds:02d} s"
    if minutes:
        return f"{minutes} min {seconds:02d} s"
    return f"{seconds} s"


def detect_topics(title: str, description: str, limit: int = 5) -> List[str]:
    """Guess the outdoor topics a video covers from its title and description."""
    haystack = f" {title or ''} {description or ''} ".lower()
    topics = [
        topic for topic, keywords in TOPIC_KEYWORDS.items()
        if any(keyword in haystack for keyword in keywords)
    ]
    return topics[:limit]
