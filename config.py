#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Configuration for Trailhead Ingest.

Defaults live in _CONFIG_DEFAULTS; every key can be overridden by an
environment variable of the same name (the API key by YOUTUBE_API_KEY). The
type of the default decides how the variable is parsed: int, float, plain
string, or a comma-separated list for tuples and lists.

The pacing and circuit-breaker numbers were tuned against YouTube's
undocumented caption throttling; treat them as starting points.
"""

import logging
import os
from datetime import timedelta
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

_CONFIG_DEFAULTS: Dict[str, Any] = {
    # Credentials
    "API_KEY": "",
    "API_KEY_ENV_VAR": "YOUTUBE_API_KEY",

    # YouTube Data API
    "BATCH_SIZE": 50,  # Hard limit of videos.list / playlistItems.list
    "API_RETRY_ATTEMPTS": 3,
    "API_RETRY_BASE_DELAY_MS": 1000,
    "API_TIMEOUT_SECONDS": 20.0,
    "QUOTA_RESET_SECONDS": 3600.0,  # Matches the Retry-After of QuotaExceededError

    # Transcript extraction
    "TRANSCRIPT_LANGUAGE_VARIANTS": (
        "en-US", "en-GB", "en-CA", "en-AU", "en",
        "es", "fr", "de", "it", "pt", "nl", "ja", "ko", "zh-Hans", "ru", "hi", "ar",
    ),
    "AUTO_CAPTION_LANGUAGES": ("en", "en-US", "en-GB"),
    "MIN_TRANSCRIPT_CHARS": 50,
    "STRATEGY_RETRY_ATTEMPTS": 1,
    "STRATEGY_RETRY_BASE_DELAY_MS": 2000,
    "CAPTION_TIMEOUT_SECONDS": 30.0,
    "EXTRACTION_TIMEOUT_SECONDS": 120.0,  # All strategies of one video

    # Pacing between extraction attempts
    "PACING_BASE_DELAY_SECONDS": 25.0,
    "PACING_BATCH_STEP_SECONDS": 5.0,  # per batch already processed
    "PACING_POSITION_STEP_SECONDS": 8.0,  # per position inside the batch
    "PACING_FAILURE_PENALTY_SECONDS": 10.0,  # per consecutive rate-limit failure
    "PACING_MAX_DELAY_SECONDS": 180.0,
    "PACING_BATCH_SIZE": 3,
    "PACING_INTER_BATCH_DELAY_SECONDS": 45.0,
    "PACING_INTER_BATCH_JITTER_SECONDS": 15.0,

    # Circuit breaker
    "CIRCUIT_BREAKER_THRESHOLD": 5,
    "CIRCUIT_BREAKER_COOLDOWN_SECONDS": 60.0,

    # Imports
    "MAX_IMPORT_COUNT": 50,
    "DEFAULT_IMPORT_COUNT": 10,
    "MAX_DISCOVERY_PAGES": 10,

    # Statistics refresh
    "STATS_STALE_AFTER_HOURS": 24,
    "STATS_CHUNK_DELAY_SECONDS": 2.0,
    "STATS_MAX_VIDEOS": 1000,

    # Storage
    "STORE_PATH": "trailhead_videos.json",

    # Admin web server
    "ALLOWED_ORIGINS": [
        "http://localhost:5000",
        "http://127.0.0.1:5000",
    ],
}

# Keys never read from a variable of their own name
_NOT_FROM_ENV = ("API_KEY", "API_KEY_ENV_VAR")


def _parse(raw: str, default: Any) -> Optional[Any]:
    """Parse an environment string like `default`; None when it does not parse."""
    try:
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float):
            return float(raw)
    except ValueError:
        return None
    if isinstance(default, (tuple, list)):
        items = [item.strip() for item in raw.split(",") if item.strip()]
        if not items:
            return None
        return tuple(items) if isinstance(default, tuple) else items
    return raw


class Config:
    """Attribute-style configuration, one attribute per _CONFIG_DEFAULTS key."""

    def __init__(self, load_from_env=True):
        for key, value in _CONFIG_DEFAULTS.items():
            setattr(self, key, list(value) if isinstance(value, list) else value)
        self._derive()

        if load_from_env:
            self.load_from_env()

    def _derive(self):
        self.STATS_STALE_AFTER = timedelta(hours=self.STATS_STALE_AFTER_HOURS)

    def load_from_env(self):
        """Re-read every overridable key from the environment (after a .env load)."""
        self.API_KEY = os.environ.get(self.API_KEY_ENV_VAR, self.API_KEY)

        for key, default in _CONFIG_DEFAULTS.items():
            if key in _NOT_FROM_ENV:
                continue
            raw = os.environ.get(key)
            if raw is None:
                continue
            value = _parse(raw, default)
            if value is None:
                logger.warning(f"Ignoring invalid value for {key}: {raw!r}")
                continue
            setattr(self, key, value)
            if key == "ALLOWED_ORIGINS":
                logger.info(f"CORS origins set from environment: {value}")

        self._derive()

        if not self.API_KEY:
            logger.warning(f"YouTube API key not set ({self.API_KEY_ENV_VAR}); imports are disabled.")


config = Config(load_from_env=True)
