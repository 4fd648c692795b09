#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Wiring of the import services from a Config instance.

Shared by the admin API startup and the command line runner so both read the
configuration after the .env file and the environment have been applied.
"""

from dataclasses import dataclass
from typing import Optional

from config import Config
from services.captions import TranscriptApiCaptionSource
from services.engine import BatchImportOrchestrator
from services.pacing import PacingPolicy
from services.statistics import StatisticsRefresher
from services.storage import PersistenceSink
from services.transcript import TranscriptExtractor
from services.youtube_api import VideoMetadataProvider, YouTubeAPIClient


@dataclass
class Pipeline:
    provider: VideoMetadataProvider
    extractor: TranscriptExtractor
    orchestrator: BatchImportOrchestrator
    stats_refresher: StatisticsRefresher


def build_provider(cfg: Config) -> YouTubeAPIClient:
    """YouTube Data API client; raises APIConfigurationError without a usable key."""
    return YouTubeAPIClient(
        cfg.API_KEY,
        max_retries=cfg.API_RETRY_ATTEMPTS,
        base_delay_ms=cfg.API_RETRY_BASE_DELAY_MS,
        timeout_seconds=cfg.API_TIMEOUT_SECONDS,
        quota_reset_seconds=cfg.QUOTA_RESET_SECONDS,
    )


def build_pipeline(cfg: Config, store: PersistenceSink,
                   provider: Optional[VideoMetadataProvider] = None,
                   policy: Optional[PacingPolicy] = None) -> Pipeline:
    """Create extractor, orchestrator and statistics refresher over one provider and store.

    Args:
        cfg: Configuration, already reloaded from the environment.
        store: Persistence sink shared by all services.
        provider: Metadata provider; a YouTubeAPIClient built from cfg when None.
        policy: Pacing policy; PacingPolicy.from_config(cfg) when None.

    Raises:
        APIConfigurationError: No provider given and the API client cannot be built.
    """
    if provider is None:
        provider = build_provider(cfg)

    extractor = TranscriptExtractor(
        TranscriptApiCaptionSource(
            timeout_seconds=cfg.CAPTION_TIMEOUT_SECONDS,
            auto_caption_languages=cfg.AUTO_CAPTION_LANGUAGES,
        ),
        metadata_provider=provider,
        language_variants=cfg.TRANSCRIPT_LANGUAGE_VARIANTS,
        min_chars=cfg.MIN_TRANSCRIPT_CHARS,
        retry_attempts=cfg.STRATEGY_RETRY_ATTEMPTS,
        retry_base_delay_ms=cfg.STRATEGY_RETRY_BASE_DELAY_MS,
        timeout_seconds=cfg.EXTRACTION_TIMEOUT_SECONDS,
    )
    orchestrator = BatchImportOrchestrator(
        provider, extractor, store,
        policy=policy or PacingPolicy.from_config(cfg),
        max_import_count=cfg.MAX_IMPORT_COUNT,
        max_discovery_pages=cfg.MAX_DISCOVERY_PAGES,
    )
    stats_refresher = StatisticsRefresher(
        provider, store,
        stale_after=cfg.STATS_STALE_AFTER,
        chunk_size=cfg.BATCH_SIZE,
        chunk_delay_seconds=cfg.STATS_CHUNK_DELAY_SECONDS,
    )
    return Pipeline(provider, extractor, orchestrator, stats_refresher)
