#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
FastAPI dependency injection functions for Trailhead Ingest services.

These functions hand the service instances created during the application
lifespan to the route handlers, and fail with 503 when a service could not be
initialized (typically a missing API key).
"""

from typing import Optional

from fastapi import HTTPException, status

from logging_config import StructuredLogger
from services.engine import BatchImportOrchestrator
from services.jobs import JobManager
from services.statistics import StatisticsRefresher
from services.storage import PersistenceSink
from services.youtube_api import VideoMetadataProvider

logger = StructuredLogger(__name__)

# --- Global Service Instances ---
# Populated during the application lifespan startup.
store: Optional[PersistenceSink] = None
provider: Optional[VideoMetadataProvider] = None
orchestrator: Optional[BatchImportOrchestrator] = None
stats_refresher: Optional[StatisticsRefresher] = None
job_manager: Optional[JobManager] = None


def _unavailable(name: str, code: str) -> HTTPException:
    logger.critical(f"Dependency Error: {name} not initialized.", exc_info=False)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"Service Initialization Error: {name} is not available.",
        headers={"X-Error-Code": code}
    )


def get_store() -> PersistenceSink:
    if store is None:
        raise _unavailable("Video store", "SERVICE_UNAVAILABLE_STORE")
    return store


def get_orchestrator() -> BatchImportOrchestrator:
    """Dependency function to get the import orchestrator.

    Raises:
        HTTPException: 503 if the orchestrator is not initialized.
        HTTPException: 403 if the provider already hit its API quota.
    """
    if orchestrator is None:
        raise _unavailable("Import orchestrator", "SERVICE_UNAVAILABLE_ORCHESTRATOR")
    if getattr(orchestrator.provider, "quota_reached", False):
        logger.warning("Dependency Check: YouTube API quota likely exceeded. Blocking request.")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="YouTube API quota likely exceeded. Please try again later.",
            headers={"Retry-After": "3600", "X-Error-Code": "QUOTA_EXCEEDED"}
        )
    return orchestrator


def get_stats_refresher() -> StatisticsRefresher:
    if stats_refresher is None:
        raise _unavailable("Statistics refresher", "SERVICE_UNAVAILABLE_STATS")
    return stats_refresher


def get_job_manager() -> JobManager:
    if job_manager is None:
        raise _unavailable("Job manager", "SERVICE_UNAVAILABLE_JOBS")
    return job_manager
