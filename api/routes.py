#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
API Routes for the Trailhead Ingest admin service using FastAPI.

Defines endpoints to launch channel imports, transcript retries and
statistics refreshes (as background jobs or inline), to poll jobs and
persisted import status. Statistics freshness and service health have read-only
endpoints of their own.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder

from api import dependencies
from api.dependencies import get_job_manager, get_orchestrator, get_stats_refresher, get_store
from config import config
from exceptions import ResourceNotFoundError, handle_exception
from logging_config import StructuredLogger
from models import ErrorResponse, ImportRequest, JobResponse, RefreshStatsRequest, RetryTranscriptsRequest
from services.engine import BatchImportOrchestrator
from services.jobs import JobManager
from services.statistics import StatisticsRefresher
from services.storage import PersistenceSink
from version import __version__ as app_version

logger = StructuredLogger(__name__)

router = APIRouter()

# Common error responses for OpenAPI documentation
ERROR_RESPONSES: Dict[int | str, Dict[str, Any]] = {
    400: {"model": ErrorResponse, "description": "Invalid input parameters"},
    403: {"model": ErrorResponse, "description": "Forbidden (Quota Exceeded)"},
    404: {"model": ErrorResponse, "description": "Resource not found"},
    429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
    500: {"model": ErrorResponse, "description": "Internal server error"},
    503: {"model": ErrorResponse, "description": "Service unavailable (initialization failed, bad credentials)"},
}

ADMIN_PREFIX = "/admin/youtube"


def _job_accepted(job) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content=jsonable_encoder(JobResponse(**job.to_dict())),
        headers={"Location": f"{ADMIN_PREFIX}/jobs/{job.job_id}"},
    )


def _raise_http(e: Exception, context: str):
    """Log an exception and re-raise it as the matching HTTPException."""
    if isinstance(e, HTTPException):
        logger.error(f"HTTPException during {context}: Status={e.status_code}, Detail='{e.detail}'")
    elif hasattr(e, "error_code"):
        logger.error(f"{type(e).__name__} during {context}: {e}", exc_info=False)
    else:
        logger.critical(f"Unexpected error during {context}: {e}")
    raise handle_exception(e) from e


# --- Import / retry / refresh ---

@router.post(
    f"{ADMIN_PREFIX}/channels/{{channel_ref}}/import",
    responses={**ERROR_RESPONSES, 202: {"model": JobResponse, "description": "Import started as a background job"}},
    summary="Import new videos of a channel",
    description="Discovers up to `count` videos not yet stored, imports their metadata and extracts transcripts. "
                "Runs as a background job unless `wait` is true.",
)
async def import_channel(
    channel_ref: str,
    request: Optional[ImportRequest] = None,
    orchestrator: BatchImportOrchestrator = Depends(get_orchestrator),
    jobs: JobManager = Depends(get_job_manager),
):
    request = request or ImportRequest()
    logger.info(f"Received import request for channel '{channel_ref[:100]}'", count=request.count, wait=request.wait)
    if not request.wait:
        return _job_accepted(jobs.start("import", orchestrator.import_channel(channel_ref, request.count)))

    try:
        summary = await orchestrator.import_channel(channel_ref, request.count)
    except Exception as e:
        _raise_http(e, f"import of '{channel_ref[:100]}'")
    return summary.to_dict()


@router.post(
    f"{ADMIN_PREFIX}/videos/retry-transcripts",
    responses={**ERROR_RESPONSES, 202: {"model": JobResponse, "description": "Retry started as a background job"}},
    summary="Retry transcript extraction",
)
async def retry_transcripts(
    request: RetryTranscriptsRequest,
    orchestrator: BatchImportOrchestrator = Depends(get_orchestrator),
    jobs: JobManager = Depends(get_job_manager),
):
    logger.info(f"Received transcript retry for {len(request.video_ids)} video(s)", mode=request.mode.value)
    if not request.wait:
        return _job_accepted(jobs.start("retry", orchestrator.retry_transcripts(request.video_ids, request.mode)))

    try:
        summary = await orchestrator.retry_transcripts(request.video_ids, request.mode)
    except Exception as e:
        _raise_http(e, "transcript retry")
    return summary.to_dict()


@router.post(
    f"{ADMIN_PREFIX}/videos/refresh-stats",
    responses={**ERROR_RESPONSES, 202: {"model": JobResponse, "description": "Refresh started as a background job"}},
    summary="Refresh view/like/comment counts of stale videos",
)
async def refresh_stats(
    request: Optional[RefreshStatsRequest] = None,
    refresher: StatisticsRefresher = Depends(get_stats_refresher),
    jobs: JobManager = Depends(get_job_manager),
):
    request = request or RefreshStatsRequest()
    if not request.wait:
        return _job_accepted(jobs.start("refresh-stats", refresher.refresh_due(request.max_videos)))

    try:
        summary = await refresher.refresh_due(request.max_videos)
    except Exception as e:
        _raise_http(e, "statistics refresh")
    return summary.to_dict()


@router.get(
    f"{ADMIN_PREFIX}/stats-status",
    responses=ERROR_RESPONSES,
    summary="Statistics freshness of the stored videos",
    description="Stored video count, how many are due for a statistics refresh and the oldest refresh time.",
)
async def stats_status(store: PersistenceSink = Depends(get_store)):
    stale_after = (dependencies.stats_refresher.stale_after if dependencies.stats_refresher is not None
                   else config.STATS_STALE_AFTER)
    total = await store.count_videos()
    due = await store.get_videos_for_stats_update(total, stale_after)
    oldest = await store.oldest_stats_update()
    return {
        "total_videos": total,
        "needing_refresh": len(due),
        "never_refreshed": sum(1 for record in due if record.stats_updated_at is None),
        "oldest_refresh_at": oldest.isoformat() if oldest else None,
        "stale_after_hours": stale_after.total_seconds() / 3600,
    }


# --- Polling ---

@router.get(f"{ADMIN_PREFIX}/jobs", response_model=List[JobResponse], summary="List recent jobs")
async def list_jobs(jobs: JobManager = Depends(get_job_manager)):
    return [JobResponse(**job.to_dict()) for job in jobs.list()]


@router.get(f"{ADMIN_PREFIX}/jobs/{{job_id}}", response_model=JobResponse, responses=ERROR_RESPONSES,
            summary="Get a job's status and result")
async def get_job(job_id: str, jobs: JobManager = Depends(get_job_manager)):
    job = jobs.get(job_id)
    if job is None:
        raise ResourceNotFoundError(f"Job {job_id} not found").to_http_exception()
    return JobResponse(**job.to_dict())


@router.get(f"{ADMIN_PREFIX}/channels/{{channel_id}}/videos", summary="Stored videos of a channel",
            description="Import status and transcript classification of every stored video of a channel ID.")
async def list_channel_videos(channel_id: str, store: PersistenceSink = Depends(get_store)):
    records = await store.list_channel_videos(channel_id)
    videos = []
    for record in records:
        data = record.to_dict()
        transcript = data.pop("transcript")
        data.pop("description", None)
        data["transcript_classification"] = transcript["classification"] if transcript else None
        data["transcript_method"] = transcript["method"] if transcript else None
        videos.append(data)
    return {"channel_id": channel_id, "count": len(videos), "videos": videos}


@router.get(f"{ADMIN_PREFIX}/videos/{{video_id}}", responses=ERROR_RESPONSES, summary="Stored video with transcript")
async def get_video(video_id: str, store: PersistenceSink = Depends(get_store)):
    record = await store.get_video(video_id)
    if record is None:
        raise ResourceNotFoundError(f"Video {video_id} is not stored").to_http_exception()
    return record.to_dict()


# --- Health ---

@router.get(
    "/health",
    summary="Health Check",
    description="Operational status of the service and its components, with basic statistics.",
)
async def health_check():
    """Endpoint to check system health and retrieve operational statistics."""
    components = {
        "store": dependencies.store is not None,
        "provider": dependencies.provider is not None,
        "orchestrator": dependencies.orchestrator is not None,
        "stats_refresher": dependencies.stats_refresher is not None,
        "job_manager": dependencies.job_manager is not None,
    }
    healthy = all(components.values())

    health_data: Dict[str, Any] = {
        "status": "healthy" if healthy else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service_version": app_version,
        "components": {name: "ready" if ok else "unavailable" for name, ok in components.items()},
    }

    if dependencies.orchestrator is not None:
        health_data["statistics"] = dependencies.orchestrator.get_global_stats()
    provider = dependencies.provider
    if provider is not None and hasattr(provider, "get_api_stats"):
        health_data["youtube_api"] = provider.get_api_stats()
    if dependencies.job_manager is not None:
        running = sum(1 for j in dependencies.job_manager.list() if j.status.value == "running")
        health_data["running_jobs"] = running

    return Response(
        content=json.dumps(health_data, default=str),
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        media_type="application/json",
    )
