#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Background jobs for the admin API.

Imports can run for many minutes; the admin endpoints start them as asyncio
tasks and return a job record the caller polls.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Dict, List, Optional

from exceptions import AppBaseError
from logging_config import StructuredLogger
from models import JobStatus, utc_now

logger = StructuredLogger(__name__)


@dataclass
class JobRecord:
    job_id: str
    kind: str
    status: JobStatus = JobStatus.RUNNING
    created_at: datetime = field(default_factory=utc_now)
    finished_at: Optional[datetime] = None
    result: Optional[Dict[str, Any]] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "kind": self.kind,
            "status": self.status,
            "created_at": self.created_at,
            "finished_at": self.finished_at,
            "result": self.result,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


class JobManager:
    """Runs coroutines as tracked asyncio tasks.

    The coroutine's return value must expose to_dict(); it becomes the job
    result. Finished jobs beyond max_finished are forgotten, oldest first.
    """

    def __init__(self, max_finished: int = 200):
        self.max_finished = max_finished
        self._jobs: Dict[str, JobRecord] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    def start(self, kind: str, coro: Awaitable[Any]) -> JobRecord:
        job = JobRecord(job_id=uuid.uuid4().hex, kind=kind)
        self._jobs[job.job_id] = job
        self._tasks[job.job_id] = asyncio.create_task(self._run(job, coro), name=f"{kind}:{job.job_id}")
        logger.info(f"Started {kind} job {job.job_id}", job_id=job.job_id, kind=kind)
        return job

    async def _run(self, job: JobRecord, coro: Awaitable[Any]) -> None:
        try:
            outcome = await coro
            job.result = outcome.to_dict() if hasattr(outcome, "to_dict") else outcome
            job.status = JobStatus.COMPLETED
        except asyncio.CancelledError:
            job.status = JobStatus.FAILED
            job.error_code = "CANCELLED"
            job.error_message = "Job cancelled at shutdown"
            raise
        except AppBaseError as e:
            job.status = JobStatus.FAILED
            error = e.to_dict()
            job.error_code = error["error_code"]
            job.error_message = error["error_message"]
            logger.error(f"{job.kind} job {job.job_id} failed: {e.message}", job_id=job.job_id,
                         error_code=e.error_code)
        except Exception as e:
            job.status = JobStatus.FAILED
            job.error_code = "INTERNAL_ERROR"
            job.error_message = f"{type(e).__name__}: {e}"
            logger.error(f"{job.kind} job {job.job_id} crashed: {e}", job_id=job.job_id)
        finally:
            job.finished_at = utc_now()
            self._tasks.pop(job.job_id, None)
            self._prune()

    def _prune(self) -> None:
        finished = [j for j in self._jobs.values() if j.status != JobStatus.RUNNING]
        excess = len(finished) - self.max_finished
        if excess > 0:
            for job in sorted(finished, key=lambda j: j.finished_at or j.created_at)[:excess]:
                self._jobs.pop(job.job_id, None)

    def get(self, job_id: str) -> Optional[JobRecord]:
        return self._jobs.get(job_id)

    def list(self) -> List[JobRecord]:
        return sorted(self._jobs.values(), key=lambda j: j.created_at, reverse=True)

    async def wait(self, job_id: str) -> Optional[JobRecord]:
        """Wait for a job's task to finish (used by tests and the CLI)."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        return self._jobs.get(job_id)

    async def shutdown(self) -> None:
        """Cancel running jobs."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Cancelled {len(tasks)} running job(s) at shutdown")
