"""APScheduler-based timer service for periodic chat jobs."""

from __future__ import annotations

import asyncio
import uuid
from typing import Any, Callable, Coroutine, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from chat_sync.log import get_logger

logger = get_logger(__name__)


class SchedulerService:
    """Runs coroutine callbacks on fixed intervals inside the event loop.

    Jobs never overlap: a tick that fires while the previous run of the same
    job is still executing is skipped rather than queued.
    """

    def __init__(self, timezone: str = "UTC"):
        self._timezone = timezone
        self._scheduler = AsyncIOScheduler(timezone=timezone)

    @property
    def running(self) -> bool:
        return self._scheduler.running

    async def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("scheduler_started", timezone=self._timezone)

    async def stop(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            # shutdown is deferred to the event loop
            await asyncio.sleep(0)
            logger.info("scheduler_stopped")

    def add_interval_job(
        self,
        seconds: float,
        callback: Callable[..., Coroutine[Any, Any, Any]],
        job_id: Optional[str] = None,
        **kwargs: Any,
    ) -> str:
        """Add a recurring job. Returns the job ID."""
        job_id = job_id or uuid.uuid4().hex[:12]
        self._scheduler.add_job(
            callback,
            IntervalTrigger(seconds=seconds),
            id=job_id,
            kwargs=kwargs,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        logger.debug("interval_job_added", job_id=job_id, seconds=seconds)
        return job_id

    def remove_job(self, job_id: str) -> bool:
        """Remove a job. Returns True if found and removed."""
        try:
            self._scheduler.remove_job(job_id)
        except JobLookupError:
            return False
        logger.debug("job_removed", job_id=job_id)
        return True

    def list_jobs(self) -> list[dict[str, Any]]:
        return [
            {
                "id": job.id,
                "next_run_time": str(job.next_run_time) if job.next_run_time else None,
                "trigger": str(job.trigger),
            }
            for job in self._scheduler.get_jobs()
        ]
