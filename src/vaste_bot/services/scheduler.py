"""APScheduler-based interval scheduler for the runner's poll loop and lease heartbeats."""

from __future__ import annotations

from typing import Any, Callable, Coroutine

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from vaste_bot.log import get_logger
from vaste_bot.services.base import Service

logger = get_logger(__name__)


class SchedulerService(Service):
    """Runs coroutine callbacks on fixed intervals inside the current event loop."""

    def __init__(self, timezone: str = "UTC"):
        self._scheduler = AsyncIOScheduler(timezone=timezone)

    @property
    def service_name(self) -> str:
        return "scheduler"

    async def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("scheduler_started")

    async def stop(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("scheduler_stopped")

    async def health_check(self) -> bool:
        return self._scheduler.running

    def add_interval_job(
        self,
        callback: Callable[..., Coroutine[Any, Any, None]],
        seconds: float,
        job_id: str,
        **kwargs: Any,
    ) -> str:
        """Schedule *callback* every *seconds*. Overlapping runs of one job are skipped."""
        self._scheduler.add_job(
            callback,
            IntervalTrigger(seconds=seconds),
            id=job_id,
            kwargs=kwargs,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.debug("interval_job_added", job_id=job_id, seconds=seconds)
        return job_id

    def remove_job(self, job_id: str) -> bool:
        """Remove a job. Returns False if it was already gone."""
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
                "next_run_time": str(job.next_run_time) if getattr(job, "next_run_time", None) else None,
                "trigger": str(job.trigger),
            }
            for job in self._scheduler.get_jobs()
        ]
