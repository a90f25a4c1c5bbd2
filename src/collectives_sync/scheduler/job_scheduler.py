"""Timer jobs that trigger sync passes."""

from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.events import EVENT_JOB_EXECUTED, EVENT_JOB_ERROR, EVENT_JOB_MISSED
from apscheduler.job import Job

from ..utils.logging import get_logger


INTERVAL_JOB_ID = "interval-sync"
STARTUP_JOB_ID = "startup-sync"

SyncCallback = Callable[[str], Awaitable[Any]]


class SchedulerError(Exception):
    """Raised when scheduler operations fail."""
    pass


class SyncScheduler:
    """Fires the interval and startup sync triggers.

    The callback receives the trigger name (``"interval"`` or ``"startup"``).
    Overlap protection lives in the orchestrator; here jobs are additionally
    limited to one running instance and missed runs are coalesced.
    """

    def __init__(self, callback: SyncCallback, misfire_grace_seconds: int = 300):
        """Initialize sync scheduler.

        Args:
            callback: Coroutine function run on each trigger
            misfire_grace_seconds: How late a run may start before it is skipped
        """
        self.callback = callback
        self.logger = get_logger(self.__class__.__name__)

        self.scheduler = AsyncIOScheduler(
            job_defaults={
                'coalesce': True,  # Combine multiple pending executions
                'max_instances': 1,  # Only one instance per job
                'misfire_grace_time': misfire_grace_seconds
            }
        )

        self.active_jobs: Dict[str, Job] = {}
        self.job_stats: Dict[str, Dict[str, Any]] = {}

        self.scheduler.add_listener(self._job_executed, EVENT_JOB_EXECUTED)
        self.scheduler.add_listener(self._job_error, EVENT_JOB_ERROR)
        self.scheduler.add_listener(self._job_missed, EVENT_JOB_MISSED)

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self):
        """Start the scheduler. Must be called from inside the event loop."""
        if self.scheduler.running:
            self.logger.warning("Scheduler is already running")
            return

        try:
            self.scheduler.start()
            self.logger.info("Sync scheduler started", active_jobs=list(self.active_jobs))
        except Exception as e:
            self.logger.error("Failed to start scheduler", error=str(e))
            raise SchedulerError(f"Failed to start scheduler: {e}") from e

    def stop(self, wait: bool = False):
        """Stop the scheduler and forget all jobs."""
        if not self.scheduler.running:
            return

        self.scheduler.shutdown(wait=wait)
        self.active_jobs.clear()
        self.logger.info("Sync scheduler stopped")

    def schedule_interval(self, minutes: int) -> Optional[Job]:
        """(Re)schedule the periodic sync; ``0`` removes it."""
        self.remove_job(INTERVAL_JOB_ID)

        if minutes <= 0:
            self.logger.info("Interval sync disabled")
            return None

        return self._add_job(
            INTERVAL_JOB_ID,
            IntervalTrigger(minutes=minutes),
            trigger_name="interval",
            schedule=f"every {minutes} min"
        )

    def schedule_startup(self, delay_seconds: float) -> Job:
        """Schedule a one-off sync ``delay_seconds`` from now."""
        self.remove_job(STARTUP_JOB_ID)
        run_date = datetime.now(timezone.utc) + timedelta(seconds=delay_seconds)

        return self._add_job(
            STARTUP_JOB_ID,
            DateTrigger(run_date=run_date),
            trigger_name="startup",
            schedule=f"once after {delay_seconds}s"
        )

    def remove_job(self, job_id: str) -> bool:
        """Remove a job if it is scheduled."""
        if job_id not in self.active_jobs:
            return False

        if self.scheduler.get_job(job_id):
            self.scheduler.remove_job(job_id)
        del self.active_jobs[job_id]
        self.logger.debug("Job removed", job_id=job_id)
        return True

    def get_job_status(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Status information for a job, or None if unknown."""
        if job_id not in self.job_stats:
            return None

        stats = self.job_stats[job_id].copy()
        job = self.active_jobs.get(job_id)
        stats.update({
            "job_id": job_id,
            "next_run": getattr(job, "next_run_time", None),
            "is_scheduled": job is not None
        })
        return stats

    def _add_job(self, job_id: str, trigger, trigger_name: str, schedule: str) -> Job:
        try:
            job = self.scheduler.add_job(
                func=self.callback,
                trigger=trigger,
                args=[trigger_name],
                id=job_id,
                name=f"Sync: {trigger_name}",
                replace_existing=True
            )
        except Exception as e:
            self.logger.error("Failed to add job", job_id=job_id, error=str(e))
            raise SchedulerError(f"Failed to add job {job_id}: {e}") from e

        self.active_jobs[job_id] = job
        self.job_stats.setdefault(job_id, {
            "schedule": schedule,
            "created_at": datetime.now(timezone.utc),
            "last_run": None,
            "run_count": 0,
            "error_count": 0
        })
        self.job_stats[job_id]["schedule"] = schedule

        # Jobs added before start() have no next_run_time yet
        self.logger.info("Job scheduled", job_id=job_id, schedule=schedule, next_run=getattr(job, "next_run_time", None))
        return job

    def _job_executed(self, event):
        stats = self.job_stats.get(event.job_id)
        if stats is not None:
            stats["last_run"] = datetime.now(timezone.utc)
            stats["run_count"] += 1

        # One-off jobs are gone once they ran
        if event.job_id == STARTUP_JOB_ID:
            self.active_jobs.pop(STARTUP_JOB_ID, None)

    def _job_error(self, event):
        stats = self.job_stats.get(event.job_id)
        if stats is not None:
            stats["last_run"] = datetime.now(timezone.utc)
            stats["run_count"] += 1
            stats["error_count"] += 1

        self.logger.error(
            "Scheduled job failed",
            job_id=event.job_id,
            error=str(event.exception)
        )

    def _job_missed(self, event):
        self.logger.warning(
            "Scheduled job missed",
            job_id=event.job_id,
            scheduled_run_time=event.scheduled_run_time
        )
