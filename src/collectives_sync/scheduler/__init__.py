"""Scheduler package for timed sync triggers."""

from .job_scheduler import SyncScheduler, SchedulerError, INTERVAL_JOB_ID, STARTUP_JOB_ID

__all__ = [
    "SyncScheduler",
    "SchedulerError",
    "INTERVAL_JOB_ID",
    "STARTUP_JOB_ID"
]
