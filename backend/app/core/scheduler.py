"""APScheduler configuration for background jobs.

Features:
- AsyncIOScheduler sharing the application's event loop
- In-memory job store (jobs are registered on every startup)
- Comprehensive logging for all scheduler events
- Graceful shutdown handling
- Health checking

ERROR LOGGING REQUIREMENTS:
- Log job execution errors with full context
- Log slow job executions (>1 second) at WARNING level
- Log missed job executions at WARNING level
- Log scheduler lifecycle events at INFO level
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from apscheduler.events import (
    EVENT_JOB_ADDED,
    EVENT_JOB_ERROR,
    EVENT_JOB_EXECUTED,
    EVENT_JOB_MISSED,
    EVENT_JOB_REMOVED,
    EVENT_JOB_SUBMITTED,
    EVENT_SCHEDULER_SHUTDOWN,
    EVENT_SCHEDULER_STARTED,
    JobEvent,
    JobExecutionEvent,
    JobSubmissionEvent,
    SchedulerEvent,
)
from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.core.config import get_settings
from app.core.logging import get_logger, scheduler_logger

logger = get_logger(__name__)

# Slow job threshold in milliseconds
SLOW_JOB_THRESHOLD_MS = 1000


class SchedulerState(Enum):
    """Scheduler state enumeration."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"


@dataclass
class JobInfo:
    """Information about a scheduled job."""

    id: str
    name: str | None
    trigger: str
    next_run_time: datetime | None
    pending: bool


class SchedulerManager:
    """Manages the application's AsyncIOScheduler.

    start() must be called from inside a running event loop (the
    FastAPI lifespan), since AsyncIOScheduler binds to the current loop.
    """

    def __init__(self) -> None:
        self._scheduler: AsyncIOScheduler | None = None
        self._state: SchedulerState = SchedulerState.STOPPED
        self._job_start_times: dict[str, float] = {}

    @property
    def state(self) -> SchedulerState:
        """Get current scheduler state."""
        return self._state

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._state == SchedulerState.RUNNING

    def _setup_event_listeners(self, scheduler: AsyncIOScheduler) -> None:
        """Set up event listeners for scheduler events."""

        def on_scheduler_event(event: SchedulerEvent) -> None:
            if event.code == EVENT_SCHEDULER_STARTED:
                scheduler_logger.scheduler_start(len(scheduler.get_jobs()))
            elif event.code == EVENT_SCHEDULER_SHUTDOWN:
                scheduler_logger.scheduler_stop(graceful=True)

        def on_job_event(event: JobEvent) -> None:
            job = scheduler.get_job(event.job_id)
            if event.code == EVENT_JOB_ADDED:
                next_run = (
                    job.next_run_time.isoformat() if job and job.next_run_time else None
                )
                scheduler_logger.job_added(
                    job_id=event.job_id,
                    job_name=job.name if job else None,
                    trigger=str(job.trigger) if job else "unknown",
                    next_run=next_run,
                )
            elif event.code == EVENT_JOB_REMOVED:
                scheduler_logger.job_removed(job_id=event.job_id)

        def on_job_submitted(event: JobSubmissionEvent) -> None:
            self._job_start_times[event.job_id] = time.monotonic()

        def on_job_execution_event(event: JobExecutionEvent) -> None:
            job = scheduler.get_job(event.job_id)
            job_name = job.name if job else None

            start_time = self._job_start_times.pop(event.job_id, None)
            duration_ms = (time.monotonic() - start_time) * 1000 if start_time else 0

            if event.code == EVENT_JOB_EXECUTED:
                scheduler_logger.job_execution_success(
                    job_id=event.job_id,
                    job_name=job_name,
                    duration_ms=duration_ms,
                    result=event.retval,
                )
                if duration_ms > SLOW_JOB_THRESHOLD_MS:
                    scheduler_logger.slow_job_execution(
                        job_id=event.job_id,
                        job_name=job_name,
                        duration_ms=duration_ms,
                        threshold_ms=SLOW_JOB_THRESHOLD_MS,
                    )
            elif event.code == EVENT_JOB_ERROR:
                scheduler_logger.job_execution_error(
                    job_id=event.job_id,
                    job_name=job_name,
                    duration_ms=duration_ms,
                    error=str(event.exception),
                    error_type=type(event.exception).__name__,
                )
            elif event.code == EVENT_JOB_MISSED:
                scheduled_time = (
                    event.scheduled_run_time.isoformat()
                    if event.scheduled_run_time
                    else "unknown"
                )
                scheduler_logger.job_missed(
                    job_id=event.job_id,
                    job_name=job_name,
                    scheduled_time=scheduled_time,
                    misfire_grace_time=get_settings().scheduler_misfire_grace_time,
                )

        scheduler.add_listener(
            on_scheduler_event,
            EVENT_SCHEDULER_STARTED | EVENT_SCHEDULER_SHUTDOWN,
        )
        scheduler.add_listener(on_job_event, EVENT_JOB_ADDED | EVENT_JOB_REMOVED)
        scheduler.add_listener(on_job_submitted, EVENT_JOB_SUBMITTED)
        scheduler.add_listener(
            on_job_execution_event,
            EVENT_JOB_EXECUTED | EVENT_JOB_ERROR | EVENT_JOB_MISSED,
        )

    def init_scheduler(self) -> bool:
        """Initialize the scheduler.

        Returns:
            True if initialization was successful, False otherwise.
        """
        settings = get_settings()

        if not settings.scheduler_enabled:
            logger.info("Scheduler is disabled via configuration")
            return False

        if self._scheduler is not None:
            logger.warning("Scheduler already initialized")
            return True

        self._state = SchedulerState.STARTING

        try:
            self._scheduler = AsyncIOScheduler(
                jobstores={"default": MemoryJobStore()},
                executors={"default": AsyncIOExecutor()},
                job_defaults={
                    "coalesce": settings.scheduler_job_coalesce,
                    "max_instances": settings.scheduler_job_default_max_instances,
                    "misfire_grace_time": settings.scheduler_misfire_grace_time,
                },
                timezone="UTC",
            )
            self._setup_event_listeners(self._scheduler)
            logger.info("Scheduler initialized successfully")
            return True
        except Exception as e:
            self._state = SchedulerState.STOPPED
            self._scheduler = None
            logger.error(f"Failed to initialize scheduler: {e}", exc_info=True)
            return False

    def start(self) -> bool:
        """Start the scheduler.

        Returns:
            True if started successfully, False otherwise.
        """
        if self._scheduler is None and not self.init_scheduler():
            return False

        if self._scheduler is None:
            return False

        if self._state == SchedulerState.RUNNING:
            logger.warning("Scheduler is already running")
            return True

        try:
            self._scheduler.start()
            self._state = SchedulerState.RUNNING
            return True
        except Exception as e:
            logger.error(f"Failed to start scheduler: {e}", exc_info=True)
            self._state = SchedulerState.STOPPED
            return False

    def stop(self, wait: bool = True) -> None:
        """Stop the scheduler.

        Args:
            wait: If True, wait for running jobs to complete.
        """
        if self._scheduler is None:
            return

        if self._state in (SchedulerState.STOPPED, SchedulerState.SHUTTING_DOWN):
            self._scheduler = None
            return

        self._state = SchedulerState.SHUTTING_DOWN

        try:
            self._scheduler.shutdown(wait=wait)
        except Exception as e:
            logger.error(f"Error during scheduler shutdown: {e}", exc_info=True)
        finally:
            self._state = SchedulerState.STOPPED
            self._scheduler = None
            self._job_start_times.clear()

    def add_interval_job(
        self,
        func: Callable[..., Any],
        job_id: str,
        minutes: int,
        name: str | None = None,
        kwargs: dict[str, Any] | None = None,
    ) -> str | None:
        """Add (or replace) a job running every ``minutes`` minutes.

        Returns:
            Job ID if successful, None otherwise.
        """
        if self._scheduler is None:
            scheduler_logger.scheduler_not_available(
                operation="add_interval_job",
                reason="Scheduler is not initialized",
            )
            return None

        try:
            job = self._scheduler.add_job(
                func,
                trigger=IntervalTrigger(minutes=minutes),
                id=job_id,
                name=name or job_id,
                kwargs=kwargs or {},
                replace_existing=True,
            )
            return str(job.id)
        except Exception as e:
            logger.error(f"Failed to add job {job_id}: {e}", exc_info=True)
            return None

    def remove_job(self, job_id: str) -> bool:
        """Remove a job from the scheduler.

        Returns:
            True if removed successfully, False otherwise.
        """
        if self._scheduler is None:
            scheduler_logger.scheduler_not_available(
                operation="remove_job",
                reason="Scheduler is not initialized",
            )
            return False

        try:
            self._scheduler.remove_job(job_id)
            return True
        except Exception as e:
            logger.error(f"Failed to remove job {job_id}: {e}", exc_info=True)
            return False

    def get_jobs(self) -> list[JobInfo]:
        """Get all scheduled jobs."""
        if self._scheduler is None:
            return []

        return [
            JobInfo(
                id=job.id,
                name=job.name,
                trigger=str(job.trigger),
                next_run_time=getattr(job, "next_run_time", None),
                pending=job.pending,
            )
            for job in self._scheduler.get_jobs()
        ]

    def check_health(self) -> dict[str, Any]:
        """Check scheduler health.

        Returns:
            Health status dictionary.
        """
        if self._scheduler is None:
            return {
                "status": "not_initialized",
                "running": False,
                "state": self._state.value,
                "job_count": 0,
            }

        jobs = self.get_jobs()
        return {
            "status": "ok" if self._state == SchedulerState.RUNNING else "degraded",
            "running": self._state == SchedulerState.RUNNING,
            "state": self._state.value,
            "job_count": len(jobs),
            "jobs": [
                {
                    "id": job.id,
                    "next_run_time": (
                        job.next_run_time.isoformat() if job.next_run_time else None
                    ),
                }
                for job in jobs
            ],
        }


# Global scheduler manager instance
scheduler_manager = SchedulerManager()