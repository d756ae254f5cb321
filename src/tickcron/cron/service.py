"""Cron service for managing and executing scheduled jobs.

This module provides the CronService class that owns the job collection,
drives the once-per-second scheduler loop and exposes job state changes
to observers.
"""

import asyncio
import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import Callable
from zoneinfo import ZoneInfo

from pydantic import ValidationError

from tickcron.cron.coordinator import ExecutionCoordinator
from tickcron.cron.errors import JobValidationError
from tickcron.cron.events import EventBus, EventHandler, JobEvent, JobEventKind
from tickcron.cron.executor import ActionExecutor, CommandExecutor
from tickcron.cron.expression import validate_expression
from tickcron.cron.schedule import should_execute
from tickcron.cron.storage import CronStorage
from tickcron.cron.types import (
    CronJob,
    CronJobCreate,
    CronJobUpdate,
    ExecutionRecord,
    JobStatus,
)

logger = logging.getLogger(__name__)


def _validation_message(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(loc) for loc in item["loc"]) or "job"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


class CronService:
    """Service for managing cron jobs.

    The CronService handles:
    - Job creation, toggling, editing and deletion
    - The periodic scan that dispatches due jobs
    - Optional persistence to JSON storage
    - Publishing job events to observers

    Example:
        service = CronService(executor=CommandExecutor())
        job = service.add_job("Backup", "0 3 * * *", "backup.sh", timeout_ms=60_000)
        service.subscribe(lambda event: print(event.kind, event.job.status))

        await service.start()
    """

    def __init__(
        self,
        storage_path: str | Path | None = None,
        executor: ActionExecutor | None = None,
        check_interval: float = 1.0,
        timezone: str = "UTC",
        strict: bool = False,
        default_timeout_ms: int = 30_000,
        event_bus: EventBus | None = None,
    ) -> None:
        """Initialize the cron service.

        Args:
            storage_path: Path to the JSON storage file (None keeps jobs in memory).
            executor: Executor for job actions.
            check_interval: Seconds between scheduler ticks.
            timezone: Timezone schedules are evaluated in.
            strict: Reject schedules with unsupported fields or out-of-range values.
            default_timeout_ms: Deadline for jobs created without one.
            event_bus: Bus receiving job events.
        """
        self._storage = CronStorage(storage_path) if storage_path else None
        self._check_interval = check_interval
        self._tz = ZoneInfo(timezone)
        self._strict = strict
        self._default_timeout_ms = default_timeout_ms
        self._events = event_bus or EventBus()
        self._coordinator = ExecutionCoordinator(
            executor or CommandExecutor(),
            on_update=self._on_job_update,
        )

        self._running = False
        self._task: asyncio.Task | None = None
        self._jobs: dict[str, CronJob] = {}

        self._load_jobs()

    @property
    def storage_path(self) -> Path | None:
        """Get the storage file path, if persistent."""
        return self._storage.path if self._storage else None

    @property
    def is_running(self) -> bool:
        """Check if the scheduler loop is running."""
        return self._running

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def coordinator(self) -> ExecutionCoordinator:
        return self._coordinator

    @property
    def timezone(self) -> ZoneInfo:
        return self._tz

    def _load_jobs(self) -> None:
        """Load jobs from storage into memory."""
        if self._storage is None:
            return

        for job in self._storage.load():
            # A run interrupted by a restart never settled
            if job.status == JobStatus.RUNNING:
                job.status = JobStatus.IDLE if job.enabled else JobStatus.DISABLED
            self._jobs[job.id] = job
        logger.info(f"Loaded {len(self._jobs)} cron jobs")

    def _persist(self, job: CronJob) -> None:
        if self._storage is not None and job.id in self._jobs:
            self._storage.update(job)

    def _publish(self, kind: JobEventKind, job: CronJob, record: ExecutionRecord | None = None) -> None:
        self._events.publish(JobEvent(kind=kind, job=job.model_copy(deep=True), record=record))

    async def _on_job_update(self, job: CronJob, record: ExecutionRecord | None) -> None:
        if job.id not in self._jobs:
            logger.debug(f"Dropping update for deleted job {job.id}")
            return
        self._persist(job)
        if record is None:
            self._publish(JobEventKind.EXECUTION_STARTED, job)
        else:
            self._publish(JobEventKind.EXECUTION_RECORDED, job, record)

    def _generate_id(self) -> str:
        return f"job_{uuid.uuid4().hex[:12]}"

    def now(self) -> datetime:
        """Current time in the service timezone."""
        return datetime.now(self._tz)

    def create_job(self, create: CronJobCreate) -> CronJob:
        """Create a new job from a validated definition.

        Args:
            create: Job creation parameters.

        Returns:
            The created job.

        Raises:
            ParseError: If the schedule is invalid.
        """
        validate_expression(create.schedule, strict=self._strict)

        job = CronJob(
            id=self._generate_id(),
            name=create.name,
            schedule=create.schedule,
            action=create.action,
            timeout_ms=create.timeout_ms,
            enabled=create.enabled,
            status=JobStatus.IDLE if create.enabled else JobStatus.DISABLED,
        )

        self._jobs[job.id] = job
        if self._storage is not None:
            self._storage.add(job)

        logger.info(f"Created cron job: {job.name} ({job.id})")
        self._publish(JobEventKind.JOB_ADDED, job)
        return job

    def add_job(
        self,
        name: str,
        schedule: str,
        action: str,
        timeout_ms: int | None = None,
        enabled: bool = True,
    ) -> CronJob:
        """Create a new job.

        Args:
            name: Job name.
            schedule: Five-field cron expression.
            action: Unit of work to execute.
            timeout_ms: Deadline in milliseconds (defaults to the service default).
            enabled: Whether the job starts enabled.

        Returns:
            The created job.

        Raises:
            JobValidationError: If a required field is missing or invalid.
            ParseError: If the schedule is invalid.
        """
        try:
            create = CronJobCreate(
                name=name or "",
                schedule=schedule or "",
                action=action or "",
                timeout_ms=timeout_ms if timeout_ms is not None else self._default_timeout_ms,
                enabled=enabled,
            )
        except ValidationError as e:
            raise JobValidationError(_validation_message(e)) from e

        return self.create_job(create)

    def get_job(self, job_id: str) -> CronJob | None:
        """Get a job by ID."""
        return self._jobs.get(job_id)

    def list_jobs(self) -> list[CronJob]:
        """List all jobs in insertion order."""
        return list(self._jobs.values())

    def update_job(self, job_id: str, update: CronJobUpdate) -> CronJob | None:
        """Update a job definition.

        Changing the schedule does not clear the last-fired minute, so a
        job never fires twice in the same minute because of an edit.

        Args:
            job_id: The job ID.
            update: Update parameters.

        Returns:
            The updated job, or None if not found.

        Raises:
            ParseError: If the new schedule is invalid.
        """
        job = self._jobs.get(job_id)
        if job is None:
            return None

        if update.schedule is not None:
            validate_expression(update.schedule, strict=self._strict)
            job.schedule = update.schedule
        if update.name is not None:
            job.name = update.name
        if update.action is not None:
            job.action = update.action
        if update.timeout_ms is not None:
            job.timeout_ms = update.timeout_ms

        job.touch()
        self._persist(job)

        logger.info(f"Updated cron job: {job.name} ({job.id})")
        self._publish(JobEventKind.JOB_UPDATED, job)
        return job

    def _set_enabled(self, job: CronJob, enabled: bool) -> None:
        job.enabled = enabled
        job.status = JobStatus.IDLE if enabled else JobStatus.DISABLED
        job.touch()
        self._persist(job)
        logger.info(f"{'Enabled' if enabled else 'Disabled'} cron job: {job.name} ({job.id})")
        self._publish(JobEventKind.JOB_UPDATED, job)

    def toggle_job(self, job_id: str) -> CronJob | None:
        """Flip a job between enabled and disabled.

        Re-enabling resets the status to idle.

        Args:
            job_id: The job ID.

        Returns:
            The job, or None if not found.
        """
        job = self._jobs.get(job_id)
        if job is None:
            return None

        self._set_enabled(job, not job.enabled)
        return job

    def enable_job(self, job_id: str) -> bool:
        """Enable a job.

        Returns:
            True if the job exists.
        """
        job = self._jobs.get(job_id)
        if job is None:
            return False

        if not job.enabled:
            self._set_enabled(job, True)
        return True

    def disable_job(self, job_id: str) -> bool:
        """Disable a job.

        Returns:
            True if the job exists.
        """
        job = self._jobs.get(job_id)
        if job is None:
            return False

        if job.enabled:
            self._set_enabled(job, False)
        return True

    def delete_job(self, job_id: str) -> bool:
        """Delete a job.

        An execution still in flight settles silently.

        Returns:
            True if the job was deleted.
        """
        job = self._jobs.pop(job_id, None)
        if job is None:
            return False

        self._coordinator.forget(job_id)
        if self._storage is not None:
            self._storage.remove(job_id)

        logger.info(f"Deleted cron job: {job.name} ({job_id})")
        self._publish(JobEventKind.JOB_DELETED, job)
        return True

    def clear(self) -> int:
        """Delete all jobs.

        Returns:
            Number of jobs deleted.
        """
        jobs = list(self._jobs.values())
        self._jobs.clear()
        for job in jobs:
            self._coordinator.forget(job.id)
        if self._storage is not None:
            self._storage.clear()

        logger.info(f"Cleared {len(jobs)} cron jobs")
        for job in jobs:
            self._publish(JobEventKind.JOB_DELETED, job)
        return len(jobs)

    def close_stream(self, queue: asyncio.Queue[JobEvent]) -> None:
        """Stop delivering events to a queue created by ``stream``."""
        self._events.close_stream(queue)

    def subscribe(
        self,
        handler: EventHandler,
        kinds: set[JobEventKind] | None = None,
    ) -> Callable[[], None]:
        """Register an observer for job events.

        Returns:
            A function that removes the subscription.
        """
        return self._events.subscribe(handler, kinds)

    def stream(self, maxsize: int = 100) -> asyncio.Queue[JobEvent]:
        """Create a queue receiving every job event.

        Release it with ``close_stream`` when done.
        """
        return self._events.stream(maxsize)

    async def run_job(self, job_id: str) -> ExecutionRecord | None:
        """Run a job immediately, regardless of its schedule.

        Args:
            job_id: The job ID.

        Returns:
            The execution record, or None if the job was not found.
        """
        job = self._jobs.get(job_id)
        if job is None:
            return None

        return await self._coordinator.execute(job, self.now())

    def tick(self, now: datetime | None = None) -> list[asyncio.Task]:
        """Dispatch every job that is due.

        Executions are started without waiting for them. A job whose
        evaluation fails is skipped and the scan goes on.

        Args:
            now: Instant to evaluate (defaults to the current time).

        Returns:
            Tasks of the dispatched executions.
        """
        if now is None:
            now = self.now()
        elif now.tzinfo is not None:
            now = now.astimezone(self._tz)

        dispatched = []
        for job in list(self._jobs.values()):
            try:
                if should_execute(job, now):
                    dispatched.append(self._coordinator.dispatch(job, now))
            except Exception as e:
                logger.exception(f"Error evaluating job {job.id}: {e}")
        return dispatched

    async def _run_loop(self) -> None:
        """Main service loop that checks for due jobs."""
        logger.info("Cron service started")

        while self._running:
            try:
                self.tick()
            except Exception as e:
                logger.exception(f"Error in cron service loop: {e}")

            await asyncio.sleep(self._check_interval)

        logger.info("Cron service stopped")

    async def start(self) -> None:
        """Start the scheduler loop in the background."""
        if self._running:
            logger.warning("Cron service is already running")
            return

        self._running = True
        self._task = asyncio.create_task(
            self._run_loop(),
            name="cron_service_loop",
        )

    async def stop(self) -> None:
        """Stop the scheduler loop and cancel in-flight executions."""
        if not self._running:
            return

        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        await self._coordinator.shutdown()

        for job in self._jobs.values():
            if job.status == JobStatus.RUNNING:
                job.status = JobStatus.IDLE
                job.touch()
                self._persist(job)
                self._publish(JobEventKind.JOB_UPDATED, job)
