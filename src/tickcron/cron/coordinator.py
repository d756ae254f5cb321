"""Execution coordination for cron jobs.

The coordinator runs a job's action under a deadline, moves the job
through its status transitions and appends execution records to the
job's history.

Each dispatch gets a monotonically increasing execution id. Only the
job's current execution may update its status; a superseded dispatch
still records its outcome in the history. A timed out action is not
cancelled: it keeps running in the background and whatever it
eventually returns is discarded.
"""

import asyncio
import itertools
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from tickcron.cron.errors import TimeoutExceeded
from tickcron.cron.executor import ActionExecutor
from tickcron.cron.types import CronJob, ExecutionOutcome, ExecutionRecord, JobStatus

logger = logging.getLogger(__name__)

# Called after every job mutation, with the new record when one was added
UpdateHook = Callable[[CronJob, ExecutionRecord | None], Awaitable[None]]

_OUTCOME_STATUS = {
    ExecutionOutcome.SUCCESS: JobStatus.SUCCESS,
    ExecutionOutcome.FAILED: JobStatus.FAILED,
    ExecutionOutcome.TIMEOUT: JobStatus.TIMEOUT,
}


class ExecutionCoordinator:
    """Runs job actions with timeouts and records their outcomes.

    Example:
        coordinator = ExecutionCoordinator(StubExecutor(delay=0.1))
        record = await coordinator.execute(job)
    """

    def __init__(
        self,
        executor: ActionExecutor,
        on_update: UpdateHook | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            executor: Executor used to run job actions.
            on_update: Async hook awaited after each job state change.
        """
        self._executor = executor
        self._on_update = on_update
        self._ids = itertools.count(1)
        self._current: dict[str, int] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._tasks: set[asyncio.Task] = set()
        self._stragglers: set[asyncio.Task] = set()

    @property
    def executor(self) -> ActionExecutor:
        return self._executor

    @property
    def running_count(self) -> int:
        """Number of dispatched executions that have not settled."""
        return len(self._tasks)

    def current_execution(self, job_id: str) -> int | None:
        """Get the id of the most recent dispatch of a job."""
        return self._current.get(job_id)

    def _lock_for(self, job_id: str) -> asyncio.Lock:
        lock = self._locks.get(job_id)
        if lock is None:
            lock = self._locks[job_id] = asyncio.Lock()
        return lock

    def dispatch(self, job: CronJob, now: datetime | None = None) -> asyncio.Task:
        """Start executing a job without waiting for it.

        The job is marked running and stamped with the firing minute
        before this method returns.

        Args:
            job: The job to execute.
            now: Firing instant (defaults to UTC now).

        Returns:
            Task resolving to the execution record.
        """
        now = now or datetime.now(timezone.utc)
        execution_id = next(self._ids)

        self._current[job.id] = execution_id
        job.last_executed_minute = now.minute
        job.last_executed_hour = now.hour
        job.last_run_at = now
        if job.enabled:
            job.status = JobStatus.RUNNING
        job.touch()

        started = time.monotonic()
        task = asyncio.create_task(
            self._run(job, execution_id, started),
            name=f"cron_job_{job.id}_{execution_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def execute(self, job: CronJob, now: datetime | None = None) -> ExecutionRecord:
        """Dispatch a job and wait for it to settle.

        Args:
            job: The job to execute.
            now: Firing instant (defaults to UTC now).

        Returns:
            The execution record.
        """
        return await self.dispatch(job, now)

    async def _invoke(self, action: str) -> Any:
        return await self._executor.run(action)

    async def _run(self, job: CronJob, execution_id: int, started: float) -> ExecutionRecord:
        logger.info(f"Executing cron job: {job.name} ({job.id}) #{execution_id}")

        # The deadline counts from dispatch, including time spent in the hook
        action = asyncio.ensure_future(self._invoke(job.action))
        try:
            async with self._lock_for(job.id):
                await self._notify(job, None)

            remaining = job.timeout_ms / 1000 - (time.monotonic() - started)
            done, _ = await asyncio.wait({action}, timeout=max(remaining, 0))
        except asyncio.CancelledError:
            action.cancel()
            raise

        duration_ms = (time.monotonic() - started) * 1000
        result: Any = None
        error: str | None = None

        if action not in done:
            self._detach(job, execution_id, action)
            outcome = ExecutionOutcome.TIMEOUT
            error = str(TimeoutExceeded(job.timeout_ms))
            logger.error(f"Cron job timeout: {job.name} ({job.id}) after {job.timeout_ms}ms")
        elif action.cancelled():
            outcome = ExecutionOutcome.FAILED
            error = "Execution cancelled"
            logger.warning(f"Cron job cancelled: {job.name} ({job.id})")
        elif action.exception() is not None:
            exc = action.exception()
            outcome = ExecutionOutcome.FAILED
            error = str(exc) or type(exc).__name__
            logger.warning(f"Cron job failed: {job.name} ({job.id}) - {error}")
        else:
            outcome = ExecutionOutcome.SUCCESS
            result = action.result()
            logger.info(
                f"Cron job completed: {job.name} ({job.id}) "
                f"in {duration_ms:.0f}ms"
            )

        record = ExecutionRecord(
            id=f"run_{uuid.uuid4().hex[:12]}",
            execution_id=execution_id,
            outcome=outcome,
            duration_ms=duration_ms,
            result=result,
            error=error,
        )
        await self._settle(job, execution_id, record)
        return record

    async def _settle(self, job: CronJob, execution_id: int, record: ExecutionRecord) -> None:
        """Apply an execution record to its job."""
        async with self._lock_for(job.id):
            job.record_execution(record)

            if self._current.get(job.id) != execution_id:
                logger.info(
                    f"Execution #{execution_id} of {job.name} ({job.id}) was superseded; "
                    f"status left unchanged"
                )
            else:
                if record.succeeded:
                    job.last_result = record.result
                    job.last_error = None
                else:
                    job.last_error = record.error
                job.status = _OUTCOME_STATUS[record.outcome] if job.enabled else JobStatus.DISABLED

            job.touch()
            await self._notify(job, record)

    def _detach(self, job: CronJob, execution_id: int, action: asyncio.Future) -> None:
        """Let a timed out action finish in the background, ignoring its outcome."""
        self._stragglers.add(action)

        def _discard(task: asyncio.Future) -> None:
            self._stragglers.discard(task)
            if task.cancelled():
                return
            exc = task.exception()
            if exc is not None:
                logger.debug(f"Ignoring late failure of {job.id} #{execution_id}: {exc}")
            else:
                logger.debug(f"Ignoring late result of {job.id} #{execution_id}")

        action.add_done_callback(_discard)

    async def _notify(self, job: CronJob, record: ExecutionRecord | None) -> None:
        if self._on_update is None:
            return
        try:
            await self._on_update(job, record)
        except Exception:
            logger.exception(f"Update hook failed for job {job.id}")

    def forget(self, job_id: str) -> None:
        """Drop bookkeeping for a deleted job."""
        self._current.pop(job_id, None)
        self._locks.pop(job_id, None)

    async def shutdown(self) -> None:
        """Cancel in-flight executions and background stragglers."""
        pending = list(self._tasks) + list(self._stragglers)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._stragglers.clear()
        await self._executor.shutdown()
