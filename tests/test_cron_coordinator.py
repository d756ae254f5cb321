"""Tests for the execution coordinator."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from tickcron.cron.coordinator import ExecutionCoordinator
from tickcron.cron.errors import ExecutionFailure
from tickcron.cron.executor import ActionExecutor, StubExecutor
from tickcron.cron.types import (
    HISTORY_LIMIT,
    CronJob,
    ExecutionOutcome,
    ExecutionRecord,
    JobStatus,
)

NOW = datetime(2026, 10, 17, 10, 30, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_job(job_id: str = "job_a", **overrides) -> CronJob:
    """Create a job with test defaults."""
    defaults = {
        "id": job_id,
        "name": "A",
        "schedule": "* * * * *",
        "action": "work",
        "timeout_ms": 1000,
    }
    defaults.update(overrides)
    return CronJob(**defaults)


class _CountingExecutor(ActionExecutor):
    """Returns 1, 2, 3, ... on successive runs."""

    def __init__(self) -> None:
        self.count = 0

    async def run(self, action: str) -> Any:
        self.count += 1
        return self.count


class _ScriptedExecutor(ActionExecutor):
    """Plays back (delay, result-or-exception) steps in call order."""

    def __init__(self, steps: list[tuple[float, Any]]) -> None:
        self._steps = list(steps)

    async def run(self, action: str) -> Any:
        delay, outcome = self._steps.pop(0)
        await asyncio.sleep(delay)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


class TestOutcomes:
    @pytest.mark.asyncio
    async def test_success(self) -> None:
        coordinator = ExecutionCoordinator(StubExecutor(delay=0.1, result="ok"))
        job = _make_job(timeout_ms=1000)

        record = await coordinator.execute(job, NOW)

        assert job.status == JobStatus.SUCCESS
        assert job.history[0] is record
        assert record.outcome == ExecutionOutcome.SUCCESS
        assert record.result == "ok"
        assert record.error is None
        assert 90 <= record.duration_ms < 1000
        assert job.last_result == "ok"
        assert job.last_error is None

    @pytest.mark.asyncio
    async def test_failure(self) -> None:
        coordinator = ExecutionCoordinator(StubExecutor(error="disk full"))
        job = _make_job()

        record = await coordinator.execute(job, NOW)

        assert job.status == JobStatus.FAILED
        assert record.outcome == ExecutionOutcome.FAILED
        assert record.error == "disk full"
        assert record.result is None
        assert job.last_error == "disk full"

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_contained(self) -> None:
        coordinator = ExecutionCoordinator(_ScriptedExecutor([(0, KeyError("boom"))]))
        job = _make_job()

        record = await coordinator.execute(job, NOW)

        assert job.status == JobStatus.FAILED
        assert "boom" in record.error

    @pytest.mark.asyncio
    async def test_timeout_bounded_by_deadline(self) -> None:
        coordinator = ExecutionCoordinator(StubExecutor(delay=5.0, result="late"))
        job = _make_job(timeout_ms=200)

        record = await coordinator.execute(job, NOW)

        assert job.status == JobStatus.TIMEOUT
        assert record.outcome == ExecutionOutcome.TIMEOUT
        assert record.result is None
        assert "timed out" in record.error
        assert 190 <= record.duration_ms < 1000
        await coordinator.shutdown()

    @pytest.mark.asyncio
    async def test_late_resolution_is_ignored(self) -> None:
        coordinator = ExecutionCoordinator(StubExecutor(delay=0.3, result="late"))
        job = _make_job(timeout_ms=50)

        await coordinator.execute(job, NOW)
        assert job.status == JobStatus.TIMEOUT

        await asyncio.sleep(0.4)

        assert job.status == JobStatus.TIMEOUT
        assert len(job.history) == 1
        assert job.history[0].outcome == ExecutionOutcome.TIMEOUT
        assert job.last_result is None

    @pytest.mark.asyncio
    async def test_late_failure_is_ignored(self) -> None:
        coordinator = ExecutionCoordinator(
            _ScriptedExecutor([(0.2, ExecutionFailure("late"))])
        )
        job = _make_job(timeout_ms=50)

        await coordinator.execute(job, NOW)
        await asyncio.sleep(0.3)

        assert job.status == JobStatus.TIMEOUT
        assert len(job.history) == 1


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


class TestDispatch:
    @pytest.mark.asyncio
    async def test_stamps_before_completion(self) -> None:
        coordinator = ExecutionCoordinator(StubExecutor(delay=0.1))
        job = _make_job()

        task = coordinator.dispatch(job, NOW)

        assert job.status == JobStatus.RUNNING
        assert job.last_executed_minute == 30
        assert job.last_executed_hour == 10
        assert job.last_run_at == NOW
        assert coordinator.running_count == 1

        await task
        assert coordinator.running_count == 0

    @pytest.mark.asyncio
    async def test_execution_ids_increase(self) -> None:
        coordinator = ExecutionCoordinator(StubExecutor())
        job = _make_job()

        first = await coordinator.execute(job, NOW)
        second = await coordinator.execute(job, NOW + timedelta(minutes=1))

        assert second.execution_id > first.execution_id
        assert coordinator.current_execution(job.id) == second.execution_id
        assert first.id != second.id

    @pytest.mark.asyncio
    async def test_disabled_job_stays_disabled(self) -> None:
        coordinator = ExecutionCoordinator(StubExecutor(delay=0.05))
        job = _make_job()

        task = coordinator.dispatch(job, NOW)
        job.enabled = False
        job.status = JobStatus.DISABLED
        await task

        assert job.status == JobStatus.DISABLED
        assert len(job.history) == 1
        assert job.last_result == "ok"

    @pytest.mark.asyncio
    async def test_update_hook_sees_start_and_settle(self) -> None:
        seen: list[tuple[JobStatus, ExecutionRecord | None]] = []

        async def on_update(job: CronJob, record: ExecutionRecord | None) -> None:
            seen.append((job.status, record))

        coordinator = ExecutionCoordinator(StubExecutor(), on_update=on_update)
        record = await coordinator.execute(_make_job(), NOW)

        assert seen == [(JobStatus.RUNNING, None), (JobStatus.SUCCESS, record)]

    @pytest.mark.asyncio
    async def test_slow_start_hook_counts_against_timeout(self) -> None:
        async def on_update(job: CronJob, record: ExecutionRecord | None) -> None:
            if record is None:
                await asyncio.sleep(0.15)

        coordinator = ExecutionCoordinator(StubExecutor(delay=1.0), on_update=on_update)
        job = _make_job(timeout_ms=200)
        record = await coordinator.execute(job, NOW)

        assert record.outcome == ExecutionOutcome.TIMEOUT
        assert 190 <= record.duration_ms < 320
        await coordinator.shutdown()

    @pytest.mark.asyncio
    async def test_action_runs_while_start_hook_is_pending(self) -> None:
        async def on_update(job: CronJob, record: ExecutionRecord | None) -> None:
            if record is None:
                await asyncio.sleep(0.2)

        coordinator = ExecutionCoordinator(StubExecutor(delay=0.1), on_update=on_update)
        job = _make_job(timeout_ms=250)
        record = await coordinator.execute(job, NOW)

        assert record.outcome == ExecutionOutcome.SUCCESS
        assert record.duration_ms < 290

    @pytest.mark.asyncio
    async def test_failing_hook_is_contained(self) -> None:
        async def on_update(job: CronJob, record: ExecutionRecord | None) -> None:
            raise RuntimeError("observer down")

        coordinator = ExecutionCoordinator(StubExecutor(), on_update=on_update)
        job = _make_job()
        await coordinator.execute(job, NOW)

        assert job.status == JobStatus.SUCCESS


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


class TestHistory:
    @pytest.mark.asyncio
    async def test_capped_newest_first(self) -> None:
        coordinator = ExecutionCoordinator(_CountingExecutor())
        job = _make_job()

        for i in range(HISTORY_LIMIT + 1):
            await coordinator.execute(job, NOW + timedelta(minutes=i))

        assert len(job.history) == HISTORY_LIMIT
        assert [r.result for r in job.history] == list(range(11, 1, -1))

    @pytest.mark.asyncio
    async def test_jobs_do_not_share_history(self) -> None:
        coordinator = ExecutionCoordinator(StubExecutor(delay=0.05))
        job_a = _make_job("job_a")
        job_b = _make_job("job_b", name="B")

        await asyncio.gather(
            coordinator.dispatch(job_a, NOW),
            coordinator.dispatch(job_b, NOW),
        )

        assert len(job_a.history) == 1
        assert len(job_b.history) == 1
        assert job_a.history[0].id != job_b.history[0].id

    @pytest.mark.asyncio
    async def test_superseded_completion_keeps_newer_status(self) -> None:
        executor = _ScriptedExecutor([
            (0.3, ExecutionFailure("first run failed")),
            (0.0, "second"),
        ])
        coordinator = ExecutionCoordinator(executor)
        job = _make_job(timeout_ms=5000)

        first = coordinator.dispatch(job, NOW)
        await asyncio.sleep(0)
        second = coordinator.dispatch(job, NOW + timedelta(minutes=1))

        await second
        assert job.status == JobStatus.SUCCESS

        await first
        assert job.status == JobStatus.SUCCESS
        assert job.last_result == "second"
        assert job.last_error is None
        assert [r.outcome for r in job.history] == [
            ExecutionOutcome.FAILED,
            ExecutionOutcome.SUCCESS,
        ]


class TestShutdown:
    @pytest.mark.asyncio
    async def test_cancels_in_flight(self) -> None:
        coordinator = ExecutionCoordinator(StubExecutor(delay=10))
        task = coordinator.dispatch(_make_job(), NOW)
        await asyncio.sleep(0)

        await coordinator.shutdown()

        assert task.cancelled()
        assert coordinator.running_count == 0
