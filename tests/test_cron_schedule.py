"""Tests for due-job evaluation."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from tickcron.cron.schedule import should_execute
from tickcron.cron.types import CronJob, JobStatus

NOW = datetime(2026, 10, 17, 10, 30, tzinfo=timezone.utc)


def _make_job(schedule: str = "*/1 * * * *", **overrides) -> CronJob:
    """Create a job with test defaults."""
    defaults = {
        "id": "job_test",
        "name": "test",
        "schedule": schedule,
        "action": "echo hi",
        "timeout_ms": 1000,
    }
    defaults.update(overrides)
    return CronJob(**defaults)


def _stamp(job: CronJob, moment: datetime) -> None:
    job.last_executed_minute = moment.minute
    job.last_executed_hour = moment.hour
    job.last_run_at = moment


class TestShouldExecute:
    def test_due_when_all_fields_match(self) -> None:
        assert should_execute(_make_job("30 10 17 10 6"), NOW) is True

    def test_not_due_when_a_field_differs(self) -> None:
        assert should_execute(_make_job("31 10 * * *"), NOW) is False

    def test_disabled_job_is_never_due(self) -> None:
        job = _make_job("* * * * *", enabled=False, status=JobStatus.DISABLED)
        for offset in range(0, 180, 7):
            assert should_execute(job, NOW + timedelta(minutes=offset)) is False

    def test_unparsable_schedule_is_not_due(self) -> None:
        assert should_execute(_make_job("* * *"), NOW) is False

    def test_fires_once_per_minute(self) -> None:
        job = _make_job("*/1 * * * *")
        fired = 0
        for second in range(60):
            moment = NOW.replace(second=second)
            if should_execute(job, moment):
                fired += 1
                _stamp(job, moment)
        assert fired == 1

    def test_due_again_when_minute_changes(self) -> None:
        job = _make_job("*/1 * * * *")
        _stamp(job, NOW)
        assert should_execute(job, NOW + timedelta(seconds=59)) is False
        assert should_execute(job, NOW + timedelta(minutes=1)) is True

    def test_same_minute_different_hour_is_due(self) -> None:
        job = _make_job("30 * * * *")
        _stamp(job, NOW)
        assert should_execute(job, NOW + timedelta(hours=1)) is True

    def test_suppression_wins_over_pattern(self) -> None:
        job = _make_job("* * * * *")
        _stamp(job, NOW)
        assert should_execute(job, NOW.replace(second=30)) is False

    def test_status_does_not_block_next_run(self) -> None:
        """Failed and timed out jobs stay schedulable."""
        for status in (JobStatus.FAILED, JobStatus.TIMEOUT, JobStatus.RUNNING):
            job = _make_job("* * * * *", status=status)
            _stamp(job, NOW - timedelta(minutes=1))
            assert should_execute(job, NOW) is True

    def test_daily_job_due_again_next_day(self) -> None:
        job = _make_job("30 10 * * *")
        _stamp(job, NOW)
        assert should_execute(job, NOW + timedelta(seconds=20)) is False
        assert should_execute(job, NOW + timedelta(days=1)) is True

    def test_suppression_compares_in_local_time(self) -> None:
        """A dispatch time stored in UTC suppresses the same local minute."""
        berlin = ZoneInfo("Europe/Berlin")
        job = _make_job("30 12 * * *")
        _stamp(job, NOW.astimezone(berlin))
        job.last_run_at = NOW
        assert should_execute(job, NOW.astimezone(berlin)) is False
        assert should_execute(job, (NOW + timedelta(days=1)).astimezone(berlin)) is True

    def test_never_fired_job_is_due(self) -> None:
        job = _make_job("30 10 * * *")
        job.last_executed_minute = 30
        job.last_executed_hour = 10
        assert should_execute(job, NOW) is True
