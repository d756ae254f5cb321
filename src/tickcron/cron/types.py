"""Type definitions for the cron engine.

This module defines the Pydantic models used for job definitions,
runtime status and execution history.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Maximum number of execution records kept per job
HISTORY_LIMIT = 10


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    """Current status of a job.

    Attributes:
        IDLE: Enabled and waiting for its next due minute.
        RUNNING: An execution has been dispatched and not yet settled.
        SUCCESS: The last execution completed successfully.
        FAILED: The last execution reported an error.
        TIMEOUT: The last execution exceeded its deadline.
        DISABLED: The job is switched off and never fires.
    """

    IDLE = "idle"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"
    DISABLED = "disabled"


class ExecutionOutcome(str, Enum):
    """How a single execution settled."""

    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"


class ExecutionRecord(BaseModel):
    """Immutable log entry describing one job run.

    Attributes:
        id: Unique run identifier.
        execution_id: Dispatch sequence number that produced this record.
        timestamp: Completion time.
        outcome: How the run settled.
        duration_ms: Wall-clock time from dispatch to settlement.
        result: Result payload (success only).
        error: Error message (failed and timeout only).
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Unique run identifier")
    execution_id: int = Field(..., description="Dispatch sequence number")
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="Completion time"
    )
    outcome: ExecutionOutcome = Field(..., description="How the run settled")
    duration_ms: float = Field(..., ge=0, description="Dispatch to settle, in ms")
    result: Any = Field(default=None, description="Result payload on success")
    error: str | None = Field(default=None, description="Error message on failure")

    @property
    def succeeded(self) -> bool:
        return self.outcome == ExecutionOutcome.SUCCESS


class CronJob(BaseModel):
    """A scheduled job and its runtime state.

    Attributes:
        id: Unique job identifier.
        name: Human-readable job name.
        schedule: Five-field cron expression.
        action: Opaque descriptor of the unit of work (e.g. a shell command).
        timeout_ms: Execution deadline in milliseconds.
        enabled: Whether the job is active.
        status: Current status.
        last_executed_minute: Minute of the last dispatch.
        last_executed_hour: Hour of the last dispatch.
        last_run_at: Time of the last dispatch.
        last_result: Result of the last successful execution.
        last_error: Error of the last failed or timed out execution.
        history: Most recent execution records, newest first.
        created_at: Job creation timestamp.
        updated_at: Last modification timestamp.
    """

    id: str = Field(..., description="Unique job identifier")
    name: str = Field(..., description="Human-readable job name")
    schedule: str = Field(..., description="Cron expression (e.g., '*/5 * * * *')")
    action: str = Field(..., description="Unit of work to execute")
    timeout_ms: int = Field(..., gt=0, description="Execution deadline in ms")
    enabled: bool = Field(default=True, description="Whether the job is active")
    status: JobStatus = Field(default=JobStatus.IDLE, description="Current status")
    last_executed_minute: int | None = Field(
        default=None,
        description="Minute of the last dispatch"
    )
    last_executed_hour: int | None = Field(
        default=None,
        description="Hour of the last dispatch"
    )
    last_run_at: datetime | None = Field(
        default=None,
        description="Time of the last dispatch"
    )
    last_result: Any = Field(default=None, description="Result of last success")
    last_error: str | None = Field(default=None, description="Error of last failure")
    history: list[ExecutionRecord] = Field(
        default_factory=list,
        description="Most recent executions, newest first"
    )
    created_at: datetime = Field(
        default_factory=_utcnow,
        description="Job creation timestamp"
    )
    updated_at: datetime = Field(
        default_factory=_utcnow,
        description="Last modification timestamp"
    )

    def record_execution(self, record: ExecutionRecord) -> None:
        """Prepend a record to the history, evicting the oldest beyond the cap."""
        self.history.insert(0, record)
        del self.history[HISTORY_LIMIT:]

    def fired_at(self, moment: datetime) -> bool:
        """Check whether the last dispatch happened in the calendar minute of ``moment``.

        The stamped (hour, minute) pair must match and the last dispatch
        must fall on the same date, so a daily job is due again the next day.
        """
        if self.last_run_at is None:
            return False
        if (self.last_executed_minute, self.last_executed_hour) != (moment.minute, moment.hour):
            return False

        last = self.last_run_at
        if last.tzinfo is not None and moment.tzinfo is not None:
            last = last.astimezone(moment.tzinfo)
        return (
            last.replace(second=0, microsecond=0, tzinfo=None)
            == moment.replace(second=0, microsecond=0, tzinfo=None)
        )

    def touch(self) -> None:
        self.updated_at = _utcnow()


class CronJobCreate(BaseModel):
    """Input model for creating a new job.

    Attributes:
        name: Human-readable job name.
        schedule: Five-field cron expression.
        action: Unit of work to execute.
        timeout_ms: Execution deadline in milliseconds.
        enabled: Whether the job starts enabled.
    """

    name: str = Field(..., description="Human-readable job name")
    schedule: str = Field(..., description="Cron expression")
    action: str = Field(..., description="Unit of work to execute")
    timeout_ms: int = Field(default=30_000, gt=0, description="Execution deadline in ms")
    enabled: bool = Field(default=True, description="Whether to start enabled")

    @field_validator("name", "schedule", "action")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value


class CronJobUpdate(BaseModel):
    """Input model for updating a job definition.

    All fields are optional; only provided fields are updated.
    """

    name: str | None = Field(default=None, description="New job name")
    schedule: str | None = Field(default=None, description="New cron expression")
    action: str | None = Field(default=None, description="New unit of work")
    timeout_ms: int | None = Field(default=None, gt=0, description="New deadline in ms")

    @field_validator("name", "schedule", "action")
    @classmethod
    def _not_blank(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value
