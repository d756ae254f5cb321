"""Cron scheduling engine.

This package provides:
- Five-field cron expression parsing and matching
- Due-job evaluation with once-per-minute suppression
- Execution with timeouts and bounded per-job history
- A once-per-second scheduler loop
- Push-based job events and optional JSON persistence

Example:
    from tickcron.cron import CronService, StubExecutor

    service = CronService(executor=StubExecutor(delay=0.1))
    service.add_job("Heartbeat", "* * * * *", "ping", timeout_ms=1000)

    await service.start()
"""

from tickcron.cron.coordinator import ExecutionCoordinator
from tickcron.cron.errors import (
    CronError,
    ExecutionFailure,
    JobValidationError,
    ParseError,
    TimeoutExceeded,
)
from tickcron.cron.events import EventBus, JobEvent, JobEventKind
from tickcron.cron.executor import (
    ActionExecutor,
    CommandExecutor,
    SimulatedExecutor,
    StubExecutor,
    create_executor,
)
from tickcron.cron.expression import (
    CronExpression,
    describe_expression,
    is_valid_expression,
    matches_field,
    next_fire_time,
    parse_expression,
    upcoming_fire_times,
    validate_expression,
)
from tickcron.cron.schedule import should_execute
from tickcron.cron.service import CronService
from tickcron.cron.storage import CronStorage
from tickcron.cron.types import (
    HISTORY_LIMIT,
    CronJob,
    CronJobCreate,
    CronJobUpdate,
    ExecutionOutcome,
    ExecutionRecord,
    JobStatus,
)

__all__ = [
    # Service
    "CronService",
    "ExecutionCoordinator",
    # Types
    "CronJob",
    "CronJobCreate",
    "CronJobUpdate",
    "ExecutionOutcome",
    "ExecutionRecord",
    "JobStatus",
    "HISTORY_LIMIT",
    # Errors
    "CronError",
    "ParseError",
    "JobValidationError",
    "ExecutionFailure",
    "TimeoutExceeded",
    # Events
    "EventBus",
    "JobEvent",
    "JobEventKind",
    # Executors
    "ActionExecutor",
    "CommandExecutor",
    "SimulatedExecutor",
    "StubExecutor",
    "create_executor",
    # Storage
    "CronStorage",
    # Expressions
    "CronExpression",
    "parse_expression",
    "matches_field",
    "validate_expression",
    "is_valid_expression",
    "next_fire_time",
    "upcoming_fire_times",
    "describe_expression",
    "should_execute",
]
