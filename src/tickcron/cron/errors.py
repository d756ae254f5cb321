"""Error taxonomy for the cron engine.

Only schedule and job validation errors are raised to callers of the
service API. Execution failures and timeouts are recorded on the job's
history and never propagate into the scheduler loop.
"""


class CronError(Exception):
    """Base class for all cron engine errors."""


class ParseError(CronError, ValueError):
    """A schedule string could not be parsed."""


class JobValidationError(CronError, ValueError):
    """A job definition is missing required fields or has invalid values."""


class ExecutionFailure(CronError):
    """An action reported an error while running."""


class TimeoutExceeded(CronError):
    """The deadline won the race against an action.

    Attributes:
        timeout_ms: The deadline that was exceeded, in milliseconds.
    """

    def __init__(self, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(f"Job timed out after {timeout_ms}ms")
