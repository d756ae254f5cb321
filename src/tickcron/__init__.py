"""tickcron - a cron scheduling engine with timeouts and execution history."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("tickcron")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from tickcron.cron import CronJob, CronService, ExecutionRecord, JobStatus

__all__ = ["CronService", "CronJob", "ExecutionRecord", "JobStatus"]
