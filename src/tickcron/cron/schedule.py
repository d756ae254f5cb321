"""Due-job evaluation.

This module decides whether a job should fire at a given instant.
"""

import logging
from datetime import datetime

from tickcron.cron.errors import ParseError
from tickcron.cron.expression import parse_expression
from tickcron.cron.types import CronJob

logger = logging.getLogger(__name__)


def should_execute(job: CronJob, now: datetime) -> bool:
    """Check if a job is due at the given instant.

    A job is due when it is enabled, its schedule parses, it has not
    already been dispatched during the same calendar minute, and all five
    schedule fields match ``now``.

    Args:
        job: The job to evaluate.
        now: Current time, in the scheduler's timezone.

    Returns:
        True if the job should be dispatched now.
    """
    if not job.enabled:
        return False

    try:
        expression = parse_expression(job.schedule)
    except ParseError as e:
        logger.debug(f"Skipping job {job.name} ({job.id}): {e}")
        return False

    # Several ticks land in the same minute; fire only on the first
    if job.fired_at(now):
        return False

    return expression.matches(now)
