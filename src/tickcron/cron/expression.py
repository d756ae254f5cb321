"""Cron expression parsing and matching.

A schedule is five whitespace-separated fields:

    minute  hour  day-of-month  month  weekday

Each field is matched independently against the current time unit using
one of the following grammars, tried in order:

    *        matches every value
    */N      matches values divisible by N
    a,b,c    matches any listed value
    a-b      matches a <= value <= b (no wraparound)
    N        matches exactly N

Parsing is lenient: only the field count is checked. Malformed fields
never raise, they simply never match. Strict validation (grammar and
value bounds) is available through ``validate_expression``.

Day-of-month and weekday are combined with AND, unlike POSIX cron which
ORs them when both are restricted.
"""

import re
from dataclasses import dataclass, fields
from datetime import datetime, timedelta

from croniter import croniter

from tickcron.cron.errors import ParseError

FIELD_NAMES = ("minute", "hour", "day_of_month", "month", "weekday")

WEEKDAY_NAMES = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]

_FIELD_GRAMMAR = re.compile(r"^(\*|\*/\d+|\d+(,\d+)+|\d+-\d+|\d+)$")


@dataclass(frozen=True)
class CronExpression:
    """A parsed five-field cron expression."""

    minute: str
    hour: str
    day_of_month: str
    month: str
    weekday: str

    def matches(self, moment: datetime) -> bool:
        """Check whether every field matches the given instant.

        Args:
            moment: The instant to test (already in the schedule's timezone).

        Returns:
            True if all five fields match.
        """
        values = time_units(moment)
        return all(
            matches_field(getattr(self, name), values[name])
            for name in FIELD_NAMES
        )

    def __str__(self) -> str:
        return " ".join(getattr(self, f.name) for f in fields(self))


def time_units(moment: datetime) -> dict[str, int]:
    """Split an instant into the values the five cron fields match against.

    Months are 1-12 and weekdays are 0-6 with 0 meaning Sunday.
    """
    return {
        "minute": moment.minute,
        "hour": moment.hour,
        "day_of_month": moment.day,
        "month": moment.month,
        "weekday": (moment.weekday() + 1) % 7,
    }


def parse_expression(schedule: str) -> CronExpression:
    """Split a schedule string into its five fields.

    Args:
        schedule: The cron expression.

    Returns:
        The parsed expression.

    Raises:
        ParseError: If the schedule does not have exactly five fields.
    """
    parts = (schedule or "").split()
    if len(parts) != len(FIELD_NAMES):
        raise ParseError("wrong field count")
    return CronExpression(*parts)


def _to_int(text: str) -> int | None:
    if not (text.isascii() and text.isdigit()):
        return None
    return int(text)


def matches_field(pattern: str, value: int) -> bool:
    """Evaluate one cron field pattern against a time-unit value.

    Never raises; patterns that do not conform to a supported grammar
    (including ``*/0`` and non-numeric steps) do not match.

    Args:
        pattern: The field pattern, e.g. ``*/5`` or ``9-17``.
        value: The current value of the time unit.

    Returns:
        True if the pattern matches.
    """
    if pattern == "*":
        return True

    if pattern.startswith("*/"):
        step = _to_int(pattern[2:])
        return step is not None and step > 0 and value % step == 0

    if "," in pattern:
        return any(_to_int(item) == value for item in pattern.split(","))

    if "-" in pattern:
        start, _, end = pattern.partition("-")
        low, high = _to_int(start), _to_int(end)
        if low is None or high is None:
            return False
        return low <= value <= high

    return _to_int(pattern) == value


def validate_expression(schedule: str, strict: bool = False) -> CronExpression:
    """Parse a schedule, optionally checking grammar and value bounds.

    Args:
        schedule: The cron expression.
        strict: Also require every field to use a supported grammar and
            all values to lie within the field's domain.

    Returns:
        The parsed expression.

    Raises:
        ParseError: If the schedule is invalid.
    """
    expression = parse_expression(schedule)
    if not strict:
        return expression

    for name in FIELD_NAMES:
        pattern = getattr(expression, name)
        if not _FIELD_GRAMMAR.match(pattern):
            raise ParseError(f"unsupported {name} field: {pattern!r}")
        if pattern.startswith("*/") and int(pattern[2:]) == 0:
            raise ParseError(f"zero step in {name} field: {pattern!r}")

    # croniter knows the domain of each field (minute 0-59, month 1-12, ...)
    if not croniter.is_valid(str(expression)):
        raise ParseError(f"value out of range in {str(expression)!r}")

    return expression


def is_valid_expression(schedule: str, strict: bool = False) -> bool:
    """Check whether a schedule is valid.

    Args:
        schedule: The cron expression.
        strict: Apply strict validation.

    Returns:
        True if the expression is valid.
    """
    try:
        validate_expression(schedule, strict=strict)
        return True
    except ParseError:
        return False


def next_fire_time(
    expression: CronExpression,
    after: datetime,
    horizon_days: int = 366,
) -> datetime | None:
    """Find the first minute strictly after ``after`` that matches.

    Args:
        expression: The parsed expression.
        after: Starting instant (its timezone is kept).
        horizon_days: How many days ahead to search.

    Returns:
        The next matching minute, or None if none is found in the horizon.
    """
    start = after.replace(second=0, microsecond=0) + timedelta(minutes=1)
    day = start.replace(hour=0, minute=0)

    for offset in range(horizon_days + 1):
        candidate = day + timedelta(days=offset)
        units = time_units(candidate)
        if not (
            matches_field(expression.month, units["month"])
            and matches_field(expression.day_of_month, units["day_of_month"])
            and matches_field(expression.weekday, units["weekday"])
        ):
            continue

        first_hour = start.hour if offset == 0 else 0
        for hour in range(first_hour, 24):
            if not matches_field(expression.hour, hour):
                continue
            first_minute = start.minute if offset == 0 and hour == start.hour else 0
            for minute in range(first_minute, 60):
                if matches_field(expression.minute, minute):
                    return candidate.replace(hour=hour, minute=minute)

    return None


def upcoming_fire_times(
    expression: CronExpression,
    after: datetime,
    count: int = 3,
) -> list[datetime]:
    """Compute the next ``count`` fire times after an instant."""
    runs: list[datetime] = []
    current = after
    while len(runs) < count:
        nxt = next_fire_time(expression, current)
        if nxt is None:
            break
        runs.append(nxt)
        current = nxt
    return runs


def describe_expression(schedule: str) -> str:
    """Get a human-readable description of a cron expression.

    Args:
        schedule: The cron expression.

    Returns:
        Human-readable description or an error message.
    """
    try:
        expression = parse_expression(schedule)
    except ParseError:
        return "Invalid cron expression"

    descriptions = []

    # Minute
    if expression.minute == "*":
        descriptions.append("every minute")
    elif expression.minute.startswith("*/"):
        descriptions.append(f"every {expression.minute[2:]} minutes")
    else:
        descriptions.append(f"at minute {expression.minute}")

    # Hour
    if expression.hour == "*":
        descriptions.append("of every hour")
    elif expression.hour.startswith("*/"):
        descriptions.append(f"of every {expression.hour[2:]} hours")
    else:
        descriptions.append(f"past hour {expression.hour}")

    if expression.day_of_month != "*":
        descriptions.append(f"on day {expression.day_of_month}")

    if expression.month != "*":
        descriptions.append(f"in month {expression.month}")

    if expression.weekday != "*":
        dow = _to_int(expression.weekday)
        if dow is not None and dow < len(WEEKDAY_NAMES):
            descriptions.append(f"on {WEEKDAY_NAMES[dow]}")
        else:
            descriptions.append(f"on weekday {expression.weekday}")

    return " ".join(descriptions)
