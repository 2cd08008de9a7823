#!/usr/bin/env python

"""Parse relative durations and absolute dates into lower-bound timestamps."""

import datetime
import re

DURATION_RE = re.compile(r"^(\d+)([hdw])$")

###############################################################################
# Errors
###############################################################################


class InvalidSinceError(ValueError):
    """Raised when a --since value is neither a duration nor a date."""

    def __init__(self, value: str):
        super().__init__(
            f'Invalid --since value "{value}". Use a duration (7d, 24h, 2w) or'
            " date (2026-02-01)."
        )
        self.value = value


###############################################################################
# Datetime helpers
###############################################################################


def get_current_utc_time() -> datetime.datetime:
    """
    Get the current UTC time.

    Returns:
        Current datetime in UTC timezone
    """
    return datetime.datetime.now(datetime.timezone.utc)


def parse_datetime_string(dt_string: str) -> datetime.datetime:
    """
    Convert a datetime string to a timezone-aware datetime object.

    Args:
        dt_string: ISO-8601 date or datetime, optionally with a 'Z' suffix

    Returns:
        A timezone-aware datetime object; naive input is taken as UTC
    """
    # GitHub API uses 'Z' suffix which needs to be converted to '+00:00'
    if dt_string.endswith("Z"):
        dt_string = dt_string[:-1] + "+00:00"

    dt = datetime.datetime.fromisoformat(dt_string)

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=datetime.timezone.utc)

    return dt


def format_api_timestamp(dt: datetime.datetime) -> str:
    """Format a datetime the way the GitHub search syntax expects it (UTC)."""
    return dt.astimezone(datetime.timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


###############################################################################
# Parser
###############################################################################


def _subtract_calendar_days(
    now: datetime.datetime, days: int
) -> datetime.datetime:
    # Step back on the local wall clock so that "1d" across a DST change is
    # still the same time of day yesterday.
    local_now = now.astimezone()
    wall_clock = local_now.replace(tzinfo=None) - datetime.timedelta(days=days)
    return wall_clock.astimezone()


def parse_since(
    raw: str, now: datetime.datetime | None = None
) -> datetime.datetime:
    """
    Convert a --since value into an absolute lower-bound timestamp.

    Accepts either ``<n>h``, ``<n>d`` or ``<n>w`` (hours, days or weeks before
    ``now``) or anything ``parse_datetime_string`` understands.

    Args:
        raw: The user-supplied value
        now: Reference time for relative durations (defaults to current time)

    Returns:
        A timezone-aware datetime

    Raises:
        InvalidSinceError: If the value cannot be parsed
    """
    value = raw.strip()
    match = DURATION_RE.match(value)
    if match:
        amount = int(match.group(1))
        unit = match.group(2)
        if now is None:
            now = get_current_utc_time()
        if unit == "h":
            return now - datetime.timedelta(hours=amount)
        if unit == "d":
            return _subtract_calendar_days(now, amount)
        return _subtract_calendar_days(now, amount * 7)

    try:
        return parse_datetime_string(value)
    except ValueError as e:
        raise InvalidSinceError(raw) from e
