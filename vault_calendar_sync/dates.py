"""
Date Helpers

Todo dates are kept as strings in one of two canonical forms:

- a bare date: ``YYYY-MM-DD``
- a date-time in the local zone: ``YYYY-MM-DDTHH:MM:SS+HH:MM``

Lines in note files use ``YYYY-MM-DD`` and ``YYYY-MM-DD@HH:mm`` instead.
Everything here is tolerant: unparsable input yields None, never an exception.
"""

from datetime import datetime
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import os
import re

DATE_FORMAT = "%Y-%m-%d"
LINE_DATE_TIME_FORMAT = "%Y-%m-%d@%H:%M"

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DATE_TIME_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}")


def is_date(value: Optional[str]) -> bool:
    """True if value looks like a bare date."""
    return bool(value) and DATE_PATTERN.match(value) is not None


def is_date_time(value: Optional[str]) -> bool:
    """True if value looks like a full date-time."""
    return bool(value) and DATE_TIME_PATTERN.match(value) is not None


def parse_moment(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a canonical date or date-time string into an aware datetime.

    Bare dates become local midnight. Returns None for empty or invalid input.
    """
    if not value:
        return None
    try:
        if is_date(value):
            return datetime.strptime(value, DATE_FORMAT).astimezone()
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


def compare_by_date(a: Optional[str], b: Optional[str]) -> int:
    """
    Compare two date strings chronologically.

    Missing values sort before invalid ones, invalid before valid ones.
    Returns -1, 0 or 1.
    """
    if not a and not b:
        return 0
    if not a:
        return -1
    if not b:
        return 1

    moment_a = parse_moment(a)
    moment_b = parse_moment(b)
    if moment_a is None and moment_b is None:
        return (a > b) - (a < b)
    if moment_a is None:
        return -1
    if moment_b is None:
        return 1
    return (moment_a > moment_b) - (moment_a < moment_b)


def start_of_day(moment: datetime) -> datetime:
    """Midnight of the given moment's day, same zone."""
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def format_date(moment: datetime) -> str:
    return moment.strftime(DATE_FORMAT)


def format_date_time(moment: datetime) -> str:
    """Render a datetime in the canonical local date-time form."""
    return moment.astimezone().isoformat(timespec="seconds")


def parse_line_date(text: str) -> Optional[str]:
    """Normalize a ``YYYY-MM-DD`` token from a line; None if not a real date."""
    try:
        return format_date(datetime.strptime(text, DATE_FORMAT))
    except ValueError:
        return None


def parse_line_date_time(text: str) -> Optional[str]:
    """Normalize a ``YYYY-MM-DD@HH:mm`` token from a line; None if invalid."""
    try:
        return format_date_time(datetime.strptime(text, LINE_DATE_TIME_FORMAT).astimezone())
    except ValueError:
        return None


def to_line_date_time(value: str) -> Optional[str]:
    """Render a canonical date-time as ``YYYY-MM-DD@HH:mm`` in local time."""
    moment = parse_moment(value)
    if moment is None:
        return None
    return moment.astimezone().strftime(LINE_DATE_TIME_FORMAT)


def date_part(value: str) -> Optional[str]:
    """The ``YYYY-MM-DD`` portion of a canonical date or date-time."""
    if is_date(value):
        return value
    moment = parse_moment(value)
    return format_date(moment.astimezone()) if moment else None


def local_timezone_name() -> str:
    """
    IANA name of the process's local zone.

    Checks $TZ first, then the /etc/localtime symlink, and falls back to UTC.
    """
    tz = os.environ.get("TZ", "").lstrip(":")
    if tz:
        try:
            ZoneInfo(tz)
            return tz
        except (ZoneInfoNotFoundError, ValueError):
            pass

    localtime = Path("/etc/localtime")
    if localtime.is_symlink():
        target = str(localtime.resolve())
        marker = "zoneinfo/"
        if marker in target:
            return target.split(marker, 1)[1]

    return "UTC"
