"""Shared helpers for CLI commands.

Centralises target-date resolution so that every command accepts the same
``--date`` / ``--days-before`` pair.
"""

import re
from datetime import date, timedelta
from typing import Optional

from dmarc_metrics_common import InputValidationError

_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_DAYS_RE = re.compile(r"^\d+$")


def parse_date(value: str) -> date:
    """Parse ``YYYY-MM-DD`` into a date.

    Raises:
        InputValidationError: If the format or the date itself is invalid
    """
    match = _DATE_RE.match(value.strip())
    if not match:
        raise InputValidationError(f"--date must be in format YYYY-MM-DD, got {value!r}")
    try:
        return date(*(int(part) for part in match.groups()))
    except ValueError as e:
        raise InputValidationError(f"--date {value!r} is not a valid date: {e}") from e


def parse_days_before(value: str) -> int:
    """Parse a non-negative day offset.

    Raises:
        InputValidationError: If the value is not a non-negative integer
    """
    if not _DAYS_RE.match(value.strip()):
        raise InputValidationError(f"--days-before must be a non-negative integer, got {value!r}")
    return int(value)


def resolve_target_date(
    date_value: Optional[str],
    days_before: Optional[str],
    today: Optional[date] = None,
) -> date:
    """Resolve exactly one of ``--date`` / ``--days-before`` to a date.

    Args:
        date_value: Explicit date string
        days_before: Offset from today as a string
        today: Reference date (default: date.today())

    Raises:
        InputValidationError: If neither or both are given, or either is malformed
    """
    if (date_value is None) == (days_before is None):
        raise InputValidationError("Exactly one of --date or --days-before must be given")

    if date_value is not None:
        return parse_date(date_value)

    return date_before(parse_days_before(days_before), today)


def date_before(days: int, today: Optional[date] = None) -> date:
    """Return ``today`` minus ``days`` days.

    Raises:
        InputValidationError: If the result falls outside the calendar
    """
    today = today or date.today()
    try:
        return today - timedelta(days=days)
    except OverflowError as e:
        raise InputValidationError(f"--days-before {days} is out of range") from e
