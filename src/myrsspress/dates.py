"""Date helpers for the fixed newspaper timezone."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from .config import get_settings

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class HistoricalDateError(ValueError):
    """Raised when a requested newspaper date is malformed or out of range."""


@dataclass
class DateValidation:
    valid: bool
    error: Optional[str] = None


def newspaper_tz() -> ZoneInfo:
    return get_settings().tz


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def today_local(now: Optional[datetime] = None) -> date:
    """Return today's date in the newspaper timezone."""
    current = now or now_utc()
    return current.astimezone(newspaper_tz()).date()


def parse_date(value: str) -> date:
    if not DATE_PATTERN.match(value or ""):
        raise HistoricalDateError("Invalid date format. Use YYYY-MM-DD")
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise HistoricalDateError("Invalid date format. Use YYYY-MM-DD") from exc


def validate_date(value: str, *, now: Optional[datetime] = None) -> DateValidation:
    """Accept dates in [today - retention_days, today] in the newspaper timezone."""
    try:
        target = parse_date(value)
    except HistoricalDateError as exc:
        return DateValidation(False, str(exc))

    today = today_local(now)
    if target > today:
        return DateValidation(False, "Future newspapers are not available")
    if target < today - timedelta(days=get_settings().retention_days):
        return DateValidation(False, "Newspapers older than 7 days are not available")
    return DateValidation(True)


def day_window(target: date, *, now: Optional[datetime] = None) -> tuple[datetime, datetime]:
    """
    Start and inclusive end of a local day as aware datetimes. For today the
    window ends at the current instant instead of midnight.
    """
    tz = newspaper_tz()
    current = now or now_utc()
    start = datetime.combine(target, time.min, tzinfo=tz)
    if target == today_local(current):
        return start, current
    return start, datetime.combine(target, time(23, 59, 59, 999000), tzinfo=tz)


def cutoff_date(now: Optional[datetime] = None) -> str:
    """Dates strictly before this YYYY-MM-DD value are past retention."""
    days = get_settings().retention_days
    return (today_local(now) - timedelta(days=days)).isoformat()


def iso_now() -> str:
    return now_utc().isoformat().replace("+00:00", "Z")
