"""Shared helpers for timezone-aware report date calculations."""
from __future__ import annotations

from datetime import date, datetime
from typing import Tuple
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "Asia/Bangkok"
PORTAL_DATETIME_FORMAT = "%Y-%m-%d"


def get_timezone(name: str | None = None) -> ZoneInfo:
    """Return the portal timezone.

    The portal filters by its own wall clock, so "today" must be computed in
    the portal's timezone rather than the machine locale (a cron host running
    in UTC would otherwise ask for yesterday's report before 07:00 Bangkok).
    """

    return ZoneInfo(name or DEFAULT_TIMEZONE)


def aware_now(tz: ZoneInfo | None = None) -> datetime:
    """Return ``datetime.now`` in the portal timezone."""

    timezone = tz or get_timezone()
    return datetime.now(timezone)


def get_report_date(reference: datetime | None = None, tz: ZoneInfo | None = None) -> date:
    """Return the report date (today in the portal timezone)."""

    current = reference or aware_now(tz)
    if current.tzinfo is not None and tz is not None:
        current = current.astimezone(tz)
    return current.date()


def format_portal_datetime(day: date, time_of_day: str) -> str:
    """Render ``YYYY-MM-DD HH:MM:SS``, the literal form the date inputs parse."""

    return f"{day.strftime(PORTAL_DATETIME_FORMAT)} {time_of_day}"


def daily_window(day: date, *, start: str = "06:00:00", end: str = "18:00:00") -> Tuple[str, str]:
    """Return the (start, end) strings for the daily alert window."""

    return format_portal_datetime(day, start), format_portal_datetime(day, end)
