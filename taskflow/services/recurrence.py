"""
Occurrence calculation for recurring tasks.

Pure date arithmetic: given a reference day, a recurrence kind and its
details, compute the next day on which a recurring template is due.
Month and year steps go through dateutil's relativedelta, which clamps
to the last valid day of the target month (Jan 31 + 1 month = Feb 28).
"""

import calendar
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Dict, Optional, Union

import pytz
from dateutil.relativedelta import relativedelta


class RecurrenceKind(str, Enum):
    """Supported recurrence patterns."""

    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


def start_of_day(value: Union[date, datetime]) -> datetime:
    """Normalize a date or datetime to midnight of the same calendar day."""
    if isinstance(value, datetime):
        return value.replace(hour=0, minute=0, second=0, microsecond=0)
    return datetime.combine(value, time.min)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Store timestamps as naive UTC, like datetime.utcnow()."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(pytz.utc).replace(tzinfo=None)


def current_day(tz_name: str = "UTC") -> datetime:
    """Start of the current calendar day in the given timezone, as a naive datetime."""
    now = datetime.now(pytz.timezone(tz_name))
    return start_of_day(now.replace(tzinfo=None))


def utc_to_local(value: datetime, tz_name: str = "UTC") -> datetime:
    """Naive UTC timestamp -> naive wall-clock time in the given timezone."""
    return pytz.utc.localize(value).astimezone(pytz.timezone(tz_name)).replace(tzinfo=None)


def local_to_utc(value: datetime, tz_name: str = "UTC") -> datetime:
    """Naive wall-clock time in the given timezone -> naive UTC timestamp."""
    return pytz.timezone(tz_name).localize(value).astimezone(pytz.utc).replace(tzinfo=None)


def local_day(value: datetime, tz_name: str = "UTC") -> datetime:
    """Calendar day, in the given timezone, of a stored naive UTC timestamp."""
    return start_of_day(utc_to_local(value, tz_name))


def _clamp_replace(value: datetime, year: Optional[int] = None, month: Optional[int] = None,
                   day: Optional[int] = None) -> datetime:
    """Replace year/month/day, clamping the day to the length of the resulting month."""
    year = value.year if year is None else year
    month = value.month if month is None else month
    day = value.day if day is None else day
    last_day = calendar.monthrange(year, month)[1]
    return value.replace(year=year, month=month, day=max(1, min(day, last_day)))


def _int_detail(details: Optional[Dict[str, Any]], key: str) -> Optional[int]:
    # bool is an int subclass; a stray True must not become Monday
    if not details:
        return None
    value = details.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def _sunday_first_weekday(value: datetime) -> int:
    """Day of week with 0=Sunday ... 6=Saturday."""
    return (value.weekday() + 1) % 7


def _next_weekly(reference: datetime, day_of_week: Optional[int]) -> datetime:
    candidate = reference + timedelta(weeks=1)
    if day_of_week is not None and 0 <= day_of_week <= 6:
        # Step back to the target weekday within the week ending at the candidate
        candidate -= timedelta(days=(_sunday_first_weekday(candidate) - day_of_week) % 7)
        if candidate <= reference:
            candidate += timedelta(weeks=1)
    return candidate


def _next_monthly(reference: datetime, day_of_month: Optional[int]) -> datetime:
    candidate = reference + relativedelta(months=1)
    if day_of_month is not None:
        candidate = _clamp_replace(candidate, day=day_of_month)
        if candidate <= reference:
            candidate = _clamp_replace(candidate + relativedelta(months=1), day=day_of_month)
    return candidate


def _next_yearly(reference: datetime, month: Optional[int], day_of_month: Optional[int]) -> datetime:
    candidate = reference + relativedelta(years=1)
    if month is not None and 0 <= month <= 11:
        candidate = _clamp_replace(candidate, month=month + 1)
    else:
        month = None
    if day_of_month is not None:
        candidate = _clamp_replace(candidate, day=day_of_month)
    if candidate <= reference:
        candidate = _clamp_replace(
            candidate,
            year=candidate.year + 1,
            month=None if month is None else month + 1,
            day=day_of_month,
        )
    return candidate


def next_occurrence(
    reference: Union[date, datetime],
    recurrence: Optional[str],
    details: Optional[Dict[str, Any]] = None,
) -> Optional[datetime]:
    """
    Calculate the next occurrence after a reference day.

    Args:
        reference: Day to step from; its time of day is discarded
        recurrence: One of none, daily, weekly, monthly, yearly
        details: Kind-specific overrides: day_of_week (0=Sunday..6),
            day_of_month (1-31), month (0=January..11)

    Returns:
        Midnight of the next occurrence, strictly after the reference day,
        or None when the kind is none or not recognized
    """
    reference = start_of_day(reference)

    if recurrence == RecurrenceKind.DAILY.value:
        return reference + timedelta(days=1)
    elif recurrence == RecurrenceKind.WEEKLY.value:
        return _next_weekly(reference, _int_detail(details, "day_of_week"))
    elif recurrence == RecurrenceKind.MONTHLY.value:
        return _next_monthly(reference, _int_detail(details, "day_of_month"))
    elif recurrence == RecurrenceKind.YEARLY.value:
        return _next_yearly(
            reference,
            _int_detail(details, "month"),
            _int_detail(details, "day_of_month"),
        )
    return None
