"""
Time rules for attendance records.
Handles HH:MM parsing, worked-hours derivation, mobile number cleanup and timezone conversions.
"""
import re
from datetime import date, datetime, time
from typing import Optional

import pytz

from ..config import settings

_HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def parse_hhmm(value: Optional[str]) -> Optional[time]:
    """
    Parse a 24 hour "HH:MM" string.

    Args:
        value: Time text, e.g. "09:30"

    Returns:
        time object, or None when value is empty or malformed
    """
    if not value:
        return None
    match = _HHMM.match(value.strip())
    if not match:
        return None
    return time(int(match.group(1)), int(match.group(2)))


def compute_hours(
    time_in: Optional[str],
    time_out: Optional[str],
    default: Optional[float] = None,
) -> float:
    """
    Worked hours between clock-in and clock-out on the same day.

    Both times present and time_out later than time_in gives elapsed minutes / 60
    rounded to 2 decimals. Anything else (missing, malformed, equal or overnight
    times) gives the default workday.
    """
    if default is None:
        default = settings.attendance_default_hours

    start = parse_hhmm(time_in)
    end = parse_hhmm(time_out)
    if start is None or end is None:
        return default

    minutes = (end.hour * 60 + end.minute) - (start.hour * 60 + start.minute)
    if minutes <= 0:
        return default
    return round(minutes / 60, 2)


def sanitize_mobile(value: Optional[str]) -> Optional[str]:
    """Keep only digits; return them when exactly 10 remain, otherwise None."""
    if not value:
        return None
    digits = re.sub(r"\D", "", value)
    return digits if len(digits) == 10 else None


def get_timezone(timezone_str: Optional[str] = None):
    try:
        return pytz.timezone(timezone_str or settings.tz_default)
    except pytz.UnknownTimeZoneError:
        return pytz.timezone(settings.tz_default)


def utc_to_local(utc_datetime: datetime, timezone_str: Optional[str] = None) -> datetime:
    """
    Convert UTC datetime to local timezone.

    Args:
        utc_datetime: UTC datetime (naive values are treated as UTC)
        timezone_str: Timezone string (e.g., "Asia/Kolkata"); defaults to TZ_DEFAULT

    Returns:
        Local datetime (timezone-aware)
    """
    if utc_datetime.tzinfo is None:
        utc_datetime = utc_datetime.replace(tzinfo=pytz.UTC)
    return utc_datetime.astimezone(get_timezone(timezone_str))


def local_now(timezone_str: Optional[str] = None) -> datetime:
    return datetime.now(pytz.UTC).astimezone(get_timezone(timezone_str))


def work_date(timezone_str: Optional[str] = None) -> date:
    """Today's calendar date at the site."""
    return local_now(timezone_str).date()
