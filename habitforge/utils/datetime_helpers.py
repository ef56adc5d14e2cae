"""
Standardized Date/Time Handling Utilities

Rules the rest of the codebase relies on:
- Completion instants are stored in the database as UTC
- Streaks, duplicate checks and "today" are evaluated on the user's local
  calendar day (IANA timezone stored on the user, overridable per request)
- Never mix naive and aware datetimes; naive input is taken as UTC
"""

import logging
from datetime import datetime, date, time, timedelta
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from habitforge.config import DEFAULT_TIMEZONE

logger = logging.getLogger(__name__)

UTC = ZoneInfo("UTC")


def get_zone(tz_name: Optional[str]) -> ZoneInfo:
    """
    Resolve an IANA timezone name, falling back to UTC

    Args:
        tz_name: Timezone name (e.g. "Europe/Stockholm"), may be None/empty

    Returns:
        ZoneInfo for the name, or UTC if it is missing or unknown
    """
    if not tz_name:
        return ZoneInfo(DEFAULT_TIMEZONE)

    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        logger.error(f"Invalid timezone '{tz_name}': {e}")
        return ZoneInfo(DEFAULT_TIMEZONE)


def is_valid_timezone(tz_name: str) -> bool:
    """Check whether tz_name is a known IANA timezone"""
    try:
        ZoneInfo(tz_name)
        return True
    except (ZoneInfoNotFoundError, ValueError):
        return False


def now_utc() -> datetime:
    """
    Get current datetime in UTC (timezone-aware)

    Returns:
        Current datetime in UTC with timezone info
    """
    return datetime.now(UTC)


def to_utc(dt: datetime) -> datetime:
    """
    Convert datetime to UTC for database storage

    Naive datetimes are assumed to already be UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def local_date(dt: datetime, tz_name: Optional[str]) -> date:
    """
    Calendar date of an instant in the given timezone

    Args:
        dt: Instant (assumed UTC if naive)
        tz_name: IANA timezone name

    Returns:
        Local date
    """
    return to_utc(dt).astimezone(get_zone(tz_name)).date()


def today_in_timezone(tz_name: Optional[str], now: Optional[datetime] = None) -> date:
    """Today's date in the given timezone"""
    return local_date(now or now_utc(), tz_name)


def get_day_start_utc(date_obj: date, tz_name: Optional[str]) -> datetime:
    """
    Get the start of a local day (00:00) as a UTC instant

    Args:
        date_obj: Date in the user's timezone
        tz_name: IANA timezone name

    Returns:
        Datetime at start of day in UTC
    """
    day_start = datetime.combine(date_obj, time.min).replace(tzinfo=get_zone(tz_name))
    return to_utc(day_start)


def parse_completion_datetime(value: Optional[str], tz_name: Optional[str]) -> datetime:
    """
    Parse a client-supplied completion date/time into a UTC instant

    Accepts:
    - None: now
    - YYYY-MM-DD: noon on that local day (keeps the day stable across DST)
    - ISO 8601 datetime, with or without offset (naive = user's local time)

    Raises:
        ValueError: If value is not a recognizable date/datetime
    """
    if value is None or value == "":
        return now_utc()

    zone = get_zone(tz_name)

    if len(value) == 10:
        try:
            day = date.fromisoformat(value)
        except ValueError as e:
            raise ValueError(f"Invalid date '{value}'. Expected YYYY-MM-DD") from e
        return to_utc(datetime.combine(day, time(12, 0)).replace(tzinfo=zone))

    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise ValueError(f"Invalid datetime '{value}'. Expected ISO 8601") from e

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=zone)
    return to_utc(parsed)


def parse_month(month: str) -> Tuple[date, date]:
    """
    Parse a YYYY-MM string into (first_day, first_day_of_next_month)

    Raises:
        ValueError: If month is not formatted as YYYY-MM
    """
    try:
        year_str, month_str = month.split("-")
        first = date(int(year_str), int(month_str), 1)
    except (ValueError, AttributeError) as e:
        raise ValueError(f"Invalid month '{month}'. Expected YYYY-MM") from e

    if first.month == 12:
        next_first = date(first.year + 1, 1, 1)
    else:
        next_first = date(first.year, first.month + 1, 1)
    return first, next_first


def parse_user_time(time_str: str) -> time:
    """
    Parse time string (HH:MM format) to time object

    Raises:
        ValueError: If time_str is not in HH:MM format
    """
    try:
        hour, minute = map(int, time_str.split(":"))
        if not (0 <= hour < 24 and 0 <= minute < 60):
            raise ValueError(f"Invalid time: {time_str}")
        return time(hour, minute)
    except ValueError as e:
        raise ValueError(f"Invalid time format '{time_str}'. Expected HH:MM") from e
