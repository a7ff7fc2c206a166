import re
from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from shared.errors import ScheduleError

TIME_PATTERN = re.compile(r'^([01]?[0-9]|2[0-3]):([0-5][0-9])$')

DEFAULT_TIMEZONE = 'UTC'
DEFAULT_DURATION_MINUTES = 120
MIN_DURATION_MINUTES = 1
MAX_DURATION_MINUTES = 480


def utcnow() -> datetime:
    """Naive UTC now; every stored datetime is naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def get_zone(tz_name: str):
    if tz_name is not None and not isinstance(tz_name, str):
        raise ScheduleError("Timezone must be an IANA zone name")
    if not tz_name or tz_name.upper() == 'UTC':
        return timezone.utc
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ScheduleError(f"Unknown timezone '{tz_name}'")


def parse_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            # local calendar date, the zone offset is ignored
            return datetime.fromisoformat(text).date()
        except ValueError:
            pass
    raise ScheduleError("Date must be an ISO date (YYYY-MM-DD)")


def parse_time(value) -> str:
    match = TIME_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ScheduleError("Time must be in HH:MM format")
    return f"{int(match.group(1)):02d}:{match.group(2)}"


def parse_datetime(value) -> datetime:
    """Parse a tournament date (datetime, date or ISO string) into naive UTC."""
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            return to_naive_utc(datetime.fromisoformat(text))
        except ValueError:
            pass
    raise ScheduleError("Date must be an ISO date or datetime")


def combine(schedule_date, schedule_time, tz_name: str = DEFAULT_TIMEZONE) -> datetime:
    """Local date + HH:MM in ``tz_name`` -> naive UTC datetime."""
    day = parse_date(schedule_date)
    hours, minutes = (int(part) for part in parse_time(schedule_time).split(':'))
    local = datetime(day.year, day.month, day.day, hours, minutes, tzinfo=get_zone(tz_name))
    return to_naive_utc(local)


def validate_duration(minutes) -> Optional[int]:
    if minutes is None:
        return None
    if isinstance(minutes, bool) or not isinstance(minutes, int):
        raise ScheduleError("Duration must be a whole number of minutes")
    if minutes < MIN_DURATION_MINUTES:
        raise ScheduleError("Duration must be at least 1 minute")
    if minutes > MAX_DURATION_MINUTES:
        raise ScheduleError("Duration cannot exceed 8 hours")
    return minutes


def expires_at(scheduled_at: datetime, duration_minutes: Optional[int],
               default_minutes: int = DEFAULT_DURATION_MINUTES) -> datetime:
    return scheduled_at + timedelta(minutes=duration_minutes or default_minutes)


def format_duration(minutes: Optional[int]) -> Optional[str]:
    if not minutes:
        return None
    hours, rest = divmod(minutes, 60)
    if hours > 0:
        return f"{hours}h {rest}m"
    return f"{rest}m"
