# app/utils/date_utils.py

import re
from datetime import date, datetime, timedelta
from typing import Optional, Union
from zoneinfo import ZoneInfo

from app.core.config import PORTAL_TIMEZONE

ISO_DATE_FORMAT = '%Y-%m-%d'
TIME_PATTERN = re.compile(r'^([01]\d|2[0-3]):[0-5]\d$')
DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')


def local_now() -> datetime:
    return datetime.now(ZoneInfo(PORTAL_TIMEZONE))


def local_today() -> date:
    """Today's date on the firm's calendar"""
    return local_now().date()


def parse_date(date_string: str, format_string: str = ISO_DATE_FORMAT) -> date:
    """Parse date string to date object"""
    return datetime.strptime(date_string, format_string).date()


def is_valid_date(date_string: Optional[str]) -> bool:
    """Check that a string is a real calendar date written YYYY-MM-DD"""
    if not isinstance(date_string, str) or not DATE_PATTERN.match(date_string):
        return False
    try:
        parse_date(date_string)
        return True
    except ValueError:
        return False


def is_valid_time(time_string: Optional[str]) -> bool:
    return isinstance(time_string, str) and bool(TIME_PATTERN.match(time_string))


def days_between(start_date: Union[str, date], end_date: Union[str, date]) -> int:
    """Calculate days between two dates"""
    if isinstance(start_date, str):
        start_date = parse_date(start_date)
    if isinstance(end_date, str):
        end_date = parse_date(end_date)

    return (end_date - start_date).days


def format_date(date_value: Union[str, date], format_string: str = '%A %d %B %Y') -> str:
    """Human readable date for emails and landing pages"""
    if isinstance(date_value, str):
        date_value = parse_date(date_value)
    return date_value.strftime(format_string)


def seconds_until_next_run(now: datetime, run_hour: int) -> float:
    """Seconds from ``now`` until the next ``run_hour``:00 on the same clock."""
    next_run = now.replace(hour=run_hour, minute=0, second=0, microsecond=0)
    if next_run <= now:
        next_run += timedelta(days=1)
    return (next_run - now).total_seconds()
