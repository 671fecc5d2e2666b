# Calendar helpers. Dates travel as YYYYMMDD strings and a "day" is a day in
# the reference timezone, not in UTC.

from __future__ import annotations
from datetime import date, datetime, timedelta
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from .config import TIMEZONE

DATE_FORMAT = "%Y%m%d"


def now() -> datetime:
    return datetime.now(ZoneInfo(TIMEZONE))


def parse(yyyymmdd: str) -> date:
    return datetime.strptime(yyyymmdd, DATE_FORMAT).date()


def fmt(d: date) -> str:
    return d.strftime(DATE_FORMAT)


def is_date_string(value: str) -> bool:
    try:
        parse(value)
    except (TypeError, ValueError):
        return False
    return len(value) == 8


def today() -> str:
    return fmt(now().date())


def days_ago(days: int, reference: Optional[str] = None) -> str:
    base = parse(reference) if reference else now().date()
    return fmt(base - timedelta(days=days))


def previous_day(yyyymmdd: str) -> str:
    return days_ago(1, yyyymmdd)


def is_consecutive_day(last_played: Optional[str], today_str: str) -> bool:
    if not last_played:
        return False
    return (parse(today_str) - parse(last_played)).days == 1


def week_range(end: str) -> Tuple[str, str]:
    """Seven-day window ending at ``end`` inclusive."""
    return days_ago(6, end), end


def last_week_range(today_str: Optional[str] = None) -> Tuple[str, str]:
    """The seven days ending yesterday, i.e. the week that has fully elapsed."""
    return week_range(previous_day(today_str or today()))
