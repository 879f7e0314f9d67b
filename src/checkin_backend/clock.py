"""Wall-clock helpers. Every stored timestamp is a local time-of-day string."""

from datetime import datetime, time, tzinfo
from typing import Optional

from . import config

TIME_FORMAT = "%I:%M:%S %p"
EXPORT_STAMP_FORMAT = "%Y%m%d-%H%M%S"


def local_now(tz: Optional[tzinfo] = None) -> datetime:
    """Current time in the configured event time zone."""
    return datetime.now(tz or config.LOCAL_TIMEZONE)


def format_time(value: time) -> str:
    return value.strftime(TIME_FORMAT)


def now_time_string(tz: Optional[tzinfo] = None) -> str:
    return format_time(local_now(tz).time())


def time_sort_key(value: Optional[str]) -> time:
    """Sort key for stored time strings; unparseable values sort first."""
    try:
        return datetime.strptime(value, TIME_FORMAT).time()
    except (TypeError, ValueError):
        return time.min
