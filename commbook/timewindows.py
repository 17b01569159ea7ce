"""
commbook/timewindows.py
Calendar boundaries used by the report policies.
All boundaries are computed in the timezone of the datetime passed in.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

SUNDAY = 6


def start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_week(now: datetime, week_start: int = SUNDAY) -> datetime:
    """
    Midnight of the most recent `week_start` day (Python weekday numbering,
    Monday=0 … Sunday=6). Today counts if today is `week_start`.
    """
    if not 0 <= week_start <= 6:
        raise ValueError(f"week_start must be a weekday number 0-6, got {week_start}")
    days_back = (now.weekday() - week_start) % 7
    return start_of_day(now) - timedelta(days=days_back)


def start_of_year(now: datetime) -> datetime:
    return start_of_day(now).replace(month=1, day=1)


def load_timezone(name: Optional[str]):
    """ZoneInfo for an IANA name; UTC when unset or unknown."""
    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError:
        logger.warning(f"Unknown timezone {name!r}, using UTC")
        return timezone.utc
