"""
aggregation/periods.py

Calendar bucketing for rollups and ranking shards.

All functions take whole epoch seconds and a time zone; weeks follow
ISO-8601 (Monday start, week-numbering year), months are calendar months.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo

UTC = ZoneInfo("UTC")


@dataclass(frozen=True)
class PeriodBounds:
    start_sec: int
    end_sec: int


def _local(sec: int, tz: tzinfo) -> datetime:
    return datetime.fromtimestamp(sec, tz)


def week_id(sec: int, tz: tzinfo = UTC) -> str:
    """ISO week id, e.g. ``2024-W01``."""
    iso = _local(sec, tz).isocalendar()
    return f"{iso[0]}-W{iso[1]:02d}"


def week_bounds(sec: int, tz: tzinfo = UTC) -> PeriodBounds:
    """Monday 00:00 through the last second before the next Monday."""
    moment = _local(sec, tz)
    monday = (moment - timedelta(days=moment.weekday())).date()
    next_monday = monday + timedelta(days=7)
    start = datetime(monday.year, monday.month, monday.day, tzinfo=tz)
    next_start = datetime(next_monday.year, next_monday.month, next_monday.day, tzinfo=tz)
    return PeriodBounds(
        start_sec=int(start.timestamp()),
        end_sec=int(next_start.timestamp()) - 1,
    )


def month_id(sec: int, tz: tzinfo = UTC) -> str:
    """Calendar month id, e.g. ``2024-03``."""
    moment = _local(sec, tz)
    return f"{moment.year}-{moment.month:02d}"


def month_bounds(sec: int, tz: tzinfo = UTC) -> PeriodBounds:
    moment = _local(sec, tz)
    start = datetime(moment.year, moment.month, 1, tzinfo=tz)
    if moment.month == 12:
        next_start = datetime(moment.year + 1, 1, 1, tzinfo=tz)
    else:
        next_start = datetime(moment.year, moment.month + 1, 1, tzinfo=tz)
    return PeriodBounds(
        start_sec=int(start.timestamp()),
        end_sec=int(next_start.timestamp()) - 1,
    )


def date_key(sec: int, tz: tzinfo = UTC) -> int:
    """Calendar day as ``YYYYMMDD`` integer."""
    moment = _local(sec, tz)
    return moment.year * 10000 + moment.month * 100 + moment.day
