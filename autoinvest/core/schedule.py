"""Due-date calculation for recurring orders.

All calendar arithmetic is wall-clock arithmetic in one zone: the configured
zone, or the process's local zone when none is given. "One day later" is the
same local time on the next calendar day, so a daily order keeps its local
time across daylight-saving transitions (the elapsed time is then 23 or 25
hours). Results are returned as aware UTC datetimes.
"""

import calendar
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

from autoinvest.core.models import Frequency, ensure_utc

# Fixed-length steps; monthly is handled separately
_DAY_STEPS = {
    Frequency.DAILY: 1,
    Frequency.WEEKLY: 7,
    Frequency.BIWEEKLY: 14,
}


def resolve_timezone(name: Optional[str]) -> Optional[tzinfo]:
    """Map a zone name to a tzinfo; None selects the process's local zone."""
    if not name:
        return None
    return ZoneInfo(name)


def _to_wall_clock(moment: datetime, tz: Optional[tzinfo]) -> datetime:
    moment = ensure_utc(moment)
    if tz is None:
        return moment.astimezone().replace(tzinfo=None)
    return moment.astimezone(tz).replace(tzinfo=None)


def _from_wall_clock(wall: datetime, tz: Optional[tzinfo]) -> datetime:
    if tz is None:
        # Naive datetimes are interpreted as local time by astimezone()
        return wall.astimezone(timezone.utc)
    return wall.replace(tzinfo=tz).astimezone(timezone.utc)


def add_months(wall: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the target month's length."""
    month_index = wall.month - 1 + months
    year = wall.year + month_index // 12
    month = month_index % 12 + 1
    day = min(wall.day, calendar.monthrange(year, month)[1])
    return wall.replace(year=year, month=month, day=day)


def next_due(
    frequency: Frequency,
    from_time: datetime,
    tz: Optional[tzinfo] = None,
) -> datetime:
    """
    Compute when an order with ``frequency`` is next due after ``from_time``.

    Args:
        frequency: Order frequency
        from_time: Reference time (last execution, or creation)
        tz: Zone for calendar arithmetic; None uses the process's local zone

    Returns:
        Aware UTC datetime strictly after ``from_time``
    """
    frequency = Frequency(frequency)
    wall = _to_wall_clock(from_time, tz)

    if frequency == Frequency.MONTHLY:
        target = add_months(wall, 1)
    else:
        target = wall + timedelta(days=_DAY_STEPS[frequency])

    return _from_wall_clock(target, tz)
