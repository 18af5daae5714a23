"""Next-fire-time computation for alarm definitions.

Times of day are wall-clock times in the zone of ``now``. Candidates are
built on the local calendar and checked against the zone's transitions:

* a wall time skipped by a forward transition resolves to the transition
  instant itself, the first local time that exists after the gap;
* a wall time repeated by a backward transition uses its first occurrence.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Iterable, Optional

from dateutil.tz import tzlocal

from .models import Weekday, calendar_weekday_of

logger = logging.getLogger(__name__)

# One week plus one day always contains a future match for any weekday.
_SEARCH_DAYS = 8


def next_fire_instant(
    now: datetime,
    hour: int,
    minute: int,
    repeat_days: Iterable[Weekday] = (),
) -> datetime:
    """Return the soonest instant strictly after ``now`` at ``hour:minute``.

    With no ``repeat_days`` this is today or tomorrow. Otherwise the
    earliest match over all given weekdays is returned.
    """
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"hour/minute out of range: {hour}:{minute}")
    if now.tzinfo is None:
        now = now.replace(tzinfo=tzlocal())
    tz = now.tzinfo

    days = {Weekday.parse(d) for d in repeat_days}
    weekdays = [d.calendar_number for d in days] if days else [None]

    best: Optional[datetime] = None
    for weekday in weekdays:
        candidate = _next_matching(now, tz, hour, minute, weekday=weekday)
        if candidate is not None and (best is None or _utc(candidate) < _utc(best)):
            best = candidate
    if best is not None:
        return best

    logger.warning("No weekday candidate for %02d:%02d %s, falling back to tomorrow", hour, minute, days)
    return resolve_wall_time(now.date() + timedelta(days=1), hour, minute, tz)


def _next_matching(now: datetime, tz: tzinfo, hour: int, minute: int, weekday: Optional[int]):
    start = now.date()
    for offset in range(_SEARCH_DAYS):
        day = start + timedelta(days=offset)
        if weekday is not None and calendar_weekday_of(day) != weekday:
            continue
        candidate = resolve_wall_time(day, hour, minute, tz)
        if _utc(candidate) > _utc(now):
            return candidate
    return None


def _utc(value: datetime) -> datetime:
    # Same-zone comparisons ignore fold, so compare on the UTC timeline.
    return value.astimezone(timezone.utc)


def resolve_wall_time(day: date, hour: int, minute: int, tz: tzinfo) -> datetime:
    """Map a local calendar day and wall time onto an existing instant in ``tz``."""
    wall = datetime.combine(day, time(hour, minute), tzinfo=tz)
    if _exists(wall):
        return wall.replace(fold=0)
    return _gap_end(wall, tz)


def _exists(wall: datetime) -> bool:
    roundtrip = wall.astimezone(timezone.utc).astimezone(wall.tzinfo)
    return roundtrip.replace(tzinfo=None, fold=0) == wall.replace(tzinfo=None, fold=0)


def _gap_end(wall: datetime, tz: tzinfo) -> datetime:
    # Offsets three hours either side of the gap bracket the transition.
    naive = wall.replace(tzinfo=None)
    bounds = sorted(
        (naive - offset).replace(tzinfo=timezone.utc)
        for offset in (
            (wall - timedelta(hours=3)).utcoffset(),
            (wall + timedelta(hours=3)).utcoffset(),
        )
    )
    instant, end = bounds
    offset = instant.astimezone(tz).utcoffset()
    while instant < end:
        instant += timedelta(minutes=1)
        if instant.astimezone(tz).utcoffset() != offset:
            break
    return instant.astimezone(tz)
