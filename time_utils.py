from __future__ import annotations

import logging
from datetime import datetime, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

from dateutil.tz import tzlocal

logger = logging.getLogger(__name__)


def resolve_timezone(name: Optional[str]) -> tzinfo:
    """Zone for alarm times: the named IANA zone if it loads, else the system zone."""
    if name:
        try:
            return ZoneInfo(name)
        except Exception as exc:  # pragma: no cover - environment-dependent
            logger.warning("Failed to load timezone %s via zoneinfo (%s)", name, exc)
    # tzlocal applies the system DST rules to future dates too.
    logger.info("Using system local timezone")
    return tzlocal()


def now_in_tz(tzinfo) -> datetime:
    # Zone offset is looked up per call, never cached.
    if tzinfo:
        return datetime.now(tzinfo)
    return datetime.now(tzlocal())


def format_tz_offset(tzinfo, at: Optional[datetime] = None) -> str:
    sample = at or now_in_tz(tzinfo)
    offset = tzinfo.utcoffset(sample) if hasattr(tzinfo, "utcoffset") else None
    if offset is None:
        return ""
    total_minutes = int(offset.total_seconds() // 60)
    sign = "+" if total_minutes >= 0 else "-"
    hours, minutes = divmod(abs(total_minutes), 60)
    return f"{sign}{hours:02d}:{minutes:02d}"
