from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from typing import FrozenSet, Iterable, Tuple

DEFAULT_BACKUP_MINUTES = 10
MIN_BACKUP_MINUTES = 1
MAX_BACKUP_MINUTES = 60


class Weekday(Enum):
    SUN = "sun"
    MON = "mon"
    TUE = "tue"
    WED = "wed"
    THU = "thu"
    FRI = "fri"
    SAT = "sat"

    @property
    def short(self) -> str:
        return self.value.capitalize()

    @property
    def calendar_number(self) -> int:
        return CALENDAR_WEEKDAY[self]

    @classmethod
    def from_calendar_number(cls, number: int) -> "Weekday":
        try:
            return _WEEKDAY_BY_CALENDAR_NUMBER[number]
        except KeyError:
            raise ValueError(f"Calendar weekday must be 1..7, got {number!r}") from None

    @classmethod
    def parse(cls, value) -> "Weekday":
        """Accept a Weekday, a calendar number (1=Sun .. 7=Sat) or a day name."""
        if isinstance(value, Weekday):
            return value
        if isinstance(value, bool):
            raise ValueError(f"Unknown weekday: {value!r}")
        if isinstance(value, int):
            return cls.from_calendar_number(value)
        text = str(value).strip().lower()
        if text.isdigit():
            return cls.from_calendar_number(int(text))
        for prefix, day in _WEEKDAY_PREFIXES:
            if text.startswith(prefix):
                return day
        raise ValueError(f"Unknown weekday: {value!r}")


# Calendar day-of-week numbering, Sunday=1 .. Saturday=7.
CALENDAR_WEEKDAY = {
    Weekday.SUN: 1,
    Weekday.MON: 2,
    Weekday.TUE: 3,
    Weekday.WED: 4,
    Weekday.THU: 5,
    Weekday.FRI: 6,
    Weekday.SAT: 7,
}

_WEEKDAY_BY_CALENDAR_NUMBER = {number: day for day, number in CALENDAR_WEEKDAY.items()}

# Two-letter prefixes cover "mo", "mon" and "monday" alike.
_WEEKDAY_PREFIXES: Tuple[Tuple[str, Weekday], ...] = (
    ("su", Weekday.SUN),
    ("mo", Weekday.MON),
    ("tu", Weekday.TUE),
    ("we", Weekday.WED),
    ("th", Weekday.THU),
    ("fr", Weekday.FRI),
    ("sa", Weekday.SAT),
)

WEEKDAYS = frozenset(Weekday)
WORKDAYS = frozenset({Weekday.MON, Weekday.TUE, Weekday.WED, Weekday.THU, Weekday.FRI})


def calendar_weekday_of(day: date) -> int:
    """Calendar weekday number of a date (Python's weekday() is Mon=0 .. Sun=6)."""
    return (day.weekday() + 1) % 7 + 1


def clamp_backup_minutes(value) -> int:
    try:
        minutes = int(value)
    except OverflowError:
        minutes = MAX_BACKUP_MINUTES if value > 0 else MIN_BACKUP_MINUTES
    except (TypeError, ValueError):
        minutes = DEFAULT_BACKUP_MINUTES
    return min(max(minutes, MIN_BACKUP_MINUTES), MAX_BACKUP_MINUTES)


def parse_time_of_day(value: str) -> Tuple[int, int]:
    parts = str(value).strip().split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"Time of day must be HH:MM, got {value!r}")
    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Time of day out of range: {value!r}")
    return hour, minute


def _new_alarm_id() -> str:
    return str(uuid.uuid4()).upper()


@dataclass(frozen=True)
class Alarm:
    hour: int
    minute: int
    repeat_days: FrozenSet[Weekday] = frozenset()
    is_enabled: bool = True
    label: str = "Alarm"
    backup_enabled: bool = False
    backup_minutes: int = DEFAULT_BACKUP_MINUTES
    id: str = field(default_factory=_new_alarm_id)

    def __post_init__(self) -> None:
        if not (0 <= self.hour <= 23 and 0 <= self.minute <= 59):
            raise ValueError(f"Alarm time out of range: {self.hour}:{self.minute}")
        object.__setattr__(self, "repeat_days", frozenset(Weekday.parse(d) for d in self.repeat_days))
        object.__setattr__(self, "backup_minutes", clamp_backup_minutes(self.backup_minutes))

    @classmethod
    def at(cls, time_of_day: str, repeat_days: Iterable = (), **kwargs) -> "Alarm":
        hour, minute = parse_time_of_day(time_of_day)
        return cls(hour=hour, minute=minute, repeat_days=frozenset(repeat_days), **kwargs)

    @property
    def time_of_day(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"

    @property
    def is_repeating(self) -> bool:
        return bool(self.repeat_days)

    def display_label(self, default: str) -> str:
        return self.label if self.label.strip() else default

    def get_repeat_str(self) -> str:
        if not self.repeat_days:
            return ""
        if self.repeat_days == WEEKDAYS:
            return "[Daily]"
        ordered = sorted(self.repeat_days, key=lambda d: d.calendar_number)
        return f"[{', '.join(d.short for d in ordered)}]"

    def with_changes(self, **changes) -> "Alarm":
        return replace(self, **changes)

    def __str__(self) -> str:
        status = "on" if self.is_enabled else "off"
        repeat = self.get_repeat_str()
        return f"[{status}] {self.time_of_day} - {self.label}{' ' + repeat if repeat else ''}"

