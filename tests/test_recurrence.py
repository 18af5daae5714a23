import time
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest
from dateutil.tz import tzlocal

from alarms.models import CALENDAR_WEEKDAY, WORKDAYS, Weekday, calendar_weekday_of
from alarms.recurrence import next_fire_instant, resolve_wall_time

NY = ZoneInfo("America/New_York")


def _at(year, month, day, hour, minute=0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=NY)


def test_weekday_table_matches_calendar_numbering():
    assert CALENDAR_WEEKDAY == {
        Weekday.SUN: 1,
        Weekday.MON: 2,
        Weekday.TUE: 3,
        Weekday.WED: 4,
        Weekday.THU: 5,
        Weekday.FRI: 6,
        Weekday.SAT: 7,
    }
    for day, number in CALENDAR_WEEKDAY.items():
        assert Weekday.from_calendar_number(number) is day


def test_calendar_weekday_of_dates():
    # 2025-01-05 is a Sunday.
    sunday = date(2025, 1, 5)
    expected = [Weekday.SUN, Weekday.MON, Weekday.TUE, Weekday.WED, Weekday.THU, Weekday.FRI, Weekday.SAT]
    for offset, day in enumerate(expected):
        assert calendar_weekday_of(sunday + timedelta(days=offset)) == day.calendar_number


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Mon", Weekday.MON),
        ("mo", Weekday.MON),
        ("thursday", Weekday.THU),
        (" Sat ", Weekday.SAT),
        (1, Weekday.SUN),
        ("7", Weekday.SAT),
        (Weekday.WED, Weekday.WED),
    ],
)
def test_weekday_parse(raw, expected):
    assert Weekday.parse(raw) is expected


@pytest.mark.parametrize("raw", [0, 8, "xx", "", True])
def test_weekday_parse_rejects_unknown(raw):
    with pytest.raises(ValueError):
        Weekday.parse(raw)


def test_one_time_already_passed_goes_to_tomorrow():
    now = _at(2025, 1, 7, 8, 0)
    assert next_fire_instant(now, 7, 30) == _at(2025, 1, 8, 7, 30)


def test_one_time_later_today():
    now = _at(2025, 1, 7, 8, 0)
    assert next_fire_instant(now, 9, 0) == _at(2025, 1, 7, 9, 0)


def test_fire_instant_equal_to_now_moves_forward():
    now = _at(2025, 1, 7, 7, 0)
    assert next_fire_instant(now, 7, 0) == _at(2025, 1, 8, 7, 0)


def test_seconds_are_zero():
    now = datetime(2025, 1, 7, 6, 59, 42, 123, tzinfo=NY)
    result = next_fire_instant(now, 7, 0)
    assert (result.second, result.microsecond) == (0, 0)


def test_repeat_picks_nearest_weekday():
    # Tuesday 10:00, alarm on Mon and Wed.
    now = _at(2025, 1, 7, 10, 0)
    result = next_fire_instant(now, 7, 0, {Weekday.MON, Weekday.WED})
    assert result == _at(2025, 1, 8, 7, 0)


def test_workdays_skip_weekend():
    # Friday 08:00, past today's 07:00.
    now = _at(2025, 1, 10, 8, 0)
    result = next_fire_instant(now, 7, 0, WORKDAYS)
    assert result == _at(2025, 1, 13, 7, 0)
    assert calendar_weekday_of(result.date()) == Weekday.MON.calendar_number


def test_repeat_same_day_later_today():
    now = _at(2025, 1, 8, 6, 0)
    assert next_fire_instant(now, 7, 0, {Weekday.WED}) == _at(2025, 1, 8, 7, 0)


def test_repeat_single_day_already_passed_waits_a_week():
    now = _at(2025, 1, 8, 7, 0)
    assert next_fire_instant(now, 7, 0, {Weekday.WED}) == _at(2025, 1, 15, 7, 0)


def test_spring_forward_gap_resolves_to_existing_instant():
    # 2025-03-09 02:00-03:00 does not exist in New York.
    now = _at(2025, 3, 9, 0, 0)
    result = next_fire_instant(now, 2, 30)

    roundtrip = result.astimezone(timezone.utc).astimezone(NY)
    assert (roundtrip.hour, roundtrip.minute) == (result.hour, result.minute)
    assert result.utcoffset() == timedelta(hours=-4)
    assert (result.hour, result.minute) == (3, 0)
    naive_expectation = datetime(2025, 3, 9, 2, 30)
    assert abs(result.replace(tzinfo=None) - naive_expectation) <= timedelta(hours=1)
    assert result.date() == date(2025, 3, 9)


def test_spring_forward_gap_on_repeat_day():
    # Saturday evening, alarm on Sundays at 02:30.
    now = _at(2025, 3, 8, 22, 0)
    result = next_fire_instant(now, 2, 30, {Weekday.SUN})
    assert result.astimezone(timezone.utc) == datetime(2025, 3, 9, 7, 0, tzinfo=timezone.utc)


def test_wall_time_kept_across_spring_forward():
    now = _at(2025, 3, 8, 8, 0)
    result = next_fire_instant(now, 7, 0)
    assert (result.hour, result.minute) == (7, 0)
    assert result.utcoffset() == timedelta(hours=-4)
    # Only 22 hours of real time elapse across the transition.
    assert result.astimezone(timezone.utc) - now.astimezone(timezone.utc) == timedelta(hours=22)


def test_wall_time_kept_across_fall_back():
    now = _at(2025, 11, 1, 8, 0)
    result = next_fire_instant(now, 7, 0)
    assert (result.date(), result.hour) == (date(2025, 11, 2), 7)
    assert result.utcoffset() == timedelta(hours=-5)


def test_fall_back_overlap_uses_first_occurrence():
    now = _at(2025, 11, 2, 0, 30)
    result = next_fire_instant(now, 1, 30)
    assert result.fold == 0
    assert result.utcoffset() == timedelta(hours=-4)


def test_fall_back_overlap_after_first_occurrence_moves_to_next_day():
    # 01:15 during the repeated hour, after the first 01:30 has passed.
    now = datetime(2025, 11, 2, 6, 15, tzinfo=timezone.utc).astimezone(NY)
    assert now.fold == 1
    result = next_fire_instant(now, 1, 30)
    assert result.date() == date(2025, 11, 3)


def test_resolve_wall_time_plain_day():
    assert resolve_wall_time(date(2025, 1, 6), 7, 0, NY) == _at(2025, 1, 6, 7, 0)


def test_naive_now_is_treated_as_local():
    result = next_fire_instant(datetime(2025, 1, 7, 8, 0), 9, 0)
    assert result.tzinfo is not None
    assert (result.hour, result.minute) == (9, 0)


def test_invalid_time_raises():
    with pytest.raises(ValueError):
        next_fire_instant(_at(2025, 1, 7, 8, 0), 24, 0)


@pytest.fixture
def new_york_system_zone(monkeypatch):
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is unavailable on this platform")
    monkeypatch.setenv("TZ", "America/New_York")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()


def test_spring_forward_gap_on_system_zone(new_york_system_zone):
    now = datetime(2025, 3, 9, 0, 0, tzinfo=tzlocal())
    result = next_fire_instant(now, 2, 30)
    assert result.astimezone(timezone.utc) == datetime(2025, 3, 9, 7, 0, tzinfo=timezone.utc)
    assert (result.hour, result.minute) == (3, 0)


def test_naive_now_keeps_wall_time_across_spring_forward(new_york_system_zone):
    result = next_fire_instant(datetime(2025, 3, 8, 8, 0), 7, 0)
    assert (result.date(), result.hour, result.minute) == (date(2025, 3, 9), 7, 0)
    assert result.astimezone(timezone.utc) == datetime(2025, 3, 9, 11, 0, tzinfo=timezone.utc)
