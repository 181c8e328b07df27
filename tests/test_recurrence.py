"""Unit tests for recurrence expansion."""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from studyplanner.reminders.recurrence_models import (
    RecurrenceResolver,
    RecurrenceRule,
    RecurrenceType,
    Weekday,
    week_start,
)

UTC = timezone.utc


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=UTC)


def test_weekday_is_sunday_first() -> None:
    """Day numbering matches the stored day_of_week (0=Sunday)."""
    assert Weekday.of(date(2026, 10, 18)) == Weekday.SUNDAY
    assert Weekday.of(date(2026, 10, 19)) == Weekday.MONDAY
    assert Weekday.of(date(2026, 10, 24)) == Weekday.SATURDAY
    assert week_start(date(2026, 10, 21)) == date(2026, 10, 18)


def test_weekly_monday_occurrence_in_window() -> None:
    """A weekly Monday 09:00 item yields exactly one instant per week."""
    found = RecurrenceResolver.occurrences(
        "weekly", 1, time(9, 0), _utc(2026, 10, 18), _utc(2026, 10, 24, 23, 59)
    )
    assert found == [_utc(2026, 10, 19, 9, 0)]


def test_weekly_over_four_weeks_repeats_on_the_same_weekday() -> None:
    """A 28-day window holds four weekly instants, seven days apart, all on Monday."""
    start = _utc(2026, 10, 18)
    found = RecurrenceResolver.occurrences("weekly", 1, time(9, 0), start, start + timedelta(days=28))

    assert len(found) == 4
    assert [b - a for a, b in zip(found, found[1:])] == [timedelta(days=7)] * 3
    assert {Weekday.of(instant.date()) for instant in found} == {Weekday.MONDAY}
    assert found[0] == _utc(2026, 10, 19, 9, 0)


def test_window_bounds_are_inclusive() -> None:
    """Occurrences exactly on either bound are included."""
    instant = _utc(2026, 10, 19, 9, 0)
    assert RecurrenceResolver.occurrences("weekly", 1, time(9, 0), instant, instant) == [instant]
    assert RecurrenceResolver.occurrences(
        "weekly", 1, time(9, 0), instant + timedelta(seconds=1), instant + timedelta(days=1)
    ) == []


def test_daily_yields_one_per_day_in_order() -> None:
    """Daily items produce ordered instants for each day of the window."""
    found = RecurrenceResolver.occurrences(
        RecurrenceType.DAILY, None, time(18, 30), _utc(2026, 10, 19), _utc(2026, 10, 21, 23, 0)
    )
    assert found == [
        _utc(2026, 10, 19, 18, 30),
        _utc(2026, 10, 20, 18, 30),
        _utc(2026, 10, 21, 18, 30),
    ]


def test_biweekly_alternates_from_creation_week() -> None:
    """Biweekly parity is anchored on the Sunday-started week of the creation date."""
    # Created Wednesday 2026-10-14; its week starts Sunday 2026-10-11
    found = RecurrenceResolver.occurrences(
        "biweekly",
        1,
        time(9, 0),
        _utc(2026, 10, 11),
        _utc(2026, 11, 10),
        anchor_date=date(2026, 10, 14),
    )
    assert found == [
        _utc(2026, 10, 12, 9, 0),
        _utc(2026, 10, 26, 9, 0),
        _utc(2026, 11, 9, 9, 0),
    ]


def test_monthly_clips_to_month_length() -> None:
    """An item created on the 31st recurs on the last day of shorter months."""
    found = RecurrenceResolver.occurrences(
        "monthly",
        None,
        time(7, 0),
        _utc(2026, 2, 1),
        _utc(2026, 4, 30, 23, 59),
        anchor_date=date(2026, 1, 31),
    )
    assert found == [
        _utc(2026, 2, 28, 7, 0),
        _utc(2026, 3, 31, 7, 0),
        _utc(2026, 4, 30, 7, 0),
    ]


def test_once_requires_explicit_date() -> None:
    """'once' produces its scheduled date only, and nothing without one."""
    window = (_utc(2026, 10, 1), _utc(2026, 10, 31))
    assert RecurrenceResolver.occurrences("once", None, time(10, 0), *window, on_date=date(2026, 10, 20)) == [
        _utc(2026, 10, 20, 10, 0)
    ]
    assert RecurrenceResolver.occurrences("once", None, time(10, 0), *window) == []


def test_wall_clock_is_interpreted_in_reminder_timezone() -> None:
    """09:00 in Riyadh (UTC+3) is 06:00 UTC."""
    found = RecurrenceResolver.occurrences(
        "weekly", 1, time(9, 0), _utc(2026, 10, 18), _utc(2026, 10, 25), tz=ZoneInfo("Asia/Riyadh")
    )
    assert found == [_utc(2026, 10, 19, 6, 0)]


def test_daily_keeps_local_time_across_dst_change() -> None:
    """New York moves to daylight time on 2026-03-08; the UTC instant shifts by an hour."""
    found = RecurrenceResolver.occurrences(
        "daily", None, time(9, 0), _utc(2026, 3, 7), _utc(2026, 3, 9, 23, 0), tz=ZoneInfo("America/New_York")
    )
    assert found == [
        _utc(2026, 3, 7, 14, 0),
        _utc(2026, 3, 8, 13, 0),
        _utc(2026, 3, 9, 13, 0),
    ]


def test_window_must_be_timezone_aware() -> None:
    """Naive window bounds are rejected rather than guessed."""
    with pytest.raises(ValueError):
        RecurrenceResolver.occurrences("daily", None, time(9, 0), datetime(2026, 10, 19), datetime(2026, 10, 20))


def test_rule_validation() -> None:
    """Weekly rules need a weekday; day numbers stay within 0-6."""
    with pytest.raises(ValueError):
        RecurrenceRule(pattern=RecurrenceType.WEEKLY, start_time=time(9, 0))
    with pytest.raises(ValueError):
        RecurrenceRule(pattern=RecurrenceType.DAILY, start_time=time(9, 0), day_of_week=7)
    with pytest.raises(ValueError):
        RecurrenceRule(pattern=RecurrenceType.MONTHLY, start_time=time(9, 0))


def test_next_occurrence_is_strictly_after() -> None:
    """next_occurrence skips an occurrence exactly at `after`."""
    rule = RecurrenceRule(pattern=RecurrenceType.WEEKLY, start_time=time(9, 0), day_of_week=1)
    assert RecurrenceResolver.next_occurrence(rule, _utc(2026, 10, 19, 9, 0)) == _utc(2026, 10, 26, 9, 0)
    assert RecurrenceResolver.next_occurrence(rule, _utc(2026, 10, 18)) == _utc(2026, 10, 19, 9, 0)
