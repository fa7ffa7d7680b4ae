"""Unit tests for week navigation."""

from datetime import date, timedelta
from revision_calendar.models import WeekWindow
from revision_calendar.week import WeekNavigator, week_start


def fixed_today(day):
    return lambda: day


def test_week_start():
    """Every day of a week maps to its Monday."""
    monday = date(2024, 1, 1)
    for offset in range(7):
        assert week_start(monday + timedelta(days=offset)) == monday
    assert week_start(date(2024, 1, 8)) == date(2024, 1, 8)


def test_navigator_starts_on_current_week():
    nav = WeekNavigator(today=fixed_today(date(2024, 1, 3)))
    assert nav.current == date(2024, 1, 1)
    assert nav.window == WeekWindow(date(2024, 1, 1))


def test_navigator_sunday_belongs_to_previous_monday():
    nav = WeekNavigator(today=fixed_today(date(2024, 1, 7)))
    assert nav.current == date(2024, 1, 1)


def test_next_and_previous():
    """Transitions move the cursor by exactly seven days."""
    nav = WeekNavigator(today=fixed_today(date(2024, 1, 3)))
    assert nav.next() == date(2024, 1, 8)
    assert nav.next() == date(2024, 1, 15)
    assert nav.previous() == date(2024, 1, 8)
    assert nav.previous() == date(2024, 1, 1)
    assert nav.previous() == date(2023, 12, 25)
    assert nav.current.weekday() == 0


def test_next_then_previous_round_trips():
    nav = WeekNavigator(today=fixed_today(date(2024, 2, 29)))
    start = nav.current
    for _ in range(10):
        nav.next()
    for _ in range(10):
        nav.previous()
    assert nav.current == start


def test_reset_to_today():
    nav = WeekNavigator(today=fixed_today(date(2024, 1, 3)), current=date(2024, 6, 12))
    assert nav.current == date(2024, 6, 10)
    assert nav.reset_to_today() == date(2024, 1, 1)


def test_navigator_defaults_to_real_today():
    nav = WeekNavigator()
    assert nav.current == week_start(date.today())
