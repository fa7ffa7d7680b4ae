"""
Week navigator: the cursor over calendar weeks.

The cursor is always the Monday of a week. Every transition replaces the
cursor value; nothing here depends on fetched calendar data.
"""

from datetime import date, timedelta
from typing import Callable, Optional

from .models import WeekWindow


def week_start(day: date) -> date:
    """Return the Monday of the week containing ``day``."""
    return day - timedelta(days=day.weekday())


class WeekNavigator:
    """Current-week cursor with next/previous/today transitions."""

    def __init__(self, today: Optional[Callable[[], date]] = None,
                 current: Optional[date] = None):
        """Initialize the navigator.

        Args:
            today: Callable returning today's date. Defaults to date.today
            current: Cursor to restore (any day of the week). Defaults to
                     the week containing today
        """
        self._today = today or date.today
        self._current = week_start(current if current is not None else self._today())

    @property
    def current(self) -> date:
        return self._current

    @property
    def window(self) -> WeekWindow:
        return WeekWindow(self._current)

    def next(self) -> date:
        self._current = self._current + timedelta(days=7)
        return self._current

    def previous(self) -> date:
        self._current = self._current - timedelta(days=7)
        return self._current

    def reset_to_today(self) -> date:
        self._current = week_start(self._today())
        return self._current
