"""
Time grid geometry for the weekly calendar view.

Maps clock times to vertical pixel offsets inside the visible daily window.
Everything here is pure: no state, no I/O.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List

from .config import GRID_END_HOUR, GRID_START_HOUR, HOUR_HEIGHT, MIN_VISIBLE_HEIGHT
from .models import MINUTES_PER_DAY, format_clock, parse_clock


def minutes_between(start: str, end: str) -> int:
    """Minutes from start to end. An end before the start crosses midnight."""
    return (parse_clock(end) - parse_clock(start)) % MINUTES_PER_DAY


@dataclass(frozen=True)
class TimeGrid:
    """Geometry of the daily grid.

    Attributes:
        start_hour: First visible hour (E)
        end_hour: Last visible hour (L)
        hour_height: Pixels per hour (H)
        min_visible_height: Smallest height an item is drawn with
    """
    start_hour: int = GRID_START_HOUR
    end_hour: int = GRID_END_HOUR
    hour_height: float = HOUR_HEIGHT
    min_visible_height: float = MIN_VISIBLE_HEIGHT

    def position(self, clock: str) -> float:
        """Vertical offset of a clock time from the top of the grid."""
        minutes_since_start = parse_clock(clock) - self.start_hour * 60
        return (minutes_since_start / 60) * self.hour_height

    def extent(self, start: str, end: str) -> float:
        """Height of an item running from start to end, never below the floor."""
        height = (minutes_between(start, end) / 60) * self.hour_height
        return max(height, self.min_visible_height)

    def contains(self, clock: str) -> bool:
        minutes = parse_clock(clock)
        return self.start_hour * 60 <= minutes <= self.end_hour * 60

    def slot_labels(self) -> List[str]:
        """Hourly row labels, e.g. ["06:00", ..., "22:00"]."""
        return [format_clock(hour * 60) for hour in range(self.start_hour, self.end_hour + 1)]

    @property
    def grid_height(self) -> float:
        return len(self.slot_labels()) * self.hour_height

    def now_offset(self, now: datetime) -> float:
        """Offset of the current-time indicator."""
        return self.position(now.strftime("%H:%M"))
