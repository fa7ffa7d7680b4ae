"""
Data models for the revision calendar.

This module defines the data structures shared by the normalizer, the
reschedule engine, the record stores and the web layer. Models are plain
dataclasses, like the rest of the project.

These models represent:
- Sessions (one entry of a timetable's date-keyed schedule)
- Events (standalone calendar records owned by a user)
- Calendar items (the render-only union of sessions and events)
- Timetables
- Week windows (Monday to Sunday)

A timetable schedule itself is kept in its stored wire shape,
``{"YYYY-MM-DD": [session_dict, ...]}``, so that it can be written back
byte-compatibly. ``Session.from_dict`` is the validated view of one entry.
"""

import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Sequence, Union

from .config import DEFAULT_DURATION_MINUTES
from .errors import FormatError

SESSION_TYPES = ("revision", "homework", "break", "other")
KIND_SESSION = "session"
KIND_EVENT = "event"
MINUTES_PER_DAY = 24 * 60

# A date key is an ISO date string such as "2024-01-03"
Schedule = Mapping[str, Sequence[Dict[str, Any]]]

_CLOCK_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")
_DATE_KEY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True)
class Session:
    """Validated view of one schedule entry.

    ``time`` is normalized to ``HH:MM`` and ``duration`` is the effective
    duration in minutes (the default applies when the stored value is missing
    or zero). Keys the calendar does not know about are kept in ``extra``.
    """
    time: str                   # "HH:MM"
    subject: str = ""
    topic: str = ""
    duration: int = DEFAULT_DURATION_MINUTES
    type: str = "revision"      # revision, homework, break, other
    notes: str = ""
    test_date: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Session":
        """Validate a stored entry.

        Text fields must be strings. A type outside SESSION_TYPES is read as
        "other".

        Raises:
            FormatError: if the entry is malformed
        """
        if not isinstance(data, Mapping):
            raise FormatError(f"Session must be an object, got {type(data).__name__}")
        if "time" not in data:
            raise FormatError("Session has no time")
        known = {"time", "subject", "topic", "duration", "type", "notes", "testDate"}
        session_type = _text(data, "type") or "revision"
        if session_type not in SESSION_TYPES:
            session_type = "other"
        return cls(
            time=format_clock(parse_clock(data["time"])),
            subject=_text(data, "subject"),
            topic=_text(data, "topic"),
            duration=parse_duration(data.get("duration")),
            type=session_type,
            notes=_text(data, "notes"),
            test_date=_text(data, "testDate") or None,
            extra={k: v for k, v in data.items() if k not in known},
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the stored wire shape."""
        result: Dict[str, Any] = {
            "time": self.time,
            "subject": self.subject,
            "topic": self.topic,
            "duration": self.duration,
            "type": self.type,
            "notes": self.notes,
        }
        if self.test_date is not None:
            result["testDate"] = self.test_date
        result.update(self.extra)
        return result


@dataclass(frozen=True)
class Event:
    """A standalone calendar event with aware start and end instants."""
    id: str
    title: str
    start_time: datetime
    end_time: datetime
    user_id: Optional[str] = None

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Event":
        try:
            event_id = data["id"]
            start = data["start_time"]
            end = data["end_time"]
        except KeyError as e:
            raise FormatError(f"Event is missing field {e.args[0]!r}")
        return cls(
            id=str(event_id),
            title=data.get("title") or "",
            start_time=parse_instant(start),
            end_time=parse_instant(end),
            user_id=data.get("user_id"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "start_time": serialize_instant(self.start_time),
            "end_time": serialize_instant(self.end_time),
        }


class SessionRef(NamedTuple):
    """Positional identity of a session: its date key and list index."""
    date: str
    index: int


@dataclass(frozen=True)
class CalendarItem:
    """Render-only item on the week grid.

    Items are rebuilt on every fetch. ``source_ref`` maps back to the source:
    a SessionRef for sessions, the event id for events. ``payload`` is the
    source record as it was read (raw session dict or Event).
    """
    id: str
    kind: str                   # "session" or "event"
    title: str
    date: str                   # "YYYY-MM-DD"
    start_time: str             # "HH:MM"
    end_time: str               # "HH:MM"
    source_ref: Union[SessionRef, str]
    payload: Any = field(default=None, compare=False, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "id": self.id,
            "kind": self.kind,
            "title": self.title,
            "date": self.date,
            "start_time": self.start_time,
            "end_time": self.end_time,
        }
        if self.kind == KIND_SESSION and self.payload is not None:
            session = Session.from_dict(self.payload)
            result["session_type"] = session.type
            result["subject"] = session.subject
            if session.test_date:
                result["test_date"] = session.test_date
        return result


@dataclass
class Timetable:
    """A user's revision timetable and its date-keyed schedule."""
    id: str
    user_id: str
    name: str
    schedule: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class WeekWindow:
    """Seven consecutive days starting on a Monday."""
    start: date

    def __post_init__(self):
        if self.start.weekday() != 0:
            raise ValueError(f"Week window must start on a Monday, got {self.start}")

    @classmethod
    def containing(cls, day: date) -> "WeekWindow":
        """Return the window of the week that contains ``day``."""
        return cls(day - timedelta(days=day.weekday()))

    @property
    def end(self) -> date:
        return self.start + timedelta(days=6)

    def days(self) -> List[date]:
        return [self.start + timedelta(days=i) for i in range(7)]

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    def shifted(self, weeks: int) -> "WeekWindow":
        return WeekWindow(self.start + timedelta(weeks=weeks))


# Serialization helpers

def serialize_date(d: date) -> str:
    """Convert date to ISO format string (a schedule date key)."""
    return d.isoformat()


def deserialize_date(s: Union[str, date]) -> date:
    """Convert an ISO date string (or a date) to a date.

    Raises:
        FormatError: if the string is not a valid YYYY-MM-DD date
    """
    if isinstance(s, datetime):
        return s.date()
    if isinstance(s, date):
        return s
    if not isinstance(s, str) or not _DATE_KEY_RE.match(s.strip()):
        raise FormatError(f"Invalid date: {s!r}")
    try:
        return date.fromisoformat(s.strip())
    except ValueError:
        raise FormatError(f"Invalid date: {s!r}")


def validate_schedule(schedule: Any) -> Dict[str, List[Dict[str, Any]]]:
    """Check a whole schedule against the stored shape.

    Every key must be a YYYY-MM-DD date mapping to a non-empty list of valid
    sessions.

    Returns:
        A new dict holding the same session lists

    Raises:
        FormatError: naming the first offending key or entry
    """
    if not isinstance(schedule, Mapping):
        raise FormatError(f"Schedule must be an object keyed by date, got {type(schedule).__name__}")
    result = {}
    for date_key, sessions in schedule.items():
        deserialize_date(date_key)
        if not isinstance(sessions, list) or not sessions:
            raise FormatError(f"Schedule entry {date_key} must be a non-empty list of sessions")
        for index, raw in enumerate(sessions):
            try:
                Session.from_dict(raw)
            except FormatError as e:
                raise FormatError(f"Session {date_key}[{index}]: {e}") from e
        result[date_key] = sessions
    return result


def _text(data: Mapping[str, Any], name: str) -> str:
    value = data.get(name)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise FormatError(f"Session field {name!r} must be text, got {value!r}")
    return value


def parse_clock(value: Any) -> int:
    """Convert 'HH:MM' (or 'HH:MM:SS') to minutes since midnight.

    Raises:
        FormatError: for anything that is not a valid clock time
    """
    if not isinstance(value, str):
        raise FormatError(f"Invalid time format: {value!r}")
    match = _CLOCK_RE.match(value.strip())
    if not match:
        raise FormatError(f"Invalid time format: {value!r}")
    hours, minutes = int(match.group(1)), int(match.group(2))
    seconds = int(match.group(3) or 0)
    if not (0 <= hours <= 23 and 0 <= minutes <= 59 and 0 <= seconds <= 59):
        raise FormatError(f"Invalid time value: {value!r}")
    return hours * 60 + minutes


def format_clock(minutes: int) -> str:
    """Convert minutes since midnight to 'HH:MM', wrapping past midnight."""
    minutes %= MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def parse_duration(value: Any) -> int:
    """Return a session duration in minutes.

    Missing, None or zero durations fall back to DEFAULT_DURATION_MINUTES.

    Raises:
        FormatError: for negative, boolean or non-numeric values
    """
    if value is None or (not isinstance(value, bool) and value == 0):
        return DEFAULT_DURATION_MINUTES
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise FormatError(f"Invalid duration: {value!r}")
    if value < 0 or not math.isfinite(value):
        raise FormatError(f"Invalid duration: {value!r}")
    return int(round(value))


def parse_instant(value: Union[str, datetime]) -> datetime:
    """Convert an ISO-8601 instant to an aware datetime (naive means UTC)."""
    if isinstance(value, datetime):
        dt = value
    else:
        if not isinstance(value, str):
            raise FormatError(f"Invalid instant: {value!r}")
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            raise FormatError(f"Invalid instant: {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def serialize_instant(dt: datetime) -> str:
    """Convert an aware datetime to an ISO string in UTC."""
    return dt.astimezone(timezone.utc).isoformat()
