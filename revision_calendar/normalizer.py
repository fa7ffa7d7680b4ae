"""
Schedule normalizer.

Flattens a timetable's date-keyed schedule and the user's standalone events
into one ordered list of CalendarItems for a week window.

Ordering:
- event items first (they render on top), in the order they were given
- then session items, date keys in chronological order, each date's
  sessions in stored order

A malformed entry is skipped with a warning instead of failing the whole
week, so one bad session never blanks the calendar.
"""

import logging
from datetime import datetime, tzinfo
from typing import Any, Iterable, List, Mapping, Optional, Union

from pytz import timezone

from .config import DEFAULT_TIMEZONE
from .errors import FormatError
from .models import (
    KIND_EVENT, KIND_SESSION,
    CalendarItem, Event, Schedule, Session, SessionRef, WeekWindow,
    deserialize_date, format_clock, parse_clock, serialize_date,
)

logger = logging.getLogger(__name__)


def resolve_timezone(tz: Union[str, tzinfo, None]) -> tzinfo:
    """Return a tzinfo for a timezone name (default: the calendar default)."""
    if tz is None:
        tz = DEFAULT_TIMEZONE
    if isinstance(tz, str):
        return timezone(tz)
    return tz


def localize(tz: tzinfo, naive: datetime) -> datetime:
    """Attach ``tz`` to a naive local datetime (pytz zones need localize)."""
    if hasattr(tz, "localize"):
        return tz.localize(naive)
    return naive.replace(tzinfo=tz)


def coerce_event(record: Union[Event, Mapping[str, Any]]) -> Event:
    """Accept an Event or a stored event row."""
    if isinstance(record, Event):
        return record
    if not isinstance(record, Mapping):
        raise FormatError(f"Event must be an object, got {type(record).__name__}")
    return Event.from_dict(record)


def event_item(event: Event, tz: tzinfo) -> CalendarItem:
    local_start = event.start_time.astimezone(tz)
    local_end = event.end_time.astimezone(tz)
    return CalendarItem(
        id=f"event-{event.id}",
        kind=KIND_EVENT,
        title=event.title,
        date=serialize_date(local_start.date()),
        start_time=local_start.strftime("%H:%M"),
        end_time=local_end.strftime("%H:%M"),
        source_ref=event.id,
        payload=event,
    )


def session_item(date_key: str, index: int, raw: Mapping[str, Any]) -> CalendarItem:
    """Build the item for the session at ``schedule[date_key][index]``.

    Raises:
        FormatError: if the session's time or duration is malformed
    """
    session = Session.from_dict(raw)
    end_minutes = parse_clock(session.time) + session.duration
    return CalendarItem(
        id=f"session-{date_key}-{index}",
        kind=KIND_SESSION,
        title=session.topic or session.subject or session.type.title(),
        date=date_key,
        start_time=session.time,
        end_time=format_clock(end_minutes),
        source_ref=SessionRef(date_key, index),
        payload=raw,
    )


def flatten_events(window: WeekWindow, events: Iterable[Any], tz: tzinfo) -> List[CalendarItem]:
    items = []
    for record in events:
        try:
            event = coerce_event(record)
            item = event_item(event, tz)
        except FormatError as e:
            logger.warning("Skipping malformed event %r: %s", record, e)
            continue
        if window.contains(deserialize_date(item.date)):
            items.append(item)
    return items


def flatten_sessions(window: WeekWindow, schedule: Optional[Schedule]) -> List[CalendarItem]:
    if not schedule:
        return []

    keyed = []
    for date_key in schedule:
        try:
            day = deserialize_date(date_key)
        except FormatError as e:
            logger.warning("Skipping schedule key %r: %s", date_key, e)
            continue
        if window.contains(day):
            keyed.append((day, date_key))
    keyed.sort()

    items = []
    for _, date_key in keyed:
        sessions = schedule[date_key]
        if not isinstance(sessions, (list, tuple)):
            logger.warning("Skipping schedule entry %s: expected a list of sessions", date_key)
            continue
        for index, raw in enumerate(sessions):
            try:
                items.append(session_item(date_key, index, raw))
            except FormatError as e:
                logger.warning("Skipping session %s[%d]: %s", date_key, index, e)
    return items


def flatten(window: WeekWindow, schedule: Optional[Schedule], events: Iterable[Any],
            tz: Union[str, tzinfo, None] = None) -> List[CalendarItem]:
    """Flatten a schedule and events into the week's calendar items.

    Args:
        window: Week to render
        schedule: Date-keyed schedule in its stored shape
        events: Event objects or stored event rows
        tz: Timezone events are shown in (name or tzinfo)

    Returns:
        Event items followed by session items
    """
    tz = resolve_timezone(tz)
    return flatten_events(window, events or [], tz) + flatten_sessions(window, schedule)
