"""
Reschedule engine.

Moves a calendar item (a timetable session or a standalone event) to another
day and returns the new schedule and event list. The engine never mutates its
inputs and never touches storage: it takes a snapshot and returns a new one,
or raises and returns nothing.

Session move:
- the session is removed from its old date (the key is dropped when its list
  becomes empty) and appended to the target date
- the time of day is kept, only the date changes
- every other date key maps to the very same list object as before

Event move:
- the event keeps its local clock time and its duration
- every other event object is returned unchanged
"""

import logging
from datetime import date, datetime, timezone, tzinfo
from typing import Any, Dict, List, Mapping, NamedTuple, Sequence, Union

from .errors import FormatError, StaleReferenceError
from .models import (
    KIND_EVENT, KIND_SESSION,
    CalendarItem, Event, Schedule, Session,
    deserialize_date, format_clock, parse_clock, serialize_date, serialize_instant,
)
from .normalizer import coerce_event, localize, resolve_timezone

logger = logging.getLogger(__name__)


class MoveResult(NamedTuple):
    """New snapshot after a move. Unpacks as ``(schedule, events)``."""
    schedule: Schedule
    events: Sequence[Any]


def move(item: CalendarItem, target_date: Union[str, date], schedule: Schedule,
         events: Sequence[Any], tz: Union[str, tzinfo, None] = None) -> MoveResult:
    """Move ``item`` to ``target_date``.

    Args:
        item: Item from the latest flatten of ``schedule``/``events``
        target_date: Day to move to (date or "YYYY-MM-DD")
        schedule: Current date-keyed schedule
        events: Current events (Event objects or stored rows)
        tz: Calendar timezone, used to keep an event's local clock time

    Returns:
        MoveResult with the new schedule and events

    Raises:
        FormatError: malformed date, time or duration
        StaleReferenceError: the item no longer resolves in the snapshot
    """
    target_key = serialize_date(deserialize_date(target_date))
    if target_key == item.date:
        return MoveResult(schedule, events)

    if item.kind == KIND_SESSION:
        new_schedule = move_session(item, target_key, schedule)
        logger.info("Moved session %s to %s", item.id, target_key)
        return MoveResult(new_schedule, events)
    if item.kind == KIND_EVENT:
        new_events = move_event(item, target_key, events, resolve_timezone(tz))
        logger.info("Moved event %s to %s", item.id, target_key)
        return MoveResult(schedule, new_events)
    raise FormatError(f"Unknown calendar item kind: {item.kind!r}")


def move_session(item: CalendarItem, target_key: str, schedule: Schedule) -> Dict[str, List[Any]]:
    """Return a new schedule with the item's session moved to ``target_key``."""
    try:
        old_date, index = item.source_ref
    except (TypeError, ValueError):
        raise StaleReferenceError(f"Item {item.id} has no session reference")

    sessions = (schedule or {}).get(old_date)
    if sessions is None:
        raise StaleReferenceError(f"No sessions on {old_date} (item {item.id})")
    if not isinstance(sessions, (list, tuple)):
        raise FormatError(f"Schedule entry {old_date} is not a list of sessions")
    if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < len(sessions):
        raise StaleReferenceError(
            f"Session index {index} is out of range for {old_date} ({len(sessions)} sessions)"
        )

    raw = sessions[index]
    if item.payload is not None and raw != item.payload:
        raise StaleReferenceError(f"Session {old_date}[{index}] changed since it was displayed")

    Session.from_dict(raw)
    moved = dict(raw)
    moved["time"] = format_clock(parse_clock(item.start_time))

    new_schedule = dict(schedule)
    remaining = [s for i, s in enumerate(sessions) if i != index]
    if remaining:
        new_schedule[old_date] = remaining
    else:
        del new_schedule[old_date]

    new_schedule[target_key] = list(new_schedule.get(target_key, [])) + [moved]
    return new_schedule


def _event_position(events: Sequence[Any], event_id: str) -> int:
    for i, record in enumerate(events or []):
        record_id = record.id if isinstance(record, Event) else (record or {}).get("id")
        if str(record_id) == str(event_id):
            return i
    raise StaleReferenceError(f"Event {event_id} is no longer in the calendar")


def find_event(events: Sequence[Any], event_id: str) -> Union[Event, Mapping[str, Any]]:
    """Return the event record with ``event_id``.

    Raises:
        StaleReferenceError: if no such event is in the list
    """
    return events[_event_position(events, event_id)]


def move_event(item: CalendarItem, target_key: str, events: Sequence[Any], tz: tzinfo) -> List[Any]:
    """Return a new event list with the item's event moved to ``target_key``."""
    position = _event_position(events, str(item.source_ref))
    record = events[position]
    event = coerce_event(record)

    local_start = event.start_time.astimezone(tz)
    naive_start = datetime.combine(deserialize_date(target_key), local_start.time())
    new_start = localize(tz, naive_start).astimezone(timezone.utc)
    new_end = new_start + event.duration

    if isinstance(record, Event):
        replacement = Event(
            id=event.id,
            title=event.title,
            start_time=new_start,
            end_time=new_end,
            user_id=event.user_id,
        )
    else:
        replacement = dict(record)
        replacement["start_time"] = serialize_instant(new_start)
        replacement["end_time"] = serialize_instant(new_end)

    new_events = list(events)
    new_events[position] = replacement
    return new_events
