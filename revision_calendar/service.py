"""
Calendar service: the fetch, compute, persist sequence around the engine.

The service is the calling context of the normalizer and the reschedule
engine. It receives the record store and the current user id explicitly, so
nothing here relies on a process-wide "current user" or storage client.

Read path:  store -> flatten -> WeekView
Write path: store -> flatten -> resolve item -> move -> store -> flatten

Only one move per timetable can be in flight; an overlapping move is
rejected with MoveInProgressError.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from .errors import MoveInProgressError, NotAuthenticatedError, NotFoundError, StaleReferenceError, StorageError
from .models import KIND_EVENT, CalendarItem, Event, Timetable, WeekWindow
from .normalizer import flatten, localize, resolve_timezone
from .reschedule import find_event, move

logger = logging.getLogger(__name__)

EXPECTED_FIELDS = ("title", "date", "start_time", "end_time", "kind")


@dataclass
class WeekView:
    """The items of one timetable for one week."""
    window: WeekWindow
    items: List[CalendarItem] = field(default_factory=list)


class CalendarService:
    """Loads weeks and reschedules items against a record store."""

    def __init__(self, store, tz: Union[str, tzinfo, None] = None):
        """Initialize the service.

        Args:
            store: TimetableStore or SupabaseTimetableStore
            tz: Calendar timezone (name or tzinfo)
        """
        self.store = store
        self.tz = resolve_timezone(tz)
        self._lock = threading.Lock()
        self._in_flight = set()

    def list_timetables(self, user_id: Optional[str]) -> List[Timetable]:
        return self.store.list_timetables(self._require_user(user_id))

    def load_week(self, user_id: Optional[str], timetable_id: str, window: WeekWindow) -> WeekView:
        """Read the timetable and events for ``window`` and flatten them."""
        user_id = self._require_user(user_id)
        _, _, items = self._snapshot(user_id, timetable_id, window)
        return WeekView(window, items)

    def reschedule(self, user_id: Optional[str], timetable_id: str, item_id: str,
                   target_date: Union[str, date], window: WeekWindow,
                   expected: Optional[Dict[str, Any]] = None) -> WeekView:
        """Move one item to ``target_date`` and persist the change.

        Args:
            user_id: Current user
            timetable_id: Timetable whose week is displayed
            item_id: Id of the dragged item
            target_date: Day the item was dropped on
            window: Week the item was dragged in
            expected: Item fields as the client displayed them; any mismatch
                      with the fresh snapshot means the view is stale

        Returns:
            The week re-flattened from the new state

        Raises:
            StaleReferenceError: the item no longer matches storage
            FormatError: malformed date or time
            MoveInProgressError: another move on this timetable is running
            StorageError: the write failed; reload before trusting the view
        """
        user_id = self._require_user(user_id)
        with self._claim(timetable_id):
            timetable, events, items = self._snapshot(user_id, timetable_id, window)
            item = self._resolve(items, item_id, expected)

            result = move(item, target_date, timetable.schedule, events, tz=self.tz)
            if result.schedule is timetable.schedule and result.events is events:
                return WeekView(window, items)

            try:
                if item.kind == KIND_EVENT:
                    moved = find_event(result.events, item.source_ref)
                    self.store.write_event_times(moved.id, moved.start_time, moved.end_time)
                else:
                    self.store.write_schedule(timetable_id, result.schedule)
            except StorageError:
                logger.error("Could not persist move of %s in timetable %s", item_id, timetable_id)
                raise

            return WeekView(window, flatten(window, result.schedule, result.events, self.tz))

    def _require_user(self, user_id: Optional[str]) -> str:
        if not user_id:
            raise NotAuthenticatedError("No user is logged in")
        return user_id

    @contextmanager
    def _claim(self, timetable_id: str) -> Iterator[None]:
        with self._lock:
            if timetable_id in self._in_flight:
                raise MoveInProgressError(f"A move on timetable {timetable_id} is still in progress")
            self._in_flight.add(timetable_id)
        try:
            yield
        finally:
            with self._lock:
                self._in_flight.discard(timetable_id)

    def _window_bounds(self, window: WeekWindow) -> Tuple[datetime, datetime]:
        """UTC bounds of the window's local days, end exclusive."""
        start = localize(self.tz, datetime.combine(window.start, time.min))
        end = localize(self.tz, datetime.combine(window.end + timedelta(days=1), time.min))
        return start.astimezone(timezone.utc), end.astimezone(timezone.utc)

    def _snapshot(self, user_id: str, timetable_id: str,
                  window: WeekWindow) -> Tuple[Timetable, List[Event], List[CalendarItem]]:
        timetable = self.store.read_timetable(timetable_id)
        if timetable.user_id != user_id:
            raise NotFoundError(f"Timetable {timetable_id} not found")
        start, end = self._window_bounds(window)
        events = self.store.read_events(user_id, start, end)
        items = flatten(window, timetable.schedule, events, self.tz)
        return timetable, events, items

    def _resolve(self, items: List[CalendarItem], item_id: str,
                 expected: Optional[Dict[str, Any]]) -> CalendarItem:
        item = next((i for i in items if i.id == item_id), None)
        if item is None:
            raise StaleReferenceError(f"Item {item_id} is no longer in the calendar")
        for name in EXPECTED_FIELDS:
            if expected and name in expected and expected[name] != getattr(item, name):
                raise StaleReferenceError(
                    f"Item {item_id} changed since it was displayed ({name}: "
                    f"{expected[name]!r} != {getattr(item, name)!r})"
                )
        return item
