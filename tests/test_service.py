"""Unit tests for the calendar service."""

import pytest
from datetime import date, datetime, timezone
from revision_calendar.errors import (
    MoveInProgressError, NotAuthenticatedError, NotFoundError, StaleReferenceError, StorageError,
)
from revision_calendar.models import WeekWindow
from revision_calendar.service import CalendarService
from revision_calendar.store import TimetableStore

WEEK = WeekWindow(date(2024, 1, 1))
USER = "user-1"


def make_schedule():
    return {
        "2024-01-01": [
            {"time": "09:00", "subject": "Maths", "topic": "Algebra", "duration": 60, "type": "revision"},
            {"time": "11:00", "subject": "Physics", "topic": "Forces", "duration": 90, "type": "homework"},
        ],
        "2024-01-04": [
            {"time": "10:00", "subject": "History", "topic": "Tudors", "duration": 60, "type": "revision"},
        ],
    }


class FailingStore(TimetableStore):
    """Store whose writes fail, as if the database went away mid-move."""

    def write_schedule(self, timetable_id, schedule):
        raise StorageError("database is locked")

    def write_event_times(self, event_id, start, end):
        raise StorageError("database is locked")


class ReentrantStore(TimetableStore):
    """Store that runs a callback the first time a timetable is read."""

    on_read = None

    def read_timetable(self, timetable_id):
        callback, self.on_read = self.on_read, None
        if callback:
            callback()
        return super().read_timetable(timetable_id)


@pytest.fixture
def store(tmp_path):
    return TimetableStore(db_path=tmp_path / "calendar.db")


@pytest.fixture
def timetable(store):
    return store.create_timetable(USER, "Exams", make_schedule())


@pytest.fixture
def service(store):
    return CalendarService(store)


def test_load_week(service, store, timetable):
    store.create_event(USER, "Dentist", "2024-01-02T15:00:00Z", "2024-01-02T16:00:00Z")
    store.create_event(USER, "Next week", "2024-01-08T15:00:00Z", "2024-01-08T16:00:00Z")

    view = service.load_week(USER, timetable.id, WEEK)

    assert view.window == WEEK
    assert [item.title for item in view.items] == ["Dentist", "Algebra", "Forces", "Tudors"]


def test_list_timetables(service, timetable):
    assert [t.id for t in service.list_timetables(USER)] == [timetable.id]


def test_reschedule_session_persists(service, store, timetable):
    """A move is written to storage and the week is re-flattened."""
    view = service.reschedule(USER, timetable.id, "session-2024-01-01-0", "2024-01-03", WEEK)

    stored = store.read_timetable(timetable.id).schedule
    assert [s["topic"] for s in stored["2024-01-01"]] == ["Forces"]
    assert [s["topic"] for s in stored["2024-01-03"]] == ["Algebra"]
    assert stored["2024-01-04"] == make_schedule()["2024-01-04"]

    ids = [item.id for item in view.items]
    assert ids == ["session-2024-01-01-0", "session-2024-01-03-0", "session-2024-01-04-0"]
    assert view.items[1].start_time == "09:00"


def test_reschedule_event_persists(service, store, timetable):
    event = store.create_event(USER, "Dentist", "2024-01-02T15:00:00Z", "2024-01-02T16:30:00Z")

    view = service.reschedule(USER, timetable.id, f"event-{event.id}", "2024-01-05", WEEK)

    [moved] = store.read_events(USER, datetime(2024, 1, 1, tzinfo=timezone.utc),
                                datetime(2024, 1, 8, tzinfo=timezone.utc))
    assert moved.start_time == datetime(2024, 1, 5, 15, 0, tzinfo=timezone.utc)
    assert moved.end_time == datetime(2024, 1, 5, 16, 30, tzinfo=timezone.utc)
    assert view.items[0].date == "2024-01-05"
    assert store.read_timetable(timetable.id).schedule == make_schedule()


def test_reschedule_same_day_writes_nothing(tmp_path):
    store = FailingStore(db_path=tmp_path / "calendar.db")
    timetable = store.create_timetable(USER, "Exams", make_schedule())
    view = CalendarService(store).reschedule(USER, timetable.id, "session-2024-01-04-0", "2024-01-04", WEEK)
    assert len(view.items) == 3


def test_reschedule_unknown_item_is_stale(service, timetable):
    with pytest.raises(StaleReferenceError):
        service.reschedule(USER, timetable.id, "session-2024-01-01-5", "2024-01-03", WEEK)


def test_reschedule_expected_mismatch_is_stale(service, store, timetable):
    """A view drawn from older data is rejected instead of moving the wrong session."""
    expected = {"title": "Algebra", "date": "2024-01-01", "start_time": "09:00"}
    schedule = make_schedule()
    schedule["2024-01-01"].reverse()
    store.write_schedule(timetable.id, schedule)

    with pytest.raises(StaleReferenceError):
        service.reschedule(USER, timetable.id, "session-2024-01-01-0", "2024-01-03", WEEK, expected=expected)
    assert store.read_timetable(timetable.id).schedule == schedule


def test_reschedule_storage_failure(tmp_path, caplog):
    store = FailingStore(db_path=tmp_path / "calendar.db")
    timetable = store.create_timetable(USER, "Exams", make_schedule())

    with pytest.raises(StorageError):
        CalendarService(store).reschedule(USER, timetable.id, "session-2024-01-01-0", "2024-01-03", WEEK)
    assert "Could not persist move" in caplog.text
    assert store.read_timetable(timetable.id).schedule == make_schedule()


def test_overlapping_move_is_rejected(tmp_path):
    store = ReentrantStore(db_path=tmp_path / "calendar.db")
    timetable = store.create_timetable(USER, "Exams", make_schedule())
    service = CalendarService(store)
    errors = []

    def second_move():
        try:
            service.reschedule(USER, timetable.id, "session-2024-01-04-0", "2024-01-05", WEEK)
        except MoveInProgressError as e:
            errors.append(e)

    store.on_read = second_move
    service.reschedule(USER, timetable.id, "session-2024-01-01-0", "2024-01-03", WEEK)

    assert len(errors) == 1
    assert "2024-01-04" in store.read_timetable(timetable.id).schedule

    # The claim is released once the move finishes
    service.reschedule(USER, timetable.id, "session-2024-01-04-0", "2024-01-05", WEEK)
    assert "2024-01-04" not in store.read_timetable(timetable.id).schedule


def test_other_users_timetable_is_not_found(service, timetable):
    with pytest.raises(NotFoundError):
        service.load_week("user-2", timetable.id, WEEK)
    with pytest.raises(NotFoundError):
        service.reschedule("user-2", timetable.id, "session-2024-01-01-0", "2024-01-03", WEEK)


def test_requires_user(service, timetable):
    with pytest.raises(NotAuthenticatedError):
        service.load_week(None, timetable.id, WEEK)
    with pytest.raises(NotAuthenticatedError):
        service.reschedule("", timetable.id, "session-2024-01-01-0", "2024-01-03", WEEK)


def test_events_follow_calendar_timezone(store, timetable):
    """Events are fetched by local days and shown in local time."""
    store.create_event(USER, "Late call", "2023-12-31T23:30:00Z", "2024-01-01T00:30:00Z")
    service = CalendarService(store, "Europe/Berlin")

    view = service.load_week(USER, timetable.id, WEEK)

    event = view.items[0]
    assert (event.title, event.date, event.start_time) == ("Late call", "2024-01-01", "00:30")
