"""Unit tests for iCalendar export."""

from datetime import date, datetime, timezone
from icalendar import Calendar
from revision_calendar.icalendar_gen import CalendarExporter
from revision_calendar.models import Event, WeekWindow
from revision_calendar.normalizer import flatten

WEEK = WeekWindow(date(2024, 1, 1))


def make_items(tz="UTC"):
    schedule = {"2024-01-01": [
        {"time": "09:00", "subject": "Maths", "topic": "Algebra", "duration": 90,
         "type": "homework", "notes": "Sheet 3", "testDate": "2024-01-20"},
        {"time": "23:30", "topic": "Late review", "duration": 60},
    ]}
    events = [Event(id="e1", title="Dentist",
                    start_time=datetime(2024, 1, 2, 15, tzinfo=timezone.utc),
                    end_time=datetime(2024, 1, 2, 16, tzinfo=timezone.utc))]
    return flatten(WEEK, schedule, events, tz=tz)


def test_build_calendar():
    """Test calendar generation."""
    exporter = CalendarExporter()
    cal = exporter.build_calendar(WEEK, make_items())

    assert cal.get('prodid') == '-//Revision Calendar//EN'
    assert '2024-01-01' in str(cal.get('x-wr-calname'))

    vevents = list(cal.walk('VEVENT'))
    assert [str(e.get('summary')) for e in vevents] == ['Dentist', 'Algebra', 'Late review']
    assert str(vevents[1].get('uid')) == 'session-2024-01-01-0@revision-calendar'


def test_session_details():
    exporter = CalendarExporter()
    algebra = list(exporter.build_calendar(WEEK, make_items()).walk('VEVENT'))[1]

    assert algebra.decoded('dtstart') == datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)
    assert algebra.decoded('dtend') == datetime(2024, 1, 1, 10, 30, tzinfo=timezone.utc)
    description = str(algebra.get('description'))
    assert 'Subject: Maths' in description
    assert 'Sheet 3' in description
    assert 'Test date: 2024-01-20' in description


def test_session_past_midnight_ends_next_day():
    late = list(CalendarExporter().build_calendar(WEEK, make_items()).walk('VEVENT'))[2]
    assert late.decoded('dtend') == datetime(2024, 1, 2, 0, 30, tzinfo=timezone.utc)


def test_local_timezone():
    exporter = CalendarExporter(timezone_str='Europe/Berlin')
    dentist = list(exporter.build_calendar(WEEK, make_items('Europe/Berlin')).walk('VEVENT'))[0]
    assert dentist.decoded('dtstart') == datetime(2024, 1, 2, 15, 0, tzinfo=timezone.utc)


def test_export_to_file(tmp_path):
    exporter = CalendarExporter()
    ics_path = tmp_path / "week.ics"
    exporter.export_to_file(exporter.build_calendar(WEEK, make_items()), str(ics_path))

    cal = Calendar.from_ical(ics_path.read_bytes())
    assert len(list(cal.walk('VEVENT'))) == 3


def test_skipped_and_unknown_session_types():
    """Malformed sessions never reach the export; unknown types export as Other."""
    schedule = {"2024-01-02": [
        {"time": "09:00", "duration": 60, "type": 3},
        {"time": "10:00", "topic": "Titration", "duration": 60, "type": "lab"},
    ]}
    cal = CalendarExporter().build_calendar(WEEK, flatten(WEEK, schedule, []))

    [lab] = list(cal.walk('VEVENT'))
    assert str(lab.get('summary')) == 'Titration'
    assert [str(c) for c in lab.get('categories').cats] == ['Other']
