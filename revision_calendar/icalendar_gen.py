"""
iCalendar export of a calendar week.

Generates standards-compliant .ics files so a week of revision sessions and
events can be imported into another calendar app.
"""

from datetime import datetime, timedelta
from typing import List

from icalendar import Calendar, Event
from pytz import timezone

from .config import DEFAULT_TIMEZONE
from .models import KIND_EVENT, CalendarItem, Session, WeekWindow, deserialize_date, parse_clock
from .timegrid import minutes_between


class CalendarExporter:
    """Builds iCalendar (.ics) files from calendar items."""

    def __init__(self, timezone_str: str = DEFAULT_TIMEZONE):
        """Initialize calendar exporter.

        Args:
            timezone_str: Timezone the item clock times are expressed in
        """
        self.tz = timezone(timezone_str)

    def build_calendar(self, window: WeekWindow, items: List[CalendarItem],
                       name: str = "Revision calendar") -> Calendar:
        """Build a calendar holding one VEVENT per item.

        Args:
            window: Week the items belong to
            items: Items from flatten()
            name: Calendar display name

        Returns:
            Calendar object ready for export
        """
        cal = Calendar()
        cal.add('prodid', '-//Revision Calendar//EN')
        cal.add('version', '2.0')
        cal.add('calscale', 'GREGORIAN')
        cal.add('method', 'PUBLISH')
        cal.add('x-wr-calname', f"{name} ({window.start.isoformat()})")

        for item in items:
            cal.add_component(self._create_item_event(item))

        return cal

    def _create_item_event(self, item: CalendarItem) -> Event:
        """Create the VEVENT for one calendar item."""
        start_minutes = parse_clock(item.start_time)
        naive_start = datetime.combine(deserialize_date(item.date), datetime.min.time()) \
            + timedelta(minutes=start_minutes)
        dtstart = self.tz.localize(naive_start)
        dtend = dtstart + timedelta(minutes=minutes_between(item.start_time, item.end_time))

        event = Event()
        # uid follows the item id
        event.add('uid', f"{item.id}@revision-calendar")
        event.add('dtstart', dtstart)
        event.add('dtend', dtend)
        event.add('summary', item.title)

        if item.kind == KIND_EVENT:
            event.add('categories', ['Event'])
        else:
            session = Session.from_dict(item.payload) if item.payload is not None else None
            session_type = session.type if session else 'revision'
            event.add('categories', [session_type.title()])
            desc_parts = []
            if session and session.subject:
                desc_parts.append(f"Subject: {session.subject}")
            if session and session.notes:
                desc_parts.append(session.notes)
            if session and session.test_date:
                desc_parts.append(f"Test date: {session.test_date}")
            if desc_parts:
                event.add('description', "\n".join(desc_parts))

        return event

    def export_to_file(self, calendar: Calendar, filepath: str):
        """Export calendar to .ics file.

        Args:
            calendar: Calendar object
            filepath: Path to output file
        """
        with open(filepath, 'wb') as f:
            f.write(calendar.to_ical())
