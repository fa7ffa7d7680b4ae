"""
Command-line interface for the revision calendar.

Works against the same record store as the web app (SQLite by default,
Supabase when DATABASE_URL is set, or an explicit --db file).

Usage:
    revision-calendar --user me import schedule.json --name "Summer exams"
    revision-calendar --user me list
    revision-calendar --user me show TIMETABLE_ID --week 2024-01-03
    revision-calendar --user me move TIMETABLE_ID session-2024-01-01-0 2024-01-03
    revision-calendar --user me export TIMETABLE_ID --output-dir out/
"""

import argparse
import json
import sys
from datetime import date
from pathlib import Path
from typing import List, Optional

from .config import calendar_timezone, dev_user_id, setup_logging
from .errors import CalendarError, FormatError
from .icalendar_gen import CalendarExporter
from .models import WeekWindow, deserialize_date, parse_instant, serialize_date, validate_schedule
from .service import CalendarService, WeekView
from .store import TimetableStore, get_record_store


def print_week(view: WeekView):
    """Print a week's items grouped by day."""
    print(f"\nWeek of {view.window.start.strftime('%b %d')} "
          f"({serialize_date(view.window.start)} to {serialize_date(view.window.end)})")
    for day in view.window.days():
        key = serialize_date(day)
        day_items = [item for item in view.items if item.date == key]
        print(f"\n{day.strftime('%A')} {key}")
        if not day_items:
            print("  (nothing planned)")
        for item in day_items:
            marker = "EVENT" if item.kind == "event" else item.to_dict().get("session_type", "session")
            print(f"  {item.start_time}-{item.end_time}  {item.title}  [{marker}]  id={item.id}")


def load_import_file(path: Path):
    """Read and validate a schedule file.

    The file holds either a bare schedule ({"YYYY-MM-DD": [sessions]}) or an
    object with "schedule" and optional "events" lists. Nothing is written
    until the whole file has been checked.

    Returns:
        (schedule, events) where events are (title, start, end) tuples

    Raises:
        FormatError: if any part of the file is malformed
    """
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    if isinstance(data, dict) and "schedule" in data:
        schedule, raw_events = data["schedule"], data.get("events") or []
    else:
        schedule, raw_events = data, []

    schedule = validate_schedule(schedule)
    if not isinstance(raw_events, list):
        raise FormatError("events must be a list")

    events = []
    for i, raw in enumerate(raw_events):
        if not isinstance(raw, dict) or "start_time" not in raw or "end_time" not in raw:
            raise FormatError(f"Event {i} needs start_time and end_time")
        start = parse_instant(raw["start_time"])
        end = parse_instant(raw["end_time"])
        if end < start:
            raise FormatError(f"Event {i} ends before it starts")
        events.append((str(raw.get("title") or ""), start, end))
    return schedule, events


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Weekly revision calendar: view, reschedule and export timetables"
    )
    parser.add_argument("--db", type=str, help="SQLite database file (default: CALENDAR_DB_PATH or ~/.revision_calendar)")
    parser.add_argument("--user", type=str, default=dev_user_id(), help="User id (default: DEV_USER_ID)")
    parser.add_argument("--timezone", type=str, default=calendar_timezone(),
                        help="Calendar timezone (default: CALENDAR_TIMEZONE or UTC)")
    parser.add_argument("--log-level", type=str, default=None, help="Logging level (default: LOG_LEVEL or INFO)")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List timetables")

    show = sub.add_parser("show", help="Show one week of a timetable")
    show.add_argument("timetable_id")
    show.add_argument("--week", type=str, help="Any day of the week (default: this week)")

    move = sub.add_parser("move", help="Move a session or event to another day")
    move.add_argument("timetable_id")
    move.add_argument("item_id", help="Item id as printed by 'show'")
    move.add_argument("target_date", help="Day to move to (YYYY-MM-DD)")
    move.add_argument("--week", type=str, help="Week the item is in (default: this week)")

    imp = sub.add_parser("import", help="Create a timetable from a JSON schedule file")
    imp.add_argument("path", type=str)
    imp.add_argument("--name", type=str, default="Imported timetable")

    export = sub.add_parser("export", help="Export one week to an .ics file")
    export.add_argument("timetable_id")
    export.add_argument("--week", type=str, help="Any day of the week (default: this week)")
    export.add_argument("--output-dir", type=str, default=".",
                        help="Output directory for the .ics file (default: current directory)")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    if not args.user:
        print("Error: no user given. Pass --user or set DEV_USER_ID.")
        return 1

    try:
        store = TimetableStore(Path(args.db)) if args.db else get_record_store()
        service = CalendarService(store, args.timezone)
        week = getattr(args, "week", None)
        window = WeekWindow.containing(deserialize_date(week) if week else date.today())

        if args.command == "list":
            timetables = service.list_timetables(args.user)
            if not timetables:
                print("No timetables found. Import one with 'revision-calendar import'.")
            for t in timetables:
                print(f"{t.id}  {t.name}  ({len(t.schedule)} planned days)")

        elif args.command == "show":
            print_week(service.load_week(args.user, args.timetable_id, window))

        elif args.command == "move":
            view = service.reschedule(args.user, args.timetable_id, args.item_id, args.target_date, window)
            print(f"Moved {args.item_id} to {args.target_date}.")
            print_week(view)

        elif args.command == "import":
            schedule, events = load_import_file(Path(args.path))
            timetable = store.create_timetable(args.user, args.name, schedule)
            for title, start, end in events:
                store.create_event(args.user, title, start, end)
            print(f"Created timetable {timetable.id} with {len(schedule)} planned days "
                  f"and {len(events)} event(s).")

        elif args.command == "export":
            view = service.load_week(args.user, args.timetable_id, window)
            output_dir = Path(args.output_dir)
            output_dir.mkdir(parents=True, exist_ok=True)
            exporter = CalendarExporter(timezone_str=args.timezone)
            ics_path = output_dir / f"revision-week-{serialize_date(window.start)}.ics"
            exporter.export_to_file(exporter.build_calendar(window, view.items), str(ics_path))
            print(f"Saved calendar to: {ics_path}")

    except CalendarError as e:
        print(f"Error: {e}")
        return 1
    except (OSError, json.JSONDecodeError) as e:
        print(f"Error: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
