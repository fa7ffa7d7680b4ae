"""
Record store for timetables and events.

Uses SQLite for local development and Supabase PostgreSQL for production.
Automatically selects the appropriate store based on environment variables.

The store keeps two tables:
- timetables: one row per timetable, the schedule as JSON in its wire shape
- events: standalone user events with UTC start/end instants

Every driver error is raised as StorageError so callers never see
sqlite3 or psycopg2 exceptions.
"""

import json
import logging
import os
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from .config import default_db_path
from .errors import NotFoundError, StorageError
from .models import Event, Schedule, Timetable, parse_instant, serialize_instant, validate_schedule

logger = logging.getLogger(__name__)


class TimetableStore:
    """SQLite-backed store for timetables and events."""

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize the store.

        Args:
            db_path: SQLite database file. Defaults to CALENDAR_DB_PATH or
                     ~/.revision_calendar/calendar.db
        """
        if db_path is None:
            db_path = default_db_path()
        db_path = Path(db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = db_path
        self._init_db()

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Open a connection, commit on success and wrap driver errors."""
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open calendar database: {e}") from e
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error("SQLite error on %s: %s", self.db_path, e)
            raise StorageError(f"Calendar database error: {e}") from e
        finally:
            conn.close()

    def _init_db(self):
        """Initialize database schema."""
        with self._connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS timetables (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    schedule_json TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS events (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    start_time TEXT NOT NULL,
                    end_time TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_events_user_start ON events (user_id, start_time)")

    def list_timetables(self, user_id: str) -> List[Timetable]:
        """List a user's timetables, newest first."""
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT id, user_id, name, schedule_json, created_at
                FROM timetables
                WHERE user_id = ?
                ORDER BY created_at DESC, rowid DESC
                """,
                (user_id,)
            ).fetchall()
        return [self._row_to_timetable(row) for row in rows]

    def read_timetable(self, timetable_id: str) -> Timetable:
        """Read one timetable.

        Raises:
            NotFoundError: if the timetable does not exist
        """
        with self._connection() as conn:
            row = conn.execute(
                "SELECT id, user_id, name, schedule_json, created_at FROM timetables WHERE id = ?",
                (timetable_id,)
            ).fetchone()
        if row is None:
            raise NotFoundError(f"Timetable {timetable_id} not found")
        return self._row_to_timetable(row)

    def write_schedule(self, timetable_id: str, schedule: Schedule):
        """Replace a timetable's schedule.

        Raises:
            NotFoundError: if the timetable does not exist
        """
        with self._connection() as conn:
            cursor = conn.execute(
                "UPDATE timetables SET schedule_json = ? WHERE id = ?",
                (json.dumps(schedule), timetable_id)
            )
            updated = cursor.rowcount
        if updated == 0:
            raise NotFoundError(f"Timetable {timetable_id} not found")

    def create_timetable(self, user_id: str, name: str, schedule: Optional[Schedule] = None) -> Timetable:
        timetable = Timetable(
            id=str(uuid.uuid4()),
            user_id=user_id,
            name=name,
            schedule=validate_schedule(schedule or {}),
            created_at=datetime.now(timezone.utc),
        )
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO timetables (id, user_id, name, schedule_json, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (timetable.id, user_id, name, json.dumps(timetable.schedule),
                 timetable.created_at.isoformat())
            )
        return timetable

    def read_events(self, user_id: str, start: datetime, end: datetime) -> List[Event]:
        """Read a user's events starting in ``[start, end)``, ordered by start."""
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT id, user_id, title, start_time, end_time
                FROM events
                WHERE user_id = ? AND start_time >= ? AND start_time < ?
                ORDER BY start_time, id
                """,
                (user_id, serialize_instant(start), serialize_instant(end))
            ).fetchall()
        return [
            Event(id=row[0], user_id=row[1], title=row[2],
                  start_time=parse_instant(row[3]), end_time=parse_instant(row[4]))
            for row in rows
        ]

    def write_event_times(self, event_id: str, start: datetime, end: datetime):
        """Update an event's start and end.

        Raises:
            NotFoundError: if the event does not exist
        """
        with self._connection() as conn:
            cursor = conn.execute(
                "UPDATE events SET start_time = ?, end_time = ? WHERE id = ?",
                (serialize_instant(start), serialize_instant(end), event_id)
            )
            updated = cursor.rowcount
        if updated == 0:
            raise NotFoundError(f"Event {event_id} not found")

    def create_event(self, user_id: str, title: str, start: datetime, end: datetime) -> Event:
        event = Event(id=str(uuid.uuid4()), user_id=user_id, title=title,
                      start_time=parse_instant(start), end_time=parse_instant(end))
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO events (id, user_id, title, start_time, end_time)
                VALUES (?, ?, ?, ?, ?)
                """,
                (event.id, user_id, title,
                 serialize_instant(event.start_time), serialize_instant(event.end_time))
            )
        return event

    def _row_to_timetable(self, row) -> Timetable:
        """Deserialize a timetables row."""
        timetable_id, user_id, name, schedule_json, created_at = row
        try:
            schedule: Dict[str, Any] = json.loads(schedule_json) if schedule_json else {}
        except json.JSONDecodeError as e:
            raise StorageError(f"Timetable {timetable_id} has an unreadable schedule: {e}") from e
        return Timetable(
            id=timetable_id,
            user_id=user_id,
            name=name,
            schedule=schedule,
            created_at=datetime.fromisoformat(created_at) if created_at else None,
        )


# Auto-select record store based on environment
def get_record_store():
    """Get the appropriate record store based on environment.

    Returns:
        SupabaseTimetableStore if DATABASE_URL is set, otherwise TimetableStore
    """
    if os.getenv("DATABASE_URL"):
        # Use Supabase for production
        from .supabase_store import SupabaseTimetableStore
        return SupabaseTimetableStore()
    else:
        # Use SQLite for local development
        return TimetableStore()
