"""
Supabase-based record store for production deployment.

Uses the Supabase PostgreSQL database instead of local SQLite.
Automatically used when the DATABASE_URL environment variable is set.

Expected tables (created by the Supabase project, not by this module):
- timetables(id uuid, user_id uuid, name text, schedule jsonb, created_at timestamptz)
- events(id uuid, user_id uuid, title text, start_time timestamptz, end_time timestamptz)
"""

import logging
import os
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

import psycopg2
from psycopg2.extras import Json, RealDictCursor

from .errors import NotFoundError, StorageError
from .models import Event, Schedule, Timetable, parse_instant, validate_schedule

logger = logging.getLogger(__name__)


class SupabaseTimetableStore:
    """Timetable and event store backed by Supabase PostgreSQL.

    Offers the same methods as the SQLite TimetableStore, so the calendar
    service works with either one.
    """

    def __init__(self, database_url: Optional[str] = None):
        """Initialize the Supabase store.

        Args:
            database_url: PostgreSQL connection string. If None, reads from
                         DATABASE_URL environment variable.

        Raises:
            ValueError: If database_url is not provided and DATABASE_URL env var is not set
            StorageError: If the database cannot be reached
        """
        if database_url is None:
            database_url = os.getenv("DATABASE_URL")

        if not database_url:
            raise ValueError(
                "DATABASE_URL environment variable must be set for the Supabase store. "
                "For local development, use TimetableStore instead."
            )

        self.database_url = database_url
        self._test_connection()

    def _test_connection(self):
        """Test database connection on initialization."""
        try:
            conn = psycopg2.connect(self.database_url)
            conn.close()
        except psycopg2.Error as e:
            raise StorageError(f"Failed to connect to Supabase: {e}") from e

    @contextmanager
    def _cursor(self) -> Iterator[Any]:
        """Yield a dict cursor, commit on success and wrap driver errors."""
        try:
            conn = psycopg2.connect(self.database_url)
        except psycopg2.Error as e:
            raise StorageError(f"Failed to connect to Supabase: {e}") from e
        try:
            cur = conn.cursor(cursor_factory=RealDictCursor)
            try:
                yield cur
            finally:
                cur.close()
            conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            logger.error("Supabase error: %s", e)
            raise StorageError(f"Calendar database error: {e}") from e
        finally:
            conn.close()

    def list_timetables(self, user_id: str) -> List[Timetable]:
        """List a user's timetables, newest first."""
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT id, user_id, name, schedule, created_at
                FROM timetables
                WHERE user_id = %s
                ORDER BY created_at DESC
                """,
                (user_id,)
            )
            rows = cur.fetchall()
        return [self._row_to_timetable(row) for row in rows]

    def read_timetable(self, timetable_id: str) -> Timetable:
        """Read one timetable.

        Raises:
            NotFoundError: if the timetable does not exist
        """
        with self._cursor() as cur:
            cur.execute(
                "SELECT id, user_id, name, schedule, created_at FROM timetables WHERE id = %s",
                (timetable_id,)
            )
            row = cur.fetchone()
        if row is None:
            raise NotFoundError(f"Timetable {timetable_id} not found")
        return self._row_to_timetable(row)

    def write_schedule(self, timetable_id: str, schedule: Schedule):
        """Replace a timetable's schedule.

        Raises:
            NotFoundError: if the timetable does not exist
        """
        with self._cursor() as cur:
            cur.execute(
                "UPDATE timetables SET schedule = %s WHERE id = %s",
                (Json(schedule), timetable_id)
            )
            updated = cur.rowcount
        if updated == 0:
            raise NotFoundError(f"Timetable {timetable_id} not found")

    def create_timetable(self, user_id: str, name: str, schedule: Optional[Schedule] = None) -> Timetable:
        schedule = validate_schedule(schedule or {})
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO timetables (user_id, name, schedule)
                VALUES (%s, %s, %s)
                RETURNING id, user_id, name, schedule, created_at
                """,
                (user_id, name, Json(schedule))
            )
            row = cur.fetchone()
        return self._row_to_timetable(row)

    def read_events(self, user_id: str, start: datetime, end: datetime) -> List[Event]:
        """Read a user's events starting in ``[start, end)``, ordered by start."""
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT id, user_id, title, start_time, end_time
                FROM events
                WHERE user_id = %s AND start_time >= %s AND start_time < %s
                ORDER BY start_time, id
                """,
                (user_id, start, end)
            )
            rows = cur.fetchall()
        return [self._row_to_event(row) for row in rows]

    def write_event_times(self, event_id: str, start: datetime, end: datetime):
        """Update an event's start and end.

        Raises:
            NotFoundError: if the event does not exist
        """
        with self._cursor() as cur:
            cur.execute(
                "UPDATE events SET start_time = %s, end_time = %s WHERE id = %s",
                (start, end, event_id)
            )
            updated = cur.rowcount
        if updated == 0:
            raise NotFoundError(f"Event {event_id} not found")

    def create_event(self, user_id: str, title: str, start: datetime, end: datetime) -> Event:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO events (user_id, title, start_time, end_time)
                VALUES (%s, %s, %s, %s)
                RETURNING id, user_id, title, start_time, end_time
                """,
                (user_id, title, parse_instant(start), parse_instant(end))
            )
            row = cur.fetchone()
        return self._row_to_event(row)

    def _row_to_timetable(self, row: Dict[str, Any]) -> Timetable:
        """Deserialize a timetables row (jsonb arrives already decoded)."""
        return Timetable(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            name=row["name"],
            schedule=row["schedule"] or {},
            created_at=row.get("created_at"),
        )

    def _row_to_event(self, row: Dict[str, Any]) -> Event:
        return Event(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            title=row["title"] or "",
            start_time=parse_instant(row["start_time"]),
            end_time=parse_instant(row["end_time"]),
        )
