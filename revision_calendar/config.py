"""
Configuration for the revision calendar.

Defaults live here as module constants. Deployment-specific values are read
from environment variables:

- DATABASE_URL: PostgreSQL connection string (switches to the Supabase store)
- CALENDAR_DB_PATH: SQLite file used for local development
- CALENDAR_TIMEZONE: timezone used to show events and to move them
- DEV_USER_ID: user id used when no user is logged in (local development only)
- LOG_LEVEL: logging level name (default INFO)
"""

import logging
import os
from pathlib import Path
from typing import Optional

# Visible daily window of the week grid (6 AM to 10 PM)
GRID_START_HOUR = 6
GRID_END_HOUR = 22
HOUR_HEIGHT = 60             # pixels per hour
MIN_VISIBLE_HEIGHT = 30      # short sessions stay clickable

DEFAULT_DURATION_MINUTES = 60
DEFAULT_TIMEZONE = "UTC"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def default_db_path() -> Path:
    """Return the SQLite database path for local development."""
    env_path = os.getenv("CALENDAR_DB_PATH")
    if env_path:
        return Path(env_path)
    return Path.home() / ".revision_calendar" / "calendar.db"


def calendar_timezone() -> str:
    """Return the configured calendar timezone name."""
    return os.getenv("CALENDAR_TIMEZONE", DEFAULT_TIMEZONE)


def dev_user_id() -> Optional[str]:
    return os.getenv("DEV_USER_ID") or None


def setup_logging(level: Optional[str] = None) -> None:
    """Configure root logging once for the web app or the CLI."""
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(level=getattr(logging, level_name, logging.INFO), format=LOG_FORMAT)
    logging.getLogger().setLevel(getattr(logging, level_name, logging.INFO))
