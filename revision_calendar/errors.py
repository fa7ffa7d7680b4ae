"""
Error types raised by the calendar engine, the record stores and the service.

Every error derives from CalendarError so callers can catch the whole family.
The web layer maps each kind to an HTTP status code.
"""


class CalendarError(Exception):
    """Base class for calendar errors."""
    kind = "calendar_error"


class FormatError(CalendarError, ValueError):
    """A time, date or duration value could not be parsed."""
    kind = "format_error"


class StaleReferenceError(CalendarError):
    """A positional or id reference no longer matches the current snapshot."""
    kind = "stale_reference"


class NotFoundError(CalendarError):
    """A timetable or event does not exist (or is not visible to the user)."""
    kind = "not_found"


class StorageError(CalendarError):
    """Reading from or writing to the record store failed."""
    kind = "storage_error"


class MoveInProgressError(CalendarError):
    """Another move on the same timetable has not finished yet."""
    kind = "move_in_progress"


class NotAuthenticatedError(CalendarError):
    """No current user is available."""
    kind = "not_authenticated"
