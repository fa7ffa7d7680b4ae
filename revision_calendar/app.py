"""
Flask web application for the revision calendar.

This is the JSON API behind the weekly calendar view. It provides:
- the user's timetables
- week navigation (next, previous, back to today)
- the week's calendar items, positioned on the time grid
- drag-and-drop rescheduling of sessions and events
- an iCalendar download of the visible week

Authentication happens elsewhere; the logged-in user id is read from the
Flask session (``session["user_id"]``).
"""

import io
import os
from datetime import date
from typing import Any, Callable, Dict, Optional

from flask import Blueprint, Flask, current_app, jsonify, request, send_file, session

from .config import calendar_timezone, dev_user_id, setup_logging
from .errors import (
    CalendarError, FormatError, MoveInProgressError, NotAuthenticatedError,
    NotFoundError, StaleReferenceError, StorageError,
)
from .icalendar_gen import CalendarExporter
from .models import CalendarItem, WeekWindow, deserialize_date, serialize_date
from .service import CalendarService, WeekView
from .store import get_record_store
from .timegrid import TimeGrid
from .week import WeekNavigator

ERROR_STATUS = {
    FormatError: 400,
    NotAuthenticatedError: 401,
    NotFoundError: 404,
    StaleReferenceError: 409,
    MoveInProgressError: 409,
    StorageError: 503,
}

api = Blueprint('api', __name__, url_prefix='/api')


def create_app(store=None, tz: Optional[str] = None,
               today: Optional[Callable[[], date]] = None) -> Flask:
    """Create the Flask application.

    Args:
        store: Record store. Defaults to get_record_store() (SQLite or Supabase)
        tz: Calendar timezone. Defaults to CALENDAR_TIMEZONE
        today: Callable returning today's date (used by week navigation)

    Returns:
        Configured Flask app
    """
    app = Flask(__name__)
    app.secret_key = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    app.config['CALENDAR_TIMEZONE'] = tz or calendar_timezone()
    app.config['DEV_USER_ID'] = dev_user_id()
    app.config['TODAY'] = today or date.today

    if store is None:
        store = get_record_store()
    app.extensions['calendar_service'] = CalendarService(store, app.config['CALENDAR_TIMEZONE'])
    app.extensions['time_grid'] = TimeGrid()

    app.register_blueprint(api)

    @app.errorhandler(404)
    def not_found(error):
        """Handle 404 errors."""
        return jsonify(error='not_found', message='Page not found'), 404

    @app.errorhandler(500)
    def internal_error(error):
        """Handle 500 errors."""
        return jsonify(error='internal_error', message='Internal server error'), 500

    return app


def _service() -> CalendarService:
    return current_app.extensions['calendar_service']


def current_user_id() -> Optional[str]:
    """Return the logged-in user id, or the development user id."""
    return session.get('user_id') or current_app.config.get('DEV_USER_ID')


def _navigator() -> WeekNavigator:
    """Rebuild the week cursor stored in the session."""
    stored = session.get('week')
    current = deserialize_date(stored) if stored else None
    return WeekNavigator(today=current_app.config['TODAY'], current=current)


def _requested_window(value: Optional[str]) -> WeekWindow:
    """Week window for a ``week`` parameter (any day of the week), or the cursor."""
    if value:
        return WeekWindow.containing(deserialize_date(value))
    return _navigator().window


def _week_json(navigator: WeekNavigator) -> Dict[str, Any]:
    session['week'] = serialize_date(navigator.current)
    window = navigator.window
    return {
        'week_start': serialize_date(window.start),
        'week_end': serialize_date(window.end),
        'days': [serialize_date(d) for d in window.days()],
    }


def _item_json(item: CalendarItem, grid: TimeGrid) -> Dict[str, Any]:
    """Serialize an item with its grid position."""
    result = item.to_dict()
    result['top'] = grid.position(item.start_time)
    result['height'] = grid.extent(item.start_time, item.end_time)
    result['visible'] = grid.contains(item.start_time)
    return result


def _view_json(timetable_id: str, view: WeekView) -> Dict[str, Any]:
    grid: TimeGrid = current_app.extensions['time_grid']
    return {
        'timetable_id': timetable_id,
        'week_start': serialize_date(view.window.start),
        'week_end': serialize_date(view.window.end),
        'days': [serialize_date(d) for d in view.window.days()],
        'slots': grid.slot_labels(),
        'grid_height': grid.grid_height,
        'items': [_item_json(item, grid) for item in view.items],
    }


def _selected_timetable(timetable_id: Optional[str]) -> str:
    """Return the requested timetable id, or the user's newest timetable."""
    if timetable_id:
        return timetable_id
    timetables = _service().list_timetables(current_user_id())
    if not timetables:
        raise NotFoundError("No timetables yet")
    return timetables[0].id


def _required(data: Dict[str, Any], name: str) -> Any:
    value = data.get(name)
    if not value:
        raise FormatError(f"Missing required field: {name}")
    return value


@api.errorhandler(CalendarError)
def handle_calendar_error(error: CalendarError):
    """Map calendar errors to JSON responses."""
    status = ERROR_STATUS.get(type(error), 500)
    body = {'error': error.kind, 'message': str(error)}
    if isinstance(error, (StorageError, StaleReferenceError)):
        # The client must drop its optimistic update and fetch again
        body['reload'] = True
    return jsonify(body), status


@api.route('/timetables')
def list_timetables():
    """List the current user's timetables, newest first."""
    timetables = _service().list_timetables(current_user_id())
    return jsonify(timetables=[
        {
            'id': t.id,
            'name': t.name,
            'created_at': t.created_at.isoformat() if t.created_at else None,
        }
        for t in timetables
    ])


@api.route('/week')
def current_week():
    """Return the current week cursor."""
    return jsonify(_week_json(_navigator()))


@api.route('/week/<action>', methods=['POST'])
def navigate_week(action: str):
    """Move the week cursor: next, previous or today."""
    navigator = _navigator()
    transitions = {
        'next': navigator.next,
        'previous': navigator.previous,
        'today': navigator.reset_to_today,
    }
    if action not in transitions:
        return jsonify(error='not_found', message=f'Unknown week action: {action}'), 404
    transitions[action]()
    return jsonify(_week_json(navigator))


@api.route('/calendar')
def calendar_week():
    """Return the positioned items of one timetable for one week.

    Query parameters:
        timetable_id: Timetable to show (defaults to the newest one)
        week: Any day of the week to show (defaults to the week cursor)
    """
    timetable_id = _selected_timetable(request.args.get('timetable_id'))
    window = _requested_window(request.args.get('week'))
    view = _service().load_week(current_user_id(), timetable_id, window)
    return jsonify(_view_json(timetable_id, view))


@api.route('/calendar/move', methods=['POST'])
def move_item():
    """Reschedule a dragged item to the day it was dropped on.

    JSON body:
        timetable_id, item_id, target_date, week (optional),
        expected (optional fields the client displayed for the item)
    """
    data = request.get_json(silent=True) or {}
    timetable_id = _required(data, 'timetable_id')
    item_id = _required(data, 'item_id')
    target_date = _required(data, 'target_date')
    window = _requested_window(data.get('week'))
    expected = data.get('expected')
    if expected is not None and not isinstance(expected, dict):
        raise FormatError("expected must be an object")

    view = _service().reschedule(
        current_user_id(), timetable_id, item_id, target_date, window, expected=expected
    )
    current_app.logger.info("Rescheduled %s to %s", item_id, target_date)
    return jsonify(_view_json(timetable_id, view))


@api.route('/calendar.ics')
def download_week():
    """Download the week's items as an iCalendar file."""
    timetable_id = _selected_timetable(request.args.get('timetable_id'))
    window = _requested_window(request.args.get('week'))
    view = _service().load_week(current_user_id(), timetable_id, window)

    exporter = CalendarExporter(timezone_str=current_app.config['CALENDAR_TIMEZONE'])
    calendar = exporter.build_calendar(window, view.items)
    filename = f"revision-week-{serialize_date(window.start)}.ics"
    return send_file(
        io.BytesIO(calendar.to_ical()),
        as_attachment=True,
        download_name=filename,
        mimetype='text/calendar'
    )


if __name__ == '__main__':
    # Run development server
    setup_logging()
    create_app().run(debug=True, host='0.0.0.0', port=5000)
