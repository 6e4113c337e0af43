"""Helper functions for the application."""
from datetime import datetime, timezone
from flask import current_app, jsonify
from typing import Any


def handle_error(error, status_code: int):
    """Handle application errors with consistent format."""
    message = getattr(error, 'description', None) or str(error)
    return jsonify({
        'error': True,
        'message': message,
        'status_code': status_code
    }), status_code


def success_response(data: Any = None, message: str = "Success", status_code: int = 200):
    """Return consistent success response."""
    response = {
        'error': False,
        'message': message
    }

    if data is not None:
        response['data'] = data

    return jsonify(response), status_code


def error_response(message: str, status_code: int = 400, data: Any = None):
    """Return consistent error response."""
    response = {
        'error': True,
        'message': message,
        'status_code': status_code
    }

    if data is not None:
        response['data'] = data

    return jsonify(response), status_code


def ms_to_iso(value_ms: int) -> str:
    """Milliseconds since the epoch as an ISO-8601 UTC timestamp."""
    return datetime.fromtimestamp(value_ms / 1000, tz=timezone.utc).isoformat()


def ms_to_local_datetime(value_ms: int) -> datetime:
    """Milliseconds since the epoch in server local time."""
    return datetime.fromtimestamp(value_ms / 1000)


def ms_to_clock_time(value_ms: int) -> str:
    """Local HH:MM:SS for user-facing messages."""
    return ms_to_local_datetime(value_ms).strftime('%H:%M:%S')


def get_attendance_store():
    """The attendance store created by the application factory."""
    return current_app.extensions['attendance_store']


def get_backup_service():
    return current_app.extensions['backup_service']
