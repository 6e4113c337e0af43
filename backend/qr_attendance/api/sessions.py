"""Attendance session (QR code) API endpoints."""
from flask import Blueprint, current_app, request
from flask_jwt_extended import get_jwt, jwt_required

from qr_attendance import limiter
from qr_attendance.services.qr_service import QRService
from qr_attendance.utils.decorators import instructor_required
from qr_attendance.utils.helpers import error_response, get_attendance_store, success_response
from qr_attendance.utils.subjects import is_subject_offered

sessions_bp = Blueprint('sessions', __name__)

MAX_EXPIRY_MINUTES = 180


@sessions_bp.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    return success_response(message='Session service is running')


@sessions_bp.route('', methods=['POST'])
@jwt_required()
@instructor_required
@limiter.limit("30 per hour")
def create_session():
    """Open a session and return its QR code."""
    data = request.get_json(silent=True) or {}

    academic_level = (data.get('academic_level') or '').strip()
    subject = (data.get('subject') or '').strip()
    if not academic_level or not subject:
        return error_response("Academic level and subject are required", 400)

    if not is_subject_offered(academic_level, subject):
        return error_response(f"{subject} is not offered for {academic_level}", 400)

    expires_in = data.get('expires_in_minutes')
    if expires_in is not None:
        if isinstance(expires_in, bool) or not isinstance(expires_in, int) or not 1 <= expires_in <= MAX_EXPIRY_MINUTES:
            return error_response(f"expires_in_minutes must be between 1 and {MAX_EXPIRY_MINUTES}", 400)

    store = get_attendance_store()
    session = store.create_session(
        academic_level=academic_level,
        subject=subject,
        expires_in_minutes=expires_in,
        simple=data.get('mode') == 'simple'
    )

    payload = session.to_dict(include_attendees=False)
    payload['qr_image'] = QRService.render_qr_image(session.qr_payload)
    payload['poll_interval_seconds'] = current_app.config.get('POLL_INTERVAL_SECONDS', 3)

    return success_response(
        data=payload,
        message="QR code generated successfully",
        status_code=201
    )


@sessions_bp.route('', methods=['GET'])
@jwt_required()
@instructor_required
def list_sessions():
    """All sessions, newest first."""
    sessions = sorted(get_attendance_store().get_all_sessions(), key=lambda s: s.created_at, reverse=True)
    return success_response(data=[s.to_dict(include_attendees=False) for s in sessions])


@sessions_bp.route('/active', methods=['GET'])
@jwt_required()
def active_session():
    """Currently open session; polled by instructor and student screens."""
    session = get_attendance_store().get_active_session()
    poll_interval = current_app.config.get('POLL_INTERVAL_SECONDS', 3)

    if session is None:
        return success_response(
            data={'session': None, 'poll_interval_seconds': poll_interval},
            message="No active session"
        )

    data = session.to_dict()
    if get_jwt().get('role') == 'student':
        # Students must scan the code, not read it from the API
        for key in ('token', 'qr_payload', 'attendees'):
            data.pop(key, None)

    return success_response(data={'session': data, 'poll_interval_seconds': poll_interval})


@sessions_bp.route('/stats', methods=['GET'])
@jwt_required()
@instructor_required
def session_stats():
    return success_response(data=get_attendance_store().get_session_stats())


@sessions_bp.route('/<session_id>', methods=['GET'])
@jwt_required()
@instructor_required
def get_session(session_id):
    session = get_attendance_store().get_session(session_id)
    if session is None:
        return error_response("Session not found", 404)
    return success_response(data=session.to_dict())


@sessions_bp.route('/<session_id>/end', methods=['POST'])
@jwt_required()
@instructor_required
def end_session(session_id):
    session = get_attendance_store().end_session(session_id)
    if session is None:
        return error_response("Session not found", 404)
    return success_response(data=session.to_dict(include_attendees=False), message="Session ended")
