"""Attendance API endpoints."""
from flask import Blueprint, request
from flask_jwt_extended import get_jwt_identity, jwt_required

from qr_attendance import limiter
from qr_attendance.models.records import StudentClaim
from qr_attendance.utils.decorators import instructor_required, student_required
from qr_attendance.utils.helpers import error_response, get_attendance_store, success_response

attendance_bp = Blueprint('attendance', __name__)


@attendance_bp.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    return success_response(message='Attendance service is running')


@attendance_bp.route('/scan', methods=['POST'])
@jwt_required()
@student_required
@limiter.limit("30 per minute")
def scan():
    """Check in with the text decoded from a session QR code."""
    data = request.get_json(silent=True) or {}

    qr_data = data.get('qr_data')
    if not isinstance(qr_data, str) or not qr_data:
        return error_response("QR data is required", 400)

    subject = (data.get('subject') or '').strip()
    if not subject:
        return error_response("Subject is required", 400)

    store = get_attendance_store()
    student = store.get_student(get_jwt_identity())
    claim = StudentClaim(
        student_id=student.id,
        student_name=student.name,
        email=student.email,
        academic_level=student.academic_level,
        subject=subject
    )

    result = store.mark_attendance(qr_data, claim)
    if not result.success:
        return error_response(
            result.message,
            400,
            data={'reason': result.reason.value, 'state': result.state.value}
        )

    return success_response(data=result.to_dict(), message=result.message, status_code=201)


@attendance_bp.route('/me', methods=['GET'])
@jwt_required()
@student_required
def my_records():
    records = get_attendance_store().get_student_attendance_records(get_jwt_identity())
    return success_response(data=[r.to_dict() for r in records])


@attendance_bp.route('/me/stats', methods=['GET'])
@jwt_required()
@student_required
def my_stats():
    return success_response(data=get_attendance_store().get_student_stats(get_jwt_identity()))


@attendance_bp.route('/records', methods=['GET'])
@jwt_required()
@instructor_required
def list_records():
    """Check-in log, newest first, optionally filtered by session or subject."""
    session_id = request.args.get('session_id')
    subject = request.args.get('subject')

    records = get_attendance_store().get_all_attendance_records()
    if session_id:
        records = [r for r in records if r.session_id == session_id]
    if subject:
        records = [r for r in records if r.subject == subject]

    return success_response(data=[r.to_dict() for r in records])
