"""Authentication API for staff and students."""
from flask import Blueprint, request
from flask_jwt_extended import get_jwt, get_jwt_identity, jwt_required

from qr_attendance import limiter
from qr_attendance.models.user import User
from qr_attendance.services.auth_service import AuthService
from qr_attendance.utils.helpers import error_response, get_attendance_store, success_response
from qr_attendance.utils.subjects import ACADEMIC_LEVELS, SUBJECTS_BY_LEVEL
from qr_attendance.utils.validators import Validator

auth_bp = Blueprint("auth", __name__)


@auth_bp.route("/health", methods=["GET"])
def health_check():
    """Health check endpoint."""
    return success_response(message="Auth service is running")


@auth_bp.route("/subjects", methods=["GET"])
def subjects():
    """Academic levels and their subjects, for registration and QR forms."""
    return success_response(data={
        'academic_levels': list(ACADEMIC_LEVELS),
        'subjects_by_level': SUBJECTS_BY_LEVEL
    })


@auth_bp.route("/login", methods=["POST"])
@limiter.limit("5 per minute")
def login():
    """Instructor and admin login."""
    data = request.get_json(silent=True)
    if not data:
        return error_response("Request body must be JSON", 400)

    email = (data.get("email") or "").strip()
    password = data.get("password") or ""

    if not email or not password:
        return error_response("Email and password are required", 400)

    result, error = AuthService.login(email, password)
    if error:
        return error_response(error, 401)

    return success_response(data=result, message="Login successful")


@auth_bp.route("/student/register", methods=["POST"])
@limiter.limit("10 per hour")
def student_register():
    data = request.get_json(silent=True)
    if not data:
        return error_response("Request body must be JSON", 400)

    check = Validator.validate_required_fields(data, ['name', 'email', 'password', 'academic_level'])
    if not check['is_valid']:
        return error_response(check['errors'][0], 400)

    student, error = AuthService.register_student(get_attendance_store(), data)
    if error:
        return error_response(error, 400)

    return success_response(data=student, message="Registration successful", status_code=201)


@auth_bp.route("/student/login", methods=["POST"])
@limiter.limit("5 per minute")
def student_login():
    data = request.get_json(silent=True)
    if not data:
        return error_response("Request body must be JSON", 400)

    result, error = AuthService.student_login(
        get_attendance_store(),
        (data.get("email") or "").strip(),
        data.get("password") or ""
    )
    if error:
        return error_response(error, 401)

    return success_response(data=result, message="Login successful")


@auth_bp.route("/me", methods=["GET"])
@jwt_required()
def me():
    """Profile of whoever holds the token."""
    identity = get_jwt_identity()

    if get_jwt().get('role') == 'student':
        student = get_attendance_store().get_student(identity)
        if not student:
            return error_response("Student not found", 404)
        return success_response(data={'role': 'student', **student.to_dict()})

    user = User.get_by_id(int(identity))
    if not user:
        return error_response("User not found", 404)
    return success_response(data=user.to_dict())
