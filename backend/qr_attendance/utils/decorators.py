"""Custom decorators for authorization."""
from functools import wraps

from flask_jwt_extended import get_jwt, get_jwt_identity

from qr_attendance.models.user import User
from qr_attendance.utils.helpers import error_response, get_attendance_store

STAFF_ROLES = ('instructor', 'admin')


def instructor_required(f):
    """Decorator to require an active instructor or admin account."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if get_jwt().get('role') not in STAFF_ROLES:
            return error_response("Instructor access required", 403)

        user = User.get_by_id(int(get_jwt_identity()))

        if not user:
            return error_response("User not found", 404)

        if not user.is_active or not user.is_instructor():
            return error_response("Instructor access required", 403)

        return f(*args, **kwargs)
    return decorated_function


def student_required(f):
    """Decorator to require a registered student."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if get_jwt().get('role') != 'student':
            return error_response("Student access required", 403)

        student = get_attendance_store().get_student(get_jwt_identity())

        if not student:
            return error_response("Student not found", 404)

        return f(*args, **kwargs)
    return decorated_function
