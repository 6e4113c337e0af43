"""Authentication service for staff and students."""
from datetime import datetime
from typing import Optional, Tuple

from flask_jwt_extended import create_access_token

from qr_attendance import db
from qr_attendance.models.user import User, UserRole
from qr_attendance.services.attendance_store import AttendanceStore
from qr_attendance.utils.validators import ValidationError, Validator

STUDENT_ROLE = 'student'


class AuthService:
    @staticmethod
    def login(email: str, password: str) -> Tuple[Optional[dict], Optional[str]]:
        """Authenticate an instructor or admin and return a token."""
        if not email or not password:
            return None, "Email and password are required"

        if not Validator.validate_email(email):
            return None, "Invalid email format"

        user = User.query.filter_by(email=email.lower().strip()).first()

        if not user:
            return None, "Invalid email or password"

        if not user.check_password(password):
            user.failed_login_attempts = (user.failed_login_attempts or 0) + 1
            user.save()
            return None, "Invalid email or password"

        if not user.is_active:
            return None, "Account is deactivated"

        user.failed_login_attempts = 0
        user.last_login = datetime.utcnow()
        user.save()

        access_token = create_access_token(
            identity=str(user.id),
            additional_claims={'role': user.role.value}
        )

        return {
            "access_token": access_token,
            "user": user.to_dict()
        }, None

    @staticmethod
    def create_staff(email: str, password: str, name: str, role: str = UserRole.INSTRUCTOR.value) -> Tuple[Optional[User], Optional[str]]:
        """Create an instructor or admin account."""
        if not all([email, password, name]):
            return None, "Email, password and name are required"

        if not Validator.validate_email(email):
            return None, "Invalid email format"

        password_check = Validator.validate_password(password)
        if not password_check['is_valid']:
            return None, password_check['errors'][0]

        email = email.lower().strip()
        if User.query.filter_by(email=email).first():
            return None, "Email already exists"

        try:
            user_role = UserRole(role.lower())
        except ValueError:
            return None, f"Unknown role: {role}"

        user = User(email=email, name=name.strip(), role=user_role)
        user.set_password(password)
        try:
            user.save()
        except Exception as e:
            db.session.rollback()
            return None, f"Could not create account: {str(e)}"

        return user, None

    @staticmethod
    def register_student(store: AttendanceStore, data: dict) -> Tuple[Optional[dict], Optional[str]]:
        """Register a student in the attendance store."""
        try:
            student = store.register_student(
                name=data.get('name', ''),
                email=data.get('email', ''),
                password=data.get('password', ''),
                academic_level=data.get('academic_level', ''),
                subjects=data.get('subjects') or []
            )
        except ValidationError as e:
            return None, str(e)

        return student.to_dict(), None

    @staticmethod
    def student_login(store: AttendanceStore, email: str, password: str) -> Tuple[Optional[dict], Optional[str]]:
        if not email or not password:
            return None, "Email and password are required"

        student = store.authenticate_student(email, password)
        if student is None:
            return None, "Invalid email or password"

        access_token = create_access_token(
            identity=student.id,
            additional_claims={'role': STUDENT_ROLE}
        )

        return {
            "access_token": access_token,
            "student": student.to_dict()
        }, None
