"""Staff accounts (instructors and administrators)."""
from enum import Enum
from werkzeug.security import generate_password_hash, check_password_hash
from qr_attendance import db
from qr_attendance.models.base import BaseModel


class UserRole(Enum):
    """Staff roles enumeration."""
    INSTRUCTOR = 'instructor'
    ADMIN = 'admin'


class User(BaseModel):
    """Instructor or administrator account."""

    __tablename__ = 'users'

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    department = db.Column(db.String(100), nullable=True)

    role = db.Column(db.Enum(UserRole), nullable=False, default=UserRole.INSTRUCTOR)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    last_login = db.Column(db.DateTime, nullable=True)
    failed_login_attempts = db.Column(db.Integer, default=0)

    def set_password(self, password: str) -> None:
        """Set user password with hashing."""
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        """Check if provided password matches user's password."""
        return check_password_hash(self.password_hash, password)

    def is_instructor(self) -> bool:
        """Admins can do everything an instructor can."""
        return self.role in [UserRole.INSTRUCTOR, UserRole.ADMIN]

    def to_dict(self, exclude: list = None) -> dict:
        """Convert to dictionary excluding sensitive data."""
        default_exclude = ['password_hash', 'failed_login_attempts']
        exclude = (exclude or []) + default_exclude

        result = super().to_dict(exclude=exclude)
        result['role'] = self.role.value if self.role else None

        return result

    def __repr__(self) -> str:
        return f'<User {self.email}>'
