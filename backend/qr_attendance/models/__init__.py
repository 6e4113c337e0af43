"""Models package with all models."""
from .base import BaseModel
from .user import User, UserRole
from .storage_item import StorageItem
from .records import (
    AttendanceStatus, Attendee, AttendanceSession,
    AttendanceRecord, Student, StudentClaim
)

__all__ = [
    'BaseModel', 'User', 'UserRole', 'StorageItem',
    'AttendanceStatus', 'Attendee', 'AttendanceSession',
    'AttendanceRecord', 'Student', 'StudentClaim'
]
