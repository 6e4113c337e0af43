"""In-memory attendance entities owned by the attendance store."""
from dataclasses import dataclass, field, asdict, replace
from enum import Enum
from typing import Any, Dict, List, Optional


class AttendanceStatus(Enum):
    """Attendance status enumeration."""
    PRESENT = 'present'
    LATE = 'late'
    ABSENT = 'absent'


@dataclass(frozen=True)
class Attendee:
    """A student's recorded presence within one session."""
    student_id: str
    student_name: str
    email: str
    scanned_at: int  # ms epoch
    score: int
    status: AttendanceStatus = AttendanceStatus.PRESENT

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['status'] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Attendee':
        return cls(
            student_id=data['student_id'],
            student_name=data.get('student_name', ''),
            email=data.get('email', ''),
            scanned_at=int(data['scanned_at']),
            score=int(data.get('score', 0)),
            status=AttendanceStatus(data.get('status', AttendanceStatus.PRESENT.value))
        )


@dataclass
class AttendanceSession:
    """Time-boxed attendance window for one subject/level pair."""
    id: str
    academic_level: str
    subject: str
    token: str
    qr_payload: str
    created_at: int  # ms epoch
    expires_at: int  # ms epoch
    is_active: bool = True
    attendees: List[Attendee] = field(default_factory=list)
    ended_at: Optional[int] = None

    def is_expired(self, now_ms: int) -> bool:
        """Expired strictly after expires_at; a scan at the boundary is still valid."""
        return now_ms > self.expires_at

    def has_attendee(self, student_id: str) -> bool:
        return any(attendee.student_id == student_id for attendee in self.attendees)

    def deactivated(self, now_ms: int) -> 'AttendanceSession':
        return replace(self, is_active=False, ended_at=self.ended_at or now_ms)

    def with_attendee(self, attendee: Attendee) -> 'AttendanceSession':
        return replace(self, attendees=[*self.attendees, attendee])

    def to_dict(self, include_attendees: bool = True) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'academic_level': self.academic_level,
            'subject': self.subject,
            'token': self.token,
            'qr_payload': self.qr_payload,
            'created_at': self.created_at,
            'expires_at': self.expires_at,
            'is_active': self.is_active,
            'ended_at': self.ended_at,
            'attendee_count': len(self.attendees)
        }
        if include_attendees:
            data['attendees'] = [attendee.to_dict() for attendee in self.attendees]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AttendanceSession':
        return cls(
            id=data['id'],
            academic_level=data['academic_level'],
            subject=data['subject'],
            token=data['token'],
            qr_payload=data['qr_payload'],
            created_at=int(data['created_at']),
            expires_at=int(data['expires_at']),
            is_active=bool(data.get('is_active', False)),
            attendees=[Attendee.from_dict(item) for item in data.get('attendees', [])],
            ended_at=data.get('ended_at')
        )


@dataclass(frozen=True)
class AttendanceRecord:
    """Append-only log entry of one successful check-in."""
    id: str
    session_id: str
    student_id: str
    subject: str
    academic_level: str
    scanned_at: int  # ms epoch
    score: int
    status: AttendanceStatus = AttendanceStatus.PRESENT

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['status'] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AttendanceRecord':
        return cls(
            id=data['id'],
            session_id=data['session_id'],
            student_id=data.get('student_id', ''),
            subject=data['subject'],
            academic_level=data.get('academic_level', ''),
            scanned_at=int(data['scanned_at']),
            score=int(data.get('score', 0)),
            status=AttendanceStatus(data.get('status', AttendanceStatus.PRESENT.value))
        )


@dataclass
class Student:
    """Registered student; subjects gate which sessions the student may scan into."""
    id: str
    name: str
    email: str
    password_hash: str
    academic_level: str
    subjects: List[str] = field(default_factory=list)

    def is_enrolled_in(self, subject: str) -> bool:
        # An empty subject list means enrollment has not been set up yet
        return not self.subjects or subject in self.subjects

    def to_dict(self, include_secret: bool = False) -> Dict[str, Any]:
        data = asdict(self)
        if not include_secret:
            data.pop('password_hash')
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Student':
        return cls(
            id=data['id'],
            name=data['name'],
            email=data['email'],
            password_hash=data.get('password_hash', ''),
            academic_level=data.get('academic_level', ''),
            subjects=list(data.get('subjects', []))
        )


@dataclass(frozen=True)
class StudentClaim:
    """What the scanning student asserts about themselves."""
    student_id: str
    student_name: str
    email: str
    academic_level: str
    subject: str
