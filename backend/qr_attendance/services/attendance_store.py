"""In-memory attendance store with snapshot persistence and remote mirroring."""
import json
import logging
import secrets
import threading
from typing import Any, Callable, Dict, List, Optional

from werkzeug.security import check_password_hash, generate_password_hash

from qr_attendance.models.records import (
    AttendanceRecord, AttendanceSession, AttendanceStatus,
    Attendee, Student, StudentClaim
)
from qr_attendance.services.attendance_validator import (
    AttendanceResult, AttendanceValidator, RejectionReason, ValidationState
)
from qr_attendance.services.local_storage import SnapshotStorage
from qr_attendance.services.qr_service import QRService, now_ms
from qr_attendance.services.sync_service import RemoteSyncAdapter
from qr_attendance.utils.helpers import ms_to_clock_time
from qr_attendance.utils.subjects import is_known_level, is_subject_offered
from qr_attendance.utils.validators import ValidationError, Validator

logger = logging.getLogger(__name__)

SESSIONS_KEY = 'attendance_sessions'
RECORDS_KEY = 'attendance_records'
STUDENTS_KEY = 'attendance_students'

MINUTE_MS = 60 * 1000

Listener = Callable[[], None]


class AttendanceStore:
    """
    Authoritative in-memory state for sessions, students and check-ins.

    Every mutation updates the in-memory lists, overwrites the JSON snapshots
    in ``storage``, mirrors the change through the sync adapter and then
    notifies subscribers. Validation and commit of a scan happen under one
    lock, so two scans on the same store never interleave; remote calls are
    made after the lock is released and never change the returned result.
    """

    def __init__(
        self,
        storage: SnapshotStorage,
        sync: Optional[RemoteSyncAdapter] = None,
        clock: Callable[[], int] = now_ms,
        session_expiry_minutes: int = 30,
        simple_session_expiry_minutes: int = 5,
        attendance_score: int = 10,
        late_threshold_minutes: Optional[int] = None,
        late_score: int = 7
    ):
        self._storage = storage
        self._sync = sync or RemoteSyncAdapter()
        self._clock = clock
        self.session_expiry_minutes = session_expiry_minutes
        self.simple_session_expiry_minutes = simple_session_expiry_minutes
        self.attendance_score = attendance_score
        self.late_threshold_minutes = late_threshold_minutes
        self.late_score = late_score

        self._lock = threading.RLock()
        self._sessions: List[AttendanceSession] = []
        self._students: List[Student] = []
        self._records: List[AttendanceRecord] = []
        self._listeners: List[Listener] = []
        self._loaded = False

        self._validator = AttendanceValidator(
            find_session=self._find_session,
            find_student=self._find_student
        )

    @classmethod
    def from_config(
        cls,
        config: Dict[str, Any],
        storage: SnapshotStorage,
        sync: Optional[RemoteSyncAdapter] = None
    ) -> 'AttendanceStore':
        return cls(
            storage=storage,
            sync=sync,
            session_expiry_minutes=config.get('SESSION_EXPIRY_MINUTES', 30),
            simple_session_expiry_minutes=config.get('SIMPLE_SESSION_EXPIRY_MINUTES', 5),
            attendance_score=config.get('ATTENDANCE_SCORE', 10),
            late_threshold_minutes=config.get('LATE_THRESHOLD_MINUTES'),
            late_score=config.get('LATE_SCORE', 7)
        )

    @property
    def sync(self) -> RemoteSyncAdapter:
        return self._sync

    # =================== PERSISTENCE ===================

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def load(self) -> None:
        """Replace in-memory state with whatever the snapshots hold."""
        with self._lock:
            self._sessions = self._read(SESSIONS_KEY, AttendanceSession.from_dict)
            self._records = self._read(RECORDS_KEY, AttendanceRecord.from_dict)
            self._students = self._read(STUDENTS_KEY, Student.from_dict)
            self._loaded = True

    def _read(self, key: str, factory: Callable[[Dict[str, Any]], Any]) -> list:
        try:
            raw = self._storage.get_item(key)
            if not raw:
                return []
            return [factory(item) for item in json.loads(raw)]
        except Exception as e:
            logger.warning("Failed to load %s snapshot: %s", key, e)
            return []

    def _persist(self) -> None:
        try:
            self._storage.set_item(STUDENTS_KEY, json.dumps([s.to_dict(include_secret=True) for s in self._students]))
            self._storage.set_item(SESSIONS_KEY, json.dumps([s.to_dict() for s in self._sessions]))
            self._storage.set_item(RECORDS_KEY, json.dumps([r.to_dict() for r in self._records]))
        except Exception as e:
            # In-memory state stays authoritative even if the snapshot is stale
            logger.warning("Failed to save attendance snapshot: %s", e)

    # =================== OBSERVERS ===================

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Attendance store listener failed")

    # =================== SESSIONS ===================

    def create_session(
        self,
        academic_level: str,
        subject: str,
        expires_in_minutes: Optional[int] = None,
        simple: bool = False
    ) -> AttendanceSession:
        """Open a new session; every other session stops accepting scans."""
        if expires_in_minutes is None:
            expires_in_minutes = self.simple_session_expiry_minutes if simple else self.session_expiry_minutes

        with self._lock:
            self._ensure_loaded()
            now = self._clock()
            expires_at = now + expires_in_minutes * MINUTE_MS

            session_id = QRService.generate_session_id(now)
            token = QRService.generate_token(now)
            session = AttendanceSession(
                id=session_id,
                academic_level=academic_level,
                subject=subject,
                token=token,
                qr_payload=QRService.build_payload(session_id, token, academic_level, subject, now, expires_at),
                created_at=now,
                expires_at=expires_at,
                is_active=True
            )

            previously_active = [s for s in self._sessions if s.is_active]
            self._sessions = [s.deactivated(now) if s.is_active else s for s in self._sessions]
            self._sessions.append(session)
            self._persist()

        logger.info("Created session %s for %s / %s", session.id, academic_level, subject)

        for old in previously_active:
            self._sync.push_session_end(old.id, now)
        self._sync.push_session(session)
        self._notify()
        return session

    def get_active_session(self) -> Optional[AttendanceSession]:
        """The open session, or None; an expired one is closed on the way out."""
        with self._lock:
            self._ensure_loaded()
            active = next((s for s in self._sessions if s.is_active), None)
            if active is None:
                return None
            if not active.is_expired(self._clock()):
                return active

        logger.info("Session %s expired, deactivating", active.id)
        self.end_session(active.id)
        return None

    def end_session(self, session_id: str) -> Optional[AttendanceSession]:
        with self._lock:
            self._ensure_loaded()
            session = self._find_session(session_id)
            if session is None:
                return None
            if not session.is_active:
                return session

            ended = session.deactivated(self._clock())
            self._replace_session(ended)
            self._persist()

        logger.info("Ended session %s", session_id)
        self._sync.push_session_end(ended.id, ended.ended_at)
        self._notify()
        return ended

    def get_session(self, session_id: str) -> Optional[AttendanceSession]:
        with self._lock:
            self._ensure_loaded()
            return self._find_session(session_id)

    def get_all_sessions(self) -> List[AttendanceSession]:
        with self._lock:
            self._ensure_loaded()
            return list(self._sessions)

    def _find_session(self, session_id: str) -> Optional[AttendanceSession]:
        return next((s for s in self._sessions if s.id == session_id), None)

    def _replace_session(self, updated: AttendanceSession) -> None:
        self._sessions = [updated if s.id == updated.id else s for s in self._sessions]

    # =================== ATTENDANCE ===================

    def mark_attendance(self, qr_payload: str, claim: StudentClaim) -> AttendanceResult:
        """
        Validate a scan and record it.

        Rejections come back as unsuccessful results; nothing is mutated
        unless every check passes.
        """
        try:
            with self._lock:
                self._ensure_loaded()
                now = self._clock()
                _, context, rejection = self._validator.validate(qr_payload, claim, now)
                if rejection is not None:
                    return rejection

                session = context.session
                status, score = self._score_for(session, now)
                attendee = Attendee(
                    student_id=claim.student_id,
                    student_name=claim.student_name,
                    email=claim.email,
                    scanned_at=now,
                    score=score,
                    status=status
                )
                record = AttendanceRecord(
                    id=f"record_{now}_{claim.student_id}",
                    session_id=session.id,
                    student_id=claim.student_id,
                    subject=claim.subject,
                    academic_level=claim.academic_level,
                    scanned_at=now,
                    score=score,
                    status=status
                )

                self._replace_session(session.with_attendee(attendee))
                self._records.insert(0, record)
                self._persist()
        except Exception:
            logger.exception("Error marking attendance for %s", claim.student_id)
            return AttendanceResult.rejected(
                RejectionReason.PROCESSING_ERROR,
                "Failed to process QR code. Please try again."
            )

        logger.info("Attendance marked for %s in session %s", claim.student_id, session.id)

        self._sync.push_attendance(record, claim)
        self._notify()

        message = (
            "Attendance marked successfully!\n"
            f"Session: {session.subject}\n"
            f"Time: {ms_to_clock_time(record.scanned_at)}"
        )
        return AttendanceResult(
            success=True,
            message=message,
            state=ValidationState.ACCEPTED,
            session_id=session.id,
            record=record
        )

    def _score_for(self, session: AttendanceSession, now: int):
        if self.late_threshold_minutes is not None:
            if now > session.created_at + self.late_threshold_minutes * MINUTE_MS:
                return AttendanceStatus.LATE, self.late_score
        return AttendanceStatus.PRESENT, self.attendance_score

    def get_all_attendance_records(self) -> List[AttendanceRecord]:
        with self._lock:
            self._ensure_loaded()
            return list(self._records)

    def get_student_attendance_records(self, student_id: str) -> List[AttendanceRecord]:
        with self._lock:
            self._ensure_loaded()
            return [r for r in self._records if r.student_id == student_id]

    # =================== STUDENTS ===================

    def register_student(
        self,
        name: str,
        email: str,
        password: str,
        academic_level: str,
        subjects: Optional[List[str]] = None
    ) -> Student:
        """Create a student account; the password is stored only as a hash."""
        subjects = list(subjects or [])
        self._validate_registration(name, email, password, academic_level, subjects)
        email = email.strip().lower()

        with self._lock:
            self._ensure_loaded()
            if self._find_student_by_email(email) is not None:
                raise ValidationError("Email already exists")

            student = Student(
                id=f"student_{self._clock()}_{secrets.token_hex(3)}",
                name=name.strip(),
                email=email,
                password_hash=generate_password_hash(password),
                academic_level=academic_level,
                subjects=subjects
            )
            self._students.append(student)
            self._persist()

        logger.info("Registered student %s", student.id)
        self._sync.push_student(student)
        self._notify()
        return student

    @staticmethod
    def _validate_registration(name, email, password, academic_level, subjects) -> None:
        name_check = Validator.validate_name(name)
        if not name_check['is_valid']:
            raise ValidationError(name_check['errors'][0])

        if not Validator.validate_email((email or '').strip()):
            raise ValidationError("Invalid email format")

        password_check = Validator.validate_password(password)
        if not password_check['is_valid']:
            raise ValidationError(password_check['errors'][0])

        if not is_known_level(academic_level):
            raise ValidationError(f"Unknown academic level: {academic_level}")

        for subject in subjects:
            if not is_subject_offered(academic_level, subject):
                raise ValidationError(f"{subject} is not offered for {academic_level}")

    def authenticate_student(self, email: str, password: str) -> Optional[Student]:
        with self._lock:
            self._ensure_loaded()
            student = self._find_student_by_email((email or '').strip().lower())
        if student is None or not student.password_hash:
            return None
        if not check_password_hash(student.password_hash, password or ''):
            return None
        return student

    def get_student(self, student_id: str) -> Optional[Student]:
        with self._lock:
            self._ensure_loaded()
            return self._find_student(student_id)

    def get_all_students(self) -> List[Student]:
        with self._lock:
            self._ensure_loaded()
            return list(self._students)

    def _find_student(self, student_id: str) -> Optional[Student]:
        return next((s for s in self._students if s.id == student_id), None)

    def _find_student_by_email(self, email: str) -> Optional[Student]:
        return next((s for s in self._students if s.email == email), None)

    # =================== STATISTICS ===================

    def get_session_stats(self) -> Dict[str, Any]:
        with self._lock:
            self._ensure_loaded()
            total_sessions = len(self._sessions)
            total_attendees = sum(len(s.attendees) for s in self._sessions)
            has_active = any(s.is_active for s in self._sessions)

        average = round(total_attendees / total_sessions, 2) if total_sessions else 0
        return {
            'total_sessions': total_sessions,
            'total_attendees': total_attendees,
            'average_attendance': average,
            'active_session': has_active
        }

    def get_student_stats(self, student_id: str) -> Dict[str, Any]:
        """Attendance rate over the sessions held for the student's subjects."""
        with self._lock:
            self._ensure_loaded()
            student = self._find_student(student_id)
            records = [r for r in self._records if r.student_id == student_id]
            if student is None:
                relevant = []
            elif student.subjects:
                relevant = [s for s in self._sessions if s.subject in student.subjects]
            else:
                relevant = [s for s in self._sessions if s.academic_level == student.academic_level]

        attended = len(records)
        total = max(len(relevant), attended)
        rate = round(attended / total * 100) if total else 0
        average_score = round(sum(r.score for r in records) / attended, 2) if attended else 0

        return {
            'total_sessions': total,
            'attended_sessions': attended,
            'attendance_rate': rate,
            'average_score': average_score
        }
