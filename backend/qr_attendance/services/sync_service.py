"""Best-effort mirroring of store mutations to the remote Supabase tables."""
import logging
from collections import deque
from dataclasses import dataclass, field, asdict
from datetime import date
from typing import Any, Callable, Deque, Dict, List, Optional

from supabase import create_client, Client

from qr_attendance.models.records import AttendanceRecord, AttendanceSession, Student, StudentClaim
from qr_attendance.services.qr_service import now_ms
from qr_attendance.utils.helpers import ms_to_iso

logger = logging.getLogger(__name__)

SESSIONS_TABLE = 'attendance_sessions'
RECORDS_TABLE = 'attendance_records'
GRADES_TABLE = 'grades'
PROFILES_TABLE = 'profiles'


@dataclass
class SyncFailure:
    """A remote write that did not go through."""
    operation: str  # insert | update | upsert
    table: str
    row: Dict[str, Any]
    error: str
    occurred_at: int
    match: Dict[str, Any] = field(default_factory=dict)
    context: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class FallbackPolicy:
    """Receives every remote write the adapter could not complete."""

    def handle_failure(self, failure: SyncFailure) -> None:
        raise NotImplementedError


class RemoteSyncAdapter:
    """
    At-most-once, no-retry replication to the remote store.

    Every write is attempted once after the local mutation has already been
    committed. Errors are logged, kept in ``errors`` and passed to the
    fallback policy; they never reach the caller.
    """

    def __init__(
        self,
        client: Optional[Client] = None,
        fallback: Optional[FallbackPolicy] = None,
        clock: Callable[[], int] = now_ms,
        max_errors: int = 200
    ):
        self._client = client
        self.fallback = fallback
        self._clock = clock
        self._errors: Deque[SyncFailure] = deque(maxlen=max_errors)

    @classmethod
    def from_config(cls, config: Dict[str, Any], fallback: Optional[FallbackPolicy] = None) -> 'RemoteSyncAdapter':
        url = config.get('SUPABASE_URL')
        key = config.get('SUPABASE_KEY')
        client = None
        if url and key:
            client = create_client(url, key)
            logger.info("Supabase client initialised for %s", url)
        else:
            logger.info("Supabase not configured, attendance will be saved locally only")
        return cls(client=client, fallback=fallback)

    @property
    def enabled(self) -> bool:
        return self._client is not None

    @property
    def errors(self) -> List[SyncFailure]:
        return list(self._errors)

    # =================== WRITES ===================

    def push_session(self, session: AttendanceSession) -> bool:
        row = {
            'id': session.id,
            'session_name': f"{session.academic_level} - {session.subject}",
            'academic_level': session.academic_level,
            'subject': session.subject,
            'qr_code_data': session.qr_payload,
            'secure_token': session.token,
            'expires_at': ms_to_iso(session.expires_at),
            'is_active': session.is_active,
            'created_at': ms_to_iso(session.created_at)
        }
        return self._write('insert', SESSIONS_TABLE, row)

    def push_session_end(self, session_id: str, ended_at: int) -> bool:
        row = {'is_active': False, 'ended_at': ms_to_iso(ended_at)}
        return self._write('update', SESSIONS_TABLE, row, match={'id': session_id})

    def push_attendance(self, record: AttendanceRecord, claim: StudentClaim) -> bool:
        row = {
            'id': record.id,
            'session_id': record.session_id,
            'student_id': record.student_id,
            'check_in_time': ms_to_iso(record.scanned_at),
            'status': record.status.value,
            'score': record.score,
            'is_verified': True
        }
        context = {
            'student_name': claim.student_name,
            'email': claim.email,
            'subject': record.subject,
            'academic_level': record.academic_level,
            'scanned_at': record.scanned_at
        }
        if not self._write('insert', RECORDS_TABLE, row, context=context):
            return False

        # The grade row only makes sense once the record itself landed
        grade_row = {
            'student_id': record.student_id,
            'subject_code': record.subject,
            'attendance_score': record.score,
            'session_id': record.session_id,
            'grade_date': date.fromtimestamp(record.scanned_at / 1000).isoformat(),
            'updated_at': ms_to_iso(self._clock())
        }
        self._write('upsert', GRADES_TABLE, grade_row)
        return True

    def push_student(self, student: Student) -> bool:
        row = {
            'id': student.id,
            'email': student.email,
            'full_name': student.name,
            'role': 'student',
            'academic_level': student.academic_level
        }
        return self._write('upsert', PROFILES_TABLE, row)

    def replay(self, failure: SyncFailure) -> bool:
        """Re-run a failed write once; the fallback is not invoked again."""
        if not self.enabled:
            return False
        try:
            self._execute(failure.operation, failure.table, failure.row, failure.match)
            return True
        except Exception as e:
            logger.warning("Replay of %s on %s failed: %s", failure.operation, failure.table, e)
            return False

    # =================== READS ===================

    def fetch_attendance_records(self, session_id: str) -> List[Dict[str, Any]]:
        """Rows the remote store holds for one session; empty when unreachable."""
        if not self.enabled:
            return []
        try:
            response = (
                self._client.table(RECORDS_TABLE)
                .select('*')
                .eq('session_id', session_id)
                .execute()
            )
            return response.data or []
        except Exception as e:
            logger.warning("Failed to fetch attendance records for %s: %s", session_id, e)
            return []

    def ping(self) -> bool:
        if not self.enabled:
            return False
        try:
            self._client.table(RECORDS_TABLE).select('id').limit(1).execute()
            return True
        except Exception as e:
            logger.warning("Remote store health check failed: %s", e)
            return False

    # =================== INTERNALS ===================

    def _write(
        self,
        operation: str,
        table: str,
        row: Dict[str, Any],
        match: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None
    ) -> bool:
        if not self.enabled:
            logger.debug("Remote store disabled, skipping %s on %s", operation, table)
            return False

        try:
            self._execute(operation, table, row, match or {})
            logger.debug("Synced %s on %s", operation, table)
            return True
        except Exception as e:
            failure = SyncFailure(
                operation=operation,
                table=table,
                row=row,
                error=str(e),
                occurred_at=self._clock(),
                match=match or {},
                context=context or {}
            )
            self._errors.append(failure)
            logger.warning("Failed to sync %s on %s: %s", operation, table, e)
            self._hand_to_fallback(failure)
            return False

    def _execute(self, operation: str, table: str, row: Dict[str, Any], match: Dict[str, Any]) -> None:
        query = self._client.table(table)
        if operation == 'insert':
            query = query.insert(row)
        elif operation == 'upsert':
            query = query.upsert(row)
        elif operation == 'update':
            query = query.update(row)
            for column, value in match.items():
                query = query.eq(column, value)
        else:
            raise ValueError(f"Unknown sync operation: {operation}")
        query.execute()

    def _hand_to_fallback(self, failure: SyncFailure) -> None:
        if self.fallback is None:
            return
        try:
            self.fallback.handle_failure(failure)
        except Exception as e:
            logger.error("Fallback handling failed for %s on %s: %s", failure.operation, failure.table, e)
