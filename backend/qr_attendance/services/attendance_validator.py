"""Scan validation state machine for QR check-ins."""
import logging
import math
from dataclasses import dataclass
from enum import Enum
from numbers import Real
from typing import Any, Callable, Dict, List, Optional, Tuple

from qr_attendance.models.records import AttendanceRecord, AttendanceSession, Student, StudentClaim
from qr_attendance.services.qr_service import REQUIRED_PAYLOAD_FIELDS, QRService

logger = logging.getLogger(__name__)


class ValidationState(Enum):
    """States a scan moves through, in order."""
    RECEIVED_QR = "received_qr"
    PARSED = "parsed"
    FIELDS_VALID = "fields_valid"
    NOT_EXPIRED = "not_expired"
    SESSION_FOUND = "session_found"
    SESSION_ACTIVE = "session_active"
    TOKEN_MATCHES = "token_matches"
    NOT_DUPLICATE = "not_duplicate"
    ENROLLED = "enrolled"
    SUBJECT_MATCHES = "subject_matches"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class RejectionReason(Enum):
    """Why a scan was rejected."""
    INVALID_FORMAT = "invalid_format"
    MISSING_DATA = "missing_data"
    EXPIRED = "expired"
    SESSION_NOT_FOUND = "session_not_found"
    SESSION_INACTIVE = "session_inactive"
    TOKEN_MISMATCH = "token_mismatch"
    DUPLICATE = "duplicate"
    NOT_ENROLLED = "not_enrolled"
    SUBJECT_MISMATCH = "subject_mismatch"
    PROCESSING_ERROR = "processing_error"


@dataclass(frozen=True)
class AttendanceResult:
    """Outcome handed back to the scanning student; never raised."""
    success: bool
    message: str
    state: ValidationState
    reason: Optional[RejectionReason] = None
    session_id: Optional[str] = None
    record: Optional[AttendanceRecord] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'message': self.message,
            'state': self.state.value,
            'reason': self.reason.value if self.reason else None,
            'session_id': self.session_id,
            'record': self.record.to_dict() if self.record else None
        }

    @classmethod
    def rejected(
        cls,
        reason: RejectionReason,
        message: str,
        session_id: Optional[str] = None
    ) -> 'AttendanceResult':
        return cls(
            success=False,
            message=message,
            state=ValidationState.REJECTED,
            reason=reason,
            session_id=session_id
        )


@dataclass
class ScanContext:
    """Working data for one pass through the checks."""
    raw_payload: str
    claim: StudentClaim
    now_ms: int
    payload: Optional[Dict[str, Any]] = None
    session: Optional[AttendanceSession] = None


Rejection = Tuple[RejectionReason, str]


class AttendanceValidator:
    """
    Ordered, short-circuiting checks over a scanned QR payload.

    Each check is read-only; the first failure ends validation with a
    rejection. A scan that passes every check is returned with the matching
    session so the caller can commit it.
    """

    def __init__(
        self,
        find_session: Callable[[str], Optional[AttendanceSession]],
        find_student: Callable[[str], Optional[Student]]
    ):
        self._find_session = find_session
        self._find_student = find_student
        self._checks: List[Tuple[ValidationState, Callable[[ScanContext], Optional[Rejection]]]] = [
            (ValidationState.PARSED, self._parse),
            (ValidationState.FIELDS_VALID, self._check_fields),
            (ValidationState.NOT_EXPIRED, self._check_expiry),
            (ValidationState.SESSION_FOUND, self._check_session_exists),
            (ValidationState.SESSION_ACTIVE, self._check_session_active),
            (ValidationState.TOKEN_MATCHES, self._check_token),
            (ValidationState.NOT_DUPLICATE, self._check_duplicate),
            (ValidationState.ENROLLED, self._check_enrollment),
            (ValidationState.SUBJECT_MATCHES, self._check_subject),
        ]

    def validate(self, raw_payload: str, claim: StudentClaim, now_ms: int) -> Tuple[ValidationState, ScanContext, Optional[AttendanceResult]]:
        """
        Run every check in order.
        Returns: (last state reached, context, rejection or None)
        """
        context = ScanContext(raw_payload=raw_payload, claim=claim, now_ms=now_ms)
        state = ValidationState.RECEIVED_QR

        for next_state, check in self._checks:
            rejection = check(context)
            if rejection is not None:
                reason, message = rejection
                logger.info(
                    "Scan rejected at %s for student %s: %s",
                    state.value, claim.student_id, reason.value
                )
                session_id = context.session.id if context.session else None
                return state, context, AttendanceResult.rejected(reason, message, session_id)
            state = next_state

        return state, context, None

    # =================== CHECKS ===================

    @staticmethod
    def _parse(context: ScanContext) -> Optional[Rejection]:
        try:
            context.payload = QRService.parse_payload(context.raw_payload)
        except (TypeError, ValueError):
            return RejectionReason.INVALID_FORMAT, "Invalid QR code format"
        return None

    @staticmethod
    def _check_fields(context: ScanContext) -> Optional[Rejection]:
        payload = context.payload
        missing = (
            not isinstance(payload, dict)
            or any(not payload.get(field) for field in REQUIRED_PAYLOAD_FIELDS)
        )
        if missing:
            return RejectionReason.MISSING_DATA, "Invalid QR code - missing required data"

        expires_at = payload['expiresAt']
        if isinstance(expires_at, bool) or not isinstance(expires_at, Real) or not math.isfinite(expires_at):
            return RejectionReason.MISSING_DATA, "Invalid QR code - missing required data"
        return None

    @staticmethod
    def _check_expiry(context: ScanContext) -> Optional[Rejection]:
        if context.now_ms > context.payload['expiresAt']:
            return RejectionReason.EXPIRED, "QR code has expired"
        return None

    def _check_session_exists(self, context: ScanContext) -> Optional[Rejection]:
        context.session = self._find_session(str(context.payload['sessionId']))
        if context.session is None:
            return (
                RejectionReason.SESSION_NOT_FOUND,
                "Session not found. Please ask instructor to generate a new QR code."
            )
        return None

    @staticmethod
    def _check_session_active(context: ScanContext) -> Optional[Rejection]:
        if not context.session.is_active:
            return RejectionReason.SESSION_INACTIVE, "Session is no longer active"
        # Stored expiry wins over an edited payload
        if context.session.is_expired(context.now_ms):
            return RejectionReason.EXPIRED, "QR code has expired"
        return None

    @staticmethod
    def _check_token(context: ScanContext) -> Optional[Rejection]:
        if context.session.token != context.payload['token']:
            return RejectionReason.TOKEN_MISMATCH, "Invalid QR code token"
        return None

    @staticmethod
    def _check_duplicate(context: ScanContext) -> Optional[Rejection]:
        if context.session.has_attendee(context.claim.student_id):
            return RejectionReason.DUPLICATE, "You have already marked attendance for this session"
        return None

    def _check_enrollment(self, context: ScanContext) -> Optional[Rejection]:
        # Unregistered claimants are not gated by enrollment
        student = self._find_student(context.claim.student_id)
        if student is not None and not student.is_enrolled_in(context.claim.subject):
            return RejectionReason.NOT_ENROLLED, "You are not enrolled in this subject"
        return None

    @staticmethod
    def _check_subject(context: ScanContext) -> Optional[Rejection]:
        if context.session.subject != context.claim.subject:
            return (
                RejectionReason.SUBJECT_MISMATCH,
                f"QR code is for {context.session.subject}, but you selected {context.claim.subject}"
            )
        return None
