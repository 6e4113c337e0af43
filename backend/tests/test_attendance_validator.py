"""Test the scan validation checks."""
import json

import pytest

from qr_attendance.models.records import AttendanceSession, Attendee, Student
from qr_attendance.services.attendance_validator import (
    AttendanceValidator, RejectionReason, ValidationState
)

NOW = 1_760_000_000_000


@pytest.fixture
def session():
    return AttendanceSession(
        id='session_1',
        academic_level='Second Year',
        subject='Hymn Singing',
        token='secret-token',
        qr_payload='',
        created_at=NOW,
        expires_at=NOW + 30 * 60 * 1000
    )


@pytest.fixture
def students():
    return {}


@pytest.fixture
def validator(session, students):
    sessions = {session.id: session}
    return AttendanceValidator(find_session=sessions.get, find_student=students.get)


def payload(session, **overrides):
    data = {
        'sessionId': session.id,
        'token': session.token,
        'academicLevel': session.academic_level,
        'subject': session.subject,
        'timestamp': session.created_at,
        'expiresAt': session.expires_at
    }
    data.update(overrides)
    return json.dumps(data)


def test_valid_scan_passes_every_check(validator, session, claim_for):
    state, context, rejection = validator.validate(payload(session), claim_for(), NOW)

    assert rejection is None
    assert state == ValidationState.SUBJECT_MATCHES
    assert context.session is session


def test_invalid_json(validator, claim_for):
    state, _, rejection = validator.validate('hello world', claim_for(), NOW)

    assert rejection.reason == RejectionReason.INVALID_FORMAT
    assert rejection.message == 'Invalid QR code format'
    assert rejection.state == ValidationState.REJECTED
    assert state == ValidationState.RECEIVED_QR


@pytest.mark.parametrize('raw', [
    json.dumps({'sessionId': 'session_1', 'token': 'secret-token'}),
    json.dumps({'sessionId': '', 'token': 'secret-token', 'expiresAt': NOW}),
    json.dumps(['session_1', 'secret-token', NOW]),
    json.dumps('just a string'),
    json.dumps({'sessionId': 'session_1', 'token': 'secret-token', 'expiresAt': 'tomorrow'}),
    '{"sessionId": "session_1", "token": "secret-token", "expiresAt": NaN}',
    '{"sessionId": "session_1", "token": "secret-token", "expiresAt": Infinity}',
])
def test_missing_data(validator, claim_for, raw):
    _, _, rejection = validator.validate(raw, claim_for(), NOW)

    assert rejection.reason == RejectionReason.MISSING_DATA
    assert rejection.message == 'Invalid QR code - missing required data'


def test_expired(validator, session, claim_for):
    _, _, rejection = validator.validate(payload(session), claim_for(), session.expires_at + 1)

    assert rejection.reason == RejectionReason.EXPIRED
    assert rejection.message == 'QR code has expired'


def test_scan_at_expiry_instant_is_accepted(validator, session, claim_for):
    _, _, rejection = validator.validate(payload(session), claim_for(), session.expires_at)
    assert rejection is None


def test_stored_expiry_wins_over_edited_payload(session, students, claim_for):
    """Pushing expiresAt forward does not extend the session."""
    validator = AttendanceValidator(find_session={session.id: session}.get, find_student=students.get)
    now = session.expires_at + 1

    _, _, rejection = validator.validate(payload(session, expiresAt=now + 60 * 60 * 1000), claim_for(), now)

    assert rejection.reason == RejectionReason.EXPIRED
    assert rejection.message == 'QR code has expired'


def test_expiry_is_checked_before_session_lookup(validator, session, claim_for):
    """An expired payload for an unknown session reports expiry."""
    raw = payload(session, sessionId='session_unknown', expiresAt=NOW - 1)
    _, _, rejection = validator.validate(raw, claim_for(), NOW)

    assert rejection.reason == RejectionReason.EXPIRED


def test_session_not_found(validator, session, claim_for):
    _, _, rejection = validator.validate(payload(session, sessionId='session_x'), claim_for(), NOW)

    assert rejection.reason == RejectionReason.SESSION_NOT_FOUND
    assert rejection.message == 'Session not found. Please ask instructor to generate a new QR code.'


def test_session_inactive(session, students, claim_for):
    ended = session.deactivated(NOW)
    validator = AttendanceValidator(find_session={ended.id: ended}.get, find_student=students.get)

    _, _, rejection = validator.validate(payload(ended), claim_for(), NOW)

    assert rejection.reason == RejectionReason.SESSION_INACTIVE
    assert rejection.message == 'Session is no longer active'
    assert rejection.session_id == 'session_1'


def test_token_mismatch(validator, session, claim_for):
    _, _, rejection = validator.validate(payload(session, token='forged'), claim_for(), NOW)

    assert rejection.reason == RejectionReason.TOKEN_MISMATCH
    assert rejection.message == 'Invalid QR code token'


def test_duplicate(session, students, claim_for):
    attended = session.with_attendee(Attendee(
        student_id='student_1', student_name='Mina Adel', email='m@music.edu',
        scanned_at=NOW, score=10
    ))
    validator = AttendanceValidator(find_session={attended.id: attended}.get, find_student=students.get)

    _, _, rejection = validator.validate(payload(attended), claim_for(), NOW)

    assert rejection.reason == RejectionReason.DUPLICATE
    assert rejection.message == 'You have already marked attendance for this session'


def test_duplicate_is_reported_before_subject_mismatch(session, students, claim_for):
    attended = session.with_attendee(Attendee(
        student_id='student_1', student_name='Mina Adel', email='m@music.edu',
        scanned_at=NOW, score=10
    ))
    validator = AttendanceValidator(find_session={attended.id: attended}.get, find_student=students.get)

    _, _, rejection = validator.validate(payload(attended), claim_for(subject='Improvisation 1'), NOW)

    assert rejection.reason == RejectionReason.DUPLICATE


def test_not_enrolled(validator, session, students, claim_for):
    students['student_1'] = Student(
        id='student_1', name='Mina Adel', email='m@music.edu', password_hash='',
        academic_level='Second Year', subjects=['Rhythmic Movement 2']
    )

    _, _, rejection = validator.validate(payload(session), claim_for(), NOW)

    assert rejection.reason == RejectionReason.NOT_ENROLLED
    assert rejection.message == 'You are not enrolled in this subject'


def test_student_without_subjects_is_not_gated(validator, session, students, claim_for):
    students['student_1'] = Student(
        id='student_1', name='Mina Adel', email='m@music.edu', password_hash='',
        academic_level='Second Year', subjects=[]
    )

    _, _, rejection = validator.validate(payload(session), claim_for(), NOW)
    assert rejection is None


def test_subject_mismatch(validator, session, claim_for):
    _, _, rejection = validator.validate(payload(session), claim_for(subject='Rhythmic Movement 2'), NOW)

    assert rejection.reason == RejectionReason.SUBJECT_MISMATCH
    assert rejection.message == 'QR code is for Hymn Singing, but you selected Rhythmic Movement 2'


def test_result_to_dict(validator, claim_for):
    _, _, rejection = validator.validate('{', claim_for(), NOW)

    data = rejection.to_dict()
    assert data['success'] is False
    assert data['reason'] == 'invalid_format'
    assert data['state'] == 'rejected'
    assert data['record'] is None
