"""Test session, attendance, report and backup endpoints."""
import json

import pytest

from conftest import auth_header
from qr_attendance.services.local_storage import DatabaseStorage, create_storage


def create_session(client, token, **overrides):
    body = {'academic_level': 'Second Year', 'subject': 'Hymn Singing'}
    body.update(overrides)
    return client.post('/api/sessions', json=body, headers=auth_header(token))


def scan(client, token, qr_data, subject='Hymn Singing'):
    return client.post(
        '/api/attendance/scan',
        json={'qr_data': qr_data, 'subject': subject},
        headers=auth_header(token)
    )


def test_health(client):
    assert client.get('/health').status_code == 200
    assert client.get('/api/sessions/health').status_code == 200
    assert client.get('/api/attendance/health').status_code == 200


def test_create_session(client, instructor_token):
    response = create_session(client, instructor_token)

    assert response.status_code == 201
    data = json.loads(response.data)['data']
    assert data['is_active'] is True
    assert data['subject'] == 'Hymn Singing'
    assert data['qr_image'].startswith('data:image/png;base64,')
    assert json.loads(data['qr_payload'])['sessionId'] == data['id']
    assert data['poll_interval_seconds'] == 3
    assert data['expires_at'] - data['created_at'] == 30 * 60 * 1000


def test_create_session_validation(client, instructor_token):
    assert create_session(client, instructor_token, subject='').status_code == 400
    assert create_session(client, instructor_token, subject='Improvisation 1').status_code == 400
    assert create_session(client, instructor_token, expires_in_minutes=0).status_code == 400
    assert create_session(client, instructor_token, expires_in_minutes='5').status_code == 400

    response = create_session(client, instructor_token, expires_in_minutes=10)
    data = json.loads(response.data)['data']
    assert data['expires_at'] - data['created_at'] == 10 * 60 * 1000


def test_simple_mode(client, instructor_token):
    data = json.loads(create_session(client, instructor_token, mode='simple').data)['data']
    assert data['expires_at'] - data['created_at'] == 5 * 60 * 1000


def test_students_cannot_create_sessions(client, student_token):
    response = create_session(client, student_token)
    assert response.status_code == 403


def test_active_session_hides_token_from_students(client, instructor_token, student_token):
    response = client.get('/api/sessions/active', headers=auth_header(student_token))
    assert json.loads(response.data)['data']['session'] is None

    create_session(client, instructor_token)

    student_view = json.loads(client.get('/api/sessions/active', headers=auth_header(student_token)).data)
    session = student_view['data']['session']
    assert session['subject'] == 'Hymn Singing'
    assert 'token' not in session
    assert 'qr_payload' not in session

    instructor_view = json.loads(client.get('/api/sessions/active', headers=auth_header(instructor_token)).data)
    assert 'token' in instructor_view['data']['session']


def test_scan_flow(client, instructor_token, student_token):
    session = json.loads(create_session(client, instructor_token).data)['data']

    response = scan(client, student_token, session['qr_payload'])
    assert response.status_code == 201
    data = json.loads(response.data)
    assert data['message'].startswith('Attendance marked successfully!')
    assert data['data']['record']['session_id'] == session['id']

    response = scan(client, student_token, session['qr_payload'])
    assert response.status_code == 400
    data = json.loads(response.data)
    assert data['message'] == 'You have already marked attendance for this session'
    assert data['data']['reason'] == 'duplicate'

    detail = json.loads(client.get(f"/api/sessions/{session['id']}", headers=auth_header(instructor_token)).data)
    assert len(detail['data']['attendees']) == 1

    mine = json.loads(client.get('/api/attendance/me', headers=auth_header(student_token)).data)
    assert len(mine['data']) == 1

    stats = json.loads(client.get('/api/attendance/me/stats', headers=auth_header(student_token)).data)
    assert stats['data']['attended_sessions'] == 1
    assert stats['data']['attendance_rate'] == 100

    records = client.get(
        f"/api/attendance/records?session_id={session['id']}",
        headers=auth_header(instructor_token)
    )
    assert len(json.loads(records.data)['data']) == 1


def test_scan_rejections(client, instructor_token, student_token):
    session = json.loads(create_session(client, instructor_token).data)['data']

    response = scan(client, student_token, 'not a qr code')
    assert json.loads(response.data)['data']['reason'] == 'invalid_format'

    response = scan(client, student_token, session['qr_payload'], subject='Rhythmic Movement 2')
    assert json.loads(response.data)['data']['reason'] == 'not_enrolled'

    client.post(f"/api/sessions/{session['id']}/end", headers=auth_header(instructor_token))
    response = scan(client, student_token, session['qr_payload'])
    assert json.loads(response.data)['message'] == 'Session is no longer active'


def test_scan_requires_fields(client, student_token):
    assert scan(client, student_token, '').status_code == 400
    assert scan(client, student_token, '{}', subject='').status_code == 400


def test_instructors_cannot_scan(client, instructor_token):
    assert scan(client, instructor_token, '{}').status_code == 403


def test_end_session(client, instructor_token):
    session = json.loads(create_session(client, instructor_token).data)['data']

    response = client.post(f"/api/sessions/{session['id']}/end", headers=auth_header(instructor_token))
    assert response.status_code == 200
    assert json.loads(response.data)['data']['is_active'] is False

    response = client.post('/api/sessions/session_missing/end', headers=auth_header(instructor_token))
    assert response.status_code == 404

    active = json.loads(client.get('/api/sessions/active', headers=auth_header(instructor_token)).data)
    assert active['data']['session'] is None


def test_list_sessions_and_stats(client, instructor_token):
    first = json.loads(create_session(client, instructor_token).data)['data']
    second = json.loads(create_session(client, instructor_token, subject='Rhythmic Movement 2').data)['data']

    listed = json.loads(client.get('/api/sessions', headers=auth_header(instructor_token)).data)['data']
    assert {s['id'] for s in listed} == {first['id'], second['id']}
    assert sum(s['is_active'] for s in listed) == 1

    stats = json.loads(client.get('/api/sessions/stats', headers=auth_header(instructor_token)).data)['data']
    assert stats['total_sessions'] == 2
    assert stats['active_session'] is True


def test_grades(client, instructor_token, student_token):
    session = json.loads(create_session(client, instructor_token).data)['data']
    scan(client, student_token, session['qr_payload'])

    mine = json.loads(client.get('/api/reports/grades/me', headers=auth_header(student_token)).data)['data']
    assert mine['subjects'][0]['subject'] == 'Hymn Singing'
    assert mine['subjects'][0]['grade'] == 100

    student_id = mine['student_id']
    response = client.get(
        f'/api/reports/grades/{student_id}?exam=Hymn%20Singing:50',
        headers=auth_header(instructor_token)
    )
    assert json.loads(response.data)['data']['subjects'][0]['grade'] == 80

    response = client.get(f'/api/reports/grades/{student_id}?exam=oops', headers=auth_header(instructor_token))
    assert response.status_code == 400

    response = client.get('/api/reports/grades/student_missing', headers=auth_header(instructor_token))
    assert response.status_code == 404


def test_subject_report(client, instructor_token, student_token):
    session = json.loads(create_session(client, instructor_token).data)['data']
    scan(client, student_token, session['qr_payload'])

    report = json.loads(client.get('/api/reports/subjects', headers=auth_header(instructor_token)).data)['data']
    assert report[0]['subject'] == 'Hymn Singing'
    assert report[0]['total_attendees'] == 1


def test_backup_endpoints(client, instructor_token):
    status = json.loads(client.get('/api/backups/status', headers=auth_header(instructor_token)).data)['data']
    assert status['remote_configured'] is False
    assert status['google_backup_ready'] is False
    assert status['pending_records'] == 0

    assert json.loads(client.get('/api/backups/errors', headers=auth_header(instructor_token)).data)['data'] == []
    assert json.loads(client.get('/api/backups/outbox', headers=auth_header(instructor_token)).data)['data'] == []
    assert json.loads(client.get('/api/backups/records', headers=auth_header(instructor_token)).data)['data'] == []

    replay = json.loads(client.post('/api/backups/replay', headers=auth_header(instructor_token)).data)['data']
    assert replay == {'total': 0, 'successful': 0, 'failed': 0, 'errors': []}


def test_backup_endpoints_require_instructor(client, student_token):
    assert client.get('/api/backups/status', headers=auth_header(student_token)).status_code == 403


def test_database_storage(app):
    storage = create_storage('database')
    assert isinstance(storage, DatabaseStorage)

    assert storage.get_item('attendance_sessions') is None
    storage.set_item('attendance_sessions', '[]')
    storage.set_item('attendance_sessions', '[{"id": "x"}]')

    assert storage.get_item('attendance_sessions') == '[{"id": "x"}]'
    assert storage.keys() == ['attendance_sessions']

    storage.remove_item('attendance_sessions')
    assert storage.get_item('attendance_sessions') is None


def test_unknown_storage():
    with pytest.raises(ValueError):
        create_storage('redis')
