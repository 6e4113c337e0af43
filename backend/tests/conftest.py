"""Shared fixtures."""
import json

import pytest

from qr_attendance import create_app
from qr_attendance.models.records import StudentClaim
from qr_attendance.services.attendance_store import AttendanceStore
from qr_attendance.services.local_storage import MemoryStorage
from qr_attendance.services.sync_service import RemoteSyncAdapter

START_MS = 1_760_000_000_000


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now=START_MS):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


class FakeResponse:
    def __init__(self, data=None):
        self.data = data or []


class FakeQuery:
    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.operation = 'select'
        self.row = None
        self.filters = {}

    def insert(self, row):
        self.operation, self.row = 'insert', row
        return self

    def upsert(self, row):
        self.operation, self.row = 'upsert', row
        return self

    def update(self, row):
        self.operation, self.row = 'update', row
        return self

    def select(self, *columns):
        self.operation = 'select'
        return self

    def eq(self, column, value):
        self.filters[column] = value
        return self

    def limit(self, count):
        return self

    def execute(self):
        if self.table in self.client.failing_tables:
            raise ConnectionError(f"network error writing {self.table}")
        if self.operation == 'select':
            rows = self.client.rows.get(self.table, [])
            return FakeResponse([
                r for r in rows
                if all(r.get(k) == v for k, v in self.filters.items())
            ])
        self.client.calls.append((self.operation, self.table, self.row, dict(self.filters)))
        if self.operation in ('insert', 'upsert'):
            self.client.rows.setdefault(self.table, []).append(self.row)
        return FakeResponse([self.row])


class FakeSupabase:
    """Records table writes the way the supabase client chains them."""

    def __init__(self, failing_tables=()):
        self.failing_tables = set(failing_tables)
        self.calls = []
        self.rows = {}

    def table(self, name):
        return FakeQuery(self, name)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store(storage, clock):
    return AttendanceStore(storage=storage, clock=clock)


@pytest.fixture
def claim_for():
    """Build a student claim for a subject."""
    def build(subject='Hymn Singing', student_id='student_1', academic_level='Second Year'):
        return StudentClaim(
            student_id=student_id,
            student_name='Mina Adel',
            email=f'{student_id}@music.edu',
            academic_level=academic_level,
            subject=subject
        )
    return build


@pytest.fixture
def app():
    """Create test app."""
    app = create_app('testing')
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def instructor_token(client):
    from qr_attendance.services.auth_service import AuthService

    user, error = AuthService.create_staff(
        email='instructor@music.edu',
        password='password123',
        name='Peter Ehab'
    )
    assert error is None
    response = client.post('/api/auth/login', json={
        'email': 'instructor@music.edu',
        'password': 'password123'
    })
    return json.loads(response.data)['data']['access_token']


@pytest.fixture
def student_token(client):
    client.post('/api/auth/student/register', json={
        'name': 'Mina Adel',
        'email': 'mina@music.edu',
        'password': 'password123',
        'academic_level': 'Second Year',
        'subjects': ['Hymn Singing']
    })
    response = client.post('/api/auth/student/login', json={
        'email': 'mina@music.edu',
        'password': 'password123'
    })
    return json.loads(response.data)['data']['access_token']


def auth_header(token):
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def fake_supabase():
    return FakeSupabase()


@pytest.fixture
def synced_store(storage, clock, fake_supabase):
    adapter = RemoteSyncAdapter(client=fake_supabase, clock=clock)
    return AttendanceStore(storage=storage, sync=adapter, clock=clock)
