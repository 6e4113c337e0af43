"""Spreadsheet backup and local outbox for writes the remote store rejected."""
import json
import logging
import secrets
import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

import requests
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import AuthorizedSession
from google.oauth2 import service_account

from qr_attendance.services.local_storage import SnapshotStorage
from qr_attendance.services.qr_service import now_ms
from qr_attendance.services.sync_service import FallbackPolicy, RECORDS_TABLE, RemoteSyncAdapter, SyncFailure
from qr_attendance.utils.helpers import ms_to_iso, ms_to_local_datetime

logger = logging.getLogger(__name__)

OUTBOX_KEY = 'attendance_outbox'

SHEETS_SCOPES = ['https://www.googleapis.com/auth/spreadsheets']


class BackupService(FallbackPolicy):
    """
    Secondary write path used whenever a remote write fails.

    Three things happen for every failure handed over by the sync adapter:

    1. the write is queued in the local outbox so an operator can replay it,
    2. an attendance write is flattened into a row on the
       ``Attendance Records`` sheet,
    3. a row describing the failure is appended to the ``Error Log`` sheet.

    The spreadsheet steps are skipped when Google backup is not configured;
    the outbox is always kept. Sheets calls go through an authorized session
    that refreshes its service-account token on its own.
    """

    SHEETS_API_URL = 'https://sheets.googleapis.com/v4/spreadsheets'
    ATTENDANCE_RANGE = 'Attendance Records!A:J'
    ERROR_RANGE = 'Error Log!A:E'

    def __init__(
        self,
        storage: SnapshotStorage,
        spreadsheet_id: str = '',
        session: Optional[requests.Session] = None,
        enabled: bool = False,
        timeout: int = 10,
        clock: Callable[[], int] = now_ms
    ):
        self._storage = storage
        self._spreadsheet_id = spreadsheet_id
        self._session = session
        self._enabled = enabled
        self._timeout = timeout
        self._clock = clock
        self._outbox_lock = threading.Lock()
        self.last_replay_at: Optional[int] = None

    @classmethod
    def from_config(cls, config: Dict[str, Any], storage: SnapshotStorage) -> 'BackupService':
        enabled = bool(config.get('GOOGLE_BACKUP_ENABLED'))
        spreadsheet_id = config.get('GOOGLE_BACKUP_SPREADSHEET_ID', '')
        session = None

        if enabled:
            session = cls._authorized_session(config.get('GOOGLE_SERVICE_ACCOUNT_KEY_PATH'))
            if not spreadsheet_id or session is None:
                logger.warning("Google backup enabled but spreadsheet id or service account key is missing")

        return cls(
            storage=storage,
            spreadsheet_id=spreadsheet_id,
            session=session,
            enabled=enabled,
            timeout=config.get('BACKUP_TIMEOUT_SECONDS', 10)
        )

    @staticmethod
    def _authorized_session(key_path: Optional[str]) -> Optional[AuthorizedSession]:
        if not key_path:
            return None
        try:
            credentials = service_account.Credentials.from_service_account_file(key_path, scopes=SHEETS_SCOPES)
        except (OSError, ValueError) as e:
            logger.error("Failed to load Google service account key %s: %s", key_path, e)
            return None
        return AuthorizedSession(credentials)

    @property
    def is_configured(self) -> bool:
        return bool(self._enabled and self._spreadsheet_id and self._session is not None)

    # =================== FALLBACK POLICY ===================

    def handle_failure(self, failure: SyncFailure) -> None:
        self.enqueue(failure)

        if failure.table == RECORDS_TABLE:
            self.record_attendance_backup(failure, error_type='database_unavailable')

        self.log_error(
            error_type=f"{failure.operation}_{failure.table}_failed",
            error_message=failure.error,
            details={'row': failure.row, 'match': failure.match}
        )

    # =================== SPREADSHEET ===================

    def record_attendance_backup(self, failure: SyncFailure, error_type: str = 'manual_backup') -> bool:
        """Append one flattened attendance row; returns False when it was not written."""
        if not self.is_configured:
            logger.debug("Google backup not configured, skipping attendance row")
            return False

        row = failure.row
        context = failure.context
        # Same local clock as the message shown to the student
        scanned_at = context.get('scanned_at')
        scanned = ms_to_local_datetime(scanned_at) if scanned_at else datetime.now()
        values = [
            scanned.strftime('%Y-%m-%d'),
            scanned.strftime('%H:%M:%S'),
            context.get('student_name', ''),
            context.get('email', ''),
            context.get('subject', ''),
            context.get('academic_level', ''),
            row.get('status', 'present'),
            row.get('session_id', ''),
            row.get('student_id', ''),
            error_type
        ]
        if self._append(self.ATTENDANCE_RANGE, values):
            logger.info("Attendance for %s backed up to Google Sheets", row.get('student_id'))
            return True
        return False

    def log_error(self, error_type: str, error_message: str, details: Optional[Dict[str, Any]] = None) -> bool:
        """Append a row explaining why the primary path was bypassed."""
        if not self.is_configured:
            return False

        values = [
            ms_to_iso(self._clock()),
            error_type,
            error_message,
            json.dumps(details or {}, default=str),
            'pending'
        ]
        return self._append(self.ERROR_RANGE, values)

    def get_backup_records(self, day: Optional[str] = None) -> List[List[str]]:
        """Rows on the attendance sheet, optionally only those for ``day`` (YYYY-MM-DD)."""
        if not self.is_configured:
            return []

        try:
            response = self._session.get(self._range_url(self.ATTENDANCE_RANGE), timeout=self._timeout)
            response.raise_for_status()
        except (requests.exceptions.RequestException, GoogleAuthError) as e:
            logger.error("Failed to retrieve backup records: %s", e)
            return []

        rows = response.json().get('values', [])
        if day:
            return [row for row in rows if row and row[0] == day]
        return rows

    def _append(self, sheet_range: str, values: List[Any]) -> bool:
        try:
            response = self._session.post(
                f"{self._range_url(sheet_range)}:append",
                params={'valueInputOption': 'RAW', 'insertDataOption': 'INSERT_ROWS'},
                json={'values': [values]},
                timeout=self._timeout
            )
            response.raise_for_status()
            return True
        except (requests.exceptions.RequestException, GoogleAuthError) as e:
            logger.error("Failed to append to %s: %s", sheet_range, e)
            return False

    def _range_url(self, sheet_range: str) -> str:
        return f"{self.SHEETS_API_URL}/{self._spreadsheet_id}/values/{quote(sheet_range, safe='')}"

    # =================== OUTBOX ===================

    def pending(self) -> List[Dict[str, Any]]:
        raw = self._storage.get_item(OUTBOX_KEY)
        if not raw:
            return []
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding unreadable outbox snapshot")
            return []

    def enqueue(self, failure: SyncFailure) -> None:
        entry = failure.to_dict()
        entry['id'] = f"outbox_{failure.occurred_at}_{secrets.token_hex(4)}"

        with self._outbox_lock:
            entries = self.pending()
            entries.append(entry)
            self._save(entries)

        logger.info("Queued failed %s on %s for replay", failure.operation, failure.table)

    def replay_outbox(self, adapter: RemoteSyncAdapter) -> Dict[str, Any]:
        """
        Push every queued write once more.

        Entries queued while the replay is running stay in the outbox for the
        next replay.
        Returns: counts plus the errors of writes that stay queued
        """
        with self._outbox_lock:
            entries = self.pending()

        synced_ids = set()
        errors = []

        for entry in entries:
            failure = SyncFailure(
                operation=entry['operation'],
                table=entry['table'],
                row=entry['row'],
                error=entry.get('error', ''),
                occurred_at=entry.get('occurred_at', 0),
                match=entry.get('match', {}),
                context=entry.get('context', {})
            )
            if adapter.replay(failure):
                synced_ids.add(entry['id'])
            else:
                errors.append(f"{entry['id']}: {failure.operation} on {failure.table} still failing")

        with self._outbox_lock:
            remaining = [e for e in self.pending() if e.get('id') not in synced_ids]
            self._save(remaining)

        self.last_replay_at = self._clock()
        logger.info("Outbox replay finished: %d synced, %d pending", len(synced_ids), len(remaining))

        return {
            'total': len(entries),
            'successful': len(synced_ids),
            'failed': len(entries) - len(synced_ids),
            'errors': errors
        }

    def _save(self, entries: List[Dict[str, Any]]) -> None:
        self._storage.set_item(OUTBOX_KEY, json.dumps(entries, default=str))

    def get_status(self, adapter: RemoteSyncAdapter) -> Dict[str, Any]:
        return {
            'google_backup_ready': self.is_configured,
            'database_ready': adapter.ping(),
            'remote_configured': adapter.enabled,
            'pending_records': len(self.pending()),
            'last_replay_at': ms_to_iso(self.last_replay_at) if self.last_replay_at else None
        }
