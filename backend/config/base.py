"""Base configuration shared by every environment."""
import os
from datetime import timedelta


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_int(name: str, default=None):
    value = os.getenv(name)
    if value is None or value == '':
        return default
    return int(value)


class Config:
    """Base configuration."""

    SECRET_KEY = os.getenv('SECRET_KEY') or 'dev-secret-key-change-in-production'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = False

    # JWT Configuration
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY') or 'jwt-secret-key-change-in-production'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=2)
    JWT_ALGORITHM = 'HS256'

    # CORS
    CORS_ORIGINS = ["http://localhost:*", "https://*.vercel.app", "http://127.0.0.1:*"]

    # Rate Limiting
    RATELIMIT_STORAGE_URI = os.getenv('REDIS_URL') or 'memory://'
    RATELIMIT_DEFAULT = "200 per day, 50 per hour"

    # Snapshot storage for the attendance store: 'database' or 'memory'
    SNAPSHOT_STORAGE = os.getenv('SNAPSHOT_STORAGE', 'database')

    # Sessions
    SESSION_EXPIRY_MINUTES = _env_int('SESSION_EXPIRY_MINUTES', 30)
    SIMPLE_SESSION_EXPIRY_MINUTES = _env_int('SIMPLE_SESSION_EXPIRY_MINUTES', 5)
    POLL_INTERVAL_SECONDS = _env_int('POLL_INTERVAL_SECONDS', 3)

    # Attendance scoring
    ATTENDANCE_SCORE = _env_int('ATTENDANCE_SCORE', 10)
    LATE_THRESHOLD_MINUTES = _env_int('LATE_THRESHOLD_MINUTES')  # None disables late marking
    LATE_SCORE = _env_int('LATE_SCORE', 7)

    # Remote store (Supabase)
    SUPABASE_URL = os.getenv('SUPABASE_URL')
    SUPABASE_KEY = os.getenv('SUPABASE_KEY')

    # Google Sheets backup
    GOOGLE_BACKUP_ENABLED = _env_bool('GOOGLE_BACKUP_ENABLED')
    GOOGLE_BACKUP_SPREADSHEET_ID = os.getenv('GOOGLE_BACKUP_SPREADSHEET_ID', '')
    GOOGLE_SERVICE_ACCOUNT_KEY_PATH = os.getenv('GOOGLE_SERVICE_ACCOUNT_KEY_PATH', './google-service-account.json')
    BACKUP_TIMEOUT_SECONDS = _env_int('BACKUP_TIMEOUT_SECONDS', 10)

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FILE = os.getenv('LOG_FILE', 'logs/app.log')
