"""Testing configuration."""
from datetime import timedelta

from .base import Config


class TestingConfig(Config):
    """Testing configuration class."""

    DEBUG = False
    TESTING = True
    SECRET_KEY = 'test-secret-key'

    # Database (in-memory SQLite for testing)
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'

    # JWT Configuration
    JWT_SECRET_KEY = 'test-jwt-secret'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=5)

    # Rate Limiting (disabled for testing)
    RATELIMIT_ENABLED = False
    RATELIMIT_STORAGE_URI = 'memory://'

    SNAPSHOT_STORAGE = 'memory'

    # Disable external services in testing
    SUPABASE_URL = None
    SUPABASE_KEY = None
    GOOGLE_BACKUP_ENABLED = False
    GOOGLE_BACKUP_SPREADSHEET_ID = ''
    GOOGLE_SERVICE_ACCOUNT_KEY_PATH = ''

    LATE_THRESHOLD_MINUTES = None

    # Logging
    LOG_LEVEL = 'WARNING'
