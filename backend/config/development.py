"""Development configuration."""
import os

from .base import Config


class DevelopmentConfig(Config):
    """Development configuration class."""

    DEBUG = True
    TESTING = False
    SQLALCHEMY_DATABASE_URI = os.getenv('DEV_DATABASE_URL') or 'sqlite:///qr_attendance_dev.db'

    # Redis is optional in development
    REDIS_URL = os.getenv('REDIS_URL') or None

    LOG_LEVEL = 'DEBUG'
