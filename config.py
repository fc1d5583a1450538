import os
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _get_database_uri():
    """Get database URI, falling back to a local SQLite file for development"""
    database_url = os.environ.get('DATABASE_URL')
    if database_url:
        # Some hosting providers still hand out the deprecated scheme
        if database_url.startswith('postgres://'):
            database_url = database_url.replace('postgres://', 'postgresql://', 1)
        return database_url
    return f'sqlite:///{os.path.join(BASE_DIR, "dairylink.db")}'


class Config:
    # Flask settings
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'

    # Database settings
    SQLALCHEMY_DATABASE_URI = _get_database_uri()
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Directory holding attached SQLite tenant databases (empty = in-memory)
    TENANT_SQLITE_DIR = os.environ.get('TENANT_SQLITE_DIR', '')

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_DEVICE_REQUESTS = os.environ.get('LOG_DEVICE_REQUESTS', 'true').lower() == 'true'

    # Device protocol settings
    DEVICE_TIMEZONE = os.environ.get('DEVICE_TIMEZONE', 'Asia/Kolkata')
    CORRECTION_HISTORY_LIMIT = int(os.environ.get('CORRECTION_HISTORY_LIMIT', 5))
    ROSTER_PAGE_SIZE = int(os.environ.get('ROSTER_PAGE_SIZE', 5))

    # Application settings
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024  # 16MB max request size
