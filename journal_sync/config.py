"""
Application configuration
Values are read from environment variables (and a .env file when present)
"""
import os
import tempfile

from dotenv import load_dotenv

load_dotenv()

# Project root (parent of the journal_sync package)
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.lower() in ('1', 'true', 'yes')


class Config:
    """Base configuration"""

    # ==================== Storage ====================
    DATA_DIR = os.environ.get('DATA_DIR', os.path.join(BASE_DIR, 'data'))

    DATABASE_URL = os.environ.get('DATABASE_URL')
    if DATABASE_URL:
        SQLALCHEMY_DATABASE_URI = DATABASE_URL
    else:
        SQLALCHEMY_DATABASE_URI = f'sqlite:///{os.path.join(DATA_DIR, "journal.db")}'

    SQLALCHEMY_ECHO = False

    # ==================== Session ====================
    SESSION_FILE = os.environ.get('SESSION_FILE', os.path.join(DATA_DIR, 'session.json'))
    # Fernet key used to encrypt the bearer token at rest
    SESSION_ENCRYPTION_KEY = os.environ.get('SESSION_ENCRYPTION_KEY')

    # ==================== Remote API ====================
    API_BASE_URL = os.environ.get('API_BASE_URL', 'http://localhost:3001')
    API_TIMEOUT = float(os.environ.get('API_TIMEOUT', '30'))

    # ==================== CORS ====================
    # Allowed origins for the local API (comma separated)
    CORS_ORIGINS = os.environ.get(
        'CORS_ORIGINS',
        'http://localhost:5173,http://127.0.0.1:5173'
    ).split(',')

    # ==================== Logging ====================
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_FILE = os.environ.get('LOG_FILE')

    # ==================== Sync ====================
    SYNC_SCHEDULER_ENABLED = _env_bool('SYNC_SCHEDULER_ENABLED', True)
    SYNC_INTERVAL_MINUTES = float(os.environ.get('SYNC_INTERVAL_MINUTES', '15'))
    SYNC_PAGE_SIZE = int(os.environ.get('SYNC_PAGE_SIZE', '50'))
    # Safety cap for a server that keeps reporting hasMore
    SYNC_MAX_PAGES = int(os.environ.get('SYNC_MAX_PAGES', '1000'))
    # Run attempts before an unexpected error becomes a permanent failure
    SYNC_MAX_RUN_ATTEMPTS = int(os.environ.get('SYNC_MAX_RUN_ATTEMPTS', '3'))
    SYNC_BACKOFF_INITIAL = float(os.environ.get('SYNC_BACKOFF_INITIAL', '60'))
    SYNC_BACKOFF_MAX = float(os.environ.get('SYNC_BACKOFF_MAX', str(5 * 60 * 60)))
    # A run lock older than this is considered left behind by a dead process
    SYNC_LOCK_STALE_SECONDS = float(os.environ.get('SYNC_LOCK_STALE_SECONDS', '600'))
    CONNECTIVITY_PROBE_INTERVAL = float(os.environ.get('CONNECTIVITY_PROBE_INTERVAL', '30'))

    @classmethod
    def init_paths(cls):
        """Create the data directory"""
        if not os.path.exists(cls.DATA_DIR):
            os.makedirs(cls.DATA_DIR)

    @classmethod
    def get_cors_config(cls):
        """CORS options for the /api routes"""
        return {
            "origins": cls.CORS_ORIGINS,
            "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization"],
        }


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    LOG_LEVEL = 'DEBUG'


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    LOG_LEVEL = 'WARNING'

    @classmethod
    def validate(cls):
        """Return warnings about missing production settings"""
        warnings = []

        if not os.environ.get('SESSION_ENCRYPTION_KEY'):
            warnings.append('SESSION_ENCRYPTION_KEY is not set, the session token is only obfuscated')

        if not os.environ.get('API_BASE_URL'):
            warnings.append('API_BASE_URL is not set, using the development default')

        return warnings


class TestingConfig(Config):
    """Test configuration"""
    TESTING = True
    DATA_DIR = os.path.join(tempfile.gettempdir(), 'journal_sync_test')
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SYNC_SCHEDULER_ENABLED = False
    SESSION_FILE = None
    LOG_LEVEL = 'WARNING'


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}


def get_config():
    """Pick the configuration class from JOURNAL_ENV"""
    env = os.environ.get('JOURNAL_ENV', 'development')
    return config.get(env, config['default'])
