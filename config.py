import os
import secrets
import warnings

from dotenv import load_dotenv

basedir = os.path.abspath(os.path.dirname(__file__))
load_dotenv(os.path.join(basedir, ".env"))


def _env_flag(name, default="True"):
    return os.environ.get(name, default).lower() in ["true", "on", "1", "yes"]


class Config:
    # Generate secure keys if not provided (with warnings)
    _secret_key = os.environ.get("SECRET_KEY")
    _csrf_key = os.environ.get("WTF_CSRF_SECRET_KEY")

    if not _secret_key:
        _secret_key = secrets.token_urlsafe(32)
        warnings.warn(
            "SECRET_KEY not set! Using auto-generated key. "
            "Sessions will reset on app restart. "
            "Run 'python3 generate_secrets.py' to generate secure keys.",
            UserWarning,
        )

    if not _csrf_key:
        _csrf_key = secrets.token_urlsafe(32)
        warnings.warn(
            "WTF_CSRF_SECRET_KEY not set! Using auto-generated key. "
            "Run 'python3 generate_secrets.py' to generate secure keys.",
            UserWarning,
        )

    SECRET_KEY = _secret_key
    WTF_CSRF_SECRET_KEY = _csrf_key

    def __init__(self):
        """Initialize configuration with dynamic database URI"""
        self.SQLALCHEMY_DATABASE_URI = self._build_database_uri()

    def _build_database_uri(self):
        """Build database URI from environment variables"""
        database_url = os.environ.get("DATABASE_URL")

        if database_url:
            # Heroku style URLs still use the old scheme
            if database_url.startswith("postgres://"):
                database_url = database_url.replace(
                    "postgres://", "postgresql+psycopg://", 1
                )
            return database_url

        db_type = os.environ.get("DB_TYPE", "sqlite")

        if db_type.lower() == "postgresql":
            db_host = os.environ.get("DB_HOST") or "localhost"
            db_port = os.environ.get("DB_PORT") or "5432"
            db_name = os.environ.get("DB_NAME") or "pickpool_db"
            db_user = os.environ.get("DB_USER") or "pickpool"
            db_password = os.environ.get("DB_PASSWORD") or "pickpool"

            return f"postgresql+psycopg://{db_user}:{db_password}@{db_host}:{db_port}/{db_name}"

        return "sqlite:///" + os.path.join(basedir, "pickpool.db")

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Third-party data sources
    NFL_API_BASE_URL = (
        os.environ.get("NFL_API_BASE_URL")
        or "https://site.api.espn.com/apis/site/v2/sports/football/nfl"
    )
    ODDS_API_KEY = os.environ.get("ODDS_API_KEY")
    ODDS_API_BASE_URL = (
        os.environ.get("ODDS_API_BASE_URL") or "https://api.the-odds-api.com/v4"
    )
    ODDS_CACHE_TIMEOUT = int(os.environ.get("ODDS_CACHE_TIMEOUT", 7 * 24 * 3600))
    API_REQUEST_TIMEOUT = int(os.environ.get("API_REQUEST_TIMEOUT", 10))

    # Shared secret for external cron callers (Authorization: Bearer <secret>)
    CRON_SECRET = os.environ.get("CRON_SECRET")

    # Application settings
    TIMEZONE = os.environ.get("TIMEZONE", "America/New_York")
    MIN_GAMES_PER_WEEK = int(os.environ.get("MIN_GAMES_PER_WEEK", 16))
    # Poll the odds feed from GET /api/games when a week looks incomplete
    GAMES_AUTO_SYNC = _env_flag("GAMES_AUTO_SYNC")
    DEFAULT_MAX_MEMBERS = int(os.environ.get("DEFAULT_MAX_MEMBERS", 50))

    # Caching configuration
    CACHE_TYPE = os.environ.get("CACHE_TYPE", "RedisCache")
    CACHE_DEFAULT_TIMEOUT = int(os.environ.get("CACHE_DEFAULT_TIMEOUT", 300))
    CACHE_REDIS_URL = os.environ.get("CACHE_REDIS_URL", "redis://localhost:6379/0")
    CACHE_KEY_PREFIX = "pickpool:"

    # Rate limiting
    RATELIMIT_ENABLED = _env_flag("RATELIMIT_ENABLED")

    # Scheduler configuration
    SCHEDULER_ENABLED = _env_flag("SCHEDULER_ENABLED")
    SCORE_SYNC_INTERVAL_MINUTES = int(os.environ.get("SCORE_SYNC_INTERVAL_MINUTES", 5))

    # Socket.IO
    SOCKETIO_ASYNC_MODE = os.environ.get("SOCKETIO_ASYNC_MODE", "eventlet")
    SOCKETIO_CORS_ORIGINS = os.environ.get("SOCKETIO_CORS_ORIGINS", "*")

    # Logging configuration
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_TO_CONSOLE = _env_flag("LOG_TO_CONSOLE")
    LOG_TO_FILE = _env_flag("LOG_TO_FILE")
    LOG_DIR = os.environ.get("LOG_DIR", "logs")

    # Environment detection
    FLASK_ENV = os.environ.get("FLASK_ENV", "development")
    DEBUG = FLASK_ENV == "development"
    TESTING = False


class DevelopmentConfig(Config):
    """Development configuration with helpful defaults"""

    DEBUG = True
    SQLALCHEMY_ECHO = _env_flag("SQLALCHEMY_ECHO", "False")

    def __init__(self):
        super().__init__()
        # Fallback to SimpleCache if Redis isn't available in development
        try:
            import redis

            redis_client = redis.Redis.from_url(self.CACHE_REDIS_URL)
            redis_client.ping()
        except redis.exceptions.ConnectionError:
            self.CACHE_TYPE = "SimpleCache"
            warnings.warn(
                "Redis not available, falling back to SimpleCache for development.",
                UserWarning,
            )


class ProductionConfig(Config):
    """Production configuration with security focus"""

    DEBUG = False

    def __init__(self):
        super().__init__()

        if not os.environ.get("SECRET_KEY"):
            warnings.warn(
                "PRODUCTION WARNING: SECRET_KEY not explicitly set! "
                "Using auto-generated key is not recommended for production.",
                UserWarning,
            )
        if not os.environ.get("WTF_CSRF_SECRET_KEY"):
            warnings.warn(
                "PRODUCTION WARNING: WTF_CSRF_SECRET_KEY not explicitly set!",
                UserWarning,
            )
        if not self.CRON_SECRET:
            warnings.warn(
                "PRODUCTION WARNING: CRON_SECRET not set, /api/cron is admin-only.",
                UserWarning,
            )


class TestingConfig(Config):
    """Testing configuration"""

    TESTING = True
    DEBUG = False
    SECRET_KEY = "testing-secret-key"
    WTF_CSRF_ENABLED = False
    RATELIMIT_ENABLED = False
    CACHE_TYPE = "NullCache"
    SCHEDULER_ENABLED = False
    GAMES_AUTO_SYNC = False
    SOCKETIO_ASYNC_MODE = "threading"
    LOG_TO_FILE = False
    LOG_TO_CONSOLE = False
    ODDS_API_KEY = None
    CRON_SECRET = "testing-cron-secret"

    def _build_database_uri(self):
        return "sqlite:///:memory:"


# Configuration mapping
config = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": DevelopmentConfig,
}
