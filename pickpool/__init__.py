import logging
import os

import redis

from flask import Flask, jsonify, request
from flask_caching import Cache
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_login import LoginManager
from flask_migrate import Migrate
from flask_socketio import SocketIO
from flask_sqlalchemy import SQLAlchemy
from flask_wtf.csrf import CSRFError, CSRFProtect

from config import config

logger = logging.getLogger(__name__)

db = SQLAlchemy()
login_manager = LoginManager()
socketio = SocketIO()
cache = Cache()
migrate = Migrate()
csrf = CSRFProtect()


def get_real_ip():
    """
    Get the real client IP address behind a reverse proxy.
    Checks X-Forwarded-For, X-Real-IP, and falls back to remote_addr.
    """
    # X-Forwarded-For: client, proxy1, proxy2, ...
    if request.headers.get("X-Forwarded-For"):
        return request.headers.get("X-Forwarded-For").split(",")[0].strip()
    if request.headers.get("X-Real-IP"):
        return request.headers.get("X-Real-IP")
    return get_remote_address()


def _probe_redis(url):
    """Return True when a Redis server answers at url"""
    try:
        redis.Redis.from_url(url).ping()
        return True
    except redis.exceptions.ConnectionError as e:
        logger.info(f"Redis not available at {url}: {e}")
        return False


# Use Redis for shared rate limiting across workers when it is reachable
limiter_storage_uri = "memory://"
redis_url = os.environ.get("REDIS_URL") or os.environ.get("CACHE_REDIS_URL")
if redis_url and _probe_redis(redis_url):
    limiter_storage_uri = redis_url

limiter = Limiter(
    key_func=get_real_ip,
    default_limits=["10000 per day", "1000 per hour"],
    storage_uri=limiter_storage_uri,
)


def create_app(config_name=None):
    app = Flask(__name__)

    if config_name is None:
        config_name = os.environ.get("FLASK_CONFIG", "default")

    app.config.from_object(config[config_name]())

    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"
    app.config["SESSION_COOKIE_HTTPONLY"] = True
    app.config["SESSION_COOKIE_SECURE"] = (
        False
        if app.config.get("DEBUG")
        else app.config.get("FLASK_ENV") == "production"
    )
    app.config["PERMANENT_SESSION_LIFETIME"] = 86400  # 24 hours

    app.config["WTF_CSRF_TIME_LIMIT"] = None
    app.config["WTF_CSRF_SSL_STRICT"] = False

    # Initialize extensions
    db.init_app(app)
    login_manager.init_app(app)

    allowed_origins = app.config.get("SOCKETIO_CORS_ORIGINS", "*")
    if allowed_origins != "*":
        allowed_origins = allowed_origins.split(",")

    message_queue = None
    socket_redis = app.config.get("CACHE_REDIS_URL") or os.environ.get("REDIS_URL")
    if (
        not app.config.get("TESTING")
        and app.config.get("CACHE_TYPE") == "RedisCache"
        and socket_redis
        and _probe_redis(socket_redis)
    ):
        message_queue = socket_redis

    socketio.init_app(
        app,
        cors_allowed_origins=allowed_origins,
        async_mode=app.config.get("SOCKETIO_ASYNC_MODE", "eventlet"),
        ping_timeout=60,
        ping_interval=25,
        message_queue=message_queue,
    )
    cache.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)
    limiter.init_app(app)

    # Import and register blueprints
    from pickpool.routes.auth import bp as auth_bp

    app.register_blueprint(auth_bp, url_prefix="/api/auth")

    from pickpool.routes.main import bp as main_bp

    app.register_blueprint(main_bp)

    from pickpool.routes.groups import bp as groups_bp

    app.register_blueprint(groups_bp, url_prefix="/api/groups")

    from pickpool.routes.api import bp as api_bp

    app.register_blueprint(api_bp, url_prefix="/api")

    register_error_handlers(app)

    from pickpool.utils.logging_config import setup_logging

    setup_logging(app)

    show_config_warnings(app, config_name)

    with app.app_context():
        db.create_all()

    if app.config.get("SCHEDULER_ENABLED") and not app.config.get("TESTING"):
        from pickpool.services.scheduler_service import scheduler_service

        scheduler_service.init_app(app)

    from pickpool import socketio_handlers  # noqa: F401 - registers event handlers

    return app


def show_config_warnings(app, config_name):
    """Log configuration warnings and status"""
    app.logger.info(f"pickpool starting with '{config_name}' configuration")

    if config_name == "production" and app.config.get("DEBUG"):
        app.logger.warning("DEBUG mode is enabled in production!")

    if not app.config.get("ODDS_API_KEY") and not app.config.get("TESTING"):
        app.logger.warning("ODDS_API_KEY not set, betting lines will not be fetched")

    db_url = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if "sqlite" in db_url:
        app.logger.info(
            "Using SQLite database (%s)", "in-memory" if "memory" in db_url else "file"
        )
    elif "postgresql" in db_url:
        app.logger.info("Using PostgreSQL database")
    else:
        scheme = db_url.split("://")[0] if "://" in db_url else "unknown"
        app.logger.info(f"Using database: {scheme}")


def _error(message, status):
    return jsonify({"success": False, "error": message}), status


def register_error_handlers(app):
    """Register global error handlers"""

    @app.after_request
    def after_request(response):
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"

        if not app.config.get("DEBUG") and not app.config.get("TESTING"):
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; frame-ancestors 'none'"
        )
        return response

    @app.errorhandler(CSRFError)
    def handle_csrf_error(error):
        app.logger.warning(
            f"CSRF Error: {error.description} - Path: {request.path} - User-Agent: {request.user_agent}"
        )
        return _error("Security token expired or invalid", 400)

    @app.errorhandler(400)
    def bad_request_error(error):
        app.logger.warning(
            f"400 Bad Request: {error} - Path: {request.path} - Method: {request.method}"
        )
        return _error("Bad request", 400)

    @app.errorhandler(401)
    def unauthorized_error(error):
        return _error("Authentication required", 401)

    @app.errorhandler(403)
    def forbidden_error(error):
        return _error("Access forbidden", 403)

    @app.errorhandler(404)
    def not_found_error(error):
        return _error("Resource not found", 404)

    @app.errorhandler(405)
    def method_not_allowed_error(error):
        return _error("Method not allowed", 405)

    @app.errorhandler(429)
    def too_many_requests_error(error):
        return _error("Too many requests", 429)

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return _error("Internal server error", 500)


from pickpool import models  # noqa: F401, E402 - imported for model registration
