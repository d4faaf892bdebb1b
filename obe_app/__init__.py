import os
from flask import Flask, request, current_app
from flask_login import LoginManager
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_limiter import Limiter
from werkzeug.exceptions import HTTPException
from flask_limiter.errors import RateLimitExceeded
from sqlalchemy.exc import IntegrityError

# Global extensions
db = SQLAlchemy()
login_manager = LoginManager()
migrate = Migrate()


def _rate_key():
    ip = (request.headers.get("X-Forwarded-For") or request.remote_addr or "local")
    path = (getattr(request, "path", "/") or "/")
    return f"{ip}|{path}"


limiter = Limiter(key_func=_rate_key)


def create_app(config=None):
    app = Flask(__name__)
    app.config["SECRET_KEY"] = os.environ.get("SECRET_KEY", "dev-secret-key")

    # Marks cap policy: credits x MARKS_PER_CREDIT
    app.config["MARKS_PER_CREDIT"] = int(os.environ.get("MARKS_PER_CREDIT", "25"))
    app.config["LOGIN_RATE_LIMIT"] = os.environ.get("LOGIN_RATE_LIMIT", "10 per minute")
    app.config["EXPOSE_ERROR_DETAILS"] = (os.environ.get("EXPOSE_ERROR_DETAILS", "false").lower() == "true")
    app.config["RATELIMIT_STORAGE_URI"] = os.environ.get("RATELIMIT_STORAGE_URI", "memory://")

    # Database configuration: use DATABASE_URL if provided, else sqlite file
    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        db_path = os.path.join(os.path.dirname(__file__), "..", "obe.db")
        database_url = f"sqlite:///{os.path.abspath(db_path)}"

    app.config["SQLALCHEMY_DATABASE_URI"] = database_url
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

    if config:
        app.config.update(config)

    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    login_manager.init_app(app)

    # Import models so they are registered with SQLAlchemy
    from . import models  # noqa: F401
    from .api_utils import api_error
    from .errors import DomainError, UniqueConstraintViolation

    @login_manager.user_loader
    def load_user(user_id: str):
        from .models import User
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return api_error("Unauthenticated", "Authentication required", 401)

    from .auth import auth_bp
    app.register_blueprint(auth_bp, url_prefix="/auth")

    from .hod import hod_bp
    app.register_blueprint(hod_bp, url_prefix="/hod")

    from .faculty import faculty_bp
    app.register_blueprint(faculty_bp, url_prefix="/faculty")

    from .assessments import assessments_bp
    app.register_blueprint(assessments_bp, url_prefix="/assessments")

    from .seed import register_commands
    register_commands(app)

    @app.errorhandler(DomainError)
    def handle_domain_error(e):
        db.session.rollback()
        return api_error(e.code, e.message, e.status, e.details)

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(e):
        db.session.rollback()
        current_app.logger.warning("Unique constraint violation on %s: %s", request.path, e.orig)
        err = UniqueConstraintViolation()
        return api_error(err.code, err.message, err.status)

    @app.errorhandler(RateLimitExceeded)
    def handle_rate_limit(e):
        return api_error("rate_limited", "Too many requests", 429)

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        return api_error(str(e.code), e.description or "", e.code)

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        db.session.rollback()
        current_app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        details = None
        if app.config.get("EXPOSE_ERROR_DETAILS"):
            details = {"exception": repr(e)}
        return api_error("Unexpected", "Internal server error", 500, details)

    return app
