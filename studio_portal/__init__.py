"""
Studio Portal
Flask Application Factory.

Usage:
    from studio_portal import create_app
    app = create_app()           # defaults to APP_ENV, then "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event
from sqlalchemy.exc import SQLAlchemyError

from studio_portal.config import config
from studio_portal.core.exceptions import PortalError
from studio_portal.middleware.jwt_auth import init_jwt_middleware
from studio_portal.middleware.logging_config import configure_logging
from studio_portal.middleware.rate_limiter import init_rate_limits
from studio_portal.middleware.timing import init_request_timing
from studio_portal.models import db
from studio_portal.utils.errors import E, api_error, portal_error_response

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit: apply per-blueprint
)

# Raw-body endpoints exempt from the JSON Content-Type guard
_RAW_BODY_PATHS = ("/api/v1/payments/webhook",)


def _import_models():
    """Import every model module so metadata (and Alembic) sees all tables."""
    from studio_portal.models import form_submission as _form_models  # noqa: F401
    from studio_portal.models import notification as _notification_models  # noqa: F401
    from studio_portal.models import payment as _payment_models  # noqa: F401
    from studio_portal.models import project as _project_models  # noqa: F401
    from studio_portal.models import signoff as _signoff_models  # noqa: F401
    from studio_portal.models import workflow as _workflow_models  # noqa: F401


def _register_error_handlers(app):
    @app.errorhandler(PortalError)
    def _portal_error(exc):
        if exc.status >= 500:
            logger.error("%s: %s", exc.code, exc, extra={"path": request.path})
        else:
            logger.info("%s: %s", exc.code, exc, extra={"path": request.path})
        return portal_error_response(exc)

    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.VALIDATION_INVALID, "Method not allowed", status=405)

    @app.errorhandler(413)
    def too_large(e):
        return api_error(E.VALIDATION_INVALID, "Request body too large", status=413)

    @app.errorhandler(415)
    def unsupported_media(e):
        return api_error(E.VALIDATION_INVALID, "Content-Type must be application/json", status=415)

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.VALIDATION_INVALID, "Too many requests", status=429,
                         details={"retry_after": str(e.description)})

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")


def _register_cli(app):
    @app.cli.command("seed-requirements")
    def seed_requirements_cmd():
        """Mirror the requirement catalog into phase_requirements."""
        from studio_portal.models.workflow import seed_phase_requirements
        count = seed_phase_requirements()
        db.session.commit()
        logger.info("Seeded %s new phase requirements.", count)

    @app.cli.command("remind-stalled")
    @click.option("--days", type=int, default=None, help="Days in one phase before a project counts as stalled.")
    def remind_stalled_cmd(days):
        """Send reminders for projects stuck in a phase."""
        from studio_portal.services.stalled_projects import remind_stalled_projects
        reminded = remind_stalled_projects(days=days)
        click.echo(f"Reminded {len(reminded)} stalled project(s).")

    @app.cli.command("issue-token")
    @click.option("--user-id", required=True)
    @click.option("--role", type=click.Choice(["client", "staff", "admin"]), default="client")
    def issue_token_cmd(user_id, role):
        """Print a bearer token for local development."""
        from studio_portal.services.jwt_service import generate_access_token
        click.echo(generate_access_token(user_id, [role]))


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    # Instantiated so ProductionConfig can refuse to start without its secrets
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing & JWT middleware ──────────────────────────────────
    init_request_timing(app)
    init_jwt_middleware(app)

    # ── Request guards (input length + Content-Type) ─────────────────────
    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)  # 2 MB

    @app.before_request
    def _guard_request():
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            if request.path.startswith(_RAW_BODY_PATHS):
                return None
            ct = request.content_type or ""
            if request.data and "json" not in ct:
                abort(415)
        return None

    # ── Models, tables and catalog seed ──────────────────────────────────
    _import_models()
    from studio_portal.models.workflow import seed_phase_requirements

    with app.app_context():
        try:
            db.create_all()
            seed_phase_requirements()
            db.session.commit()
            app.logger.info("Tables ready, requirement catalog seeded")
        except SQLAlchemyError as e:
            db.session.rollback()
            app.logger.warning("Schema bootstrap failed: %s", e)

    # ── Phase-transition listeners ───────────────────────────────────────
    from studio_portal.services import notification as _notification  # noqa: F401  registers @on_phase_advanced

    # ── Blueprints ───────────────────────────────────────────────────────
    from studio_portal.blueprints.forms_bp import forms_bp
    from studio_portal.blueprints.health_bp import health_bp
    from studio_portal.blueprints.notification_bp import notification_bp
    from studio_portal.blueprints.payments_bp import payments_bp
    from studio_portal.blueprints.phases_bp import phases_bp
    from studio_portal.blueprints.projects_bp import projects_bp
    from studio_portal.blueprints.signoff_bp import signoff_bp

    app.register_blueprint(phases_bp)
    app.register_blueprint(projects_bp)
    app.register_blueprint(forms_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(signoff_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(health_bp)

    _register_error_handlers(app)
    _register_cli(app)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
