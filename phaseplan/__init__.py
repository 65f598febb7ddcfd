"""
Phase Planning Platform
Flask Application Factory.

Usage:
    from phaseplan import create_app
    app = create_app()           # APP_ENV, default "development"
    app = create_app("testing")

CLI (``flask --app wsgi ...``):
    init-jobs            create ScheduledJob rows for the registered jobs
    run-job NAME         run one job now (ignores the pause switch)
    cleanup-snapshots    drop snapshots older than --days (default 90)
"""

import importlib
import json
import logging
import os
from datetime import date, timedelta

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from phaseplan.config import config
from phaseplan.core.exceptions import NotFoundError, ValidationError
from phaseplan.middleware.logging_config import configure_logging
from phaseplan.middleware.rate_limiter import init_rate_limits
from phaseplan.models import db
from phaseplan.utils.errors import E, api_error

logger = logging.getLogger(__name__)

MODEL_MODULES = ("auth", "project", "planning", "analytics", "weather", "scheduling")


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """SQLite ignores ON DELETE CASCADE unless foreign keys are switched on per connection."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: "development", "testing" or "production".
                     Defaults to the APP_ENV env var, then "development".
    """
    config_name = config_name or os.getenv("APP_ENV", "development")
    app = Flask(__name__, instance_relative_config=True)
    config_cls = config[config_name]
    # ProductionConfig checks its environment in __init__
    app.config.from_object(config_cls() if config_name == "production" else config_cls)

    configure_logging(app)

    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    origins = app.config.get("CORS_ORIGINS", "*")
    if origins and origins != "*":
        CORS(app, origins=[o.strip() for o in origins.split(",") if o.strip()])
    else:
        CORS(app)

    _create_tables(app)
    _register_blueprints(app)
    _register_cli(app)
    _register_error_handlers(app)
    init_rate_limits(app, limiter)
    _init_scheduler(app)
    return app


def _create_tables(app):
    """Import every model module, then CREATE IF NOT EXISTS."""
    for name in MODEL_MODULES:
        importlib.import_module(f"phaseplan.models.{name}")

    uri = app.config["SQLALCHEMY_DATABASE_URI"]
    if uri.startswith("sqlite:///") and ":memory:" not in uri:
        os.makedirs(app.instance_path, exist_ok=True)
    with app.app_context():
        try:
            db.create_all()
        except Exception as exc:
            logger.warning("db.create_all() failed: %s", exc)


def _register_blueprints(app):
    from phaseplan.blueprints.cron_bp import cron_bp
    from phaseplan.blueprints.health_bp import health_bp
    from phaseplan.blueprints.insights_bp import insights_bp
    from phaseplan.blueprints.scheduler_bp import scheduler_bp

    for bp in (health_bp, insights_bp, cron_bp, scheduler_bp):
        app.register_blueprint(bp)


def _init_scheduler(app):
    # Importing scheduled_jobs runs its @register_job decorators
    importlib.import_module("phaseplan.services.scheduled_jobs")
    from phaseplan.services.scheduler_service import SchedulerService
    SchedulerService.init_app(app)


# ═══════════════════════════════════════════════════════════════════════════
#  CLI
# ═══════════════════════════════════════════════════════════════════════════

def _register_cli(app):

    @app.cli.command("init-jobs")
    def init_jobs_cmd():
        """Create ScheduledJob rows for registered jobs that have none."""
        from phaseplan.services.scheduler_service import SchedulerService
        created = SchedulerService.ensure_jobs_registered()
        click.echo(f"{len(created)} job record(s) created")

    @app.cli.command("run-job")
    @click.argument("job_name")
    def run_job_cmd(job_name):
        """Run a registered job once (phase_snapshots, insight_generation, weather_refresh)."""
        from phaseplan.services.scheduler_service import SchedulerService
        result = SchedulerService.run_job(job_name, force=True)
        click.echo(json.dumps(result, indent=2, default=str))
        if result["status"] not in ("success", "skipped"):
            raise SystemExit(1)

    @app.cli.command("cleanup-snapshots")
    @click.option("--days", default=90, show_default=True, help="Keep this many days.")
    def cleanup_snapshots_cmd(days):
        """Delete phase snapshots older than the retention window."""
        from phaseplan.services.analytics_repository import cleanup_old_snapshots
        deleted = cleanup_old_snapshots(date.today() - timedelta(days=days))
        click.echo(f"{deleted} snapshot(s) deleted")


# ═══════════════════════════════════════════════════════════════════════════
#  Error handlers
# ═══════════════════════════════════════════════════════════════════════════

def _register_error_handlers(app):

    @app.errorhandler(NotFoundError)
    def domain_not_found(e):
        logger.info("Not found: %s", e)
        return api_error(E.NOT_FOUND, f"{e.resource} not found")

    @app.errorhandler(ValidationError)
    def domain_invalid(e):
        return api_error(E.VALIDATION_INVALID, str(e), details=e.details)

    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.VALIDATION_INVALID, "Method not allowed", status=405)

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.RATE_LIMITED, "Too many requests",
                         details={"limit": str(e.description)})

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")
