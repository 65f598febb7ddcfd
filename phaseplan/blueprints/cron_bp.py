"""
Phase Planning Platform
Cron Blueprint — entry points for an external scheduler.

Every route requires ``Authorization: Bearer <CRON_SECRET>``.

Endpoints:
    POST /api/cron/snapshots  — run phase_snapshots
    POST /api/cron/insights   — run insight_generation
    GET  /api/cron/insights   — insight_generation job info
    POST /api/cron/weather    — run weather_refresh
"""

import hmac
import logging
from functools import wraps

from flask import Blueprint, current_app, jsonify, request

from phaseplan.services.scheduler_service import SchedulerService
from phaseplan.utils.errors import E, api_error

logger = logging.getLogger(__name__)

cron_bp = Blueprint("cron_bp", __name__, url_prefix="/api/cron")


def cron_secret_required(fn):
    """Reject requests that do not carry the configured cron secret."""

    @wraps(fn)
    def wrapper(*args, **kwargs):
        secret = current_app.config.get("CRON_SECRET")
        if not secret:
            logger.error("CRON_SECRET is not configured; refusing cron call to %s", request.path)
            return api_error(E.NOT_CONFIGURED, "Cron secret not configured")

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return api_error(E.UNAUTHORIZED, "Unauthorized")
        token = auth_header[7:]  # Strip "Bearer "
        if not hmac.compare_digest(token.encode(), secret.encode()):
            logger.warning("Cron call with invalid secret: %s", request.path)
            return api_error(E.UNAUTHORIZED, "Unauthorized")
        return fn(*args, **kwargs)

    return wrapper


def _run(job_name):
    # Paused jobs come back as "skipped"; only a failed run is a 500
    result = SchedulerService.run_job(job_name)
    status_code = 200 if result.get("status") in ("success", "skipped") else 500
    return jsonify(result), status_code


@cron_bp.route("/snapshots", methods=["POST"])
@cron_secret_required
def run_snapshots():
    return _run("phase_snapshots")


@cron_bp.route("/insights", methods=["POST"])
@cron_secret_required
def run_insights():
    return _run("insight_generation")


@cron_bp.route("/insights", methods=["GET"])
@cron_secret_required
def insights_job_info():
    """Schedule and last-run details of the insight job."""
    job = next(
        (j for j in SchedulerService.list_jobs() if j["job_name"] == "insight_generation"),
        None,
    )
    return jsonify({
        "job": "insight_generation",
        "description": "Computes phase and project insights from recent snapshots",
        "schedule": job["schedule"] if job else None,
        "last_run": job["db_record"] if job else None,
    })


@cron_bp.route("/weather", methods=["POST"])
@cron_secret_required
def run_weather():
    return _run("weather_refresh")
