"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  — 200 while the process is up
    GET /api/v1/health/live   — database, scheduler, LLM mode and batch freshness
"""

import logging
import time
from datetime import date, timedelta

from flask import Blueprint, current_app, jsonify
from sqlalchemy import func

from phaseplan.models import db
from phaseplan.models.analytics import PhaseInsightRecord, PhaseSnapshot
from phaseplan.models.scheduling import ScheduledJob

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")

# Insights older than this are reported as stale (informational only)
STALE_AFTER_DAYS = 2


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"}), 200


def _pipeline_check():
    """Latest snapshot/insight dates and jobs that keep failing."""
    last_snapshot = db.session.query(func.max(PhaseSnapshot.snapshot_date)).scalar()
    last_insight = db.session.query(func.max(PhaseInsightRecord.insight_date)).scalar()
    failing = [
        row.job_name for row in ScheduledJob.query
        .filter(ScheduledJob.consecutive_failures > 0)
        .with_entities(ScheduledJob.job_name)
        .all()
    ]
    stale = last_insight is None or last_insight < date.today() - timedelta(days=STALE_AFTER_DAYS)
    return {
        "status": "stale" if stale or failing else "ok",
        "last_snapshot_date": last_snapshot.isoformat() if last_snapshot else None,
        "last_insight_date": last_insight.isoformat() if last_insight else None,
        "failing_jobs": failing,
    }


@health_bp.route("/live", methods=["GET"])
def live():
    """Only the database decides the HTTP status; the other checks are informational."""
    checks = {}
    healthy = True

    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        checks["database"] = {"status": "ok",
                              "latency_ms": round((time.perf_counter() - t0) * 1000, 1)}
    except Exception as exc:
        healthy = False
        checks["database"] = {"status": "error", "detail": str(exc)}
        logger.error("Health check: database failed: %s", exc)

    if healthy:
        try:
            checks["pipeline"] = _pipeline_check()
        except Exception as exc:
            logger.warning("Health check: pipeline check failed: %s", exc)
            checks["pipeline"] = {"status": "error", "detail": str(exc)}

    checks["scheduler"] = {
        "status": "ok" if current_app.extensions.get("scheduler") else "not_initialized",
    }
    checks["llm"] = {
        "status": "configured" if current_app.config.get("ANTHROPIC_API_KEY") else "fallback",
        "model": current_app.config.get("INSIGHT_LLM_MODEL"),
    }
    checks["enhanced_insights"] = bool(current_app.config.get("INSIGHT_ENHANCED_ENABLED"))

    return jsonify({
        "status": "healthy" if healthy else "degraded",
        "app": "Phase Planning Platform",
        "checks": checks,
    }), 200 if healthy else 503
