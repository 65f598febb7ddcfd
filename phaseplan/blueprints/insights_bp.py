"""
Phase Planning Platform
Insights Blueprint — read API over the computed insights + manual refresh.

Endpoints (all scoped by ``tenant_id``):
    GET  /api/v1/insights/summary?tenant_id=          — dashboard KPIs
    GET  /api/v1/insights/projects/<id>?tenant_id=    — latest project insight
    GET  /api/v1/insights/projects/<id>/phases?tenant_id=
    GET  /api/v1/insights/phases/<id>?tenant_id=      — latest phase insight
    GET  /api/v1/insights/refresh?tenant_id=          — cooldown status
    POST /api/v1/insights/refresh  {tenant_id}        — recompute now
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from phaseplan.core.exceptions import NotFoundError, RefreshCooldownError, ValidationError
from phaseplan.models.project import Project, ProjectPhase
from phaseplan.services.analytics_repository import SqlInsightStore, tenant_insights_summary
from phaseplan.services.insight_refresh import refresh_status, refresh_tenant
from phaseplan.utils.errors import E, api_error

logger = logging.getLogger(__name__)

insights_bp = Blueprint("insights_bp", __name__, url_prefix="/api/v1/insights")


def _require_tenant_id(value):
    if value in (None, ""):
        raise ValidationError("tenant_id is required", details={"tenant_id": "missing"})
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError("tenant_id must be an integer", details={"tenant_id": value})


def _get_project(tenant_id, project_id):
    project = Project.query_for_tenant(tenant_id).filter_by(id=project_id).first()
    if not project:
        raise NotFoundError(resource="Project", resource_id=project_id, tenant_id=tenant_id)
    return project


# ═══════════════════════════════════════════════════════════════════════════
#  READ
# ═══════════════════════════════════════════════════════════════════════════

@insights_bp.route("/summary", methods=["GET"])
def get_summary():
    tenant_id = _require_tenant_id(request.args.get("tenant_id"))
    return jsonify(tenant_insights_summary(tenant_id))


@insights_bp.route("/projects/<int:project_id>", methods=["GET"])
def get_project_insight(project_id):
    """Latest project insight (``insight`` is null until the first run)."""
    tenant_id = _require_tenant_id(request.args.get("tenant_id"))
    project = _get_project(tenant_id, project_id)
    insight = SqlInsightStore().latest_project_insight(project.id)
    return jsonify({
        "project": project.to_dict(),
        "insight": insight.to_dict() if insight else None,
    })


@insights_bp.route("/projects/<int:project_id>/phases", methods=["GET"])
def list_phase_insights(project_id):
    tenant_id = _require_tenant_id(request.args.get("tenant_id"))
    project = _get_project(tenant_id, project_id)
    insights = SqlInsightStore().latest_phase_insights_for_project(project.id)
    return jsonify({
        "project_id": project.id,
        "insights": [i.to_dict() for i in insights],
        "total": len(insights),
    })


@insights_bp.route("/phases/<int:phase_id>", methods=["GET"])
def get_phase_insight(phase_id):
    tenant_id = _require_tenant_id(request.args.get("tenant_id"))
    phase = ProjectPhase.query_for_tenant(tenant_id).filter_by(id=phase_id).first()
    if not phase:
        raise NotFoundError(resource="Phase", resource_id=phase_id, tenant_id=tenant_id)
    insight = SqlInsightStore().latest_phase_insight(phase.id)
    return jsonify({
        "phase": phase.to_dict(),
        "insight": insight.to_dict() if insight else None,
    })


# ═══════════════════════════════════════════════════════════════════════════
#  MANUAL REFRESH
# ═══════════════════════════════════════════════════════════════════════════

@insights_bp.route("/refresh", methods=["GET"])
def get_refresh_status():
    tenant_id = _require_tenant_id(request.args.get("tenant_id"))
    status = refresh_status(tenant_id, current_app.config["INSIGHT_REFRESH_COOLDOWN_MINUTES"])
    return jsonify(status.to_dict())


@insights_bp.route("/refresh", methods=["POST"])
def trigger_refresh():
    """Recompute snapshots and insights for one tenant, at most once per cooldown."""
    data = request.get_json(silent=True) or {}
    tenant_id = _require_tenant_id(data.get("tenant_id"))

    try:
        result = refresh_tenant(current_app._get_current_object(), tenant_id)
    except RefreshCooldownError as exc:
        return api_error(
            E.RATE_LIMITED, str(exc),
            details={
                "next_refresh_at": exc.next_refresh_at.isoformat(),
                "wait_minutes": exc.wait_minutes,
            },
        )
    return jsonify(result)
