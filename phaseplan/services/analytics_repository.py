"""
Phase Planning Platform
Analytics repository — SQLAlchemy implementations of the insight collaborators.

Classes:
    - SqlTenantCatalog: active tenants and their active projects/phases
    - SqlSnapshotSource: phase snapshots for a date window
    - SqlInsightStore: phase/project insight upserts and readers

Plus tenant-level reads used by the insights API (dashboard summary) and
snapshot retention.
"""

import logging
from collections import Counter
from datetime import date

from phaseplan.analytics.types import (
    DataQuality,
    InsightStatus,
    PhaseInsight,
    ProjectInsight,
    Snapshot,
    SuggestedAction,
    Trend,
)
from phaseplan.models import db
from phaseplan.models.analytics import PhaseInsightRecord, PhaseSnapshot, ProjectInsightRecord
from phaseplan.models.auth import Tenant
from phaseplan.models.project import Project, ProjectPhase
from phaseplan.services.ports import (
    InsightStore,
    PhaseRecord,
    ProjectRecord,
    SnapshotSource,
    TenantCatalog,
)

logger = logging.getLogger(__name__)

TREND_SAMPLE_LIMIT = 50
TOP_RISK_PROJECTS = 3
UNKNOWN_PROJECT_NAME = "Unknown project"

_RISK_STATUSES = {"at_risk", "behind", "critical"}
_HEALTHY_STATUSES = {"on_track", "ahead"}
_RISK_ORDER = {"critical": 0, "behind": 1, "at_risk": 2}


# ═════════════════════════════════════════════════════════════════════════════
#  Catalog
# ═════════════════════════════════════════════════════════════════════════════

class SqlTenantCatalog(TenantCatalog):
    """Reads tenants, projects and phases from the planning tables."""

    def list_tenants(self):
        rows = (Tenant.query
                .filter_by(is_active=True)
                .order_by(Tenant.id)
                .with_entities(Tenant.id)
                .all())
        return [r.id for r in rows]

    def list_active_projects_with_phases(self, tenant_id):
        projects = (Project.query_for_tenant(tenant_id)
                    .filter_by(status="active")
                    .order_by(Project.id)
                    .all())
        records = []
        for project in projects:
            phases = [p for p in project.phases if p.status == "active"]
            if not phases:
                continue
            records.append(ProjectRecord(
                id=project.id,
                tenant_id=project.tenant_id,
                name=project.name,
                address=project.address,
                description=project.description,
                address_lat=project.address_lat,
                address_lng=project.address_lng,
                phases=[_phase_record(p) for p in phases],
            ))
        return records


def _phase_record(phase: ProjectPhase) -> PhaseRecord:
    return PhaseRecord(
        id=phase.id,
        name=phase.name,
        start_date=phase.start_date,
        end_date=phase.end_date,
        budget_hours=phase.budget_hours or 0.0,
        actual_hours=phase.actual_hours or 0.0,
        planned_hours=phase.planned_hours or 0.0,
        description=phase.description,
    )


# ═════════════════════════════════════════════════════════════════════════════
#  Snapshots
# ═════════════════════════════════════════════════════════════════════════════

class SqlSnapshotSource(SnapshotSource):

    def get_snapshots(self, phase_id, start, end):
        rows = (PhaseSnapshot.query
                .filter(PhaseSnapshot.phase_id == phase_id,
                        PhaseSnapshot.snapshot_date >= start,
                        PhaseSnapshot.snapshot_date <= end)
                .order_by(PhaseSnapshot.snapshot_date.asc())
                .all())
        return [
            Snapshot(
                date=r.snapshot_date,
                actual_hours=r.actual_hours or 0.0,
                planned_hours=r.planned_hours or 0.0,
                budget_hours=r.budget_hours or 0.0,
                allocations_count=r.allocations_count or 0,
                allocated_users_count=r.allocated_users_count or 0,
            )
            for r in rows
        ]


def cleanup_old_snapshots(older_than: date) -> int:
    """Delete snapshots dated before ``older_than``. Returns the deleted count."""
    deleted = (PhaseSnapshot.query
               .filter(PhaseSnapshot.snapshot_date < older_than)
               .delete(synchronize_session=False))
    db.session.commit()
    logger.info("Deleted %d phase snapshots older than %s", deleted, older_than)
    return deleted


# ═════════════════════════════════════════════════════════════════════════════
#  Insights
# ═════════════════════════════════════════════════════════════════════════════

def _commit():
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


class SqlInsightStore(InsightStore):
    """
    Upsert semantics: if a row already exists for the (entity, insight_date)
    pair it is overwritten, otherwise a new row is inserted.
    """

    def upsert_phase_insight(self, insight):
        record = PhaseInsightRecord.query.filter_by(
            phase_id=insight.phase_id, insight_date=insight.insight_date,
        ).first()
        if record is None:
            record = PhaseInsightRecord(
                tenant_id=insight.tenant_id,
                phase_id=insight.phase_id,
                insight_date=insight.insight_date,
            )
            db.session.add(record)

        record.status = insight.status.value
        record.data_quality = insight.data_quality.value
        record.data_points_count = insight.sample_count
        record.remaining_hours = insight.remaining_hours
        record.progress_percent = insight.progress_percent
        record.burn_rate_actual = insight.burn_rate_actual
        record.burn_rate_actual_trend = (
            insight.burn_rate_actual_trend.value if insight.burn_rate_actual_trend else None
        )
        record.days_remaining_actual = insight.days_remaining_actual
        record.completion_date_actual = insight.completion_date_actual
        record.deadline_delta_actual = insight.deadline_delta_actual
        record.burn_rate_planned = insight.burn_rate_planned
        record.days_remaining_planned = insight.days_remaining_planned
        record.completion_date_planned = insight.completion_date_planned
        record.deadline_delta_planned = insight.deadline_delta_planned
        record.capacity_gap_hours = insight.capacity_gap_hours
        record.capacity_gap_days = insight.capacity_gap_days
        record.summary_text = insight.summary_text
        record.detail_text = insight.detail_text
        record.recommendation_text = insight.recommendation_text
        record.suggested_action = (
            insight.suggested_action.to_dict() if insight.suggested_action else None
        )

        _commit()
        return insight

    def upsert_project_insight(self, insight):
        record = ProjectInsightRecord.query.filter_by(
            project_id=insight.project_id, insight_date=insight.insight_date,
        ).first()
        if record is None:
            record = ProjectInsightRecord(
                tenant_id=insight.tenant_id,
                project_id=insight.project_id,
                insight_date=insight.insight_date,
            )
            db.session.add(record)

        for name in (
            "total_budget_hours", "total_actual_hours", "total_planned_hours",
            "total_remaining_hours", "overall_progress_percent",
            "phases_count", "phases_on_track", "phases_at_risk",
            "phases_behind", "phases_completed",
            "latest_phase_deadline", "projected_completion_date",
            "project_deadline_delta",
            "summary_text", "detail_text", "recommendation_text",
        ):
            setattr(record, name, getattr(insight, name))
        record.status = insight.status.value

        _commit()
        return insight

    def discard_pending(self):
        db.session.rollback()

    # ── Readers ──────────────────────────────────────────────────────────

    def latest_phase_insight(self, phase_id):
        record = (PhaseInsightRecord.query
                  .filter_by(phase_id=phase_id)
                  .order_by(PhaseInsightRecord.insight_date.desc())
                  .first())
        return phase_insight_from_record(record) if record else None

    def latest_phase_insights_for_project(self, project_id):
        """Most recent insight of every phase in the project, in phase order."""
        phase_ids = [
            row.id for row in (ProjectPhase.query
                               .filter_by(project_id=project_id)
                               .order_by(ProjectPhase.sort_order, ProjectPhase.id)
                               .with_entities(ProjectPhase.id)
                               .all())
        ]
        if not phase_ids:
            return []

        records = (PhaseInsightRecord.query
                   .filter(PhaseInsightRecord.phase_id.in_(phase_ids))
                   .order_by(PhaseInsightRecord.insight_date.desc())
                   .all())
        latest = {}
        for record in records:
            latest.setdefault(record.phase_id, record)
        return [phase_insight_from_record(latest[pid]) for pid in phase_ids if pid in latest]

    def latest_project_insight(self, project_id):
        record = (ProjectInsightRecord.query
                  .filter_by(project_id=project_id)
                  .order_by(ProjectInsightRecord.insight_date.desc())
                  .first())
        return project_insight_from_record(record) if record else None


def _enum_or(enum_cls, value, default):
    try:
        return enum_cls(value)
    except ValueError:
        return default


def phase_insight_from_record(record: PhaseInsightRecord) -> PhaseInsight:
    return PhaseInsight(
        tenant_id=record.tenant_id,
        phase_id=record.phase_id,
        insight_date=record.insight_date,
        status=_enum_or(InsightStatus, record.status, InsightStatus.UNKNOWN),
        data_quality=_enum_or(DataQuality, record.data_quality, DataQuality.INSUFFICIENT),
        sample_count=record.data_points_count or 0,
        remaining_hours=record.remaining_hours or 0.0,
        progress_percent=record.progress_percent or 0,
        burn_rate_actual=record.burn_rate_actual,
        burn_rate_actual_trend=(
            _enum_or(Trend, record.burn_rate_actual_trend, None)
            if record.burn_rate_actual_trend else None
        ),
        days_remaining_actual=record.days_remaining_actual,
        completion_date_actual=record.completion_date_actual,
        deadline_delta_actual=record.deadline_delta_actual,
        burn_rate_planned=record.burn_rate_planned,
        days_remaining_planned=record.days_remaining_planned,
        completion_date_planned=record.completion_date_planned,
        deadline_delta_planned=record.deadline_delta_planned,
        capacity_gap_hours=record.capacity_gap_hours,
        capacity_gap_days=record.capacity_gap_days,
        summary_text=record.summary_text or "",
        detail_text=record.detail_text or "",
        recommendation_text=record.recommendation_text or "",
        suggested_action=SuggestedAction.from_dict(record.suggested_action),
    )


def project_insight_from_record(record: ProjectInsightRecord) -> ProjectInsight:
    return ProjectInsight(
        tenant_id=record.tenant_id,
        project_id=record.project_id,
        insight_date=record.insight_date,
        status=_enum_or(InsightStatus, record.status, InsightStatus.UNKNOWN),
        total_budget_hours=record.total_budget_hours or 0.0,
        total_actual_hours=record.total_actual_hours or 0.0,
        total_planned_hours=record.total_planned_hours or 0.0,
        total_remaining_hours=record.total_remaining_hours or 0.0,
        overall_progress_percent=record.overall_progress_percent or 0,
        phases_count=record.phases_count or 0,
        phases_on_track=record.phases_on_track or 0,
        phases_at_risk=record.phases_at_risk or 0,
        phases_behind=record.phases_behind or 0,
        phases_completed=record.phases_completed or 0,
        latest_phase_deadline=record.latest_phase_deadline,
        projected_completion_date=record.projected_completion_date,
        project_deadline_delta=record.project_deadline_delta,
        summary_text=record.summary_text or "",
        detail_text=record.detail_text or "",
        recommendation_text=record.recommendation_text or "",
    )


# ═════════════════════════════════════════════════════════════════════════════
#  Tenant dashboard summary
# ═════════════════════════════════════════════════════════════════════════════

def _empty_summary() -> dict:
    return {
        "total_projects": 0,
        "projects_at_risk": 0,
        "projects_on_track": 0,
        "critical_phases_count": 0,
        "average_progress_percent": 0,
        "burn_rate_trend": Trend.STABLE.value,
        "top_risk_projects": [],
        "last_updated_at": None,
    }


def tenant_insights_summary(tenant_id: int) -> dict:
    """
    Dashboard KPIs from the latest project insight of each project.

    Returns:
        dict with project counts, critical phase count, average progress,
        overall burn-rate trend, up to three riskiest projects and the
        timestamp of the most recent insight.
    """
    records = (ProjectInsightRecord.query_for_tenant(tenant_id)
               .order_by(ProjectInsightRecord.insight_date.desc(),
                         ProjectInsightRecord.id.desc())
               .all())
    if not records:
        return _empty_summary()

    latest = {}
    for record in records:
        latest.setdefault(record.project_id, record)

    at_risk = 0
    on_track = 0
    critical_phases = 0
    progress_values = []
    risk_projects = []
    last_updated = None

    for record in latest.values():
        phases_needing_attention = (record.phases_at_risk or 0) + (record.phases_behind or 0)
        critical_phases += phases_needing_attention
        if record.status in _RISK_STATUSES:
            at_risk += 1
            risk_projects.append({
                "project_id": record.project_id,
                "status": record.status,
                "phases_at_risk": phases_needing_attention,
            })
        elif record.status in _HEALTHY_STATUSES:
            on_track += 1

        if record.overall_progress_percent is not None:
            progress_values.append(record.overall_progress_percent)

        stamp = record.updated_at or record.created_at
        if stamp is not None and (last_updated is None or stamp > last_updated):
            last_updated = stamp

    risk_projects.sort(key=lambda p: (_RISK_ORDER[p["status"]], -p["phases_at_risk"]))

    return {
        "total_projects": len(latest),
        "projects_at_risk": at_risk,
        "projects_on_track": on_track,
        "critical_phases_count": critical_phases,
        "average_progress_percent": (
            round(sum(progress_values) / len(progress_values)) if progress_values else 0
        ),
        "burn_rate_trend": overall_burn_rate_trend(tenant_id),
        "top_risk_projects": _with_project_names(
            risk_projects[:TOP_RISK_PROJECTS], tenant_id,
        ),
        "last_updated_at": last_updated.isoformat() if last_updated else None,
    }


def _with_project_names(risk_projects: list[dict], tenant_id: int) -> list[dict]:
    if not risk_projects:
        return []
    ids = [p["project_id"] for p in risk_projects]
    names = dict(
        Project.query_for_tenant(tenant_id)
        .filter(Project.id.in_(ids))
        .with_entities(Project.id, Project.name)
        .all()
    )
    return [
        {
            "id": p["project_id"],
            "name": names.get(p["project_id"], UNKNOWN_PROJECT_NAME),
            "status": p["status"],
            "phases_at_risk": p["phases_at_risk"],
        }
        for p in risk_projects
    ]


def overall_burn_rate_trend(tenant_id: int) -> str:
    """Majority vote over the most recent phase insight trends; ties are stable."""
    rows = (PhaseInsightRecord.query_for_tenant(tenant_id)
            .filter(PhaseInsightRecord.burn_rate_actual_trend.isnot(None))
            .order_by(PhaseInsightRecord.insight_date.desc())
            .with_entities(PhaseInsightRecord.burn_rate_actual_trend)
            .limit(TREND_SAMPLE_LIMIT)
            .all())
    votes = Counter(
        r.burn_rate_actual_trend if r.burn_rate_actual_trend in ("up", "down") else "stable"
        for r in rows
    )
    up, down, stable = votes["up"], votes["down"], votes["stable"]
    if up > down and up > stable:
        return Trend.UP.value
    if down > up and down > stable:
        return Trend.DOWN.value
    return Trend.STABLE.value
