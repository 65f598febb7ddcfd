"""
Phase Planning Platform
Analytics models — daily phase snapshots and computed insights.

Models:
    - PhaseSnapshot: immutable daily fact (IST / PLAN / SOLL) per phase
    - PhaseInsightRecord: computed phase insight, one row per (phase, day)
    - ProjectInsightRecord: rolled-up project insight, one row per (project, day)
"""

from datetime import datetime, timezone

from phaseplan.models import db
from phaseplan.models.base import TenantModel

INSIGHT_STATUSES = {
    "on_track", "ahead", "at_risk", "behind",
    "critical", "not_started", "completed", "unknown",
}
DATA_QUALITIES = {"good", "limited", "insufficient"}


def _iso(value):
    return value.isoformat() if value else None


class PhaseSnapshot(TenantModel):
    """Append-only daily snapshot of a phase's cumulative hours."""

    __tablename__ = "phase_snapshots"
    __table_args__ = (
        db.UniqueConstraint("phase_id", "snapshot_date", name="uq_phase_snapshot_day"),
    )

    id = db.Column(db.Integer, primary_key=True)
    phase_id = db.Column(
        db.Integer, db.ForeignKey("project_phases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    snapshot_date = db.Column(db.Date, nullable=False, index=True)
    actual_hours = db.Column(db.Float, nullable=False, default=0.0, comment="IST")
    planned_hours = db.Column(db.Float, nullable=False, default=0.0, comment="PLAN")
    budget_hours = db.Column(db.Float, nullable=False, default=0.0, comment="SOLL")
    allocations_count = db.Column(db.Integer, nullable=False, default=0)
    allocated_users_count = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "phase_id": self.phase_id,
            "snapshot_date": _iso(self.snapshot_date),
            "actual_hours": self.actual_hours,
            "planned_hours": self.planned_hours,
            "budget_hours": self.budget_hours,
            "allocations_count": self.allocations_count,
            "allocated_users_count": self.allocated_users_count,
        }

    def __repr__(self):
        return f"<PhaseSnapshot phase={self.phase_id} {self.snapshot_date}>"


class PhaseInsightRecord(TenantModel):
    """Persisted phase insight; upserted per (phase_id, insight_date)."""

    __tablename__ = "phase_insights"
    __table_args__ = (
        db.UniqueConstraint("phase_id", "insight_date", name="uq_phase_insight_day"),
    )

    id = db.Column(db.Integer, primary_key=True)
    phase_id = db.Column(
        db.Integer, db.ForeignKey("project_phases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    insight_date = db.Column(db.Date, nullable=False, index=True)

    # ── Burn rate / forecast (IST) ──
    burn_rate_actual = db.Column(db.Float, nullable=True)
    burn_rate_actual_trend = db.Column(db.String(10), nullable=True, comment="up, down, stable")
    days_remaining_actual = db.Column(db.Integer, nullable=True)
    completion_date_actual = db.Column(db.Date, nullable=True)
    deadline_delta_actual = db.Column(db.Integer, nullable=True)

    # ── Burn rate / forecast (PLAN) ──
    burn_rate_planned = db.Column(db.Float, nullable=True)
    days_remaining_planned = db.Column(db.Integer, nullable=True)
    completion_date_planned = db.Column(db.Date, nullable=True)
    deadline_delta_planned = db.Column(db.Integer, nullable=True)

    # ── Progress & capacity ──
    remaining_hours = db.Column(db.Float, nullable=False, default=0.0)
    progress_percent = db.Column(db.Integer, nullable=False, default=0)
    capacity_gap_hours = db.Column(db.Float, nullable=True)
    capacity_gap_days = db.Column(db.Float, nullable=True)

    status = db.Column(db.String(20), nullable=False, default="unknown")
    data_quality = db.Column(db.String(20), nullable=False, default="insufficient")
    data_points_count = db.Column(db.Integer, nullable=False, default=0)

    summary_text = db.Column(db.Text, nullable=True)
    detail_text = db.Column(db.Text, nullable=True)
    recommendation_text = db.Column(db.Text, nullable=True)
    suggested_action = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "phase_id": self.phase_id,
            "insight_date": _iso(self.insight_date),
            "burn_rate_actual": self.burn_rate_actual,
            "burn_rate_actual_trend": self.burn_rate_actual_trend,
            "days_remaining_actual": self.days_remaining_actual,
            "completion_date_actual": _iso(self.completion_date_actual),
            "deadline_delta_actual": self.deadline_delta_actual,
            "burn_rate_planned": self.burn_rate_planned,
            "days_remaining_planned": self.days_remaining_planned,
            "completion_date_planned": _iso(self.completion_date_planned),
            "deadline_delta_planned": self.deadline_delta_planned,
            "remaining_hours": self.remaining_hours,
            "progress_percent": self.progress_percent,
            "capacity_gap_hours": self.capacity_gap_hours,
            "capacity_gap_days": self.capacity_gap_days,
            "status": self.status,
            "data_quality": self.data_quality,
            "data_points_count": self.data_points_count,
            "summary_text": self.summary_text,
            "detail_text": self.detail_text,
            "recommendation_text": self.recommendation_text,
            "suggested_action": self.suggested_action,
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<PhaseInsightRecord phase={self.phase_id} {self.insight_date} [{self.status}]>"


class ProjectInsightRecord(TenantModel):
    """Persisted project insight; upserted per (project_id, insight_date)."""

    __tablename__ = "project_insights"
    __table_args__ = (
        db.UniqueConstraint("project_id", "insight_date", name="uq_project_insight_day"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    insight_date = db.Column(db.Date, nullable=False, index=True)

    total_budget_hours = db.Column(db.Float, nullable=False, default=0.0)
    total_actual_hours = db.Column(db.Float, nullable=False, default=0.0)
    total_planned_hours = db.Column(db.Float, nullable=False, default=0.0)
    total_remaining_hours = db.Column(db.Float, nullable=False, default=0.0)
    overall_progress_percent = db.Column(db.Integer, nullable=False, default=0)

    phases_count = db.Column(db.Integer, nullable=False, default=0)
    phases_on_track = db.Column(db.Integer, nullable=False, default=0)
    phases_at_risk = db.Column(db.Integer, nullable=False, default=0)
    phases_behind = db.Column(db.Integer, nullable=False, default=0)
    phases_completed = db.Column(db.Integer, nullable=False, default=0)

    latest_phase_deadline = db.Column(db.Date, nullable=True)
    projected_completion_date = db.Column(db.Date, nullable=True)
    project_deadline_delta = db.Column(db.Integer, nullable=True)

    status = db.Column(db.String(20), nullable=False, default="unknown")
    summary_text = db.Column(db.Text, nullable=True)
    detail_text = db.Column(db.Text, nullable=True)
    recommendation_text = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "project_id": self.project_id,
            "insight_date": _iso(self.insight_date),
            "total_budget_hours": self.total_budget_hours,
            "total_actual_hours": self.total_actual_hours,
            "total_planned_hours": self.total_planned_hours,
            "total_remaining_hours": self.total_remaining_hours,
            "overall_progress_percent": self.overall_progress_percent,
            "phases_count": self.phases_count,
            "phases_on_track": self.phases_on_track,
            "phases_at_risk": self.phases_at_risk,
            "phases_behind": self.phases_behind,
            "phases_completed": self.phases_completed,
            "latest_phase_deadline": _iso(self.latest_phase_deadline),
            "projected_completion_date": _iso(self.projected_completion_date),
            "project_deadline_delta": self.project_deadline_delta,
            "status": self.status,
            "summary_text": self.summary_text,
            "detail_text": self.detail_text,
            "recommendation_text": self.recommendation_text,
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<ProjectInsightRecord project={self.project_id} {self.insight_date} [{self.status}]>"
