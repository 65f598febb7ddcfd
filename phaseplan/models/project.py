"""Project and ProjectPhase models (Project -> Phase hierarchy)."""

from datetime import datetime, timezone

from phaseplan.models import db
from phaseplan.models.base import TenantModel

PROJECT_STATUSES = {"planning", "active", "paused", "completed", "cancelled"}
PHASE_STATUSES = {"planned", "active", "completed", "cancelled"}


class Project(TenantModel):
    """Customer project with an optional construction-site location."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    status = db.Column(db.String(30), nullable=False, default="active")
    description = db.Column(db.Text, nullable=True)

    # ── Site location (weather context) ──
    address = db.Column(db.String(500), nullable=True)
    address_lat = db.Column(db.Float, nullable=True)
    address_lng = db.Column(db.Float, nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    phases = db.relationship(
        "ProjectPhase", back_populates="project", lazy="select",
        cascade="all, delete-orphan", order_by="ProjectPhase.id",
    )

    def to_dict(self, include_phases=False):
        d = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "status": self.status,
            "description": self.description,
            "address": self.address,
            "address_lat": self.address_lat,
            "address_lng": self.address_lng,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_phases:
            d["phases"] = [p.to_dict() for p in self.phases]
        return d

    def __repr__(self):
        return f"<Project {self.id}: {self.name}>"


class ProjectPhase(TenantModel):
    """
    Work phase within a project.

    budget_hours is the SOLL target, actual_hours the booked IST,
    planned_hours the PLAN total maintained by the planning board.
    """

    __tablename__ = "project_phases"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(30), nullable=False, default="active")
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True, comment="Phase deadline")
    budget_hours = db.Column(db.Float, nullable=False, default=0.0)
    actual_hours = db.Column(db.Float, nullable=False, default=0.0)
    planned_hours = db.Column(db.Float, nullable=False, default=0.0)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    project = db.relationship("Project", back_populates="phases")

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "project_id": self.project_id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "sort_order": self.sort_order,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "budget_hours": self.budget_hours,
            "actual_hours": self.actual_hours,
            "planned_hours": self.planned_hours,
        }

    def __repr__(self):
        return f"<ProjectPhase {self.id}: {self.name} [{self.status}]>"
