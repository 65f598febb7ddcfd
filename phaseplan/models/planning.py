"""
Resource planning models.

Models:
    - Allocation: hours of one user booked on one phase for one day
    - Absence: vacation / sickness / training date range for one user
"""

from datetime import datetime, timezone

from phaseplan.models import db
from phaseplan.models.base import TenantModel

ABSENCE_TYPES = {"vacation", "sick", "training", "other"}


class Allocation(TenantModel):
    __tablename__ = "allocations"
    __table_args__ = (
        db.Index("ix_allocations_user_date", "user_id", "date"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    phase_id = db.Column(
        db.Integer, db.ForeignKey("project_phases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    date = db.Column(db.Date, nullable=False)
    planned_hours = db.Column(db.Float, nullable=False, default=8.0)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "user_id": self.user_id,
            "phase_id": self.phase_id,
            "date": self.date.isoformat() if self.date else None,
            "planned_hours": self.planned_hours,
            "notes": self.notes,
        }

    def __repr__(self):
        return f"<Allocation user={self.user_id} phase={self.phase_id} {self.date}>"


class Absence(TenantModel):
    __tablename__ = "absences"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    type = db.Column(db.String(30), nullable=False, default="vacation",
                     comment="vacation, sick, training, other")
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    def covers(self, day):
        return self.start_date <= day <= self.end_date

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "user_id": self.user_id,
            "type": self.type,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
        }

    def __repr__(self):
        return f"<Absence user={self.user_id} {self.start_date}..{self.end_date}>"
