"""
Tenant and staff models.

A tenant is one customer company; every planning and analytics row hangs
off a tenant. Users are the tenant's staff: the people allocations and
absences are booked for, and the candidates the availability analysis
suggests.
"""

from datetime import datetime, timezone

from phaseplan.models import db

USER_STATUSES = {"active", "invited", "inactive"}


def _now():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class Tenant(db.Model):
    __tablename__ = "tenants"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True,
                          comment="Inactive tenants are skipped by the nightly batch")
    insights_last_refresh_at = db.Column(
        db.DateTime(timezone=True), nullable=True,
        comment="Last manual insight refresh (cooldown anchor)",
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_now)

    staff = db.relationship("User", back_populates="tenant", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "is_active": self.is_active,
            "insights_last_refresh_at": _iso(self.insights_last_refresh_at),
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<Tenant {self.id}: {self.slug}>"


class User(db.Model):
    """Staff member. Only ``status == "active"`` users are planned or suggested."""

    __tablename__ = "users"
    __table_args__ = (
        # same email may exist once per tenant
        db.UniqueConstraint("tenant_id", "email", name="uq_user_tenant_email"),
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id", ondelete="CASCADE"),
                          nullable=False, index=True)
    email = db.Column(db.String(200), nullable=False)
    full_name = db.Column(db.String(200))
    status = db.Column(db.String(20), nullable=False, default="active")
    created_at = db.Column(db.DateTime(timezone=True), default=_now)

    tenant = db.relationship("Tenant", back_populates="staff")

    @property
    def display_name(self):
        return self.full_name or self.email

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "email": self.email,
            "full_name": self.full_name,
            "display_name": self.display_name,
            "status": self.status,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.email}>"
