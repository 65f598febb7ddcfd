"""
Manual insight refresh for one tenant, guarded by a cooldown.

The cooldown anchor is ``Tenant.insights_last_refresh_at``; a refresh
re-captures today's snapshots for the tenant and recomputes its insights.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from phaseplan.core.exceptions import NotFoundError, RefreshCooldownError
from phaseplan.models import db
from phaseplan.models.auth import Tenant
from phaseplan.services.snapshot_service import PhaseSnapshotGenerator

logger = logging.getLogger(__name__)


@dataclass
class RefreshStatus:
    can_refresh: bool
    last_refresh_at: datetime | None
    next_refresh_at: datetime | None
    wait_minutes: int

    def to_dict(self) -> dict:
        return {
            "can_refresh": self.can_refresh,
            "last_refresh_at": self.last_refresh_at.isoformat() if self.last_refresh_at else None,
            "next_refresh_at": self.next_refresh_at.isoformat() if self.next_refresh_at else None,
            "wait_minutes": self.wait_minutes,
        }


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on round-trip
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _get_tenant(tenant_id: int) -> Tenant:
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFoundError(resource="Tenant", resource_id=tenant_id)
    return tenant


def refresh_status(tenant_id: int, cooldown_minutes: int, now: datetime | None = None) -> RefreshStatus:
    """Report whether the tenant may trigger a manual refresh right now."""
    tenant = _get_tenant(tenant_id)
    now = now or datetime.now(timezone.utc)
    last = _as_utc(tenant.insights_last_refresh_at)
    if last is None:
        return RefreshStatus(True, None, None, 0)

    next_at = last + timedelta(minutes=cooldown_minutes)
    if now >= next_at:
        return RefreshStatus(True, last, next_at, 0)
    wait = math.ceil((next_at - now).total_seconds() / 60)
    return RefreshStatus(False, last, next_at, wait)


def refresh_tenant(app, tenant_id: int, now: datetime | None = None) -> dict:
    """
    Recompute snapshots and insights for a single tenant.

    Raises:
        NotFoundError: tenant does not exist.
        RefreshCooldownError: the previous refresh is too recent.
    """
    # Imported here: scheduled_jobs registers jobs on import
    from phaseplan.services.scheduled_jobs import build_insight_orchestrator

    now = now or datetime.now(timezone.utc)
    status = refresh_status(tenant_id, app.config["INSIGHT_REFRESH_COOLDOWN_MINUTES"], now)
    if not status.can_refresh:
        raise RefreshCooldownError(status.next_refresh_at, status.wait_minutes)

    logger.info("Manual insight refresh", extra={"tenant_id": tenant_id})
    snapshots = PhaseSnapshotGenerator().run(tenant_id=tenant_id)
    insights = build_insight_orchestrator(app).run(tenant_id=tenant_id)

    tenant = _get_tenant(tenant_id)
    tenant.insights_last_refresh_at = now
    db.session.commit()

    return {
        "tenant_id": tenant_id,
        "refreshed_at": now.isoformat(),
        "snapshots": snapshots.to_dict(),
        "insights": insights.to_dict(),
    }
