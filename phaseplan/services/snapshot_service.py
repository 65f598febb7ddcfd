"""
PhaseSnapshotGenerator — daily phase snapshots for burn-rate analysis.

Captures, once per day, the cumulative hours of every active phase:
    - actual (IST): booked hours, from project_phases.actual_hours
    - planned (PLAN): sum of allocation hours for the phase
    - budget (SOLL): project_phases.budget_hours
plus allocation and distinct-user counts.

Idempotent: a phase that already has a snapshot for the date is skipped.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy import func, or_

from phaseplan.models import db
from phaseplan.models.analytics import PhaseSnapshot
from phaseplan.models.auth import Tenant
from phaseplan.models.planning import Allocation
from phaseplan.models.project import Project, ProjectPhase

logger = logging.getLogger(__name__)


@dataclass
class SnapshotRunResult:
    snapshot_date: date | None = None
    success: bool = True
    tenants_processed: int = 0
    phases_processed: int = 0
    snapshots_created: int = 0
    skipped_existing: int = 0
    errors: list[str] = field(default_factory=list)
    duration_ms: int = 0

    def to_dict(self) -> dict:
        return {
            "snapshot_date": self.snapshot_date.isoformat() if self.snapshot_date else None,
            "success": self.success,
            "tenants_processed": self.tenants_processed,
            "phases_processed": self.phases_processed,
            "snapshots_created": self.snapshots_created,
            "skipped_existing": self.skipped_existing,
            "errors": list(self.errors),
            "duration_ms": self.duration_ms,
        }


class PhaseSnapshotGenerator:
    """Writes one PhaseSnapshot per active phase and day."""

    def run(self, snapshot_date: date | None = None, tenant_id: int | None = None) -> SnapshotRunResult:
        snapshot_date = snapshot_date or date.today()
        result = SnapshotRunResult(snapshot_date=snapshot_date)
        start = time.monotonic()

        try:
            query = Tenant.query.filter_by(is_active=True).order_by(Tenant.id)
            if tenant_id is not None:
                query = query.filter(Tenant.id == tenant_id)
            tenant_ids = [t.id for t in query.with_entities(Tenant.id).all()]
        except Exception as exc:
            logger.exception("Snapshot run aborted: tenant listing failed")
            result.success = False
            result.errors.append(str(exc))
            result.duration_ms = int((time.monotonic() - start) * 1000)
            return result

        result.tenants_processed = len(tenant_ids)
        for tid in tenant_ids:
            try:
                self._snapshot_tenant(tid, snapshot_date, result)
            except Exception as exc:
                db.session.rollback()
                logger.exception("Snapshot generation failed for tenant %s", tid,
                                 extra={"tenant_id": tid})
                result.errors.append(f"Tenant {tid}: {exc}")

        result.duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "Snapshot run finished: date=%s tenants=%d phases=%d created=%d skipped=%d errors=%d",
            snapshot_date, result.tenants_processed, result.phases_processed,
            result.snapshots_created, result.skipped_existing, len(result.errors),
            extra={"duration_ms": result.duration_ms},
        )
        return result

    def _snapshot_tenant(self, tenant_id, snapshot_date, result):
        phases = self.active_phases(tenant_id, snapshot_date)
        if not phases:
            return

        phase_ids = [p.id for p in phases]
        existing = {
            row.phase_id for row in (PhaseSnapshot.query
                                     .filter(PhaseSnapshot.phase_id.in_(phase_ids),
                                             PhaseSnapshot.snapshot_date == snapshot_date)
                                     .with_entities(PhaseSnapshot.phase_id)
                                     .all())
        }
        metrics = self.allocation_metrics(phase_ids)

        created = 0
        for phase in phases:
            result.phases_processed += 1
            if phase.id in existing:
                result.skipped_existing += 1
                continue
            planned, allocations, users = metrics.get(phase.id, (0.0, 0, 0))
            db.session.add(PhaseSnapshot(
                tenant_id=tenant_id,
                phase_id=phase.id,
                snapshot_date=snapshot_date,
                actual_hours=phase.actual_hours or 0.0,
                planned_hours=planned,
                budget_hours=phase.budget_hours or 0.0,
                allocations_count=allocations,
                allocated_users_count=users,
            ))
            created += 1

        if created:
            db.session.commit()
            result.snapshots_created += created

    @staticmethod
    def active_phases(tenant_id, snapshot_date):
        """
        Phases worth tracking on ``snapshot_date``: the phase and its project
        are active, and the deadline has not passed (or is unset) or there
        are still budget hours open.
        """
        return (ProjectPhase.query_for_tenant(tenant_id)
                .join(Project, ProjectPhase.project_id == Project.id)
                .filter(ProjectPhase.status == "active",
                        Project.status == "active",
                        or_(ProjectPhase.end_date.is_(None),
                            ProjectPhase.end_date >= snapshot_date,
                            ProjectPhase.budget_hours > ProjectPhase.actual_hours))
                .order_by(ProjectPhase.id)
                .all())

    @staticmethod
    def allocation_metrics(phase_ids):
        """phase_id → (planned hours, allocation count, distinct users)."""
        rows = (db.session.query(
                    Allocation.phase_id,
                    func.coalesce(func.sum(Allocation.planned_hours), 0.0),
                    func.count(Allocation.id),
                    func.count(func.distinct(Allocation.user_id)),
                )
                .filter(Allocation.phase_id.in_(phase_ids))
                .group_by(Allocation.phase_id)
                .all())
        return {r[0]: (float(r[1]), int(r[2]), int(r[3])) for r in rows}
