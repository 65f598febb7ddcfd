"""
Tests — PhaseSnapshotGenerator (daily IST / PLAN / SOLL snapshots).
"""

from datetime import date, timedelta

from phaseplan.models import db
from phaseplan.models.analytics import PhaseSnapshot
from phaseplan.models.auth import Tenant, User
from phaseplan.models.planning import Allocation
from phaseplan.models.project import Project, ProjectPhase
from phaseplan.services.snapshot_service import PhaseSnapshotGenerator

DAY = date(2024, 3, 15)


def _create_project(tenant, name="Haus Meier", status="active"):
    p = Project(tenant_id=tenant.id, name=name, status=status)
    db.session.add(p)
    db.session.flush()
    return p


def _create_phase(project, name="Walls", **kw):
    data = dict(status="active", budget_hours=100.0, actual_hours=40.0,
                end_date=DAY + timedelta(days=10))
    data.update(kw)
    ph = ProjectPhase(tenant_id=project.tenant_id, project_id=project.id, name=name, **data)
    db.session.add(ph)
    db.session.flush()
    return ph


def _create_user(tenant, email):
    u = User(tenant_id=tenant.id, email=email)
    db.session.add(u)
    db.session.flush()
    return u


def _allocate(user, phase, day, hours=8.0):
    db.session.add(Allocation(tenant_id=user.tenant_id, user_id=user.id,
                              phase_id=phase.id, date=day, planned_hours=hours))


# ═══════════════════════════════════════════════════════════════════════════
#  1. SNAPSHOT CONTENT
# ═══════════════════════════════════════════════════════════════════════════

class TestSnapshotContent:

    def test_creates_snapshot_with_metrics(self, tenant):
        phase = _create_phase(_create_project(tenant))
        anna = _create_user(tenant, "anna@example.com")
        ben = _create_user(tenant, "ben@example.com")
        _allocate(anna, phase, DAY)
        _allocate(anna, phase, DAY + timedelta(days=1), 6.0)
        _allocate(ben, phase, DAY)
        db.session.commit()

        result = PhaseSnapshotGenerator().run(snapshot_date=DAY)

        assert result.success is True
        assert result.tenants_processed == 1
        assert result.snapshots_created == 1
        snap = PhaseSnapshot.query.one()
        assert snap.phase_id == phase.id
        assert snap.tenant_id == tenant.id
        assert snap.snapshot_date == DAY
        assert snap.actual_hours == 40.0
        assert snap.budget_hours == 100.0
        assert snap.planned_hours == 22.0
        assert snap.allocations_count == 3
        assert snap.allocated_users_count == 2

    def test_phase_without_allocations(self, tenant):
        _create_phase(_create_project(tenant))
        db.session.commit()

        PhaseSnapshotGenerator().run(snapshot_date=DAY)
        snap = PhaseSnapshot.query.one()
        assert snap.planned_hours == 0.0
        assert snap.allocations_count == 0
        assert snap.allocated_users_count == 0

    def test_result_to_dict(self, tenant):
        result = PhaseSnapshotGenerator().run(snapshot_date=DAY)
        d = result.to_dict()
        assert d["snapshot_date"] == "2024-03-15"
        assert d["snapshots_created"] == 0
        assert d["errors"] == []


# ═══════════════════════════════════════════════════════════════════════════
#  2. IDEMPOTENCY
# ═══════════════════════════════════════════════════════════════════════════

class TestIdempotency:

    def test_second_run_skips(self, tenant):
        _create_phase(_create_project(tenant))
        db.session.commit()

        PhaseSnapshotGenerator().run(snapshot_date=DAY)
        second = PhaseSnapshotGenerator().run(snapshot_date=DAY)

        assert second.snapshots_created == 0
        assert second.skipped_existing == 1
        assert PhaseSnapshot.query.count() == 1

    def test_next_day_appends(self, tenant):
        _create_phase(_create_project(tenant))
        db.session.commit()

        PhaseSnapshotGenerator().run(snapshot_date=DAY)
        PhaseSnapshotGenerator().run(snapshot_date=DAY + timedelta(days=1))
        assert PhaseSnapshot.query.count() == 2


# ═══════════════════════════════════════════════════════════════════════════
#  3. PHASE SELECTION
# ═══════════════════════════════════════════════════════════════════════════

class TestPhaseSelection:

    def test_inactive_phase_and_project_excluded(self, tenant):
        active = _create_project(tenant)
        _create_phase(active, "Planned", status="planned")
        paused = _create_project(tenant, "Paused", status="paused")
        _create_phase(paused, "Roof")
        db.session.commit()

        result = PhaseSnapshotGenerator().run(snapshot_date=DAY)
        assert result.phases_processed == 0
        assert PhaseSnapshot.query.count() == 0

    def test_ended_phase_with_open_budget_included(self, tenant):
        project = _create_project(tenant)
        open_budget = _create_phase(project, "Late", end_date=DAY - timedelta(days=3),
                                    budget_hours=100.0, actual_hours=80.0)
        _create_phase(project, "Done", end_date=DAY - timedelta(days=3),
                      budget_hours=100.0, actual_hours=100.0)
        no_deadline = _create_phase(project, "Open", end_date=None)
        db.session.commit()

        phases = PhaseSnapshotGenerator.active_phases(tenant.id, DAY)
        assert [p.id for p in phases] == [open_budget.id, no_deadline.id]

    def test_tenant_filter(self, tenant):
        _create_phase(_create_project(tenant))
        other = Tenant(name="Other", slug="other")
        db.session.add(other)
        db.session.flush()
        _create_phase(_create_project(other, "Other project"))
        db.session.commit()

        result = PhaseSnapshotGenerator().run(snapshot_date=DAY, tenant_id=tenant.id)
        assert result.tenants_processed == 1
        assert PhaseSnapshot.query.count() == 1
        assert PhaseSnapshot.query.one().tenant_id == tenant.id

    def test_inactive_tenant_skipped(self, tenant):
        tenant.is_active = False
        _create_phase(_create_project(tenant))
        db.session.commit()

        result = PhaseSnapshotGenerator().run(snapshot_date=DAY)
        assert result.tenants_processed == 0


class TestAllocationMetrics:

    def test_grouped_per_phase(self, tenant):
        project = _create_project(tenant)
        walls = _create_phase(project, "Walls")
        roof = _create_phase(project, "Roof")
        anna = _create_user(tenant, "anna@example.com")
        _allocate(anna, walls, DAY, 4.0)
        _allocate(anna, roof, DAY, 4.0)
        _allocate(anna, roof, DAY + timedelta(days=1), 8.0)
        db.session.commit()

        metrics = PhaseSnapshotGenerator.allocation_metrics([walls.id, roof.id])
        assert metrics[walls.id] == (4.0, 1, 1)
        assert metrics[roof.id] == (12.0, 2, 1)

    def test_empty_ids(self):
        assert PhaseSnapshotGenerator.allocation_metrics([]) == {}
