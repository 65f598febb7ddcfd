"""
Tests — InsightOrchestrator batch run against in-memory collaborators.

Covers:
    1. End-to-end phase + project insight
    2. Phases without snapshots (not started)
    3. Error severities (tenant listing, tenant, phase persistence)
    4. Enhanced mode (availability, weather memo, swallowed failures)
    5. Weather helpers
"""

from datetime import date, timedelta
from unittest.mock import MagicMock

import pytest

from phaseplan.analytics.types import (
    ConstructionRating,
    DataQuality,
    InsightStatus,
    Snapshot,
    Trend,
)
from phaseplan.services.insight_orchestrator import (
    InsightOrchestrator,
    build_weather_context,
    coordinate_key,
    rate_construction_day,
)
from phaseplan.services.ports import (
    AvailableUser,
    DayForecast,
    Enrichment,
    GeneratedTexts,
    InsightStore,
    NarrativeGenerator,
    PhaseRecord,
    ProjectRecord,
    SnapshotSource,
    TenantCatalog,
)

TODAY = date(2024, 3, 15)       # Friday
DEADLINE = date(2024, 3, 22)    # 5 working days out


# ═══════════════════════════════════════════════════════════════════════════
#  FAKES
# ═══════════════════════════════════════════════════════════════════════════

class FakeCatalog(TenantCatalog):
    def __init__(self, projects_by_tenant, fail_tenants=()):
        self.projects_by_tenant = projects_by_tenant
        self.fail_tenants = set(fail_tenants)

    def list_tenants(self):
        return sorted(self.projects_by_tenant)

    def list_active_projects_with_phases(self, tenant_id):
        if tenant_id in self.fail_tenants:
            raise RuntimeError("catalog down")
        return self.projects_by_tenant[tenant_id]


class FakeSnapshots(SnapshotSource):
    def __init__(self, by_phase):
        self.by_phase = by_phase
        self.calls = []

    def get_snapshots(self, phase_id, start, end):
        self.calls.append((phase_id, start, end))
        return [s for s in self.by_phase.get(phase_id, []) if start <= s.date <= end]


class FakeStore(InsightStore):
    def __init__(self, fail_phases=()):
        self.phase_insights = {}
        self.project_insights = {}
        self.fail_phases = set(fail_phases)
        self.discarded = 0

    def upsert_phase_insight(self, insight):
        if insight.phase_id in self.fail_phases:
            raise RuntimeError("write failed")
        self.phase_insights[(insight.phase_id, insight.insight_date)] = insight
        return insight

    def upsert_project_insight(self, insight):
        self.project_insights[(insight.project_id, insight.insight_date)] = insight
        return insight

    def discard_pending(self):
        self.discarded += 1


class FakeTexts(NarrativeGenerator):
    def __init__(self):
        self.phase_inputs = []
        self.enhanced_inputs = []
        self.project_inputs = []

    def generate_phase_text(self, data):
        self.phase_inputs.append(data)
        return GeneratedTexts(f"phase {data.phase_name}", "detail", "rec")

    def generate_enhanced_phase_text(self, data):
        self.enhanced_inputs.append(data)
        return GeneratedTexts(f"enhanced {data.phase_name}", "detail", "rec")

    def generate_project_text(self, data):
        self.project_inputs.append(data)
        return GeneratedTexts(f"project {data.project_name}", "detail", "rec")


def _steady_snapshots(days=5, per_day=10.0, budget=100.0, planned=60.0):
    """Mon–Fri of the insight week, +10h per day, ending at 50h on TODAY."""
    start = TODAY - timedelta(days=days - 1)
    return [
        Snapshot(date=start + timedelta(days=i), actual_hours=per_day * (i + 1),
                 planned_hours=planned, budget_hours=budget)
        for i in range(days)
    ]


def _project(project_id=10, phases=None, lat=None, lng=None, tenant_id=1):
    return ProjectRecord(
        id=project_id, tenant_id=tenant_id, name=f"Project {project_id}",
        address="Hauptstr. 1", description="Timber frame house",
        address_lat=lat, address_lng=lng,
        phases=phases if phases is not None else [
            PhaseRecord(id=100, name="Walls", start_date=date(2024, 3, 1),
                        end_date=DEADLINE, budget_hours=100.0),
        ],
    )


def _orchestrator(catalog, snapshots, store=None, texts=None, enrichment=None):
    return InsightOrchestrator(
        catalog, snapshots, store or FakeStore(), texts or FakeTexts(), enrichment,
    )


def _forecast(day, precip=10.0, temp_min=8.0, wind=10.0):
    return DayForecast(date=day, description="Clear sky", temp_min=temp_min,
                       temp_max=temp_min + 8, precipitation_probability=precip,
                       wind_speed_max=wind, weather_code=0)


# ═══════════════════════════════════════════════════════════════════════════
#  1. END-TO-END
# ═══════════════════════════════════════════════════════════════════════════

class TestRun:

    def test_on_track_phase_and_project(self):
        store = FakeStore()
        texts = FakeTexts()
        orch = _orchestrator(
            FakeCatalog({1: [_project()]}),
            FakeSnapshots({100: _steady_snapshots()}),
            store, texts,
        )
        result = orch.run(insight_date=TODAY)

        assert result.success is True
        assert result.errors == []
        assert result.tenants_processed == 1
        assert result.projects_processed == 1
        assert result.phases_processed == 1
        assert result.phase_insights_created == 1
        assert result.project_insights_created == 1

        phase = store.phase_insights[(100, TODAY)]
        assert phase.status == InsightStatus.ON_TRACK
        assert phase.tenant_id == 1
        assert phase.sample_count == 5
        assert phase.data_quality == DataQuality.LIMITED
        assert phase.remaining_hours == 50.0
        assert phase.progress_percent == 50
        assert phase.burn_rate_actual == pytest.approx(10.0)
        assert phase.burn_rate_actual_trend == Trend.STABLE
        assert phase.completion_date_actual == DEADLINE
        assert phase.deadline_delta_actual == 0
        assert phase.capacity_gap_hours == pytest.approx(40.0)
        assert phase.summary_text == "phase Walls"
        assert phase.suggested_action is None

        project = store.project_insights[(10, TODAY)]
        assert project.status == InsightStatus.ON_TRACK
        assert project.total_budget_hours == pytest.approx(100.0)
        assert project.overall_progress_percent == 50
        assert project.total_planned_hours == pytest.approx(60.0)
        assert project.project_deadline_delta == 0
        assert project.summary_text == "project Project 10"

        assert texts.phase_inputs[0].days_until_deadline == 5

    def test_eight_hours_a_day_meets_deadline_exactly(self):
        """0, 8, 16, 24, 32h over Mon–Fri; 68h left at 8h/day is 9 working days."""
        deadline = date(2024, 3, 28)    # 9 working days after TODAY
        phase = PhaseRecord(id=100, name="Walls", end_date=deadline, budget_hours=100.0)
        snaps = [
            Snapshot(date=TODAY - timedelta(days=4 - i), actual_hours=8.0 * i,
                     planned_hours=0.0, budget_hours=100.0)
            for i in range(5)
        ]
        store = FakeStore()
        _orchestrator(FakeCatalog({1: [_project(phases=[phase])]}),
                      FakeSnapshots({100: snaps}), store).run(insight_date=TODAY)

        insight = store.phase_insights[(100, TODAY)]
        assert insight.remaining_hours == 68.0
        assert insight.burn_rate_actual == pytest.approx(8.0)
        assert insight.days_remaining_actual == 9
        assert insight.completion_date_actual == deadline
        assert insight.deadline_delta_actual == 0
        assert insight.status == InsightStatus.ON_TRACK

    def test_snapshot_window(self):
        snapshots = FakeSnapshots({100: _steady_snapshots()})
        orch = InsightOrchestrator(
            FakeCatalog({1: [_project()]}), snapshots, FakeStore(), FakeTexts(),
            snapshot_window_days=7,
        )
        orch.run(insight_date=TODAY)
        assert snapshots.calls == [(100, TODAY - timedelta(days=7), TODAY)]

    def test_defaults_to_today(self):
        result = _orchestrator(FakeCatalog({}), FakeSnapshots({})).run()
        assert result.insight_date == date.today()
        assert result.tenants_processed == 0

    def test_tenant_filter(self):
        store = FakeStore()
        orch = _orchestrator(
            FakeCatalog({1: [_project(10)], 2: [_project(20, tenant_id=2)]}),
            FakeSnapshots({100: _steady_snapshots()}),
            store,
        )
        result = orch.run(insight_date=TODAY, tenant_id=2)
        assert result.tenants_processed == 1
        assert list(store.project_insights) == [(20, TODAY)]

    def test_result_to_dict(self):
        result = _orchestrator(FakeCatalog({}), FakeSnapshots({})).run(insight_date=TODAY)
        d = result.to_dict()
        assert d["insight_date"] == "2024-03-15"
        assert d["success"] is True
        assert isinstance(d["duration_ms"], int)


# ═══════════════════════════════════════════════════════════════════════════
#  2. NOT STARTED
# ═══════════════════════════════════════════════════════════════════════════

class TestNotStarted:

    def test_no_snapshots(self):
        store = FakeStore()
        texts = FakeTexts()
        phase = PhaseRecord(id=100, name="Roof", end_date=DEADLINE,
                            budget_hours=80.0, planned_hours=16.0)
        orch = _orchestrator(FakeCatalog({1: [_project(phases=[phase])]}),
                             FakeSnapshots({}), store, texts)
        result = orch.run(insight_date=TODAY)

        insight = store.phase_insights[(100, TODAY)]
        assert insight.status == InsightStatus.NOT_STARTED
        assert insight.data_quality == DataQuality.INSUFFICIENT
        assert insight.sample_count == 0
        assert insight.remaining_hours == 80.0
        assert insight.progress_percent == 0
        assert insight.burn_rate_actual is None
        assert texts.phase_inputs[0].status == InsightStatus.NOT_STARTED
        assert texts.phase_inputs[0].days_until_deadline == 5

        assert result.phase_insights_created == 1
        assert result.project_insights_created == 1
        project = store.project_insights[(10, TODAY)]
        assert project.status == InsightStatus.NOT_STARTED
        assert project.phases_count == 1
        assert project.total_remaining_hours == 80.0

    def test_zero_actual_snapshots(self):
        store = FakeStore()
        snaps = [Snapshot(date=TODAY - timedelta(days=i), actual_hours=0.0,
                          planned_hours=8.0, budget_hours=40.0) for i in range(3)]
        orch = _orchestrator(FakeCatalog({1: [_project()]}), FakeSnapshots({100: snaps}), store)
        orch.run(insight_date=TODAY)
        assert store.phase_insights[(100, TODAY)].status == InsightStatus.NOT_STARTED

    def test_single_snapshot_is_unknown(self):
        store = FakeStore()
        snaps = [Snapshot(date=TODAY, actual_hours=20.0, planned_hours=0.0, budget_hours=100.0)]
        orch = _orchestrator(FakeCatalog({1: [_project()]}), FakeSnapshots({100: snaps}), store)
        orch.run(insight_date=TODAY)
        insight = store.phase_insights[(100, TODAY)]
        assert insight.status == InsightStatus.UNKNOWN
        assert insight.burn_rate_actual is None
        assert insight.sample_count == 1

    def test_completed_phase(self):
        store = FakeStore()
        snaps = _steady_snapshots(per_day=25.0)
        orch = _orchestrator(FakeCatalog({1: [_project()]}), FakeSnapshots({100: snaps}), store)
        orch.run(insight_date=TODAY)
        insight = store.phase_insights[(100, TODAY)]
        assert insight.status == InsightStatus.COMPLETED
        assert insight.remaining_hours == 0.0


# ═══════════════════════════════════════════════════════════════════════════
#  3. ERROR SEVERITIES
# ═══════════════════════════════════════════════════════════════════════════

class TestErrors:

    def test_tenant_listing_failure_aborts(self):
        catalog = MagicMock(spec=TenantCatalog)
        catalog.list_tenants.side_effect = RuntimeError("db gone")
        result = _orchestrator(catalog, FakeSnapshots({})).run(insight_date=TODAY)
        assert result.success is False
        assert result.errors == ["db gone"]
        assert result.tenants_processed == 0

    def test_tenant_failure_is_isolated(self):
        store = FakeStore()
        orch = _orchestrator(
            FakeCatalog({1: [_project(10)], 2: [_project(20, tenant_id=2)]}, fail_tenants={1}),
            FakeSnapshots({100: _steady_snapshots()}),
            store,
        )
        result = orch.run(insight_date=TODAY)
        assert result.success is True
        assert result.errors == ["Tenant 1: catalog down"]
        assert (20, TODAY) in store.project_insights

    def test_phase_persistence_failure_continues(self):
        store = FakeStore(fail_phases={100})
        phases = [
            PhaseRecord(id=100, name="Walls", end_date=DEADLINE, budget_hours=100.0),
            PhaseRecord(id=101, name="Roof", end_date=DEADLINE, budget_hours=100.0),
        ]
        orch = _orchestrator(
            FakeCatalog({1: [_project(phases=phases)]}),
            FakeSnapshots({100: _steady_snapshots(), 101: _steady_snapshots()}),
            store,
        )
        result = orch.run(insight_date=TODAY)

        assert result.success is True
        assert result.phases_processed == 2
        assert result.phase_insights_created == 1
        assert result.errors == ["Phase 100: write failed"]
        assert store.discarded == 1
        project = store.project_insights[(10, TODAY)]
        assert project.phases_count == 1

    def test_all_phases_fail_skips_project(self):
        store = FakeStore(fail_phases={100})
        orch = _orchestrator(FakeCatalog({1: [_project()]}),
                             FakeSnapshots({100: _steady_snapshots()}), store)
        result = orch.run(insight_date=TODAY)
        assert result.project_insights_created == 0
        assert store.project_insights == {}

    def test_project_text_failure_recorded(self):
        texts = FakeTexts()
        texts.generate_project_text = MagicMock(side_effect=RuntimeError("llm exploded"))
        orch = _orchestrator(FakeCatalog({1: [_project()]}),
                             FakeSnapshots({100: _steady_snapshots()}), texts=texts)
        result = orch.run(insight_date=TODAY)
        assert result.phase_insights_created == 1
        assert result.errors == ["Project 10: llm exploded"]


# ═══════════════════════════════════════════════════════════════════════════
#  4. ENHANCED MODE
# ═══════════════════════════════════════════════════════════════════════════

def _enrichment(forecasts=None, cached=None):
    availability = MagicMock()
    availability.find_available.return_value = [
        AvailableUser(id=5, name="Anna", available_days=[TODAY + timedelta(days=i) for i in range(12)],
                      available_hours=40.0, utilization_percent=20),
    ]
    availability.find_overloaded.return_value = []
    weather_service = MagicMock()
    weather_service.get_forecast.return_value = forecasts if forecasts is not None else [
        _forecast(TODAY + timedelta(days=i)) for i in range(7)
    ]
    weather_cache = MagicMock()
    weather_cache.get_forecasts.return_value = cached or []
    return Enrichment(availability=availability, weather_service=weather_service,
                      weather_cache=weather_cache)


class TestEnhanced:

    def test_enhanced_input(self):
        texts = FakeTexts()
        enrichment = _enrichment()
        orch = _orchestrator(
            FakeCatalog({1: [_project(lat=47.123, lng=9.456)]}),
            FakeSnapshots({100: _steady_snapshots()}),
            texts=texts, enrichment=enrichment,
        )
        orch.run(insight_date=TODAY)

        assert texts.phase_inputs == []
        data = texts.enhanced_inputs[0]
        assert data.project_address == "Hauptstr. 1"
        assert data.project_description == "Timber frame house"
        user = data.availability.available_users[0]
        assert len(user.available_days) == 10
        assert len(data.weather.days) == 3
        assert data.weather.days[0].construction_rating == ConstructionRating.GOOD
        enrichment.availability.find_available.assert_called_once_with(1, TODAY, DEADLINE, 8)
        enrichment.weather_cache.save_forecasts.assert_called_once()

    def test_phase_description_preferred(self):
        texts = FakeTexts()
        phase = PhaseRecord(id=100, name="Walls", start_date=date(2024, 3, 1),
                            end_date=DEADLINE, budget_hours=100.0,
                            description="Prefab wall elements, crane on site")
        orch = _orchestrator(
            FakeCatalog({1: [_project(phases=[phase])]}),
            FakeSnapshots({100: _steady_snapshots()}),
            texts=texts, enrichment=_enrichment(),
        )
        orch.run(insight_date=TODAY)
        assert texts.enhanced_inputs[0].project_description == "Prefab wall elements, crane on site"

    def test_cache_hit_skips_fetch(self):
        texts = FakeTexts()
        cached = [_forecast(TODAY + timedelta(days=i)) for i in range(3)]
        enrichment = _enrichment(cached=cached)
        orch = _orchestrator(
            FakeCatalog({1: [_project(lat=47.1, lng=9.4)]}),
            FakeSnapshots({100: _steady_snapshots()}),
            texts=texts, enrichment=enrichment,
        )
        orch.run(insight_date=TODAY)
        enrichment.weather_service.get_forecast.assert_not_called()
        assert len(texts.enhanced_inputs[0].weather.days) == 3

    def test_weather_memo_per_run(self):
        enrichment = _enrichment()
        projects = [
            _project(10, lat=47.1231, lng=9.4561),
            _project(11, lat=47.1229, lng=9.4559),
        ]
        orch = _orchestrator(
            FakeCatalog({1: projects}),
            FakeSnapshots({100: _steady_snapshots()}),
            enrichment=enrichment,
        )
        orch.run(insight_date=TODAY)
        assert enrichment.weather_service.get_forecast.call_count == 1

    def test_no_coordinates_no_weather(self):
        texts = FakeTexts()
        enrichment = _enrichment()
        orch = _orchestrator(
            FakeCatalog({1: [_project()]}),
            FakeSnapshots({100: _steady_snapshots()}),
            texts=texts, enrichment=enrichment,
        )
        orch.run(insight_date=TODAY)
        assert texts.enhanced_inputs[0].weather is None
        enrichment.weather_service.get_forecast.assert_not_called()

    def test_enrichment_failures_are_swallowed(self):
        texts = FakeTexts()
        enrichment = _enrichment()
        enrichment.availability.find_available.side_effect = RuntimeError("no staff table")
        enrichment.weather_service.get_forecast.side_effect = RuntimeError("timeout")
        orch = _orchestrator(
            FakeCatalog({1: [_project(lat=47.1, lng=9.4)]}),
            FakeSnapshots({100: _steady_snapshots()}),
            texts=texts, enrichment=enrichment,
        )
        result = orch.run(insight_date=TODAY)

        assert result.errors == []
        assert result.phase_insights_created == 1
        data = texts.enhanced_inputs[0]
        assert data.availability is None
        assert data.weather is None

    def test_nobody_available_gives_no_context(self):
        texts = FakeTexts()
        enrichment = _enrichment()
        enrichment.availability.find_available.return_value = []
        orch = _orchestrator(
            FakeCatalog({1: [_project()]}),
            FakeSnapshots({100: _steady_snapshots()}),
            texts=texts, enrichment=enrichment,
        )
        orch.run(insight_date=TODAY)
        assert texts.enhanced_inputs[0].availability is None


# ═══════════════════════════════════════════════════════════════════════════
#  5. WEATHER HELPERS
# ═══════════════════════════════════════════════════════════════════════════

class TestWeatherHelpers:

    @pytest.mark.parametrize("kwargs,expected", [
        ({}, ConstructionRating.GOOD),
        ({"precip": 71}, ConstructionRating.POOR),
        ({"precip": 70}, ConstructionRating.MODERATE),
        ({"precip": 40}, ConstructionRating.GOOD),
        ({"temp_min": -1}, ConstructionRating.POOR),
        ({"temp_min": 4}, ConstructionRating.MODERATE),
        ({"wind": 51}, ConstructionRating.POOR),
        ({"wind": 31}, ConstructionRating.MODERATE),
    ])
    def test_rate_construction_day(self, kwargs, expected):
        assert rate_construction_day(_forecast(TODAY, **kwargs)) == expected

    def test_missing_values_count_as_zero(self):
        f = DayForecast(date=TODAY, description="", temp_min=None, temp_max=None,
                        precipitation_probability=None, wind_speed_max=None)
        # temp_min 0 is below the moderate threshold
        assert rate_construction_day(f) == ConstructionRating.MODERATE

    def test_context_risk_flags(self):
        ctx = build_weather_context([
            _forecast(TODAY, precip=60),
            _forecast(TODAY + timedelta(days=1), temp_min=-2),
        ])
        assert ctx.has_rain_risk is True
        assert ctx.has_frost_risk is True
        assert ctx.has_wind_risk is False

    def test_coordinate_key(self):
        assert coordinate_key(47.1231, 9.4561) == (47.12, 9.46)
