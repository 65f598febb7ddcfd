"""
Phase Planning Platform
Insight Orchestrator — nightly insight generation batch.

Walks tenants → active projects → phases, turns each phase's recent
snapshots into a PhaseInsight (burn rate → forecast → status), then rolls
each project's phase insights up into a ProjectInsight.

Error severities:
    - Tenant listing fails      → run aborts, success=False
    - Tenant/project/phase fails → error recorded with entity prefix, run continues
    - Availability/weather fails → silently dropped from the narrative input

Every failure branch calls ``insight_store.discard_pending()`` so the next
entity starts from a clean session.

Usage:
    from phaseplan.services.insight_orchestrator import InsightOrchestrator
    result = InsightOrchestrator(catalog, snapshots, store, texts).run()
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from datetime import date, timedelta

from phaseplan.analytics.aggregation import ProjectAggregator
from phaseplan.analytics.burn_rate import BurnRateEstimator
from phaseplan.analytics.progression import ProgressionForecaster
from phaseplan.analytics.types import (
    ConstructionRating,
    DataQuality,
    InsightStatus,
    PhaseInsight,
    ProjectInsight,
)
from phaseplan.services.ports import (
    AvailabilityContext,
    DayForecast,
    EnhancedPhaseTextInput,
    Enrichment,
    InsightStore,
    NarrativeGenerator,
    PhaseRecord,
    PhaseTextInput,
    ProjectRecord,
    ProjectTextInput,
    SnapshotSource,
    TenantCatalog,
    WeatherContext,
    WeatherDay,
)

logger = logging.getLogger(__name__)

DEFAULT_SNAPSHOT_WINDOW_DAYS = 14

# ── Enhanced-mode limits ────────────────────────────────────────────────
MAX_AVAILABLE_USERS = 5
MAX_AVAILABLE_DAYS_PER_USER = 10
MAX_OVERLOADED_USERS = 3
AVAILABILITY_MIN_HOURS = 8
AVAILABILITY_FALLBACK_WINDOW_DAYS = 14
WEATHER_OUTLOOK_DAYS = 3
WEATHER_FETCH_DAYS = 7
PROJECT_DESCRIPTION_MAX_CHARS = 300

# ── Construction weather thresholds ─────────────────────────────────────
POOR_PRECIPITATION_PCT = 70
POOR_MIN_TEMP_C = 0
POOR_WIND_KMH = 50
MODERATE_PRECIPITATION_PCT = 40
MODERATE_MIN_TEMP_C = 5
MODERATE_WIND_KMH = 30
RAIN_RISK_PCT = 50


def rate_construction_day(forecast: DayForecast) -> ConstructionRating:
    """Classify one forecast day for outdoor construction work (missing values count as 0)."""
    precip = forecast.precipitation_probability or 0
    temp_min = forecast.temp_min or 0
    wind = forecast.wind_speed_max or 0
    if (precip > POOR_PRECIPITATION_PCT
            or temp_min < POOR_MIN_TEMP_C
            or wind > POOR_WIND_KMH):
        return ConstructionRating.POOR
    if (precip > MODERATE_PRECIPITATION_PCT
            or temp_min < MODERATE_MIN_TEMP_C
            or wind > MODERATE_WIND_KMH):
        return ConstructionRating.MODERATE
    return ConstructionRating.GOOD


def build_weather_context(forecasts: list[DayForecast]) -> WeatherContext:
    days = [
        WeatherDay(
            date=f.date,
            description=f.description or "No data",
            temp_min=f.temp_min or 0.0,
            temp_max=f.temp_max or 0.0,
            precipitation_probability=f.precipitation_probability or 0.0,
            wind_speed_max=f.wind_speed_max or 0.0,
            construction_rating=rate_construction_day(f),
        )
        for f in forecasts
    ]
    return WeatherContext(
        days=days,
        has_rain_risk=any(d.precipitation_probability > RAIN_RISK_PCT for d in days),
        has_frost_risk=any(d.temp_min < POOR_MIN_TEMP_C for d in days),
        has_wind_risk=any(d.wind_speed_max > POOR_WIND_KMH for d in days),
    )


def coordinate_key(lat: float, lng: float) -> tuple[float, float]:
    return round(lat, 2), round(lng, 2)


@dataclass
class InsightRunResult:
    """Summary of one orchestrator run."""
    insight_date: date | None = None
    success: bool = True
    tenants_processed: int = 0
    projects_processed: int = 0
    phases_processed: int = 0
    phase_insights_created: int = 0
    project_insights_created: int = 0
    errors: list[str] = field(default_factory=list)
    duration_ms: int = 0

    def to_dict(self) -> dict:
        return {
            "insight_date": self.insight_date.isoformat() if self.insight_date else None,
            "success": self.success,
            "tenants_processed": self.tenants_processed,
            "projects_processed": self.projects_processed,
            "phases_processed": self.phases_processed,
            "phase_insights_created": self.phase_insights_created,
            "project_insights_created": self.project_insights_created,
            "errors": list(self.errors),
            "duration_ms": self.duration_ms,
        }


class InsightOrchestrator:
    """
    Sequential insight batch driver.

    Stateless between runs; ``insight_date`` is read once per run and
    passed explicitly to every calculation that needs "today".
    """

    def __init__(
        self,
        catalog: TenantCatalog,
        snapshots: SnapshotSource,
        insight_store: InsightStore,
        text_generator: NarrativeGenerator,
        enrichment: Enrichment | None = None,
        *,
        estimator: BurnRateEstimator | None = None,
        forecaster: ProgressionForecaster | None = None,
        aggregator: ProjectAggregator | None = None,
        snapshot_window_days: int = DEFAULT_SNAPSHOT_WINDOW_DAYS,
    ):
        self.catalog = catalog
        self.snapshots = snapshots
        self.insight_store = insight_store
        self.text_generator = text_generator
        self.enrichment = enrichment
        self.estimator = estimator or BurnRateEstimator()
        self.forecaster = forecaster or ProgressionForecaster()
        self.aggregator = aggregator or ProjectAggregator()
        self.snapshot_window_days = snapshot_window_days

    # ═════════════════════════════════════════════════════════════════════
    #  Run
    # ═════════════════════════════════════════════════════════════════════

    def run(self, insight_date: date | None = None, tenant_id: int | None = None) -> InsightRunResult:
        """
        Generate phase and project insights for every active phase.

        Args:
            insight_date: Day the insights are computed for (default: today).
            tenant_id: Restrict the run to one tenant (manual refresh).

        Returns:
            InsightRunResult with counts and the accumulated error list.
        """
        insight_date = insight_date or date.today()
        result = InsightRunResult(insight_date=insight_date)
        start = time.monotonic()
        logger.info("Insight run started: date=%s tenant=%s",
                    insight_date, tenant_id if tenant_id is not None else "all")

        try:
            tenant_ids = self.catalog.list_tenants()
        except Exception as exc:
            logger.exception("Insight run aborted: tenant listing failed")
            result.success = False
            result.errors.append(str(exc))
            result.duration_ms = int((time.monotonic() - start) * 1000)
            return result

        if tenant_id is not None:
            tenant_ids = [t for t in tenant_ids if t == tenant_id]
        result.tenants_processed = len(tenant_ids)

        weather_memo: dict[tuple[float, float], WeatherContext | None] = {}
        for tid in tenant_ids:
            try:
                self._process_tenant(tid, insight_date, result, weather_memo)
            except Exception as exc:
                self.insight_store.discard_pending()
                logger.exception("Insight generation failed for tenant %s", tid,
                                 extra={"tenant_id": tid})
                result.errors.append(f"Tenant {tid}: {exc}")

        result.duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "Insight run finished: tenants=%d projects=%d phases=%d "
            "phase_insights=%d project_insights=%d errors=%d",
            result.tenants_processed, result.projects_processed, result.phases_processed,
            result.phase_insights_created, result.project_insights_created, len(result.errors),
            extra={"duration_ms": result.duration_ms},
        )
        return result

    def _process_tenant(self, tenant_id, insight_date, result, weather_memo):
        projects = self.catalog.list_active_projects_with_phases(tenant_id)
        for project in projects:
            result.projects_processed += 1
            phase_insights: list[PhaseInsight] = []
            deadlines: dict[int, date | None] = {}

            for phase in project.phases:
                result.phases_processed += 1
                deadlines[phase.id] = phase.end_date
                try:
                    insight = self.build_phase_insight(
                        tenant_id, project, phase, insight_date, weather_memo,
                    )
                    phase_insights.append(self.insight_store.upsert_phase_insight(insight))
                    result.phase_insights_created += 1
                except Exception as exc:
                    self.insight_store.discard_pending()
                    logger.exception("Phase insight failed: phase=%s", phase.id,
                                     extra={"tenant_id": tenant_id, "phase_id": phase.id})
                    result.errors.append(f"Phase {phase.id}: {exc}")

            if not phase_insights:
                continue
            try:
                project_insight = self.build_project_insight(
                    tenant_id, project, phase_insights, deadlines, insight_date,
                )
                self.insight_store.upsert_project_insight(project_insight)
                result.project_insights_created += 1
            except Exception as exc:
                self.insight_store.discard_pending()
                logger.exception("Project insight failed: project=%s", project.id,
                                 extra={"tenant_id": tenant_id, "project_id": project.id})
                result.errors.append(f"Project {project.id}: {exc}")

    # ═════════════════════════════════════════════════════════════════════
    #  Phase insight
    # ═════════════════════════════════════════════════════════════════════

    def build_phase_insight(
        self,
        tenant_id: int,
        project: ProjectRecord,
        phase: PhaseRecord,
        insight_date: date,
        weather_memo: dict | None = None,
    ) -> PhaseInsight:
        """Compute (but do not persist) the insight for one phase."""
        window_start = insight_date - timedelta(days=self.snapshot_window_days)
        snapshots = self.snapshots.get_snapshots(phase.id, window_start, insight_date)
        if not snapshots:
            return self._not_started_insight(tenant_id, project, phase, insight_date)

        ordered = sorted(snapshots, key=lambda s: s.date)
        latest = ordered[-1]
        burn_rate = self.estimator.estimate(ordered)
        metrics = self.forecaster.forecast(latest, burn_rate, phase.end_date, insight_date)

        has_started = latest.actual_hours > 0
        is_completed = metrics.progress_percent >= 100
        status = self.forecaster.determine_status(
            metrics.progress_percent, metrics.deadline_delta_actual, has_started, is_completed,
        )
        quality = self.forecaster.determine_data_quality(
            burn_rate.actual_sample_count if burn_rate else 0,
        )

        text_input = PhaseTextInput(
            phase_name=phase.name,
            project_name=project.name,
            status=status,
            budget_hours=latest.budget_hours,
            actual_hours=latest.actual_hours,
            remaining_hours=metrics.remaining_hours,
            planned_hours=latest.planned_hours,
            progress_percent=metrics.progress_percent,
            deadline=phase.end_date,
            days_until_deadline=metrics.working_days_until_deadline if phase.end_date else None,
            burn_rate_actual=burn_rate.actual_rate_per_day if burn_rate else None,
            burn_rate_trend=burn_rate.actual_trend if burn_rate else None,
            deadline_delta_actual=metrics.deadline_delta_actual,
        )

        if self.enrichment is not None:
            enhanced = self._enhance(
                text_input, tenant_id, project, phase, insight_date,
                weather_memo if weather_memo is not None else {},
            )
            texts = self.text_generator.generate_enhanced_phase_text(enhanced)
        else:
            texts = self.text_generator.generate_phase_text(text_input)

        return PhaseInsight(
            tenant_id=tenant_id,
            phase_id=phase.id,
            insight_date=insight_date,
            status=status,
            data_quality=quality,
            sample_count=len(ordered),
            remaining_hours=metrics.remaining_hours,
            progress_percent=metrics.progress_percent,
            planned_hours=latest.planned_hours,
            burn_rate_actual=burn_rate.actual_rate_per_day if burn_rate else None,
            burn_rate_actual_trend=burn_rate.actual_trend if burn_rate else None,
            days_remaining_actual=metrics.days_remaining_actual,
            completion_date_actual=metrics.completion_date_actual,
            deadline_delta_actual=metrics.deadline_delta_actual,
            burn_rate_planned=burn_rate.planned_rate_per_day if burn_rate else None,
            days_remaining_planned=metrics.days_remaining_planned,
            completion_date_planned=metrics.completion_date_planned,
            deadline_delta_planned=metrics.deadline_delta_planned,
            capacity_gap_hours=metrics.capacity_gap_hours,
            capacity_gap_days=metrics.capacity_gap_days,
            summary_text=texts.summary_text,
            detail_text=texts.detail_text,
            recommendation_text=texts.recommendation_text,
            suggested_action=texts.suggested_action,
        )

    def _not_started_insight(self, tenant_id, project, phase, insight_date) -> PhaseInsight:
        budget = phase.budget_hours or 0.0
        texts = self.text_generator.generate_phase_text(PhaseTextInput(
            phase_name=phase.name,
            project_name=project.name,
            status=InsightStatus.NOT_STARTED,
            budget_hours=budget,
            actual_hours=0.0,
            remaining_hours=budget,
            planned_hours=phase.planned_hours or 0.0,
            progress_percent=0,
            deadline=phase.end_date,
            days_until_deadline=(
                self.forecaster.working_days_until(insight_date, phase.end_date)
                if phase.end_date else None
            ),
        ))
        return PhaseInsight(
            tenant_id=tenant_id,
            phase_id=phase.id,
            insight_date=insight_date,
            status=InsightStatus.NOT_STARTED,
            data_quality=DataQuality.INSUFFICIENT,
            sample_count=0,
            remaining_hours=budget,
            progress_percent=0,
            planned_hours=phase.planned_hours or 0.0,
            summary_text=texts.summary_text,
            detail_text=texts.detail_text,
            recommendation_text=texts.recommendation_text,
        )

    # ── Enhanced mode ────────────────────────────────────────────────────

    def _enhance(self, base, tenant_id, project, phase, insight_date, weather_memo):
        text = phase.description or project.description
        description = text[:PROJECT_DESCRIPTION_MAX_CHARS] if text else None
        return EnhancedPhaseTextInput(
            **vars(base),
            project_address=project.address,
            project_description=description,
            availability=self._availability_context(tenant_id, phase, insight_date),
            weather=self._weather_context(project, insight_date, weather_memo),
        )

    def _availability_context(self, tenant_id, phase, insight_date) -> AvailabilityContext | None:
        start = max(phase.start_date, insight_date) if phase.start_date else insight_date
        end = phase.end_date or start + timedelta(days=AVAILABILITY_FALLBACK_WINDOW_DAYS)
        if end < start:
            return None
        try:
            available = self.enrichment.availability.find_available(
                tenant_id, start, end, AVAILABILITY_MIN_HOURS,
            )
            overloaded = self.enrichment.availability.find_overloaded(tenant_id, start, end)
        except Exception as exc:
            self.insight_store.discard_pending()
            logger.warning("Availability lookup skipped for phase %s: %s", phase.id, exc)
            return None
        if not available and not overloaded:
            return None

        return AvailabilityContext(
            available_users=[
                replace(u, available_days=u.available_days[:MAX_AVAILABLE_DAYS_PER_USER])
                for u in available[:MAX_AVAILABLE_USERS]
            ],
            overloaded_users=overloaded[:MAX_OVERLOADED_USERS],
        )

    def _weather_context(self, project, insight_date, weather_memo) -> WeatherContext | None:
        if not project.has_coordinates:
            return None
        key = coordinate_key(project.address_lat, project.address_lng)
        if key in weather_memo:
            return weather_memo[key]
        try:
            context = self._load_weather(project.address_lat, project.address_lng, insight_date)
        except Exception as exc:
            self.insight_store.discard_pending()
            logger.warning("Weather lookup skipped for project %s: %s", project.id, exc)
            context = None
        weather_memo[key] = context
        return context

    def _load_weather(self, lat, lng, insight_date) -> WeatherContext | None:
        """Cache-first 3-day outlook; a partial cache hit refetches the full week."""
        dates = [insight_date + timedelta(days=i) for i in range(WEATHER_OUTLOOK_DAYS)]
        forecasts = self.enrichment.weather_cache.get_forecasts(lat, lng, dates)
        if len(forecasts) < WEATHER_OUTLOOK_DAYS:
            forecasts = self.enrichment.weather_service.get_forecast(lat, lng, WEATHER_FETCH_DAYS)
            if forecasts:
                self.enrichment.weather_cache.save_forecasts(lat, lng, forecasts)
        outlook = sorted(
            (f for f in forecasts if f.date >= insight_date), key=lambda f: f.date,
        )[:WEATHER_OUTLOOK_DAYS]
        if not outlook:
            return None
        return build_weather_context(outlook)

    # ═════════════════════════════════════════════════════════════════════
    #  Project insight
    # ═════════════════════════════════════════════════════════════════════

    def build_project_insight(
        self,
        tenant_id: int,
        project: ProjectRecord,
        phase_insights: list[PhaseInsight],
        deadlines: dict[int, date | None],
        insight_date: date,
    ) -> ProjectInsight:
        insight = self.aggregator.aggregate(
            project.id, phase_insights, deadlines, insight_date, tenant_id=tenant_id,
        )
        texts = self.text_generator.generate_project_text(ProjectTextInput(
            project_name=project.name,
            status=insight.status,
            total_budget_hours=insight.total_budget_hours,
            total_actual_hours=insight.total_actual_hours,
            total_remaining_hours=insight.total_remaining_hours,
            overall_progress_percent=insight.overall_progress_percent,
            phases_count=insight.phases_count,
            phases_on_track=insight.phases_on_track,
            phases_at_risk=insight.phases_at_risk,
            phases_behind=insight.phases_behind,
            phases_completed=insight.phases_completed,
            projected_completion_date=insight.projected_completion_date,
            project_deadline_delta=insight.project_deadline_delta,
        ))
        insight.summary_text = texts.summary_text
        insight.detail_text = texts.detail_text
        insight.recommendation_text = texts.recommendation_text
        return insight
