"""
Phase Planning Platform
Scheduled Jobs.

Concrete job implementations that run on a schedule.

Jobs:
    - phase_snapshots: Daily snapshot of every active phase (05:00)
    - insight_generation: Phase & project insights from the snapshots (05:15)
    - weather_refresh: Warms the weather cache for all active sites (06:00)
"""

from __future__ import annotations

import logging
from typing import Any

from phaseplan.ai.gateway import AnthropicProvider, LLMGateway
from phaseplan.analytics.burn_rate import BurnRateEstimator
from phaseplan.analytics.progression import ProgressionForecaster
from phaseplan.integrations.weather_gateway import OpenMeteoWeatherService
from phaseplan.services.analytics_repository import (
    SqlInsightStore,
    SqlSnapshotSource,
    SqlTenantCatalog,
)
from phaseplan.services.availability_analyzer import StaffAvailabilityAnalyzer
from phaseplan.services.insight_orchestrator import InsightOrchestrator
from phaseplan.services.insight_text import InsightTextGenerator
from phaseplan.services.ports import Enrichment
from phaseplan.services.scheduler_service import register_job
from phaseplan.services.snapshot_service import PhaseSnapshotGenerator
from phaseplan.services.weather_cache import SqlWeatherCache, refresh_project_locations

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Wiring
# ═══════════════════════════════════════════════════════════════════════════

def build_weather_service(app) -> OpenMeteoWeatherService:
    return OpenMeteoWeatherService(
        base_url=app.config["WEATHER_API_URL"],
        timeout=app.config["WEATHER_TIMEOUT"],
        timezone=app.config["WEATHER_TIMEZONE"],
    )


def build_text_generator(app) -> InsightTextGenerator:
    api_key = app.config.get("ANTHROPIC_API_KEY")
    providers = {"anthropic": AnthropicProvider(api_key=api_key)} if api_key else {}
    return InsightTextGenerator(
        gateway=LLMGateway(providers=providers),
        model=app.config["INSIGHT_LLM_MODEL"],
    )


def build_insight_orchestrator(app) -> InsightOrchestrator:
    """Wire the SQL collaborators, text generator and optional enrichment."""
    enrichment = None
    if app.config.get("INSIGHT_ENHANCED_ENABLED"):
        enrichment = Enrichment(
            availability=StaffAvailabilityAnalyzer(app.config["INSIGHT_HOURS_PER_DAY"]),
            weather_service=build_weather_service(app),
            weather_cache=SqlWeatherCache(),
        )
    return InsightOrchestrator(
        SqlTenantCatalog(),
        SqlSnapshotSource(),
        SqlInsightStore(),
        build_text_generator(app),
        enrichment,
        estimator=BurnRateEstimator(app.config["INSIGHT_MIN_DATA_POINTS"]),
        forecaster=ProgressionForecaster(app.config["INSIGHT_HOURS_PER_DAY"]),
        snapshot_window_days=app.config["INSIGHT_SNAPSHOT_WINDOW_DAYS"],
    )


# ═══════════════════════════════════════════════════════════════════════════
#  Job 1: Phase Snapshots
# ═══════════════════════════════════════════════════════════════════════════

@register_job("phase_snapshots", at="05:00")
def generate_phase_snapshots(app) -> dict[str, Any]:
    """Capture today's IST/PLAN/SOLL snapshot for every active phase."""
    results = PhaseSnapshotGenerator().run().to_dict()
    logger.info("Phase snapshots: %s", results)
    return results


# ═══════════════════════════════════════════════════════════════════════════
#  Job 2: Insight Generation
# ═══════════════════════════════════════════════════════════════════════════

@register_job("insight_generation", at="05:15")
def generate_insights(app) -> dict[str, Any]:
    """Compute phase and project insights from the recent snapshots."""
    results = build_insight_orchestrator(app).run().to_dict()
    logger.info("Insight generation: %s", results)
    return results


# ═══════════════════════════════════════════════════════════════════════════
#  Job 3: Weather Refresh
# ═══════════════════════════════════════════════════════════════════════════

@register_job("weather_refresh", at="06:00")
def refresh_weather_cache(app) -> dict[str, Any]:
    """Refetch the 7-day forecast for every active project site."""
    results = refresh_project_locations(build_weather_service(app), SqlWeatherCache())
    logger.info("Weather refresh: %s", results)
    return results
