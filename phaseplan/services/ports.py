"""
Phase Planning Platform
Insight collaborator interfaces.

The insight orchestrator only talks to these abstract collaborators.
SQLAlchemy-backed implementations live in ``analytics_repository``,
``weather_cache`` and ``availability_analyzer``; the Open-Meteo client in
``phaseplan.integrations.weather_gateway``; narrative text in
``insight_text``. Tests substitute in-memory fakes.

Enhanced mode (staff availability + weather) is one optional
``Enrichment`` bundle: all three collaborators or none.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date

from phaseplan.analytics.types import (
    ConstructionRating,
    InsightStatus,
    PhaseInsight,
    ProjectInsight,
    Snapshot,
    SuggestedAction,
    Trend,
)


# ═════════════════════════════════════════════════════════════════════════════
# Catalog records
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class PhaseRecord:
    id: int
    name: str
    start_date: date | None = None
    end_date: date | None = None
    budget_hours: float = 0.0
    actual_hours: float = 0.0
    planned_hours: float = 0.0
    description: str | None = None


@dataclass
class ProjectRecord:
    id: int
    tenant_id: int
    name: str
    address: str | None = None
    description: str | None = None
    address_lat: float | None = None
    address_lng: float | None = None
    phases: list[PhaseRecord] = field(default_factory=list)

    @property
    def has_coordinates(self) -> bool:
        return self.address_lat is not None and self.address_lng is not None


# ═════════════════════════════════════════════════════════════════════════════
# Weather & availability context
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class DayForecast:
    date: date
    description: str
    temp_min: float
    temp_max: float
    precipitation_probability: float
    wind_speed_max: float
    weather_code: int | None = None


@dataclass
class WeatherDay:
    date: date
    description: str
    temp_min: float
    temp_max: float
    precipitation_probability: float
    wind_speed_max: float
    construction_rating: ConstructionRating

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "description": self.description,
            "temp_min": self.temp_min,
            "temp_max": self.temp_max,
            "precipitation_probability": self.precipitation_probability,
            "wind_speed_max": self.wind_speed_max,
            "construction_rating": self.construction_rating.value,
        }


@dataclass
class WeatherContext:
    days: list[WeatherDay]
    has_rain_risk: bool = False
    has_frost_risk: bool = False
    has_wind_risk: bool = False


@dataclass
class AvailableUser:
    id: int
    name: str
    available_days: list[date]
    available_hours: float
    utilization_percent: int
    email: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "available_days": [d.isoformat() for d in self.available_days],
            "available_hours": self.available_hours,
            "utilization_percent": self.utilization_percent,
        }


@dataclass
class OverloadedUser:
    id: int
    name: str
    utilization_percent: int

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "utilization_percent": self.utilization_percent}


@dataclass
class AvailabilityContext:
    available_users: list[AvailableUser] = field(default_factory=list)
    overloaded_users: list[OverloadedUser] = field(default_factory=list)


# ═════════════════════════════════════════════════════════════════════════════
# Narrative text inputs / outputs
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class GeneratedTexts:
    summary_text: str
    detail_text: str
    recommendation_text: str
    suggested_action: SuggestedAction | None = None


@dataclass
class PhaseTextInput:
    phase_name: str
    project_name: str
    status: InsightStatus
    budget_hours: float
    actual_hours: float
    remaining_hours: float
    planned_hours: float
    progress_percent: int
    deadline: date | None = None
    days_until_deadline: int | None = None
    burn_rate_actual: float | None = None
    burn_rate_trend: Trend | None = None
    deadline_delta_actual: int | None = None


@dataclass
class EnhancedPhaseTextInput(PhaseTextInput):
    project_address: str | None = None
    project_description: str | None = None
    availability: AvailabilityContext | None = None
    weather: WeatherContext | None = None


@dataclass
class ProjectTextInput:
    project_name: str
    status: InsightStatus
    total_budget_hours: float
    total_actual_hours: float
    total_remaining_hours: float
    overall_progress_percent: int
    phases_count: int
    phases_on_track: int
    phases_at_risk: int
    phases_behind: int
    phases_completed: int
    projected_completion_date: date | None = None
    project_deadline_delta: int | None = None


# ═════════════════════════════════════════════════════════════════════════════
# Collaborator interfaces
# ═════════════════════════════════════════════════════════════════════════════

class TenantCatalog(ABC):
    @abstractmethod
    def list_tenants(self) -> list[int]:
        ...

    @abstractmethod
    def list_active_projects_with_phases(self, tenant_id: int) -> list[ProjectRecord]:
        ...


class SnapshotSource(ABC):
    @abstractmethod
    def get_snapshots(self, phase_id: int, start: date, end: date) -> list[Snapshot]:
        """Return the phase's snapshots dated within [start, end]."""
        ...


class InsightStore(ABC):
    """Upserts keyed by (entity id, insight date); last writer wins."""

    @abstractmethod
    def upsert_phase_insight(self, insight: PhaseInsight) -> PhaseInsight:
        ...

    @abstractmethod
    def upsert_project_insight(self, insight: ProjectInsight) -> ProjectInsight:
        ...

    def discard_pending(self) -> None:
        """Drop uncommitted work left behind by a failed phase or project."""


class NarrativeGenerator(ABC):
    @abstractmethod
    def generate_phase_text(self, data: PhaseTextInput) -> GeneratedTexts:
        ...

    @abstractmethod
    def generate_enhanced_phase_text(self, data: EnhancedPhaseTextInput) -> GeneratedTexts:
        """Like generate_phase_text, optionally filling ``suggested_action``."""
        ...

    @abstractmethod
    def generate_project_text(self, data: ProjectTextInput) -> GeneratedTexts:
        ...


class AvailabilityAnalyzer(ABC):
    @abstractmethod
    def find_available(
        self, tenant_id: int, start: date, end: date, min_hours: float = 8,
    ) -> list[AvailableUser]:
        ...

    @abstractmethod
    def find_overloaded(self, tenant_id: int, start: date, end: date) -> list[OverloadedUser]:
        ...


class WeatherService(ABC):
    @abstractmethod
    def get_forecast(self, lat: float, lng: float, days: int = 7) -> list[DayForecast]:
        ...


class WeatherCache(ABC):
    @abstractmethod
    def get_forecasts(self, lat: float, lng: float, dates: list[date]) -> list[DayForecast]:
        ...

    @abstractmethod
    def save_forecasts(self, lat: float, lng: float, forecasts: list[DayForecast]) -> None:
        ...


@dataclass
class Enrichment:
    """Enhanced-mode collaborators, supplied together or not at all."""
    availability: AvailabilityAnalyzer
    weather_service: WeatherService
    weather_cache: WeatherCache
