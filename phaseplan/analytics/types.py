"""
Insight domain types.

Enums are ``str`` subclasses so they serialise straight into JSON columns
and API responses. Dataclasses carry ``to_dict()`` for the same reason.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum


def _iso(value: date | None) -> str | None:
    return value.isoformat() if value else None


# ═════════════════════════════════════════════════════════════════════════════
# Enums
# ═════════════════════════════════════════════════════════════════════════════

class InsightStatus(str, Enum):
    ON_TRACK = "on_track"
    AHEAD = "ahead"
    AT_RISK = "at_risk"
    BEHIND = "behind"
    CRITICAL = "critical"
    NOT_STARTED = "not_started"
    COMPLETED = "completed"
    UNKNOWN = "unknown"


class Trend(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class DataQuality(str, Enum):
    GOOD = "good"
    LIMITED = "limited"
    INSUFFICIENT = "insufficient"


class SuggestedActionType(str, Enum):
    ASSIGN_USER = "assign_user"
    RESCHEDULE = "reschedule"
    ALERT = "alert"
    NONE = "none"


class ConstructionRating(str, Enum):
    GOOD = "good"
    MODERATE = "moderate"
    POOR = "poor"


# ═════════════════════════════════════════════════════════════════════════════
# Inputs & intermediate results
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Snapshot:
    """Cumulative hours of one phase on one calendar day."""
    date: date
    actual_hours: float
    planned_hours: float
    budget_hours: float
    allocations_count: int = 0
    allocated_users_count: int = 0


@dataclass(frozen=True)
class BurnRate:
    """Average daily progress derived from consecutive snapshots."""
    actual_rate_per_day: float
    actual_sample_count: int
    actual_trend: Trend
    planned_rate_per_day: float
    planned_sample_count: int


@dataclass(frozen=True)
class ProgressionMetrics:
    remaining_hours: float
    progress_percent: int
    working_days_until_deadline: int
    days_remaining_actual: int | None = None
    completion_date_actual: date | None = None
    deadline_delta_actual: int | None = None
    days_remaining_planned: int | None = None
    completion_date_planned: date | None = None
    deadline_delta_planned: int | None = None
    capacity_gap_hours: float = 0.0
    capacity_gap_days: float = 0.0


@dataclass
class SuggestedAction:
    """Tagged next step attached to an enhanced phase insight."""
    type: SuggestedActionType
    reason: str
    user_id: int | None = None
    user_name: str | None = None
    available_days: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        d = {"type": self.type.value, "reason": self.reason}
        if self.user_id is not None:
            d["user_id"] = self.user_id
        if self.user_name:
            d["user_name"] = self.user_name
        if self.available_days:
            d["available_days"] = list(self.available_days)
        return d

    @classmethod
    def from_dict(cls, data: dict | None) -> SuggestedAction | None:
        if not data:
            return None
        try:
            action_type = SuggestedActionType(data.get("type", "none"))
        except ValueError:
            action_type = SuggestedActionType.NONE
        return cls(
            type=action_type,
            reason=str(data.get("reason") or ""),
            user_id=data.get("user_id"),
            user_name=data.get("user_name"),
            available_days=[str(d) for d in data.get("available_days") or []],
        )


# ═════════════════════════════════════════════════════════════════════════════
# Insights
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class PhaseInsight:
    """Point-in-time insight for one phase on one insight date."""
    phase_id: int
    insight_date: date
    status: InsightStatus
    data_quality: DataQuality
    remaining_hours: float
    progress_percent: int
    tenant_id: int | None = None
    sample_count: int = 0
    planned_hours: float = 0.0

    burn_rate_actual: float | None = None
    burn_rate_actual_trend: Trend | None = None
    days_remaining_actual: int | None = None
    completion_date_actual: date | None = None
    deadline_delta_actual: int | None = None

    burn_rate_planned: float | None = None
    days_remaining_planned: int | None = None
    completion_date_planned: date | None = None
    deadline_delta_planned: int | None = None

    capacity_gap_hours: float | None = None
    capacity_gap_days: float | None = None

    summary_text: str = ""
    detail_text: str = ""
    recommendation_text: str = ""
    suggested_action: SuggestedAction | None = None

    def to_dict(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "phase_id": self.phase_id,
            "insight_date": _iso(self.insight_date),
            "status": self.status.value,
            "data_quality": self.data_quality.value,
            "data_points_count": self.sample_count,
            "remaining_hours": self.remaining_hours,
            "progress_percent": self.progress_percent,
            "burn_rate_actual": self.burn_rate_actual,
            "burn_rate_actual_trend": (
                self.burn_rate_actual_trend.value if self.burn_rate_actual_trend else None
            ),
            "days_remaining_actual": self.days_remaining_actual,
            "completion_date_actual": _iso(self.completion_date_actual),
            "deadline_delta_actual": self.deadline_delta_actual,
            "burn_rate_planned": self.burn_rate_planned,
            "days_remaining_planned": self.days_remaining_planned,
            "completion_date_planned": _iso(self.completion_date_planned),
            "deadline_delta_planned": self.deadline_delta_planned,
            "capacity_gap_hours": self.capacity_gap_hours,
            "capacity_gap_days": self.capacity_gap_days,
            "summary_text": self.summary_text,
            "detail_text": self.detail_text,
            "recommendation_text": self.recommendation_text,
            "suggested_action": self.suggested_action.to_dict() if self.suggested_action else None,
        }


@dataclass
class ProjectInsight:
    """Roll-up of a project's phase insights for one insight date."""
    project_id: int
    insight_date: date
    status: InsightStatus
    tenant_id: int | None = None
    total_budget_hours: float = 0.0
    total_actual_hours: float = 0.0
    total_planned_hours: float = 0.0
    total_remaining_hours: float = 0.0
    overall_progress_percent: int = 0
    phases_count: int = 0
    phases_on_track: int = 0
    phases_at_risk: int = 0
    phases_behind: int = 0
    phases_completed: int = 0
    latest_phase_deadline: date | None = None
    projected_completion_date: date | None = None
    project_deadline_delta: int | None = None
    summary_text: str = ""
    detail_text: str = ""
    recommendation_text: str = ""

    def to_dict(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "project_id": self.project_id,
            "insight_date": _iso(self.insight_date),
            "status": self.status.value,
            "total_budget_hours": self.total_budget_hours,
            "total_actual_hours": self.total_actual_hours,
            "total_planned_hours": self.total_planned_hours,
            "total_remaining_hours": self.total_remaining_hours,
            "overall_progress_percent": self.overall_progress_percent,
            "phases_count": self.phases_count,
            "phases_on_track": self.phases_on_track,
            "phases_at_risk": self.phases_at_risk,
            "phases_behind": self.phases_behind,
            "phases_completed": self.phases_completed,
            "latest_phase_deadline": _iso(self.latest_phase_deadline),
            "projected_completion_date": _iso(self.projected_completion_date),
            "project_deadline_delta": self.project_deadline_delta,
            "summary_text": self.summary_text,
            "detail_text": self.detail_text,
            "recommendation_text": self.recommendation_text,
        }
