"""
Project roll-up of phase insights.

Only the phase insights are available here, not the snapshots behind
them, so each phase's SOLL/IST is back-derived from ``remaining_hours``
and ``progress_percent``. The inverse is lossy when progress was rounded;
project totals are an approximation of the snapshot sums.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping, Sequence
from datetime import date

from phaseplan.analytics.calendar import calendar_days_between
from phaseplan.analytics.progression import percent_of
from phaseplan.analytics.types import InsightStatus, PhaseInsight, ProjectInsight

# Most attention-needed status first
PROJECT_STATUS_PRIORITY: tuple[InsightStatus, ...] = (
    InsightStatus.CRITICAL,
    InsightStatus.BEHIND,
    InsightStatus.AT_RISK,
    InsightStatus.ON_TRACK,
    InsightStatus.AHEAD,
    InsightStatus.NOT_STARTED,
    InsightStatus.COMPLETED,
    InsightStatus.UNKNOWN,
)

NO_ACTIVE_PHASES_TEXT = "No active phases."


class ProjectAggregator:
    """Combine one run's phase insights into a single project insight."""

    def aggregate(
        self,
        project_id: int,
        phase_insights: Sequence[PhaseInsight],
        phase_deadlines: Mapping[int, date | None],
        insight_date: date,
        tenant_id: int | None = None,
    ) -> ProjectInsight:
        if not phase_insights:
            return ProjectInsight(
                project_id=project_id,
                insight_date=insight_date,
                tenant_id=tenant_id,
                status=InsightStatus.UNKNOWN,
                summary_text=NO_ACTIVE_PHASES_TEXT,
            )

        total_budget = 0.0
        total_actual = 0.0
        total_planned = 0.0
        total_remaining = 0.0
        for insight in phase_insights:
            remaining = insight.remaining_hours or 0.0
            total_remaining += remaining
            total_planned += insight.planned_hours or 0.0
            if insight.progress_percent < 100:
                implied_budget = remaining / (1 - insight.progress_percent / 100)
                total_budget += implied_budget
                total_actual += implied_budget - remaining
            else:
                total_actual += remaining

        counts = Counter(insight.status for insight in phase_insights)

        latest_deadline = max(
            (d for d in phase_deadlines.values() if d is not None), default=None,
        )
        projected_completion = max(
            (i.completion_date_actual for i in phase_insights if i.completion_date_actual),
            default=None,
        )
        project_delta = None
        if latest_deadline is not None and projected_completion is not None:
            project_delta = calendar_days_between(latest_deadline, projected_completion)

        return ProjectInsight(
            project_id=project_id,
            insight_date=insight_date,
            tenant_id=tenant_id,
            status=self.determine_project_status(phase_insights),
            total_budget_hours=total_budget,
            total_actual_hours=total_actual,
            total_planned_hours=total_planned,
            total_remaining_hours=total_remaining,
            overall_progress_percent=percent_of(total_actual, total_budget),
            phases_count=len(phase_insights),
            phases_on_track=counts[InsightStatus.ON_TRACK] + counts[InsightStatus.AHEAD],
            phases_at_risk=counts[InsightStatus.AT_RISK],
            phases_behind=counts[InsightStatus.BEHIND] + counts[InsightStatus.CRITICAL],
            phases_completed=counts[InsightStatus.COMPLETED],
            latest_phase_deadline=latest_deadline,
            projected_completion_date=projected_completion,
            project_deadline_delta=project_delta,
        )

    @staticmethod
    def determine_project_status(phase_insights: Sequence[PhaseInsight]) -> InsightStatus:
        present = {insight.status for insight in phase_insights}
        for status in PROJECT_STATUS_PRIORITY:
            if status in present:
                return status
        return InsightStatus.UNKNOWN
