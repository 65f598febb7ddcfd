"""
Progression forecasting & status classification.

Turns the latest snapshot of a phase plus its burn rate into remaining
work, business-day completion forecasts, deadline deltas and a capacity
gap, then classifies the phase into an ``InsightStatus``.

Deadline delta convention: positive = forecast finishes late,
negative = early. Both sides are measured in working days from "today".
"""

from __future__ import annotations

import math
from datetime import date

from phaseplan.analytics.calendar import add_working_days, working_days_between
from phaseplan.analytics.types import (
    BurnRate,
    DataQuality,
    InsightStatus,
    ProgressionMetrics,
    Snapshot,
)

DEFAULT_HOURS_PER_DAY = 8.0

# Upper bounds (inclusive) of the deadline delta per status, checked in order
STATUS_DELTA_BANDS: tuple[tuple[int, InsightStatus], ...] = (
    (-5, InsightStatus.AHEAD),
    (0, InsightStatus.ON_TRACK),
    (3, InsightStatus.AT_RISK),
    (7, InsightStatus.BEHIND),
)

GOOD_QUALITY_MIN_SAMPLES = 5
LIMITED_QUALITY_MIN_SAMPLES = 3


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def percent_of(part: float, whole: float) -> int:
    """Rounded percentage, 0 for a non-positive whole; no upper clamp."""
    if whole <= 0:
        return 0
    return round_half_up(part / whole * 100)


class ProgressionForecaster:
    """Forecast calculator over the Mon–Fri business calendar."""

    def __init__(self, hours_per_day: float = DEFAULT_HOURS_PER_DAY):
        self.hours_per_day = hours_per_day

    # ── Forecast ─────────────────────────────────────────────────────────

    def forecast(
        self,
        latest: Snapshot,
        burn_rate: BurnRate | None,
        deadline: date | None,
        today: date,
    ) -> ProgressionMetrics:
        remaining = max(0.0, latest.budget_hours - latest.actual_hours)
        progress = percent_of(latest.actual_hours, latest.budget_hours)
        working_days = self.working_days_until(today, deadline)

        actual = self._project(
            remaining, burn_rate.actual_rate_per_day if burn_rate else None,
            deadline, working_days, today,
        )
        planned = self._project(
            remaining, burn_rate.planned_rate_per_day if burn_rate else None,
            deadline, working_days, today,
        )

        future_planned = max(0.0, latest.planned_hours - latest.actual_hours)
        gap_hours = max(0.0, remaining - future_planned)
        gap_days = gap_hours / self.hours_per_day if self.hours_per_day > 0 else 0.0

        return ProgressionMetrics(
            remaining_hours=remaining,
            progress_percent=progress,
            working_days_until_deadline=working_days,
            days_remaining_actual=actual[0],
            completion_date_actual=actual[1],
            deadline_delta_actual=actual[2],
            days_remaining_planned=planned[0],
            completion_date_planned=planned[1],
            deadline_delta_planned=planned[2],
            capacity_gap_hours=gap_hours,
            capacity_gap_days=gap_days,
        )

    @staticmethod
    def _project(remaining, rate, deadline, working_days, today):
        """Return (days_remaining, completion_date, deadline_delta) for one rate."""
        if rate is None or rate <= 0:
            return None, None, None
        days_remaining = math.ceil(remaining / rate)
        completion = add_working_days(today, days_remaining)
        delta = days_remaining - working_days if deadline is not None else None
        return days_remaining, completion, delta

    @staticmethod
    def working_days_until(today: date, deadline: date | None) -> int:
        if deadline is None:
            return 0
        return working_days_between(today, deadline)

    # ── Classification ───────────────────────────────────────────────────

    @staticmethod
    def determine_status(
        progress_percent: int,
        deadline_delta: int | None,
        has_started: bool,
        is_completed: bool,
    ) -> InsightStatus:
        if is_completed or progress_percent >= 100:
            return InsightStatus.COMPLETED
        if not has_started or progress_percent == 0:
            return InsightStatus.NOT_STARTED
        if deadline_delta is None:
            return InsightStatus.UNKNOWN
        for upper, status in STATUS_DELTA_BANDS:
            if deadline_delta <= upper:
                return status
        return InsightStatus.CRITICAL

    @staticmethod
    def determine_data_quality(sample_count: int) -> DataQuality:
        if sample_count >= GOOD_QUALITY_MIN_SAMPLES:
            return DataQuality.GOOD
        if sample_count >= LIMITED_QUALITY_MIN_SAMPLES:
            return DataQuality.LIMITED
        return DataQuality.INSUFFICIENT
