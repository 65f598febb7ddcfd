"""
Burn rate estimation over irregularly spaced phase snapshots.

The actual (IST) rate only counts positive progress; booking corrections
that lower the cumulative total are dropped. The planned (PLAN) rate keeps
negative deltas (allocations removed).
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from phaseplan.analytics.types import BurnRate, Snapshot, Trend

TREND_MIN_SAMPLES = 4
# Half-over-half change, in percent of the earlier half
TREND_UP_PERCENT = 115
TREND_DOWN_PERCENT = 85


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _day_gap(previous: Snapshot, current: Snapshot) -> int:
    return round((current.date - previous.date).days)


class BurnRateEstimator:
    """Average daily IST/PLAN progress plus a coarse IST trend."""

    def __init__(self, min_data_points: int = 3):
        self.min_data_points = min_data_points

    def estimate(self, snapshots: Iterable[Snapshot]) -> BurnRate | None:
        """Return the burn rate, or None when fewer than two snapshots exist."""
        ordered = sorted(snapshots, key=lambda s: s.date)
        if len(ordered) < 2:
            return None

        actual_samples: list[float] = []
        planned_samples: list[float] = []
        for previous, current in zip(ordered, ordered[1:]):
            days = _day_gap(previous, current)
            if days <= 0:
                continue
            delta_actual = current.actual_hours - previous.actual_hours
            if delta_actual > 0:
                actual_samples.append(delta_actual / days)
            planned_samples.append((current.planned_hours - previous.planned_hours) / days)

        return BurnRate(
            actual_rate_per_day=_mean(actual_samples),
            actual_sample_count=len(actual_samples),
            actual_trend=self.trend(actual_samples),
            planned_rate_per_day=_mean(planned_samples),
            planned_sample_count=len(planned_samples),
        )

    @staticmethod
    def trend(samples: Sequence[float]) -> Trend:
        """Compare the mean of the later half of the samples with the earlier half."""
        if len(samples) < TREND_MIN_SAMPLES:
            return Trend.STABLE

        mid = len(samples) // 2
        first = _mean(samples[:mid])
        second = _mean(samples[mid:])

        if second * 100 > first * TREND_UP_PERCENT:
            return Trend.UP
        if second * 100 < first * TREND_DOWN_PERCENT:
            return Trend.DOWN
        return Trend.STABLE

    def has_enough_data(self, snapshots: Sequence[Snapshot]) -> bool:
        return len(snapshots) >= self.min_data_points
