"""
Tests — burn rate estimation and the business calendar.

Covers:
    1. Working-day arithmetic (half-open counting, forward stepping)
    2. BurnRateEstimator (IST positive-only, PLAN signed, day gaps)
    3. Trend classification
"""

from datetime import date, timedelta

import pytest

from phaseplan.analytics.burn_rate import BurnRateEstimator
from phaseplan.analytics.calendar import (
    add_working_days,
    calendar_days_between,
    is_working_day,
    working_days_between,
)
from phaseplan.analytics.types import Snapshot, Trend

MONDAY = date(2024, 3, 11)


def _snap(day_offset, actual, planned=0.0, budget=100.0):
    return Snapshot(
        date=MONDAY + timedelta(days=day_offset),
        actual_hours=actual,
        planned_hours=planned,
        budget_hours=budget,
    )


# ═══════════════════════════════════════════════════════════════════════════
#  1. BUSINESS CALENDAR
# ═══════════════════════════════════════════════════════════════════════════

class TestCalendar:

    def test_weekend_is_not_working_day(self):
        assert is_working_day(MONDAY)
        assert not is_working_day(MONDAY + timedelta(days=5))
        assert not is_working_day(MONDAY + timedelta(days=6))

    def test_working_days_half_open(self):
        # Mon → next Mon counts Mon..Fri
        assert working_days_between(MONDAY, MONDAY + timedelta(days=7)) == 5
        assert working_days_between(MONDAY, MONDAY) == 0

    def test_working_days_reverse_is_zero(self):
        assert working_days_between(MONDAY + timedelta(days=3), MONDAY) == 0

    def test_working_days_across_weekend(self):
        friday = MONDAY + timedelta(days=4)
        tuesday = MONDAY + timedelta(days=8)
        # Fri, Mon
        assert working_days_between(friday, tuesday) == 2

    def test_add_working_days_skips_weekend(self):
        friday = MONDAY + timedelta(days=4)
        assert add_working_days(friday, 1) == MONDAY + timedelta(days=7)
        assert add_working_days(friday, 0) == friday

    def test_add_working_days_from_saturday(self):
        saturday = MONDAY + timedelta(days=5)
        assert add_working_days(saturday, 1) == MONDAY + timedelta(days=7)

    def test_calendar_days_signed(self):
        assert calendar_days_between(MONDAY, MONDAY + timedelta(days=10)) == 10
        assert calendar_days_between(MONDAY + timedelta(days=10), MONDAY) == -10


# ═══════════════════════════════════════════════════════════════════════════
#  2. ESTIMATOR
# ═══════════════════════════════════════════════════════════════════════════

class TestBurnRateEstimator:

    def test_fewer_than_two_snapshots(self):
        est = BurnRateEstimator()
        assert est.estimate([]) is None
        assert est.estimate([_snap(0, 10)]) is None

    def test_constant_daily_progress(self):
        rate = BurnRateEstimator().estimate([_snap(i, 10 * i) for i in range(5)])
        assert rate.actual_rate_per_day == pytest.approx(10.0)
        assert rate.actual_sample_count == 4
        assert rate.actual_trend == Trend.STABLE

    def test_gap_divides_delta(self):
        rate = BurnRateEstimator().estimate([_snap(0, 0), _snap(4, 20)])
        assert rate.actual_rate_per_day == pytest.approx(5.0)
        assert rate.actual_sample_count == 1

    def test_unsorted_input_is_sorted(self):
        rate = BurnRateEstimator().estimate([_snap(2, 20), _snap(0, 0), _snap(1, 10)])
        assert rate.actual_rate_per_day == pytest.approx(10.0)

    def test_corrections_ignored_for_actual(self):
        rate = BurnRateEstimator().estimate([_snap(0, 10), _snap(1, 20), _snap(2, 15), _snap(3, 25)])
        # Only +10 and +10 count
        assert rate.actual_sample_count == 2
        assert rate.actual_rate_per_day == pytest.approx(10.0)

    def test_no_positive_progress(self):
        rate = BurnRateEstimator().estimate([_snap(0, 10), _snap(1, 10)])
        assert rate.actual_rate_per_day == 0.0
        assert rate.actual_sample_count == 0
        assert rate.actual_trend == Trend.STABLE

    def test_planned_keeps_negative_deltas(self):
        rate = BurnRateEstimator().estimate([
            _snap(0, 0, planned=40), _snap(1, 0, planned=48), _snap(2, 0, planned=32),
        ])
        assert rate.planned_sample_count == 2
        assert rate.planned_rate_per_day == pytest.approx(-4.0)

    def test_same_day_duplicates_skipped(self):
        rate = BurnRateEstimator().estimate([_snap(0, 0), _snap(0, 5), _snap(1, 15)])
        assert rate.actual_sample_count == 1
        assert rate.actual_rate_per_day == pytest.approx(10.0)

    def test_has_enough_data(self):
        est = BurnRateEstimator(min_data_points=3)
        assert not est.has_enough_data([_snap(0, 0), _snap(1, 1)])
        assert est.has_enough_data([_snap(0, 0), _snap(1, 1), _snap(2, 2)])


# ═══════════════════════════════════════════════════════════════════════════
#  3. TREND
# ═══════════════════════════════════════════════════════════════════════════

class TestTrend:

    def test_too_few_samples_is_stable(self):
        assert BurnRateEstimator.trend([1, 10, 100]) == Trend.STABLE

    def test_accelerating(self):
        assert BurnRateEstimator.trend([4, 4, 8, 8]) == Trend.UP

    def test_slowing(self):
        assert BurnRateEstimator.trend([8, 8, 4, 4]) == Trend.DOWN

    def test_exact_boundaries_are_stable(self):
        # 15 % up and 15 % down are not enough
        assert BurnRateEstimator.trend([20, 20, 23, 23]) == Trend.STABLE
        assert BurnRateEstimator.trend([20, 20, 17, 17]) == Trend.STABLE

    def test_odd_count_puts_middle_in_second_half(self):
        # halves: [10, 10] vs [10, 20, 20] → 16.67 > 11.5
        assert BurnRateEstimator.trend([10, 10, 10, 20, 20]) == Trend.UP
