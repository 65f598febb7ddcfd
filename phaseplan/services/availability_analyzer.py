"""
Staff availability analysis for enhanced insights.

Works out which active users of a tenant still have free working days in
a date range, and who is booked above 100 %. Weekends are never working
days; absence days count as neither free nor allocated.
"""

import logging
from collections import defaultdict
from datetime import timedelta

from phaseplan.analytics.calendar import is_working_day
from phaseplan.models.auth import User
from phaseplan.models.planning import Absence, Allocation
from phaseplan.services.ports import AvailabilityAnalyzer, AvailableUser, OverloadedUser

logger = logging.getLogger(__name__)

DEFAULT_HOURS_PER_DAY = 8.0


def _working_days(start, end):
    """Mon–Fri days in [start, end], both inclusive."""
    days = []
    day = start
    while day <= end:
        if is_working_day(day):
            days.append(day)
        day += timedelta(days=1)
    return days


class StaffAvailabilityAnalyzer(AvailabilityAnalyzer):

    def __init__(self, hours_per_day: float = DEFAULT_HOURS_PER_DAY):
        self.hours_per_day = hours_per_day

    # ── Queries ──────────────────────────────────────────────────────────

    def find_available(self, tenant_id, start, end, min_hours=8):
        """Users with at least ``min_hours`` free, most free hours first."""
        users = self._active_users(tenant_id)
        working_days = _working_days(start, end)
        if not users or not working_days:
            return []

        user_ids = [u.id for u in users]
        allocated = self._allocated_hours(tenant_id, user_ids, start, end)
        absent = self._absence_days(tenant_id, user_ids, start, end)
        expected = len(working_days) * self.hours_per_day

        result = []
        for user in users:
            per_day = allocated.get(user.id, {})
            user_absent = absent.get(user.id, set())
            free_days = []
            free_hours = 0.0
            booked = 0.0
            for day in working_days:
                if day in user_absent:
                    continue
                hours = per_day.get(day, 0.0)
                booked += hours
                free = max(0.0, self.hours_per_day - hours)
                if free > 0:
                    free_hours += free
                    free_days.append(day)

            if free_hours >= min_hours:
                result.append(AvailableUser(
                    id=user.id,
                    name=user.display_name,
                    email=user.email,
                    available_days=free_days,
                    available_hours=free_hours,
                    utilization_percent=round(booked / expected * 100) if expected else 0,
                ))

        result.sort(key=lambda u: u.available_hours, reverse=True)
        return result

    def find_overloaded(self, tenant_id, start, end):
        """Users whose allocations exceed the expected hours of the range."""
        users = self._active_users(tenant_id)
        working_days = _working_days(start, end)
        if not users or not working_days:
            return []

        allocated = self._allocated_hours(tenant_id, [u.id for u in users], start, end)
        expected = len(working_days) * self.hours_per_day

        result = []
        for user in users:
            total = sum(allocated.get(user.id, {}).values())
            utilization = round(total / expected * 100)
            if utilization > 100:
                result.append(OverloadedUser(
                    id=user.id, name=user.display_name, utilization_percent=utilization,
                ))

        result.sort(key=lambda u: u.utilization_percent, reverse=True)
        return result

    # ── Loading ──────────────────────────────────────────────────────────

    @staticmethod
    def _active_users(tenant_id):
        return (User.query
                .filter_by(tenant_id=tenant_id, status="active")
                .order_by(User.id)
                .all())

    @staticmethod
    def _allocated_hours(tenant_id, user_ids, start, end):
        """user_id → {date: summed planned hours}."""
        rows = (Allocation.query_for_tenant(tenant_id)
                .filter(Allocation.user_id.in_(user_ids),
                        Allocation.date >= start,
                        Allocation.date <= end)
                .all())
        hours = defaultdict(lambda: defaultdict(float))
        for row in rows:
            hours[row.user_id][row.date] += row.planned_hours or 0.0
        return hours

    @staticmethod
    def _absence_days(tenant_id, user_ids, start, end):
        """user_id → set of working days covered by an absence, clipped to the range."""
        rows = (Absence.query_for_tenant(tenant_id)
                .filter(Absence.user_id.in_(user_ids),
                        Absence.start_date <= end,
                        Absence.end_date >= start)
                .all())
        days = defaultdict(set)
        for absence in rows:
            days[absence.user_id].update(
                _working_days(max(absence.start_date, start), min(absence.end_date, end))
            )
        return days
