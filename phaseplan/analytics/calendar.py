"""Business calendar: Monday–Friday working days, no holiday table."""

from __future__ import annotations

from datetime import date, timedelta

_SATURDAY = 5


def is_working_day(day: date) -> bool:
    return day.weekday() < _SATURDAY


def working_days_between(start: date, end: date) -> int:
    """Count working days in the half-open interval [start, end)."""
    if end <= start:
        return 0
    total_days = (end - start).days
    full_weeks, rest = divmod(total_days, 7)
    count = full_weeks * 5
    day = start + timedelta(days=full_weeks * 7)
    for _ in range(rest):
        if is_working_day(day):
            count += 1
        day += timedelta(days=1)
    return count


def add_working_days(start: date, days: int) -> date:
    """Advance ``days`` working days from ``start``; the first counted day is start + 1."""
    current = start
    remaining = days
    while remaining > 0:
        current += timedelta(days=1)
        if is_working_day(current):
            remaining -= 1
    return current


def calendar_days_between(start: date, end: date) -> int:
    """Signed calendar-day difference ``end - start``."""
    return (end - start).days
