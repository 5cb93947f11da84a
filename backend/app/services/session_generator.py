from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta

from app.models.weekday import Weekday

# Upper bound on calendar days walked while generating, guards against an empty weekday set.
MAX_SCAN_DAYS = 366 * 5


@dataclass(frozen=True)
class PlannedSession:
    sequence_number: int
    session_date: date
    day_of_week: Weekday
    week_number: int


def week_start(value: date) -> date:
    return value - timedelta(days=value.weekday())


def generate_sessions(start_date: date, schedule_days: list[Weekday], total_sessions: int) -> list[PlannedSession]:
    """One session per matching weekday from ``start_date`` until ``total_sessions`` are planned."""
    active = {Weekday(day) for day in schedule_days}
    if not active or total_sessions <= 0:
        return []

    first_monday = week_start(start_date)
    planned: list[PlannedSession] = []
    current = start_date
    for _ in range(MAX_SCAN_DAYS):
        weekday = Weekday.from_date(current)
        if weekday in active:
            planned.append(
                PlannedSession(
                    sequence_number=len(planned) + 1,
                    session_date=current,
                    day_of_week=weekday,
                    week_number=(week_start(current) - first_monday).days // 7 + 1,
                )
            )
            if len(planned) >= total_sessions:
                break
        current += timedelta(days=1)
    return planned


def planned_end_date(planned: list[PlannedSession]) -> date | None:
    if not planned:
        return None
    return planned[-1].session_date
