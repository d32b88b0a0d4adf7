from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, time

from sqlalchemy import select
from sqlalchemy.orm import Session

from dental_booking.core.settings import Settings, parse_break_windows
from dental_booking.models.practice_schedule import PracticeClosure, PracticeHour, PracticeOverride
from dental_booking.services.conflicts import OccupiedInterval, break_interval
from dental_booking.services.slots import to_minutes


@dataclass
class ClinicSchedule:
    """Opening hours for any date: override, then closure, then weekly hours.

    Days without a weekly row fall back to ``default_open``/``default_close``.
    """

    default_open: time
    default_close: time
    hours: list[PracticeHour] = field(default_factory=list)
    closures: list[PracticeClosure] = field(default_factory=list)
    overrides: list[PracticeOverride] = field(default_factory=list)
    breaks: list[tuple[str, time, time]] = field(default_factory=list)

    def window_for(self, target: date) -> tuple[time | None, time | None, str | None]:
        return get_practice_window(
            target,
            self.hours,
            self.closures,
            self.overrides,
            default_open=self.default_open,
            default_close=self.default_close,
        )

    def breaks_for(self, target: date) -> list[OccupiedInterval]:
        intervals = [break_interval(name, start, end) for name, start, end in self.breaks]
        override = next((item for item in self.overrides if item.date == target), None)
        # Only an override that replaces the weekday hours drops the weekday break.
        if override is not None and (
            override.is_closed or (override.start_time and override.end_time)
        ):
            return intervals
        day_hours = {row.day_of_week: row for row in self.hours}.get(target.weekday())
        if day_hours and day_hours.break_start and day_hours.break_end:
            intervals.append(break_interval("Break", day_hours.break_start, day_hours.break_end))
        return intervals


def load_schedule(db: Session, settings: Settings) -> ClinicSchedule:
    hours = list(db.scalars(select(PracticeHour).order_by(PracticeHour.day_of_week)))
    closures = list(db.scalars(select(PracticeClosure).order_by(PracticeClosure.start_date)))
    overrides = list(db.scalars(select(PracticeOverride).order_by(PracticeOverride.date)))
    return ClinicSchedule(
        default_open=settings.business_open,
        default_close=settings.business_close,
        hours=hours,
        closures=closures,
        overrides=overrides,
        breaks=parse_break_windows(settings.break_windows),
    )


def _is_date_closed(target: date, closures: list[PracticeClosure]) -> PracticeClosure | None:
    for closure in closures:
        if closure.start_date <= target <= closure.end_date:
            return closure
    return None


def get_practice_window(
    target: date,
    hours: list[PracticeHour],
    closures: list[PracticeClosure],
    overrides: list[PracticeOverride],
    *,
    default_open: time,
    default_close: time,
) -> tuple[time | None, time | None, str | None]:
    override = next((item for item in overrides if item.date == target), None)
    if override:
        if override.is_closed:
            reason = override.reason or "Practice closed (override)."
            return None, None, reason
        if override.start_time and override.end_time:
            return override.start_time, override.end_time, None

    closure = _is_date_closed(target, closures)
    if closure:
        reason = closure.reason or "Practice closed (holiday)."
        return None, None, reason

    day_hours = {row.day_of_week: row for row in hours}.get(target.weekday())
    if not day_hours:
        return default_open, default_close, None
    if day_hours.is_closed:
        return None, None, "Practice closed."
    if not day_hours.start_time or not day_hours.end_time:
        return None, None, "Practice hours not configured."
    return day_hours.start_time, day_hours.end_time, None


def validate_appointment_window(
    schedule: ClinicSchedule,
    target: date,
    start: time,
    footprint_minutes: int,
) -> tuple[bool, str | None]:
    day_start, day_end, reason = schedule.window_for(target)
    if not day_start or not day_end:
        return False, reason or "Practice closed."

    start_minute = to_minutes(start)
    end_minute = start_minute + footprint_minutes
    if start_minute < to_minutes(day_start) or end_minute > to_minutes(day_end):
        return False, "Appointment falls outside practice hours."

    return True, None
