from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time
from typing import Iterator

MINUTES_PER_DAY = 24 * 60


def to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    if minutes < 0 or minutes >= MINUTES_PER_DAY:
        raise ValueError(f"minute of day out of range: {minutes}")
    return time(minutes // 60, minutes % 60)


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def round_up_minutes(value: time, step: int) -> int:
    """Minute of day of ``value`` rounded up to the next ``step`` boundary.

    Seconds count: 14:10:30 rounds to 14:15, since a slot at 14:10 has
    already started.
    """
    seconds = value.hour * 3600 + value.minute * 60 + value.second
    if value.microsecond:
        seconds += 1
    step_seconds = step * 60
    return -(-seconds // step_seconds) * step


@dataclass(frozen=True)
class TimeSlot:
    start_minute: int
    end_minute: int
    available: bool = True
    conflict_reason: str | None = None

    @property
    def start_time(self) -> str:
        return format_minutes(self.start_minute)

    @property
    def end_time(self) -> str:
        return format_minutes(self.end_minute)


def validate_footprint(duration_minutes: int, buffer_minutes: int) -> None:
    if duration_minutes <= 0:
        raise ValueError("duration_minutes must be positive")
    if buffer_minutes < 0:
        raise ValueError("buffer_minutes must not be negative")


def generate_candidates(
    target_date: date,
    duration_minutes: int,
    buffer_minutes: int,
    business_open: time,
    business_close: time,
    *,
    step_minutes: int = 15,
    today: date | None = None,
    now: time | None = None,
    rounding_minutes: int = 5,
) -> Iterator[tuple[int, int]]:
    """Yield ``(start, end)`` minute pairs that fit inside business hours.

    ``end`` is start plus duration plus buffer. When ``target_date`` is
    ``today`` the first start is raised to ``now`` rounded up to
    ``rounding_minutes``; a floor past closing time yields nothing.
    """
    validate_footprint(duration_minutes, buffer_minutes)
    if step_minutes <= 0:
        raise ValueError("step_minutes must be positive")

    work_start = to_minutes(business_open)
    work_end = to_minutes(business_close)
    footprint = duration_minutes + buffer_minutes

    if today is not None and target_date < today:
        return
    if today is not None and now is not None and target_date == today:
        work_start = max(work_start, round_up_minutes(now, rounding_minutes))

    start = work_start
    while start < work_end:
        end = start + footprint
        if end > work_end:
            break
        yield start, end
        start += step_minutes
