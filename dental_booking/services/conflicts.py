from __future__ import annotations

from dataclasses import dataclass
from datetime import time
from typing import Iterable, Sequence

from dental_booking.models.appointment import Appointment, AppointmentStatus
from dental_booking.services.errors import SlotConflict
from dental_booking.services.slots import TimeSlot, format_minutes, to_minutes


@dataclass(frozen=True)
class OccupiedInterval:
    """Half-open ``[start, end)`` block of the day that nothing may overlap."""

    start_minute: int
    end_minute: int
    reason: str
    appointment_id: str | None = None

    def overlaps(self, start_minute: int, end_minute: int) -> bool:
        return not (end_minute <= self.start_minute or start_minute >= self.end_minute)


def appointment_interval(appt: Appointment) -> OccupiedInterval:
    return OccupiedInterval(
        start_minute=appt.start_minute,
        end_minute=appt.end_minute,
        reason=f"Conflicts with booked appointment at {format_minutes(appt.start_minute)}",
        appointment_id=appt.id,
    )


def break_interval(name: str, start: time, end: time) -> OccupiedInterval:
    return OccupiedInterval(
        start_minute=to_minutes(start),
        end_minute=to_minutes(end),
        reason=f"Conflicts with {name}",
    )


def occupied_intervals(
    appointments: Iterable[Appointment],
    breaks: Iterable[OccupiedInterval] = (),
    *,
    exclude_id: str | None = None,
) -> list[OccupiedInterval]:
    """Breaks first, then booked appointments in start order."""
    intervals = list(breaks)
    booked = [
        appt
        for appt in appointments
        if appt.status == AppointmentStatus.booked and appt.id != exclude_id
    ]
    booked.sort(key=lambda appt: (appt.start_minute, appt.id))
    intervals.extend(appointment_interval(appt) for appt in booked)
    return intervals


def find_conflict(
    start_minute: int, end_minute: int, occupied: Sequence[OccupiedInterval]
) -> OccupiedInterval | None:
    for interval in occupied:
        if interval.overlaps(start_minute, end_minute):
            return interval
    return None


def annotate(
    candidates: Iterable[tuple[int, int]], occupied: Sequence[OccupiedInterval]
) -> list[TimeSlot]:
    slots: list[TimeSlot] = []
    for start, end in candidates:
        conflict = find_conflict(start, end, occupied)
        slots.append(
            TimeSlot(
                start_minute=start,
                end_minute=end,
                available=conflict is None,
                conflict_reason=conflict.reason if conflict else None,
            )
        )
    return slots


def available_only(
    candidates: Iterable[tuple[int, int]], occupied: Sequence[OccupiedInterval]
) -> list[TimeSlot]:
    return [slot for slot in annotate(candidates, occupied) if slot.available]


def check_window(start_minute: int, end_minute: int, occupied: Sequence[OccupiedInterval]) -> None:
    conflict = find_conflict(start_minute, end_minute, occupied)
    if conflict is not None:
        raise SlotConflict(
            f"{format_minutes(start_minute)}-{format_minutes(end_minute)} is no longer available. "
            f"{conflict.reason}."
        )
