from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date

from dental_booking.services.clock import ClinicClock
from dental_booking.services.conflicts import annotate, occupied_intervals
from dental_booking.services.registry import BookingRegistry
from dental_booking.services.schedule import ClinicSchedule
from dental_booking.services.slot_cache import SlotCache
from dental_booking.services.slots import TimeSlot, generate_candidates

logger = logging.getLogger("dental_booking.availability")


@dataclass
class SlotQueryResult:
    target_date: date
    duration_minutes: int
    buffer_minutes: int
    slots: list[TimeSlot] = field(default_factory=list)
    closed_reason: str | None = None
    existing_appointments: int | None = None
    cached: bool = False

    @property
    def total_slot_time(self) -> int:
        return self.duration_minutes + self.buffer_minutes


def find_slots(
    registry: BookingRegistry,
    schedule: ClinicSchedule,
    clock: ClinicClock,
    target_date: date,
    duration_minutes: int,
    buffer_minutes: int,
    *,
    step_minutes: int = 15,
    rounding_minutes: int = 5,
    cache: SlotCache | None = None,
    include_unavailable: bool = False,
) -> SlotQueryResult:
    """Bookable slots for a date and service footprint.

    Only available slots are returned unless ``include_unavailable`` is set,
    in which case every candidate comes back flagged with its conflict
    reason. The flagged variant is never cached, and neither is today, whose
    candidates move with the clock.
    """
    result = SlotQueryResult(
        target_date=target_date,
        duration_minutes=duration_minutes,
        buffer_minutes=buffer_minutes,
    )
    cache_key = (target_date, duration_minutes, buffer_minutes)
    today, now = clock.now()

    # Read before the appointments so a write landing in between is never served.
    generation = None
    if cache is not None and not include_unavailable and target_date > today:
        generation = cache.generation(target_date)

    if generation is not None:
        cached = cache.get(cache_key, generation=generation)
        if cached is not None:
            result.slots = cached
            result.cached = True
            return result

    day_open, day_close, reason = schedule.window_for(target_date)
    if not day_open or not day_close:
        result.closed_reason = reason or "Practice closed."
        result.existing_appointments = 0
        return result

    candidates = generate_candidates(
        target_date,
        duration_minutes,
        buffer_minutes,
        day_open,
        day_close,
        step_minutes=step_minutes,
        today=today,
        now=now,
        rounding_minutes=rounding_minutes,
    )
    appointments = registry.appointments_for_date(target_date)
    occupied = occupied_intervals(appointments, schedule.breaks_for(target_date))
    slots = annotate(candidates, occupied)
    available = [slot for slot in slots if slot.available]

    logger.info(
        "Generated %s slots for %s (%s+%s min), %s available",
        len(slots),
        target_date,
        duration_minutes,
        buffer_minutes,
        len(available),
    )

    result.existing_appointments = len(appointments)
    result.slots = slots if include_unavailable else available
    if generation is not None:
        cache.set(cache_key, available, generation=generation)
    return result
