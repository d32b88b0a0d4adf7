from fastapi import Depends
from sqlalchemy.orm import Session

from dental_booking.core.settings import settings
from dental_booking.db.session import get_db
from dental_booking.services.clock import ClinicClock
from dental_booking.services.lifecycle import AppointmentLifecycle
from dental_booking.services.registry import BookingRegistry, SqlAlchemyBookingRegistry
from dental_booking.services.schedule import ClinicSchedule, load_schedule
from dental_booking.services.slot_cache import SlotCache, build_slot_cache

_slot_cache: SlotCache | None = None


def get_slot_cache() -> SlotCache:
    global _slot_cache
    if _slot_cache is None:
        _slot_cache = build_slot_cache(
            settings.slot_cache_url, ttl_seconds=settings.slot_cache_ttl_seconds
        )
    return _slot_cache


def get_clock() -> ClinicClock:
    return ClinicClock(settings.clinic_timezone)


def get_registry(db: Session = Depends(get_db)) -> BookingRegistry:
    return SqlAlchemyBookingRegistry(db)


def get_schedule(db: Session = Depends(get_db)) -> ClinicSchedule:
    return load_schedule(db, settings)


def get_lifecycle(
    registry: BookingRegistry = Depends(get_registry),
    schedule: ClinicSchedule = Depends(get_schedule),
    clock: ClinicClock = Depends(get_clock),
    cache: SlotCache = Depends(get_slot_cache),
) -> AppointmentLifecycle:
    return AppointmentLifecycle(
        registry,
        schedule,
        clock,
        cache=cache,
        max_attempts=settings.booking_commit_attempts,
        rounding_minutes=settings.same_day_rounding_minutes,
    )
