from __future__ import annotations

from dental_booking.models.appointment import Appointment
from dental_booking.services.errors import DuplicateActiveBooking
from dental_booking.services.registry import BookingRegistry


def normalize_patient_key(value: str) -> str:
    return value.strip().lower()


def check_existing_booking(registry: BookingRegistry, patient_key: str) -> Appointment | None:
    return registry.active_appointment_for_patient(normalize_patient_key(patient_key))


def ensure_no_active_booking(
    registry: BookingRegistry, patient_key: str, *, exclude_id: str | None = None
) -> None:
    existing = check_existing_booking(registry, patient_key)
    if existing is not None and existing.id != exclude_id:
        raise DuplicateActiveBooking(existing)
