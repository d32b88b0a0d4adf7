from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from dental_booking.models.appointment import Appointment


class SchedulingError(Exception):
    status_code = 500
    code = "scheduling_error"

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail

    def to_payload(self) -> dict[str, Any]:
        return {"detail": self.detail, "code": self.code}


class BookingValidationError(SchedulingError):
    status_code = 400
    code = "validation_error"


class DuplicateActiveBooking(SchedulingError):
    status_code = 409
    code = "duplicate_active_booking"

    def __init__(self, existing: "Appointment | None", detail: str | None = None) -> None:
        super().__init__(detail or "Patient already has an active appointment.")
        self.existing = existing

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        if self.existing is not None:
            payload["existing_appointment_id"] = self.existing.id
            payload["existing_appointment_date"] = self.existing.appointment_date.isoformat()
            payload["existing_appointment_time"] = self.existing.start_time.strftime("%H:%M")
        return payload


class SlotConflict(SchedulingError):
    status_code = 409
    code = "slot_conflict"


class InvalidTransition(SchedulingError):
    status_code = 409
    code = "invalid_transition"


class AppointmentNotFound(SchedulingError):
    status_code = 404
    code = "not_found"

    def __init__(self, appointment_id: str) -> None:
        super().__init__("Appointment not found")
        self.appointment_id = appointment_id


class RegistryUnavailable(SchedulingError):
    status_code = 503
    code = "registry_unavailable"
