from dental_booking.models.base import Base
from dental_booking.models.appointment import (
    Appointment,
    AppointmentStatus,
    CancellationReason,
    TERMINAL_STATUSES,
)
from dental_booking.models.audit_log import AuditLog
from dental_booking.models.calendar_day import CalendarDay
from dental_booking.models.practice_schedule import PracticeClosure, PracticeHour, PracticeOverride

__all__ = [
    "Base",
    "Appointment",
    "AppointmentStatus",
    "CancellationReason",
    "TERMINAL_STATUSES",
    "AuditLog",
    "CalendarDay",
    "PracticeHour",
    "PracticeClosure",
    "PracticeOverride",
]
