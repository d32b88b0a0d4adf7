from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, time
from typing import Any

from dental_booking.models.appointment import (
    TERMINAL_STATUSES,
    Appointment,
    AppointmentStatus,
    CancellationReason,
)
from dental_booking.services.booking_guard import ensure_no_active_booking, normalize_patient_key
from dental_booking.services.clock import ClinicClock
from dental_booking.services.conflicts import check_window, occupied_intervals
from dental_booking.services.errors import (
    AppointmentNotFound,
    BookingValidationError,
    InvalidTransition,
    SlotConflict,
)
from dental_booking.services.registry import BookingRegistry, CommitHook
from dental_booking.services.schedule import ClinicSchedule, validate_appointment_window
from dental_booking.services.slot_cache import SlotCache
from dental_booking.services.slots import round_up_minutes, to_minutes

logger = logging.getLogger("dental_booking.lifecycle")


@dataclass
class BookingRequest:
    patient_key: str
    appointment_date: date
    start_time: time
    duration_minutes: int
    buffer_minutes: int = 0
    service_name: str | None = None


@dataclass
class CompletionPayload:
    service_details: list[dict[str, Any]] = field(default_factory=list)
    completion_notes: str | None = None
    completed_by: str | None = None


def validate_completion(payload: CompletionPayload) -> None:
    if not payload.service_details:
        raise BookingValidationError("At least one service is required in service_details")
    for service in payload.service_details:
        name = service.get("name") if isinstance(service, dict) else None
        if not isinstance(name, str) or not name.strip():
            raise BookingValidationError("All services must have a name")
        treatments = service.get("treatments") or []
        if service.get("has_treatment_detail") and treatments:
            has_detail = any(
                isinstance(item, dict) and str(item.get("detail") or "").strip()
                for item in treatments
            )
            if not has_detail:
                raise BookingValidationError(
                    "Treatment services must have at least one valid treatment detail"
                )


class AppointmentLifecycle:
    """Create, reschedule, complete and cancel appointments.

    Writes that occupy calendar time are optimistic: the date version is
    read before the conflict check and the write only lands if it is still
    current, otherwise the check is repeated up to ``max_attempts`` times.
    ``before_commit`` is handed to the registry so records written alongside
    the appointment (the audit row) commit or roll back with it.
    """

    def __init__(
        self,
        registry: BookingRegistry,
        schedule: ClinicSchedule,
        clock: ClinicClock,
        *,
        cache: SlotCache | None = None,
        max_attempts: int = 3,
        rounding_minutes: int = 5,
    ) -> None:
        self.registry = registry
        self.schedule = schedule
        self.clock = clock
        self.cache = cache
        self.max_attempts = max(1, max_attempts)
        self.rounding_minutes = rounding_minutes

    def _invalidate(self, *dates: date) -> None:
        if self.cache is None:
            return
        for target in set(dates):
            self.cache.invalidate(target)

    def _load(self, appointment_id: str) -> Appointment:
        appt = self.registry.get(appointment_id)
        if appt is None:
            raise AppointmentNotFound(appointment_id)
        return appt

    @staticmethod
    def _require_booked(appt: Appointment, action: str) -> None:
        if appt.status in TERMINAL_STATUSES:
            raise InvalidTransition(
                f"Cannot {action} an appointment that is already {appt.status.value}."
            )

    def _validate_window(self, target: date, start: time, footprint: int) -> None:
        ok, reason = validate_appointment_window(self.schedule, target, start, footprint)
        if not ok:
            raise BookingValidationError(reason or "Appointment falls outside practice hours.")
        today, now = self.clock.now()
        if target < today or (
            target == today and to_minutes(start) < round_up_minutes(now, self.rounding_minutes)
        ):
            raise BookingValidationError("Cannot book a time that has already passed.")

    def _check_free(
        self, target: date, start: time, footprint: int, *, exclude_id: str | None = None
    ) -> None:
        occupied = occupied_intervals(
            self.registry.appointments_for_date(target),
            self.schedule.breaks_for(target),
            exclude_id=exclude_id,
        )
        start_minute = to_minutes(start)
        check_window(start_minute, start_minute + footprint, occupied)

    def create(
        self, request: BookingRequest, *, before_commit: CommitHook | None = None
    ) -> Appointment:
        if request.duration_minutes <= 0:
            raise BookingValidationError("duration_minutes must be positive")
        if request.buffer_minutes < 0:
            raise BookingValidationError("buffer_minutes must not be negative")
        patient_key = normalize_patient_key(request.patient_key or "")
        if not patient_key:
            raise BookingValidationError("patient_key is required")

        start = request.start_time.replace(second=0, microsecond=0, tzinfo=None)
        target = request.appointment_date
        footprint = request.duration_minutes + request.buffer_minutes
        self._validate_window(target, start, footprint)

        for attempt in range(1, self.max_attempts + 1):
            ensure_no_active_booking(self.registry, patient_key)
            version = self.registry.date_version(target)
            self._check_free(target, start, footprint)

            stamp = self.clock.utcnow()
            appt = Appointment(
                id=str(uuid.uuid4()),
                patient_key=patient_key,
                appointment_date=target,
                start_time=start,
                duration_minutes=request.duration_minutes,
                buffer_minutes=request.buffer_minutes,
                service_name=request.service_name,
                status=AppointmentStatus.booked,
                created_at=stamp,
                updated_at=stamp,
                status_updated_at=stamp,
            )
            if self.registry.insert(appt, expected_version=version, before_commit=before_commit):
                self._invalidate(target)
                logger.info(
                    "Booked %s for %s on %s at %s",
                    appt.id,
                    patient_key,
                    target,
                    start.strftime("%H:%M"),
                )
                return appt
            logger.info("Calendar for %s changed during booking (attempt %s), retrying", target, attempt)

        raise SlotConflict("The calendar changed while booking. Please choose another slot.")

    def reschedule(
        self,
        appointment_id: str,
        new_date: date,
        new_start: time,
        *,
        before_commit: CommitHook | None = None,
    ) -> Appointment:
        appt = self._load(appointment_id)
        self._require_booked(appt, "reschedule")
        previous_date = appt.appointment_date
        footprint = appt.footprint_minutes
        start = new_start.replace(second=0, microsecond=0, tzinfo=None)
        self._validate_window(new_date, start, footprint)

        def _move(target: Appointment) -> None:
            self._require_booked(target, "reschedule")
            target.appointment_date = new_date
            target.start_time = start
            target.updated_at = self.clock.utcnow()

        for attempt in range(1, self.max_attempts + 1):
            version = self.registry.date_version(new_date)
            self._check_free(new_date, start, footprint, exclude_id=appointment_id)
            updated = self.registry.update(
                appointment_id,
                _move,
                guard_date=new_date,
                expected_version=version,
                before_commit=before_commit,
            )
            if updated is not None:
                self._invalidate(previous_date, new_date)
                logger.info(
                    "Rescheduled %s from %s to %s %s",
                    appointment_id,
                    previous_date,
                    new_date,
                    start.strftime("%H:%M"),
                )
                return updated
            logger.info("Calendar for %s changed during reschedule (attempt %s), retrying", new_date, attempt)

        raise SlotConflict("The calendar changed while rescheduling. Please choose another slot.")

    def complete(
        self,
        appointment_id: str,
        payload: CompletionPayload,
        *,
        before_commit: CommitHook | None = None,
    ) -> Appointment:
        self._require_booked(self._load(appointment_id), "complete")
        validate_completion(payload)

        def _complete(target: Appointment) -> None:
            self._require_booked(target, "complete")
            stamp = self.clock.utcnow()
            target.status = AppointmentStatus.completed
            target.service_details = list(payload.service_details)
            target.completion_notes = payload.completion_notes
            target.completed_by = payload.completed_by
            target.completed_at = stamp
            target.status_updated_at = stamp
            target.updated_at = stamp

        appt = self.registry.update(appointment_id, _complete, before_commit=before_commit)
        self._invalidate(appt.appointment_date)
        logger.info(
            "Completed %s with %s services by %s",
            appointment_id,
            len(payload.service_details),
            payload.completed_by,
        )
        return appt

    def cancel(
        self,
        appointment_id: str,
        reason: CancellationReason | None = None,
        *,
        notes: str | None = None,
        cancelled_by: str | None = None,
        before_commit: CommitHook | None = None,
    ) -> Appointment:
        def _cancel(target: Appointment) -> None:
            self._require_booked(target, "cancel")
            stamp = self.clock.utcnow()
            target.status = AppointmentStatus.cancelled
            target.cancellation_reason = reason or CancellationReason.other
            target.cancellation_notes = notes
            target.cancelled_by = cancelled_by
            target.cancelled_at = stamp
            target.status_updated_at = stamp
            target.updated_at = stamp

        appt = self.registry.update(appointment_id, _cancel, before_commit=before_commit)
        self._invalidate(appt.appointment_date)
        logger.info("Cancelled %s (%s)", appointment_id, appt.cancellation_reason.value)
        return appt

    def transition(
        self,
        appointment_id: str,
        status: AppointmentStatus,
        *,
        completion: CompletionPayload | None = None,
        reason: CancellationReason | None = None,
        notes: str | None = None,
        actor: str | None = None,
        before_commit: CommitHook | None = None,
    ) -> Appointment:
        if status == AppointmentStatus.completed:
            payload = completion or CompletionPayload()
            if actor and not payload.completed_by:
                payload.completed_by = actor
            return self.complete(appointment_id, payload, before_commit=before_commit)
        if status == AppointmentStatus.cancelled:
            return self.cancel(
                appointment_id, reason, notes=notes, cancelled_by=actor, before_commit=before_commit
            )
        raise InvalidTransition("Use reschedule to change a booked appointment.")
