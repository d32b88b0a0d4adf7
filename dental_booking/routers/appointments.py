from datetime import date

from fastapi import APIRouter, Depends, Header, Query, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from dental_booking.core.settings import settings
from dental_booking.db.session import get_db
from dental_booking.deps import (
    get_clock,
    get_lifecycle,
    get_registry,
    get_schedule,
    get_slot_cache,
)
from dental_booking.models.appointment import Appointment, AppointmentStatus
from dental_booking.models.audit_log import AuditLog
from dental_booking.schemas.appointment import (
    AppointmentComplete,
    AppointmentCreate,
    AppointmentOut,
    AppointmentReschedule,
    AppointmentStatusUpdate,
    PatientBookingCheck,
    PatientBookingCheckOut,
    SlotDebugOut,
    SlotDebugQueryOut,
    SlotOut,
    SlotQueryMetadata,
    SlotQueryOut,
)
from dental_booking.schemas.audit_log import AuditLogOut
from dental_booking.services.audit import log_event, snapshot_model
from dental_booking.services.availability import SlotQueryResult, find_slots
from dental_booking.services.booking_guard import check_existing_booking, normalize_patient_key
from dental_booking.services.clock import ClinicClock
from dental_booking.services.errors import AppointmentNotFound
from dental_booking.services.lifecycle import AppointmentLifecycle, BookingRequest, CompletionPayload
from dental_booking.services.registry import BookingRegistry, CommitHook
from dental_booking.services.schedule import ClinicSchedule
from dental_booking.services.slot_cache import SlotCache

router = APIRouter(prefix="/appointments", tags=["appointments"])


def _metadata(result: SlotQueryResult) -> SlotQueryMetadata:
    return SlotQueryMetadata(
        date=result.target_date,
        duration_minutes=result.duration_minutes,
        buffer_minutes=result.buffer_minutes,
        total_slot_time=result.total_slot_time,
        existing_appointments=result.existing_appointments,
        closed_reason=result.closed_reason,
        cached=result.cached,
    )


def _audit_hook(
    db: Session,
    request: Request,
    *,
    action: str,
    actor: str | None,
    before_data: dict | None = None,
    request_id: str | None = None,
) -> CommitHook:
    def _write(appt: Appointment) -> None:
        log_event(
            db,
            actor=actor,
            action=action,
            entity_type="appointment",
            entity_id=appt.id,
            before_data=before_data,
            after_obj=appt,
            request_id=request_id,
            ip_address=request.client.host if request.client else None,
        )

    return _write


@router.get("/available-slots", response_model=SlotQueryOut)
def available_slots(
    target_date: date = Query(alias="date"),
    duration_minutes: int = Query(default=settings.default_service_duration, gt=0, le=24 * 60),
    buffer_minutes: int = Query(default=settings.default_buffer_minutes, ge=0, le=24 * 60),
    registry: BookingRegistry = Depends(get_registry),
    schedule: ClinicSchedule = Depends(get_schedule),
    clock: ClinicClock = Depends(get_clock),
    cache: SlotCache = Depends(get_slot_cache),
):
    result = find_slots(
        registry,
        schedule,
        clock,
        target_date,
        duration_minutes,
        buffer_minutes,
        step_minutes=settings.slot_step_minutes,
        rounding_minutes=settings.same_day_rounding_minutes,
        cache=cache,
    )
    return SlotQueryOut(
        slots=[SlotOut(start_time=slot.start_time, end_time=slot.end_time) for slot in result.slots],
        metadata=_metadata(result),
    )


@router.get("/available-slots/debug", response_model=SlotDebugQueryOut)
def available_slots_debug(
    target_date: date = Query(alias="date"),
    duration_minutes: int = Query(default=settings.default_service_duration, gt=0, le=24 * 60),
    buffer_minutes: int = Query(default=settings.default_buffer_minutes, ge=0, le=24 * 60),
    registry: BookingRegistry = Depends(get_registry),
    schedule: ClinicSchedule = Depends(get_schedule),
    clock: ClinicClock = Depends(get_clock),
):
    result = find_slots(
        registry,
        schedule,
        clock,
        target_date,
        duration_minutes,
        buffer_minutes,
        step_minutes=settings.slot_step_minutes,
        rounding_minutes=settings.same_day_rounding_minutes,
        include_unavailable=True,
    )
    return SlotDebugQueryOut(
        slots=[
            SlotDebugOut(
                start_time=slot.start_time,
                end_time=slot.end_time,
                available=slot.available,
                conflict_reason=slot.conflict_reason,
            )
            for slot in result.slots
        ],
        metadata=_metadata(result),
    )


@router.post("/check-patient", response_model=PatientBookingCheckOut)
def check_patient(
    payload: PatientBookingCheck,
    registry: BookingRegistry = Depends(get_registry),
):
    existing = check_existing_booking(registry, payload.patient_key)
    return PatientBookingCheckOut(
        has_existing_booking=existing is not None,
        appointment=AppointmentOut.model_validate(existing) if existing else None,
    )


@router.get("", response_model=list[AppointmentOut])
def list_appointments(
    patient_key: str | None = Query(default=None),
    target_date: date | None = Query(default=None, alias="date"),
    status_filter: AppointmentStatus | None = Query(default=None, alias="status"),
    registry: BookingRegistry = Depends(get_registry),
):
    return registry.list_appointments(
        patient_key=normalize_patient_key(patient_key) if patient_key else None,
        target_date=target_date,
        status=status_filter,
    )


@router.post("", response_model=AppointmentOut, status_code=status.HTTP_201_CREATED)
def create_appointment(
    payload: AppointmentCreate,
    request: Request,
    db: Session = Depends(get_db),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
    request_id: str | None = Header(default=None),
    x_actor: str | None = Header(default=None),
):
    return lifecycle.create(
        BookingRequest(
            patient_key=payload.patient_key,
            appointment_date=payload.appointment_date,
            start_time=payload.start_time,
            duration_minutes=payload.duration_minutes,
            buffer_minutes=payload.buffer_minutes,
            service_name=payload.service_name,
        ),
        before_commit=_audit_hook(
            db,
            request,
            action="appointment.created",
            actor=x_actor or normalize_patient_key(payload.patient_key),
            request_id=request_id,
        ),
    )


@router.get("/{appointment_id}", response_model=AppointmentOut)
def get_appointment(
    appointment_id: str,
    registry: BookingRegistry = Depends(get_registry),
):
    appt = registry.get(appointment_id)
    if appt is None:
        raise AppointmentNotFound(appointment_id)
    return appt


@router.put("/{appointment_id}", response_model=AppointmentOut)
def reschedule_appointment(
    appointment_id: str,
    payload: AppointmentReschedule,
    request: Request,
    db: Session = Depends(get_db),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
    request_id: str | None = Header(default=None),
    x_actor: str | None = Header(default=None),
):
    before_data = snapshot_model(lifecycle.registry.get(appointment_id))
    return lifecycle.reschedule(
        appointment_id,
        payload.appointment_date,
        payload.start_time,
        before_commit=_audit_hook(
            db,
            request,
            action="appointment.rescheduled",
            actor=x_actor,
            before_data=before_data,
            request_id=request_id,
        ),
    )


@router.api_route("/{appointment_id}/status", methods=["PUT", "PATCH"], response_model=AppointmentOut)
def update_appointment_status(
    appointment_id: str,
    payload: AppointmentStatusUpdate,
    request: Request,
    db: Session = Depends(get_db),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
    request_id: str | None = Header(default=None),
    x_actor: str | None = Header(default=None),
):
    before_data = snapshot_model(lifecycle.registry.get(appointment_id))
    actor = payload.cancelled_by or payload.completed_by or payload.updated_by or x_actor
    completion = None
    if payload.status == AppointmentStatus.completed:
        completion = CompletionPayload(
            service_details=payload.service_details or [],
            completion_notes=payload.completion_notes,
            completed_by=payload.completed_by or payload.updated_by,
        )
    return lifecycle.transition(
        appointment_id,
        payload.status,
        completion=completion,
        reason=payload.cancellation_reason,
        notes=payload.cancellation_notes,
        actor=actor,
        before_commit=_audit_hook(
            db,
            request,
            action=f"appointment.{payload.status.value}",
            actor=actor,
            before_data=before_data,
            request_id=request_id,
        ),
    )


@router.api_route("/{appointment_id}/complete", methods=["PUT", "PATCH"], response_model=AppointmentOut)
def complete_appointment(
    appointment_id: str,
    payload: AppointmentComplete,
    request: Request,
    db: Session = Depends(get_db),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
    request_id: str | None = Header(default=None),
    x_actor: str | None = Header(default=None),
):
    before_data = snapshot_model(lifecycle.registry.get(appointment_id))
    completed_by = payload.completed_by or x_actor
    return lifecycle.complete(
        appointment_id,
        CompletionPayload(
            service_details=payload.service_details,
            completion_notes=payload.completion_notes,
            completed_by=completed_by,
        ),
        before_commit=_audit_hook(
            db,
            request,
            action="appointment.completed",
            actor=completed_by,
            before_data=before_data,
            request_id=request_id,
        ),
    )


@router.get("/{appointment_id}/audit", response_model=list[AuditLogOut])
def appointment_audit(
    appointment_id: str,
    db: Session = Depends(get_db),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
):
    stmt = (
        select(AuditLog)
        .where(
            AuditLog.entity_type == "appointment",
            AuditLog.entity_id == appointment_id,
        )
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(db.scalars(stmt))
