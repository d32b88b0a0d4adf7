from datetime import date, datetime, time
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from dental_booking.models.appointment import AppointmentStatus, CancellationReason


class AppointmentCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    patient_key: str = Field(min_length=1, max_length=320)
    appointment_date: date = Field(alias="date")
    start_time: time
    duration_minutes: int = Field(gt=0, le=24 * 60)
    buffer_minutes: int = Field(default=0, ge=0, le=24 * 60)
    service_name: Optional[str] = Field(default=None, max_length=200)


class AppointmentReschedule(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    appointment_date: date = Field(alias="date")
    start_time: time


class AppointmentComplete(BaseModel):
    service_details: list[dict[str, Any]] = Field(default_factory=list)
    completion_notes: Optional[str] = None
    completed_by: Optional[str] = None


class AppointmentStatusUpdate(BaseModel):
    status: AppointmentStatus
    updated_by: Optional[str] = None
    cancellation_reason: Optional[CancellationReason] = None
    cancellation_notes: Optional[str] = None
    cancelled_by: Optional[str] = None
    service_details: Optional[list[dict[str, Any]]] = None
    completion_notes: Optional[str] = None
    completed_by: Optional[str] = None


class AppointmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    patient_key: str
    appointment_date: date
    start_time: time
    end_time: str
    duration_minutes: int
    buffer_minutes: int
    service_name: Optional[str] = None
    status: AppointmentStatus
    status_updated_at: Optional[datetime] = None
    cancellation_reason: Optional[CancellationReason] = None
    cancellation_notes: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    service_details: Optional[list[dict[str, Any]]] = None
    completion_notes: Optional[str] = None
    completed_at: Optional[datetime] = None
    completed_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @field_serializer("start_time")
    def _format_start(self, value: time) -> str:
        return value.strftime("%H:%M")


class PatientBookingCheck(BaseModel):
    patient_key: str = Field(min_length=1, max_length=320)


class PatientBookingCheckOut(BaseModel):
    has_existing_booking: bool
    appointment: Optional[AppointmentOut] = None


class SlotOut(BaseModel):
    start_time: str
    end_time: str


class SlotDebugOut(SlotOut):
    available: bool
    conflict_reason: Optional[str] = None


class SlotQueryMetadata(BaseModel):
    date: date
    duration_minutes: int
    buffer_minutes: int
    total_slot_time: int
    existing_appointments: Optional[int] = None
    closed_reason: Optional[str] = None
    cached: bool = False


class SlotQueryOut(BaseModel):
    slots: list[SlotOut]
    metadata: SlotQueryMetadata


class SlotDebugQueryOut(BaseModel):
    slots: list[SlotDebugOut]
    metadata: SlotQueryMetadata
