from __future__ import annotations

import enum
from datetime import date, datetime, time

from sqlalchemy import JSON, Date, DateTime, Enum, Index, Integer, String, Text, Time, text
from sqlalchemy.orm import Mapped, mapped_column

from dental_booking.models.base import Base, TimestampMixin


class AppointmentStatus(str, enum.Enum):
    booked = "booked"
    completed = "completed"
    cancelled = "cancelled"


TERMINAL_STATUSES = frozenset({AppointmentStatus.completed, AppointmentStatus.cancelled})


class CancellationReason(str, enum.Enum):
    no_show = "no-show"
    patient_cancelled = "patient-cancelled"
    clinic_cancelled = "clinic-cancelled"
    stock_shortage = "stock-shortage"
    emergency = "emergency"
    other = "other"


class Appointment(Base, TimestampMixin):
    __tablename__ = "appointments"
    __table_args__ = (
        Index("ix_appointments_date_status", "appointment_date", "status"),
        Index(
            "uq_appointments_active_patient",
            "patient_key",
            unique=True,
            postgresql_where=text("status = 'booked'"),
            sqlite_where=text("status = 'booked'"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    patient_key: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    appointment_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    buffer_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    service_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    status: Mapped[AppointmentStatus] = mapped_column(
        Enum(AppointmentStatus, name="appointment_status"),
        default=AppointmentStatus.booked,
        nullable=False,
    )
    status_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[CancellationReason | None] = mapped_column(
        Enum(
            CancellationReason,
            name="cancellation_reason",
            values_callable=lambda members: [member.value for member in members],
        ),
        nullable=True,
    )
    cancellation_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(String(320), nullable=True)
    service_details: Mapped[list | None] = mapped_column(JSON, nullable=True)
    completion_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_by: Mapped[str | None] = mapped_column(String(320), nullable=True)

    @property
    def footprint_minutes(self) -> int:
        return self.duration_minutes + self.buffer_minutes

    @property
    def start_minute(self) -> int:
        return self.start_time.hour * 60 + self.start_time.minute

    @property
    def end_minute(self) -> int:
        return self.start_minute + self.footprint_minutes

    @property
    def is_active(self) -> bool:
        return self.status == AppointmentStatus.booked

    @property
    def end_time(self) -> str:
        return f"{self.end_minute // 60:02d}:{self.end_minute % 60:02d}"
