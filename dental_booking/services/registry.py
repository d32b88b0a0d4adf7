from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from datetime import date
from typing import Callable

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from dental_booking.models.appointment import Appointment, AppointmentStatus
from dental_booking.models.calendar_day import CalendarDay
from dental_booking.services.errors import (
    AppointmentNotFound,
    DuplicateActiveBooking,
    RegistryUnavailable,
)

logger = logging.getLogger("dental_booking.registry")

Mutator = Callable[[Appointment], None]
CommitHook = Callable[[Appointment], None]


class BookingRegistry(ABC):
    """Read/write access to persisted appointments.

    Writes that place an appointment on a date are conditional on that
    date's version: ``insert`` returns False and ``update`` returns None
    when another booking touched the date since ``date_version`` was read.

    ``before_commit`` runs inside the write, after the appointment has its
    new state. If it raises, the write is discarded.
    """

    @abstractmethod
    def appointments_for_date(self, target: date, *, active_only: bool = True) -> list[Appointment]:
        ...

    @abstractmethod
    def active_appointment_for_patient(self, patient_key: str) -> Appointment | None:
        ...

    @abstractmethod
    def get(self, appointment_id: str) -> Appointment | None:
        ...

    @abstractmethod
    def list_appointments(
        self,
        *,
        patient_key: str | None = None,
        target_date: date | None = None,
        status: AppointmentStatus | None = None,
    ) -> list[Appointment]:
        ...

    @abstractmethod
    def date_version(self, target: date) -> int:
        ...

    @abstractmethod
    def insert(
        self,
        appointment: Appointment,
        *,
        expected_version: int,
        before_commit: CommitHook | None = None,
    ) -> bool:
        ...

    @abstractmethod
    def update(
        self,
        appointment_id: str,
        mutator: Mutator,
        *,
        guard_date: date | None = None,
        expected_version: int | None = None,
        before_commit: CommitHook | None = None,
    ) -> Appointment | None:
        ...


class InMemoryBookingRegistry(BookingRegistry):
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._appointments: dict[str, Appointment] = {}
        self._versions: dict[date, int] = {}

    def appointments_for_date(self, target: date, *, active_only: bool = True) -> list[Appointment]:
        with self._lock:
            rows = [appt for appt in self._appointments.values() if appt.appointment_date == target]
        if active_only:
            rows = [appt for appt in rows if appt.status == AppointmentStatus.booked]
        return sorted(rows, key=lambda appt: (appt.start_time, appt.id))

    def active_appointment_for_patient(self, patient_key: str) -> Appointment | None:
        with self._lock:
            for appt in self._appointments.values():
                if appt.patient_key == patient_key and appt.status == AppointmentStatus.booked:
                    return appt
        return None

    def get(self, appointment_id: str) -> Appointment | None:
        with self._lock:
            return self._appointments.get(appointment_id)

    def list_appointments(self, *, patient_key=None, target_date=None, status=None) -> list[Appointment]:
        with self._lock:
            rows = list(self._appointments.values())
        if patient_key is not None:
            rows = [appt for appt in rows if appt.patient_key == patient_key]
        if target_date is not None:
            rows = [appt for appt in rows if appt.appointment_date == target_date]
        if status is not None:
            rows = [appt for appt in rows if appt.status == status]
        return sorted(rows, key=lambda appt: (appt.appointment_date, appt.start_time, appt.id))

    def date_version(self, target: date) -> int:
        with self._lock:
            return self._versions.get(target, 0)

    def insert(self, appointment: Appointment, *, expected_version: int, before_commit=None) -> bool:
        with self._lock:
            target = appointment.appointment_date
            if self._versions.get(target, 0) != expected_version:
                return False
            if appointment.status == AppointmentStatus.booked:
                existing = self.active_appointment_for_patient(appointment.patient_key)
                if existing is not None:
                    raise DuplicateActiveBooking(existing)
            if before_commit is not None:
                before_commit(appointment)
            self._appointments[appointment.id] = appointment
            self._versions[target] = expected_version + 1
        return True

    def update(
        self, appointment_id, mutator, *, guard_date=None, expected_version=None, before_commit=None
    ):
        with self._lock:
            appt = self._appointments.get(appointment_id)
            if appt is None:
                raise AppointmentNotFound(appointment_id)
            if guard_date is not None and self._versions.get(guard_date, 0) != expected_version:
                return None
            saved = {column.key: getattr(appt, column.key) for column in Appointment.__mapper__.columns}
            try:
                mutator(appt)
                if before_commit is not None:
                    before_commit(appt)
            except Exception:
                for key, value in saved.items():
                    setattr(appt, key, value)
                raise
            if guard_date is not None:
                self._versions[guard_date] = expected_version + 1
            return appt


class SqlAlchemyBookingRegistry(BookingRegistry):
    """Relational adapter.

    The version check is a conditional ``UPDATE calendar_days`` issued as the
    first write of the transaction, so a concurrent writer on the same date
    either blocks on the row lock or fails the precondition. The partial
    unique index on ``appointments.patient_key`` backs the single active
    booking rule.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def _unavailable(self, exc: SQLAlchemyError) -> RegistryUnavailable:
        self.db.rollback()
        logger.error("Appointment store error: %s", exc)
        return RegistryUnavailable("Appointment store unavailable")

    def appointments_for_date(self, target: date, *, active_only: bool = True) -> list[Appointment]:
        stmt = (
            select(Appointment)
            .where(Appointment.appointment_date == target)
            .order_by(Appointment.start_time.asc(), Appointment.id.asc())
            .execution_options(populate_existing=True)
        )
        if active_only:
            stmt = stmt.where(Appointment.status == AppointmentStatus.booked)
        try:
            return list(self.db.scalars(stmt))
        except SQLAlchemyError as exc:
            raise self._unavailable(exc) from exc

    def active_appointment_for_patient(self, patient_key: str) -> Appointment | None:
        stmt = (
            select(Appointment)
            .where(
                Appointment.patient_key == patient_key,
                Appointment.status == AppointmentStatus.booked,
            )
            .limit(1)
            .execution_options(populate_existing=True)
        )
        try:
            return self.db.scalar(stmt)
        except SQLAlchemyError as exc:
            raise self._unavailable(exc) from exc

    def get(self, appointment_id: str) -> Appointment | None:
        try:
            return self.db.get(Appointment, appointment_id, populate_existing=True)
        except SQLAlchemyError as exc:
            raise self._unavailable(exc) from exc

    def list_appointments(self, *, patient_key=None, target_date=None, status=None) -> list[Appointment]:
        stmt = select(Appointment).order_by(
            Appointment.appointment_date.asc(), Appointment.start_time.asc(), Appointment.id.asc()
        )
        if patient_key is not None:
            stmt = stmt.where(Appointment.patient_key == patient_key)
        if target_date is not None:
            stmt = stmt.where(Appointment.appointment_date == target_date)
        if status is not None:
            stmt = stmt.where(Appointment.status == status)
        try:
            return list(self.db.scalars(stmt.execution_options(populate_existing=True)))
        except SQLAlchemyError as exc:
            raise self._unavailable(exc) from exc

    def date_version(self, target: date) -> int:
        try:
            version = self.db.scalar(
                select(CalendarDay.version)
                .where(CalendarDay.day == target)
                .execution_options(populate_existing=True)
            )
        except SQLAlchemyError as exc:
            raise self._unavailable(exc) from exc
        return version or 0

    def _claim_day(self, target: date, expected_version: int) -> bool:
        if expected_version == 0:
            self.db.add(CalendarDay(day=target, version=1))
            try:
                self.db.flush()
            except IntegrityError:
                self.db.rollback()
                return False
            return True
        result = self.db.execute(
            update(CalendarDay)
            .where(CalendarDay.day == target, CalendarDay.version == expected_version)
            .values(version=CalendarDay.version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            return False
        return True

    def _finish(self, appointment: Appointment, before_commit: CommitHook | None) -> None:
        self.db.flush()
        if before_commit is not None:
            before_commit(appointment)
            self.db.flush()
        self.db.commit()

    def insert(self, appointment: Appointment, *, expected_version: int, before_commit=None) -> bool:
        try:
            if not self._claim_day(appointment.appointment_date, expected_version):
                return False
            self.db.add(appointment)
            self._finish(appointment, before_commit)
        except IntegrityError as exc:
            self.db.rollback()
            existing = self.active_appointment_for_patient(appointment.patient_key)
            if existing is None:
                raise self._unavailable(exc) from exc
            raise DuplicateActiveBooking(existing) from exc
        except SQLAlchemyError as exc:
            raise self._unavailable(exc) from exc
        except Exception:
            self.db.rollback()
            raise
        return True

    def update(
        self, appointment_id, mutator, *, guard_date=None, expected_version=None, before_commit=None
    ):
        try:
            appt = self.db.get(
                Appointment, appointment_id, with_for_update=True, populate_existing=True
            )
            if appt is None:
                self.db.rollback()
                raise AppointmentNotFound(appointment_id)
            if guard_date is not None and not self._claim_day(guard_date, expected_version):
                return None
            mutator(appt)
            self._finish(appt, before_commit)
        except SQLAlchemyError as exc:
            raise self._unavailable(exc) from exc
        except Exception:
            self.db.rollback()
            raise
        return appt
