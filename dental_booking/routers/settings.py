from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import delete
from sqlalchemy.orm import Session

from dental_booking.core.settings import settings
from dental_booking.db.session import get_db
from dental_booking.deps import get_slot_cache
from dental_booking.models.practice_schedule import PracticeClosure, PracticeHour, PracticeOverride
from dental_booking.schemas.practice_schedule import (
    PracticeClosureIn,
    PracticeHourIn,
    PracticeOverrideIn,
    PracticeScheduleOut,
    PracticeScheduleUpdate,
)
from dental_booking.services.schedule import ClinicSchedule, load_schedule
from dental_booking.services.slot_cache import SlotCache

router = APIRouter(prefix="/settings", tags=["settings"])


def _schedule_out(schedule: ClinicSchedule) -> dict:
    return {
        "business_open": schedule.default_open,
        "business_close": schedule.default_close,
        "break_windows": [
            f"{name}={start.strftime('%H:%M')}-{end.strftime('%H:%M')}"
            for name, start, end in schedule.breaks
        ],
        "hours": schedule.hours,
        "closures": schedule.closures,
        "overrides": schedule.overrides,
    }


@router.get("/schedule", response_model=PracticeScheduleOut)
def get_schedule(db: Session = Depends(get_db)):
    return _schedule_out(load_schedule(db, settings))


def _validate_hours(entries: list[PracticeHourIn]) -> None:
    seen: set[int] = set()
    for entry in entries:
        if entry.day_of_week < 0 or entry.day_of_week > 6:
            raise HTTPException(status_code=400, detail="day_of_week must be 0-6")
        if entry.day_of_week in seen:
            raise HTTPException(status_code=400, detail="day_of_week listed more than once")
        seen.add(entry.day_of_week)
        if entry.is_closed:
            continue
        if not entry.start_time or not entry.end_time:
            raise HTTPException(status_code=400, detail="Open days require start_time and end_time")
        if entry.end_time <= entry.start_time:
            raise HTTPException(status_code=400, detail="end_time must be after start_time")
        if bool(entry.break_start) != bool(entry.break_end):
            raise HTTPException(status_code=400, detail="break_start and break_end go together")
        if entry.break_start and entry.break_end:
            if entry.break_end <= entry.break_start:
                raise HTTPException(status_code=400, detail="break_end must be after break_start")
            if entry.break_start < entry.start_time or entry.break_end > entry.end_time:
                raise HTTPException(status_code=400, detail="Break must fall within opening hours")


def _validate_closures(entries: list[PracticeClosureIn]) -> None:
    for entry in entries:
        if entry.end_date < entry.start_date:
            raise HTTPException(status_code=400, detail="Closure end_date must be after start_date")


def _validate_overrides(entries: list[PracticeOverrideIn]) -> None:
    for entry in entries:
        if entry.is_closed:
            continue
        if entry.start_time and entry.end_time and entry.end_time <= entry.start_time:
            raise HTTPException(status_code=400, detail="Override end_time must be after start_time")


@router.put("/schedule", response_model=PracticeScheduleOut)
def update_schedule(
    payload: PracticeScheduleUpdate,
    db: Session = Depends(get_db),
    cache: SlotCache = Depends(get_slot_cache),
):
    _validate_hours(payload.hours)
    _validate_closures(payload.closures)
    _validate_overrides(payload.overrides)

    db.execute(delete(PracticeHour))
    db.execute(delete(PracticeClosure))
    db.execute(delete(PracticeOverride))

    for entry in payload.hours:
        db.add(
            PracticeHour(
                day_of_week=entry.day_of_week,
                start_time=None if entry.is_closed else entry.start_time,
                end_time=None if entry.is_closed else entry.end_time,
                break_start=None if entry.is_closed else entry.break_start,
                break_end=None if entry.is_closed else entry.break_end,
                is_closed=entry.is_closed,
            )
        )
    for entry in payload.closures:
        db.add(
            PracticeClosure(
                start_date=entry.start_date,
                end_date=entry.end_date,
                reason=entry.reason,
            )
        )
    for entry in payload.overrides:
        db.add(
            PracticeOverride(
                date=entry.date,
                start_time=None if entry.is_closed else entry.start_time,
                end_time=None if entry.is_closed else entry.end_time,
                is_closed=entry.is_closed,
                reason=entry.reason,
            )
        )
    db.commit()
    cache.clear()

    return _schedule_out(load_schedule(db, settings))
