import datetime as dt
from typing import Optional

from pydantic import BaseModel, ConfigDict


class PracticeHourBase(BaseModel):
    day_of_week: int
    start_time: Optional[dt.time] = None
    end_time: Optional[dt.time] = None
    break_start: Optional[dt.time] = None
    break_end: Optional[dt.time] = None
    is_closed: bool = False


class PracticeHourIn(PracticeHourBase):
    pass


class PracticeHourOut(PracticeHourBase):
    model_config = ConfigDict(from_attributes=True)

    id: int


class PracticeClosureBase(BaseModel):
    start_date: dt.date
    end_date: dt.date
    reason: Optional[str] = None


class PracticeClosureIn(PracticeClosureBase):
    pass


class PracticeClosureOut(PracticeClosureBase):
    model_config = ConfigDict(from_attributes=True)

    id: int


class PracticeOverrideBase(BaseModel):
    date: dt.date
    start_time: Optional[dt.time] = None
    end_time: Optional[dt.time] = None
    is_closed: bool = False
    reason: Optional[str] = None


class PracticeOverrideIn(PracticeOverrideBase):
    pass


class PracticeOverrideOut(PracticeOverrideBase):
    model_config = ConfigDict(from_attributes=True)

    id: int


class PracticeScheduleOut(BaseModel):
    business_open: dt.time
    business_close: dt.time
    break_windows: list[str] = []
    hours: list[PracticeHourOut]
    closures: list[PracticeClosureOut]
    overrides: list[PracticeOverrideOut]


class PracticeScheduleUpdate(BaseModel):
    hours: list[PracticeHourIn] = []
    closures: list[PracticeClosureIn] = []
    overrides: list[PracticeOverrideIn] = []
