from __future__ import annotations

from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo


class ClinicClock:
    """Current date and time of day in the clinic's own time zone."""

    def __init__(self, tz_name: str) -> None:
        self.tz = ZoneInfo(tz_name)

    def current(self) -> datetime:
        return datetime.now(timezone.utc).astimezone(self.tz)

    def now(self) -> tuple[date, time]:
        local = self.current()
        return local.date(), local.time().replace(tzinfo=None)

    def utcnow(self) -> datetime:
        return self.current().astimezone(timezone.utc)


class FixedClock(ClinicClock):
    def __init__(self, instant: datetime, tz_name: str = "UTC") -> None:
        super().__init__(tz_name)
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=self.tz)
        self.instant = instant

    def current(self) -> datetime:
        return self.instant.astimezone(self.tz)
