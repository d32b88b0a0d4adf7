import os
import tempfile
from datetime import date, datetime, time
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

_db_dir = tempfile.mkdtemp(prefix="dental_booking_tests_")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{Path(_db_dir) / 'test.db'}")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("CLINIC_TIMEZONE", "Asia/Manila")

from fastapi.testclient import TestClient  # noqa: E402

from dental_booking import deps  # noqa: E402
from dental_booking.db.session import engine  # noqa: E402
from dental_booking.main import app  # noqa: E402
from dental_booking.models import Base  # noqa: E402
from dental_booking.services.clock import FixedClock  # noqa: E402
from dental_booking.services.registry import InMemoryBookingRegistry  # noqa: E402
from dental_booking.services.schedule import ClinicSchedule  # noqa: E402

CLINIC_TZ = "Asia/Manila"
# Monday; clinic opens at 09:00 so the whole day is still ahead.
TODAY = date(2026, 3, 2)
TOMORROW = date(2026, 3, 3)


def clinic_clock(hour: int = 8, minute: int = 0, second: int = 0, day: date = TODAY) -> FixedClock:
    instant = datetime.combine(day, time(hour, minute, second), tzinfo=ZoneInfo(CLINIC_TZ))
    return FixedClock(instant, CLINIC_TZ)


@pytest.fixture
def clock():
    return clinic_clock()


@pytest.fixture
def schedule():
    return ClinicSchedule(default_open=time(9, 0), default_close=time(17, 0))


@pytest.fixture
def registry():
    return InMemoryBookingRegistry()


@pytest.fixture
def api_client(clock):
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    deps._slot_cache = None
    app.dependency_overrides[deps.get_clock] = lambda: clock
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()
    deps._slot_cache = None
