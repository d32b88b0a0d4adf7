from datetime import time

import pytest

from dental_booking.core.settings import Settings, parse_break_windows, validate_settings


def _settings(**overrides) -> Settings:
    values = {"app_env": "test", "slot_cache_url": "redis://localhost:6379/0"}
    values.update(overrides)
    return Settings(**values)


def test_parse_break_windows_named_and_default():
    windows = parse_break_windows("Lunch Break=12:00-13:00, 15:00-15:15")

    assert windows == [
        ("Lunch Break", time(12, 0), time(13, 0)),
        ("Break", time(15, 0), time(15, 15)),
    ]


def test_parse_break_windows_empty():
    assert parse_break_windows("") == []
    assert parse_break_windows(" , ") == []


@pytest.mark.parametrize("raw", ["Lunch=12:00", "Lunch=noon-13:00", "Lunch=13:00-12:00"])
def test_parse_break_windows_rejects_bad_entries(raw):
    with pytest.raises(ValueError):
        parse_break_windows(raw)


def test_defaults_match_clinic_day():
    config = _settings()

    assert config.business_open == time(9, 0)
    assert config.business_close == time(17, 0)
    assert config.slot_step_minutes == 15
    assert config.default_service_duration == 60
    assert config.default_buffer_minutes == 15
    validate_settings(config)


def test_blank_cache_url_is_none():
    assert _settings(slot_cache_url="  ").slot_cache_url is None


def test_production_requires_shared_cache():
    with pytest.raises(RuntimeError, match="SLOT_CACHE_URL"):
        validate_settings(_settings(app_env="production", slot_cache_url=None))


def test_missing_cache_only_warns_outside_production(caplog):
    validate_settings(_settings(slot_cache_url=None))

    assert "process-local" in caplog.text


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"clinic_timezone": "Mars/Olympus"}, "CLINIC_TIMEZONE"),
        ({"business_open": time(17, 0), "business_close": time(9, 0)}, "BUSINESS_CLOSE"),
        ({"slot_step_minutes": 0}, "SLOT_STEP_MINUTES"),
        ({"booking_commit_attempts": 0}, "BOOKING_COMMIT_ATTEMPTS"),
        ({"break_windows": "Lunch=13:00-12:00"}, "Break window"),
    ],
)
def test_invalid_settings_fail(overrides, message):
    with pytest.raises(RuntimeError, match=message):
        validate_settings(_settings(**overrides))
