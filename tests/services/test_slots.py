from datetime import date, time

import pytest

from dental_booking.services.slots import (
    TimeSlot,
    format_minutes,
    generate_candidates,
    round_up_minutes,
)

DAY = date(2026, 3, 3)
OPEN = time(9, 0)
CLOSE = time(17, 0)


def _labels(pairs):
    return [(format_minutes(start), format_minutes(end)) for start, end in pairs]


def test_empty_day_first_and_last_slot():
    slots = _labels(generate_candidates(DAY, 60, 15, OPEN, CLOSE, step_minutes=15))

    assert slots[0] == ("09:00", "10:15")
    assert slots[-1] == ("15:45", "17:00")
    assert len(slots) == 28


def test_candidates_never_end_after_close():
    for start, end in generate_candidates(DAY, 45, 10, OPEN, CLOSE, step_minutes=15):
        assert end - start == 55
        assert end <= 17 * 60


def test_same_day_floor_rounds_up_to_next_five_minutes():
    slots = _labels(
        generate_candidates(DAY, 30, 0, OPEN, CLOSE, step_minutes=15, today=DAY, now=time(14, 7))
    )

    assert slots[0] == ("14:10", "14:40")
    assert all(start >= "14:10" for start, _ in slots)


def test_same_day_floor_counts_seconds():
    slots = list(
        generate_candidates(
            DAY, 30, 0, OPEN, CLOSE, step_minutes=15, today=DAY, now=time(14, 10, 30)
        )
    )

    assert format_minutes(slots[0][0]) == "14:15"


def test_same_day_floor_on_boundary_keeps_slot():
    slots = list(
        generate_candidates(DAY, 30, 0, OPEN, CLOSE, step_minutes=15, today=DAY, now=time(14, 10))
    )

    assert format_minutes(slots[0][0]) == "14:10"


def test_same_day_before_opening_uses_business_open():
    slots = list(
        generate_candidates(DAY, 30, 0, OPEN, CLOSE, step_minutes=15, today=DAY, now=time(7, 42))
    )

    assert format_minutes(slots[0][0]) == "09:00"


@pytest.mark.parametrize("now", [time(16, 50), time(17, 0), time(21, 15)])
def test_floor_past_closing_yields_nothing(now):
    assert list(
        generate_candidates(DAY, 30, 0, OPEN, CLOSE, step_minutes=15, today=DAY, now=now)
    ) == []


def test_other_dates_ignore_current_time():
    slots = list(
        generate_candidates(
            DAY, 30, 0, OPEN, CLOSE, step_minutes=15, today=date(2026, 3, 2), now=time(16, 0)
        )
    )

    assert format_minutes(slots[0][0]) == "09:00"


def test_past_dates_have_no_slots():
    assert list(
        generate_candidates(
            DAY, 30, 0, OPEN, CLOSE, step_minutes=15, today=date(2026, 3, 4), now=time(8, 0)
        )
    ) == []


def test_footprint_longer_than_day_yields_nothing():
    assert list(generate_candidates(DAY, 480, 15, OPEN, CLOSE)) == []


def test_sequence_is_restartable():
    first = list(generate_candidates(DAY, 30, 5, OPEN, CLOSE, step_minutes=15))
    second = list(generate_candidates(DAY, 30, 5, OPEN, CLOSE, step_minutes=15))

    assert first == second


@pytest.mark.parametrize(
    ("duration", "buffer", "step"),
    [(0, 0, 15), (-10, 0, 15), (30, -1, 15), (30, 0, 0)],
)
def test_invalid_inputs_raise(duration, buffer, step):
    with pytest.raises(ValueError):
        list(generate_candidates(DAY, duration, buffer, OPEN, CLOSE, step_minutes=step))


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (time(14, 7), "14:10"),
        (time(14, 10), "14:10"),
        (time(14, 10, 1), "14:15"),
        (time(9, 0, 0, 1), "09:05"),
        (time(0, 0), "00:00"),
    ],
)
def test_round_up_minutes(value, expected):
    assert format_minutes(round_up_minutes(value, 5)) == expected


def test_time_slot_labels():
    slot = TimeSlot(start_minute=9 * 60 + 45, end_minute=10 * 60 + 15)

    assert slot.start_time == "09:45"
    assert slot.end_time == "10:15"
    assert slot.available is True
