import pytest

from conftest import TODAY, TOMORROW, clinic_clock
from dental_booking import deps
from dental_booking.main import app
from dental_booking.routers import appointments as appointments_router

DAY = TOMORROW.isoformat()


def _book(api_client, patient="ana@example.com", start="10:00", duration=60, buffer=15, day=DAY, **extra):
    payload = {
        "patient_key": patient,
        "date": day,
        "start_time": start,
        "duration_minutes": duration,
        "buffer_minutes": buffer,
        **extra,
    }
    return api_client.post("/appointments", json=payload)


def _slot_starts(api_client, day=DAY, duration=30, buffer=0):
    res = api_client.get(
        "/appointments/available-slots",
        params={"date": day, "duration_minutes": duration, "buffer_minutes": buffer},
    )
    assert res.status_code == 200, res.text
    return [slot["start_time"] for slot in res.json()["slots"]]


def test_health(api_client):
    res = api_client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok"}


def test_empty_day_lists_every_slot(api_client):
    res = api_client.get(
        "/appointments/available-slots",
        params={"date": DAY, "duration_minutes": 60, "buffer_minutes": 15},
    )
    assert res.status_code == 200, res.text
    body = res.json()

    assert len(body["slots"]) == 28
    assert body["slots"][0] == {"start_time": "09:00", "end_time": "10:15"}
    assert body["slots"][-1] == {"start_time": "15:45", "end_time": "17:00"}
    assert body["metadata"]["total_slot_time"] == 75
    assert body["metadata"]["existing_appointments"] == 0
    assert body["metadata"]["date"] == DAY


def test_slot_query_defaults_to_standard_service(api_client):
    res = api_client.get("/appointments/available-slots", params={"date": DAY})
    assert res.status_code == 200, res.text

    assert res.json()["metadata"]["duration_minutes"] == 60
    assert res.json()["metadata"]["buffer_minutes"] == 15


def test_slot_query_rejects_bad_input(api_client):
    missing = api_client.get("/appointments/available-slots")
    assert missing.status_code == 400
    assert missing.json()["code"] == "validation_error"

    malformed = api_client.get("/appointments/available-slots", params={"date": "03/03/2026"})
    assert malformed.status_code == 400

    zero = api_client.get(
        "/appointments/available-slots", params={"date": DAY, "duration_minutes": 0}
    )
    assert zero.status_code == 400


def test_same_day_slots_start_after_now(api_client):
    app.dependency_overrides[deps.get_clock] = lambda: clinic_clock(14, 7)

    starts = _slot_starts(api_client, day=TODAY.isoformat())

    assert starts[0] == "14:10"
    assert "14:00" not in starts


def test_book_then_slot_disappears(api_client):
    assert "10:00" in _slot_starts(api_client)

    res = _book(api_client, service_name="Cleaning")
    assert res.status_code == 201, res.text
    body = res.json()
    assert body["status"] == "booked"
    assert body["start_time"] == "10:00"
    assert body["end_time"] == "11:15"
    assert body["service_name"] == "Cleaning"

    starts = _slot_starts(api_client)
    assert "09:30" in starts
    assert "09:45" not in starts
    assert "11:00" not in starts
    assert "11:15" in starts


def test_debug_variant_explains_conflicts(api_client):
    _book(api_client)

    res = api_client.get(
        "/appointments/available-slots/debug",
        params={"date": DAY, "duration_minutes": 30, "buffer_minutes": 0},
    )
    assert res.status_code == 200, res.text
    slots = {slot["start_time"]: slot for slot in res.json()["slots"]}

    assert slots["10:30"]["available"] is False
    assert slots["10:30"]["conflict_reason"] == "Conflicts with booked appointment at 10:00"
    assert slots["11:15"]["available"] is True


def test_second_active_booking_is_rejected(api_client):
    first = _book(api_client).json()

    res = _book(api_client, patient="ANA@example.com ", start="14:00")
    assert res.status_code == 409
    body = res.json()
    assert body["code"] == "duplicate_active_booking"
    assert body["existing_appointment_id"] == first["id"]
    assert body["existing_appointment_time"] == "10:00"


def test_overlapping_booking_is_rejected(api_client):
    _book(api_client)

    res = _book(api_client, patient="ben@example.com", start="10:30", duration=30, buffer=0)
    assert res.status_code == 409
    assert res.json()["code"] == "slot_conflict"

    touching = _book(api_client, patient="ben@example.com", start="11:15", duration=30, buffer=0)
    assert touching.status_code == 201, touching.text


def test_booking_outside_hours_is_invalid(api_client):
    res = _book(api_client, start="16:30")
    assert res.status_code == 400
    assert res.json()["code"] == "validation_error"


def test_check_patient(api_client):
    res = api_client.post("/appointments/check-patient", json={"patient_key": "ana@example.com"})
    assert res.status_code == 200, res.text
    assert res.json() == {"has_existing_booking": False, "appointment": None}

    appt = _book(api_client).json()

    res = api_client.post("/appointments/check-patient", json={"patient_key": " Ana@Example.com"})
    assert res.json()["has_existing_booking"] is True
    assert res.json()["appointment"]["id"] == appt["id"]


def test_cancel_frees_slot_and_patient(api_client):
    appt = _book(api_client).json()

    res = api_client.patch(
        f"/appointments/{appt['id']}/status",
        json={"status": "cancelled", "cancelled_by": "front.desk"},
    )
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["status"] == "cancelled"
    assert body["cancellation_reason"] == "other"
    assert body["cancelled_by"] == "front.desk"
    assert body["cancelled_at"] is not None

    assert "10:00" in _slot_starts(api_client)
    again = _book(api_client, start="10:00")
    assert again.status_code == 201, again.text


def test_cancel_with_reason_and_terminal_state(api_client):
    appt = _book(api_client).json()

    res = api_client.put(
        f"/appointments/{appt['id']}/status",
        json={"status": "cancelled", "cancellation_reason": "no-show", "cancellation_notes": "No answer"},
    )
    assert res.status_code == 200, res.text
    assert res.json()["cancellation_reason"] == "no-show"

    res = api_client.put(f"/appointments/{appt['id']}/status", json={"status": "cancelled"})
    assert res.status_code == 409
    assert res.json()["code"] == "invalid_transition"


def test_reschedule_moves_appointment(api_client):
    appt = _book(api_client).json()
    _book(api_client, patient="ben@example.com", start="13:00")

    clash = api_client.put(f"/appointments/{appt['id']}", json={"date": DAY, "start_time": "12:30"})
    assert clash.status_code == 409

    res = api_client.put(f"/appointments/{appt['id']}", json={"date": DAY, "start_time": "10:30"})
    assert res.status_code == 200, res.text
    assert res.json()["start_time"] == "10:30"
    assert res.json()["end_time"] == "11:45"

    starts = _slot_starts(api_client)
    assert "10:00" in starts
    assert "11:00" not in starts


def test_complete_validates_services(api_client):
    appt = _book(api_client).json()

    empty = api_client.put(f"/appointments/{appt['id']}/complete", json={"service_details": []})
    assert empty.status_code == 400

    res = api_client.put(
        f"/appointments/{appt['id']}/complete",
        json={"service_details": [{"name": "Cleaning"}], "completion_notes": "Routine"},
        headers={"x-actor": "dr.reyes"},
    )
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["status"] == "completed"
    assert body["completed_by"] == "dr.reyes"
    assert body["service_details"] == [{"name": "Cleaning"}]

    again = api_client.patch(
        f"/appointments/{appt['id']}/complete", json={"service_details": [{"name": "Cleaning"}]}
    )
    assert again.status_code == 409


def test_audit_trail_records_lifecycle(api_client):
    appt = _book(api_client).json()
    api_client.put(f"/appointments/{appt['id']}", json={"date": DAY, "start_time": "13:00"})
    api_client.put(
        f"/appointments/{appt['id']}/complete",
        json={"service_details": [{"name": "Cleaning"}]},
        headers={"x-actor": "dr.reyes"},
    )

    res = api_client.get(f"/appointments/{appt['id']}/audit", params={"limit": 10})
    assert res.status_code == 200, res.text
    entries = res.json()
    actions = {entry["action"] for entry in entries}
    assert actions == {"appointment.created", "appointment.rescheduled", "appointment.completed"}

    rescheduled = next(entry for entry in entries if entry["action"] == "appointment.rescheduled")
    assert rescheduled["before_json"]["start_time"] == "10:00:00"
    assert rescheduled["after_json"]["start_time"] == "13:00:00"


def _reject_audit(db, **kwargs):
    raise RuntimeError("audit_logs unavailable")


def test_failed_audit_write_leaves_no_booking(api_client, monkeypatch):
    monkeypatch.setattr(appointments_router, "log_event", _reject_audit)

    with pytest.raises(RuntimeError):
        _book(api_client)

    monkeypatch.undo()
    assert api_client.get("/appointments", params={"patient_key": "ana@example.com"}).json() == []
    assert _book(api_client).status_code == 201


def test_failed_audit_write_keeps_appointment_booked(api_client, monkeypatch):
    appt = _book(api_client).json()
    monkeypatch.setattr(appointments_router, "log_event", _reject_audit)

    with pytest.raises(RuntimeError):
        api_client.patch(
            f"/appointments/{appt['id']}/status",
            json={"status": "cancelled", "cancelled_by": "front.desk"},
        )

    monkeypatch.undo()
    stored = api_client.get(f"/appointments/{appt['id']}").json()
    assert stored["status"] == "booked"
    assert stored["cancellation_reason"] is None
    audit = api_client.get(f"/appointments/{appt['id']}/audit").json()
    assert [entry["action"] for entry in audit] == ["appointment.created"]


def test_list_and_get_appointments(api_client):
    first = _book(api_client).json()
    _book(api_client, patient="ben@example.com", start="13:00")
    api_client.patch(f"/appointments/{first['id']}/status", json={"status": "cancelled"})

    mine = api_client.get("/appointments", params={"patient_key": "ana@example.com"}).json()
    assert [appt["id"] for appt in mine] == [first["id"]]

    booked = api_client.get("/appointments", params={"date": DAY, "status": "booked"}).json()
    assert [appt["patient_key"] for appt in booked] == ["ben@example.com"]

    res = api_client.get(f"/appointments/{first['id']}")
    assert res.status_code == 200
    assert res.json()["status"] == "cancelled"


def test_unknown_appointment_is_404(api_client):
    res = api_client.get("/appointments/does-not-exist")
    assert res.status_code == 404
    assert res.json()["code"] == "not_found"

    res = api_client.patch("/appointments/does-not-exist/status", json={"status": "cancelled"})
    assert res.status_code == 404


def test_closed_override_blocks_slots_and_booking(api_client):
    _slot_starts(api_client)
    res = api_client.put(
        "/settings/schedule",
        json={"overrides": [{"date": DAY, "is_closed": True, "reason": "Clinic holiday"}]},
    )
    assert res.status_code == 200, res.text
    assert res.json()["overrides"][0]["reason"] == "Clinic holiday"

    slots = api_client.get("/appointments/available-slots", params={"date": DAY}).json()
    assert slots["slots"] == []
    assert slots["metadata"]["closed_reason"] == "Clinic holiday"

    res = _book(api_client)
    assert res.status_code == 400


def test_weekday_break_is_blocked(api_client):
    res = api_client.put(
        "/settings/schedule",
        json={
            "hours": [
                {
                    "day_of_week": TOMORROW.weekday(),
                    "start_time": "09:00",
                    "end_time": "17:00",
                    "break_start": "12:00",
                    "break_end": "13:00",
                }
            ]
        },
    )
    assert res.status_code == 200, res.text

    starts = _slot_starts(api_client)
    assert "11:30" in starts
    assert "12:00" not in starts
    assert "13:00" in starts

    res = _book(api_client, start="12:15", duration=30, buffer=0)
    assert res.status_code == 409


def test_schedule_update_rejects_bad_hours(api_client):
    res = api_client.put(
        "/settings/schedule",
        json={"hours": [{"day_of_week": 1, "start_time": "17:00", "end_time": "09:00"}]},
    )
    assert res.status_code == 400

    res = api_client.get("/settings/schedule")
    assert res.status_code == 200
    assert res.json()["business_open"] == "09:00:00"
    assert res.json()["hours"] == []
