from datetime import datetime, time
from unittest.mock import AsyncMock, patch

import pytest

from clinic_scheduler.config import get_settings
from clinic_scheduler.main import app
from clinic_scheduler.models import Appointment, NotificationLog
from clinic_scheduler.services.schedule import Interval, get_clock

DAY = "2026-03-03"  # вторник, завтра относительно зафиксированного "сейчас"
TODAY_STR = "2026-03-02"


@pytest.fixture(autouse=True)
def offline_collaborators(monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "CALENDAR_SYNC_URL", None)
    monkeypatch.setattr(settings, "TELEGRAM_BOT_TOKEN", None)
    monkeypatch.setattr(settings, "NOTIFICATION_WEBHOOK_URL", None)


def booking(professional, **fields):
    data = {
        "professional_id": professional.id,
        "appointment_date": DAY,
        "patient_name": "Maria Silva",
        "patient_email": "Maria@Example.com",
        "patient_phone": "(11) 98765-4321",
    }
    data.update(fields)
    return data


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


# ==================== Расписание ====================

def test_schedule_for_fixed_slot_professional(client, fixed_professional):
    with patch("clinic_scheduler.routes.appointments.fetch_external_busy", AsyncMock(return_value=[])):
        response = client.get(f"/api/professionals/{fixed_professional.id}/schedule/{DAY}")

    assert response.status_code == 200
    data = response.json()
    assert data["is_working_day"] is True
    assert data["in_booking_window"] is True
    assert data["working_hours"] == {"start": "08:00", "end": "12:00"}
    assert [slot["time"] for slot in data["slots"]][:3] == ["08:00", "08:30", "09:00"]
    assert all(slot["available"] for slot in data["slots"])


def test_schedule_applies_external_busy_times(client, fixed_professional):
    busy = AsyncMock(return_value=[Interval(time(9, 0), time(10, 0))])
    with patch("clinic_scheduler.routes.appointments.fetch_external_busy", busy):
        response = client.get(f"/api/professionals/{fixed_professional.id}/schedule/{DAY}")

    slots = {slot["time"]: slot["available"] for slot in response.json()["slots"]}
    assert slots["09:00"] is False
    assert slots["09:30"] is False
    assert slots["10:00"] is True
    busy.assert_awaited_once()


def test_schedule_without_calendar_configured(client, fixed_professional):
    response = client.get(f"/api/professionals/{fixed_professional.id}/schedule/{TODAY_STR}")

    assert response.status_code == 200
    available = [slot["time"] for slot in response.json()["slots"] if slot["available"]]
    assert available == ["10:30", "11:00", "11:30"]


def test_schedule_rejects_arrival_order_professional(client, queue_professional):
    response = client.get(f"/api/professionals/{queue_professional.id}/schedule/{DAY}")
    assert response.status_code == 400


def test_unknown_professional_is_404(client, clinic):
    response = client.get(f"/api/professionals/999/schedule/{DAY}")

    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "professional_not_found"


def test_bad_date_is_400(client, fixed_professional):
    response = client.get(f"/api/professionals/{fixed_professional.id}/schedule/2026-13-40")
    assert response.status_code == 400


def test_shifts_endpoint(client, queue_professional):
    response = client.get(f"/api/professionals/{queue_professional.id}/shifts/{DAY}")

    assert response.status_code == 200
    data = response.json()
    assert data["is_working_day"] is True
    morning = data["shifts"][0]
    assert morning == {
        "shift_name": "morning",
        "start_time": "08:00",
        "end_time": "12:00",
        "available_count": 2,
        "total_count": 2,
        "is_full": False,
        "is_closed": False,
        "bookable": True,
    }


def test_shifts_endpoint_rejects_fixed_slot_professional(client, fixed_professional):
    response = client.get(f"/api/professionals/{fixed_professional.id}/shifts/{DAY}")
    assert response.status_code == 400


# ==================== Запись ====================

def test_book_fixed_slot(client, db, fixed_professional):
    response = client.post("/api/appointments", json=booking(fixed_professional, appointment_time="09:00"))

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "scheduled"
    assert data["time"] == "09:00"
    assert data["queue_position"] is None
    assert data["cancellation_token"]

    stored = db.get(Appointment, data["id"])
    assert stored.patient_email == "maria@example.com"
    assert stored.patient_phone == "11987654321"

    # Уведомления отработали в фоне и попали в журнал
    channels = {row.channel: row.status for row in db.query(NotificationLog).filter(
        NotificationLog.appointment_id == data["id"]
    )}
    assert channels == {"calendar": "skipped", "telegram": "skipped", "webhook": "skipped"}


def test_booked_slot_conflict_is_409(client, fixed_professional):
    first = client.post("/api/appointments", json=booking(fixed_professional, appointment_time="09:00"))
    assert first.status_code == 201

    second = client.post("/api/appointments", json=booking(fixed_professional, appointment_time="09:00"))
    assert second.status_code == 409
    assert second.json()["detail"]["error"] == "slot_unavailable"

    schedule = client.get(f"/api/professionals/{fixed_professional.id}/schedule/{DAY}")
    slots = {slot["time"]: slot["available"] for slot in schedule.json()["slots"]}
    assert slots["09:00"] is False


def test_book_shift_until_full(client, queue_professional):
    for _ in range(2):
        response = client.post("/api/appointments", json=booking(queue_professional, shift_name="morning"))
        assert response.status_code == 201
        assert response.json()["shift_name"] == "morning"
        assert response.json()["time"] is None

    full = client.post("/api/appointments", json=booking(queue_professional, shift_name="morning"))
    assert full.status_code == 409
    assert full.json()["detail"]["error"] == "shift_full"

    shifts = client.get(f"/api/professionals/{queue_professional.id}/shifts/{DAY}").json()["shifts"]
    assert shifts[0]["is_full"] is True
    assert shifts[0]["bookable"] is False


def test_book_closed_shift_is_409(client, queue_professional):
    app.dependency_overrides[get_clock] = lambda: (lambda: datetime(2026, 3, 2, 12, 30))

    response = client.post(
        "/api/appointments",
        json=booking(queue_professional, appointment_date=TODAY_STR, shift_name="morning")
    )

    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "shift_closed"


def test_book_unknown_shift_is_404(client, queue_professional):
    response = client.post("/api/appointments", json=booking(queue_professional, shift_name="evening"))

    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "shift_not_found"


def test_book_without_time_is_400(client, fixed_professional):
    response = client.post("/api/appointments", json=booking(fixed_professional))

    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "validation_error"


@pytest.mark.parametrize("fields", [
    {"patient_email": "not-an-email"},
    {"patient_phone": "98765-4321"},
    {"patient_phone": "+55 (11) 98765-43210"},
    {"patient_name": "M"},
    {"appointment_date": "03/03/2026"},
    {"appointment_time": "9h"},
    {"shift_name": "night"},
])
def test_invalid_booking_payload_is_422(client, fixed_professional, fields):
    data = booking(fixed_professional, appointment_time="09:00")
    data.update(fields)

    response = client.post("/api/appointments", json=data)

    assert response.status_code == 422


def test_cancel_and_cancel_by_token(client, fixed_professional):
    first = client.post("/api/appointments", json=booking(fixed_professional, appointment_time="09:00")).json()
    second = client.post("/api/appointments", json=booking(fixed_professional, appointment_time="09:30")).json()

    cancelled = client.post(f"/api/appointments/{first['id']}/cancel")
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"
    assert cancelled.json()["cancellation_token"] is None

    again = client.post(f"/api/appointments/{first['id']}/cancel")
    assert again.status_code == 409
    assert again.json()["detail"]["error"] == "invalid_transition"

    by_token = client.post(f"/api/appointments/cancel/{second['cancellation_token']}")
    assert by_token.status_code == 200
    assert by_token.json()["id"] == second["id"]

    assert client.post("/api/appointments/cancel/unknown-token").status_code == 404

    # Отменённое время снова свободно
    rebook = client.post("/api/appointments", json=booking(fixed_professional, appointment_time="09:00"))
    assert rebook.status_code == 201


# ==================== Очередь ====================

def test_queue_actions(client, queue_professional):
    ids = [
        client.post("/api/appointments", json=booking(queue_professional, shift_name="afternoon")).json()["id"]
        for _ in range(2)
    ]

    arrived = client.post(f"/api/queue/{ids[1]}/arrive")
    assert arrived.status_code == 200
    assert arrived.json()["status"] == "confirmed"
    assert arrived.json()["queue_position"] == 1

    assert client.post(f"/api/queue/{ids[0]}/arrive").json()["queue_position"] == 2

    attended = client.post(f"/api/queue/{ids[1]}/attend")
    assert attended.json()["status"] == "completed"
    assert attended.json()["queue_position"] == 1

    illegal = client.post(f"/api/queue/{ids[1]}/undo-arrive")
    assert illegal.status_code == 409
    assert illegal.json()["detail"]["error"] == "invalid_transition"

    assert client.post(f"/api/queue/{ids[1]}/undo-attend").json()["status"] == "confirmed"

    undone = client.post(f"/api/queue/{ids[0]}/undo-arrive")
    assert undone.json()["status"] == "scheduled"
    assert undone.json()["queue_position"] is None


def test_unknown_queue_action_is_404(client, queue_professional):
    created = client.post("/api/appointments", json=booking(queue_professional, shift_name="morning")).json()
    assert client.post(f"/api/queue/{created['id']}/jump").status_code == 404
    assert client.post("/api/queue/999/arrive").status_code == 404


def test_queue_action_on_fixed_slot_booking_is_409(client, fixed_professional):
    created = client.post("/api/appointments", json=booking(fixed_professional, appointment_time="09:00")).json()

    response = client.post(f"/api/queue/{created['id']}/arrive")

    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "invalid_transition"


def test_shift_queue_view(client, queue_professional):
    ids = [
        client.post("/api/appointments", json=booking(queue_professional, shift_name="morning")).json()["id"]
        for _ in range(2)
    ]
    client.post(f"/api/queue/{ids[0]}/arrive")

    response = client.get(f"/api/queue/{queue_professional.id}/{DAY}/morning")

    assert response.status_code == 200
    data = response.json()
    assert [apt["id"] for apt in data["waiting"]] == [ids[1]]
    assert [apt["id"] for apt in data["arrived"]] == [ids[0]]
    assert data["completed"] == []


def test_public_clinic_queue(client, db, clinic, queue_professional):
    created = client.post("/api/appointments", json=booking(queue_professional, shift_name="morning")).json()
    client.post(f"/api/queue/{created['id']}/arrive")

    response = client.get(f"/api/clinics/{clinic.slug}/queue/{DAY}")

    assert response.status_code == 200
    professionals = response.json()
    assert [item["professional_id"] for item in professionals] == [queue_professional.id]
    morning = professionals[0]["shifts"][0]
    assert morning["shift_name"] == "morning"
    assert morning["patients"] == [{"patient_name": "Maria Silva", "queue_position": 1}]

    queue_professional.show_queue_position = False
    db.commit()

    hidden = client.get(f"/api/clinics/{clinic.slug}/queue/{DAY}").json()
    assert hidden[0]["shifts"][0]["patients"] == [{"patient_name": "Maria Silva", "queue_position": None}]


def test_unknown_clinic_queue_is_404(client, clinic):
    assert client.get(f"/api/clinics/no-such-clinic/queue/{DAY}").status_code == 404


def test_schedule_releases_transaction_while_waiting_for_calendar(client, db, fixed_professional):
    states = []

    def busy_times(*args, **kwargs):
        states.append(db.in_transaction())
        return []

    with patch("clinic_scheduler.routes.appointments.fetch_external_busy", AsyncMock(side_effect=busy_times)):
        response = client.get(f"/api/professionals/{fixed_professional.id}/schedule/{DAY}")

    assert response.status_code == 200
    assert states == [False]
