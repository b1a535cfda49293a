from datetime import datetime

import pytest
from conftest import CHAT_ID, SERVICE_KEY, STUDENT, TEACHER

MONDAY_14 = "2030-01-07T14:00:00"


def headers(user_id):
    return {"X-User-Id": user_id}


@pytest.fixture
def linked(client):
    response = client.put(
        f"/conversations/{CHAT_ID}",
        json={"teacherId": TEACHER, "studentId": STUDENT},
        headers={"X-Service-Key": SERVICE_KEY},
    )
    assert response.status_code == 200
    return response.json()


def booking(**overrides):
    payload = {
        "chatId": CHAT_ID,
        "dateTime": MONDAY_14,
        "duration": 60,
        "locationType": "online",
        "location": "Video call",
        "meetingType": "regular_lesson",
    }
    payload.update(overrides)
    return payload


def create(client, user_id=STUDENT, **overrides):
    return client.post("/appointments", json=booking(**overrides), headers=headers(user_id))


def test_link_conversation(linked):
    assert linked == {"id": CHAT_ID, "teacherId": TEACHER, "studentId": STUDENT, "isActive": True}


def test_create_appointment(client, linked):
    response = create(client, preparationMaterials=[" Textbook ", "", "Textbook", "Calculator"])

    assert response.status_code == 201
    body = response.json()
    [appointment] = body["appointments"]
    assert appointment["status"] == "PENDING"
    assert appointment["teacherId"] == TEACHER
    assert appointment["endTime"].startswith("2030-01-07T15:00:00")
    assert appointment["preparationMaterials"] == ["Textbook", "Calculator"]
    assert body["warnings"] == []


def test_missing_identity_is_rejected(client, linked):
    response = client.post("/appointments", json=booking())
    assert response.status_code == 401


def test_overlap_returns_conflicts(client, linked):
    first = create(client).json()["appointments"][0]

    response = create(client, user_id=TEACHER, dateTime="2030-01-07T14:30:00")

    assert response.status_code == 409
    body = response.json()
    assert body["conflicts"][0]["type"] == "overlap"
    assert body["conflicts"][0]["severity"] == "error"
    assert body["conflicts"][0]["conflictingAppointmentId"] == first["id"]


def test_business_hours_conflict(client, linked):
    response = create(client, dateTime="2030-01-07T23:00:00")

    assert response.status_code == 409
    assert [c["type"] for c in response.json()["conflicts"]] == ["business_hours"]


def test_short_notice_warning(client, linked):
    response = create(client, dateTime="2030-01-07T08:00:00")

    assert response.status_code == 201
    assert response.json()["warnings"][0]["type"] == "buffer_violation"


@pytest.mark.parametrize(
    "overrides",
    [
        {"duration": 0},
        {"duration": 600},
        {"location": "   "},
        {"locationType": "moon"},
        {"price": -5},
        {"currency": "XX"},
        {"chatId": "not-a-uuid"},
        {"reminderTime": 20000},
    ],
)
def test_invalid_payload(client, linked, overrides):
    assert create(client, **overrides).status_code == 422


def test_past_start_is_bad_request(client, linked):
    response = create(client, dateTime="2030-01-06T14:00:00")
    assert response.status_code == 400


def test_recurring_series(client, linked):
    response = create(
        client,
        isRecurring=True,
        recurringPattern="bi_weekly",
        recurringEndDate="2030-02-04T00:00:00",
    )

    assert response.status_code == 201
    days = [a["dateTime"][:10] for a in response.json()["appointments"]]
    assert days == ["2030-01-07", "2030-01-21", "2030-02-04"]


def test_availability(client, linked):
    create(client)

    response = client.get(
        "/appointments/availability",
        params={"chatId": CHAT_ID, "date": "2030-01-07", "duration": 60},
        headers=headers(TEACHER),
    )

    assert response.status_code == 200
    slots = {s["start"][11:16]: s for s in response.json()["slots"]}
    assert slots["14:00"]["available"] is False
    assert slots["14:00"]["reason"] == "Occupied"
    assert slots["15:00"]["available"] is True


def test_respond_complete_flow(client, linked, clock):
    appointment_id = create(client).json()["appointments"][0]["id"]

    accepted = client.post(
        f"/appointments/{appointment_id}/respond", json={"accepted": True}, headers=headers(TEACHER)
    )
    assert accepted.json()["status"] == "CONFIRMED"

    clock.set(datetime(2030, 1, 7, 15, 30))
    for user_id, expected in [(TEACHER, "WAITING_TO_COMPLETE"), (STUDENT, "COMPLETED")]:
        response = client.post(
            f"/appointments/{appointment_id}/complete", json={"completed": True}, headers=headers(user_id)
        )
        assert response.status_code == 200
        assert response.json()["status"] == expected

    assert response.json()["bothCompleted"] is True


def test_invalid_transition_is_conflict(client, linked):
    appointment_id = create(client).json()["appointments"][0]["id"]

    response = client.post(
        f"/appointments/{appointment_id}/cancel", json={"reason": "Busy"}, headers=headers(STUDENT)
    )

    assert response.status_code == 409
    assert response.json()["currentStatus"] == "PENDING"
    assert response.json()["event"] == "cancel"


def test_blank_cancellation_reason(client, linked):
    appointment_id = create(client).json()["appointments"][0]["id"]
    client.post(f"/appointments/{appointment_id}/respond", json={"accepted": True}, headers=headers(TEACHER))

    response = client.post(
        f"/appointments/{appointment_id}/cancel", json={"reason": " "}, headers=headers(STUDENT)
    )
    assert response.status_code == 400


def test_readiness(client, linked, clock):
    appointment_id = create(client).json()["appointments"][0]["id"]
    client.post(f"/appointments/{appointment_id}/respond", json={"accepted": True}, headers=headers(TEACHER))
    clock.set(datetime(2030, 1, 7, 13, 0))

    response = client.post(
        f"/appointments/{appointment_id}/readiness", json={"ready": True}, headers=headers(TEACHER)
    )

    assert response.status_code == 200
    assert response.json()["teacherReady"] is True
    assert response.json()["studentReady"] is False


def test_outsider_gets_forbidden(client, linked):
    appointment_id = create(client).json()["appointments"][0]["id"]

    response = client.get(f"/appointments/{appointment_id}", headers=headers("stranger"))
    assert response.status_code == 403


def test_unknown_appointment_is_not_found(client, linked):
    response = client.get("/appointments/does-not-exist", headers=headers(STUDENT))
    assert response.status_code == 404


def test_list_appointments(client, linked):
    for day in (7, 8, 9):
        create(client, dateTime=f"2030-01-{day:02d}T10:00:00")

    response = client.get("/appointments", params={"limit": 2}, headers=headers(TEACHER))

    assert response.status_code == 200
    body = response.json()
    assert len(body["appointments"]) == 2
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "totalPages": 2, "hasMore": True}


def test_list_limit_above_maximum(client, linked):
    response = client.get("/appointments", params={"limit": 500}, headers=headers(TEACHER))
    assert response.status_code == 422


def test_calendar(client, linked):
    create(client)

    response = client.get(
        "/appointments/calendar", params={"view": "day", "date": "2030-01-07"}, headers=headers(STUDENT)
    )

    assert response.status_code == 200
    body = response.json()
    assert body["rangeStart"] == "2030-01-07"
    event = body["events"][0]
    assert event["backgroundColor"] == "#f59e0b"
    assert event["row"] == 14
    assert event["top"] == 0.0
    assert event["height"] == 80.0


def test_stats(client, linked):
    create(client)

    response = client.get("/appointments/stats", headers=headers(STUDENT))

    assert response.status_code == 200
    assert response.json()["total"] == 1
    assert response.json()["pending"] == 1


def test_check_chat_appointment(client, linked):
    appointment_id = create(client).json()["appointments"][0]["id"]

    response = client.get(
        f"/conversations/{CHAT_ID}/appointments/check",
        params={"date": "2030-01-07"},
        headers=headers(TEACHER),
    )

    assert response.json() == {"hasAppointment": True, "date": "2030-01-07", "appointmentIds": [appointment_id]}


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_link_conversation_requires_service_key(client):
    response = client.put(f"/conversations/{CHAT_ID}", json={"teacherId": "intruder", "studentId": STUDENT})
    assert response.status_code == 401


def test_link_conversation_rejects_wrong_service_key(client, linked):
    response = client.put(
        f"/conversations/{CHAT_ID}",
        json={"teacherId": "intruder", "studentId": STUDENT},
        headers={"X-Service-Key": "guess"},
    )

    assert response.status_code == 403
    check = client.get(
        f"/conversations/{CHAT_ID}/appointments/check",
        params={"date": "2030-01-07"},
        headers=headers(TEACHER),
    )
    assert check.status_code == 200


def test_relinking_booked_chat_to_other_teacher_is_rejected(client, linked):
    create(client)

    response = client.put(
        f"/conversations/{CHAT_ID}",
        json={"teacherId": "intruder", "studentId": STUDENT},
        headers={"X-Service-Key": SERVICE_KEY},
    )
    assert response.status_code == 400


def test_reschedule(client, linked):
    appointment_id = create(client).json()["appointments"][0]["id"]
    client.post(f"/appointments/{appointment_id}/respond", json={"accepted": True}, headers=headers(TEACHER))

    response = client.post(
        f"/appointments/{appointment_id}/reschedule",
        json={"newDateTime": "2030-01-08T10:00:00", "reason": "Dentist"},
        headers=headers(STUDENT),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["appointment"]["dateTime"].startswith("2030-01-08T10:00:00")
    assert body["appointment"]["status"] == "PENDING"
    assert body["warnings"] == []


def test_reschedule_onto_busy_time_is_conflict(client, linked):
    first = create(client).json()["appointments"][0]["id"]
    second = create(client, dateTime="2030-01-08T10:00:00").json()["appointments"][0]["id"]

    response = client.post(
        f"/appointments/{first}/reschedule",
        json={"newDateTime": "2030-01-08T10:30:00", "reason": "Clash"},
        headers=headers(STUDENT),
    )

    assert response.status_code == 409
    assert response.json()["conflicts"][0]["conflictingAppointmentId"] == second


def test_reschedule_requires_reason(client, linked):
    appointment_id = create(client).json()["appointments"][0]["id"]

    response = client.post(
        f"/appointments/{appointment_id}/reschedule",
        json={"newDateTime": "2030-01-08T10:00:00", "reason": "  "},
        headers=headers(STUDENT),
    )
    assert response.status_code == 422


def test_update_appointment(client, linked):
    appointment_id = create(client).json()["appointments"][0]["id"]

    response = client.patch(
        f"/appointments/{appointment_id}",
        json={"locationType": "library", "location": "Deichman", "agenda": "Algebra"},
        headers=headers(TEACHER),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["locationType"] == "library"
    assert body["location"] == "Deichman"
    assert body["agenda"] == "Algebra"
    assert body["status"] == "PENDING"
