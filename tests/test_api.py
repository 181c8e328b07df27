"""HTTP tests for the reminder service routes."""

import uuid

import pytest
from fastapi.testclient import TestClient

from studyplanner.reminders.errors import DeliveryError
from studyplanner.reminders.runtime import get_components
from studyplanner.reminders.service import create_app

PREFIX = "/api/v1/reminders"
AUTH = {"X-API-Key": "test-key"}


@pytest.fixture
def client(components):
    app = create_app()
    app.dependency_overrides[get_components] = lambda: components
    return TestClient(app)


def _dispatch_body(seeded, **overrides) -> dict:
    body = {
        "user_email": "student@example.com",
        "subject": "Physics",
        "topic": "Optics",
        "start_time": "09:00:00",
        "day": "Monday",
        "language": "en",
        "reminder_id": str(seeded.reminder.id),
        "schedule_item_id": str(seeded.item.id),
    }
    body.update(overrides)
    return body


def test_health_is_public(client) -> None:
    response = client.get(f"{PREFIX}/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_complete_link_renders_confirmation(client, seed, schedules) -> None:
    seeded = seed()
    response = client.get(
        f"{PREFIX}/action",
        params={"action": "complete", "reminder_id": str(seeded.reminder.id), "item_id": str(seeded.item.id)},
    )
    assert response.status_code == 200
    assert "text/html" in response.headers["content-type"]
    assert "Task Completed!" in response.text
    assert schedules.get_item(seeded.item.id).completed is True


def test_snooze_link_renders_arabic_page(client, seed) -> None:
    seeded = seed(language="ar")
    response = client.get(
        f"{PREFIX}/action",
        params={"action": "snooze", "reminder_id": str(seeded.reminder.id), "minutes": "15"},
    )
    assert response.status_code == 200
    assert 'dir="rtl"' in response.text
    assert "سنذكرك مرة أخرى بعد 15 دقيقة." in response.text


def test_bad_link_parameters_return_error_page(client, seed) -> None:
    seeded = seed(language="ar")

    missing = client.get(f"{PREFIX}/action")
    assert missing.status_code == 400
    assert "Missing required parameters" in missing.text

    bad_minutes = client.get(
        f"{PREFIX}/action",
        params={"action": "snooze", "reminder_id": str(seeded.reminder.id), "minutes": "abc"},
    )
    assert bad_minutes.status_code == 400
    assert 'dir="rtl"' in bad_minutes.text
    assert "يجب أن تكون مدة التأجيل عدداً صحيحاً من الدقائق" in bad_minutes.text
    assert "whole number" not in bad_minutes.text


def test_unknown_reminder_link_returns_404(client) -> None:
    response = client.get(
        f"{PREFIX}/action",
        params={"action": "snooze", "reminder_id": str(uuid.uuid4()), "minutes": "15"},
    )
    assert response.status_code == 404
    assert "Reminder not found" in response.text


def test_dispatch_requires_api_key(client, seed) -> None:
    response = client.post(f"{PREFIX}/dispatch", json=_dispatch_body(seed()))
    assert response.status_code == 401

    bearer = client.post(
        f"{PREFIX}/dispatch",
        json=_dispatch_body(seed()),
        headers={"Authorization": "Bearer test-key"},
    )
    assert bearer.status_code == 200


def test_dispatch_sends_and_reports_in_request_language(client, seed, transport) -> None:
    seeded = seed()

    response = client.post(f"{PREFIX}/dispatch", json=_dispatch_body(seeded, language="ar"), headers=AUTH)

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "تم إرسال التذكير بنجاح", "email_sent": True}
    assert len(transport.sent) == 1


def test_dispatch_with_occurrence_sends_once(client, seed, transport) -> None:
    seeded = seed()
    body = _dispatch_body(seeded, occurrence_at="2026-10-19T09:00:00Z")

    first = client.post(f"{PREFIX}/dispatch", json=body, headers=AUTH)
    second = client.post(f"{PREFIX}/dispatch", json=body, headers=AUTH)

    assert first.json()["email_sent"] is True
    assert second.status_code == 200
    assert second.json() == {"success": True, "message": "Reminder already sent", "email_sent": False}
    assert len(transport.sent) == 1


def test_dispatch_failure_returns_502(client, seed, transport) -> None:
    transport.fail_with(DeliveryError("550 mailbox unavailable"))
    response = client.post(f"{PREFIX}/dispatch", json=_dispatch_body(seed()), headers=AUTH)
    assert response.status_code == 502
    assert response.json() == {"success": False, "message": "Failed to send reminder", "email_sent": False}


def test_dispatch_for_unknown_reminder_returns_404(client, seed) -> None:
    body = _dispatch_body(seed(), reminder_id=str(uuid.uuid4()))
    assert client.post(f"{PREFIX}/dispatch", json=body, headers=AUTH).status_code == 404


def test_dispatch_without_transport_returns_503(client, seed, components) -> None:
    components.dispatcher = None
    response = client.post(f"{PREFIX}/dispatch", json=_dispatch_body(seed()), headers=AUTH)
    assert response.status_code == 503


def test_schedule_item_and_reminder_lifecycle(client) -> None:
    schedule = client.post(f"{PREFIX}/schedules", json={"user_id": "user-9", "title": "Finals"}, headers=AUTH)
    assert schedule.status_code == 201
    schedule_id = schedule.json()["id"]

    item = client.post(
        f"{PREFIX}/schedules/{schedule_id}/items",
        json={
            "schedule_id": schedule_id,
            "subject": "Chemistry",
            "day_of_week": 3,
            "start_time": "16:00:00",
            "end_time": "17:30:00",
            "recurrence_pattern": "weekly",
        },
        headers=AUTH,
    )
    assert item.status_code == 201
    item_id = item.json()["id"]

    created = client.post(
        f"{PREFIX}/",
        json={"schedule_item_id": item_id, "user_id": "user-9", "recipient": "s9@example.com", "language": "ar"},
        headers=AUTH,
    )
    assert created.status_code == 201
    reminder = created.json()
    assert reminder["reminder_time_minutes"] == 30
    assert reminder["is_enabled"] is True
    url = f"{PREFIX}/{reminder['id']}"

    assert client.get(url, headers=AUTH).json()["language"] == "ar"

    patched = client.patch(url, json={"reminder_time_minutes": 60}, headers=AUTH)
    assert patched.json()["reminder_time_minutes"] == 60
    assert patched.json()["language"] == "ar"

    toggled = client.post(f"{url}/toggle", headers=AUTH)
    assert toggled.json()["is_enabled"] is False

    listed = client.get(f"{PREFIX}/", params={"user_id": "user-9"}, headers=AUTH).json()
    assert [r["id"] for r in listed] == [reminder["id"]]

    assert client.delete(url, headers=AUTH).status_code == 204
    assert client.get(url, headers=AUTH).status_code == 404


def test_item_requires_weekday_for_weekly(client) -> None:
    schedule_id = client.post(f"{PREFIX}/schedules", json={"user_id": "u", "title": "T"}, headers=AUTH).json()["id"]
    response = client.post(
        f"{PREFIX}/schedules/{schedule_id}/items",
        json={
            "schedule_id": schedule_id,
            "subject": "Chemistry",
            "start_time": "16:00:00",
            "end_time": "17:00:00",
            "recurrence_pattern": "weekly",
        },
        headers=AUTH,
    )
    assert response.status_code == 422


def test_reminder_validation(client, seed) -> None:
    seeded = seed()
    zero_lead = client.post(
        f"{PREFIX}/",
        json={
            "schedule_item_id": str(seeded.item.id),
            "user_id": "user-1",
            "recipient": "student@example.com",
            "reminder_time_minutes": 0,
        },
        headers=AUTH,
    )
    assert zero_lead.status_code == 422

    unknown_item = client.post(
        f"{PREFIX}/",
        json={"schedule_item_id": str(uuid.uuid4()), "user_id": "user-1", "recipient": "student@example.com"},
        headers=AUTH,
    )
    assert unknown_item.status_code == 404

    assert client.get(f"{PREFIX}/not-a-uuid", headers=AUTH).status_code == 400


def test_logs_and_stats(client, seed, logs) -> None:
    seeded = seed()
    logs.append(seeded.reminder.id, "sent")
    logs.append(seeded.reminder.id, "snoozed", action_taken="snooze")
    seed(enabled=False)

    reminder_logs = client.get(f"{PREFIX}/{seeded.reminder.id}/logs", headers=AUTH).json()
    assert sorted(entry["status"] for entry in reminder_logs) == ["sent", "snoozed"]

    user_logs = client.get(f"{PREFIX}/logs", params={"user_id": "user-1", "status": "sent"}, headers=AUTH).json()
    assert [entry["status"] for entry in user_logs] == ["sent"]

    stats = client.get(f"{PREFIX}/stats", params={"user_id": "user-1"}, headers=AUTH).json()
    assert stats == {
        "total_reminders": 2,
        "enabled_reminders": 1,
        "sent_today": 1,
        "failed_today": 0,
        "snoozed_today": 1,
        "completed_today": 0,
    }


def test_schedule_and_item_listing(client, seed) -> None:
    seeded = seed(user_id="user-7")
    seed(user_id="someone-else")

    schedules = client.get(f"{PREFIX}/schedules", params={"user_id": "user-7"}, headers=AUTH)
    assert [s["id"] for s in schedules.json()] == [str(seeded.schedule.id)]

    items = client.get(f"{PREFIX}/schedules/{seeded.schedule.id}/items", headers=AUTH)
    assert items.status_code == 200
    assert [i["id"] for i in items.json()] == [str(seeded.item.id)]

    assert client.get(f"{PREFIX}/schedules/{uuid.uuid4()}/items", headers=AUTH).status_code == 404


def test_completed_item_can_be_reopened(client, seed, scanner) -> None:
    """Un-completing an item closed from a reminder link puts it back on the scanner's list."""
    seeded = seed()
    client.get(
        f"{PREFIX}/action",
        params={"action": "complete", "reminder_id": str(seeded.reminder.id), "item_id": str(seeded.item.id)},
    )
    assert scanner.scan() == []

    response = client.patch(f"{PREFIX}/items/{seeded.item.id}", json={"completed": False}, headers=AUTH)

    assert response.status_code == 200
    assert response.json()["completed"] is False
    assert response.json()["subject"] == "Mathematics"
    assert len(scanner.scan()) == 1


def test_item_update_validation(client, seed) -> None:
    seeded = seed()
    url = f"{PREFIX}/items/{seeded.item.id}"

    assert client.patch(url, json={"subject": None}, headers=AUTH).status_code == 422
    assert client.patch(url, json={"day_of_week": None}, headers=AUTH).status_code == 422
    assert client.patch(f"{PREFIX}/items/{uuid.uuid4()}", json={"completed": True}, headers=AUTH).status_code == 404

    moved = client.patch(url, json={"day_of_week": 3, "topic": "Geometry"}, headers=AUTH).json()
    assert (moved["day_of_week"], moved["topic"]) == (3, "Geometry")


def test_item_delete_removes_its_reminders(client, seed, logs) -> None:
    seeded = seed()
    logs.append(seeded.reminder.id, "sent")

    assert client.delete(f"{PREFIX}/items/{seeded.item.id}", headers=AUTH).status_code == 204

    assert client.get(f"{PREFIX}/{seeded.reminder.id}", headers=AUTH).status_code == 404
    assert client.get(f"{PREFIX}/schedules/{seeded.schedule.id}/items", headers=AUTH).json() == []
    assert client.delete(f"{PREFIX}/items/{seeded.item.id}", headers=AUTH).status_code == 404
