"""End-to-end tests of the HTTP API and the live websocket."""

from __future__ import annotations

from datetime import timedelta
from functools import partial
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from conftest import create_user
from notification_engine.infrastructure.security import create_user_token
from notification_engine.main import create_app
from notification_engine.runtime import NotificationRuntime
from notification_engine.utils import now_in_app_timezone


class Api:
    """Test client wrapper with seeded admin and learner accounts."""

    def __init__(self, client: TestClient, runtime: NotificationRuntime) -> None:
        self.client = client
        self.runtime = runtime
        self.admin = self.seed_user(name="Admin", email="admin@example.com", admin=True)
        self.learner = self.seed_user(name="Learner", email="learner@example.com")

    def seed_user(self, **fields):
        return self.client.portal.call(partial(create_user, self.runtime.session_factory, **fields))

    @staticmethod
    def auth(user) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_user_token(user.id)}"}

    def notify(self, recipient, **fields):
        body = {"recipient_id": recipient.id, "title": "Quiz graded", "message": "You scored 9/10"}
        body.update(fields)
        return self.client.post("/notifications/", json=body, headers=self.auth(self.admin))


@pytest.fixture()
def api(settings, email_transport, push_transport, redis_pool):
    runtime = NotificationRuntime(
        settings,
        email_transport=email_transport,
        push_transport=push_transport,
        redis=redis_pool,
    )
    app = create_app(settings, runtime=runtime)
    with TestClient(app) as client:
        yield Api(client, runtime)


def _receive_until(websocket, event_type: str, limit: int = 5):
    for _ in range(limit):
        message = websocket.receive_json()
        if message["type"] == event_type:
            return message["data"]
    raise AssertionError(f"no {event_type} event received")


def test_requests_without_valid_token_are_rejected(api: Api) -> None:
    assert api.client.get("/notifications/my").status_code == 401
    response = api.client.get(
        "/notifications/my", headers={"Authorization": "Bearer not-a-token"}
    )
    assert response.status_code == 401
    ghost = {"Authorization": f"Bearer {create_user_token(str(uuid4()))}"}
    assert api.client.get("/notifications/my", headers=ghost).status_code == 401


def test_inactive_user_is_rejected(api: Api) -> None:
    inactive = api.seed_user(email="gone@example.com", is_active=False)

    response = api.client.get("/notifications/my", headers=api.auth(inactive))

    assert response.status_code == 400
    assert response.json()["detail"] == "Inactive user"


def test_only_admins_create_notifications(api: Api) -> None:
    response = api.client.post(
        "/notifications/",
        json={"recipient_id": api.admin.id, "title": "Hi", "message": "There"},
        headers=api.auth(api.learner),
    )

    assert response.status_code == 403


def test_notification_lifecycle(api: Api) -> None:
    created = api.notify(api.learner)
    assert created.status_code == 201
    notification = created.json()
    assert notification["status"] == "sent"
    assert notification["channel"] == "in_app"

    headers = api.auth(api.learner)
    assert [n["id"] for n in api.client.get("/notifications/my", headers=headers).json()] == [
        notification["id"]
    ]
    assert len(api.client.get("/notifications/my/unread", headers=headers).json()) == 1
    stats = api.client.get("/notifications/my/stats", headers=headers).json()
    assert stats == {
        "total": 1,
        "unread": 1,
        "by_channel": {"in_app": 1, "email": 0, "push": 0, "sms": 0},
    }

    read = api.client.patch(f"/notifications/{notification['id']}/read", headers=headers)
    assert read.status_code == 200
    assert read.json()["status"] == "read"
    again = api.client.patch(f"/notifications/{notification['id']}/read", headers=headers)
    assert again.status_code == 200
    assert again.json()["read_at"] == read.json()["read_at"]

    deleted = api.client.delete(f"/notifications/{notification['id']}", headers=headers)
    assert deleted.status_code == 204
    missing = api.client.delete(f"/notifications/{notification['id']}", headers=headers)
    assert missing.status_code == 404


def test_validation_errors_map_to_400_with_field(api: Api) -> None:
    response = api.notify(api.learner, title="<b></b>")

    assert response.status_code == 400
    assert response.json()["detail"]["field"] == "title"

    dangerous = api.notify(api.learner, payload={"link": "javascript:alert(1)"})
    assert dangerous.status_code == 400
    assert api.notify(api.learner, channel="fax").status_code == 400
    assert api.notify(api.learner, max_retries=11).status_code == 400


def test_foreign_notification_is_not_found(api: Api) -> None:
    notification = api.notify(api.learner).json()

    response = api.client.patch(
        f"/notifications/{notification['id']}/read", headers=api.auth(api.admin)
    )

    assert response.status_code == 404


def test_reading_a_scheduled_notification_conflicts(api: Api) -> None:
    scheduled_at = (now_in_app_timezone() + timedelta(hours=1)).isoformat()
    notification = api.notify(api.learner, scheduled_at=scheduled_at).json()
    assert notification["status"] == "pending"

    response = api.client.patch(
        f"/notifications/{notification['id']}/read", headers=api.auth(api.learner)
    )

    assert response.status_code == 409


def test_list_limit_is_bounded(api: Api) -> None:
    headers = api.auth(api.learner)

    assert api.client.get("/notifications/my?limit=0", headers=headers).status_code == 400
    assert api.client.get("/notifications/my?limit=101", headers=headers).status_code == 400
    assert api.client.get("/notifications/my?limit=100", headers=headers).status_code == 200


def test_bulk_send_and_mark_all_read(api: Api) -> None:
    recipients = [api.learner.id, str(uuid4())]

    response = api.client.post(
        "/notifications/bulk",
        json={"recipient_ids": recipients, "title": "Maintenance", "message": "Tonight"},
        headers=api.auth(api.admin),
    )

    assert response.status_code == 201
    body = response.json()
    assert {n["recipient_id"] for n in body["successful"]} == set(recipients)
    assert body["failed"] == []

    too_many = api.client.post(
        "/notifications/bulk",
        json={
            "recipient_ids": [str(uuid4()) for _ in range(1001)],
            "title": "Maintenance",
            "message": "Tonight",
        },
        headers=api.auth(api.admin),
    )
    assert too_many.status_code == 400

    updated = api.client.patch("/notifications/my/read-all", headers=api.auth(api.learner))
    assert updated.json() == {"updated": 1}


def test_template_endpoints(api: Api) -> None:
    admin = api.auth(api.admin)
    created = api.client.post(
        "/notifications/templates",
        json={"name": "badge", "subject": "New badge: {{badge}}", "content": "Well done {{name}}"},
        headers=admin,
    )
    assert created.status_code == 201
    assert created.json()["variables"] == ["badge", "name"]

    duplicate = api.client.post(
        "/notifications/templates",
        json={"name": "badge", "subject": "x", "content": "y"},
        headers=admin,
    )
    assert duplicate.status_code == 400
    assert [t["name"] for t in api.client.get("/notifications/templates", headers=admin).json()] == [
        "badge"
    ]

    sent = api.client.post(
        "/notifications/templates/badge/send",
        json={"recipient_ids": [api.learner.id], "variables": {"badge": "Explorer", "name": "Ana"}},
        headers=admin,
    )
    assert sent.status_code == 201
    [notification] = sent.json()["successful"]
    assert notification["title"] == "New badge: Explorer"
    assert notification["message"] == "Well done Ana"

    unknown = api.client.post(
        "/notifications/templates/missing/send",
        json={"recipient_ids": [api.learner.id]},
        headers=admin,
    )
    assert unknown.status_code == 404


def test_device_endpoints(api: Api) -> None:
    headers = api.auth(api.learner)

    created = api.client.post(
        "/devices/", json={"token": "device-1", "platform": "Android"}, headers=headers
    )
    assert created.status_code == 201
    assert created.json() == {"token": "device-1", "platform": "android"}
    invalid = api.client.post(
        "/devices/", json={"token": "device-2", "platform": "fax"}, headers=headers
    )
    assert invalid.status_code == 400
    assert api.client.get("/devices/", headers=headers).json() == [
        {"token": "device-1", "platform": "android"}
    ]
    assert api.client.delete("/devices/device-1", headers=headers).status_code == 204
    assert api.client.delete("/devices/device-1", headers=headers).status_code == 404


def test_push_notification_is_delivered_to_registered_device(api: Api, push_transport) -> None:
    api.client.post(
        "/devices/",
        json={"token": "device-1", "platform": "ios"},
        headers=api.auth(api.learner),
    )

    notification = api.notify(api.learner, channel="push").json()
    api.client.portal.call(api.runtime.queue.wait_idle)

    [push] = push_transport.sent
    assert push["token"] == "device-1"
    assert push["data"]["notification_id"] == notification["id"]


def test_queue_endpoints(api: Api) -> None:
    admin = api.auth(api.admin)

    queues = api.client.get("/queues/", headers=admin).json()
    assert [q["name"] for q in queues] == ["email", "push", "sms"]

    paused = api.client.post("/queues/email/pause", headers=admin).json()
    assert paused["paused"] is True
    resumed = api.client.post("/queues/email/resume", headers=admin).json()
    assert resumed["paused"] is False
    assert api.client.post("/queues/email/clear", headers=admin).json() == {
        "name": "email",
        "removed": 0,
    }
    assert api.client.get("/queues/email/jobs", headers=admin).json() == []
    assert api.client.get("/queues/fax/jobs", headers=admin).status_code == 404
    assert api.client.get("/queues/", headers=api.auth(api.learner)).status_code == 403


def test_websocket_rejects_invalid_token(api: Api) -> None:
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with api.client.websocket_connect("/notifications/ws?token=bogus") as websocket:
            websocket.receive_json()

    assert exc_info.value.code == 1008


def test_websocket_streams_and_accepts_actions(api: Api) -> None:
    token = create_user_token(api.learner.id)
    with api.client.websocket_connect(f"/notifications/ws?token={token}") as websocket:
        assert websocket.receive_json() == {"type": "unread_count", "data": {"count": 0}}

        websocket.send_json({"type": "ping", "data": {"n": 1}})
        assert websocket.receive_json() == {"type": "pong", "data": {"n": 1}}

        notification = api.notify(api.learner).json()
        pushed = _receive_until(websocket, "new_notification")
        assert pushed["id"] == notification["id"]
        assert _receive_until(websocket, "unread_count") == {"count": 1}

        websocket.send_json({"type": "mark_as_read", "data": {"notification_id": notification["id"]}})
        assert _receive_until(websocket, "notification_marked_read")["status"] == "read"

        websocket.send_json({"type": "get_notifications", "data": {"limit": 5}})
        [listed] = _receive_until(websocket, "notifications")
        assert listed["id"] == notification["id"]

        websocket.send_json({"type": "mark_as_read", "data": {"notification_id": str(uuid4())}})
        assert "not found" in _receive_until(websocket, "error")["message"]

        websocket.send_text("not json")
        assert _receive_until(websocket, "error") == {"message": "Messages must be JSON objects"}

        websocket.send_json({"type": "dance"})
        assert _receive_until(websocket, "error") == {"message": "Unknown action 'dance'"}

        broadcast = api.client.post(
            "/notifications/broadcast",
            json={"title": "Maintenance", "message": "Back soon"},
            headers=api.auth(api.admin),
        )
        assert broadcast.json() == {"delivered": 1}
        assert _receive_until(websocket, "broadcast_notification")["title"] == "Maintenance"
