"""
workboard/test_notifications.py

Fire-and-forget notification delivery.

Tests:
1. A failing sender never fails or rolls back the authorized mutation
2. In-app notifications are stored per recipient, never for the actor
3. Push delivery posts to the webhook and drops tokens the gateway rejects
4. Inbox endpoints are scoped to the current user

Run:
    pytest workboard/test_notifications.py -v
"""

import pytest

from workboard import notifications
from workboard.db import transaction
from workboard.hierarchy import get_task
from workboard.notifications import (
    EmailMessage,
    InAppNotificationSender,
    NotificationDispatcher,
    NotificationEvent,
    NotificationSender,
    WebhookPushSender,
    list_notifications,
    register_push_token,
    unread_count,
)
from workboard.projects import create_board, create_project
from workboard.tasks import create_task


class ExplodingSender(NotificationSender):
    def __init__(self):
        self.calls = 0

    def send(self, event):
        self.calls += 1
        raise RuntimeError("gateway down")


class ExplodingEmailSender:
    def send(self, message):
        raise ConnectionError("smtp unreachable")


class FakeResponse:
    def __init__(self, payload=None, status_code=200):
        self.payload = payload or {}
        self.status_code = status_code
        self.content = b"{}" if payload is not None else b""

    def raise_for_status(self):
        if self.status_code >= 400:
            raise RuntimeError(f"HTTP {self.status_code}")

    def json(self):
        return self.payload


@pytest.fixture
def board_setup(conn, make_org, make_user):
    org, owner = make_org("Acme")
    ann = make_user(org, "Ann")
    with transaction(conn):
        project = create_project(conn, owner, "Launch", member_ids=[ann.id])
        board = create_board(conn, owner, project.id, "Sprint")
    return org, owner, ann, board


def test_failing_sender_does_not_fail_mutation(conn, board_setup):
    org, owner, ann, board = board_setup
    exploding = ExplodingSender()
    dispatcher = NotificationDispatcher(senders=[exploding, InAppNotificationSender()])

    with transaction(conn):
        task = create_task(conn, owner, board.id, "Ship", assigned_to=[ann.id], dispatcher=dispatcher)
    dispatcher.flush()

    assert exploding.calls == 1
    assert get_task(conn, task.id).assigned_to == [ann.id]
    # Later senders still run after an earlier one fails
    assert [n["title"] for n in list_notifications(conn, ann.id)] == ["New task assigned"]
    assert list_notifications(conn, owner.id) == []


def test_failing_email_sender_is_swallowed():
    dispatcher = NotificationDispatcher(senders=[], email_sender=ExplodingEmailSender())
    dispatcher.email("bob@x.com", "Hi", "Body")
    dispatcher.flush()
    assert dispatcher.outbox == []


def test_nothing_is_delivered_when_the_mutation_rolls_back(conn, board_setup):
    org, owner, ann, board = board_setup
    dispatcher = NotificationDispatcher(senders=[InAppNotificationSender()])
    with pytest.raises(RuntimeError):
        with transaction(conn):
            create_task(conn, owner, board.id, "Ship", assigned_to=[ann.id], dispatcher=dispatcher)
            raise RuntimeError("boom")
    # Routes only flush after a successful commit
    dispatcher.discard()
    assert dispatcher.outbox == []
    assert list_notifications(conn, ann.id) == []


def test_notify_excludes_actor_and_deduplicates():
    dispatcher = NotificationDispatcher(senders=[])
    dispatcher.notify([3, 3, 4, None, 5], "Hello", exclude=4)
    dispatcher.notify([4], "Only the actor", exclude=4)
    assert len(dispatcher.outbox) == 1
    assert dispatcher.outbox[0].user_ids == [3, 5]


def test_in_app_sender_skips_unknown_users(conn, board_setup):
    org, owner, ann, board = board_setup
    InAppNotificationSender().send(NotificationEvent([ann.id, 987654], "Ping", data={"k": 1}))
    items = list_notifications(conn, ann.id)
    assert len(items) == 1
    assert items[0]["data"] == {"k": 1}
    assert items[0]["is_read"] is False


def test_push_sender_posts_and_prunes_invalid_tokens(conn, board_setup, monkeypatch):
    org, owner, ann, board = board_setup
    with transaction(conn):
        register_push_token(conn, ann.id, "good-token")
        register_push_token(conn, ann.id, "dead-token")

    calls = []

    def fake_post(url, json=None, timeout=None):
        calls.append((url, json, timeout))
        return FakeResponse({"invalid_tokens": ["dead-token"]})

    monkeypatch.setattr(notifications.requests, "post", fake_post)
    sender = WebhookPushSender(url="https://push.example/send", timeout=2)
    sender.send(NotificationEvent([ann.id], "New task assigned", "body", "/boards/1", {"taskId": 7}))

    assert len(calls) == 1
    url, payload, timeout = calls[0]
    assert url == "https://push.example/send"
    assert timeout == 2
    assert sorted(payload["tokens"]) == ["dead-token", "good-token"]
    assert payload["data"] == {"taskId": "7", "link": "/boards/1"}
    remaining = [r["token"] for r in conn.execute("SELECT token FROM push_tokens").fetchall()]
    assert remaining == ["good-token"]


def test_push_sender_disabled_without_url(monkeypatch):
    def fail_post(*args, **kwargs):
        raise AssertionError("should not post")

    monkeypatch.setattr(notifications.requests, "post", fail_post)
    WebhookPushSender(url="").send(NotificationEvent([1], "x"))


def test_push_failure_does_not_fail_request(client, conn, board_setup, auth, monkeypatch):
    org, owner, ann, board = board_setup
    with transaction(conn):
        register_push_token(conn, ann.id, "ann-phone")

    def broken_post(*args, **kwargs):
        return FakeResponse({}, status_code=503)

    monkeypatch.setattr(notifications.config, "PUSH_WEBHOOK_URL", "https://push.example/send")
    monkeypatch.setattr(notifications.requests, "post", broken_post)

    response = client.post(
        "/tasks", json={"board_id": board.id, "title": "Ship", "assigned_to": [ann.id]}, headers=auth(owner),
    )
    assert response.status_code == 200
    assert unread_count(conn, ann.id) == 1


def test_inbox_endpoints_are_scoped_to_current_user(client, conn, board_setup, auth):
    org, owner, ann, board = board_setup
    InAppNotificationSender().send(NotificationEvent([ann.id], "First"))
    InAppNotificationSender().send(NotificationEvent([ann.id], "Second"))
    InAppNotificationSender().send(NotificationEvent([owner.id], "Owner only"))

    assert client.get("/notifications/unread-count", headers=auth(ann)).json() == {"unread": 2}
    inbox = client.get("/notifications", headers=auth(ann)).json()
    assert {n["title"] for n in inbox} == {"First", "Second"}

    foreign_id = list_notifications(conn, owner.id)[0]["id"]
    assert client.post(f"/notifications/{foreign_id}/read", headers=auth(ann)).status_code == 404

    own_id = inbox[0]["id"]
    assert client.post(f"/notifications/{own_id}/read", headers=auth(ann)).status_code == 200
    assert client.get("/notifications/unread-count", headers=auth(ann)).json() == {"unread": 1}
    assert client.post("/notifications/read-all", headers=auth(ann)).json() == {"updated": 1}
    assert client.get("/notifications", params={"unread_only": True}, headers=auth(ann)).json() == []

    registered = client.post("/push-tokens", json={"token": "device-1"}, headers=auth(ann))
    assert registered.json() == {"registered": True}


def test_email_message_is_plain_record():
    message = EmailMessage("bob@x.com", "Subject", "Body")
    assert message.to == "bob@x.com"
